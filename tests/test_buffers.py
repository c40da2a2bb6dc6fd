from concurrent.futures import ThreadPoolExecutor

from mail_composer.buffers import BodyPart, BufferPool


def test_body_part_set_replaces_and_write_appends():
    part = BodyPart()
    part.write("Hello")
    part.write(b", world")
    assert part.getvalue() == b"Hello, world"

    part.set("replaced")
    assert part.getvalue() == b"replaced"
    assert len(part) == 8


def test_body_part_stores_text_as_utf8():
    part = BodyPart()
    assert part.write("é") == 2
    assert part.getvalue() == "é".encode("utf-8")


def test_acquire_returns_empty_buffer():
    pool = BufferPool()
    part = pool.acquire()
    assert len(part) == 0
    assert not part


def test_released_buffer_is_cleared_and_reused():
    pool = BufferPool()
    part = pool.acquire()
    part.write("secret body")
    pool.release(part)

    again = pool.acquire()
    assert again is part
    assert again.getvalue() == b""
    assert pool.created == 1
    assert pool.reused == 1


def test_pool_keeps_at_most_max_size_idle_buffers():
    pool = BufferPool(max_size=2)
    parts = [pool.acquire() for _ in range(5)]
    for part in parts:
        pool.release(part)
    assert pool.idle == 2


def test_concurrent_acquire_release_never_shares_a_buffer():
    pool = BufferPool(max_size=8)

    def worker(n):
        for i in range(200):
            part = pool.acquire()
            payload = f"{n}-{i}".encode()
            part.write(payload)
            assert part.getvalue() == payload
            pool.release(part)
        return True

    with ThreadPoolExecutor(max_workers=8) as executor:
        assert all(executor.map(worker, range(8)))
    assert pool.idle <= 8
