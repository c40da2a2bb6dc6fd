import asyncio
import io

import pytest

from mail_composer.buffers import BufferPool
from mail_composer.composer import MailComposer
from mail_composer.config import ComposerConfig, HttpApiConfig, PoolConfig, SmtpConfig
from mail_composer.errors import StreamReadError, TransportError
from mail_composer.message import MessagePool
from mail_composer.prometheus import ComposerMetrics
from mail_composer.transport import Credentials, HttpApiTransport, SmtpTransport


class FakeTransport:
    name = "fake"

    def __init__(self, fail=False):
        self.fail = fail
        self.deliveries = []

    async def send(self, envelope, data):
        await asyncio.sleep(0)
        if self.fail:
            raise TransportError("boom", transport=self.name, code=451)
        self.deliveries.append((envelope, data))

    def describe(self):
        return "FakeTransport()"


class BrokenSource:
    def read(self, size=-1):
        raise OSError("gone")


@pytest.fixture
def pool():
    return MessagePool(BufferPool())


def _compose(composer, recipient="to@example.com"):
    msg = composer.new_mail()
    msg.set_from("from@example.com")
    msg.set_to(recipient)
    msg.set_subject("Hello")
    msg.plain.set("body")
    return msg


@pytest.mark.asyncio
async def test_send_delivers_and_releases(pool):
    transport = FakeTransport()
    metrics = ComposerMetrics()
    composer = MailComposer(transport, pool=pool, metrics=metrics)

    msg = _compose(composer)
    assert pool.in_use == 1
    await composer.send(msg)

    ((envelope, data),) = transport.deliveries
    assert envelope.sender == "from@example.com"
    assert envelope.recipients == ("to@example.com",)
    assert b"Subject: Hello\r\n" in data
    assert msg.released is True
    assert pool.in_use == 0

    output = metrics.generate_latest()
    assert b"mc_rendered_total 1.0" in output
    assert b'mc_sent_total{transport="fake"} 1.0' in output
    assert b"mc_pool_messages_in_use 0.0" in output


@pytest.mark.asyncio
async def test_send_failure_still_releases_message(pool):
    metrics = ComposerMetrics()
    composer = MailComposer(FakeTransport(fail=True), pool=pool, metrics=metrics)

    msg = _compose(composer)
    with pytest.raises(TransportError) as excinfo:
        await composer.send(msg)

    assert excinfo.value.code == 451
    assert msg.released is True
    assert pool.in_use == 0
    assert b'mc_send_errors_total{transport="fake"} 1.0' in metrics.generate_latest()


@pytest.mark.asyncio
async def test_render_failure_is_counted_and_nothing_is_sent(pool):
    transport = FakeTransport()
    metrics = ComposerMetrics()
    composer = MailComposer(transport, pool=pool, metrics=metrics)

    msg = _compose(composer)
    msg.attach("broken.bin", BrokenSource())
    with pytest.raises(StreamReadError):
        await composer.send(msg)

    assert transport.deliveries == []
    assert msg.released is True
    assert b'mc_render_errors_total{error="StreamReadError"} 1.0' in metrics.generate_latest()


@pytest.mark.asyncio
async def test_send_without_transport_raises_and_releases(pool):
    composer = MailComposer(pool=pool)
    msg = _compose(composer)
    with pytest.raises(TransportError, match="No transport configured"):
        await composer.send(msg)
    assert msg.released is True


def test_render_only_use(pool):
    composer = MailComposer(pool=pool)
    msg = _compose(composer)
    msg.attach("note.txt", io.BytesIO(b"note"))
    data = composer.render(msg)
    assert b'filename="note.txt"' in data
    assert msg.released is False
    msg.release()


def test_new_mail_carries_composer_credentials(pool):
    creds = Credentials("user", "pw")
    composer = MailComposer(pool=pool, credentials=creds)
    msg = composer.new_mail()
    assert msg.envelope().credentials is creds
    msg.release()


@pytest.mark.asyncio
async def test_concurrent_sends_do_not_share_state(pool):
    transport = FakeTransport()
    composer = MailComposer(transport, pool=pool)

    async def send_one(n):
        msg = composer.new_mail()
        msg.set_from("from@example.com")
        msg.set_to(f"user{n}@example.com")
        msg.plain.set(f"body-{n}")
        await composer.send(msg)

    await asyncio.gather(*(send_one(n) for n in range(20)))

    assert len(transport.deliveries) == 20
    for envelope, data in transport.deliveries:
        (recipient,) = envelope.recipients
        n = recipient[len("user"):recipient.index("@")]
        assert f"body-{n}".encode() in data
        assert data.count(b"body-") == 1
    assert pool.in_use == 0


def test_from_config_builds_isolated_pool_and_transport():
    config = ComposerConfig(
        pool=PoolConfig(max_buffers=4, max_messages=2, read_chunk_size=1000),
        smtp=SmtpConfig(host="smtp.example.com", port=465),
        http_api=HttpApiConfig(url="https://api.example.com/raw"),
    )

    composer = MailComposer.from_config(config)
    assert isinstance(composer.transport, SmtpTransport)
    assert composer.pool.max_size == 2
    assert composer.pool.buffers.max_size == 4
    assert composer.pool.encoder.chunk_size == 969

    assert isinstance(MailComposer.from_config(config, transport="http_api").transport, HttpApiTransport)
    assert MailComposer.from_config(config, transport="none").transport is None
    with pytest.raises(ValueError):
        MailComposer.from_config(config, transport="carrier-pigeon")


def test_describe_hides_credentials(pool):
    composer = MailComposer(FakeTransport(), pool=pool, credentials=Credentials("u", "topsecret"))
    summary = str(composer)
    assert "topsecret" not in summary
    assert "FakeTransport()" in summary
    assert "auth set: True" in summary
