import base64

import aiohttp
import pytest

from mail_composer.errors import StreamReadError
from mail_composer.sources import (
    ByteSource,
    FileSource,
    auth_headers,
    base64_source,
    bytes_source,
    fetch_url_source,
)


class DummyResponse:
    def __init__(self, status=200, body=b""):
        self.status = status
        self._body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientError(f"HTTP {self.status}")

    async def read(self):
        return self._body


class DummySession:
    def __init__(self, response=None, error=None, **kwargs):
        self.response = response
        self.error = error
        self.kwargs = kwargs
        self.calls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def get(self, url, headers=None):
        self.calls.append((url, headers))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def patch_session(monkeypatch):
    sessions = []

    def install(response=None, error=None):
        def factory(**kwargs):
            session = DummySession(response=response, error=error, **kwargs)
            sessions.append(session)
            return session

        monkeypatch.setattr("mail_composer.sources.aiohttp.ClientSession", factory)
        return sessions

    return install


def test_bytes_source_is_a_byte_source():
    source = bytes_source(b"payload")
    assert isinstance(source, ByteSource)
    assert source.read(3) == b"pay"
    assert source.read() == b"load"
    assert source.read(10) == b""


def test_base64_source_decodes_content():
    encoded = base64.b64encode(b"hello world").decode()
    assert base64_source(encoded).read() == b"hello world"


def test_base64_source_tolerates_missing_padding():
    assert base64_source("aGVsbG8").read() == b"hello"


def test_base64_source_rejects_invalid_input():
    with pytest.raises(ValueError):
        base64_source("not base64 !!")


def test_file_source_reads_in_chunks_and_closes(tmp_path):
    target = tmp_path / "doc.txt"
    target.write_bytes(b"0123456789")

    source = FileSource(target)
    assert isinstance(source, ByteSource)
    assert source.read(4) == b"0123"
    assert source.read(4) == b"4567"
    assert source.read(4) == b"89"
    assert source.read(4) == b""
    assert source._fh is None


def test_file_source_resolves_relative_to_base_dir(tmp_path):
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "a.bin").write_bytes(b"abc")
    source = FileSource("sub/a.bin", base_dir=tmp_path)
    assert source.read() == b"abc"


def test_file_source_rejects_path_traversal(tmp_path):
    base = tmp_path / "base"
    base.mkdir()
    (tmp_path / "secret.txt").write_text("nope")
    with pytest.raises(ValueError, match="Path traversal"):
        FileSource("../secret.txt", base_dir=base)


def test_file_source_rejects_relative_path_without_base_dir():
    with pytest.raises(ValueError):
        FileSource("relative.txt")


def test_file_source_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        FileSource(tmp_path / "missing.txt")


def test_auth_headers():
    assert auth_headers(None) == {}
    assert auth_headers({"method": "none"}) == {}
    assert auth_headers({"method": "bearer", "token": "abc"}) == {"Authorization": "Bearer abc"}
    expected = base64.b64encode(b"user:pw").decode()
    assert auth_headers({"method": "basic", "user": "user", "password": "pw"}) == {
        "Authorization": f"Basic {expected}"
    }


@pytest.mark.asyncio
async def test_fetch_url_source_downloads_content(patch_session):
    sessions = patch_session(response=DummyResponse(body=b"remote bytes"))
    source = await fetch_url_source(
        "https://files.example.com/a.pdf",
        auth_config={"method": "bearer", "token": "tok"},
        timeout=5,
    )
    assert source.read() == b"remote bytes"

    (session,) = sessions
    assert session.calls == [("https://files.example.com/a.pdf", {"Authorization": "Bearer tok"})]
    assert session.kwargs["timeout"].total == 5


@pytest.mark.asyncio
async def test_fetch_url_source_wraps_http_errors(patch_session):
    patch_session(response=DummyResponse(status=404))
    with pytest.raises(StreamReadError) as excinfo:
        await fetch_url_source("https://files.example.com/missing")
    assert excinfo.value.filename == "https://files.example.com/missing"


@pytest.mark.asyncio
async def test_fetch_url_source_wraps_connection_errors(patch_session):
    patch_session(error=aiohttp.ClientConnectionError("refused"))
    with pytest.raises(StreamReadError):
        await fetch_url_source("https://unreachable.example.com/a")


class FailingHandle:
    def __init__(self):
        self.closed = False

    def read(self, size=-1):
        raise OSError("I/O error")

    def close(self):
        self.closed = True


def test_file_source_closes_handle_when_read_fails(tmp_path):
    target = tmp_path / "doc.txt"
    target.write_bytes(b"0123456789")
    source = FileSource(target)
    assert source.read(2) == b"01"

    real_handle = source._fh
    failing = FailingHandle()
    source._fh = failing
    real_handle.close()

    with pytest.raises(OSError):
        source.read(4)
    assert failing.closed is True
    assert source._fh is None


def test_file_source_context_manager_closes_handle(tmp_path):
    target = tmp_path / "doc.txt"
    target.write_bytes(b"0123456789")
    with FileSource(target) as source:
        assert source.read(3) == b"012"
        assert source._fh is not None
    assert source._fh is None
