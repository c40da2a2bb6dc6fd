# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Attachment byte sources.

The encoder only needs an object exposing ``read(size) -> bytes`` that returns
``b""`` once exhausted; any file object, ``io.BytesIO`` or socket reader
qualifies. This module adds helpers for the usual origins:

- ``bytes_source``: in-memory payload
- ``base64_source``: inline base64 text, as sent by API clients
- ``FileSource``: local file with path traversal protection
- ``fetch_url_source``: HTTP(S) download through aiohttp

Every source is read exactly once by a render. Sending the same content in
two renders requires two sources.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
from pathlib import Path
from typing import Protocol, runtime_checkable

import aiohttp

from .errors import StreamReadError


@runtime_checkable
class ByteSource(Protocol):
    """Readable stream of attachment bytes."""

    def read(self, size: int = -1, /) -> bytes:
        """Return up to ``size`` bytes, or ``b""`` at end of stream."""
        ...


def bytes_source(data: bytes) -> io.BytesIO:
    return io.BytesIO(data)


def base64_source(content: str) -> io.BytesIO:
    """Decode inline base64 ``content`` into a byte source.

    Missing padding is tolerated.

    Raises:
        ValueError: If ``content`` is not valid base64.
    """
    content = content.strip()
    padding_needed = 4 - (len(content) % 4)
    if padding_needed != 4:
        content += "=" * padding_needed
    try:
        return io.BytesIO(base64.b64decode(content, validate=True))
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 content: {e}") from e


class FileSource:
    """Local file opened on first read and closed once exhausted.

    Relative paths are resolved against ``base_dir``; when ``base_dir`` is set
    the resolved path must stay inside it.
    """

    def __init__(self, path: str | Path, base_dir: str | Path | None = None):
        self._base_dir = Path(base_dir).resolve() if base_dir else None
        self.path = self._resolve_and_validate(Path(path))
        self._fh: io.BufferedReader | None = None

    def _resolve_and_validate(self, path: Path) -> Path:
        if path.is_absolute():
            resolved = path.resolve()
        elif self._base_dir:
            resolved = (self._base_dir / path).resolve()
        else:
            raise ValueError(f"Relative path '{path}' not allowed without base_dir")

        if self._base_dir:
            try:
                resolved.relative_to(self._base_dir)
            except ValueError:
                raise ValueError(
                    f"Path traversal detected: '{path}' resolves outside base directory"
                ) from None

        if not resolved.is_file():
            raise FileNotFoundError(f"File not found: {resolved}")
        return resolved

    def read(self, size: int = -1, /) -> bytes:
        """Return up to ``size`` bytes, closing the file at EOF or on error."""
        if self._fh is None:
            self._fh = self.path.open("rb")
        try:
            data = self._fh.read(size)
        except OSError:
            self.close()
            raise
        if not data or size < 0:
            self.close()
        return data

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> FileSource:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def auth_headers(auth_config: dict[str, str] | None) -> dict[str, str]:
    """Build an ``Authorization`` header from a ``{"method": ...}`` config.

    Supported methods are ``bearer`` (``token``) and ``basic`` (``user`` and
    ``password``); anything else yields no header.
    """
    if not auth_config:
        return {}
    method = auth_config.get("method", "none")

    if method == "bearer":
        token = auth_config.get("token", "")
        return {"Authorization": f"Bearer {token}"}

    if method == "basic":
        user = auth_config.get("user", "")
        password = auth_config.get("password", "")
        credentials = base64.b64encode(f"{user}:{password}".encode()).decode()
        return {"Authorization": f"Basic {credentials}"}

    return {}


async def fetch_url_source(
    url: str,
    auth_config: dict[str, str] | None = None,
    timeout: float = 30.0,
) -> io.BytesIO:
    """Download ``url`` into an in-memory byte source.

    The download completes before rendering starts, so a slow server cannot
    stall the synchronous encoder.

    Raises:
        StreamReadError: The request failed or returned an error status.
    """
    headers = auth_headers(auth_config)
    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
            async with session.get(url, headers=headers) as response:
                response.raise_for_status()
                return io.BytesIO(await response.read())
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise StreamReadError(f"Attachment download failed for {url}: {e}", filename=url) from e
