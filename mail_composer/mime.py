# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""MIME rendering for composed messages.

The encoder writes a message as a ``multipart/mixed`` envelope whose first
part is a ``multipart/alternative`` body (quoted-printable text/plain and
text/html) followed by one base64 part per attachment:

    From / Mime-Version / Date / Reply-To / Subject / To / CC / [BCC] / custom
    Content-Type: multipart/mixed; boundary=<mixed>
      --<mixed>  multipart/alternative; boundary=<alt>
          --<alt>  text/plain  (quoted-printable)
          --<alt>  text/html   (quoted-printable)
          --<alt>--
      --<mixed>  attachment or inline part (base64)
      --<mixed>--

Both boundaries are 60 random hex characters drawn from the OS entropy
source, so content supplied by a third party cannot guess a delimiter and
smuggle extra parts into the message.

Example:
    Rendering a message from a pool::

        encoder = MimeEncoder()
        raw = encoder.render(message)
"""

from __future__ import annotations

import io
import mimetypes
import secrets
from collections.abc import Iterator
from typing import TYPE_CHECKING, BinaryIO

from .encoding import BASE64_LINE_BYTES, base64_encode_stream, fold_header, qp_encode
from .errors import EncodingError, StreamReadError
from .logger import get_logger

if TYPE_CHECKING:
    from .message import Attachment, Message

BOUNDARY_BYTES = 30
DEFAULT_CHUNK_SIZE = BASE64_LINE_BYTES * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"

# RFC 2046 bchars, excluding space which may not end a boundary.
_BCHARS = frozenset(
    "0123456789"
    "abcdefghijklmnopqrstuvwxyz"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "'()+_,-./:=? "
)

logger = get_logger("MimeEncoder")


def random_boundary() -> str:
    """Return 30 bytes of OS randomness as a 60 character hex boundary.

    Raises:
        EncodingError: The entropy source is unavailable.
    """
    try:
        return secrets.token_hex(BOUNDARY_BYTES)
    except (OSError, NotImplementedError) as e:
        raise EncodingError(f"Unable to generate MIME boundary: {e}") from e


def guess_content_type(filename: str) -> str:
    """Determine the MIME type of ``filename`` from its extension."""
    mt, _ = mimetypes.guess_type(filename, strict=False)
    return mt or DEFAULT_CONTENT_TYPE


def _quote_param(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class MultipartWriter:
    """Writes the delimiters and part headers of one multipart body.

    Part headers are written sorted by name. The first delimiter opens the
    body directly, later ones are preceded by CRLF, and ``close`` emits the
    closing delimiter.
    """

    def __init__(self, out: BinaryIO, boundary: str):
        if not 1 <= len(boundary) <= 70:
            raise EncodingError(f"Invalid boundary length: {len(boundary)}")
        if boundary.endswith(" ") or not set(boundary) <= _BCHARS:
            raise EncodingError(f"Invalid boundary character in {boundary!r}")
        self._out = out
        self.boundary = boundary
        self._parts = 0
        self._closed = False

    def create_part(self, headers: dict[str, str]) -> None:
        """Write the delimiter and header block of a new part.

        Args:
            headers: Part headers, written sorted by name.

        Raises:
            EncodingError: The writer has already been closed.
        """
        if self._closed:
            raise EncodingError("multipart writer is already closed")
        lines = [f"\r\n--{self.boundary}\r\n" if self._parts else f"--{self.boundary}\r\n"]
        for key in sorted(headers):
            lines.append(f"{key}: {headers[key]}\r\n")
        lines.append("\r\n")
        self._out.write("".join(lines).encode("utf-8"))
        self._parts += 1

    def write(self, data: bytes) -> None:
        """Append ``data`` to the body of the current part."""
        if self._closed:
            raise EncodingError("multipart writer is already closed")
        self._out.write(data)

    def close(self) -> None:
        """Write the closing delimiter; the writer accepts nothing afterwards."""
        if self._closed:
            raise EncodingError("multipart writer is already closed")
        prefix = "\r\n" if self._parts else ""
        self._out.write(f"{prefix}--{self.boundary}--\r\n".encode("ascii"))
        self._closed = True


class MimeEncoder:
    """Renders ``Message`` instances to RFC 2045 byte streams.

    The encoder holds no per-message state and may be shared between threads.

    Attributes:
        chunk_size: Bytes requested per ``read`` from an attachment source.
            Rounded down to a multiple of 57 so each chunk encodes to whole
            base64 lines.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = max(BASE64_LINE_BYTES, chunk_size - chunk_size % BASE64_LINE_BYTES)

    def render(self, message: Message) -> bytes:
        """Return the complete MIME message as bytes."""
        buf = io.BytesIO()
        self.encode(message, buf)
        return buf.getvalue()

    def encode(self, message: Message, out: BinaryIO) -> None:
        """Write ``message`` to ``out`` using two fresh random boundaries.

        Raises:
            EncodingError: Boundary generation or multipart framing failed.
            StreamReadError: An attachment source failed while being read.
        """
        self.encode_with_boundaries(message, out, random_boundary(), random_boundary())

    def encode_with_boundaries(self, message: Message, out: BinaryIO, mixed_boundary: str, alt_boundary: str) -> None:
        """Write ``message`` to ``out`` with the given boundaries.

        Output written before an error is not rolled back.
        """
        mixed = MultipartWriter(out, mixed_boundary)
        # Validated up front so a bad boundary fails before any byte is written.
        MultipartWriter(io.BytesIO(), alt_boundary)

        self.write_headers(message, out)
        out.write(f'Content-Type: multipart/mixed;\r\n\tboundary="{mixed.boundary}"; charset=UTF-8\r\n\r\n'.encode("ascii"))

        self.write_body(message, mixed, alt_boundary)
        for attachment in message.attachments:
            self.write_attachment(mixed, attachment)

        mixed.close()
        logger.debug(
            "Rendered message for %d recipients with %d attachments",
            len(message.to_addrs) + len(message.cc_addrs) + len(message.bcc_addrs),
            len(message.attachments),
        )

    def write_headers(self, message: Message, out: BinaryIO) -> None:
        """Write the top-level header block in its fixed order.

        Custom headers come last, in no guaranteed order.
        """
        lines = [self.from_header(message), "Mime-Version: 1.0\r\n", f"Date: {message.date}\r\n"]
        if message.reply_to:
            lines.append(f"Reply-To: {message.reply_to}\r\n")
        lines.append(fold_header("Subject", message.subject))
        for to in message.to_addrs:
            lines.append(f"To: {to}\r\n")
        for cc in message.cc_addrs:
            lines.append(f"CC: {cc}\r\n")
        if message.write_bcc_header:
            for bcc in message.bcc_addrs:
                lines.append(f"BCC: {bcc}\r\n")
        for name, value in message.headers.items():
            lines.append(fold_header(name, value))
        out.write("".join(lines).encode("utf-8"))

    @staticmethod
    def from_header(message: Message) -> str:
        """Return the From line, ``name <addr>`` when a display name is set."""
        if not message.from_name:
            return f"From: {message.from_addr}\r\n"
        return fold_header("From", f"{message.from_name} <{message.from_addr}>")

    def write_body(self, message: Message, mixed: MultipartWriter, alt_boundary: str) -> None:
        """Write the alternative part holding the plain and HTML bodies.

        Empty bodies are skipped; when both are empty no alternative part is
        written at all.
        """
        plain = message.plain.getvalue()
        html = message.html.getvalue()
        if not plain and not html:
            return

        mixed.create_part({"Content-Type": f'multipart/alternative;\r\n\tboundary="{alt_boundary}"'})
        alt = MultipartWriter(mixed, alt_boundary)
        for ctype, data in (("text/plain", plain), ("text/html", html)):
            if not data:
                continue
            alt.create_part({
                "Content-Type": f"{ctype}; charset=UTF-8",
                "Content-Transfer-Encoding": "quoted-printable",
            })
            alt.write(qp_encode(data))
        alt.close()

    def write_attachment(self, mixed: MultipartWriter, attachment: Attachment) -> None:
        """Write one attachment part, streaming its source through base64."""
        if attachment.explicit_content_type:
            ctype = attachment.content_type
        else:
            ctype = guess_content_type(attachment.name)
        filename = _quote_param(attachment.name)

        headers = {
            "Content-Type": ctype,
            "Content-Transfer-Encoding": "base64",
        }
        if attachment.inline:
            headers["Content-Disposition"] = f'inline; filename="{filename}"'
            headers["Content-ID"] = f"<{attachment.name}>"
        else:
            headers["Content-Disposition"] = f'attachment; filename="{filename}"'

        mixed.create_part(headers)
        for block in base64_encode_stream(self._read_chunks(attachment)):
            mixed.write(block)

    def _read_chunks(self, attachment: Attachment) -> Iterator[bytes]:
        source = attachment.source
        while True:
            try:
                chunk = source.read(self.chunk_size)
            except Exception as e:
                raise StreamReadError(
                    f"Failed to read attachment {attachment.name!r}: {e}",
                    filename=attachment.name,
                ) from e
            if not chunk:
                return
            yield chunk
