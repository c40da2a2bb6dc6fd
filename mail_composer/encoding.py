# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Header-safe value helpers and content-transfer encodings.

Header values are sanitized and encoded when they are assigned to a message,
never at render time, so a stored field is always safe to write verbatim:

- ``sanitize`` strips every CR and LF, closing the header injection surface.
- ``q_encode`` wraps non-ASCII text in RFC 1342 ``=?UTF-8?q?...?=`` words.

``fold_header`` folds long header lines at write time; folding whitespace is
added only in the rendered output, never in stored values.

Bodies and attachments are encoded while rendering:

- ``qp_encode`` produces RFC 2045 quoted-printable text with CRLF endings.
- ``base64_encode_stream`` folds base64 output at 76 columns with CRLF.
"""

from __future__ import annotations

import base64
import email.quoprimime
import email.utils
from collections.abc import Iterable, Iterator
from datetime import datetime

CRLF = "\r\n"

# RFC 2047 caps an encoded word at 75 characters.
MAX_ENCODED_WORD = 75
_WORD_PREFIX = "=?UTF-8?q?"
_WORD_SUFFIX = "?="
_WORD_ROOM = MAX_ENCODED_WORD - len(_WORD_PREFIX) - len(_WORD_SUFFIX)

QP_LINE_LENGTH = 76
# RFC 5322 recommended header line length, excluding CRLF.
HEADER_LINE_LENGTH = 78
# 57 input bytes encode to exactly one 76-character base64 line.
BASE64_LINE_BYTES = 57

_STRIP_CRLF = str.maketrans("", "", "\r\n")


def sanitize(value: str) -> str:
    """Remove every CR and LF character from ``value``."""
    return value.translate(_STRIP_CRLF)


def fold_header(name: str, value: str) -> str:
    """Return the CRLF terminated header line ``name: value``, folded if long.

    Lines longer than 78 characters are folded at spaces, including the one
    after the colon, by inserting CRLF before the space; unfolding restores
    ``value`` exactly.
    Encoded words are never split; a single word longer than the limit stays
    on its own line.
    """
    lines = []
    current = f"{name}:"
    for word in value.split(" "):
        if word and len(current) + 1 + len(word) > HEADER_LINE_LENGTH:
            lines.append(current)
            current = " " + word
        else:
            current += " " + word
    lines.append(current)
    return CRLF.join(lines) + CRLF


def _needs_encoding(value: str) -> bool:
    for ch in value:
        if (ch < " " or ch > "~") and ch != "\t":
            return True
    return False


def q_encode(value: str) -> str:
    """Encode ``value`` as RFC 1342 Q encoded words when it is not plain ASCII.

    Printable ASCII input is returned unchanged. Otherwise the UTF-8 bytes are
    Q-encoded and split into space separated words of at most 75 characters,
    never splitting a multi-byte character across two words.

    Args:
        value: Header text to encode.

    Returns:
        The header-safe representation of ``value``.
    """
    if not _needs_encoding(value):
        return value

    words: list[str] = []
    current = bytearray()
    current_len = 0
    for ch in value:
        raw = ch.encode("utf-8")
        size = email.quoprimime.header_length(raw)
        if current and current_len + size > _WORD_ROOM:
            words.append(email.quoprimime.header_encode(bytes(current), charset="UTF-8"))
            current.clear()
            current_len = 0
        current += raw
        current_len += size
    if current:
        words.append(email.quoprimime.header_encode(bytes(current), charset="UTF-8"))
    return " ".join(words)


def qp_encode(data: bytes) -> bytes:
    """Quoted-printable encode ``data`` for a text body part.

    Lines are at most 76 characters including the trailing ``=`` of a soft
    break, ``=`` is escaped as ``=3D`` and line endings are normalised to CRLF.
    """
    if not data:
        return b""
    # latin-1 maps every byte to one code point so each octet is quoted alone.
    encoded = email.quoprimime.body_encode(
        data.decode("latin-1"), maxlinelen=QP_LINE_LENGTH, eol=CRLF
    )
    return encoded.encode("ascii")


def base64_encode_stream(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Base64 encode a stream of byte chunks into CRLF terminated 76-column lines.

    Input is regrouped on 57-byte boundaries so every yielded block holds only
    complete lines, whatever the size of the incoming chunks.
    """
    pending = bytearray()
    for chunk in chunks:
        pending += chunk
        cut = len(pending) - len(pending) % BASE64_LINE_BYTES
        if cut:
            yield base64.encodebytes(bytes(pending[:cut])).replace(b"\n", b"\r\n")
            del pending[:cut]
    if pending:
        yield base64.encodebytes(bytes(pending)).replace(b"\n", b"\r\n")


def format_date(when: datetime | None = None) -> str:
    """Format ``when`` (default: now) as an RFC 1123Z ``Date`` header value."""
    if when is None:
        return email.utils.formatdate(localtime=True)
    if when.tzinfo is None:
        when = when.astimezone()
    return email.utils.format_datetime(when)
