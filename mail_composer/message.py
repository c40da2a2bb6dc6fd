# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Pooled message model.

A ``Message`` accumulates everything needed to render one email: envelope
addresses, subject, custom headers, plain and HTML bodies and an ordered list
of attachments. Messages are borrowed from a ``MessagePool`` and must be
released once the owning send completes; release wipes every field and hands
the body buffers back to the ``BufferPool`` so the slot can serve an unrelated
message later.

All setters sanitize their input on assignment. Addresses are stripped of
CR/LF, while subject, sender name and custom header values are additionally
Q-encoded when they contain non-ASCII text. Blank addresses are dropped
without error so templated recipient lists can be passed through untouched.

Example:
    Building and rendering a message::

        pool = MessagePool()
        with pool.acquire() as msg:
            msg.set_from("a@example.com")
            msg.set_to("b@example.com")
            msg.set_subject("Hi")
            msg.plain.set("hello")
            raw = msg.render()
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, BinaryIO

from .buffers import DEFAULT_MAX_BUFFERS, BodyPart, BufferPool
from .encoding import format_date, q_encode, sanitize
from .errors import MessageReleasedError
from .mime import MimeEncoder
from .sources import ByteSource

DEFAULT_MAX_MESSAGES = 256


@dataclass
class Attachment:
    """One attachment part, written in the order it was added.

    The message does not own ``source``: the caller keeps it readable until
    rendering has finished.
    """

    name: str
    source: ByteSource
    inline: bool = False
    explicit_content_type: bool = False
    content_type: str = ""


@dataclass(frozen=True)
class Envelope:
    """Transport-level addressing derived from a message."""

    sender: str
    recipients: tuple[str, ...]
    credentials: Any = None


def _clean_addresses(addrs: tuple[str, ...]) -> list[str]:
    cleaned = []
    for addr in addrs:
        trimmed = sanitize(addr)
        if not trimmed:
            continue
        cleaned.append(trimmed)
    return cleaned


class Message:
    """Mutable email aggregate owned by a single caller between acquire and release."""

    def __init__(self, pool: MessagePool):
        self._pool = pool
        self._plain: BodyPart | None = None
        self._html: BodyPart | None = None
        self._released = True
        self.credentials: Any = None
        self.headers: dict[str, str] = {}
        self.attachments: list[Attachment] = []
        self.to_addrs: list[str] = []
        self.cc_addrs: list[str] = []
        self.bcc_addrs: list[str] = []
        self.subject = ""
        self.from_addr = ""
        self.from_name = ""
        self.reply_to = ""
        self.date = ""
        self.write_bcc_header = False

    # Lifecycle

    def _activate(self, plain: BodyPart, html: BodyPart) -> None:
        self._plain = plain
        self._html = html
        self.headers = {}
        self._released = False

    def _reset(self) -> tuple[BodyPart | None, BodyPart | None]:
        buffers = (self._plain, self._html)
        self._plain = None
        self._html = None
        self._released = True
        self.credentials = None
        self.headers = {}
        self.attachments = []
        self.to_addrs = []
        self.cc_addrs = []
        self.bcc_addrs = []
        self.subject = ""
        self.from_addr = ""
        self.from_name = ""
        self.reply_to = ""
        self.date = ""
        self.write_bcc_header = False
        return buffers

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Reset the message and return it, with its buffers, to its pool.

        The previous owner must not touch the message afterwards. Releasing an
        already released message does nothing.
        """
        self._pool.release(self)

    def __enter__(self) -> Message:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def _check_active(self) -> None:
        if self._released:
            raise MessageReleasedError("message has been released to its pool")

    # Bodies

    @property
    def plain(self) -> BodyPart:
        """Buffer holding the text/plain body."""
        if self._plain is None:
            raise MessageReleasedError("message has been released to its pool")
        return self._plain

    @property
    def html(self) -> BodyPart:
        """Buffer holding the text/html body."""
        if self._html is None:
            raise MessageReleasedError("message has been released to its pool")
        return self._html

    # Setters

    def set_to(self, *addrs: str) -> None:
        """Replace the visible recipient list."""
        self._check_active()
        self.to_addrs = _clean_addresses(addrs)

    def set_cc(self, *addrs: str) -> None:
        """Replace the carbon copy recipient list."""
        self._check_active()
        self.cc_addrs = _clean_addresses(addrs)

    def set_bcc(self, *addrs: str) -> None:
        """Replace the blind carbon copy recipient list.

        BCC addresses always reach the envelope but are only written to the
        header block when ``set_write_bcc_header(True)`` was called.
        """
        self._check_active()
        self.bcc_addrs = _clean_addresses(addrs)

    def set_write_bcc_header(self, should_write: bool) -> None:
        """Choose whether BCC addresses appear in the rendered headers.

        Defaults to False. HTTP mail APIs usually need the header to learn the
        blind recipients, while some SMTP servers relay it verbatim and expose
        the BCC list to every recipient.
        """
        self._check_active()
        self.write_bcc_header = should_write

    def set_from(self, addr: str) -> None:
        """Set the sender address used in the From header and the envelope.

        Args:
            addr: Bare address, e.g. ``noreply@example.com``.
        """
        self._check_active()
        self.from_addr = sanitize(addr)

    def set_from_name(self, name: str) -> None:
        """Set the display name written before the From address.

        Args:
            name: Display name; Q-encoded when it is not plain ASCII.
        """
        self._check_active()
        self.from_name = q_encode(sanitize(name))

    def set_reply_to(self, addr: str) -> None:
        """Set the Reply-To address; an empty value omits the header."""
        self._check_active()
        self.reply_to = sanitize(addr)

    def set_subject(self, subject: str) -> None:
        """Set the Subject header.

        Args:
            subject: Subject text; Q-encoded when it is not plain ASCII.
        """
        self._check_active()
        self.subject = q_encode(sanitize(subject))

    def add_header(self, name: str, value: str) -> None:
        """Set an arbitrary header, replacing a previous value for ``name``.

        Validate user input before passing it here: a custom header can shadow
        the standard ones written above it.
        """
        self._check_active()
        self.headers[sanitize(name)] = q_encode(sanitize(value))

    def attach(self, name: str, source: ByteSource) -> None:
        """Attach ``source`` as a downloadable file named ``name``."""
        self._attach(name, source, inline=False, content_type=None)

    def attach_with_mime_type(self, name: str, source: ByteSource, mime_type: str) -> None:
        """Attach ``source`` with an explicit Content-Type instead of guessing it from ``name``."""
        self._attach(name, source, inline=False, content_type=mime_type)

    def attach_inline(self, cid: str, source: ByteSource) -> None:
        """Attach ``source`` inline, addressable from HTML as ``cid:<cid>``."""
        self._attach(cid, source, inline=True, content_type=None)

    def attach_inline_with_mime_type(self, cid: str, source: ByteSource, mime_type: str) -> None:
        """Inline variant of ``attach_with_mime_type``."""
        self._attach(cid, source, inline=True, content_type=mime_type)

    def _attach(self, name: str, source: ByteSource, *, inline: bool, content_type: str | None) -> None:
        self._check_active()
        explicit = content_type is not None
        self.attachments.append(
            Attachment(
                name=sanitize(name),
                source=source,
                inline=inline,
                explicit_content_type=explicit,
                content_type=sanitize(content_type) if explicit else "",
            )
        )

    # Rendering

    def render(self) -> bytes:
        """Stamp the current date and return the complete MIME message.

        Each call uses a fresh timestamp and fresh boundaries. Attachment
        sources are consumed, so a second render needs new sources.

        Raises:
            EncodingError: Boundary generation or multipart framing failed.
            StreamReadError: An attachment source failed while being read.
        """
        return self._pool.encoder.render(self._stamped())

    def render_to(self, out: BinaryIO) -> None:
        """Stream the MIME message into ``out``; discard ``out`` on error."""
        self._pool.encoder.encode(self._stamped(), out)

    def _stamped(self) -> Message:
        self._check_active()
        self.date = format_date()
        return self

    # Envelope

    def recipients(self) -> list[str]:
        """Return to, cc and bcc addresses in that order, for RCPT TO."""
        return [*self.to_addrs, *self.cc_addrs, *self.bcc_addrs]

    def envelope(self) -> Envelope:
        return Envelope(
            sender=self.from_addr,
            recipients=tuple(self.recipients()),
            credentials=self.credentials,
        )

    def describe(self) -> str:
        """Return a redacted summary suitable for logs.

        Attachment contents and credentials are never included.
        """
        names = [att.name for att in self.attachments]
        custom = "".join(f"{k}: {v!r}, " for k, v in self.headers.items())
        return (
            f"Message(date={self.date!r}, from={self.from_addr!r}, "
            f"from_name={self.from_name!r}, "
            f"html={len(self._html) if self._html is not None else 0} bytes, "
            f"plain={len(self._plain) if self._plain is not None else 0} bytes, "
            f"to={self.to_addrs}, cc={self.cc_addrs}, bcc={self.bcc_addrs}, "
            f"subject={self.subject!r}, {custom}"
            f"attachments ({len(names)}): {names}, "
            f"auth set: {self.credentials is not None})"
        )

    __str__ = describe


class MessagePool:
    """Thread-safe pool of reusable ``Message`` instances.

    Each pool owns (or is given) a ``BufferPool`` for the body buffers and a
    ``MimeEncoder`` used by ``Message.render``. Tests and embedding
    applications may build isolated pools; ``default_pool()`` returns the
    process-wide instance.

    Attributes:
        buffers: Pool providing the plain and HTML body buffers.
        encoder: Encoder used to render messages from this pool.
        max_size: Maximum number of idle messages retained.
    """

    def __init__(
        self,
        buffers: BufferPool | None = None,
        encoder: MimeEncoder | None = None,
        max_size: int = DEFAULT_MAX_MESSAGES,
    ):
        self.buffers = buffers or BufferPool()
        self.encoder = encoder or MimeEncoder()
        self.max_size = max_size
        self._free: list[Message] = []
        self._lock = threading.Lock()
        self.in_use = 0

    def acquire(self) -> Message:
        """Return an empty message with fresh body buffers and header map."""
        with self._lock:
            msg = self._free.pop() if self._free else None
            self.in_use += 1
        if msg is None:
            msg = Message(self)
        msg._activate(self.buffers.acquire(), self.buffers.acquire())
        return msg

    def release(self, msg: Message) -> None:
        """Reset ``msg`` and return it and its buffers to the pools."""
        if msg.released:
            return
        plain, html = msg._reset()
        for part in (plain, html):
            if part is not None:
                self.buffers.release(part)
        with self._lock:
            self.in_use -= 1
            if len(self._free) < self.max_size:
                self._free.append(msg)


_default_pool: MessagePool | None = None
_default_pool_lock = threading.Lock()


def default_pool() -> MessagePool:
    """Return the process-wide message pool, creating it on first use.

    The instance lives for the whole process and is shared by every
    ``MailComposer`` built without an explicit pool.
    """
    global _default_pool
    with _default_pool_lock:
        if _default_pool is None:
            _default_pool = MessagePool(BufferPool(DEFAULT_MAX_BUFFERS))
        return _default_pool
