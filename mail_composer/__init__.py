# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""MIME email composition with pooled, reusable messages.

This package renders complete RFC 5322/2045 messages, ready for an SMTP
``DATA`` command or a raw-message HTTP API:

- Header sanitizing and RFC 1342 Q-encoding of non-ASCII values
- Plain/HTML alternative bodies in quoted-printable
- Streaming base64 attachments, inline (Content-ID) or regular
- Thread-safe message and buffer pools for cheap reuse under load
- SMTP (aiosmtplib) and HTTP API (aiohttp) transports
- Prometheus metrics for renders and deliveries

Example:
    Rendering a message without a transport::

        from mail_composer import MessagePool

        pool = MessagePool()
        with pool.acquire() as msg:
            msg.set_from("a@example.com")
            msg.set_to("b@example.com")
            msg.set_subject("Hi")
            msg.plain.set("hello")
            raw = msg.render()

Authors:
    Softwell S.r.l.
"""

from .buffers import BodyPart, BufferPool
from .composer import MailComposer
from .config import ComposerConfig, HttpApiConfig, PoolConfig, SmtpConfig, load_config
from .encoding import q_encode, sanitize
from .errors import ComposerError, EncodingError, MessageReleasedError, StreamReadError, TransportError
from .logger import configure_logging, get_logger
from .message import Attachment, Envelope, Message, MessagePool, default_pool
from .mime import MimeEncoder
from .sources import ByteSource, FileSource, base64_source, bytes_source, fetch_url_source
from .transport import Credentials, HttpApiTransport, SmtpTransport, Transport

__all__ = [
    "Attachment",
    "BodyPart",
    "BufferPool",
    "ByteSource",
    "ComposerConfig",
    "ComposerError",
    "Credentials",
    "EncodingError",
    "Envelope",
    "FileSource",
    "HttpApiConfig",
    "HttpApiTransport",
    "MailComposer",
    "Message",
    "MessagePool",
    "MessageReleasedError",
    "MimeEncoder",
    "PoolConfig",
    "SmtpConfig",
    "SmtpTransport",
    "StreamReadError",
    "Transport",
    "TransportError",
    "base64_source",
    "bytes_source",
    "configure_logging",
    "default_pool",
    "fetch_url_source",
    "get_logger",
    "load_config",
    "q_encode",
    "sanitize",
]
