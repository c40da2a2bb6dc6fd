# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""High level entry point tying pools, encoder and transport together.

``MailComposer`` hands out pooled messages, renders them and passes the bytes
to a transport. ``send`` always releases the message, whether delivery
succeeded or not, so a message must not be used after it has been sent.

Example:
    Composing and sending::

        composer = MailComposer(
            SmtpTransport(SmtpConfig(host="smtp.example.com", port=587, use_tls=True)),
            credentials=Credentials("mailer", "secret"),
        )
        msg = composer.new_mail()
        msg.set_from("noreply@example.com")
        msg.set_to("user@example.com")
        msg.set_subject("Welcome")
        msg.html.set("<p>Hello</p>")
        await composer.send(msg)

    Rendering for an API that is not driven through a transport::

        raw = composer.render(msg)
        msg.release()
"""

from __future__ import annotations

from typing import Any

from .buffers import BufferPool
from .config import ComposerConfig
from .errors import ComposerError, TransportError
from .logger import get_logger
from .message import Message, MessagePool, default_pool
from .mime import MimeEncoder
from .prometheus import ComposerMetrics
from .transport import HttpApiTransport, SmtpTransport, Transport


class MailComposer:
    """Factory and sender for pooled messages.

    Attributes:
        transport: Delivery backend, or None for render-only use.
        credentials: Optional credentials attached to every new message's
            envelope; transports fall back to their own configuration.
        pool: Message pool, the process-wide one unless injected.
        metrics: Prometheus counters for renders and deliveries.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        credentials: Any = None,
        pool: MessagePool | None = None,
        metrics: ComposerMetrics | None = None,
    ):
        self.transport = transport
        self.credentials = credentials
        self.pool = pool or default_pool()
        self.metrics = metrics or ComposerMetrics()
        self.logger = get_logger("MailComposer")

    @classmethod
    def from_config(cls, config: ComposerConfig, *, transport: str = "smtp", **kwargs: Any) -> MailComposer:
        """Build a composer with an isolated pool sized from ``config``.

        Args:
            config: Loaded configuration.
            transport: ``"smtp"``, ``"http_api"`` or ``"none"``.
            **kwargs: Forwarded to the constructor (credentials, metrics).

        Raises:
            ValueError: Unknown transport name or incomplete transport config.
        """
        pool = MessagePool(
            buffers=BufferPool(config.pool.max_buffers),
            encoder=MimeEncoder(config.pool.read_chunk_size),
            max_size=config.pool.max_messages,
        )
        if transport == "smtp":
            backend: Transport | None = SmtpTransport(config.smtp)
        elif transport == "http_api":
            backend = HttpApiTransport(config.http_api)
        elif transport == "none":
            backend = None
        else:
            raise ValueError(f"Unknown transport: {transport}")
        return cls(backend, pool=pool, **kwargs)

    def new_mail(self) -> Message:
        """Acquire an empty message bound to this composer's credentials."""
        msg = self.pool.acquire()
        msg.credentials = self.credentials
        self.metrics.set_in_use(self.pool.in_use)
        return msg

    def render(self, message: Message) -> bytes:
        """Render ``message`` to MIME bytes, counting successes and failures."""
        try:
            data = message.render()
        except ComposerError as exc:
            self.metrics.inc_render_error(type(exc).__name__)
            self.logger.error("Failed to render %s: %s", message.describe(), exc)
            raise
        self.metrics.inc_rendered()
        self.logger.debug("Rendered %d bytes for %s", len(data), message.describe())
        return data

    async def send(self, message: Message) -> None:
        """Render ``message``, deliver it once and release it to the pool.

        Raises:
            EncodingError: Rendering failed; nothing was sent.
            StreamReadError: An attachment could not be read; nothing was sent.
            TransportError: No transport is configured or delivery failed.
        """
        try:
            if self.transport is None:
                raise TransportError("No transport configured", transport="none")
            data = self.render(message)
            try:
                await self.transport.send(message.envelope(), data)
            except TransportError as exc:
                self.metrics.inc_send_error(self.transport.name)
                self.logger.error("Delivery failed for %s: %s", message.describe(), exc)
                raise
            self.metrics.inc_sent(self.transport.name)
        finally:
            message.release()
            self.metrics.set_in_use(self.pool.in_use)

    def describe(self) -> str:
        """Return a redacted description; credentials are never included."""
        transport = self.transport.describe() if self.transport is not None else "none"
        return f"MailComposer(transport={transport}, auth set: {self.credentials is not None})"

    __str__ = describe
