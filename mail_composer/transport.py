# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Delivery of rendered messages.

A transport receives the ``Envelope`` of a message (sender, recipients and
optional credentials) together with the rendered MIME bytes. It never parses
the MIME body. Two transports are provided:

- ``SmtpTransport`` speaks SMTP through aiosmtplib. TLS behaviour depends on
  port and ``use_tls``:

  - port 465 with ``use_tls`` True or None: implicit TLS
  - other ports with ``use_tls`` True: mandatory STARTTLS
  - other ports with ``use_tls`` None: STARTTLS when the server offers it
  - ``use_tls`` False: plain SMTP

- ``HttpApiTransport`` POSTs the raw message to an HTTP mail API.

Both raise ``TransportError`` on connection, authentication or protocol
failure, and neither retries.

Example:
    Sending through SMTP::

        transport = SmtpTransport(SmtpConfig(host="smtp.example.com", port=465))
        await transport.send(message.envelope(), message.render())
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Protocol

import aiohttp
import aiosmtplib

from .config import HttpApiConfig, SmtpConfig
from .errors import TransportError
from .logger import get_logger
from .message import Envelope
from .sources import auth_headers

logger = get_logger("Transport")


@dataclass(frozen=True)
class Credentials:
    """SMTP login attached to a message envelope."""

    user: str
    password: str = field(repr=False)


class Transport(Protocol):
    """Delivers a rendered message exactly once per call."""

    name: str

    async def send(self, envelope: Envelope, data: bytes) -> None:
        ...

    def describe(self) -> str:
        ...


class SmtpTransport:
    """Send rendered messages through an SMTP relay.

    A new connection is opened for every message and closed afterwards.

    Attributes:
        config: SMTP host, port, TLS mode, credentials and timeout.
    """

    name = "smtp"

    def __init__(self, config: SmtpConfig):
        self.config = config

    @property
    def implicit_tls(self) -> bool:
        return self.config.use_tls is not False and int(self.config.port) == 465

    def _client(self) -> aiosmtplib.SMTP:
        port = int(self.config.port)
        if self.implicit_tls:
            return aiosmtplib.SMTP(hostname=self.config.host, port=port, use_tls=True, start_tls=False, timeout=self.config.timeout)
        if self.config.use_tls:
            return aiosmtplib.SMTP(hostname=self.config.host, port=port, use_tls=False, start_tls=True, timeout=self.config.timeout)
        if self.config.use_tls is None:
            # start_tls=None upgrades only when the server advertises STARTTLS.
            return aiosmtplib.SMTP(hostname=self.config.host, port=port, use_tls=False, start_tls=None, timeout=self.config.timeout)
        return aiosmtplib.SMTP(hostname=self.config.host, port=port, use_tls=False, start_tls=False, timeout=self.config.timeout)

    def _login_for(self, envelope: Envelope) -> tuple[str | None, str | None]:
        creds = envelope.credentials
        if isinstance(creds, Credentials):
            return creds.user, creds.password
        return self.config.user, self.config.password

    async def send(self, envelope: Envelope, data: bytes) -> None:
        """Deliver ``data`` to every envelope recipient.

        Raises:
            TransportError: No recipients, connection, login or delivery failed.
        """
        if not envelope.recipients:
            raise TransportError("Message has no recipients", transport=self.name)

        smtp = self._client()
        user, password = self._login_for(envelope)

        async def _deliver():
            await smtp.connect()
            if user and password:
                await smtp.login(user, password)
            await smtp.sendmail(envelope.sender, list(envelope.recipients), data)
            await smtp.quit()

        try:
            await asyncio.wait_for(_deliver(), timeout=self.config.timeout)
        except aiosmtplib.SMTPResponseException as exc:
            raise TransportError(
                f"SMTP server {self.config.host} rejected message: {exc.message}",
                transport=self.name,
                code=exc.code,
            ) from exc
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            raise TransportError(
                f"SMTP delivery to {self.config.host}:{self.config.port} failed: {exc}",
                transport=self.name,
            ) from exc
        finally:
            if smtp.is_connected:
                smtp.close()

        logger.info(
            "Delivered message from %s to %d recipients via %s:%s",
            envelope.sender,
            len(envelope.recipients),
            self.config.host,
            self.config.port,
        )

    def describe(self) -> str:
        if self.implicit_tls:
            tls = "implicit"
        elif self.config.use_tls:
            tls = "starttls"
        elif self.config.use_tls is None:
            tls = "opportunistic"
        else:
            tls = "none"
        auth_set = bool(self.config.user and self.config.password)
        return f"SmtpTransport(host={self.config.host}:{self.config.port}, tls: {tls}, auth set: {auth_set})"


class HttpApiTransport:
    """POST rendered messages to an HTTP mail API.

    The body is the raw MIME message (``message/rfc822``); sender and
    recipients travel in ``X-Mail-From`` and ``X-Mail-Recipients`` headers so
    the API does not need to parse the message. APIs that read recipients
    from the message itself usually need ``Message.set_write_bcc_header(True)``.
    """

    name = "http_api"

    def __init__(self, config: HttpApiConfig):
        if not config.url:
            raise ValueError("HttpApiTransport requires a url")
        self.config = config

    async def send(self, envelope: Envelope, data: bytes) -> None:
        headers = {
            "Content-Type": "message/rfc822",
            "X-Mail-From": envelope.sender,
            "X-Mail-Recipients": ", ".join(envelope.recipients),
            **auth_headers(self.config.auth_config),
        }
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.config.url, data=data, headers=headers) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise TransportError(
                            f"Mail API returned {response.status}: {body[:200]}",
                            transport=self.name,
                            code=response.status,
                        )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"Mail API request to {self.config.url} failed: {exc}", transport=self.name) from exc

        logger.info("Posted message from %s to %s", envelope.sender, self.config.url)

    def describe(self) -> str:
        return f"HttpApiTransport(url={self.config.url}, auth: {self.config.auth_method})"
