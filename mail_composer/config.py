# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration dataclasses and INI loader for the mail composer.

Provides nested configuration structure:
- config.pool.max_messages
- config.smtp.host
- config.http_api.url

Example:
    Configuration file format (config.ini)::

        [pool]
        max_buffers = 256
        max_messages = 256
        read_chunk_size = 58368

        [smtp]
        host = smtp.example.com
        port = 587
        user = mailer
        password = secret
        use_tls = true
        timeout = 30

        [http_api]
        url = https://mail-api.example.com/raw
        auth_method = bearer
        auth_token = my-secret-token

        [logging]
        level = INFO

    Loading it::

        config = load_config("/etc/mail-composer/config.ini")

Environment variables (all prefixed with MC_) are used when an option is
missing from the file:
    MC_CONFIG, MC_POOL_MAX_BUFFERS, MC_POOL_MAX_MESSAGES, MC_POOL_READ_CHUNK_SIZE,
    MC_SMTP_HOST, MC_SMTP_PORT, MC_SMTP_USER, MC_SMTP_PASSWORD, MC_SMTP_USE_TLS,
    MC_SMTP_TIMEOUT, MC_HTTP_API_URL, MC_HTTP_API_AUTH_METHOD, MC_HTTP_API_TOKEN,
    MC_HTTP_API_USER, MC_HTTP_API_PASSWORD, MC_HTTP_API_TIMEOUT, MC_LOG_LEVEL
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path

from .buffers import DEFAULT_MAX_BUFFERS
from .mime import DEFAULT_CHUNK_SIZE


@dataclass
class PoolConfig:
    """Message and buffer pool sizing."""

    max_buffers: int = DEFAULT_MAX_BUFFERS
    """Maximum idle body buffers kept for reuse."""

    max_messages: int = 256
    """Maximum idle messages kept for reuse."""

    read_chunk_size: int = DEFAULT_CHUNK_SIZE
    """Bytes read per call from attachment sources."""


@dataclass
class SmtpConfig:
    """SMTP relay settings."""

    host: str = "localhost"
    port: int = 587
    user: str | None = None
    password: str | None = None

    use_tls: bool | None = None
    """True: implicit TLS on 465, mandatory STARTTLS elsewhere. False: plain.
    None: implicit TLS on 465, STARTTLS when the server offers it elsewhere."""

    timeout: float = 30.0
    """Seconds allowed for connect, login and the whole DATA exchange."""


@dataclass
class HttpApiConfig:
    """HTTP mail API accepting raw MIME messages."""

    url: str | None = None
    auth_method: str = "none"
    token: str | None = None
    user: str | None = None
    password: str | None = None
    timeout: float = 30.0

    @property
    def auth_config(self) -> dict[str, str] | None:
        """Build the auth config dict understood by ``sources.auth_headers``."""
        if self.auth_method == "none":
            return None
        config = {"method": self.auth_method}
        if self.auth_method == "bearer" and self.token:
            config["token"] = self.token
        elif self.auth_method == "basic":
            if self.user:
                config["user"] = self.user
            if self.password:
                config["password"] = self.password
        return config


@dataclass
class ComposerConfig:
    """Main configuration container.

    Example:
        config = ComposerConfig(smtp=SmtpConfig(host="smtp.example.com", port=465))
        composer = MailComposer.from_config(config)
    """

    pool: PoolConfig = field(default_factory=PoolConfig)
    smtp: SmtpConfig = field(default_factory=SmtpConfig)
    http_api: HttpApiConfig = field(default_factory=HttpApiConfig)
    log_level: str = "INFO"


def _parse_bool(value: str | None) -> bool | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return None


def load_config(config_path: str | Path | None = None) -> ComposerConfig:
    """Load configuration from an INI file with MC_* environment fallbacks.

    Args:
        config_path: INI file to read. Defaults to ``$MC_CONFIG`` or
            ``config.ini``; a missing file leaves every option to the
            environment and the dataclass defaults.

    Returns:
        A populated ``ComposerConfig``.

    Raises:
        ValueError: A numeric option could not be parsed.
    """
    path = Path(config_path or os.getenv("MC_CONFIG", "config.ini"))
    parser = configparser.ConfigParser()
    parser.read(path)

    def get(section: str, option: str, env: str) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        value = os.getenv(env)
        return value if value not in (None, "") else None

    def get_int(section: str, option: str, env: str, default: int) -> int:
        value = get(section, option, env)
        return default if value is None else int(value)

    def get_float(section: str, option: str, env: str, default: float) -> float:
        value = get(section, option, env)
        return default if value is None else float(value)

    pool = PoolConfig(
        max_buffers=get_int("pool", "max_buffers", "MC_POOL_MAX_BUFFERS", DEFAULT_MAX_BUFFERS),
        max_messages=get_int("pool", "max_messages", "MC_POOL_MAX_MESSAGES", 256),
        read_chunk_size=get_int("pool", "read_chunk_size", "MC_POOL_READ_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
    )
    smtp = SmtpConfig(
        host=get("smtp", "host", "MC_SMTP_HOST") or "localhost",
        port=get_int("smtp", "port", "MC_SMTP_PORT", 587),
        user=get("smtp", "user", "MC_SMTP_USER"),
        password=get("smtp", "password", "MC_SMTP_PASSWORD"),
        use_tls=_parse_bool(get("smtp", "use_tls", "MC_SMTP_USE_TLS")),
        timeout=get_float("smtp", "timeout", "MC_SMTP_TIMEOUT", 30.0),
    )
    http_api = HttpApiConfig(
        url=get("http_api", "url", "MC_HTTP_API_URL"),
        auth_method=(get("http_api", "auth_method", "MC_HTTP_API_AUTH_METHOD") or "none").lower(),
        token=get("http_api", "auth_token", "MC_HTTP_API_TOKEN"),
        user=get("http_api", "auth_user", "MC_HTTP_API_USER"),
        password=get("http_api", "auth_password", "MC_HTTP_API_PASSWORD"),
        timeout=get_float("http_api", "timeout", "MC_HTTP_API_TIMEOUT", 30.0),
    )
    log_level = (get("logging", "level", "MC_LOG_LEVEL") or "INFO").upper()
    return ComposerConfig(pool=pool, smtp=smtp, http_api=http_api, log_level=log_level)
