# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging helpers for the mail composer.

The library never installs handlers; the embedding application configures
``logging`` (level, handlers, format) once at start-up.

Example:
    Typical usage in a module::

        from mail_composer.logger import get_logger

        logger = get_logger("MimeEncoder")
        logger.debug("Rendered %d bytes", size)
"""

import logging


def get_logger(name: str = "MailComposer") -> logging.Logger:
    """Retrieve a logger from the ``mail_composer`` namespace.

    Args:
        name: Component name. Defaults to "MailComposer".

    Returns:
        A ``logging.Logger`` named ``mail_composer.<name>``.
    """
    return logging.getLogger(f"mail_composer.{name}")


def configure_logging(level: str = "INFO") -> None:
    """Install a root handler at ``level`` for standalone scripts.

    Embedding applications that already configure logging should not call
    this; it replaces existing root handlers.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
