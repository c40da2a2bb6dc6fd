# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception hierarchy for the mail composer.

Setter inputs are never rejected: blank addresses are dropped and non-ASCII
values are encoded. Errors only arise while rendering or delivering a message,
and none of them is retried automatically.
"""

from __future__ import annotations


class ComposerError(Exception):
    """Base error type for mail composer exceptions."""


class EncodingError(ComposerError):
    """Raised when the MIME stream cannot be produced.

    Covers boundary generation failures (the entropy source is unavailable)
    and structural misuse of the multipart writer. Output already written to
    the destination must be discarded by the caller.
    """


class StreamReadError(ComposerError):
    """Raised when an attachment source fails mid-read."""

    def __init__(self, message: str, *, filename: str):
        super().__init__(message)
        self.filename = filename


class MessageReleasedError(ComposerError, RuntimeError):
    """Raised when a message is used after being returned to its pool."""


class TransportError(ComposerError):
    """Raised when a transport fails to deliver a rendered message."""

    def __init__(self, message: str, *, transport: str, code: int | None = None):
        super().__init__(message)
        self.transport = transport
        self.code = code
