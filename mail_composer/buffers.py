# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Reusable body buffers.

Message bodies are accumulated in ``BodyPart`` buffers borrowed from a
``BufferPool``. Reuse only saves allocations: a buffer is cleared on release
and handed out empty, so a pooled buffer behaves exactly like a fresh one.

Example:
    Borrowing a buffer::

        pool = BufferPool(max_size=64)
        part = pool.acquire()
        part.write("Hello")
        pool.release(part)
"""

from __future__ import annotations

import threading

DEFAULT_MAX_BUFFERS = 256


class BodyPart:
    """Growable byte buffer holding the raw contents of one MIME body part.

    Text written to the buffer is stored as UTF-8.
    """

    __slots__ = ("_data",)

    def __init__(self) -> None:
        self._data = bytearray()

    def set(self, value: str | bytes) -> None:
        """Replace the buffer contents with ``value``."""
        self._data.clear()
        self.write(value)

    def write(self, value: str | bytes) -> int:
        """Append ``value`` and return the number of bytes written."""
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._data += value
        return len(value)

    def getvalue(self) -> bytes:
        return bytes(self._data)

    def reset(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return bool(self._data)

    def __repr__(self) -> str:
        return f"<BodyPart {len(self._data)} bytes>"


class BufferPool:
    """Thread-safe free list of ``BodyPart`` buffers.

    Attributes:
        max_size: Maximum number of idle buffers retained; extra released
            buffers are dropped for the garbage collector.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_BUFFERS):
        self.max_size = max_size
        self._free: list[BodyPart] = []
        self._lock = threading.Lock()
        self.created = 0
        self.reused = 0

    def acquire(self) -> BodyPart:
        """Return an empty buffer, reusing an idle one when available."""
        with self._lock:
            if self._free:
                self.reused += 1
                return self._free.pop()
            self.created += 1
        return BodyPart()

    def release(self, part: BodyPart) -> None:
        """Clear ``part`` and make it available to later ``acquire`` calls."""
        part.reset()
        with self._lock:
            if len(self._free) < self.max_size:
                self._free.append(part)

    @property
    def idle(self) -> int:
        """Number of buffers currently waiting in the pool."""
        with self._lock:
            return len(self._free)
