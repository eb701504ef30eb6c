"""Reusable relay buffers.

Every relay direction copies through a fixed-size ``bytearray`` borrowed from a
pool shared by all sessions. A buffer belongs to exactly one copy loop between
acquire and release, and each ``recv_into`` overwrites the region that is later
sent, so no data from a previous session can leak into another.

Example:
    pool = BufferPool()
    with pool.borrow() as buf:
        n = sock.recv_into(buf)
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Final

DEFAULT_BUFFER_SIZE: Final = 32 * 1024
DEFAULT_MAX_IDLE: Final = 256


class BufferPool:
    """Thread-safe free list of fixed-size buffers."""

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE, max_idle: int = DEFAULT_MAX_IDLE) -> None:
        """Create an empty pool.

        Args:
            buffer_size: Size in bytes of every buffer handed out
            max_idle: Maximum number of released buffers kept for reuse
        """
        if buffer_size <= 0:
            msg = "buffer_size must be positive"
            raise ValueError(msg)
        self.buffer_size = buffer_size
        self.max_idle = max_idle
        self._free: list[bytearray] = []
        self._lock = threading.Lock()

    def acquire(self) -> bytearray:
        """Take a buffer from the pool, allocating one if the pool is empty."""
        with self._lock:
            if self._free:
                return self._free.pop()
        return bytearray(self.buffer_size)

    def release(self, buf: bytearray) -> None:
        """Return a buffer to the pool."""
        if len(buf) != self.buffer_size:
            msg = f"buffer of size {len(buf)} does not belong to this pool"
            raise ValueError(msg)
        with self._lock:
            if len(self._free) < self.max_idle:
                self._free.append(buf)

    @contextmanager
    def borrow(self) -> Iterator[bytearray]:
        """Acquire a buffer for the duration of a ``with`` block."""
        buf = self.acquire()
        try:
            yield buf
        finally:
            self.release(buf)

    @property
    def idle(self) -> int:
        """Number of buffers currently waiting for reuse."""
        with self._lock:
            return len(self._free)
