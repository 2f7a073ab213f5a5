"""Uniform I/O endpoints: reference counting, a null endpoint and pipes."""

from __future__ import annotations

import errno
from enum import IntEnum
from typing import Any, Optional, Tuple

from minikern.sched import Condition, Scheduler

PAGE_SIZE = 4096


class Fcntl(IntEnum):
    """Control operations understood by ``Uio.cntl``."""

    GETEND = 0  # arg is an integer holder
    SETEND = 1
    GETPOS = 2
    SETPOS = 3
    MMAP = 4


class UnsupportedOperation(OSError):
    """The endpoint does not support the requested operation."""

    def __init__(self, message: str = "operation not supported") -> None:
        super().__init__(errno.ENOTSUP, message)


class Uio:
    """An I/O endpoint with a reference count.

    Subclasses override ``read``, ``write`` or ``cntl`` for the operations they
    support and ``_close`` for what happens when the last reference goes.
    """

    def __init__(self, refcnt: int = 0) -> None:
        if refcnt < 0:
            raise ValueError("reference count must not be negative")
        self._refcnt = refcnt

    def refcnt(self) -> int:
        """Number of active references to this endpoint."""
        return self._refcnt

    def add_ref(self) -> int:
        """Add a reference and return the new count."""
        self._refcnt += 1
        return self._refcnt

    def close(self) -> None:
        """Drop a reference; the endpoint closes when none are left."""
        if self._refcnt > 0:
            self._refcnt -= 1
        if self._refcnt == 0:
            self._close()

    def read(self, size: int) -> bytes:
        """Read up to *size* bytes."""
        raise UnsupportedOperation(f"{type(self).__name__} does not support read")

    def write(self, data: Any) -> int:
        """Write *data* and return how many bytes were taken."""
        raise UnsupportedOperation(f"{type(self).__name__} does not support write")

    def cntl(self, op: int, arg: Any = None) -> Any:
        """Perform control operation *op*."""
        raise UnsupportedOperation(f"{type(self).__name__} does not support cntl")

    def _close(self) -> None:
        """Release the endpoint; called when the last reference is dropped."""


class NullUio(Uio):
    """The system-wide null endpoint: closing does nothing, I/O is refused."""

    def read(self, size: int) -> bytes:
        raise UnsupportedOperation("null endpoint does not support read")

    def write(self, data: Any) -> int:
        raise UnsupportedOperation("null endpoint does not support write")


_NULL_UIO = NullUio(0)


def create_null_uio() -> NullUio:
    """Return the single null endpoint."""
    return _NULL_UIO


class _Pipe:
    """Ring buffer shared by the two ends of a pipe."""

    def __init__(self, scheduler: Scheduler, size: int) -> None:
        self.buf = bytearray(size)
        self.size = size
        self.length = 0
        self.head = 0  # next byte to read
        self.tail = 0  # next byte to write
        self.not_empty: Condition = scheduler.condition("pipe_not_empty")
        self.not_full: Condition = scheduler.condition("pipe_not_full")
        self.writers_open = 1
        self.readers_open = 1

    @property
    def full(self) -> bool:
        return self.length == self.size

    @property
    def empty(self) -> bool:
        return self.length == 0

    def put(self, data: memoryview) -> int:
        n = min(self.size - self.length, len(data))
        first = min(n, self.size - self.tail)
        self.buf[self.tail:self.tail + first] = data[:first]
        self.buf[:n - first] = data[first:n]
        self.tail = (self.tail + n) % self.size
        self.length += n
        return n

    def take(self, size: int) -> bytes:
        n = min(size, self.length)
        first = min(n, self.size - self.head)
        out = bytes(self.buf[self.head:self.head + first]) + bytes(self.buf[:n - first])
        self.head = (self.head + n) % self.size
        self.length -= n
        return out


class _PipeEnd(Uio):
    def __init__(self, pipe: _Pipe) -> None:
        super().__init__(1)
        self._pipe = pipe
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("I/O on a closed pipe end")


class PipeWriter(_PipeEnd):
    """The writing end of a pipe."""

    def write(self, data: Any) -> int:
        """Write as much of *data* as fits once there is room for one byte.

        Blocks while the pipe is full and a reader is open; raises
        BrokenPipeError if the pipe is full and no reader is left.
        """
        self._check_open()
        if data is None:
            raise ValueError("no data to write")
        view = memoryview(data).cast("B")
        if len(view) == 0:
            return 0
        pipe = self._pipe
        while pipe.full:
            if pipe.readers_open == 0:
                raise BrokenPipeError(errno.EPIPE, "pipe has no readers")
            pipe.not_full.wait()
            if pipe.readers_open == 0:
                raise BrokenPipeError(errno.EPIPE, "pipe has no readers")
        written = pipe.put(view)
        pipe.not_empty.broadcast()
        return written

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        pipe = self._pipe
        pipe.writers_open -= 1
        if pipe.writers_open == 0:
            pipe.not_empty.broadcast()


class PipeReader(_PipeEnd):
    """The reading end of a pipe."""

    def read(self, size: int) -> bytes:
        """Read between one and *size* bytes, blocking while the pipe is empty.

        Returns ``b""`` at end of file: the pipe is empty and no writer is left.
        """
        self._check_open()
        if size < 0:
            raise ValueError("read size must not be negative")
        if size == 0:
            return b""
        pipe = self._pipe
        while pipe.empty:
            if pipe.writers_open == 0:
                return b""
            pipe.not_empty.wait()
        out = pipe.take(size)
        pipe.not_full.broadcast()
        return out

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        pipe = self._pipe
        pipe.readers_open -= 1
        if pipe.readers_open == 0:
            pipe.not_full.broadcast()


def create_pipe(scheduler: Scheduler,
                size: Optional[int] = PAGE_SIZE) -> Tuple[PipeWriter, PipeReader]:
    """Create a one-way pipe; return its writing and reading ends."""
    if size is None:
        size = PAGE_SIZE
    if size <= 0:
        raise ValueError("pipe size must be positive")
    pipe = _Pipe(scheduler, size)
    return PipeWriter(pipe), PipeReader(pipe)