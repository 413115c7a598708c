"""
Host-side I/O protocol and built-in implementations.

A host object is whatever the caller supplies as the origin of image bytes
(HostSource) or their destination (HostTarget). The protocol mirrors the
native callback contract: every method returns an integer, negative values
signal failure, and ``0`` from ``read`` signals end of stream. Host methods
may also raise; the relay converts exceptions into the negative-return
convention before they reach the imaging side.

Built-in hosts:
- BytesSource / BytesTarget: in-memory buffers
- ReaderSource / WriterTarget: wrap binary file-like objects
- CallbackSource / CallbackTarget: wrap plain callables
"""

from __future__ import annotations

import io
import os
from abc import ABC, abstractmethod
from typing import Any, Callable

SEEK_WHENCE = (os.SEEK_SET, os.SEEK_CUR, os.SEEK_END)


class HostSource(ABC):
    """Readable (and optionally seekable) byte source."""

    @abstractmethod
    def read(self, buffer: memoryview) -> int:
        """Fill ``buffer`` with up to ``len(buffer)`` bytes.

        Returns:
            Number of bytes written into the buffer, 0 at end of stream,
            or a negative value on failure.
        """

    def seek(self, offset: int, whence: int) -> int:
        """Reposition the source and return the new absolute position.

        The default implementation reports failure; sources that support
        random access override both ``seek`` and ``seekable``.
        """
        return -1

    def seekable(self) -> bool:
        return False

    def on_release(self) -> None:
        """Called exactly once when the handle bound to this host is released."""


class HostTarget(ABC):
    """Append-only byte sink."""

    @abstractmethod
    def write(self, data: memoryview) -> int:
        """Consume ``data``.

        Returns:
            Number of bytes accepted, or a negative value on failure.
            Anything other than ``len(data)`` fails the encode.
        """

    def finish(self) -> int:
        """Called once after the encoder wrote its last chunk."""
        return 0

    def on_release(self) -> None:
        """Called exactly once when the handle bound to this host is released."""


# =============================================================================
# In-memory hosts
# =============================================================================


class BytesSource(HostSource):
    """Bounded in-memory source.

    Seeking before the start or past the end is an error (returns -1);
    the position is never clamped.
    """

    def __init__(self, data: bytes | bytearray | memoryview):
        self._data = memoryview(data).cast("B")
        self._pos = 0

    @property
    def size(self) -> int:
        return len(self._data)

    @property
    def position(self) -> int:
        return self._pos

    def read(self, buffer: memoryview) -> int:
        n = min(len(buffer), len(self._data) - self._pos)
        if n <= 0:
            return 0
        buffer[:n] = self._data[self._pos:self._pos + n]
        self._pos += n
        return n

    def seek(self, offset: int, whence: int) -> int:
        if whence == os.SEEK_SET:
            base = 0
        elif whence == os.SEEK_CUR:
            base = self._pos
        elif whence == os.SEEK_END:
            base = len(self._data)
        else:
            return -1

        new_pos = base + offset
        if new_pos < 0 or new_pos > len(self._data):
            return -1
        self._pos = new_pos
        return new_pos

    def seekable(self) -> bool:
        return True


class BytesTarget(HostTarget):
    """In-memory target collecting everything written to it."""

    def __init__(self):
        self._buffer = io.BytesIO()
        self.chunk_sizes: list[int] = []
        self.finished = False

    def write(self, data: memoryview) -> int:
        self.chunk_sizes.append(len(data))
        return self._buffer.write(data)

    def finish(self) -> int:
        self.finished = True
        return 0

    def getvalue(self) -> bytes:
        return self._buffer.getvalue()


# =============================================================================
# File-object hosts
# =============================================================================


class ReaderSource(HostSource):
    """Source backed by a binary file-like object.

    Each read loops until the buffer is full or the reader reports end of
    stream, so short reads from pipes and sockets never look like a
    truncated image to the decoder. The source is seekable only when the
    file object says so. Seek semantics are those of the file object.

    Args:
        fileobj: Object with ``read`` (and optionally ``readinto``,
                 ``seek``, ``seekable``).
        closefd: Close ``fileobj`` when the handle is released. The caller
                 keeps ownership by default.
    """

    def __init__(self, fileobj: Any, closefd: bool = False):
        self._fileobj = fileobj
        self._closefd = closefd

    def _read_once(self, view: memoryview) -> int:
        readinto = getattr(self._fileobj, "readinto", None)
        if readinto is not None:
            n = readinto(view)
        else:
            chunk = self._fileobj.read(len(view))
            n = None if chunk is None else len(chunk)
            if n:
                view[:n] = chunk
        if n is None:
            raise BlockingIOError("Reader has no data available (non-blocking stream)")
        return n

    def read(self, buffer: memoryview) -> int:
        total = 0
        while total < len(buffer):
            n = self._read_once(buffer[total:])
            if n == 0:
                break
            total += n
        return total

    def seek(self, offset: int, whence: int) -> int:
        if not self.seekable():
            return -1
        pos = self._fileobj.seek(offset, whence)
        if pos is None:
            pos = self._fileobj.tell()
        return pos

    def seekable(self) -> bool:
        seekable = getattr(self._fileobj, "seekable", None)
        if seekable is None:
            return False
        return bool(seekable())

    def on_release(self) -> None:
        if self._closefd:
            self._fileobj.close()


class WriterTarget(HostTarget):
    """Target backed by a binary file-like object.

    A chunk is passed to ``write`` repeatedly until it is consumed in full.
    A writer that accepts zero bytes is treated as a failure.
    """

    def __init__(self, fileobj: Any, closefd: bool = False):
        self._fileobj = fileobj
        self._closefd = closefd

    def write(self, data: memoryview) -> int:
        total = 0
        while total < len(data):
            n = self._fileobj.write(data[total:])
            if n is None:
                # Buffered writers that return None accept the whole chunk
                n = len(data) - total
            if n == 0:
                raise OSError("Writer accepted no bytes")
            total += n
        return total

    def finish(self) -> int:
        flush = getattr(self._fileobj, "flush", None)
        if flush is not None:
            flush()
        return 0

    def on_release(self) -> None:
        if self._closefd:
            self._fileobj.close()


# =============================================================================
# Callable hosts
# =============================================================================


class CallbackSource(HostSource):
    """Source built from plain ``read(buffer)`` / ``seek(offset, whence)`` callables."""

    def __init__(
        self,
        read: Callable[[memoryview], int],
        seek: Callable[[int, int], int] | None = None,
    ):
        self._read = read
        self._seek = seek

    def read(self, buffer: memoryview) -> int:
        return self._read(buffer)

    def seek(self, offset: int, whence: int) -> int:
        if self._seek is None:
            return -1
        return self._seek(offset, whence)

    def seekable(self) -> bool:
        return self._seek is not None


class CallbackTarget(HostTarget):
    """Target built from a plain ``write(data)`` callable."""

    def __init__(self, write: Callable[[memoryview], int]):
        self._write = write

    def write(self, data: memoryview) -> int:
        return self._write(data)


# =============================================================================
# Coercion
# =============================================================================


def as_source(obj: Any) -> HostSource:
    """Coerce bytes, a file object or a HostSource into a HostSource."""
    if isinstance(obj, HostSource):
        return obj
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return BytesSource(obj)
    if hasattr(obj, "read"):
        return ReaderSource(obj)
    raise TypeError(f"Cannot use {type(obj).__name__} as an image source")


def as_target(obj: Any) -> HostTarget:
    """Coerce a file object or a HostTarget into a HostTarget."""
    if isinstance(obj, HostTarget):
        return obj
    if hasattr(obj, "write"):
        return WriterTarget(obj)
    raise TypeError(f"Cannot use {type(obj).__name__} as an image target")
