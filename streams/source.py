"""
Source adapter: presents a host source to the decoder as a pull stream.

The adapter is a raw (unbuffered) binary file object. Each ``readinto``
becomes exactly one host read and each ``seek``/``tell`` exactly one host
seek, in the order the decoder issues them. Nothing is buffered, batched
or reordered.
"""

from __future__ import annotations

import io
import logging

from errors import (
    StreamClosedError,
    StreamError,
    StreamProtocolError,
    StreamReadError,
    StreamSeekError,
)
from logging_utils import get_logger
from .handles import HandleRegistry
from .host import SEEK_WHENCE
from .relay import relay_read, relay_seek


class SourceAdapter(io.RawIOBase):
    """Pull stream bound to one host source through a handle.

    Attributes:
        reads: Number of read requests relayed.
        seeks: Number of seek requests relayed (``tell`` included).
        bytes_read: Total bytes delivered to the decoder.
    """

    def __init__(
        self,
        registry: HandleRegistry,
        handle: int,
        logger: logging.Logger | None = None,
    ):
        super().__init__()
        self._registry = registry
        self._handle = handle
        self._logger = get_logger(__name__, logger)
        self._released = False
        self._failure: StreamError | None = None
        self.reads = 0
        self.seeks = 0
        self.bytes_read = 0

    @property
    def handle(self) -> int:
        return self._handle

    @property
    def released(self) -> bool:
        return self._released

    @property
    def failed(self) -> bool:
        return self._failure is not None

    @property
    def failure(self) -> StreamError | None:
        return self._failure

    def _check_open(self, op: str) -> None:
        if self._released or self._handle not in self._registry:
            raise StreamClosedError(
                f"{op} on released source handle {self._handle}", handle=self._handle
            )

    def _host_error(self) -> BaseException | None:
        try:
            return self._registry.lookup(self._handle).error
        except StreamClosedError:
            return None

    def _record(self, error: StreamError) -> StreamError:
        self._failure = error
        return error

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        self._check_open("seekable")
        host = self._registry.lookup(self._handle).host
        try:
            return bool(host.seekable())
        except Exception as e:
            self._logger.error("seekable[handle %d]: error: %s", self._handle, e)
            return False

    def readinto(self, b) -> int:
        self._check_open("read")
        view = memoryview(b).cast("B")
        n = relay_read(self._registry, self._handle, view, self._logger)
        self.reads += 1
        if n < 0:
            error = self._record(StreamReadError(
                f"Host read failed on source handle {self._handle}",
                handle=self._handle,
            ))
            raise error from self._host_error()
        self.bytes_read += n
        return n

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes, stopping early only at end of stream.

        Hosts may return short reads that are not EOF; decoders treat a
        short ``read`` as truncation, so this keeps issuing ``readinto``
        (one host call each) until ``size`` bytes arrived or EOF.
        """
        if size is None or size < 0:
            return self.readall()
        buf = bytearray(size)
        total = 0
        with memoryview(buf) as view:
            while total < size:
                n = self.readinto(view[total:])
                if n == 0:
                    break
                total += n
        return bytes(buf[:total])

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        self._check_open("seek")
        if whence not in SEEK_WHENCE:
            raise self._record(StreamProtocolError(
                f"Invalid whence {whence} for source handle {self._handle}",
                handle=self._handle,
            ))
        if not self.seekable():
            raise self._record(StreamProtocolError(
                f"Source handle {self._handle} is not seekable",
                handle=self._handle,
            ))
        pos = relay_seek(self._registry, self._handle, offset, whence, self._logger)
        self.seeks += 1
        if pos < 0:
            error = self._record(StreamSeekError(
                f"Host seek failed on source handle {self._handle} "
                f"[offset {offset} | whence {whence}]",
                handle=self._handle,
            ))
            raise error from self._host_error()
        return pos

    def tell(self) -> int:
        return self.seek(0, io.SEEK_CUR)

    def raise_if_failed(self) -> None:
        """Re-raise a failure the decoder may have swallowed."""
        if self._failure is not None:
            raise self._failure

    def release(self) -> bool:
        """Release the handle. Idempotent; returns True the first time."""
        if getattr(self, "_released", True):
            return False
        self._released = True
        try:
            return self._registry.release(self._handle)
        finally:
            super().close()

    def close(self) -> None:
        self.release()
