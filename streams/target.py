"""
Target adapter: presents a host target to the encoder as a push stream.

Writes are sequential and each ``write`` becomes exactly one host write.
A chunk is either accepted in full or the encode fails; there is no
partial-write retry here, hosts that can accept partially loop internally.
"""

from __future__ import annotations

import io
import logging

from errors import StreamClosedError, StreamError, StreamProtocolError, StreamWriteError
from logging_utils import get_logger
from .handles import HandleRegistry
from .relay import relay_finish, relay_write


class TargetAdapter(io.RawIOBase):
    """Append-only stream bound to one host target through a handle.

    Attributes:
        writes: Number of write requests relayed.
        bytes_written: Total bytes accepted by the host.
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
        self._finished = False
        self._failure: StreamError | None = None
        self.writes = 0
        self.bytes_written = 0

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
                f"{op} on released target handle {self._handle}", handle=self._handle
            )

    def _host_error(self) -> BaseException | None:
        try:
            return self._registry.lookup(self._handle).error
        except StreamClosedError:
            return None

    def _record(self, error: StreamError) -> StreamError:
        self._failure = error
        return error

    def writable(self) -> bool:
        return True

    def readable(self) -> bool:
        return False

    def seekable(self) -> bool:
        return False

    def write(self, b) -> int:
        self._check_open("write")
        if self._finished:
            raise self._record(StreamProtocolError(
                f"write after finish on target handle {self._handle}",
                handle=self._handle,
            ))
        view = memoryview(b).cast("B")
        n = relay_write(self._registry, self._handle, view, self._logger)
        self.writes += 1
        if n < 0:
            error = self._record(StreamWriteError(
                f"Host write failed on target handle {self._handle} "
                f"[chunk of {len(view)} bytes]",
                handle=self._handle,
            ))
            raise error from self._host_error()
        self.bytes_written += n
        return n

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        raise self._record(StreamProtocolError(
            f"Target handle {self._handle} does not support seeking",
            handle=self._handle,
        ))

    def tell(self) -> int:
        return self.bytes_written

    def finish(self) -> None:
        """Signal the host that the encoder wrote its last chunk."""
        self._check_open("finish")
        if self._finished:
            return
        self._finished = True
        if relay_finish(self._registry, self._handle, self._logger) < 0:
            error = self._record(StreamWriteError(
                f"Host failed to finish target handle {self._handle}",
                handle=self._handle,
            ))
            raise error from self._host_error()

    def raise_if_failed(self) -> None:
        """Re-raise a failure the encoder may have swallowed."""
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
