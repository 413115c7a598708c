"""
Stream handle registry.

A handle is an opaque integer correlating one adapter with one host-side
I/O object. Handles are issued from a monotonically increasing counter and
are never reused, so a stale handle can never resolve to somebody else's
host object.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from errors import StreamClosedError, StreamIOError
from logging_utils import get_logger


@dataclass
class HandleEntry:
    """Registry record for a live handle.

    Attributes:
        handle: The opaque handle value.
        host: The host-side I/O object (HostSource or HostTarget).
        kind: "source" or "target".
        error: Last exception raised by the host, recorded by the relay
               when it converts the exception to a negative return value.
        calls: Number of callbacks relayed to the host so far.
    """

    handle: int
    host: Any
    kind: str
    error: BaseException | None = field(default=None, repr=False)
    calls: int = 0


class HandleRegistry:
    """Maps opaque handles to host I/O objects.

    Registration and release take an internal lock because independent
    operations on separate threads share the registry. Calls for a single
    handle are never concurrent, so entries themselves are not locked.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self._entries: dict[int, HandleEntry] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()
        self._logger = get_logger(__name__, logger)

    def register(self, host: Any, kind: str) -> int:
        """Create a new handle for ``host`` and return it."""
        if kind not in ("source", "target"):
            raise ValueError(f"kind must be 'source' or 'target', got {kind!r}")
        with self._lock:
            handle = next(self._counter)
            self._entries[handle] = HandleEntry(handle=handle, host=host, kind=kind)
        self._logger.debug("Created %s handle %d", kind, handle)
        return handle

    def lookup(self, handle: int) -> HandleEntry:
        """Resolve a handle.

        Raises:
            StreamClosedError: If the handle was released or never issued.
        """
        with self._lock:
            entry = self._entries.get(handle)
        if entry is None:
            raise StreamClosedError(f"Stream handle {handle} is not open", handle=handle)
        return entry

    def release(self, handle: int) -> bool:
        """Release a handle.

        Idempotent: the first call drops the mapping, notifies the host via
        ``on_release()`` and returns True. Later calls return False.

        Raises:
            StreamIOError: If the host's ``on_release()`` raised. The handle
                is released regardless.
        """
        with self._lock:
            entry = self._entries.pop(handle, None)
        if entry is None:
            return False

        on_release = getattr(entry.host, "on_release", None)
        if on_release is not None:
            try:
                on_release()
            except Exception as e:
                self._logger.error("release[handle %d]: error: %s", handle, e)
                raise StreamIOError(
                    f"Host release hook failed for {entry.kind} handle {handle}",
                    handle=handle,
                ) from e
        self._logger.debug(
            "Released %s handle %d after %d calls", entry.kind, handle, entry.calls
        )
        return True

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


default_registry = HandleRegistry()
