"""
Callback relay between adapters and host objects.

These functions are the boundary where the integer callback contract is
enforced. They resolve a handle, validate the request, call the host and
translate every outcome into an integer:

    read   -> bytes read, 0 at end of stream, -1 on failure
    seek   -> new absolute position, -1 on failure
    write  -> bytes written, -1 on failure (partial writes included)

Host exceptions never cross this boundary. They are logged, stored on the
handle entry (so the adapter can chain them) and reported as -1.
"""

from __future__ import annotations

import logging

from errors import StreamClosedError
from logging_utils import get_logger
from .handles import HandleEntry, HandleRegistry
from .host import SEEK_WHENCE

FAILURE = -1


def _resolve(
    registry: HandleRegistry,
    handle: int,
    op: str,
    log: logging.Logger,
) -> HandleEntry | None:
    try:
        entry = registry.lookup(handle)
    except StreamClosedError:
        log.error("%s[handle %d]: handle not found", op, handle)
        return None
    entry.calls += 1
    # error always refers to the current call
    entry.error = None
    return entry


def relay_read(
    registry: HandleRegistry,
    handle: int,
    buffer: memoryview,
    logger: logging.Logger | None = None,
) -> int:
    """Relay a read request to the host source bound to ``handle``."""
    log = get_logger(__name__, logger)
    entry = _resolve(registry, handle, "read", log)
    if entry is None:
        return FAILURE

    try:
        n = int(entry.host.read(buffer))
    except Exception as e:
        entry.error = e
        log.error("read[handle %d]: error: %s", handle, e)
        return FAILURE

    if n < 0:
        log.error("read[handle %d]: host reported failure (%d)", handle, n)
        return FAILURE
    if n > len(buffer):
        log.error(
            "read[handle %d]: host claimed %d bytes for a %d byte buffer",
            handle, n, len(buffer),
        )
        return FAILURE

    if n == 0:
        log.debug("read[handle %d]: EOF", handle)
    else:
        log.debug("read[handle %d]: OK [read %d]", handle, n)
    return n


def relay_seek(
    registry: HandleRegistry,
    handle: int,
    offset: int,
    whence: int,
    logger: logging.Logger | None = None,
) -> int:
    """Relay a seek request to the host source bound to ``handle``."""
    log = get_logger(__name__, logger)
    entry = _resolve(registry, handle, "seek", log)
    if entry is None:
        return FAILURE

    if whence not in SEEK_WHENCE:
        log.error("seek[handle %d]: invalid whence value [%d]", handle, whence)
        return FAILURE

    try:
        if not entry.host.seekable():
            log.debug("seek[handle %d]: seek not supported", handle)
            return FAILURE
        pos = int(entry.host.seek(offset, whence))
    except Exception as e:
        entry.error = e
        log.error(
            "seek[handle %d]: error: %s [offset %d | whence %d]",
            handle, e, offset, whence,
        )
        return FAILURE

    if pos < 0:
        log.error(
            "seek[handle %d]: host reported failure [offset %d | whence %d]",
            handle, offset, whence,
        )
        return FAILURE

    log.debug("seek[handle %d]: OK [seek %d | whence %d]", handle, pos, whence)
    return pos


def relay_write(
    registry: HandleRegistry,
    handle: int,
    data: memoryview,
    logger: logging.Logger | None = None,
) -> int:
    """Relay a write request to the host target bound to ``handle``."""
    log = get_logger(__name__, logger)
    entry = _resolve(registry, handle, "write", log)
    if entry is None:
        return FAILURE

    try:
        n = int(entry.host.write(data))
    except Exception as e:
        entry.error = e
        log.error("write[handle %d]: error: %s", handle, e)
        return FAILURE

    if n != len(data):
        log.error(
            "write[handle %d]: partial write [wrote %d of %d]",
            handle, n, len(data),
        )
        return FAILURE

    log.debug("write[handle %d]: OK [wrote %d]", handle, n)
    return n


def relay_finish(
    registry: HandleRegistry,
    handle: int,
    logger: logging.Logger | None = None,
) -> int:
    """Tell the host target bound to ``handle`` that the encoder is done."""
    log = get_logger(__name__, logger)
    entry = _resolve(registry, handle, "finish", log)
    if entry is None:
        return FAILURE

    try:
        result = int(entry.host.finish() or 0)
    except Exception as e:
        entry.error = e
        log.error("finish[handle %d]: error: %s", handle, e)
        return FAILURE

    if result < 0:
        log.error("finish[handle %d]: host reported failure (%d)", handle, result)
        return FAILURE
    log.debug("finish[handle %d]: OK", handle)
    return 0
