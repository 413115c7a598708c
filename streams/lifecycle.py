"""
Adapter lifecycle management.

One adapter is bound to one in-flight decode or encode. It is created right
before the operation starts and released exactly once when it ends, on
every exit path: normal completion, a failure inside the imaging library,
or a failure reported by a host callback.

Usage:
    with open_source(BytesSource(data)) as source:
        image = Image.open(source)
        image.load()

    with open_target(WriterTarget(fp)) as target:
        image.save(target, format="PNG")
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from errors import StreamError
from logging_utils import get_logger
from .handles import HandleRegistry, default_registry
from .host import as_source, as_target
from .source import SourceAdapter
from .target import TargetAdapter


def new_source(
    host: Any,
    *,
    registry: HandleRegistry | None = None,
    logger: logging.Logger | None = None,
) -> SourceAdapter:
    """Register ``host`` and return a fresh, unscoped source adapter.

    The caller must call ``release()`` (or ``release(adapter)``) itself.
    Prefer ``open_source``.
    """
    if registry is None:
        registry = default_registry
    handle = registry.register(as_source(host), "source")
    return SourceAdapter(registry, handle, logger=logger)


def new_target(
    host: Any,
    *,
    registry: HandleRegistry | None = None,
    logger: logging.Logger | None = None,
) -> TargetAdapter:
    """Register ``host`` and return a fresh, unscoped target adapter."""
    if registry is None:
        registry = default_registry
    handle = registry.register(as_target(host), "target")
    return TargetAdapter(registry, handle, logger=logger)


def release(adapter: SourceAdapter | TargetAdapter) -> bool:
    """Release an adapter. Safe to call any number of times."""
    return adapter.release()


def _release_scoped(
    adapter: SourceAdapter | TargetAdapter,
    failing: bool,
    log: logging.Logger,
) -> None:
    # A release failure never replaces the error that ended the block.
    try:
        adapter.release()
    except StreamError as e:
        if not failing:
            raise
        log.error("Release of handle %d failed during error exit: %s", adapter.handle, e)


@contextmanager
def open_source(
    host: Any,
    *,
    registry: HandleRegistry | None = None,
    logger: logging.Logger | None = None,
) -> Iterator[SourceAdapter]:
    """Scope a source adapter to the enclosed decode.

    A host failure the decoder swallowed is raised when the block exits.
    """
    log = get_logger(__name__, logger)
    adapter = new_source(host, registry=registry, logger=logger)
    log.debug("Opened source handle %d", adapter.handle)
    failing = True
    try:
        yield adapter
        adapter.raise_if_failed()
        failing = False
    finally:
        _release_scoped(adapter, failing, log)
        log.debug(
            "Closed source handle %d [reads %d | seeks %d | bytes %d]",
            adapter.handle, adapter.reads, adapter.seeks, adapter.bytes_read,
        )


@contextmanager
def open_target(
    host: Any,
    *,
    registry: HandleRegistry | None = None,
    logger: logging.Logger | None = None,
) -> Iterator[TargetAdapter]:
    """Scope a target adapter to the enclosed encode.

    On success the host is told the stream is finished before release.
    """
    log = get_logger(__name__, logger)
    adapter = new_target(host, registry=registry, logger=logger)
    log.debug("Opened target handle %d", adapter.handle)
    failing = True
    try:
        yield adapter
        adapter.raise_if_failed()
        adapter.finish()
        failing = False
    finally:
        _release_scoped(adapter, failing, log)
        log.debug(
            "Closed target handle %d [writes %d | bytes %d]",
            adapter.handle, adapter.writes, adapter.bytes_written,
        )
