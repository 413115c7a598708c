"""
Stream adapters between caller-supplied I/O and the imaging library.

Key components:
- host: HostSource / HostTarget callback protocol and built-in hosts
- handles: HandleRegistry correlating opaque handles with host objects
- relay: integer callback contract (read/seek/write/finish)
- source / target: SourceAdapter and TargetAdapter file objects
- lifecycle: open_source() / open_target() scoped acquisition
"""

from .handles import HandleEntry, HandleRegistry, default_registry
from .host import (
    HostSource,
    HostTarget,
    BytesSource,
    BytesTarget,
    ReaderSource,
    WriterTarget,
    CallbackSource,
    CallbackTarget,
    as_source,
    as_target,
)
from .relay import relay_read, relay_seek, relay_write, relay_finish
from .source import SourceAdapter
from .target import TargetAdapter
from .lifecycle import new_source, new_target, open_source, open_target, release

__all__ = [
    # Registry
    "HandleEntry",
    "HandleRegistry",
    "default_registry",
    # Host protocol
    "HostSource",
    "HostTarget",
    "BytesSource",
    "BytesTarget",
    "ReaderSource",
    "WriterTarget",
    "CallbackSource",
    "CallbackTarget",
    "as_source",
    "as_target",
    # Relay
    "relay_read",
    "relay_seek",
    "relay_write",
    "relay_finish",
    # Adapters
    "SourceAdapter",
    "TargetAdapter",
    # Lifecycle
    "new_source",
    "new_target",
    "open_source",
    "open_target",
    "release",
]
