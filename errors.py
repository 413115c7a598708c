"""Exception hierarchy shared by the stream and imaging layers.

Stream errors follow the three failure classes of the callback protocol:

- host I/O failures (a read, seek or write callback reported an error)
  surface as ``StreamIOError`` subclasses, which are also ``OSError`` so
  that imaging code treating them as I/O failures keeps working;
- protocol violations (seeking a non-seekable source, using a released
  handle) surface as ``StreamProtocolError``;
- failures inside the imaging library surface as ``ImageDecodeError`` /
  ``ImageEncodeError`` with the library exception as ``__cause__``.
"""

from __future__ import annotations


class PixbridgeError(Exception):
    """Base class for all pixbridge errors."""


# =============================================================================
# Streams
# =============================================================================


class StreamError(PixbridgeError):
    """Base class for stream adapter errors."""

    def __init__(self, message: str, handle: int | None = None):
        super().__init__(message)
        self.handle = handle


class StreamIOError(StreamError, OSError):
    """A host read, seek or write callback reported a failure."""


class StreamReadError(StreamIOError):
    """The host source failed to deliver bytes."""


class StreamSeekError(StreamIOError):
    """The host source failed to reposition."""


class StreamWriteError(StreamIOError):
    """The host target failed to accept a chunk in full."""


class StreamProtocolError(StreamError):
    """The callback protocol was used incorrectly."""


class StreamClosedError(StreamProtocolError):
    """A stream handle was used after it was released."""


# =============================================================================
# Imaging
# =============================================================================


class ImageError(PixbridgeError):
    """Base class for image operation errors."""


class UnsupportedFormatError(ImageError):
    """The image format cannot be loaded or saved."""


class ImageDecodeError(ImageError):
    """The imaging library failed to decode the input."""


class ImageEncodeError(ImageError):
    """The imaging library failed to encode the output."""


class ImageOperationError(ImageError, ValueError):
    """A transform was called with arguments it cannot honour."""
