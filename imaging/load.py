"""
Image loading from buffers, files and host sources.

Loading from a host source goes through a source adapter scoped to the
decode: the adapter is created right before decoding starts and released
when it ends, whatever the outcome. The image is fully decoded and detached
from the stream before the adapter is released, so nothing reads from a
released handle later.

Seekable sources are decoded in place (the decoder may seek as it likes).
Non-seekable sources are pulled sequentially to the end and decoded from
memory, because every supported decoder needs to rewind at least once.
"""

from __future__ import annotations

import io
import logging
import math
import os
from typing import Any

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field, field_validator

from config import HEADER_SNIFF_BYTES, STREAM_CHUNK_SIZE
from errors import ImageDecodeError, ImageError, StreamError, UnsupportedFormatError
from logging_utils import get_logger
from streams import HandleRegistry, ReaderSource, SourceAdapter, open_source
from warnings_utils import codec_warnings
from . import transform
from .formats import determine_image_type, is_type_supported, pillow_format
from .image import ImageRef
from .types import ImageType

logger = logging.getLogger(__name__)

SHRINK_FACTORS = (1, 2, 4, 8)


class ImportParams(BaseModel):
    """Decoder options. Unset fields (None) leave the decoder default.

    Attributes:
        fail: Treat decoder warnings as errors.
        autorotate: Apply the EXIF orientation while loading.
        shrink: Shrink-on-load factor (1, 2, 4 or 8).
        page: Zero-based page/frame to load from multi-page formats.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    fail: bool | None = None
    autorotate: bool | None = None
    shrink: int | None = None
    page: int | None = Field(None, ge=0)

    @field_validator("shrink")
    @classmethod
    def _validate_shrink(cls, v: int | None) -> int | None:
        if v is not None and v not in SHRINK_FACTORS:
            raise ValueError(f"shrink must be one of {SHRINK_FACTORS}, got {v}")
        return v


def merge_import_params(*params: ImportParams | None) -> ImportParams:
    """Combine parameter sets; for each field the last set that sets it wins."""
    merged: dict[str, Any] = {}
    for p in params:
        if p is None:
            continue
        merged.update(p.model_dump(exclude_none=True))
    return ImportParams(**merged)


# =============================================================================
# Decoding
# =============================================================================


def _check_supported(image_type: ImageType) -> None:
    if image_type is ImageType.UNKNOWN:
        raise UnsupportedFormatError("Unrecognised image format")
    if not is_type_supported(image_type):
        raise UnsupportedFormatError(
            f"Loading {image_type.value} is not supported by this Pillow build"
        )


def _shrink_target(size: tuple[int, int], shrink: int) -> tuple[int, int]:
    return (
        max(1, math.ceil(size[0] / shrink)),
        max(1, math.ceil(size[1] / shrink)),
    )


def _decode(
    fp: Any,
    image_type: ImageType,
    params: ImportParams,
    log: logging.Logger,
) -> ImageRef:
    """Decode ``fp`` completely and return a ref detached from it."""
    fmt = pillow_format(image_type)
    try:
        with codec_warnings(bool(params.fail), log):
            with Image.open(fp, formats=[fmt]) as img:
                pages = getattr(img, "n_frames", 1)
                if params.page:
                    if params.page >= pages:
                        raise ImageDecodeError(
                            f"Page {params.page} requested from a {pages}-page image"
                        )
                    img.seek(params.page)
                target = None
                if params.shrink and params.shrink > 1:
                    target = _shrink_target(img.size, params.shrink)
                    # JPEG can shrink while decoding; other formats are resized
                    img.draft(img.mode, target)
                img.load()
                decoded = img.copy()
    except (ImageError, StreamError):
        raise
    except Warning as e:
        raise ImageDecodeError(f"Decoder warning for {fmt}: {e}") from e
    except (OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Failed to decode {fmt}: {e}") from e

    if target is not None and decoded.size != target:
        decoded = transform.resize_to(decoded, *target)
    ref = ImageRef(decoded, image_type, pages)
    if params.autorotate:
        ref.autorotate()
    log.debug(
        "Decoded %s %dx%d %s [pages %d]",
        image_type.value, ref.width, ref.height, ref.mode, pages,
    )
    return ref


def load_image_from_buffer(
    buf: bytes | bytearray | memoryview,
    params: ImportParams | None = None,
    *,
    logger: logging.Logger | None = None,
) -> ImageRef:
    """Decode an image held in memory."""
    log = get_logger(__name__, logger)
    data = bytes(buf)
    if not data:
        raise ImageDecodeError("Cannot load an empty buffer")
    image_type = determine_image_type(data)
    _check_supported(image_type)
    return _decode(io.BytesIO(data), image_type, params or ImportParams(), log)


def _drain(source: SourceAdapter) -> bytes:
    chunks = []
    while True:
        chunk = source.read(STREAM_CHUNK_SIZE)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def load_image_from_source(
    host: Any,
    params: ImportParams | None = None,
    *,
    registry: HandleRegistry | None = None,
    logger: logging.Logger | None = None,
) -> ImageRef:
    """Decode an image from a host source through a source adapter.

    Args:
        host: HostSource, readable binary file object or bytes.
        params: Decoder options.
        registry: Handle registry (the default registry when omitted).
        logger: Logger for the adapter and the decoder.

    Raises:
        StreamIOError: The host failed a read or seek.
        StreamProtocolError: The adapter was misused.
        UnsupportedFormatError: The format is unknown or has no decoder.
        ImageDecodeError: The decoder rejected the data.
    """
    log = get_logger(__name__, logger)
    params = params or ImportParams()

    with open_source(host, registry=registry, logger=logger) as source:
        try:
            if source.seekable():
                header = source.read(HEADER_SNIFF_BYTES)
                image_type = determine_image_type(header, partial=True)
                _check_supported(image_type)
                source.seek(0)
                return _decode(source, image_type, params, log)

            log.debug("Source handle %d is not seekable, reading it to the end", source.handle)
            data = _drain(source)
            if not data:
                raise ImageDecodeError("Source is empty")
            image_type = determine_image_type(data)
            _check_supported(image_type)
            return _decode(io.BytesIO(data), image_type, params, log)
        except ImageError:
            # A host failure the decoder turned into a decode error wins
            source.raise_if_failed()
            raise


def load_image_from_file(
    path: str | os.PathLike,
    params: ImportParams | None = None,
    *,
    registry: HandleRegistry | None = None,
    logger: logging.Logger | None = None,
) -> ImageRef:
    """Decode an image file by streaming it through a source adapter."""
    with open(path, "rb") as fp:
        return load_image_from_source(
            ReaderSource(fp), params, registry=registry, logger=logger
        )
