"""
Typed export parameters and encoding.

Each output format has its own parameter model with the options its encoder
understands. ``ExportParams`` is the format-agnostic variant: it carries the
common knobs and resolves to the matching format model.

Canonical defaults (one set per format, see config.py):
- JPEG: quality 80, 4:2:0 chroma subsampling, baseline, no Huffman
  optimisation
- PNG: zlib level 6
- WebP: quality 80, effort 4
- TIFF: LZW
- AVIF: quality 80, speed 5

Encoders that write sequentially stream straight into the target adapter.
TIFF, HEIF and AVIF need random access to their output, so they are encoded
into memory first and then pushed through the adapter in order.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, Any, ClassVar, Union

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field

from config import (
    AUTO_SUBSAMPLE_QUALITY,
    DEFAULT_AVIF_SPEED,
    DEFAULT_GIF_BITDEPTH,
    DEFAULT_JPEG_SUBSAMPLE,
    DEFAULT_PNG_COMPRESSION,
    DEFAULT_QUALITY,
    DEFAULT_TIFF_COMPRESSION,
    DEFAULT_WEBP_EFFORT,
    STREAM_CHUNK_SIZE,
)
from errors import ImageEncodeError, StreamError, UnsupportedFormatError
from logging_utils import get_logger
from streams import HandleRegistry, open_target
from warnings_utils import codec_warnings
from . import transform
from .arrays import ALPHA_MODES, SIXTEEN_BIT_MODES
from .formats import is_save_supported, pillow_format
from .types import Color, ImageType, Interpretation, SubsampleMode, TiffCompression

if TYPE_CHECKING:
    from .image import ImageRef

logger = logging.getLogger(__name__)

# Encoders that seek in their output
SPOOLED_TYPES = frozenset({ImageType.TIFF, ImageType.HEIF, ImageType.AVIF})

_TIFF_COMPRESSION = {
    TiffCompression.NONE: "raw",
    TiffCompression.LZW: "tiff_lzw",
    TiffCompression.DEFLATE: "tiff_adobe_deflate",
    TiffCompression.JPEG: "jpeg",
    TiffCompression.PACKBITS: "packbits",
}


# =============================================================================
# Mode helpers
# =============================================================================


def _to_8bit_colour(img: Image.Image, keep_alpha: bool) -> Image.Image:
    """Reduce to L/LA/RGB/RGBA, flattening alpha onto black unless kept."""
    if img.mode in SIXTEEN_BIT_MODES or img.mode == "I":
        img = transform.to_colorspace(img, Interpretation.B_W)
    if img.mode in ("LAB", "HSV", "CMYK"):
        img = transform.to_colorspace(img, Interpretation.SRGB)
    if img.mode in ("1", "P", "PA", "La", "RGBa", "RGBX"):
        has_alpha = img.mode in ("PA", "La", "RGBa") or "transparency" in img.info
        if img.mode in ("1", "La"):
            img = img.convert("LA" if img.mode == "La" else "L")
        else:
            img = img.convert("RGBA" if has_alpha else "RGB")
    if not keep_alpha and img.mode in ALPHA_MODES:
        img = transform.flatten(img)
    return img


# =============================================================================
# Per-format parameters
# =============================================================================


class FormatExportParams(BaseModel):
    """Options shared by every format."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    image_type: ClassVar[ImageType] = ImageType.UNKNOWN

    strip_metadata: bool = False

    def prepare(self, img: Image.Image) -> Image.Image:
        """Convert ``img`` into a mode the encoder accepts."""
        return img

    def save_options(self, img: Image.Image) -> dict[str, Any]:
        """Keyword arguments for ``Image.save``."""
        return {}

    def _metadata(self, img: Image.Image, exif: bool = True) -> dict[str, Any]:
        if self.strip_metadata:
            return {}
        options = {}
        if img.info.get("icc_profile"):
            options["icc_profile"] = img.info["icc_profile"]
        if exif and img.info.get("exif"):
            options["exif"] = img.info["exif"]
        return options


class JpegExportParams(FormatExportParams):
    """JPEG options.

    ``interlace`` writes a progressive JPEG. ``optimize_coding`` computes
    optimal Huffman tables. Alpha is flattened onto black.
    """

    image_type: ClassVar[ImageType] = ImageType.JPEG

    quality: int = Field(DEFAULT_QUALITY, ge=1, le=100)
    interlace: bool = False
    optimize_coding: bool = False
    subsample_mode: SubsampleMode = SubsampleMode(DEFAULT_JPEG_SUBSAMPLE)

    def prepare(self, img: Image.Image) -> Image.Image:
        if img.mode == "CMYK":
            return img
        return _to_8bit_colour(img, keep_alpha=False)

    def subsampling(self) -> int:
        """Pillow subsampling value: 2 is 4:2:0, 0 is 4:4:4."""
        if self.subsample_mode is SubsampleMode.OFF:
            return 0
        if self.subsample_mode is SubsampleMode.AUTO and self.quality >= AUTO_SUBSAMPLE_QUALITY:
            return 0
        return 2

    def save_options(self, img: Image.Image) -> dict[str, Any]:
        return {
            "quality": self.quality,
            "progressive": self.interlace,
            "optimize": self.optimize_coding,
            "subsampling": self.subsampling(),
            **self._metadata(img),
        }


class PngExportParams(FormatExportParams):
    """PNG options.

    With ``palette`` the image is quantised to at most 2**bitdepth colours,
    scaled down by ``quality`` (100 keeps every palette slot).
    """

    image_type: ClassVar[ImageType] = ImageType.PNG

    compression: int = Field(DEFAULT_PNG_COMPRESSION, ge=0, le=9)
    palette: bool = False
    quality: int = Field(100, ge=1, le=100)
    bitdepth: int | None = Field(None, ge=1, le=16)

    def colours(self) -> int:
        slots = 2 ** min(self.bitdepth or 8, 8)
        return max(2, int(round(slots * self.quality / 100)))

    def prepare(self, img: Image.Image) -> Image.Image:
        if self.palette:
            rgb = _to_8bit_colour(img, keep_alpha=True)
            if rgb.mode in ("L", "LA"):
                rgb = rgb.convert("RGBA" if rgb.mode == "LA" else "RGB")
            return rgb.quantize(colors=self.colours())
        if self.bitdepth == 16 and img.mode in ("L", "1"):
            return transform.to_colorspace(img, Interpretation.GREY16)
        if img.mode in SIXTEEN_BIT_MODES and (self.bitdepth is None or self.bitdepth > 8):
            return img
        return _to_8bit_colour(img, keep_alpha=True)

    def save_options(self, img: Image.Image) -> dict[str, Any]:
        options = {"compress_level": self.compression, **self._metadata(img)}
        if self.palette and self.bitdepth is not None and self.bitdepth < 8:
            options["bits"] = self.bitdepth
        return options


class WebpExportParams(FormatExportParams):
    """WebP options.

    The encoder has no separate near-lossless preprocessing; requesting it
    encodes losslessly.
    """

    image_type: ClassVar[ImageType] = ImageType.WEBP

    quality: int = Field(DEFAULT_QUALITY, ge=1, le=100)
    lossless: bool = False
    near_lossless: bool = False
    reduction_effort: int = Field(DEFAULT_WEBP_EFFORT, ge=0, le=6)

    def prepare(self, img: Image.Image) -> Image.Image:
        img = _to_8bit_colour(img, keep_alpha=True)
        if img.mode in ("L", "LA"):
            img = img.convert("RGBA" if img.mode == "LA" else "RGB")
        return img

    def save_options(self, img: Image.Image) -> dict[str, Any]:
        return {
            "quality": self.quality,
            "lossless": self.lossless or self.near_lossless,
            "method": self.reduction_effort,
            **self._metadata(img),
        }


class TiffExportParams(FormatExportParams):
    """TIFF options. ``xres``/``yres`` are pixels per inch; None keeps the image's."""

    image_type: ClassVar[ImageType] = ImageType.TIFF

    compression: TiffCompression = TiffCompression(DEFAULT_TIFF_COMPRESSION)
    quality: int = Field(DEFAULT_QUALITY, ge=1, le=100)
    xres: float | None = Field(None, gt=0)
    yres: float | None = Field(None, gt=0)

    def prepare(self, img: Image.Image) -> Image.Image:
        if self.compression is TiffCompression.JPEG:
            if img.mode == "CMYK":
                return img
            return _to_8bit_colour(img, keep_alpha=False)
        if img.mode in ("P", "PA", "1", "La", "RGBa", "HSV"):
            return _to_8bit_colour(img, keep_alpha=True)
        return img

    def save_options(self, img: Image.Image) -> dict[str, Any]:
        options: dict[str, Any] = {
            "compression": _TIFF_COMPRESSION[self.compression],
            **self._metadata(img, exif=False),
        }
        if self.compression is TiffCompression.JPEG:
            options["quality"] = self.quality
        dpi = img.info.get("dpi")
        xres = self.xres or (dpi[0] if dpi else None)
        yres = self.yres or (dpi[1] if dpi else None)
        if xres and yres:
            options["dpi"] = (xres, yres)
        return options


class GifExportParams(FormatExportParams):
    """GIF options: palette size as ``bitdepth`` bits, dithering, interlace."""

    image_type: ClassVar[ImageType] = ImageType.GIF

    bitdepth: int = Field(DEFAULT_GIF_BITDEPTH, ge=1, le=8)
    dither: bool = True
    interlace: bool = False

    def prepare(self, img: Image.Image) -> Image.Image:
        rgb = _to_8bit_colour(img, keep_alpha=True)
        if rgb.mode in ("L", "LA"):
            rgb = rgb.convert("RGBA" if rgb.mode == "LA" else "RGB")
        dither = Image.Dither.FLOYDSTEINBERG if self.dither else Image.Dither.NONE
        return rgb.quantize(colors=2 ** self.bitdepth, dither=dither)

    def save_options(self, img: Image.Image) -> dict[str, Any]:
        return {"interlace": self.interlace, "optimize": False}


class HeifExportParams(FormatExportParams):
    """HEIF options (needs a HEIF plugin registered with Pillow)."""

    image_type: ClassVar[ImageType] = ImageType.HEIF

    quality: int = Field(DEFAULT_QUALITY, ge=1, le=100)
    lossless: bool = False

    def prepare(self, img: Image.Image) -> Image.Image:
        return _to_8bit_colour(img, keep_alpha=True)

    def save_options(self, img: Image.Image) -> dict[str, Any]:
        quality = -1 if self.lossless else self.quality
        return {"quality": quality, **self._metadata(img)}


class AvifExportParams(FormatExportParams):
    """AVIF options. Lossless output uses quality 100 without chroma subsampling."""

    image_type: ClassVar[ImageType] = ImageType.AVIF

    quality: int = Field(DEFAULT_QUALITY, ge=1, le=100)
    lossless: bool = False
    speed: int = Field(DEFAULT_AVIF_SPEED, ge=0, le=9)

    def prepare(self, img: Image.Image) -> Image.Image:
        img = _to_8bit_colour(img, keep_alpha=True)
        if img.mode in ("L", "LA"):
            img = img.convert("RGBA" if img.mode == "LA" else "RGB")
        return img

    def save_options(self, img: Image.Image) -> dict[str, Any]:
        options = {"quality": self.quality, "speed": self.speed, **self._metadata(img)}
        if self.lossless:
            options.update(quality=100, subsampling="4:4:4")
        return options


class BmpExportParams(FormatExportParams):
    image_type: ClassVar[ImageType] = ImageType.BMP

    def prepare(self, img: Image.Image) -> Image.Image:
        img = _to_8bit_colour(img, keep_alpha=True)
        if img.mode == "LA":
            img = img.convert("RGBA")
        return img


FORMAT_PARAMS: dict[ImageType, type[FormatExportParams]] = {
    cls.image_type: cls
    for cls in (
        JpegExportParams,
        PngExportParams,
        WebpExportParams,
        TiffExportParams,
        GifExportParams,
        HeifExportParams,
        AvifExportParams,
        BmpExportParams,
    )
}


# =============================================================================
# Format-agnostic parameters
# =============================================================================


class ExportParams(BaseModel):
    """Format-agnostic export options.

    Attributes:
        format: Output format. UNKNOWN keeps the source format, or PNG when
                the source format cannot be written.
        quality: 1-100; None means DEFAULT_QUALITY.
        compression: 0-9 zlib level for PNG; None means the PNG default.
        interlace: Progressive JPEG / interlaced GIF.
        lossless: Lossless WebP, HEIF or AVIF.
        strip_metadata: Drop ICC profile and EXIF.
        interpretation: Convert to this colour space before encoding.
        background: Flatten alpha onto this colour before encoding.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    format: ImageType = ImageType.UNKNOWN
    quality: int | None = Field(None, ge=1, le=100)
    compression: int | None = Field(None, ge=0, le=9)
    interlace: bool = False
    lossless: bool = False
    strip_metadata: bool = False
    interpretation: Interpretation | None = None
    background: Color | None = None

    def output_type(self, source_format: ImageType = ImageType.UNKNOWN) -> ImageType:
        if self.format is not ImageType.UNKNOWN:
            return self.format
        if source_format in FORMAT_PARAMS and is_save_supported(source_format):
            return source_format
        return ImageType.PNG

    def resolve(self, source_format: ImageType = ImageType.UNKNOWN) -> FormatExportParams:
        """Build the format-specific parameters these options describe."""
        image_type = self.output_type(source_format)
        if image_type not in FORMAT_PARAMS:
            raise UnsupportedFormatError(f"Cannot export to {image_type.value}")

        quality = self.quality if self.quality is not None else DEFAULT_QUALITY
        common = {"strip_metadata": self.strip_metadata}
        if image_type is ImageType.JPEG:
            return JpegExportParams(quality=quality, interlace=self.interlace, **common)
        if image_type is ImageType.PNG:
            compression = (
                self.compression if self.compression is not None else DEFAULT_PNG_COMPRESSION
            )
            return PngExportParams(compression=compression, **common)
        if image_type is ImageType.WEBP:
            return WebpExportParams(quality=quality, lossless=self.lossless, **common)
        if image_type is ImageType.TIFF:
            return TiffExportParams(quality=quality, **common)
        if image_type is ImageType.GIF:
            return GifExportParams(interlace=self.interlace, **common)
        if image_type is ImageType.HEIF:
            return HeifExportParams(quality=quality, lossless=self.lossless, **common)
        if image_type is ImageType.AVIF:
            return AvifExportParams(quality=quality, lossless=self.lossless, **common)
        return BmpExportParams(**common)


AnyExportParams = Union[ExportParams, FormatExportParams]


# =============================================================================
# Encoding
# =============================================================================


def prepare_for_export(ref: ImageRef, params: ExportParams) -> Image.Image:
    """Apply the generic pre-encode adjustments without touching ``ref``.

    Strips the ICC profile, converts the colour space and flattens alpha
    onto the background, each only when ``params`` asks for it.
    """
    img = ref.image
    if params.strip_metadata:
        img = transform.remove_icc_profile(img)
        img.info.pop("exif", None)
    if params.interpretation is not None:
        img = transform.to_colorspace(img, params.interpretation)
    if params.background is not None and ref.has_alpha:
        img = transform.flatten(img, params.background)
    return img


def _resolve(
    ref: ImageRef,
    params: AnyExportParams | None,
) -> tuple[FormatExportParams, Image.Image]:
    if params is None:
        params = ExportParams()
    if isinstance(params, ExportParams):
        img = prepare_for_export(ref, params)
        format_params = params.resolve(ref.format)
    else:
        img = ref.image
        format_params = params

    image_type = format_params.image_type
    if not is_save_supported(image_type):
        raise UnsupportedFormatError(
            f"Saving {image_type.value} is not supported by this Pillow build"
        )
    return format_params, format_params.prepare(img)


def _encode(
    img: Image.Image,
    fp: Any,
    params: FormatExportParams,
    log: logging.Logger,
) -> None:
    fmt = pillow_format(params.image_type)
    options = params.save_options(img)
    log.debug("Encoding %s %dx%d as %s", img.mode, img.width, img.height, fmt)
    try:
        with codec_warnings(False, log):
            img.save(fp, format=fmt, **options)
    except StreamError:
        raise
    except (OSError, ValueError, KeyError) as e:
        raise ImageEncodeError(f"Failed to encode {fmt}: {e}") from e


def export_to_buffer(
    ref: ImageRef,
    params: AnyExportParams | None = None,
    *,
    logger: logging.Logger | None = None,
) -> tuple[bytes, ImageType]:
    """Encode ``ref`` into memory.

    Returns:
        (encoded bytes, format written).
    """
    log = get_logger(__name__, logger)
    format_params, img = _resolve(ref, params)
    buf = io.BytesIO()
    _encode(img, buf, format_params, log)
    return buf.getvalue(), format_params.image_type


def export_to_target(
    ref: ImageRef,
    host: Any,
    params: AnyExportParams | None = None,
    *,
    registry: HandleRegistry | None = None,
    logger: logging.Logger | None = None,
) -> ImageType:
    """Encode ``ref`` into a host target through a target adapter.

    Args:
        ref: Image to encode.
        host: HostTarget or a writable binary file object.
        params: Generic or format-specific export parameters.
        registry: Handle registry (the default registry when omitted).
        logger: Logger for the adapter and the encoder.

    Returns:
        The format written.
    """
    log = get_logger(__name__, logger)
    format_params, img = _resolve(ref, params)

    with open_target(host, registry=registry, logger=logger) as target:
        if format_params.image_type in SPOOLED_TYPES:
            spool = io.BytesIO()
            _encode(img, spool, format_params, log)
            with spool.getbuffer() as view:
                for offset in range(0, len(view), STREAM_CHUNK_SIZE):
                    target.write(view[offset:offset + STREAM_CHUNK_SIZE])
        else:
            _encode(img, target, format_params, log)
    log.debug(
        "Exported %s [writes %d | bytes %d]",
        format_params.image_type.value, target.writes, target.bytes_written,
    )
    return format_params.image_type
