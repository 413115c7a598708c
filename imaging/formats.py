"""
Image format detection and codec availability.

Formats are recognised from magic bytes, never from file names. Which
formats can actually be decoded or encoded depends on the Pillow build
(and any plugins registered with it), so support is looked up at call
time in Pillow's plugin registries.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET

from PIL import Image

from config import MIN_SNIFF_BYTES, SVG_SNIFF_BYTES
from .types import ImageType

logger = logging.getLogger(__name__)

_JPEG = b"\xff\xd8\xff"
_PNG = b"\x89PNG"
_GIF = b"GIF"
_TIFF_II = b"II*\x00"
_TIFF_MM = b"MM\x00*"
_WEBP = b"WEBP"
_FTYP = b"ftyp"
_HEIF_BRANDS = (b"heic", b"heix", b"mif1", b"msf1")
_AVIF_BRANDS = (b"avif", b"avis")
_SVG = b"<svg"
_PDF = b"%PDF"
_BMP = b"BM"

_PILLOW_FORMATS = {
    ImageType.JPEG: "JPEG",
    ImageType.PNG: "PNG",
    ImageType.GIF: "GIF",
    ImageType.TIFF: "TIFF",
    ImageType.WEBP: "WEBP",
    ImageType.HEIF: "HEIF",
    ImageType.AVIF: "AVIF",
    ImageType.PDF: "PDF",
    ImageType.BMP: "BMP",
}


def _is_svg(buf: bytes, partial: bool) -> bool:
    if _SVG not in buf[:SVG_SNIFF_BYTES]:
        return False
    if partial:
        # Only a prefix is available: the root start tag must be svg
        parser = ET.XMLPullParser(events=("start",))
        try:
            parser.feed(buf)
            for _event, elem in parser.read_events():
                return _local_name(elem.tag) == "svg"
        except ET.ParseError:
            return False
        return False
    try:
        root = ET.fromstring(buf)
    except ET.ParseError:
        return False
    return _local_name(root.tag) == "svg"


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def determine_image_type(buf: bytes, *, partial: bool = False) -> ImageType:
    """Detect the container format of ``buf`` from its magic bytes.

    Args:
        buf: Image bytes, or a prefix of them.
        partial: ``buf`` is only the start of the image (e.g. a header read
                 from a stream). SVG detection then checks the root tag
                 instead of parsing the whole document.

    Returns:
        The detected ImageType; UNKNOWN for buffers shorter than 12 bytes
        and for unrecognised content.
    """
    buf = bytes(buf)
    if len(buf) < MIN_SNIFF_BYTES:
        return ImageType.UNKNOWN
    if buf.startswith(_JPEG):
        return ImageType.JPEG
    if buf.startswith(_PNG):
        return ImageType.PNG
    if buf.startswith(_GIF):
        return ImageType.GIF
    if buf.startswith(_TIFF_II) or buf.startswith(_TIFF_MM):
        return ImageType.TIFF
    if buf[8:12] == _WEBP:
        return ImageType.WEBP
    if buf[4:8] == _FTYP:
        if buf[8:12] in _AVIF_BRANDS:
            return ImageType.AVIF
        if buf[8:12] in _HEIF_BRANDS:
            return ImageType.HEIF
    if _is_svg(buf, partial):
        return ImageType.SVG
    if buf.startswith(_PDF):
        return ImageType.PDF
    if buf.startswith(_BMP):
        return ImageType.BMP
    return ImageType.UNKNOWN


def pillow_format(image_type: ImageType) -> str | None:
    """Pillow format name for ``image_type``, or None if Pillow has no codec name for it."""
    return _PILLOW_FORMATS.get(image_type)


def image_type_from_pillow(fmt: str | None) -> ImageType:
    if not fmt:
        return ImageType.UNKNOWN
    fmt = fmt.upper()
    # Multi-picture JPEGs open as MPO
    if fmt == "MPO":
        return ImageType.JPEG
    for image_type, name in _PILLOW_FORMATS.items():
        if name == fmt:
            return image_type
    return ImageType.UNKNOWN


def is_type_supported(image_type: ImageType) -> bool:
    """True if the installed Pillow can decode ``image_type``."""
    fmt = pillow_format(image_type)
    if fmt is None:
        return False
    Image.init()
    return fmt in Image.OPEN


def is_save_supported(image_type: ImageType) -> bool:
    """True if the installed Pillow can encode ``image_type``."""
    fmt = pillow_format(image_type)
    if fmt is None:
        return False
    Image.init()
    return fmt in Image.SAVE


def supported_types() -> dict[ImageType, tuple[bool, bool]]:
    """Map each known type to (decode supported, encode supported)."""
    result = {}
    for image_type in ImageType:
        if image_type is ImageType.UNKNOWN:
            continue
        result[image_type] = (is_type_supported(image_type), is_save_supported(image_type))
    logger.debug("Codec support: %s", {t.value: s for t, s in result.items()})
    return result
