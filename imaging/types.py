"""
Enumerations and value objects shared by the imaging operations.

Every option that selects one of a fixed set of behaviours is an Enum so
that operations take typed arguments instead of free-form strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class ImageType(str, Enum):
    """Container formats recognised by sniffing."""

    UNKNOWN = "unknown"
    JPEG = "jpeg"
    PNG = "png"
    GIF = "gif"
    TIFF = "tiff"
    WEBP = "webp"
    HEIF = "heif"
    AVIF = "avif"
    SVG = "svg"
    PDF = "pdf"
    BMP = "bmp"
    MAGICK = "magick"

    @property
    def file_ext(self) -> str:
        """Conventional file extension including the dot ("" for unknown)."""
        return _FILE_EXTENSIONS.get(self, "")

    @classmethod
    def from_extension(cls, ext: str) -> ImageType:
        ext = ext.lower()
        if not ext.startswith("."):
            ext = "." + ext
        for image_type, known in _FILE_EXTENSIONS.items():
            if known == ext:
                return image_type
        return _EXTENSION_ALIASES.get(ext, cls.UNKNOWN)


_FILE_EXTENSIONS = {
    ImageType.JPEG: ".jpeg",
    ImageType.PNG: ".png",
    ImageType.GIF: ".gif",
    ImageType.TIFF: ".tiff",
    ImageType.WEBP: ".webp",
    ImageType.HEIF: ".heic",
    ImageType.AVIF: ".avif",
    ImageType.SVG: ".svg",
    ImageType.PDF: ".pdf",
    ImageType.BMP: ".bmp",
}

_EXTENSION_ALIASES = {
    ".jpg": ImageType.JPEG,
    ".tif": ImageType.TIFF,
    ".heif": ImageType.HEIF,
}


class Interpretation(str, Enum):
    """How the bands of an image should be understood."""

    ERROR = "error"
    MULTIBAND = "multiband"
    B_W = "b-w"
    SRGB = "srgb"
    RGB = "rgb"
    RGB16 = "rgb16"
    GREY16 = "grey16"
    CMYK = "cmyk"
    LAB = "lab"
    HSV = "hsv"


class Kernel(str, Enum):
    """Resampling kernels."""

    NEAREST = "nearest"
    LINEAR = "linear"
    CUBIC = "cubic"
    LANCZOS2 = "lanczos2"
    LANCZOS3 = "lanczos3"
    AUTO = "auto"


class Angle(IntEnum):
    """Right-angle rotations, clockwise."""

    D0 = 0
    D90 = 90
    D180 = 180
    D270 = 270


class Direction(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class Extend(str, Enum):
    """How embed fills the new border."""

    BLACK = "black"
    COPY = "copy"
    REPEAT = "repeat"
    MIRROR = "mirror"
    WHITE = "white"
    BACKGROUND = "background"


class BlendMode(str, Enum):
    OVER = "over"
    MULTIPLY = "multiply"
    SCREEN = "screen"
    ADD = "add"
    DARKEN = "darken"
    LIGHTEN = "lighten"


class Align(str, Enum):
    LOW = "low"
    CENTRE = "centre"
    HIGH = "high"


class Interesting(str, Enum):
    """Which part of the image thumbnail keeps when it has to crop."""

    NONE = "none"
    CENTRE = "centre"
    LOW = "low"
    HIGH = "high"


class SubsampleMode(str, Enum):
    """JPEG chroma subsampling."""

    AUTO = "auto"
    ON = "on"
    OFF = "off"


class TiffCompression(str, Enum):
    NONE = "none"
    LZW = "lzw"
    DEFLATE = "deflate"
    JPEG = "jpeg"
    PACKBITS = "packbits"


class Intent(str, Enum):
    """ICC rendering intents."""

    PERCEPTUAL = "perceptual"
    RELATIVE = "relative"
    SATURATION = "saturation"
    ABSOLUTE = "absolute"


@dataclass(frozen=True)
class Color:
    """8-bit RGB colour."""

    r: int = 0
    g: int = 0
    b: int = 0

    def __post_init__(self):
        for name in ("r", "g", "b"):
            value = getattr(self, name)
            if not 0 <= value <= 255:
                raise ValueError(f"Color.{name} must be in [0, 255], got {value}")

    @classmethod
    def parse(cls, text: str) -> Color:
        """Parse "R,G,B" (e.g. "255,255,255")."""
        parts = [p.strip() for p in text.split(",")]
        if len(parts) != 3:
            raise ValueError(f"Expected R,G,B, got {text!r}")
        return cls(*(int(p) for p in parts))

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)


@dataclass(frozen=True)
class ColorRGBA(Color):
    """8-bit RGB colour with alpha."""

    a: int = 255

    def __post_init__(self):
        super().__post_init__()
        if not 0 <= self.a <= 255:
            raise ValueError(f"ColorRGBA.a must be in [0, 255], got {self.a}")

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.r, self.g, self.b, self.a)


@dataclass(frozen=True)
class Scalar:
    """A length given either in pixels or relative to an image dimension.

    ``Scalar(0.5, relative=True).get_rounded(200) == 100``.
    """

    value: float = 0
    relative: bool = False

    def get(self, base: int) -> float:
        if self.relative:
            return self.value * base
        return self.value

    def get_rounded(self, base: int) -> int:
        return int(round(self.get(base)))
