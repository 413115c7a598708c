"""
ImageRef: a decoded image plus the facts known about where it came from.

Operations on an ImageRef replace its image in place and return None, so a
sequence of edits reads as a sequence of statements:

    ref = load_image_from_buffer(data)
    ref.autorotate()
    ref.thumbnail(320, 240, Interesting.CENTRE)
    jpeg, _ = ref.export(JpegExportParams(quality=85))

The pixel work itself lives in ``imaging.transform`` and ``imaging.text``.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from PIL import Image

from config import DEFAULT_DPI
from errors import ImageOperationError
from . import text, transform
from .arrays import ALPHA_MODES
from .export import export_to_buffer, export_to_target
from .types import (
    Angle,
    BlendMode,
    Color,
    Direction,
    Extend,
    ImageType,
    Intent,
    Interesting,
    Interpretation,
    Kernel,
)

logger = logging.getLogger(__name__)


class ImageRef:
    """Mutable handle to a decoded image.

    Args:
        image: Fully loaded Pillow image. Owned by the ref from now on.
        format: Format the image was decoded from (UNKNOWN for images
                created in memory).
        pages: Number of pages/frames in the source.
    """

    def __init__(
        self,
        image: Image.Image,
        format: ImageType = ImageType.UNKNOWN,
        pages: int = 1,
    ):
        self._image = image
        self._format = ImageType(format)
        self._pages = pages
        self._closed = False

    def __repr__(self) -> str:
        return (
            f"ImageRef({self.width}x{self.height} {self.mode} "
            f"format={self._format.value})"
        )

    def __enter__(self) -> ImageRef:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    @property
    def image(self) -> Image.Image:
        """The underlying Pillow image."""
        if self._closed:
            raise ImageOperationError("ImageRef is closed")
        return self._image

    def _set(self, image: Image.Image) -> None:
        self._image = image

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def bands(self) -> int:
        return len(self.image.getbands())

    @property
    def mode(self) -> str:
        return self.image.mode

    @property
    def format(self) -> ImageType:
        return self._format

    @property
    def interpretation(self) -> Interpretation:
        return transform.interpretation_of(self.image)

    @property
    def has_alpha(self) -> bool:
        if self.image.mode in ALPHA_MODES:
            return True
        return self.image.mode == "P" and "transparency" in self.image.info

    @property
    def icc_profile(self) -> bytes | None:
        return self.image.info.get("icc_profile") or None

    @property
    def has_icc_profile(self) -> bool:
        return self.icc_profile is not None

    @property
    def orientation(self) -> int:
        """EXIF orientation (1-8); 1 when absent."""
        return transform.exif_orientation(self.image)

    @property
    def pages(self) -> int:
        return self._pages

    @property
    def res_x(self) -> float:
        """Horizontal resolution in pixels per inch."""
        return float(self.image.info.get("dpi", (DEFAULT_DPI, DEFAULT_DPI))[0])

    @property
    def res_y(self) -> float:
        return float(self.image.info.get("dpi", (DEFAULT_DPI, DEFAULT_DPI))[1])

    # -------------------------------------------------------------------------
    # Geometry
    # -------------------------------------------------------------------------

    def resize(self, scale: float, vscale: float | None = None, kernel: Kernel = Kernel.AUTO) -> None:
        self._set(transform.resize(self.image, scale, vscale, kernel))

    def thumbnail(self, width: int, height: int, crop: Interesting = Interesting.NONE) -> None:
        self._set(transform.thumbnail(self.image, width, height, crop))

    def rotate(self, angle: Angle) -> None:
        self._set(transform.rotate(self.image, angle))

    def rotate_by(self, degrees: float, background: Color | None = None) -> None:
        self._set(transform.rotate_by(self.image, degrees, background))

    def flip(self, direction: Direction) -> None:
        self._set(transform.flip(self.image, direction))

    def autorotate(self) -> int:
        """Apply and clear the EXIF orientation; return the orientation applied."""
        image, orientation = transform.autorotate(self.image)
        self._set(image)
        return orientation

    def extract_area(self, left: int, top: int, width: int, height: int) -> None:
        self._set(transform.extract_area(self.image, left, top, width, height))

    def embed(
        self,
        left: int,
        top: int,
        width: int,
        height: int,
        extend: Extend = Extend.BLACK,
        background: Color | None = None,
    ) -> None:
        self._set(transform.embed(self.image, left, top, width, height, extend, background))

    def zoom(self, xfac: int, yfac: int) -> None:
        self._set(transform.zoom(self.image, xfac, yfac))

    # -------------------------------------------------------------------------
    # Pixels and colour
    # -------------------------------------------------------------------------

    def gaussian_blur(self, sigma: float) -> None:
        self._set(transform.gaussian_blur(self.image, sigma))

    def invert(self) -> None:
        self._set(transform.invert(self.image))

    def flatten(self, background: Color | None = None) -> None:
        self._set(transform.flatten(self.image, background))

    def add_alpha(self) -> None:
        self._set(transform.add_alpha(self.image))

    def extract_band(self, band: int, n: int = 1) -> None:
        self._set(transform.extract_band(self.image, band, n))

    def linear(self, a: float | Sequence[float], b: float | Sequence[float]) -> None:
        self._set(transform.linear(self.image, a, b))

    def average(self) -> float:
        return transform.average(self.image)

    def to_colorspace(self, interpretation: Interpretation) -> None:
        self._set(transform.to_colorspace(self.image, interpretation))

    def icc_transform(
        self,
        output_profile,
        input_profile=None,
        intent: Intent = Intent.PERCEPTUAL,
        embedded: bool = True,
    ) -> None:
        self._set(
            transform.icc_transform(self.image, output_profile, input_profile, intent, embedded)
        )

    def remove_icc_profile(self) -> None:
        self._set(transform.remove_icc_profile(self.image))

    def composite(self, overlays: Sequence[tuple[ImageRef, BlendMode, int, int]]) -> None:
        """Blend other refs onto this one; each item is (ref, mode, x, y)."""
        self._set(
            transform.composite(
                self.image, [(ref.image, mode, x, y) for ref, mode, x, y in overlays]
            )
        )

    # -------------------------------------------------------------------------
    # Text
    # -------------------------------------------------------------------------

    def label(self, params: text.LabelParams) -> None:
        self._set(text.label(self.image, params))

    def watermark_text(self, params: text.WatermarkTextParams) -> None:
        self._set(text.watermark_text(self.image, params))

    def watermark_image(self, watermark: ImageRef, params: text.WatermarkImageParams) -> None:
        self._set(text.watermark_image(self.image, watermark.image, params))

    # -------------------------------------------------------------------------
    # Lifetime and export
    # -------------------------------------------------------------------------

    def copy(self) -> ImageRef:
        return ImageRef(self.image.copy(), self._format, self._pages)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._image.close()

    def export(self, params=None) -> tuple[bytes, ImageType]:
        """Encode to bytes; see ``imaging.export.export_to_buffer``."""
        return export_to_buffer(self, params)

    def export_to_target(self, host, params=None, **kwargs) -> ImageType:
        """Encode into a host target; see ``imaging.export.export_to_target``."""
        return export_to_target(self, host, params, **kwargs)

    def to_bytes(self) -> bytes:
        """Encode in the source format (PNG when that cannot be written)."""
        data, _ = self.export()
        return data
