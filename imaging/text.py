"""
Text labels and watermarks.

Text is rendered by Pillow into an 8-bit coverage mask, scaled by the
requested opacity and used to blend a solid colour into the image. Alpha
bands of the target image are left untouched.

Key components:
- LabelParams / label: text placed at an explicit offset
- WatermarkTextParams / watermark_text: text aligned to an image edge
- WatermarkImageParams / watermark_image: an image laid over another
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from config import DEFAULT_DPI, DEFAULT_FONT, DEFAULT_LABEL_OPACITY, DEFAULT_WATERMARK_MARGIN
from errors import ImageOperationError
from .arrays import carry_info, from_array, join_alpha, max_value, normalize_mode, split_alpha, to_array
from .transform import align_offset, composite
from .types import Align, BlendMode, Color, Scalar

logger = logging.getLogger(__name__)

_PIL_ALIGN = {Align.LOW: "left", Align.CENTRE: "center", Align.HIGH: "right"}


@dataclass(frozen=True)
class LabelParams:
    """Options for ``label``.

    Attributes:
        text: Text to draw. Newlines start new lines.
        font: "family size" (e.g. "sans 10"). The family is looked up as a
              TrueType font; Pillow's built-in font is used when it cannot
              be found.
        width: Wrap width; zero means no wrapping. A single word longer
               than the width is not broken.
        height: Clip height; zero means no clipping.
        offset_x: Left edge of the text box.
        offset_y: Top edge of the text box.
        opacity: Text opacity, 0.0 - 1.0.
        color: Text colour.
        align: Alignment of lines inside the text box.
        dpi: Resolution used to turn the font's point size into pixels.
    """

    text: str
    font: str = DEFAULT_FONT
    width: Scalar = field(default_factory=Scalar)
    height: Scalar = field(default_factory=Scalar)
    offset_x: Scalar = field(default_factory=Scalar)
    offset_y: Scalar = field(default_factory=Scalar)
    opacity: float = DEFAULT_LABEL_OPACITY
    color: Color = field(default_factory=Color)
    align: Align = Align.LOW
    dpi: int = DEFAULT_DPI

    def validate(self) -> None:
        if not self.text:
            raise ImageOperationError("Label text must not be empty")
        if not 0.0 <= self.opacity <= 1.0:
            raise ImageOperationError(f"opacity must be in [0, 1], got {self.opacity}")
        if self.dpi <= 0:
            raise ImageOperationError(f"dpi must be positive, got {self.dpi}")
        parse_font(self.font)


@dataclass(frozen=True)
class WatermarkTextParams:
    """Options for ``watermark_text``.

    The text box is wrapped to the image width and aligned to an edge,
    ``margin`` pixels in. Text that does not fit is cropped.
    """

    text: str
    font: str = DEFAULT_FONT
    opacity: float = DEFAULT_LABEL_OPACITY
    color: Color = field(default_factory=lambda: Color(255, 255, 255))
    horizontal: Align = Align.HIGH
    vertical: Align = Align.HIGH
    margin: int = DEFAULT_WATERMARK_MARGIN
    dpi: int = DEFAULT_DPI

    def validate(self) -> None:
        if not self.text:
            raise ImageOperationError("Watermark text must not be empty")
        if not 0.0 <= self.opacity <= 1.0:
            raise ImageOperationError(f"opacity must be in [0, 1], got {self.opacity}")
        if self.margin < 0:
            raise ImageOperationError(f"margin must be >= 0, got {self.margin}")
        parse_font(self.font)


@dataclass(frozen=True)
class WatermarkImageParams:
    """Options for ``watermark_image``: top-left position and opacity."""

    left: int = 0
    top: int = 0
    opacity: float = 1.0

    def validate(self) -> None:
        if not 0.0 <= self.opacity <= 1.0:
            raise ImageOperationError(f"opacity must be in [0, 1], got {self.opacity}")


def parse_font(font: str) -> tuple[str, float]:
    """Split "family size" into (family, point size)."""
    parts = font.rsplit(None, 1)
    if len(parts) != 2:
        raise ImageOperationError(f"Font must be 'family size', got {font!r}")
    family, size_text = parts
    try:
        size = float(size_text)
    except ValueError:
        raise ImageOperationError(f"Invalid font size in {font!r}") from None
    if size <= 0:
        raise ImageOperationError(f"Font size must be positive in {font!r}")
    return family, size


def load_font(font: str, dpi: int = DEFAULT_DPI) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    family, points = parse_font(font)
    pixels = max(1, int(round(points * dpi / 72.0)))
    try:
        return ImageFont.truetype(family, pixels)
    except OSError:
        logger.debug("Font %r not found, using the built-in font", family)
        return ImageFont.load_default(size=pixels)


def _wrap(text: str, font, width: int) -> str:
    """Greedy word wrap to ``width`` pixels (no wrapping when width <= 0)."""
    if width <= 0:
        return text
    lines = []
    for paragraph in text.split("\n"):
        line = ""
        for word in paragraph.split(" "):
            candidate = word if not line else f"{line} {word}"
            if line and font.getlength(candidate) > width:
                lines.append(line)
                line = word
            else:
                line = candidate
        lines.append(line)
    return "\n".join(lines)


def render_text(
    text: str,
    font: str = DEFAULT_FONT,
    width: int = 0,
    height: int = 0,
    align: Align = Align.LOW,
    dpi: int = DEFAULT_DPI,
) -> np.ndarray:
    """Render text into a uint8 coverage mask (255 = fully covered).

    Lines are wrapped to ``width`` pixels when it is positive. The mask is
    as large as the inked text box and at most ``height`` tall when that is
    positive.
    """
    pil_font = load_font(font, dpi)
    wrapped = _wrap(text, pil_font, width)
    pil_align = _PIL_ALIGN[Align(align)]
    probe = ImageDraw.Draw(Image.new("L", (1, 1)))
    left, top, right, bottom = probe.multiline_textbbox(
        (0, 0), wrapped, font=pil_font, align=pil_align
    )
    box_w = max(1, right - left)
    box_h = max(1, bottom - top)

    mask = Image.new("L", (box_w, box_h), 0)
    draw = ImageDraw.Draw(mask)
    draw.multiline_text(
        (-left, -top), wrapped, fill=255, font=pil_font, align=pil_align
    )
    arr = np.asarray(mask, dtype=np.uint8)
    if height > 0:
        arr = arr[:height]
    return arr


def _blend_mask(
    img: Image.Image,
    mask: np.ndarray,
    x: int,
    y: int,
    color: Color,
    opacity: float,
) -> Image.Image:
    """Blend ``color`` into ``img`` through ``mask`` placed at (x, y)."""
    src = normalize_mode(img)
    if src.mode in ("CMYK", "LAB", "HSV"):
        raise ImageOperationError(f"Cannot draw text on a {src.mode} image")
    arr = to_array(src)
    colour, alpha = split_alpha(arr, src.mode)
    h, w = colour.shape[:2]

    x0, y0 = max(x, 0), max(y, 0)
    x1 = min(x + mask.shape[1], w)
    y1 = min(y + mask.shape[0], h)
    if x0 >= x1 or y0 >= y1:
        logger.debug("Text at %d,%d lies outside the %dx%d image", x, y, w, h)
        return img.copy()

    peak = max_value(arr)
    coverage = mask[y0 - y:y1 - y, x0 - x:x1 - x].astype(np.float64) / 255.0 * opacity
    rgb = np.array(color.as_tuple(), dtype=np.float64) * peak / 255.0
    out = colour.astype(np.float64)
    region = out[y0:y1, x0:x1]
    if colour.ndim == 2:
        ink = 0.299 * rgb[0] + 0.587 * rgb[1] + 0.114 * rgb[2]
        region[...] = region * (1.0 - coverage) + ink * coverage
    else:
        cov = coverage[..., np.newaxis]
        region[...] = region * (1.0 - cov) + rgb[: colour.shape[2]] * cov
    out = np.clip(np.rint(out), 0, peak).astype(arr.dtype)
    return carry_info(from_array(join_alpha(out, alpha), src.mode), img)


def label(img: Image.Image, params: LabelParams) -> Image.Image:
    """Draw ``params.text`` onto the image at the configured offset."""
    params.validate()
    width = params.width.get_rounded(img.width)
    height = params.height.get_rounded(img.height)
    mask = render_text(
        params.text, params.font, width, height, params.align, params.dpi
    )
    x = params.offset_x.get_rounded(img.width)
    y = params.offset_y.get_rounded(img.height)
    logger.debug(
        "Label %r: %dx%d at %d,%d", params.text, mask.shape[1], mask.shape[0], x, y
    )
    return _blend_mask(img, mask, x, y, params.color, params.opacity)


def watermark_text(img: Image.Image, params: WatermarkTextParams) -> Image.Image:
    """Draw edge-aligned watermark text.

    When the text (plus margins) is larger than the image along an axis, it
    starts at the margin on that axis and is cropped to the image.
    """
    params.validate()
    mask = render_text(params.text, params.font, img.width, 0, Align.LOW, params.dpi)
    text_h, text_w = mask.shape
    margin = params.margin

    if img.width <= text_w + 2 * margin:
        x = margin
    else:
        x = margin + align_offset(img.width - 2 * margin, text_w, params.horizontal)
    if img.height <= text_h + 2 * margin:
        y = margin
    else:
        y = margin + align_offset(img.height - 2 * margin, text_h, params.vertical)

    # Text running past the far margin is cut there
    mask = mask[: max(0, img.height - margin - y), : max(0, img.width - margin - x)]
    if mask.size == 0:
        return img.copy()
    return _blend_mask(img, mask, x, y, params.color, params.opacity)


def watermark_image(
    img: Image.Image,
    watermark: Image.Image,
    params: WatermarkImageParams,
) -> Image.Image:
    """Lay ``watermark`` over the image at (left, top) with an extra opacity."""
    params.validate()
    overlay = normalize_mode(watermark).convert("RGBA")
    if params.opacity < 1.0:
        arr = to_array(overlay)
        arr[..., 3] = np.rint(arr[..., 3] * params.opacity).astype(np.uint8)
        overlay = from_array(arr, "RGBA")
    return composite(img, [(overlay, BlendMode.OVER, params.left, params.top)])
