"""
Image transform operations.

Every function takes a Pillow image and returns a new one; inputs are never
mutated. Geometry that Pillow does losslessly (right-angle rotation, flips,
crops) stays in Pillow; resampling, blurring and border extension run on
numpy arrays through OpenCV; colour management uses Pillow's ImageCms.

Metadata (ICC profile, EXIF, DPI) is carried over to the result unless the
operation changes what it describes.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Sequence

import cv2
import numpy as np
from PIL import Image, ImageCms, ImageOps

from config import MAX_SCALE_FACTOR
from errors import ImageOperationError
from .arrays import (
    ALPHA_MODES,
    SIXTEEN_BIT_MODES,
    carry_info,
    from_array,
    join_alpha,
    max_value,
    normalize_mode,
    split_alpha,
    to_array,
)
from .types import (
    Align,
    Angle,
    BlendMode,
    Color,
    Direction,
    Extend,
    Intent,
    Interesting,
    Interpretation,
    Kernel,
)

logger = logging.getLogger(__name__)

_CV2_KERNELS = {
    Kernel.NEAREST: cv2.INTER_NEAREST,
    Kernel.LINEAR: cv2.INTER_LINEAR,
    Kernel.CUBIC: cv2.INTER_CUBIC,
    Kernel.LANCZOS2: cv2.INTER_LANCZOS4,
    Kernel.LANCZOS3: cv2.INTER_LANCZOS4,
}

_CV2_BORDERS = {
    Extend.COPY: cv2.BORDER_REPLICATE,
    Extend.REPEAT: cv2.BORDER_WRAP,
    Extend.MIRROR: cv2.BORDER_REFLECT,
}

_COLORSPACE_MODES = {
    Interpretation.B_W: "L",
    Interpretation.SRGB: "RGB",
    Interpretation.RGB: "RGB",
    Interpretation.GREY16: "I;16",
    Interpretation.CMYK: "CMYK",
    Interpretation.LAB: "LAB",
    Interpretation.HSV: "HSV",
}

_MODE_INTERPRETATIONS = {
    "1": Interpretation.B_W,
    "L": Interpretation.B_W,
    "LA": Interpretation.B_W,
    "La": Interpretation.B_W,
    "P": Interpretation.SRGB,
    "PA": Interpretation.SRGB,
    "RGB": Interpretation.SRGB,
    "RGBA": Interpretation.SRGB,
    "RGBa": Interpretation.SRGB,
    "RGBX": Interpretation.SRGB,
    "CMYK": Interpretation.CMYK,
    "LAB": Interpretation.LAB,
    "HSV": Interpretation.HSV,
    "I": Interpretation.GREY16,
}

_CMS_INTENTS = {
    Intent.PERCEPTUAL: ImageCms.Intent.PERCEPTUAL,
    Intent.RELATIVE: ImageCms.Intent.RELATIVE_COLORIMETRIC,
    Intent.SATURATION: ImageCms.Intent.SATURATION,
    Intent.ABSOLUTE: ImageCms.Intent.ABSOLUTE_COLORIMETRIC,
}


def _run_cv2(op: str, func, *args, **kwargs) -> np.ndarray:
    try:
        return func(*args, **kwargs)
    except cv2.error as e:
        raise ImageOperationError(f"{op} failed: {e}") from e


# =============================================================================
# Geometry
# =============================================================================


def resize(
    img: Image.Image,
    scale: float,
    vscale: float | None = None,
    kernel: Kernel = Kernel.AUTO,
) -> Image.Image:
    """Resize by a scale factor.

    Args:
        img: Input image.
        scale: Horizontal scale factor (> 0, at most MAX_SCALE_FACTOR).
        vscale: Vertical scale factor; defaults to ``scale``.
        kernel: Resampling kernel. AUTO uses area averaging when shrinking
                and cubic interpolation when enlarging.

    Returns:
        The resized image, at least 1x1.
    """
    vscale = scale if vscale is None else vscale
    for name, value in (("scale", scale), ("vscale", vscale)):
        if value <= 0:
            raise ImageOperationError(f"{name} must be positive, got {value}")
        if value > MAX_SCALE_FACTOR:
            raise ImageOperationError(
                f"{name} must be at most {MAX_SCALE_FACTOR}, got {value}"
            )

    width = max(1, int(round(img.width * scale)))
    height = max(1, int(round(img.height * vscale)))
    return resize_to(img, width, height, kernel)


def resize_to(
    img: Image.Image,
    width: int,
    height: int,
    kernel: Kernel = Kernel.AUTO,
) -> Image.Image:
    """Resize to exact pixel dimensions."""
    if width < 1 or height < 1:
        raise ImageOperationError(f"Target size must be at least 1x1, got {width}x{height}")
    if (width, height) == img.size:
        return img.copy()

    src = normalize_mode(img)
    if kernel is Kernel.AUTO:
        shrinking = width * height < img.width * img.height
        interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_CUBIC
    else:
        interpolation = _CV2_KERNELS[kernel]

    arr = to_array(src)
    resized = _run_cv2(
        "resize", cv2.resize, arr, (width, height), interpolation=interpolation
    )
    return carry_info(from_array(resized, src.mode), img)


def thumbnail(
    img: Image.Image,
    width: int,
    height: int,
    crop: Interesting = Interesting.NONE,
) -> Image.Image:
    """Shrink (or enlarge) to fit a width x height box.

    With ``crop`` NONE the whole image fits inside the box and the aspect
    ratio is kept. Otherwise the image fills the box and the overflow is
    cropped away, keeping the low (top/left), centre or high (bottom/right)
    part.
    """
    if width < 1 or height < 1:
        raise ImageOperationError(f"Thumbnail box must be at least 1x1, got {width}x{height}")

    x_ratio = width / img.width
    y_ratio = height / img.height
    if crop is Interesting.NONE:
        ratio = min(x_ratio, y_ratio)
        target = (
            max(1, min(width, int(round(img.width * ratio)))),
            max(1, min(height, int(round(img.height * ratio)))),
        )
        return resize_to(img, *target)

    ratio = max(x_ratio, y_ratio)
    scaled = resize_to(
        img,
        max(width, int(round(img.width * ratio))),
        max(height, int(round(img.height * ratio))),
    )
    left = _anchor(scaled.width - width, crop)
    top = _anchor(scaled.height - height, crop)
    return extract_area(scaled, left, top, width, height)


def _anchor(excess: int, crop: Interesting) -> int:
    if crop is Interesting.LOW:
        return 0
    if crop is Interesting.HIGH:
        return excess
    return excess // 2


def rotate(img: Image.Image, angle: Angle) -> Image.Image:
    """Rotate clockwise by a right angle."""
    angle = Angle(angle)
    if angle is Angle.D0:
        return img.copy()
    transposes = {
        Angle.D90: Image.Transpose.ROTATE_270,
        Angle.D180: Image.Transpose.ROTATE_180,
        Angle.D270: Image.Transpose.ROTATE_90,
    }
    return img.transpose(transposes[angle])


def rotate_by(
    img: Image.Image,
    degrees: float,
    background: Color | None = None,
) -> Image.Image:
    """Rotate clockwise by an arbitrary angle.

    The canvas grows to hold the whole rotated image; uncovered corners are
    filled with ``background`` (transparent black for images with alpha,
    black otherwise, when omitted).
    """
    if degrees % 360 == 0:
        return img.copy()
    if degrees % 90 == 0:
        return rotate(img, Angle(int(degrees % 360)))

    src = normalize_mode(img)
    arr = to_array(src)
    h, w = arr.shape[:2]
    centre = (w / 2.0, h / 2.0)
    matrix = cv2.getRotationMatrix2D(centre, -degrees, 1.0)
    cos, sin = abs(matrix[0, 0]), abs(matrix[0, 1])
    new_w = int(round(h * sin + w * cos))
    new_h = int(round(h * cos + w * sin))
    matrix[0, 2] += new_w / 2.0 - centre[0]
    matrix[1, 2] += new_h / 2.0 - centre[1]

    rotated = _run_cv2(
        "rotate",
        cv2.warpAffine,
        arr,
        matrix,
        (new_w, new_h),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=_fill_value(arr, src.mode, background),
    )
    return carry_info(from_array(rotated, src.mode), img)


def flip(img: Image.Image, direction: Direction) -> Image.Image:
    if Direction(direction) is Direction.HORIZONTAL:
        return img.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
    return img.transpose(Image.Transpose.FLIP_TOP_BOTTOM)


def autorotate(img: Image.Image) -> tuple[Image.Image, int]:
    """Apply the EXIF orientation tag and reset it.

    Returns:
        (rotated image, orientation that was applied). Orientation 1 means
        the image was already upright.
    """
    orientation = exif_orientation(img)
    if orientation == 1:
        return img.copy(), 1
    rotated = ImageOps.exif_transpose(img)
    logger.debug("Applied EXIF orientation %d", orientation)
    return rotated, orientation


def exif_orientation(img: Image.Image) -> int:
    orientation = img.getexif().get(0x0112, 1)
    try:
        orientation = int(orientation)
    except (TypeError, ValueError):
        return 1
    return orientation if 1 <= orientation <= 8 else 1


def extract_area(
    img: Image.Image,
    left: int,
    top: int,
    width: int,
    height: int,
) -> Image.Image:
    """Crop a rectangle that must lie entirely inside the image."""
    if width < 1 or height < 1:
        raise ImageOperationError(f"Area must be at least 1x1, got {width}x{height}")
    if left < 0 or top < 0 or left + width > img.width or top + height > img.height:
        raise ImageOperationError(
            f"Area {width}x{height}+{left}+{top} is outside the "
            f"{img.width}x{img.height} image"
        )
    return img.crop((left, top, left + width, top + height))


def embed(
    img: Image.Image,
    left: int,
    top: int,
    width: int,
    height: int,
    extend: Extend = Extend.BLACK,
    background: Color | None = None,
) -> Image.Image:
    """Place the image at (left, top) on a width x height canvas.

    The part of the canvas the image does not cover is filled according to
    ``extend``. Parts of the image that fall outside the canvas are cut off.
    """
    if width < 1 or height < 1:
        raise ImageOperationError(f"Canvas must be at least 1x1, got {width}x{height}")
    extend = Extend(extend)
    src = normalize_mode(img)
    arr = to_array(src)
    h, w = arr.shape[:2]

    pad_top = max(top, 0)
    pad_left = max(left, 0)
    pad_bottom = max(height - top - h, 0)
    pad_right = max(width - left - w, 0)

    if extend in _CV2_BORDERS:
        padded = _run_cv2(
            "embed", cv2.copyMakeBorder, arr,
            pad_top, pad_bottom, pad_left, pad_right, _CV2_BORDERS[extend],
        )
    else:
        if extend is Extend.WHITE:
            fill = _fill_value(arr, src.mode, Color(255, 255, 255), opaque=True)
        elif extend is Extend.BACKGROUND:
            fill = _fill_value(arr, src.mode, background or Color(), opaque=True)
        else:
            fill = _fill_value(arr, src.mode, None)
        padded = _run_cv2(
            "embed", cv2.copyMakeBorder, arr,
            pad_top, pad_bottom, pad_left, pad_right, cv2.BORDER_CONSTANT,
            value=fill,
        )

    x0 = pad_left - left
    y0 = pad_top - top
    canvas = padded[y0:y0 + height, x0:x0 + width]
    return carry_info(from_array(canvas, src.mode), img)


def _fill_value(
    arr: np.ndarray,
    mode: str,
    color: Color | None,
    opaque: bool = False,
) -> tuple[float, ...]:
    """Border value for OpenCV, matched to the array's bands and depth."""
    peak = max_value(arr)
    bands = 1 if arr.ndim == 2 else arr.shape[2]
    has_alpha = mode in ALPHA_MODES
    colour_bands = bands - 1 if has_alpha else bands

    if color is None:
        rgb = (0.0, 0.0, 0.0)
    else:
        rgb = tuple(c * peak / 255.0 for c in color.as_tuple())
    if colour_bands == 1:
        values = [0.299 * rgb[0] + 0.587 * rgb[1] + 0.114 * rgb[2]]
    else:
        values = list(rgb[:colour_bands]) + [0.0] * max(0, colour_bands - 3)
    if has_alpha:
        values.append(float(peak) if (opaque or color is not None) else 0.0)
    # OpenCV takes at most four border values
    return tuple(values[:4]) + (0.0,) * (4 - min(len(values), 4))


def zoom(img: Image.Image, xfac: int, yfac: int) -> Image.Image:
    """Enlarge by integer factors, replicating pixels."""
    if xfac < 1 or yfac < 1:
        raise ImageOperationError(f"Zoom factors must be >= 1, got {xfac}x{yfac}")
    if xfac > MAX_SCALE_FACTOR or yfac > MAX_SCALE_FACTOR:
        raise ImageOperationError(
            f"Zoom factors must be at most {MAX_SCALE_FACTOR}, got {xfac}x{yfac}"
        )
    src = normalize_mode(img)
    arr = to_array(src)
    zoomed = np.repeat(np.repeat(arr, yfac, axis=0), xfac, axis=1)
    return carry_info(from_array(zoomed, src.mode), img)


# =============================================================================
# Pixel operations
# =============================================================================


def gaussian_blur(img: Image.Image, sigma: float) -> Image.Image:
    if sigma <= 0:
        raise ImageOperationError(f"sigma must be positive, got {sigma}")
    src = normalize_mode(img)
    arr = to_array(src)
    blurred = _run_cv2("gaussian_blur", cv2.GaussianBlur, arr, (0, 0), sigma)
    return carry_info(from_array(blurred, src.mode), img)


def invert(img: Image.Image) -> Image.Image:
    """Invert colour bands; alpha is left as is."""
    src = normalize_mode(img)
    arr = to_array(src)
    colour, alpha = split_alpha(arr, src.mode)
    inverted = (max_value(arr) - colour.astype(np.int64)).astype(arr.dtype)
    return carry_info(from_array(join_alpha(inverted, alpha), src.mode), img)


def flatten(img: Image.Image, background: Color | None = None) -> Image.Image:
    """Composite the image over a solid background and drop alpha.

    Images without alpha are returned unchanged (as a copy). The background
    is scaled to the image's bit depth; one-band images use its luminance.
    """
    src = normalize_mode(img)
    if src.mode not in ALPHA_MODES:
        return src.copy() if src is img else src
    background = background or Color()

    arr = to_array(src)
    colour, alpha = split_alpha(arr, src.mode)
    peak = float(max_value(arr))
    a = alpha.astype(np.float64) / peak
    fill = np.array(_fill_value(colour, "RGB" if colour.ndim == 3 else "L", background))
    if colour.ndim == 2:
        bg = fill[0]
    else:
        bg = fill[: colour.shape[2]]
        a = a[..., np.newaxis]
    out = colour.astype(np.float64) * a + bg * (1.0 - a)
    out = np.clip(np.rint(out), 0, peak).astype(arr.dtype)
    return carry_info(from_array(out, "L" if src.mode == "LA" else "RGB"), img)


def add_alpha(img: Image.Image) -> Image.Image:
    """Add an opaque alpha band (no-op copy if one is present)."""
    src = normalize_mode(img)
    if src.mode in ALPHA_MODES:
        return src.copy() if src is img else src
    targets = {"L": "LA", "RGB": "RGBA"}
    if src.mode not in targets:
        raise ImageOperationError(f"Cannot add alpha to a {src.mode} image")
    return carry_info(src.convert(targets[src.mode]), img)


def extract_band(img: Image.Image, band: int, n: int = 1) -> Image.Image:
    """Return ``n`` consecutive bands starting at ``band``."""
    src = normalize_mode(img)
    arr = to_array(src)
    bands = 1 if arr.ndim == 2 else arr.shape[2]
    if band < 0 or n < 1 or band + n > bands:
        raise ImageOperationError(
            f"Bands {band}..{band + n - 1} out of range for a {bands}-band image"
        )
    if arr.ndim == 3:
        arr = arr[..., band] if n == 1 else arr[..., band:band + n]
    return carry_info(from_array(np.ascontiguousarray(arr)), img)


def linear(
    img: Image.Image,
    a: float | Sequence[float],
    b: float | Sequence[float],
) -> Image.Image:
    """Compute ``a * pixel + b`` per band, clipped to the sample range.

    ``a`` and ``b`` are either scalars or one value per band.
    """
    src = normalize_mode(img)
    arr = to_array(src)
    bands = 1 if arr.ndim == 2 else arr.shape[2]
    a_vec = _per_band(a, bands, "a")
    b_vec = _per_band(b, bands, "b")
    if arr.ndim == 2:
        a_vec, b_vec = a_vec[0], b_vec[0]
    out = arr.astype(np.float64) * a_vec + b_vec
    out = np.clip(np.rint(out), 0, max_value(arr)).astype(arr.dtype)
    return carry_info(from_array(out, src.mode), img)


def _per_band(value: float | Sequence[float], bands: int, name: str) -> np.ndarray:
    values = np.atleast_1d(np.asarray(value, dtype=np.float64))
    if values.size == 1:
        return np.repeat(values, bands)
    if values.size != bands:
        raise ImageOperationError(
            f"{name} has {values.size} values for a {bands}-band image"
        )
    return values


def average(img: Image.Image) -> float:
    """Mean sample value over all bands and pixels."""
    return float(to_array(normalize_mode(img)).mean())


# =============================================================================
# Colour
# =============================================================================


def interpretation_of(img: Image.Image) -> Interpretation:
    if img.mode in SIXTEEN_BIT_MODES:
        return Interpretation.GREY16
    return _MODE_INTERPRETATIONS.get(img.mode, Interpretation.MULTIBAND)


def is_colorspace_supported(interpretation: Interpretation) -> bool:
    return Interpretation(interpretation) in _COLORSPACE_MODES


def to_colorspace(img: Image.Image, interpretation: Interpretation) -> Image.Image:
    """Convert to another colour space.

    Alpha survives conversions to B_W and sRGB; CMYK, LAB and HSV have no
    alpha form and drop it. GREY16 scales 8-bit samples up to 16 bits.
    """
    interpretation = Interpretation(interpretation)
    if interpretation not in _COLORSPACE_MODES:
        raise ImageOperationError(f"Unsupported colourspace: {interpretation.value}")
    if interpretation_of(img) is interpretation:
        return img.copy()

    src = normalize_mode(img)
    target = _COLORSPACE_MODES[interpretation]
    has_alpha = src.mode in ALPHA_MODES

    if target == "I;16":
        grey = _to_8bit(src).convert("L")
        arr = to_array(grey).astype(np.uint16) * 257
        return carry_info(from_array(arr, "I;16"), img)

    base = _to_8bit(src)
    if target == "LAB":
        result = _lab_transform(base.convert("RGB"), to_lab=True)
    elif base.mode == "LAB":
        result = _lab_transform(base, to_lab=False)
        if target != "RGB":
            result = result.convert(target)
    elif target in ("L", "RGB") and has_alpha:
        result = base.convert(target + "A")
    elif target == "HSV":
        result = base.convert("RGB").convert("HSV")
    elif base.mode == "HSV":
        result = base.convert("RGB").convert(target)
    else:
        result = base.convert(target)
    return carry_info(result, img)


def _to_8bit(img: Image.Image) -> Image.Image:
    if img.mode not in SIXTEEN_BIT_MODES:
        return img
    arr = (to_array(img) // 257).astype(np.uint8)
    return carry_info(from_array(arr, "L"), img)


def _lab_transform(img: Image.Image, to_lab: bool) -> Image.Image:
    srgb = ImageCms.createProfile("sRGB")
    lab = ImageCms.createProfile("LAB")
    try:
        if to_lab:
            transform = ImageCms.buildTransform(srgb, lab, "RGB", "LAB")
        else:
            transform = ImageCms.buildTransform(lab, srgb, "LAB", "RGB")
        return ImageCms.applyTransform(img, transform)
    except ImageCms.PyCMSError as e:
        raise ImageOperationError(f"LAB conversion failed: {e}") from e


def _open_profile(profile: str | bytes | Path | ImageCms.ImageCmsProfile) -> ImageCms.ImageCmsProfile:
    if isinstance(profile, ImageCms.ImageCmsProfile):
        return profile
    if isinstance(profile, bytes):
        return ImageCms.ImageCmsProfile(io.BytesIO(profile))
    if str(profile).lower() == "srgb":
        return ImageCms.ImageCmsProfile(ImageCms.createProfile("sRGB"))
    return ImageCms.ImageCmsProfile(str(profile))


def icc_transform(
    img: Image.Image,
    output_profile: str | bytes | Path,
    input_profile: str | bytes | Path | None = None,
    intent: Intent = Intent.PERCEPTUAL,
    embedded: bool = True,
) -> Image.Image:
    """Transform pixels from one ICC profile to another.

    Args:
        img: Input image (8-bit RGB or CMYK, optionally with alpha).
        output_profile: Profile path, raw profile bytes or "srgb".
        input_profile: Profile assumed for the input. With ``embedded``
                       the image's own profile wins when it has one; sRGB
                       is used when neither is available.
        intent: Rendering intent.
        embedded: Prefer the embedded profile over ``input_profile``.

    Returns:
        The transformed image with the output profile embedded.
    """
    src = _to_8bit(normalize_mode(img))
    embedded_icc = img.info.get("icc_profile")
    try:
        if embedded and embedded_icc:
            source = _open_profile(embedded_icc)
        elif input_profile is not None:
            source = _open_profile(input_profile)
        else:
            source = _open_profile("srgb")
        destination = _open_profile(output_profile)
    except (OSError, ImageCms.PyCMSError) as e:
        raise ImageOperationError(f"Cannot open ICC profile: {e}") from e

    colour_arr, alpha = split_alpha(to_array(src), src.mode)
    in_mode = "CMYK" if src.mode == "CMYK" else ("L" if colour_arr.ndim == 2 else "RGB")
    out_mode = "CMYK" if destination.profile.xcolor_space.strip() == "CMYK" else "RGB"
    if in_mode == "L":
        colour = from_array(colour_arr, "L").convert("RGB")
        in_mode = "RGB"
    else:
        colour = from_array(colour_arr, in_mode)

    try:
        transform = ImageCms.buildTransform(
            source, destination, in_mode, out_mode,
            renderingIntent=_CMS_INTENTS[Intent(intent)],
        )
        converted = ImageCms.applyTransform(colour, transform)
    except ImageCms.PyCMSError as e:
        raise ImageOperationError(f"ICC transform failed: {e}") from e

    if alpha is not None and out_mode == "RGB":
        converted = from_array(join_alpha(to_array(converted), alpha), "RGBA")
    result = carry_info(converted, img)
    result.info["icc_profile"] = destination.tobytes()
    return result


def remove_icc_profile(img: Image.Image) -> Image.Image:
    result = img.copy()
    result.info.pop("icc_profile", None)
    return result


# =============================================================================
# Compositing
# =============================================================================


def _blend(mode: BlendMode, cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    if mode is BlendMode.OVER:
        return cs
    if mode is BlendMode.MULTIPLY:
        return cb * cs
    if mode is BlendMode.SCREEN:
        return cb + cs - cb * cs
    if mode is BlendMode.ADD:
        return np.minimum(1.0, cb + cs)
    if mode is BlendMode.DARKEN:
        return np.minimum(cb, cs)
    return np.maximum(cb, cs)


def _rgba_float(img: Image.Image) -> np.ndarray:
    src = _to_8bit(normalize_mode(img))
    if src.mode != "RGBA":
        src = src.convert("RGBA")
    return to_array(src).astype(np.float64) / 255.0


def composite(
    base: Image.Image,
    overlays: Sequence[tuple[Image.Image, BlendMode, int, int]],
) -> Image.Image:
    """Blend overlays onto ``base`` in order.

    Each overlay is (image, blend mode, x, y); it is clipped to the base.
    The result is RGBA when the base has alpha and RGB otherwise.
    """
    canvas = _rgba_float(base)
    height, width = canvas.shape[:2]

    for overlay, mode, x, y in overlays:
        mode = BlendMode(mode)
        layer = _rgba_float(overlay)
        x0, y0 = max(x, 0), max(y, 0)
        x1 = min(x + layer.shape[1], width)
        y1 = min(y + layer.shape[0], height)
        if x0 >= x1 or y0 >= y1:
            logger.debug("Overlay at %d,%d lies outside the base, skipped", x, y)
            continue
        src = layer[y0 - y:y1 - y, x0 - x:x1 - x]
        dst = canvas[y0:y1, x0:x1]

        a_s = src[..., 3:4]
        a_b = dst[..., 3:4]
        c_s = src[..., :3]
        c_b = dst[..., :3]
        a_o = a_s + a_b * (1.0 - a_s)
        premul = (
            a_s * (1.0 - a_b) * c_s
            + a_s * a_b * _blend(mode, c_b, c_s)
            + (1.0 - a_s) * a_b * c_b
        )
        c_o = np.divide(premul, a_o, out=np.zeros_like(premul), where=a_o > 0)
        canvas[y0:y1, x0:x1, :3] = c_o
        canvas[y0:y1, x0:x1, 3:4] = a_o

    out = np.clip(np.rint(canvas * 255.0), 0, 255).astype(np.uint8)
    if normalize_mode(base).mode not in ALPHA_MODES:
        return carry_info(from_array(out[..., :3], "RGB"), base)
    return carry_info(from_array(out, "RGBA"), base)


def align_offset(space: int, size: int, align: Align) -> int:
    """Offset of a ``size`` long item aligned in ``space``."""
    align = Align(align)
    if align is Align.LOW:
        return 0
    if align is Align.HIGH:
        return space - size
    return (space - size) // 2
