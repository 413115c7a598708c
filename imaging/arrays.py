"""
Conversion between Pillow images and numpy arrays.

Pixel work in ``imaging.transform`` and ``imaging.text`` runs on numpy
arrays (and OpenCV where it has the operation). These helpers keep the
Pillow mode, bit depth and metadata intact across the round trip.

Arrays are always HxW (one band) or HxWxC, in the band order of the
Pillow mode (RGB, not BGR).
"""

from __future__ import annotations

import numpy as np
from PIL import Image

# Modes whose last band is alpha
ALPHA_MODES = frozenset({"LA", "La", "PA", "RGBA", "RGBa"})

# Pillow modes stored as 16-bit unsigned samples
SIXTEEN_BIT_MODES = frozenset({"I;16", "I;16L", "I;16B", "I;16N"})


def normalize_mode(img: Image.Image) -> Image.Image:
    """Convert modes that have no direct array form.

    Bilevel images become L, palette images become RGB or RGBA (RGBA when
    the palette carries transparency), 32-bit integer images become
    I;16. Everything else is returned unchanged.
    """
    if img.mode == "1":
        return img.convert("L")
    if img.mode in ("P", "PA"):
        if img.mode == "PA" or "transparency" in img.info:
            return img.convert("RGBA")
        return img.convert("RGB")
    if img.mode == "I":
        arr = np.clip(np.asarray(img), 0, 65535).astype(np.uint16)
        return carry_info(from_array(arr, "I;16"), img)
    if img.mode in SIXTEEN_BIT_MODES and img.mode != "I;16":
        return carry_info(from_array(to_array(img), "I;16"), img)
    if img.mode in ("La", "RGBa"):
        return img.convert(img.mode.upper())
    return img


def to_array(img: Image.Image) -> np.ndarray:
    """Return the pixels of ``img`` as a new numpy array."""
    if img.mode in SIXTEEN_BIT_MODES:
        dtype = ">u2" if img.mode == "I;16B" else "<u2"
        arr = np.frombuffer(img.tobytes(), dtype=dtype)
        return arr.reshape(img.height, img.width).astype(np.uint16)
    return np.array(img)


def from_array(arr: np.ndarray, mode: str | None = None) -> Image.Image:
    """Build a Pillow image from ``arr``.

    Args:
        arr: HxW or HxWxC array.
        mode: Target Pillow mode. Inferred from the band count and dtype
              when omitted (L/LA/RGB/RGBA for uint8, I;16 for uint16).
    """
    if mode is None:
        mode = mode_for(arr)
    height, width = arr.shape[:2]
    if mode in SIXTEEN_BIT_MODES:
        data = np.ascontiguousarray(arr, dtype="<u2").tobytes()
        return Image.frombytes("I;16", (width, height), data)
    data = np.ascontiguousarray(arr, dtype=np.uint8).tobytes()
    return Image.frombytes(mode, (width, height), data)


def mode_for(arr: np.ndarray) -> str:
    """Pick the Pillow mode matching an array's band count and dtype."""
    bands = 1 if arr.ndim == 2 else arr.shape[2]
    if arr.dtype == np.uint16:
        if bands != 1:
            raise ValueError(f"16-bit images must have one band, got {bands}")
        return "I;16"
    modes = {1: "L", 2: "LA", 3: "RGB", 4: "RGBA"}
    if bands not in modes:
        raise ValueError(f"Cannot map {bands} bands to an image mode")
    return modes[bands]


def max_value(arr: np.ndarray) -> int:
    """Largest sample value for the array's dtype."""
    return 65535 if arr.dtype == np.uint16 else 255


def split_alpha(arr: np.ndarray, mode: str) -> tuple[np.ndarray, np.ndarray | None]:
    """Split an array into (colour bands, alpha band or None)."""
    if mode in ALPHA_MODES:
        return arr[..., :-1], arr[..., -1]
    return arr, None


def join_alpha(colour: np.ndarray, alpha: np.ndarray | None) -> np.ndarray:
    if alpha is None:
        return colour
    if colour.ndim == 2:
        colour = colour[..., np.newaxis]
    return np.concatenate([colour, alpha[..., np.newaxis]], axis=2)


def carry_info(dst: Image.Image, src: Image.Image) -> Image.Image:
    """Copy metadata (ICC profile, EXIF, DPI, ...) from ``src`` to ``dst``."""
    dst.info.update(src.info)
    return dst
