"""Pytest configuration and shared image fixtures.

Slow tests (large images, every codec the Pillow build has) are skipped
unless --slow is passed.
Run the full suite:   pytest --slow
Run fast tests only:  pytest          (default)
"""
import io

import numpy as np
import pytest
from PIL import Image

from streams import HandleRegistry


def pytest_addoption(parser):
    parser.addoption(
        "--slow",
        action="store_true",
        default=False,
        help="Run slow tests (large images, every available codec)",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--slow"):
        return  # run everything
    skip_slow = pytest.mark.skip(reason="slow test skipped, pass --slow to include")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


def make_gradient(width: int = 64, height: int = 48) -> Image.Image:
    """RGB image with a horizontal red ramp and a vertical green ramp."""
    x = np.linspace(0, 255, width, dtype=np.float64)
    y = np.linspace(0, 255, height, dtype=np.float64)
    arr = np.zeros((height, width, 3), dtype=np.uint8)
    arr[..., 0] = x[np.newaxis, :].astype(np.uint8)
    arr[..., 1] = y[:, np.newaxis].astype(np.uint8)
    arr[..., 2] = 128
    return Image.fromarray(arr, "RGB")


def encode(img: Image.Image, fmt: str, **options) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **options)
    return buf.getvalue()


@pytest.fixture
def registry():
    """A private handle registry so tests never share handles."""
    return HandleRegistry()


@pytest.fixture
def rgb_image():
    return make_gradient()


@pytest.fixture
def rgba_image():
    img = make_gradient().convert("RGBA")
    alpha = np.zeros((img.height, img.width), dtype=np.uint8)
    alpha[:, img.width // 2:] = 255
    img.putalpha(Image.fromarray(alpha, "L"))
    return img


@pytest.fixture
def png_bytes(rgb_image):
    return encode(rgb_image, "PNG")


@pytest.fixture
def rgba_png_bytes(rgba_image):
    return encode(rgba_image, "PNG")


@pytest.fixture
def jpeg_bytes(rgb_image):
    return encode(rgb_image, "JPEG", quality=90)


@pytest.fixture
def rotated_jpeg_bytes(rgb_image):
    """64x48 JPEG whose EXIF orientation (6) asks for a 90 degree turn."""
    exif = Image.Exif()
    exif[0x0112] = 6
    return encode(rgb_image, "JPEG", quality=90, exif=exif.tobytes())


@pytest.fixture
def gif_bytes(rgb_image):
    frames = [rgb_image, rgb_image.transpose(Image.Transpose.FLIP_LEFT_RIGHT)]
    buf = io.BytesIO()
    frames[0].save(buf, format="GIF", save_all=True, append_images=frames[1:])
    return buf.getvalue()


@pytest.fixture
def png_file(tmp_path, png_bytes):
    path = tmp_path / "gradient.png"
    path.write_bytes(png_bytes)
    return path
