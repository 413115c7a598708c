"""Tests for magic-byte format sniffing and codec lookup."""

import pytest

from imaging import ImageType, determine_image_type, is_save_supported, is_type_supported, pillow_format
from imaging.formats import image_type_from_pillow


def padded(prefix: bytes, size: int = 32) -> bytes:
    return prefix + b"\x00" * (size - len(prefix))


class TestDetermineImageType:
    @pytest.mark.parametrize(
        "buf,expected",
        [
            (padded(b"\xff\xd8\xff\xe0"), ImageType.JPEG),
            (padded(b"\x89PNG\r\n\x1a\n"), ImageType.PNG),
            (padded(b"GIF89a"), ImageType.GIF),
            (padded(b"II*\x00"), ImageType.TIFF),
            (padded(b"MM\x00*"), ImageType.TIFF),
            (padded(b"RIFF\x10\x00\x00\x00WEBPVP8 "), ImageType.WEBP),
            (padded(b"\x00\x00\x00\x18ftypheic"), ImageType.HEIF),
            (padded(b"\x00\x00\x00\x18ftypmif1"), ImageType.HEIF),
            (padded(b"\x00\x00\x00\x1cftypavif"), ImageType.AVIF),
            (padded(b"\x00\x00\x00\x1cftypavis"), ImageType.AVIF),
            (padded(b"%PDF-1.7"), ImageType.PDF),
            (padded(b"BM6\x00\x00\x00"), ImageType.BMP),
        ],
    )
    def test_magic_bytes(self, buf, expected):
        assert determine_image_type(buf) is expected

    def test_short_buffer_is_unknown(self):
        assert determine_image_type(b"\x89PNG\r\n\x1a") is ImageType.UNKNOWN

    def test_garbage_is_unknown(self):
        assert determine_image_type(b"hello world, not an image") is ImageType.UNKNOWN

    def test_unknown_ftyp_brand_is_unknown(self):
        assert determine_image_type(padded(b"\x00\x00\x00\x18ftypisom")) is ImageType.UNKNOWN

    def test_real_encodings(self, png_bytes, jpeg_bytes, gif_bytes):
        assert determine_image_type(png_bytes) is ImageType.PNG
        assert determine_image_type(jpeg_bytes) is ImageType.JPEG
        assert determine_image_type(gif_bytes) is ImageType.GIF


class TestSvgSniffing:
    SVG = b'<?xml version="1.0"?><svg xmlns="http://www.w3.org/2000/svg" width="1" height="1"></svg>'

    def test_svg_document(self):
        assert determine_image_type(self.SVG) is ImageType.SVG

    def test_svg_prefix_with_partial(self):
        prefix = self.SVG[: -len(b"</svg>")]
        assert determine_image_type(prefix, partial=True) is ImageType.SVG

    def test_marker_but_other_root_is_not_svg(self):
        doc = b"<html><body><svg></svg></body></html>"
        assert determine_image_type(doc) is ImageType.UNKNOWN

    def test_marker_after_window_is_ignored(self):
        doc = b"<!--" + b"x" * 600 + b"--><svg></svg>"
        assert determine_image_type(doc) is ImageType.UNKNOWN

    def test_invalid_xml_is_not_svg(self):
        assert determine_image_type(b"<svg <<< not xml at all") is ImageType.UNKNOWN


class TestCodecLookup:
    def test_pillow_names(self):
        assert pillow_format(ImageType.JPEG) == "JPEG"
        assert pillow_format(ImageType.TIFF) == "TIFF"
        assert pillow_format(ImageType.SVG) is None
        assert pillow_format(ImageType.UNKNOWN) is None

    def test_mpo_maps_to_jpeg(self):
        assert image_type_from_pillow("MPO") is ImageType.JPEG
        assert image_type_from_pillow(None) is ImageType.UNKNOWN

    @pytest.mark.parametrize("image_type", [ImageType.JPEG, ImageType.PNG, ImageType.GIF, ImageType.TIFF, ImageType.BMP])
    def test_core_formats_supported(self, image_type):
        assert is_type_supported(image_type)
        assert is_save_supported(image_type)

    def test_formats_without_codec_unsupported(self):
        assert not is_type_supported(ImageType.SVG)
        assert not is_type_supported(ImageType.UNKNOWN)
        assert not is_save_supported(ImageType.MAGICK)


class TestImageTypeExtensions:
    def test_file_ext(self):
        assert ImageType.JPEG.file_ext == ".jpeg"
        assert ImageType.HEIF.file_ext == ".heic"
        assert ImageType.UNKNOWN.file_ext == ""

    @pytest.mark.parametrize(
        "ext,expected",
        [(".jpg", ImageType.JPEG), ("JPEG", ImageType.JPEG), (".tif", ImageType.TIFF), (".webp", ImageType.WEBP), (".xyz", ImageType.UNKNOWN)],
    )
    def test_from_extension(self, ext, expected):
        assert ImageType.from_extension(ext) is expected
