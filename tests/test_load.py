"""Tests for image loading from buffers, files and host sources."""

import io
import logging

import pytest
from pydantic import ValidationError

from conftest import encode, make_gradient
from errors import ImageDecodeError, StreamSeekError, UnsupportedFormatError
from imaging import (
    ImageType,
    ImportParams,
    load_image_from_buffer,
    load_image_from_file,
    load_image_from_source,
    merge_import_params,
)
from streams import BytesSource, CallbackSource, ReaderSource


def chunked_source(data: bytes, chunk: int = 64) -> CallbackSource:
    """Non-seekable source delivering ``chunk`` bytes per read."""
    pos = 0

    def read(buf):
        nonlocal pos
        n = min(chunk, len(buf), len(data) - pos)
        buf[:n] = data[pos:pos + n]
        pos += n
        return n

    return CallbackSource(read)


class TestImportParams:
    def test_defaults_are_unset(self):
        params = ImportParams()
        assert params.fail is None
        assert params.autorotate is None
        assert params.shrink is None
        assert params.page is None

    @pytest.mark.parametrize("shrink", [1, 2, 4, 8])
    def test_valid_shrink(self, shrink):
        assert ImportParams(shrink=shrink).shrink == shrink

    @pytest.mark.parametrize("shrink", [0, 3, 16])
    def test_invalid_shrink(self, shrink):
        with pytest.raises(ValidationError, match="shrink must be one of"):
            ImportParams(shrink=shrink)

    def test_negative_page_rejected(self):
        with pytest.raises(ValidationError):
            ImportParams(page=-1)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            ImportParams(density=300)


class TestMergeImportParams:
    def test_last_set_value_wins_per_field(self):
        merged = merge_import_params(
            ImportParams(fail=True, shrink=2),
            ImportParams(shrink=4),
            ImportParams(autorotate=True),
        )
        assert merged.fail is True
        assert merged.shrink == 4
        assert merged.autorotate is True

    def test_autorotate_does_not_touch_fail(self):
        merged = merge_import_params(ImportParams(fail=False), ImportParams(autorotate=True))
        assert merged.fail is False

    def test_none_entries_are_skipped(self):
        assert merge_import_params(None, ImportParams(page=2), None).page == 2

    def test_empty_merge_is_default(self):
        assert merge_import_params() == ImportParams()


class TestLoadFromBuffer:
    def test_png(self, png_bytes):
        ref = load_image_from_buffer(png_bytes)
        assert ref.format is ImageType.PNG
        assert (ref.width, ref.height) == (64, 48)
        assert ref.mode == "RGB"
        assert ref.bands == 3

    def test_empty_buffer(self):
        with pytest.raises(ImageDecodeError, match="empty"):
            load_image_from_buffer(b"")

    def test_unknown_format(self):
        with pytest.raises(UnsupportedFormatError, match="Unrecognised"):
            load_image_from_buffer(b"definitely not an image at all")

    def test_svg_unsupported(self):
        svg = b'<svg xmlns="http://www.w3.org/2000/svg" width="1" height="1"></svg>'
        with pytest.raises(UnsupportedFormatError, match="svg"):
            load_image_from_buffer(svg)

    def test_truncated_jpeg_fails(self, jpeg_bytes):
        with pytest.raises(ImageDecodeError) as excinfo:
            load_image_from_buffer(jpeg_bytes[: len(jpeg_bytes) // 2])
        assert excinfo.value.__cause__ is not None

    def test_autorotate_on_load(self, rotated_jpeg_bytes):
        ref = load_image_from_buffer(rotated_jpeg_bytes, ImportParams(autorotate=True))
        assert (ref.width, ref.height) == (48, 64)
        assert ref.orientation == 1

    def test_orientation_kept_without_autorotate(self, rotated_jpeg_bytes):
        ref = load_image_from_buffer(rotated_jpeg_bytes)
        assert (ref.width, ref.height) == (64, 48)
        assert ref.orientation == 6

    def test_shrink_on_load_jpeg(self):
        data = encode(make_gradient(256, 128), "JPEG")
        ref = load_image_from_buffer(data, ImportParams(shrink=4))
        assert (ref.width, ref.height) == (64, 32)

    def test_shrink_on_load_png_resizes(self):
        data = encode(make_gradient(100, 50), "PNG")
        ref = load_image_from_buffer(data, ImportParams(shrink=2))
        assert (ref.width, ref.height) == (50, 25)

    def test_page_selection(self, gif_bytes):
        ref = load_image_from_buffer(gif_bytes, ImportParams(page=1))
        assert ref.pages == 2
        first = load_image_from_buffer(gif_bytes)
        assert first.image.convert("RGB").getpixel((0, 0)) != ref.image.convert("RGB").getpixel((0, 0))

    def test_page_out_of_range(self, gif_bytes):
        with pytest.raises(ImageDecodeError, match="Page 5"):
            load_image_from_buffer(gif_bytes, ImportParams(page=5))

    def test_decoder_warning_fails_with_fail(self, rgb_image, monkeypatch):
        from PIL import Image

        data = encode(rgb_image, "PNG")
        # Between the limit and twice the limit Pillow warns instead of raising
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 2000)
        with pytest.raises(ImageDecodeError, match="warning"):
            load_image_from_buffer(data, ImportParams(fail=True))

    def test_decoder_warning_logged_without_fail(self, rgb_image, monkeypatch, caplog):
        from PIL import Image

        data = encode(rgb_image, "PNG")
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 2000)
        with caplog.at_level(logging.WARNING):
            ref = load_image_from_buffer(data)
        assert ref.width == 64
        assert "DecompressionBombWarning" in caplog.text


class TestLoadFromSource:
    def test_seekable_source_decodes_in_place(self, registry, png_bytes):
        ref = load_image_from_source(BytesSource(png_bytes), registry=registry)
        assert ref.format is ImageType.PNG
        assert len(registry) == 0

    def test_non_seekable_source_is_drained(self, registry, jpeg_bytes):
        ref = load_image_from_source(chunked_source(jpeg_bytes), registry=registry)
        assert ref.format is ImageType.JPEG
        assert (ref.width, ref.height) == (64, 48)

    @pytest.mark.parametrize("fixture", ["png_bytes", "jpeg_bytes"])
    def test_seekable_source_with_short_reads(self, registry, request, fixture):
        bio = io.BytesIO(request.getfixturevalue(fixture))
        host = CallbackSource(lambda buf: bio.readinto(buf[:8]), bio.seek)
        ref = load_image_from_source(host, registry=registry)
        assert (ref.width, ref.height) == (64, 48)
        assert len(registry) == 0

    def test_plain_bytes_and_file_objects(self, registry, png_bytes):
        assert load_image_from_source(png_bytes, registry=registry).width == 64
        assert load_image_from_source(io.BytesIO(png_bytes), registry=registry).width == 64

    def test_empty_non_seekable_source(self, registry):
        with pytest.raises(ImageDecodeError, match="empty"):
            load_image_from_source(chunked_source(b""), registry=registry)

    def test_host_seek_failure_wins_over_decode_error(self, registry, png_bytes):
        class BadSeek(BytesSource):
            def __init__(self, data):
                super().__init__(data)
                self.seeks = 0

            def seek(self, offset, whence):
                self.seeks += 1
                if self.seeks > 1:
                    raise OSError("device gone")
                return super().seek(offset, whence)

        with pytest.raises(StreamSeekError):
            load_image_from_source(BadSeek(png_bytes), registry=registry)
        assert len(registry) == 0

    def test_injected_logger(self, registry, png_bytes, caplog):
        log = logging.getLogger("tests.load")
        with caplog.at_level(logging.DEBUG, logger="tests.load"):
            load_image_from_source(png_bytes, registry=registry, logger=log)
        messages = [r.getMessage() for r in caplog.records if r.name == "tests.load"]
        assert any(m.startswith("Decoded png 64x48") for m in messages)
        assert any("OK [read" in m for m in messages)


class TestLoadFromFile:
    def test_file(self, png_file):
        ref = load_image_from_file(png_file)
        assert ref.format is ImageType.PNG
        assert ref.width == 64

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_image_from_file(tmp_path / "missing.png")

    def test_reader_source_over_file(self, png_file, registry):
        with open(png_file, "rb") as fp:
            ref = load_image_from_source(ReaderSource(fp), registry=registry)
            assert not fp.closed
        assert ref.height == 48
