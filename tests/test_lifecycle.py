"""Tests for adapter scoping: exactly one release on every exit path."""

import pytest
from PIL import Image

from errors import ImageDecodeError, StreamIOError, StreamReadError, StreamWriteError
from imaging import ImageType, load_image_from_source
from streams import (
    BytesSource,
    BytesTarget,
    CallbackSource,
    CallbackTarget,
    open_source,
    open_target,
    release,
)


class CountingSource(BytesSource):
    def __init__(self, data):
        super().__init__(data)
        self.released = 0

    def on_release(self):
        self.released += 1


class CountingTarget(BytesTarget):
    def __init__(self):
        super().__init__()
        self.released = 0

    def on_release(self):
        self.released += 1


class BrokenHookSource(BytesSource):
    def on_release(self):
        raise RuntimeError("socket already gone")


class BrokenHookTarget(BytesTarget):
    def on_release(self):
        raise RuntimeError("socket already gone")


class FailsOnThirdRead(CallbackSource):
    """Non-seekable source: 64-byte chunks, then -1 on the third read."""

    def __init__(self, data):
        super().__init__(self._read)
        self._data = data
        self._pos = 0
        self.read_calls = 0
        self.released = 0

    def _read(self, buf):
        self.read_calls += 1
        if self.read_calls == 3:
            return -1
        n = min(64, len(buf), len(self._data) - self._pos)
        buf[:n] = self._data[self._pos:self._pos + n]
        self._pos += n
        return n

    def on_release(self):
        self.released += 1


class TestOpenSource:
    def test_released_after_normal_exit(self, registry):
        host = CountingSource(b"abcdef")
        with open_source(host, registry=registry) as source:
            assert source.read(3) == b"abc"
            handle = source.handle
        assert host.released == 1
        assert handle not in registry

    def test_released_when_body_raises(self, registry):
        host = CountingSource(b"abcdef")
        with pytest.raises(RuntimeError):
            with open_source(host, registry=registry):
                raise RuntimeError("decoder crashed")
        assert host.released == 1
        assert len(registry) == 0

    def test_swallowed_failure_surfaces_on_exit(self, registry):
        host = CallbackSource(lambda buf: -1)
        with pytest.raises(StreamReadError):
            with open_source(host, registry=registry) as source:
                try:
                    source.read(10)
                except OSError:
                    pass  # a decoder treating it as truncation
        assert len(registry) == 0

    def test_explicit_release_inside_scope_is_harmless(self, registry):
        host = CountingSource(b"abc")
        with open_source(host, registry=registry) as source:
            release(source)
        assert host.released == 1

    def test_release_hook_failure_does_not_mask_body_error(self, registry, caplog):
        with pytest.raises(ValueError, match="decoder crashed"):
            with open_source(BrokenHookSource(b"abc"), registry=registry) as source:
                raise ValueError("decoder crashed")
        assert len(registry) == 0
        assert source.closed
        assert "failed during error exit" in caplog.text

    def test_release_hook_failure_raised_after_clean_exit(self, registry):
        with pytest.raises(StreamIOError, match="release hook failed") as excinfo:
            with open_source(BrokenHookSource(b"abc"), registry=registry) as source:
                source.read(3)
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert len(registry) == 0
        assert source.closed


class TestOpenTarget:
    def test_finished_and_released_on_success(self, registry):
        host = CountingTarget()
        with open_target(host, registry=registry) as target:
            target.write(b"payload")
        assert host.finished
        assert host.released == 1
        assert host.getvalue() == b"payload"

    def test_not_finished_when_body_raises(self, registry):
        host = CountingTarget()
        with pytest.raises(ValueError):
            with open_target(host, registry=registry):
                raise ValueError("encoder crashed")
        assert not host.finished
        assert host.released == 1

    def test_write_failure_propagates_and_releases(self, registry):
        released = []

        class Refusing(CallbackTarget):
            def on_release(self):
                released.append(True)

        with pytest.raises(StreamWriteError):
            with open_target(Refusing(lambda data: -1), registry=registry) as target:
                target.write(b"abc")
        assert released == [True]

    def test_release_hook_failure_does_not_mask_write_error(self, registry):
        class Refusing(BrokenHookTarget):
            def write(self, data):
                return -1

        with pytest.raises(StreamWriteError):
            with open_target(Refusing(), registry=registry) as target:
                target.write(b"abc")
        assert len(registry) == 0
        assert target.closed


class TestDecodeLifecycle:
    def test_failed_read_fails_decode_and_releases_once(self, registry, png_bytes):
        host = FailsOnThirdRead(png_bytes)
        with pytest.raises(StreamReadError):
            load_image_from_source(host, registry=registry)
        assert host.read_calls == 3
        assert host.released == 1
        assert len(registry) == 0

    def test_successful_decode_releases_before_return(self, registry, png_bytes):
        host = CountingSource(png_bytes)
        ref = load_image_from_source(host, registry=registry)
        assert host.released == 1
        assert len(registry) == 0
        assert ref.format is ImageType.PNG
        assert (ref.width, ref.height) == (64, 48)

    def test_corrupt_data_releases_once(self, registry, png_bytes):
        host = CountingSource(png_bytes[: len(png_bytes) // 2])
        with pytest.raises(ImageDecodeError):
            load_image_from_source(host, registry=registry)
        assert host.released == 1


def test_pillow_can_read_through_adapter_directly(registry, png_bytes):
    with open_source(BytesSource(png_bytes), registry=registry) as source:
        with Image.open(source) as img:
            img.load()
            assert img.size == (64, 48)
