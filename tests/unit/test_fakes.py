"""Tests for fake implementations to ensure they work correctly."""

import asyncio
import io
import os

import pytest
from PIL import Image

from image_transform.core.exceptions import ImageProcessingError
from image_transform.core.models import ResizeOptions, RotateOptions
from image_transform.core.observability import LogContext
from image_transform.core.watch import WatchEvent, WatchEventKind
from image_transform.testing.fakes import (
    FakeImageEngine,
    FakeLogger,
    FakeWatchSource,
    create_test_image,
)


class TestFakeImageEngine:
    """Tests for FakeImageEngine to ensure it behaves correctly."""

    def test_open_registered_image(self, tmp_path):
        path = tmp_path / "a.jpg"
        path.write_bytes(b"x" * 42)
        engine = FakeImageEngine()
        engine.register_image(str(path), 640, 480)

        handle = engine.open(str(path))
        meta = engine.metadata(handle)

        assert (meta.width, meta.height, meta.format, meta.size_bytes) == (640, 480, "jpeg", 42)
        assert engine.call_count("open") == 1

    def test_open_unknown_image(self):
        engine = FakeImageEngine()
        with pytest.raises(ImageProcessingError, match="missing or unsupported"):
            engine.open("nowhere.jpg")

    def test_operations_derive_new_handles(self):
        engine = FakeImageEngine()
        engine.register_image("a.jpg", 800, 600)
        handle = engine.open("a.jpg")

        resized = engine.resize(handle, ResizeOptions(width=400))
        rotated = engine.rotate(resized, RotateOptions(angle=90))

        assert (handle.width, handle.height) == (800, 600)
        assert (resized.width, resized.height) == (400, 300)
        assert (rotated.width, rotated.height) == (300, 400)
        assert rotated.operations == ("resize:400x300", "rotate:90")
        assert len({handle.id, resized.id, rotated.id}) == 3

    def test_noop_resize_keeps_dimensions(self):
        engine = FakeImageEngine()
        engine.register_image("a.jpg", 80, 60)
        handle = engine.open("a.jpg")
        assert engine.resize(handle, ResizeOptions()).operations == ()

    def test_encode_and_write(self, tmp_path):
        engine = FakeImageEngine()
        engine.register_image("a.jpg", 100, 100)
        encoded = engine.encode(engine.open("a.jpg"), "png", {"compression_level": 9})

        info = engine.write_to_file(encoded, str(tmp_path / "a.png"))

        assert encoded.encode_options == {"compression_level": 9}
        assert info.size == 5000
        assert os.path.getsize(tmp_path / "a.png") == 5000

    def test_injected_failures(self):
        engine = FakeImageEngine()
        engine.register_image("a.jpg", 10, 10)
        handle = engine.open("a.jpg")
        engine.set_failure("rotate", "no rotation today")
        engine.set_format_failure("avif")

        with pytest.raises(ImageProcessingError, match="no rotation today"):
            engine.rotate(handle, RotateOptions(angle=90))
        with pytest.raises(ImageProcessingError, match="encoder"):
            engine.encode(handle, "avif", {})
        assert engine.encode(handle, "webp", {}).encode_format == "webp"

    def test_release_tracking(self):
        engine = FakeImageEngine()
        engine.register_image("a.jpg", 10, 10)
        handle = engine.open("a.jpg")
        copy = engine.clone(handle)

        engine.release(copy)
        engine.release(handle)
        engine.release(None)

        assert engine.created == 2
        assert engine.released == [copy.id, handle.id]


class TestFakeLogger:
    """Tests for FakeLogger."""

    def test_levels_and_filtering(self):
        logger = FakeLogger()
        logger.debug("d")
        logger.info("i")
        logger.warning("w", extra_key="v")
        logger.error("e")

        assert logger.messages() == ["d", "i", "w", "e"]
        assert logger.messages("WARNING") == ["w"]
        assert logger.get_logs("WARNING")[0]["extra_key"] == "v"

    def test_context_is_flattened(self):
        logger = FakeLogger()
        context = LogContext(operation="export", component="exporter").with_metadata(file="a.jpg")

        logger.info("hello", context)

        (entry,) = logger.get_logs()
        assert entry["operation"] == "export"
        assert entry["component"] == "exporter"
        assert entry["file"] == "a.jpg"
        assert entry["correlation_id"] == context.correlation_id

    def test_should_fail_and_clear(self):
        logger = FakeLogger()
        logger.info("kept")
        logger.clear_logs()
        assert logger.get_logs() == []

        logger.should_fail = True
        with pytest.raises(Exception, match="Simulated logging failure"):
            logger.info("boom")


class TestFakeWatchSource:
    """Tests for FakeWatchSource."""

    def _collect(self, source):
        async def run():
            return [event async for event in source.events()]

        return asyncio.run(run())

    def test_replays_events(self):
        source = FakeWatchSource([("add", "a.jpg"), WatchEvent(WatchEventKind.UNLINK, "b.jpg")])
        source.push("change", "a.jpg")

        events = self._collect(source)

        assert [(event.kind.value, event.path) for event in events] == [
            ("add", "a.jpg"),
            ("unlink", "b.jpg"),
            ("change", "a.jpg"),
        ]

    def test_closed_source_yields_nothing(self):
        source = FakeWatchSource([("add", "a.jpg")])
        source.close()
        assert self._collect(source) == []


def test_create_test_image(tmp_path):
    """Generated bytes decode to the requested size and format."""
    target = tmp_path / "nested" / "photo.png"
    data = create_test_image(64, 32, color="RGBA", fmt="PNG", path=str(target))

    image = Image.open(io.BytesIO(data))
    assert image.size == (64, 32)
    assert image.format == "PNG"
    assert target.read_bytes() == data

    jpeg = Image.open(io.BytesIO(create_test_image()))
    assert jpeg.format == "JPEG"
