"""Tests for the Pillow-backed image engine."""

import errno
import io
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
from PIL import Image, ImageCms

from borderforge.processing.errors import ErrorKind, ProcessingError
from borderforge.processing.pillow_engine import PillowEngine, pillow_quality


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def engine():
    return PillowEngine()


def test_pillow_quality_mapping():
    assert pillow_quality(0) == 10
    assert pillow_quality(12) == 94
    assert pillow_quality(99) == 94


def test_open_missing_file(engine, temp_dir):
    with pytest.raises(ProcessingError) as exc_info:
        engine.open(temp_dir / "missing.png")
    assert exc_info.value.kind is ErrorKind.PROCESSING_FAILED


def test_open_corrupt_file(engine, temp_dir):
    path = temp_dir / "broken.jpg"
    path.write_bytes(b"not an image")

    with pytest.raises(ProcessingError):
        engine.open(path)


def test_open_memory_error_is_resource_exhausted(engine, temp_dir):
    path = temp_dir / "a.png"
    Image.new("RGB", (4, 4)).save(path)

    with patch("borderforge.processing.pillow_engine.Image.open", side_effect=MemoryError()):
        with pytest.raises(ProcessingError) as exc_info:
            engine.open(path)
    assert exc_info.value.kind is ErrorKind.RESOURCE_EXHAUSTED


def test_save_disk_full_is_resource_exhausted(engine, temp_dir):
    path = temp_dir / "a.png"
    Image.new("RGB", (4, 4)).save(path)
    document = engine.open(path)

    with patch.object(Image.Image, "save", side_effect=OSError(errno.ENOSPC, "No space left on device")):
        with pytest.raises(ProcessingError) as exc_info:
            document.save(temp_dir / "out.jpg", 10)
    assert exc_info.value.kind is ErrorKind.RESOURCE_EXHAUSTED


def test_flatten_uses_background(engine, temp_dir):
    path = temp_dir / "clear.png"
    Image.new("RGBA", (10, 10), (0, 0, 0, 0)).save(path)
    document = engine.open(path)

    document.normalize_color("RGB")
    document.fill_background((0, 0, 255))
    document.flatten()

    assert document.image.mode == "RGB"
    assert document.image.getpixel((5, 5)) == (0, 0, 255)


def test_expand_canvas_centers(engine, temp_dir):
    path = temp_dir / "red.png"
    Image.new("RGB", (10, 20), (255, 0, 0)).save(path)
    document = engine.open(path)

    document.fill_background((0, 0, 0))
    document.expand_canvas(30, 40)

    assert (document.width, document.height) == (30, 40)
    assert document.image.getpixel((0, 0)) == (0, 0, 0)
    assert document.image.getpixel((15, 20)) == (255, 0, 0)
    assert document.image.getpixel((9, 20)) == (0, 0, 0)
    assert document.image.getpixel((10, 10)) == (255, 0, 0)


def test_average_color(engine, temp_dir):
    image = Image.new("RGB", (2, 1))
    image.putpixel((0, 0), (0, 0, 0))
    image.putpixel((1, 0), (200, 100, 50))
    path = temp_dir / "two.png"
    image.save(path)

    assert engine.open(path).average_color() == (100, 50, 25)


def test_save_writes_jpeg_with_dpi(engine, temp_dir):
    path = temp_dir / "a.png"
    Image.new("RGB", (50, 50), (10, 200, 30)).save(path)
    document = engine.open(path)
    document.set_resolution(300)

    size = document.save(temp_dir / "a.jpg", 10)

    assert size == (temp_dir / "a.jpg").stat().st_size
    with Image.open(temp_dir / "a.jpg") as saved:
        assert saved.format == "JPEG"
        assert round(saved.info["dpi"][0]) == 300


def test_convert_profile_tags_srgb(engine, temp_dir):
    path = temp_dir / "a.png"
    Image.new("RGB", (8, 8), (120, 60, 30)).save(path)
    document = engine.open(path)

    assert document.profile_name is None
    document.convert_color_profile()

    assert "srgb" in document.profile_name.lower()
    document.save(temp_dir / "tagged.jpg", 10, embed_profile=True)
    with Image.open(temp_dir / "tagged.jpg") as saved:
        assert saved.info.get("icc_profile")


def test_close_is_idempotent(engine, temp_dir):
    path = temp_dir / "a.png"
    Image.new("RGB", (4, 4)).save(path)
    document = engine.open(path)

    document.close()
    document.close()

    with pytest.raises(ProcessingError):
        document.width


def lab_profile_bytes():
    return ImageCms.ImageCmsProfile(ImageCms.createProfile("LAB")).tobytes()


def icc_color_space(icc):
    return ImageCms.ImageCmsProfile(io.BytesIO(icc)).profile.xcolor_space.strip()


def test_normalize_replaces_non_rgb_profile(engine, temp_dir):
    path = temp_dir / "gray.png"
    Image.new("L", (8, 8), 128).save(path, icc_profile=lab_profile_bytes())
    document = engine.open(path)

    assert document.has_rgb_profile is False
    document.normalize_color("RGB")

    assert document.image.mode == "RGB"
    assert document.has_rgb_profile is True
    assert document.image.getpixel((4, 4)) == (128, 128, 128)


def test_mismatched_profile_on_rgb_pixels_is_replaced(engine, temp_dir):
    path = temp_dir / "rgb.png"
    Image.new("RGB", (8, 8), (10, 20, 30)).save(path, icc_profile=lab_profile_bytes())
    document = engine.open(path)

    document.normalize_color("RGB")

    assert icc_color_space(document._icc) == "RGB"


def test_convert_profile_ignores_non_rgb_profile(engine, temp_dir):
    path = temp_dir / "gray.png"
    Image.new("L", (8, 8), 200).save(path, icc_profile=lab_profile_bytes())
    document = engine.open(path)

    document.convert_color_profile()

    assert "srgb" in document.profile_name.lower()


def test_save_into_missing_folder_is_fatal(engine, temp_dir):
    path = temp_dir / "a.png"
    Image.new("RGB", (4, 4)).save(path)
    document = engine.open(path)

    with pytest.raises(ProcessingError) as exc_info:
        document.save(temp_dir / "gone" / "a.jpg", 10)
    assert exc_info.value.kind is ErrorKind.FATAL
