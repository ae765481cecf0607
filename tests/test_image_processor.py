import os

from PIL import Image

from app.core.errors import ImageValidationError
from app.models.ingestion import CompressionOptions, ImageLimits
from app.utils.image_processor import ImageProcessor


def test_read_metadata_uses_content_not_extension(make_image):
    path = make_image("disguised.jpg", size=(320, 240), fmt="PNG", mode="RGBA")

    meta = ImageProcessor.read_metadata(path)

    assert meta.format == "png"
    assert (meta.width, meta.height) == (320, 240)
    assert meta.has_alpha is True
    assert meta.is_animated is False
    assert meta.size_bytes == os.path.getsize(path)


def test_validate_accepts_image_within_limits(make_image):
    path = make_image(size=(400, 300))

    result = ImageProcessor.validate_image(path, ImageLimits())

    assert result.ok
    assert result.metadata.format == "jpeg"
    assert (result.metadata.width, result.metadata.height) == (400, 300)


def test_validate_rejects_oversized_file(make_image):
    path = make_image(size=(400, 300))

    result = ImageProcessor.validate_image(path, ImageLimits(max_size_bytes=100))

    assert not result.ok
    assert result.error.kind == ImageValidationError.OVERSIZED
    assert "limit" in result.error.reason


def test_validate_rejects_dimensions_below_minimum(make_image):
    path = make_image(size=(50, 300))

    result = ImageProcessor.validate_image(path, ImageLimits())

    assert result.error.kind == ImageValidationError.DIMENSIONS_OUT_OF_RANGE
    assert "minimum" in result.error.reason


def test_validate_rejects_dimensions_above_maximum(make_image):
    path = make_image(size=(400, 300))

    result = ImageProcessor.validate_image(path, ImageLimits(max_width=399))

    assert result.error.kind == ImageValidationError.DIMENSIONS_OUT_OF_RANGE
    assert "exceed" in result.error.reason


def test_validate_rejects_disallowed_format(make_image):
    path = make_image("anim.png", size=(200, 200), fmt="GIF")

    result = ImageProcessor.validate_image(path, ImageLimits())

    assert result.error.kind == ImageValidationError.UNSUPPORTED_FORMAT
    assert "gif" in result.error.reason


def test_validate_rejects_non_image_bytes(tmp_path):
    path = tmp_path / "fake.png"
    path.write_bytes(b"definitely not an image")

    result = ImageProcessor.validate_image(str(path), ImageLimits())

    assert result.error.kind == ImageValidationError.UNSUPPORTED_FORMAT


def test_compress_downscales_preserving_aspect_and_deletes_original(make_image):
    path = make_image("big.jpg", size=(4000, 2000))

    result = ImageProcessor.compress_image(path, CompressionOptions(quality=80, max_width=1920, max_height=1080))

    assert result.ok
    assert result.output_path.endswith("big-compressed.jpg")
    assert not os.path.exists(path)
    with Image.open(result.output_path) as img:
        assert img.size == (1920, 960)
    assert (result.metadata.width, result.metadata.height) == (1920, 960)


def test_compress_never_upscales_small_images(make_image):
    path = make_image("small.png", size=(200, 150), fmt="PNG")

    result = ImageProcessor.compress_image(path, CompressionOptions(max_width=1920, max_height=1080))

    assert result.ok
    assert result.metadata.width <= 200 and result.metadata.height <= 150
    assert result.metadata.format == "png"
    assert result.output_path.endswith("small-compressed.png")


def test_compress_converts_alpha_png_to_jpeg(make_image):
    path = make_image("logo.png", size=(300, 300), fmt="PNG", mode="RGBA")

    result = ImageProcessor.compress_image(path, CompressionOptions(format="jpeg"))

    assert result.ok
    assert result.output_path.endswith("logo-compressed.jpg")
    assert result.metadata.format == "jpeg"
    assert result.metadata.has_alpha is False


def test_compress_to_webp(make_image):
    path = make_image("shot.jpg", size=(300, 200))

    result = ImageProcessor.compress_image(path, CompressionOptions(format="webp", quality=70))

    assert result.ok
    assert result.output_path.endswith("shot-compressed.webp")
    assert result.metadata.format == "webp"


def test_compress_failure_keeps_original(tmp_path):
    path = tmp_path / "broken.jpg"
    path.write_bytes(b"\xff\xd8 truncated garbage")

    result = ImageProcessor.compress_image(str(path), CompressionOptions())

    assert not result.ok
    assert result.error.path == str(path)
    assert path.exists()
    assert not (tmp_path / "broken-compressed.jpg").exists()


def test_compress_to_unsupported_target_leaves_no_partial_output(make_image):
    path = make_image("keep.jpg", size=(300, 200))

    result = ImageProcessor.compress_image(path, CompressionOptions(format="bmp"))

    assert not result.ok
    assert "Unsupported format" in result.error.reason
    assert os.path.exists(path)
    assert not os.path.exists(path.replace("keep.jpg", "keep-compressed.bmp"))


def test_validate_maps_decompression_bomb_to_dimensions_error(make_image, monkeypatch):
    path = make_image(size=(400, 300))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

    result = ImageProcessor.validate_image(path, ImageLimits())

    assert not result.ok
    assert result.error.kind == ImageValidationError.DIMENSIONS_OUT_OF_RANGE
    assert "pixel count" in result.error.reason
