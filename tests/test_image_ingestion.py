import asyncio
import os
import time

import pytest

from app.core.errors import AllImagesFailedError, TooManyImagesError
from app.models.ingestion import CompressionOptions, ImageLimits, ImagePipelineContext, ImageState
from app.services.image_ingestion import ImageIngestionOrchestrator
from app.utils.image_processor import ImageProcessor

from conftest import image_bytes


def _orchestrator(**kwargs):
    kwargs.setdefault("limits", ImageLimits())
    kwargs.setdefault("compression", CompressionOptions())
    return ImageIngestionOrchestrator(**kwargs)


def test_one_bad_image_out_of_five_is_isolated(make_upload):
    uploads = [make_upload(f"img{i}.jpg") for i in range(5)]
    bad = make_upload("bad.png", data=image_bytes(size=(200, 200), fmt="GIF"), mime="image/png")
    uploads[2] = bad

    result = asyncio.run(_orchestrator().ingest(uploads, alt_text="Desk Lamp"))

    assert len(result.succeeded) == 4
    assert [f.filename for f in result.failed] == ["bad.png"]
    assert "gif" in result.failed[0].reason
    assert [r.order for r in result.succeeded] == [0, 1, 2, 3]
    assert all(r.alt_text == "Desk Lamp" for r in result.succeeded)
    assert all(r.url.startswith("/uploads/products/") and "-compressed" in r.url for r in result.succeeded)
    # rejected upload is cleaned up
    assert not os.path.exists(bad.temp_path)


def test_all_images_failing_raises(make_upload):
    uploads = [make_upload(f"x{i}.png", data=b"not an image") for i in range(5)]

    with pytest.raises(AllImagesFailedError) as exc:
        asyncio.run(_orchestrator().ingest(uploads, alt_text="Broken"))

    assert [f["filename"] for f in exc.value.failures] == [f"x{i}.png" for i in range(5)]
    assert exc.value.to_dict()["message"] == "All image processing failed"


def test_compression_failure_keeps_original_file(make_upload):
    uploads = [make_upload("a.jpg"), make_upload("b.jpg")]

    with pytest.raises(AllImagesFailedError) as exc:
        asyncio.run(_orchestrator(compression=CompressionOptions(format="bmp")).ingest(uploads, alt_text="Lamp"))

    assert len(exc.value.failures) == 2
    for upload in uploads:
        assert os.path.exists(upload.temp_path)


def test_order_follows_submission_not_completion(make_upload, monkeypatch):
    uploads = [make_upload(f"img{i}.jpg") for i in range(4)]
    delays = {u.temp_path: 0.05 * (len(uploads) - i) for i, u in enumerate(uploads)}
    original_compress = ImageProcessor.compress_image

    def slow_compress(path, options=None):
        time.sleep(delays[path])
        return original_compress(path, options)

    monkeypatch.setattr(ImageProcessor, "compress_image", staticmethod(slow_compress))

    result = asyncio.run(_orchestrator().ingest(uploads, alt_text="Chair", order_offset=3))

    expected = [os.path.basename(u.temp_path).replace(".jpg", "-compressed.jpg") for u in uploads]
    assert [os.path.basename(r.url) for r in result.succeeded] == expected
    assert [r.order for r in result.succeeded] == [3, 4, 5, 6]


def test_more_than_five_images_is_rejected(make_upload):
    uploads = [make_upload(f"img{i}.jpg") for i in range(6)]

    with pytest.raises(TooManyImagesError):
        asyncio.run(_orchestrator().ingest(uploads, alt_text="Too many"))


def test_no_images_yields_empty_result():
    result = asyncio.run(_orchestrator().ingest([], alt_text="Plain"))

    assert result.succeeded == [] and result.failed == []


def test_pipeline_context_rejects_illegal_transitions(make_upload):
    ctx = ImagePipelineContext(index=0, upload=make_upload())

    with pytest.raises(ValueError):
        ctx.advance(ImageState.COMPRESSING)

    validating = ctx.advance(ImageState.VALIDATING)
    assert ctx.state is ImageState.UPLOADED
    assert validating.state is ImageState.VALIDATING


def test_unexpected_error_rejects_image_and_removes_staged_file(make_upload, monkeypatch):
    good, broken = make_upload("good.jpg"), make_upload("broken.jpg")
    original_validate = ImageProcessor.validate_image

    def flaky_validate(path, limits=None):
        if path == broken.temp_path:
            raise RuntimeError("decoder crashed")
        return original_validate(path, limits)

    monkeypatch.setattr(ImageProcessor, "validate_image", staticmethod(flaky_validate))

    result = asyncio.run(_orchestrator().ingest([good, broken], alt_text="Lamp"))

    assert len(result.succeeded) == 1
    assert [(f.filename, f.reason) for f in result.failed] == [("broken.jpg", "decoder crashed")]
    assert not os.path.exists(broken.temp_path)
