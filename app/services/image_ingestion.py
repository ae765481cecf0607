import asyncio
import os
from typing import List, Optional, Sequence

from loguru import logger

from app.core.config import settings
from app.core.errors import AllImagesFailedError, TooManyImagesError
from app.models.ingestion import (
    CompressionOptions,
    ImageLimits,
    ImagePipelineContext,
    ImageState,
    IngestionResult,
    UploadedImage,
)
from app.models.product import ImageFailure, ProductImageRecord
from app.utils.file_storage import remove_file
from app.utils.image_processor import ImageProcessor


class ImageIngestionOrchestrator:
    """
    Runs validate -> compress for every image of one product create/update.

    Each image succeeds or fails on its own; a product operation only fails
    outright when none of its submitted images survive.
    """

    def __init__(
        self,
        limits: Optional[ImageLimits] = None,
        compression: Optional[CompressionOptions] = None,
        max_images: Optional[int] = None,
        workers: Optional[int] = None,
        media_url_prefix: Optional[str] = None,
    ):
        self.limits = limits or ImageLimits.from_settings()
        self.compression = compression or CompressionOptions.from_settings()
        self.max_images = max_images or settings.MAX_IMAGES_PER_PRODUCT
        self.workers = max(1, min(workers or settings.IMAGE_WORKERS, self.max_images))
        self.media_url_prefix = (media_url_prefix or settings.MEDIA_URL_PREFIX).rstrip("/")

    def _log_transition(self, ctx: ImagePipelineContext) -> ImagePipelineContext:
        logger.debug(f"[image {ctx.index}] '{ctx.upload.original_filename}' -> {ctx.state.value}"
                     + (f" ({ctx.reason})" if ctx.reason else ""))
        return ctx

    def process_one(self, ctx: ImagePipelineContext) -> ImagePipelineContext:
        """Blocking validate + compress for a single image; runs in a worker thread."""
        ctx = self._log_transition(ctx.advance(ImageState.VALIDATING))
        validation = ImageProcessor.validate_image(ctx.current_path, self.limits)
        if not validation.ok:
            # A rejected upload is never used again
            remove_file(ctx.current_path)
            return self._log_transition(ctx.advance(ImageState.REJECTED, reason=validation.error.reason))
        ctx = self._log_transition(ctx.advance(ImageState.VALIDATED, metadata=validation.metadata))

        ctx = self._log_transition(ctx.advance(ImageState.COMPRESSING))
        compression = ImageProcessor.compress_image(ctx.current_path, self.compression)
        if not compression.ok:
            # Original stays on disk
            return self._log_transition(ctx.advance(ImageState.FAILED, reason=compression.error.reason))
        return self._log_transition(ctx.advance(
            ImageState.COMPRESSED, path=compression.output_path, metadata=compression.metadata,
        ))

    async def _run(self, ctx: ImagePipelineContext, semaphore: asyncio.Semaphore) -> ImagePipelineContext:
        async with semaphore:
            try:
                return await asyncio.to_thread(self.process_one, ctx)
            except Exception as e:
                logger.exception(f"Unexpected error processing image '{ctx.upload.original_filename}'")
                remove_file(ctx.current_path)
                return ctx.advance(ImageState.VALIDATING).advance(ImageState.REJECTED, reason=str(e))

    def _record(self, ctx: ImagePipelineContext, alt_text: str, order: int) -> ProductImageRecord:
        filename = os.path.basename(ctx.current_path)
        return ProductImageRecord(
            url=f"{self.media_url_prefix}/{filename}",
            alt_text=alt_text,
            metadata=ctx.metadata,
            order=order,
        )

    async def ingest(self, images: Sequence[UploadedImage], alt_text: str, order_offset: int = 0) -> IngestionResult:
        """
        Processes ``images`` concurrently and merges the outcomes.
        ``order`` follows submission order starting at ``order_offset``.
        """
        if len(images) > self.max_images:
            raise TooManyImagesError(len(images), self.max_images)
        if not images:
            return IngestionResult()

        logger.info(f"Processing {len(images)} images for '{alt_text}'")
        semaphore = asyncio.Semaphore(self.workers)
        contexts = [ImagePipelineContext(index=i, upload=image) for i, image in enumerate(images)]
        outcomes: List[ImagePipelineContext] = await asyncio.gather(
            *(self._run(ctx, semaphore) for ctx in contexts)
        )

        succeeded: List[ProductImageRecord] = []
        failed: List[ImageFailure] = []
        for ctx in sorted(outcomes, key=lambda c: c.index):
            if ctx.state is ImageState.COMPRESSED:
                record = self._record(ctx, alt_text, order_offset + len(succeeded))
                self._log_transition(ctx.advance(ImageState.ATTACHED))
                succeeded.append(record)
            else:
                failed.append(ImageFailure(filename=ctx.upload.original_filename, reason=ctx.reason or "unknown error"))

        if not succeeded:
            logger.error(f"All {len(images)} images failed for '{alt_text}'")
            raise AllImagesFailedError([f.model_dump() for f in failed])

        if failed:
            logger.warning(f"{len(failed)} of {len(images)} images failed for '{alt_text}'")
        else:
            logger.success(f"All {len(images)} images processed for '{alt_text}'")
        return IngestionResult(succeeded=succeeded, failed=failed)

    @staticmethod
    def discard(images: Sequence[UploadedImage]) -> None:
        """Drops staged uploads that will not be ingested."""
        for image in images:
            remove_file(image.temp_path)
