from PIL import Image, UnidentifiedImageError
from typing import Optional
import os
from loguru import logger

from app.core.errors import ImageCompressionError, ImageValidationError
from app.models.ingestion import (
    CompressionOptions,
    ImageCompressionResult,
    ImageLimits,
    ImageValidationResult,
)
from app.models.product import ImageMetadata

# Pillow format name -> extensions that already denote it
FORMAT_EXTENSIONS = {
    "jpeg": (".jpg", ".jpeg"),
    "png": (".png",),
    "webp": (".webp",),
}

ALPHA_MODES = ("RGBA", "LA", "PA", "RGBa", "La")


class ImageProcessor:
    @staticmethod
    def read_metadata(image_path: str) -> ImageMetadata:
        """Decodes the header of ``image_path`` and reports what the bytes actually are."""
        size_bytes = os.path.getsize(image_path)
        with Image.open(image_path) as img:
            return ImageMetadata(
                width=img.width,
                height=img.height,
                format=(img.format or "unknown").lower(),
                size_bytes=size_bytes,
                has_alpha=img.mode in ALPHA_MODES or "transparency" in img.info,
                is_animated=bool(getattr(img, "is_animated", False)),
            )

    @staticmethod
    def validate_image(image_path: str, limits: Optional[ImageLimits] = None) -> ImageValidationResult:
        """Checks byte size, decoded format and dimensions against ``limits``."""
        limits = limits or ImageLimits.from_settings()

        size_bytes = os.path.getsize(image_path)
        if size_bytes > limits.max_size_bytes:
            return ImageValidationResult(path=image_path, error=ImageValidationError(
                ImageValidationError.OVERSIZED,
                f"Image size exceeds {limits.max_size_bytes / (1024 * 1024):g}MB limit",
            ))

        try:
            with Image.open(image_path) as img:
                img.verify()
            metadata = ImageProcessor.read_metadata(image_path)
        except Image.DecompressionBombError as e:
            logger.warning(f"Image validation failed for {image_path}: {e}")
            return ImageValidationResult(path=image_path, error=ImageValidationError(
                ImageValidationError.DIMENSIONS_OUT_OF_RANGE,
                f"Image pixel count exceeds the decoder limit of {Image.MAX_IMAGE_PIXELS} pixels",
            ))
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
            logger.warning(f"Image validation failed for {image_path}: {e}")
            return ImageValidationResult(path=image_path, error=ImageValidationError(
                ImageValidationError.UNSUPPORTED_FORMAT,
                "File is not a decodable image",
            ))

        if metadata.format not in limits.allowed_formats:
            return ImageValidationResult(path=image_path, metadata=metadata, error=ImageValidationError(
                ImageValidationError.UNSUPPORTED_FORMAT,
                f"Unsupported image format '{metadata.format}' (allowed: {', '.join(limits.allowed_formats)})",
            ))

        if metadata.width > limits.max_width or metadata.height > limits.max_height:
            return ImageValidationResult(path=image_path, metadata=metadata, error=ImageValidationError(
                ImageValidationError.DIMENSIONS_OUT_OF_RANGE,
                f"Image dimensions {metadata.width}x{metadata.height} exceed "
                f"{limits.max_width}x{limits.max_height} limit",
            ))
        if metadata.width < limits.min_width or metadata.height < limits.min_height:
            return ImageValidationResult(path=image_path, metadata=metadata, error=ImageValidationError(
                ImageValidationError.DIMENSIONS_OUT_OF_RANGE,
                f"Image dimensions {metadata.width}x{metadata.height} below "
                f"{limits.min_width}x{limits.min_height} minimum",
            ))

        return ImageValidationResult(path=image_path, metadata=metadata)

    @staticmethod
    def compressed_path(image_path: str, target_format: str) -> str:
        """``<base>-compressed<ext>``, keeping the source extension when it already matches the format."""
        base, ext = os.path.splitext(image_path)
        extensions = FORMAT_EXTENSIONS.get(target_format, (f".{target_format}",))
        if ext.lower() not in extensions:
            ext = extensions[0]
        return f"{base}-compressed{ext}"

    @staticmethod
    def _save(img: Image.Image, output_path: str, target_format: str, quality: int) -> None:
        if target_format == "jpeg":
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            img.save(output_path, format="JPEG", quality=quality, optimize=True, progressive=True)
        elif target_format == "png":
            img.save(output_path, format="PNG", optimize=True, compress_level=9)
        elif target_format == "webp":
            img.save(output_path, format="WEBP", quality=quality)
        else:
            raise ValueError(f"Unsupported format: {target_format}")

    @staticmethod
    def compress_image(image_path: str, options: Optional[CompressionOptions] = None) -> ImageCompressionResult:
        """
        Resizes (downscale only, aspect preserved) and re-encodes ``image_path``.
        On success the source file is deleted; on failure it is left untouched.
        """
        options = options or CompressionOptions.from_settings()
        output_path = None
        try:
            with Image.open(image_path) as img:
                target_format = (options.format or img.format or "").lower()
                if target_format == "jpg":
                    target_format = "jpeg"
                output_path = ImageProcessor.compressed_path(image_path, target_format)

                img.load()
                if img.width > options.max_width or img.height > options.max_height:
                    original_size = img.size
                    # thumbnail() never enlarges and keeps the aspect ratio
                    img.thumbnail((options.max_width, options.max_height), Image.Resampling.LANCZOS)
                    logger.debug(f"Resized {image_path} from {original_size} to {img.size}")

                ImageProcessor._save(img, output_path, target_format, options.quality)

            metadata = ImageProcessor.read_metadata(output_path)
        except Exception as e:
            logger.error(f"Image compression failed for {image_path}: {e}")
            if output_path and output_path != image_path and os.path.exists(output_path):
                os.remove(output_path)
            return ImageCompressionResult(
                source_path=image_path,
                error=ImageCompressionError(image_path, str(e)),
            )

        os.remove(image_path)
        logger.info(f"Image compressed: {output_path} ({metadata.width}x{metadata.height}, {metadata.size_bytes} bytes)")
        return ImageCompressionResult(source_path=image_path, output_path=output_path, metadata=metadata)
