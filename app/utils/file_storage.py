from contextlib import contextmanager
from typing import BinaryIO, Iterator, Optional
from loguru import logger
import os
import time

from app.core.errors import UploadTooLargeError
from app.models.ingestion import UploadedImage

CHUNK_SIZE = 1024 * 1024


def remove_file(path: str) -> bool:
    """Deletes ``path`` if it exists. Returns True when a file was removed."""
    try:
        os.remove(path)
        logger.debug(f"Removed file: {path}")
        return True
    except FileNotFoundError:
        return False


@contextmanager
def scoped_file(path: str) -> Iterator[str]:
    """Yields ``path`` and removes the file on every exit path."""
    try:
        yield path
    finally:
        remove_file(path)


def _copy_limited(source: BinaryIO, destination: str, limit_bytes: int, filename: str,
                  truncate: bool = False) -> int:
    """
    Copies ``source`` in chunks. Past ``limit_bytes`` it raises UploadTooLargeError,
    or with ``truncate`` stops after ``limit_bytes + 1`` bytes so the copy still
    reads as over the limit.
    """
    written = 0
    try:
        with open(destination, "wb") as buffer:
            while True:
                chunk = source.read(CHUNK_SIZE)
                if not chunk:
                    break
                if written + len(chunk) > limit_bytes:
                    if not truncate:
                        raise UploadTooLargeError(filename, limit_bytes)
                    buffer.write(chunk[:limit_bytes + 1 - written])
                    written = limit_bytes + 1
                    break
                written += len(chunk)
                buffer.write(chunk)
    except BaseException:
        remove_file(destination)
        raise
    return written


def stage_product_image(source: BinaryIO, original_filename: str, content_type: Optional[str],
                        products_dir: str, index: int, limit_bytes: int) -> UploadedImage:
    """
    Writes one uploaded image to ``<products_dir>/<timestamp>-<index><ext>``.
    Oversized uploads are cut at ``limit_bytes + 1`` and left for the validator
    to reject per image.
    """
    os.makedirs(products_dir, exist_ok=True)
    ext = os.path.splitext(original_filename or "")[1].lower()
    path = os.path.join(products_dir, f"{time.time_ns()}-{index}{ext}")
    size = _copy_limited(source, path, limit_bytes, original_filename, truncate=True)
    if size > limit_bytes:
        logger.warning(f"Image '{original_filename}' exceeds {limit_bytes} bytes, staged truncated")
    logger.debug(f"Staged image '{original_filename}' -> {path} ({size} bytes)")
    return UploadedImage(
        temp_path=path,
        original_filename=original_filename,
        declared_mime_type=content_type,
        size_bytes=size,
    )


def stage_bulk_file(source: BinaryIO, original_filename: str, temp_dir: str, limit_bytes: int) -> str:
    """Writes a bulk catalog upload to the temp dir, refusing anything over ``limit_bytes``."""
    os.makedirs(temp_dir, exist_ok=True)
    safe_name = os.path.basename(original_filename or "upload")
    path = os.path.join(temp_dir, f"{time.time_ns()}-{safe_name}")
    size = _copy_limited(source, path, limit_bytes, safe_name)
    logger.info(f"Staged bulk file '{original_filename}' ({size} bytes)")
    return path
