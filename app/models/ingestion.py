"""Request-scoped values passed between ingestion stages.

All of these are frozen; a stage that needs to record progress returns a new
value with ``dataclasses.replace`` instead of mutating what it was given.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from app.core.config import settings
from app.core.errors import ImageCompressionError, ImageValidationError, RowNormalizationError
from app.models.product import ImageFailure, ImageMetadata, ProductImageRecord

RawCatalogRow = Dict[str, Any]

# Set by a parser on a row it could read but not split into fields
ROW_ERROR_KEY = "__row_error__"


@dataclass(frozen=True)
class UploadedImage:
    temp_path: str
    original_filename: str
    declared_mime_type: Optional[str]
    size_bytes: int


@dataclass(frozen=True)
class ImageLimits:
    max_size_bytes: int = settings.MAX_IMAGE_SIZE_BYTES
    min_width: int = settings.MIN_IMAGE_WIDTH
    max_width: int = settings.MAX_IMAGE_WIDTH
    min_height: int = settings.MIN_IMAGE_HEIGHT
    max_height: int = settings.MAX_IMAGE_HEIGHT
    allowed_formats: Tuple[str, ...] = tuple(settings.ALLOWED_IMAGE_FORMATS)

    @classmethod
    def from_settings(cls) -> "ImageLimits":
        return cls(
            max_size_bytes=settings.MAX_IMAGE_SIZE_BYTES,
            min_width=settings.MIN_IMAGE_WIDTH,
            max_width=settings.MAX_IMAGE_WIDTH,
            min_height=settings.MIN_IMAGE_HEIGHT,
            max_height=settings.MAX_IMAGE_HEIGHT,
            allowed_formats=tuple(settings.ALLOWED_IMAGE_FORMATS),
        )


@dataclass(frozen=True)
class CompressionOptions:
    quality: int = settings.COMPRESSION_QUALITY
    max_width: int = settings.COMPRESSION_MAX_WIDTH
    max_height: int = settings.COMPRESSION_MAX_HEIGHT
    # None keeps the decoded source format
    format: Optional[str] = None

    @classmethod
    def from_settings(cls) -> "CompressionOptions":
        return cls(
            quality=settings.COMPRESSION_QUALITY,
            max_width=settings.COMPRESSION_MAX_WIDTH,
            max_height=settings.COMPRESSION_MAX_HEIGHT,
        )


@dataclass(frozen=True)
class ImageValidationResult:
    path: str
    metadata: Optional[ImageMetadata] = None
    error: Optional[ImageValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ImageCompressionResult:
    source_path: str
    output_path: Optional[str] = None
    metadata: Optional[ImageMetadata] = None
    error: Optional[ImageCompressionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ImageState(str, Enum):
    UPLOADED = "uploaded"
    VALIDATING = "validating"
    REJECTED = "rejected"
    VALIDATED = "validated"
    COMPRESSING = "compressing"
    FAILED = "failed"
    COMPRESSED = "compressed"
    ATTACHED = "attached"


TERMINAL_STATES = frozenset({ImageState.REJECTED, ImageState.FAILED, ImageState.ATTACHED})

_TRANSITIONS = {
    ImageState.UPLOADED: {ImageState.VALIDATING},
    ImageState.VALIDATING: {ImageState.REJECTED, ImageState.VALIDATED},
    ImageState.VALIDATED: {ImageState.COMPRESSING},
    ImageState.COMPRESSING: {ImageState.FAILED, ImageState.COMPRESSED},
    ImageState.COMPRESSED: {ImageState.ATTACHED},
}


@dataclass(frozen=True)
class ImagePipelineContext:
    """One image's progress through validate -> compress -> attach."""
    index: int
    upload: UploadedImage
    state: ImageState = ImageState.UPLOADED
    path: Optional[str] = None
    metadata: Optional[ImageMetadata] = None
    reason: Optional[str] = None

    def advance(self, state: ImageState, **changes) -> "ImagePipelineContext":
        if state not in _TRANSITIONS.get(self.state, set()):
            raise ValueError(f"Illegal image state transition {self.state.value} -> {state.value}")
        return replace(self, state=state, **changes)

    @property
    def current_path(self) -> str:
        return self.path or self.upload.temp_path


@dataclass(frozen=True)
class IngestionResult:
    succeeded: List[ProductImageRecord] = field(default_factory=list)
    failed: List[ImageFailure] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


@dataclass(frozen=True)
class BulkIngestionReport:
    inserted_count: int
    total_rows: int
    row_errors: List[RowNormalizationError] = field(default_factory=list)

    def __post_init__(self):
        if self.inserted_count + len(self.row_errors) != self.total_rows:
            raise ValueError(
                f"Inconsistent bulk report: {self.inserted_count} inserted + "
                f"{len(self.row_errors)} errors != {self.total_rows} rows"
            )
