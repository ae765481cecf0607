"""Error taxonomy for catalog ingestion.

Request-level errors propagate to the HTTP layer and become client errors.
Row- and image-level errors are carried as data inside results and reports;
they are raised only inside a single unit of work and recovered by the caller.
"""
from typing import Dict, List, Optional


class CatalogIngestionError(Exception):
    """Base class for every ingestion error."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"message": self.message}


# --- whole bulk request ---

class UnsupportedFormatError(CatalogIngestionError):
    def __init__(self, filename: str, supported: Optional[List[str]] = None):
        self.filename = filename
        self.supported = list(supported or [])
        message = f"Unsupported file format: {filename}"
        if self.supported:
            message += f" (expected one of {', '.join(self.supported)})"
        super().__init__(message)


class FormatParseError(CatalogIngestionError):
    def __init__(self, filename: str, diagnostic: str):
        self.filename = filename
        self.diagnostic = diagnostic
        super().__init__(f"Failed to parse {filename}: {diagnostic}")

    def to_dict(self) -> dict:
        return {"message": f"Failed to parse {self.filename}", "error": self.diagnostic}


class UploadTooLargeError(CatalogIngestionError):
    status_code = 413

    def __init__(self, filename: str, limit_bytes: int):
        self.filename = filename
        self.limit_bytes = limit_bytes
        super().__init__(f"{filename} exceeds the {limit_bytes // (1024 * 1024)}MB upload limit")


# --- one row ---

class RowNormalizationError(CatalogIngestionError):
    def __init__(self, row_index: int, reason: str):
        self.row_index = row_index
        self.reason = reason
        super().__init__(f"Row {row_index}: {reason}")

    def to_dict(self) -> dict:
        return {"row_index": self.row_index, "reason": self.reason}


class InvalidProductError(CatalogIngestionError):
    """A single-product form failed the same coercion rules as a bulk row."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid product data: {reason}")


# --- one image ---

class ImageValidationError(CatalogIngestionError):
    OVERSIZED = "oversized"
    DIMENSIONS_OUT_OF_RANGE = "dimensions_out_of_range"
    UNSUPPORTED_FORMAT = "unsupported_format"

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(reason)


class ImageCompressionError(CatalogIngestionError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Compression failed for {path}: {reason}")


# --- whole create/update ---

class TooManyImagesError(CatalogIngestionError):
    def __init__(self, submitted: int, limit: int):
        self.submitted = submitted
        self.limit = limit
        super().__init__(f"At most {limit} images are allowed per product, got {submitted}")


class AllImagesFailedError(CatalogIngestionError):
    def __init__(self, failures: List[Dict[str, str]]):
        self.failures = failures
        super().__init__("All image processing failed")

    def to_dict(self) -> dict:
        return {"message": self.message, "errors": self.failures}


class ProductNotFoundError(CatalogIngestionError):
    status_code = 404

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__("Product not found")


class InvalidImageOrderError(CatalogIngestionError):
    pass
