from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
import uuid


class ProductStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    OUT_OF_STOCK = "outOfStock"
    DISCONTINUED = "discontinued"


class Dimensions(BaseModel):
    model_config = ConfigDict(frozen=True)

    length: float = Field(0.0, ge=0)
    width: float = Field(0.0, ge=0)
    height: float = Field(0.0, ge=0)
    weight: float = Field(0.0, ge=0)


class Specification(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: str


class ImageMetadata(BaseModel):
    """Facts read from the decoded image, never from the client's declared type."""
    model_config = ConfigDict(frozen=True)

    width: int
    height: int
    format: str
    size_bytes: int
    has_alpha: bool = False
    is_animated: bool = False


class ProductImageRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    alt_text: str
    metadata: ImageMetadata
    order: int


class NormalizedProductDraft(BaseModel):
    """Type-safe form of one catalog row or product form before persistence."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    price: float = Field(ge=0)
    category: str
    stock: int = Field(0, ge=0)
    dimensions: Dimensions = Field(default_factory=Dimensions)
    specifications: List[Specification] = []
    tags: List[str] = []
    manufacturer: Optional[str] = None
    status: ProductStatus = ProductStatus.DRAFT
    vendor_id: str


class Product(NormalizedProductDraft):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    images: List[ProductImageRecord] = []
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ImageFailure(BaseModel):
    filename: str
    reason: str


class ImageWarnings(BaseModel):
    message: str
    errors: List[ImageFailure]


class ProductMutationResponse(BaseModel):
    product: Product
    message: str
    warnings: Optional[ImageWarnings] = None


class RowError(BaseModel):
    row_index: int
    reason: str


class BulkUploadResponse(BaseModel):
    message: str
    count: int
    total_rows: int
    row_errors: List[RowError] = []


class Pagination(BaseModel):
    total: int
    page: int
    pages: int


class ProductListResponse(BaseModel):
    products: List[Product]
    pagination: Pagination


class ReorderImagesRequest(BaseModel):
    new_order: List[int] = Field(..., description="Current image indices in their new order")


class ImageListResponse(BaseModel):
    message: str
    images: List[ProductImageRecord]
