import math
import os
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from app.core.config import settings
from app.core.errors import (
    InvalidImageOrderError,
    InvalidProductError,
    ProductNotFoundError,
    RowNormalizationError,
    TooManyImagesError,
)
from app.models.ingestion import IngestionResult, UploadedImage
from app.models.product import (
    ImageListResponse,
    ImageWarnings,
    NormalizedProductDraft,
    Pagination,
    Product,
    ProductImageRecord,
    ProductListResponse,
    ProductMutationResponse,
    ProductStatus,
)
from app.services.catalog_store import InMemoryCatalogStore
from app.services.image_ingestion import ImageIngestionOrchestrator
from app.services.row_normalizer import RowNormalizer
from app.utils.file_storage import remove_file


def _reindex(images: Sequence[ProductImageRecord]) -> List[ProductImageRecord]:
    return [image.model_copy(update={"order": i}) for i, image in enumerate(images)]


class ProductService:
    def __init__(
        self,
        store: InMemoryCatalogStore,
        orchestrator: Optional[ImageIngestionOrchestrator] = None,
        normalizer: Optional[RowNormalizer] = None,
    ):
        self.store = store
        self.orchestrator = orchestrator or ImageIngestionOrchestrator()
        self.normalizer = normalizer or RowNormalizer()

    def _draft(self, fields: Dict[str, Any], vendor_id: str) -> NormalizedProductDraft:
        try:
            return self.normalizer.normalize(fields, 0, vendor_id)
        except RowNormalizationError as e:
            raise InvalidProductError(e.reason) from e

    def _get(self, vendor_id: str, product_id: str) -> Product:
        product = self.store.find(vendor_id, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    @staticmethod
    def _response(product: Product, message: str, result: IngestionResult) -> ProductMutationResponse:
        warnings = None
        if result.has_failures:
            warnings = ImageWarnings(
                message=f"{len(result.failed)} image(s) could not be processed",
                errors=result.failed,
            )
        return ProductMutationResponse(product=product, message=message, warnings=warnings)

    async def _ingest_images(self, uploads: Sequence[UploadedImage], alt_text: str,
                             order_offset: int = 0) -> IngestionResult:
        try:
            return await self.orchestrator.ingest(uploads, alt_text, order_offset=order_offset)
        except TooManyImagesError:
            # Nothing was processed, so nothing staged will be used
            self.orchestrator.discard(uploads)
            raise

    async def create_product(self, vendor_id: str, fields: Dict[str, Any],
                             uploads: Sequence[UploadedImage] = ()) -> ProductMutationResponse:
        try:
            draft = self._draft(fields, vendor_id)
        except InvalidProductError:
            self.orchestrator.discard(uploads)
            raise

        result = await self._ingest_images(uploads, draft.name)
        product = self.store.create(vendor_id, draft, result.succeeded)
        logger.success(f"Product {product.id} created with {len(result.succeeded)} images")
        return self._response(product, "Product created successfully", result)

    async def update_product(self, vendor_id: str, product_id: str, fields: Dict[str, Any],
                             uploads: Sequence[UploadedImage] = ()) -> ProductMutationResponse:
        try:
            product = self._get(vendor_id, product_id)
            draft = self._draft(fields, vendor_id)
        except (ProductNotFoundError, InvalidProductError):
            self.orchestrator.discard(uploads)
            raise

        result = await self._ingest_images(uploads, draft.name, order_offset=len(product.images))
        # Model instances, not dumped dicts: the store copies without re-validating
        changes = {field: value for field, value in draft if field != "vendor_id"}
        changes["images"] = list(product.images) + list(result.succeeded)
        updated = self.store.update(vendor_id, product_id, **changes)
        if updated is None:
            for record in result.succeeded:
                remove_file(os.path.join(settings.PRODUCTS_DIR, os.path.basename(record.url)))
            raise ProductNotFoundError(product_id)
        logger.success(f"Product {product_id} updated with {len(result.succeeded)} new images")
        return self._response(updated, "Product updated successfully", result)

    def list_products(self, vendor_id: str, page: int = 1, limit: int = 10,
                      status: Optional[ProductStatus] = None) -> ProductListResponse:
        products, total = self.store.paginate(vendor_id, page=page, limit=limit, status=status)
        return ProductListResponse(
            products=products,
            pagination=Pagination(total=total, page=page, pages=math.ceil(total / limit) if limit else 0),
        )

    def delete_product(self, vendor_id: str, product_id: str) -> None:
        if self.store.delete(vendor_id, product_id) is None:
            raise ProductNotFoundError(product_id)
        logger.info(f"Product {product_id} deleted by vendor {vendor_id}")

    def delete_image(self, vendor_id: str, product_id: str, image_index: int) -> ImageListResponse:
        product = self._get(vendor_id, product_id)
        if image_index < 0 or image_index >= len(product.images):
            raise InvalidImageOrderError("Invalid image index")

        image = product.images[image_index]
        image_path = os.path.join(settings.PRODUCTS_DIR, os.path.basename(image.url))
        if not remove_file(image_path):
            # The record is still removed when the asset is already gone
            logger.warning(f"Image file missing on disk: {image_path}")

        remaining = _reindex(product.images[:image_index] + product.images[image_index + 1:])
        updated = self.store.update(vendor_id, product_id, images=remaining)
        return ImageListResponse(message="Image deleted successfully", images=updated.images)

    def reorder_images(self, vendor_id: str, product_id: str, new_order: Sequence[int]) -> ImageListResponse:
        product = self._get(vendor_id, product_id)
        if len(new_order) != len(product.images):
            raise InvalidImageOrderError("Invalid image order")
        if sorted(new_order) != list(range(len(product.images))):
            raise InvalidImageOrderError("Invalid image indices")

        reordered = _reindex([product.images[i] for i in new_order])
        updated = self.store.update(vendor_id, product_id, images=reordered)
        return ImageListResponse(message="Images reordered successfully", images=updated.images)
