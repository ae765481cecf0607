from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from loguru import logger

from app.models.product import NormalizedProductDraft, Product, ProductImageRecord, ProductStatus


class InMemoryCatalogStore:
    """
    Catalog store boundary used by the ingestion services.

    Every call is scoped by vendor id. Records are immutable; updates replace
    the stored value. Write contention is left to the store.
    """

    def __init__(self):
        self._products: Dict[str, Product] = {}

    def _owned(self, vendor_id: str, product_id: str) -> Optional[Product]:
        product = self._products.get(product_id)
        if product is None or product.vendor_id != vendor_id:
            return None
        return product

    def create(self, vendor_id: str, draft: NormalizedProductDraft,
               images: Sequence[ProductImageRecord] = ()) -> Product:
        data = draft.model_dump()
        data["vendor_id"] = vendor_id
        product = Product(**data, images=list(images))
        self._products[product.id] = product
        logger.info(f"Created product {product.id} for vendor {vendor_id}")
        return product

    def insert_many(self, vendor_id: str, drafts: Sequence[NormalizedProductDraft]) -> List[Product]:
        inserted = [self.create(vendor_id, draft) for draft in drafts]
        logger.info(f"Inserted {len(inserted)} products for vendor {vendor_id}")
        return inserted

    def find(self, vendor_id: str, product_id: str) -> Optional[Product]:
        return self._owned(vendor_id, product_id)

    def update(self, vendor_id: str, product_id: str, **changes) -> Optional[Product]:
        product = self._owned(vendor_id, product_id)
        if product is None:
            return None
        changes.pop("id", None)
        changes["updated_at"] = datetime.now(timezone.utc)
        updated = product.model_copy(update=changes)
        self._products[product_id] = updated
        return updated

    def delete(self, vendor_id: str, product_id: str) -> Optional[Product]:
        product = self._owned(vendor_id, product_id)
        if product is None:
            return None
        return self._products.pop(product_id)

    def paginate(self, vendor_id: str, page: int = 1, limit: int = 10,
                 status: Optional[ProductStatus] = None) -> Tuple[List[Product], int]:
        matches = [
            p for p in self._products.values()
            if p.vendor_id == vendor_id and (status is None or p.status == status)
        ]
        matches.sort(key=lambda p: p.created_at, reverse=True)
        start = (page - 1) * limit
        return matches[start:start + limit], len(matches)

    def count(self, vendor_id: Optional[str] = None) -> int:
        if vendor_id is None:
            return len(self._products)
        return sum(1 for p in self._products.values() if p.vendor_id == vendor_id)


catalog_store = InMemoryCatalogStore()
