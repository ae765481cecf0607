from fastapi import Depends, HTTPException, Request, status

from app.services.bulk_insert import BulkInsertCoordinator
from app.services.catalog_store import InMemoryCatalogStore, catalog_store
from app.services.product_service import ProductService


def get_catalog_store():
    """Dependency for the catalog store"""
    return catalog_store


def get_product_service(store: InMemoryCatalogStore = Depends(get_catalog_store)):
    """Dependency for product service"""
    return ProductService(store)


def get_bulk_insert_coordinator(store: InMemoryCatalogStore = Depends(get_catalog_store)):
    """Dependency for the bulk insert coordinator"""
    return BulkInsertCoordinator(store)


def get_vendor_id(request: Request) -> str:
    """Verified vendor id placed on the request by the identity middleware"""
    vendor_id = getattr(request.state, "vendor_id", None)
    if not vendor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Vendor identity required")
    return vendor_id
