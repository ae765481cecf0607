import asyncio
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from typing import Any, Dict, List, Optional
from loguru import logger

from app.api.deps import get_bulk_insert_coordinator, get_product_service, get_vendor_id
from app.core.config import settings
from app.core.errors import TooManyImagesError
from app.models.ingestion import UploadedImage
from app.models.product import (
    BulkUploadResponse,
    ImageListResponse,
    ProductListResponse,
    ProductMutationResponse,
    ProductStatus,
    ReorderImagesRequest,
    RowError,
)
from app.services.bulk_insert import BulkInsertCoordinator
from app.services.product_service import ProductService
from app.utils.file_storage import stage_bulk_file, stage_product_image

router = APIRouter()


def product_form(
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    manufacturer: Optional[str] = Form(None),
    specifications: Optional[str] = Form(None),
    dimensions: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    status: Optional[str] = Form(None),
) -> Dict[str, Any]:
    """Raw form fields; coercion happens in the row normalizer so form and bulk rules match."""
    fields = {
        "name": name,
        "description": description,
        "price": price,
        "category": category,
        "stock": stock,
        "manufacturer": manufacturer,
        "specifications": specifications,
        "dimensions": dimensions,
        "tags": tags,
        "status": status,
    }
    return {key: value for key, value in fields.items() if value is not None}


def _stage_images(images: Optional[List[UploadFile]]) -> List[UploadedImage]:
    images = [img for img in (images or []) if img.filename]
    if len(images) > settings.MAX_IMAGES_PER_PRODUCT:
        raise TooManyImagesError(len(images), settings.MAX_IMAGES_PER_PRODUCT)
    return [
        stage_product_image(img.file, img.filename, img.content_type, settings.PRODUCTS_DIR, index,
                            settings.MAX_IMAGE_SIZE_BYTES)
        for index, img in enumerate(images)
    ]


@router.post("/products", response_model=ProductMutationResponse, response_model_exclude_none=True, status_code=201)
async def create_product(
    fields: Dict[str, Any] = Depends(product_form),
    images: Optional[List[UploadFile]] = File(None),
    vendor_id: str = Depends(get_vendor_id),
    service: ProductService = Depends(get_product_service),
):
    """
    Create a product from form fields plus up to 5 images.
    Images that fail validation or compression are reported under ``warnings``.
    """
    uploads = await asyncio.to_thread(_stage_images, images)
    return await service.create_product(vendor_id, fields, uploads)


@router.post("/products/bulk", response_model=BulkUploadResponse)
def bulk_upload_products(
    file: UploadFile = File(...),
    vendor_id: str = Depends(get_vendor_id),
    coordinator: BulkInsertCoordinator = Depends(get_bulk_insert_coordinator),
):
    """Bulk create from a .json, .xlsx, .xls or .csv catalog file."""
    temp_path = stage_bulk_file(file.file, file.filename, settings.TEMP_DIR, settings.MAX_BULK_FILE_SIZE_BYTES)
    report = coordinator.ingest_file(temp_path, file.filename, vendor_id)
    return BulkUploadResponse(
        message=BulkInsertCoordinator.summary(report),
        count=report.inserted_count,
        total_rows=report.total_rows,
        row_errors=[RowError(**error) for error in BulkInsertCoordinator.row_error_dicts(report)],
    )


@router.get("/products", response_model=ProductListResponse)
async def list_products(
    status: Optional[ProductStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    vendor_id: str = Depends(get_vendor_id),
    service: ProductService = Depends(get_product_service),
):
    return service.list_products(vendor_id, page=page, limit=limit, status=status)


@router.put("/products/{product_id}", response_model=ProductMutationResponse, response_model_exclude_none=True)
async def update_product(
    product_id: str,
    fields: Dict[str, Any] = Depends(product_form),
    images: Optional[List[UploadFile]] = File(None),
    vendor_id: str = Depends(get_vendor_id),
    service: ProductService = Depends(get_product_service),
):
    """Replace product fields; new images are appended after the existing ones."""
    uploads = await asyncio.to_thread(_stage_images, images)
    return await service.update_product(vendor_id, product_id, fields, uploads)


@router.delete("/products/{product_id}/images/{image_index}", response_model=ImageListResponse)
async def delete_product_image(
    product_id: str,
    image_index: int,
    vendor_id: str = Depends(get_vendor_id),
    service: ProductService = Depends(get_product_service),
):
    return service.delete_image(vendor_id, product_id, image_index)


@router.put("/products/{product_id}/images/reorder", response_model=ImageListResponse)
async def reorder_product_images(
    product_id: str,
    request: ReorderImagesRequest,
    vendor_id: str = Depends(get_vendor_id),
    service: ProductService = Depends(get_product_service),
):
    return service.reorder_images(vendor_id, product_id, request.new_order)


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: str,
    vendor_id: str = Depends(get_vendor_id),
    service: ProductService = Depends(get_product_service),
):
    service.delete_product(vendor_id, product_id)
    logger.info(f"Product {product_id} removed")
    return {"message": "Product deleted successfully"}
