from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import List, Any


class Settings(BaseSettings):
    PROJECT_NAME: str = "Vendor Catalog Ingestion"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    # Storage
    UPLOAD_DIR: str = "uploads"
    PRODUCTS_DIR: str = "uploads/products"
    TEMP_DIR: str = "uploads/temp"
    MEDIA_URL_PREFIX: str = "/uploads/products"

    # Image limits (checked against decoded content, not the declared type)
    MAX_IMAGES_PER_PRODUCT: int = 5
    MAX_IMAGE_SIZE_BYTES: int = 5 * 1024 * 1024
    MIN_IMAGE_WIDTH: int = 100
    MAX_IMAGE_WIDTH: int = 5000
    MIN_IMAGE_HEIGHT: int = 100
    MAX_IMAGE_HEIGHT: int = 5000
    ALLOWED_IMAGE_FORMATS: Any = ["jpeg", "png", "webp"]

    # Compression
    COMPRESSION_QUALITY: int = 80
    COMPRESSION_MAX_WIDTH: int = 1920
    COMPRESSION_MAX_HEIGHT: int = 1080
    IMAGE_WORKERS: int = 5

    # Bulk upload
    MAX_BULK_FILE_SIZE_BYTES: int = 10 * 1024 * 1024
    BULK_EXTENSIONS: Any = [".json", ".xlsx", ".xls", ".csv"]
    TAG_DELIMITER: str = ","

    # Identity
    VENDOR_ID_HEADER: str = "X-Vendor-ID"

    @field_validator("ALLOWED_IMAGE_FORMATS", "BULK_EXTENSIONS", mode="before")
    @classmethod
    def assemble_list(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            return [i.strip().lower() for i in v.split(",") if i.strip()]
        return v

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    class Config:
        case_sensitive = True
        env_file = ".env"

settings = Settings()
