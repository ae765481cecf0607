import os
import sys
from loguru import logger
from app.core.config import settings

def setup_logging():
    # Remove default handler
    logger.remove()

    # Add stdout handler with color and detailed info
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.LOG_LEVEL,
        colorize=True
    )

    # Ingestion runs leave an audit trail of rejected rows and images here
    os.makedirs(settings.LOG_DIR, exist_ok=True)
    logger.add(
        os.path.join(settings.LOG_DIR, "ingestion.log"),
        rotation="10 MB",
        retention="10 days",
        level="DEBUG",
        compression="zip",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra} | {name}:{function}:{line} - {message}"
    )

    logger.info("Logging initialized successfully.")
