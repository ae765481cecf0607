from fastapi import Request, status
from fastapi.responses import JSONResponse
from loguru import logger
import time
import uuid

from app.core.config import settings
from app.core.errors import CatalogIngestionError

async def log_request_middleware(request: Request, call_next):
    request_id = str(uuid.uuid4())
    # Add request id to the loguru context
    with logger.contextualize(request_id=request_id):
        start_time = time.time()

        # Log request details
        logger.info(f"Incoming request: {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000
            formatted_process_time = "{0:.2f}".format(process_time)

            logger.info(f"Completed request: {request.method} {request.url.path} - Status: {response.status_code} - Duration: {formatted_process_time}ms")

            # Add request ID to response headers
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            logger.exception(f"Unhandled exception occurred: {str(e)}")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"detail": "An internal server error occurred.", "request_id": request_id}
            )

async def vendor_identity_middleware(request: Request, call_next):
    """
    Development stand-in for the identity collaborator: copies the vendor id
    header onto ``request.state``. A real deployment puts its verified
    identity there instead.
    """
    vendor_id = request.headers.get(settings.VENDOR_ID_HEADER)
    request.state.vendor_id = vendor_id.strip() if vendor_id and vendor_id.strip() else None
    return await call_next(request)

def setup_exception_handlers(app):
    @app.exception_handler(CatalogIngestionError)
    async def ingestion_exception_handler(request: Request, exc: CatalogIngestionError):
        logger.warning(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Global Exception: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal Server Error", "message": str(exc)}
        )
