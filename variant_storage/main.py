"""
Variant Storage Service - Main Application
FastAPI app streaming uploads and their resized variants into S3/MinIO.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from variant_storage.api import uploads
from variant_storage.core.config import settings
from variant_storage.engine.storage import VariantStorageEngine
from variant_storage.schemas import ErrorResponse, HealthCheckResponse

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(engine: Optional[VariantStorageEngine] = None) -> FastAPI:
    """
    Build the application.

    Args:
        engine: Storage engine to serve; built from settings at startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.
        Runs on startup and shutdown.
        """
        logger.info("Starting Variant Storage Service...")

        app.state.engine = engine or VariantStorageEngine()
        logger.info(f"Storage engine ready for bucket: {app.state.engine.store.bucket}")

        yield

        logger.info("Shutting down Variant Storage Service...")
        await app.state.engine.aclose()

    app = FastAPI(
        title="Variant Storage Service",
        description="Streams uploads and their resized variants into S3/MinIO",
        version="0.1.0",
        lifespan=lifespan
    )

    app.include_router(uploads.router)

    @app.get("/health", tags=["health"], response_model=HealthCheckResponse)
    async def health_check():
        """Health check endpoint."""
        try:
            await app.state.engine.store.ping()

            return HealthCheckResponse(
                status="healthy",
                storage_connection="ok"
            )
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "storage_connection": "failed"
                }
            )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler for unhandled errors."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(detail="Internal server error").model_dump()
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "variant_storage.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
        timeout_keep_alive=7200,  # 2 hours for very large file uploads
    )
