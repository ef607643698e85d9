"""
Health check endpoint handler.
"""

import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.config import settings
from core.database import session_scope
from services.storage_service import MinIOStorageService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring.
    Checks database connectivity and MinIO bucket access.
    """
    health_status = {
        "status": "healthy",
        "services": {},
    }

    try:
        async with session_scope() as db:
            await db.execute(text("SELECT 1"))
        health_status["services"]["database"] = {"status": "healthy"}
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database health check failed: {e}")
        health_status["services"]["database"] = {"status": "unhealthy", "error": str(e)}
        health_status["status"] = "degraded"

    minio_healthy = await MinIOStorageService.health_check()
    health_status["services"]["minio"] = {
        "status": "healthy" if minio_healthy else "unhealthy",
        "bucket": settings.minio.bucket_name,
        "endpoint": settings.minio.endpoint,
    }
    if not minio_healthy:
        health_status["status"] = "degraded"

    return health_status
