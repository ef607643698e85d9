"""
Lifespan startup and shutdown task functions.

This module contains individual task functions for application startup
and shutdown sequences. Each function handles a specific responsibility.
"""

import asyncio
import logging


async def initialize_logging(settings, log_config):
    """Setup logging configuration."""
    from core.logging_config import setup_logging

    logger = logging.getLogger("main")
    setup_logging(log_config)
    logger.info(f"Starting {settings.api.app_name} {settings.api.app_version}")


async def initialize_database():
    """Create the database if needed, then the tables."""
    from core.database import init_db

    logger = logging.getLogger("main")
    await init_db()
    logger.info("Database initialized")


async def initialize_minio(settings):
    """Initialize MinIO storage; the API still starts when storage is down."""
    from minio.error import S3Error
    from urllib3.exceptions import MaxRetryError

    from services.storage_service import MinIOStorageService

    logger = logging.getLogger("main")
    try:
        await MinIOStorageService.ensure_bucket_exists()
        logger.info(f"MinIO storage initialized (bucket: {settings.minio.bucket_name})")
    except (S3Error, MaxRetryError, ValueError) as e:
        logger.warning(f"MinIO initialization failed: {e}")


async def initialize_external_services(settings):
    """Initialize all external services in parallel."""
    logger = logging.getLogger("main")
    logger.info("Initializing external services (parallel execution)...")

    await asyncio.gather(
        initialize_minio(settings),
        return_exceptions=True,
    )


async def shutdown_notifications():
    """Let in-flight push deliveries finish, then close the HTTP client."""
    from services.notification_service import (
        NotificationDispatcher,
        PushNotificationService,
    )

    logger = logging.getLogger("main")
    await NotificationDispatcher.drain()
    await PushNotificationService.close()
    logger.info("Push notification client closed")


async def shutdown_database():
    """Close database connections."""
    from core.database import close_db

    logger = logging.getLogger("main")
    await close_db()
    logger.info("Database connections closed")
