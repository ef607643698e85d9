"""
MinIO Object Storage Service

Attachment storage for issues: presigned POST policies for direct client
uploads into a temporary prefix, moving a confirmed batch under the issue's
ticket prefix, and presigned download URLs. The MinIO client is blocking, so
every call runs through ``run_blocking``.
"""

import asyncio
import logging
import os
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from uuid import UUID

from minio import Minio
from minio.commonconfig import CopySource
from minio.datatypes import PostPolicy
from minio.error import S3Error
from urllib3.exceptions import MaxRetryError

from core.async_utils import run_blocking
from core.config import settings
from core.exceptions import ExternalDependencyError, InvalidStateError
from schemas.attachment import AttachmentUpload, UploadFileSpec

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")
VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".mkv")

_MB = 1024 * 1024


def classify_file(file_name: str) -> str:
    """Return 'image', 'video' or 'file' from the file extension."""
    ext = os.path.splitext(file_name)[1].lower()
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in VIDEO_EXTENSIONS:
        return "video"
    return "file"


def max_upload_bytes(file_name: str, content_type: str) -> int:
    kind = classify_file(file_name)
    if kind == "image" or content_type.startswith("image/"):
        return settings.minio.max_image_size_mb * _MB
    if kind == "video" or content_type.startswith("video/"):
        return settings.minio.max_video_size_mb * _MB
    return settings.minio.max_other_size_mb * _MB


def normalize_batch_id(batch_id: object) -> str:
    """Batch ids are the UUIDs handed out with upload policies."""
    try:
        return str(UUID(str(batch_id)))
    except ValueError as e:
        raise InvalidStateError(f"Invalid upload batch id: {batch_id}") from e


def temp_prefix(batch_id: str) -> str:
    return f"{settings.minio.temp_prefix}/{normalize_batch_id(batch_id)}/"


def issue_prefix(ticket_no: str) -> str:
    return f"{settings.minio.issues_prefix}/{ticket_no}/"


class MinIOStorageService:
    """Service for managing issue attachments in MinIO object storage."""

    _client: Optional[Minio] = None
    _bucket_initialized: bool = False

    @classmethod
    def get_client(cls) -> Minio:
        """Get or create the MinIO client instance (singleton)."""
        if cls._client is None:
            cls._client = Minio(
                endpoint=settings.minio.endpoint,
                access_key=settings.minio.access_key,
                secret_key=settings.minio.secret_key,
                secure=settings.minio.secure,
                region=settings.minio.region,
            )
            logger.info(f"MinIO client initialized: {settings.minio.endpoint}")

        return cls._client

    @classmethod
    def _ensure_bucket_sync(cls) -> None:
        client = cls.get_client()
        bucket_name = settings.minio.bucket_name
        if not client.bucket_exists(bucket_name):
            client.make_bucket(bucket_name, location=settings.minio.region)
            logger.info(f"Created MinIO bucket: {bucket_name}")
        else:
            logger.info(f"MinIO bucket already exists: {bucket_name}")

    @classmethod
    async def ensure_bucket_exists(cls) -> None:
        """
        Ensure the configured bucket exists, create if it doesn't.
        Called on application startup.
        """
        if cls._bucket_initialized:
            return

        try:
            await run_blocking(cls._ensure_bucket_sync)
            cls._bucket_initialized = True
        except S3Error as e:
            logger.error(f"Failed to ensure bucket exists: {e}")
            raise

    # ------------------------------------------------------------------
    # Moving confirmed uploads
    # ------------------------------------------------------------------

    @classmethod
    def _next_indexes(cls, client: Minio, bucket_name: str, target_prefix: str) -> Dict[str, int]:
        """Next free image/video/file number under the target prefix."""
        indexes = {"image": 1, "video": 1, "file": 1}
        pattern = re.compile(r"^(image|video|file)(\d+)")
        for obj in client.list_objects(bucket_name, prefix=target_prefix, recursive=True):
            match = pattern.match(obj.object_name[len(target_prefix):])
            if match:
                kind, number = match.group(1), int(match.group(2))
                indexes[kind] = max(indexes[kind], number + 1)
        return indexes

    @classmethod
    def move_folder_sync(cls, source_prefix: str, target_prefix: str) -> List[str]:
        """
        Copy every object under ``source_prefix`` to ``target_prefix`` and
        delete the source, renaming files to image{n}, video{n} or file{n}.

        Numbering continues after files already under the target prefix.

        Returns:
            New object keys in move order; empty when nothing was found
        """
        client = cls.get_client()
        bucket_name = settings.minio.bucket_name

        sources = sorted(
            obj.object_name
            for obj in client.list_objects(bucket_name, prefix=source_prefix, recursive=True)
            if not obj.is_dir
        )
        if not sources:
            return []

        indexes = cls._next_indexes(client, bucket_name, target_prefix)
        moved: List[str] = []

        for source_key in sources:
            ext = os.path.splitext(source_key)[1].lower()
            kind = classify_file(source_key)
            target_key = f"{target_prefix}{kind}{indexes[kind]}{ext}"
            indexes[kind] += 1

            client.copy_object(bucket_name, target_key, CopySource(bucket_name, source_key))
            client.remove_object(bucket_name, source_key)
            moved.append(target_key)
            logger.info(f"Moved attachment: {source_key} -> {target_key}")

        return moved

    @classmethod
    async def move_folder(cls, source_prefix: str, target_prefix: str) -> List[str]:
        """
        Move a batch of uploads with retry.

        Raises:
            ExternalDependencyError: If storage keeps failing
        """
        for attempt in range(settings.minio.max_retries):
            try:
                return await run_blocking(cls.move_folder_sync, source_prefix, target_prefix)
            except (S3Error, MaxRetryError) as e:
                if attempt < settings.minio.max_retries - 1:
                    wait_time = settings.minio.retry_backoff_factor ** attempt
                    logger.warning(
                        f"Move failed (attempt {attempt + 1}), retrying in {wait_time}s: {e}"
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error(
                        f"Move {source_prefix} -> {target_prefix} failed after "
                        f"{settings.minio.max_retries} attempts: {e}"
                    )
                    raise ExternalDependencyError("Attachment storage is unavailable") from e

        return []

    # ------------------------------------------------------------------
    # Presigned URLs
    # ------------------------------------------------------------------

    @classmethod
    def _presigned_upload_sync(cls, spec: UploadFileSpec, key: str) -> AttachmentUpload:
        client = cls.get_client()
        bucket_name = settings.minio.bucket_name
        expires_at = datetime.now(timezone.utc) + timedelta(
            seconds=settings.minio.presigned_upload_expiry_seconds
        )

        policy = PostPolicy(bucket_name, expires_at)
        policy.add_equals_condition("key", key)
        policy.add_equals_condition("Content-Type", spec.content_type)
        policy.add_content_length_range_condition(
            1, max_upload_bytes(spec.file_name, spec.content_type)
        )
        fields = client.presigned_post_policy(policy)
        fields["key"] = key
        fields["Content-Type"] = spec.content_type

        scheme = "https" if settings.minio.secure else "http"
        return AttachmentUpload(
            file_name=spec.file_name,
            key=key,
            url=f"{scheme}://{settings.minio.endpoint}/{bucket_name}",
            fields=fields,
        )

    @classmethod
    async def generate_presigned_uploads(
        cls, files: List[UploadFileSpec], batch_id: str
    ) -> List[AttachmentUpload]:
        """
        Build one POST policy per file under ``temp/{batch_id}/``.

        Raises:
            ExternalDependencyError: If a policy cannot be signed
        """
        uploads = []
        for spec in files:
            key = f"{temp_prefix(batch_id)}{spec.file_name}"
            try:
                uploads.append(await run_blocking(cls._presigned_upload_sync, spec, key))
            except (S3Error, MaxRetryError, ValueError) as e:
                logger.error(f"Failed to sign upload policy for {key}: {e}")
                raise ExternalDependencyError("Could not prepare attachment upload") from e
        return uploads

    @classmethod
    async def generate_presigned_download_url(cls, object_key: str) -> str:
        """
        Generate a presigned GET URL for an attachment.

        Raises:
            ExternalDependencyError: If the URL cannot be generated
        """
        client = cls.get_client()
        expiry = timedelta(seconds=settings.minio.presigned_download_expiry_seconds)
        try:
            url = await run_blocking(
                client.presigned_get_object,
                settings.minio.bucket_name,
                object_key,
                expires=expiry,
            )
        except (S3Error, MaxRetryError) as e:
            logger.error(f"Failed to generate presigned URL for {object_key}: {e}")
            raise ExternalDependencyError("Could not generate attachment URL") from e

        logger.debug(f"Generated presigned URL for {object_key} (expires in {expiry})")
        return url

    @classmethod
    async def health_check(cls) -> bool:
        """
        Perform MinIO health check.

        Returns:
            bool: True if healthy, False otherwise
        """
        try:
            await cls.ensure_bucket_exists()
            await run_blocking(cls.get_client().bucket_exists, settings.minio.bucket_name)
            return True
        except (S3Error, MaxRetryError, ValueError) as e:
            logger.error(f"MinIO health check failed: {e}")
            return False
