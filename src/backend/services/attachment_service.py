"""
Presigned attachment URLs.

Clients upload straight to object storage with POST policies under a
temporary batch prefix and later confirm the batch (on issue creation or
through ``IssueService.confirm_attachments_uploaded``). Downloads are
presigned GETs for keys already recorded on the issue.
"""
import logging
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.decorators import lifecycle_operation
from core.exceptions import InvalidStateError, NotFoundError, PermissionDeniedError
from db.enums import ActorKind
from repositories.issue_repository import IssueRepository
from schemas.actor import Actor
from schemas.attachment import AttachmentUploadBatch, UploadFileSpec
from services.guards import check_issue_access, get_acting_customer
from services.issue_status import ensure_open
from services.storage_service import MinIOStorageService

logger = logging.getLogger(__name__)


def _parse_issue_key(key: str) -> str:
    """Return the ticket number from ``issues/{ticketNo}/{file}``."""
    parts = (key or "").split("/")
    if (
        len(parts) != 3
        or parts[0] != settings.minio.issues_prefix
        or not parts[1]
        or not parts[2]
        or ".." in parts
    ):
        raise InvalidStateError(f"Invalid attachment key: {key}")
    return parts[1]


class AttachmentService:
    """Upload policies and download links for issue attachments."""

    @staticmethod
    @lifecycle_operation("get_attachment_upload_urls", allowed_actors=(ActorKind.CUSTOMER,))
    async def get_attachment_upload_urls(
        db: AsyncSession,
        actor: Actor,
        files: List[UploadFileSpec],
        issue_id: Optional[UUID] = None,
    ):
        """
        Sign one upload policy per file under a fresh batch id.

        Without ``issue_id`` the batch is meant for a new issue; with it the
        issue must belong to the customer and have attachments requested.

        Raises:
            InvalidStateError: Bad file count, duplicate names, or nothing requested
            ExternalDependencyError: Policies could not be signed
        """
        customer = await get_acting_customer(db, actor)

        max_files = settings.minio.max_files_per_batch
        if not files or len(files) > max_files:
            raise InvalidStateError(f"Between 1 and {max_files} files can be uploaded at once")
        names = [spec.file_name for spec in files]
        if len(set(names)) != len(names):
            raise InvalidStateError("File names in one batch must be unique")

        if issue_id is not None:
            issue = await IssueRepository.find_by_id(db, issue_id)
            if issue is None:
                raise NotFoundError(f"Issue {issue_id} not found")
            if issue.customer_id != customer.id:
                raise PermissionDeniedError(f"Issue {issue.ticket_no} belongs to another customer")
            ensure_open(issue)
            if not issue.is_attachments_requested:
                raise InvalidStateError(f"No attachments are requested for {issue.ticket_no}")

        batch_id = str(uuid4())
        uploads = await MinIOStorageService.generate_presigned_uploads(files, batch_id)
        logger.info(f"Signed {len(uploads)} upload(s) for customer {customer.id}, batch {batch_id}")
        return AttachmentUploadBatch(batch_id=batch_id, uploads=uploads)

    @staticmethod
    @lifecycle_operation(
        "get_attachment_download_url",
        allowed_actors=(ActorKind.CUSTOMER, ActorKind.HEAD, ActorKind.MANAGER),
    )
    async def get_attachment_download_url(db: AsyncSession, actor: Actor, key: str):
        """Presigned GET for an attachment recorded on an issue the actor may see."""
        ticket_no = _parse_issue_key(key)
        issue = await IssueRepository.find_by_ticket_no(db, ticket_no)
        if issue is None or key not in (issue.attachment_urls or []):
            raise NotFoundError(f"Attachment {key} not found")

        await check_issue_access(db, actor, issue)
        return await MinIOStorageService.generate_presigned_download_url(key)
