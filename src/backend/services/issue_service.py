"""
Issue lifecycle service.

Customer intake, head work on an assigned issue, closure by heads and issue
managers, attachment round trips and the issue read views. Every mutating
operation locks the issue row, computes its transition from the state read
in the same transaction and writes the matching timeline entries before the
boundary commits.
"""
import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.decorators import lifecycle_operation
from core.exceptions import (
    ConflictError,
    InvalidStateError,
    NoFilesMovedError,
    NotFoundError,
    PermissionDeniedError,
)
from db.enums import (
    ActorKind,
    Category,
    CustomerStatus,
    EmployeeRole,
    HeadIssueBucket,
    InternalStatus,
    Priority,
    TimelineAction,
)
from db.models import Issue, utc_now
from repositories.assignment_repository import AssignmentRepository
from repositories.customer_repository import ProjectRepository
from repositories.employee_repository import EmployeeRepository
from repositories.issue_repository import IssueRepository
from repositories.timeline_repository import TimelineRepository
from schemas.actor import Actor
from schemas.issue import (
    AssignmentRead,
    IssueDetail,
    IssueListItem,
    IssueRead,
    TimelineEntryRead,
)
from services.guards import (
    check_issue_access,
    get_acting_customer,
    get_acting_employee,
    get_issue_for_update,
    require_active_assignment,
)
from services.issue_status import StatusChange, apply_transition, ensure_open
from services.notification_service import NotificationService
from services.site_visit_service import SiteVisitService
from services.storage_service import MinIOStorageService, issue_prefix, temp_prefix
from services.timeline_service import TimelineEntry, TimelineService

logger = logging.getLogger(__name__)


def _customer_view(issue: Issue) -> IssueListItem:
    """List item with the internal status withheld."""
    return IssueListItem.model_validate(issue).model_copy(update={"internal_status": None})


async def _next_ticket_no(db: AsyncSession) -> str:
    """``{year}-{seq}`` where seq counts this year's issues, read in-transaction."""
    now = utc_now()
    year_start = datetime(now.year, 1, 1)
    next_year_start = datetime(now.year + 1, 1, 1)
    created = await IssueRepository.count_created_between(db, year_start, next_year_start)
    padding = settings.lifecycle.ticket_sequence_padding
    return f"{now.year}-{created + 1:0{padding}d}"


def _clear_request_flags(issue: Issue) -> None:
    issue.is_attachments_requested = False
    issue.attachments_requested_by_id = None
    issue.is_site_visit_requested = False
    issue.is_site_visit_scheduled = False


class IssueService:
    """Issue intake, work, closure and read views."""

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    @staticmethod
    @lifecycle_operation("create_issue", allowed_actors=(ActorKind.CUSTOMER,))
    async def create(
        db: AsyncSession,
        actor: Actor,
        project_id: int,
        description: str,
        priority: Optional[Priority] = None,
        category: Optional[Category] = None,
        temp_batch_id: Optional[str] = None,
    ):
        """
        Open a new issue for one of the customer's projects.

        Attachments uploaded beforehand under ``temp/{temp_batch_id}/`` are
        moved under the new ticket number as the last step, because the
        ticket number only exists inside this transaction.

        Raises:
            NotFoundError: Unknown customer, or a project the customer does not own
            InvalidStateError: Empty description
            ExternalDependencyError: Attachment storage failed
        """
        customer = await get_acting_customer(db, actor)
        project = await ProjectRepository.find_for_customer(db, project_id, customer.id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found for customer {customer.name}")

        description = (description or "").strip()
        if not description:
            raise InvalidStateError("Issue description must not be empty")

        ticket_no = await _next_ticket_no(db)
        now = utc_now()
        issue = await IssueRepository.add(
            db,
            Issue(
                ticket_no=ticket_no,
                description=description,
                internal_status=InternalStatus.NEW,
                customer_status=CustomerStatus.UNDER_REVIEW,
                priority=priority or Priority.MEDIUM,
                category=category or Category.OTHER,
                project_id=project.id,
                customer_id=customer.id,
                attachment_urls=[],
                created_at=now,
                updated_at=now,
            ),
        )

        await TimelineService.append(
            db,
            issue,
            TimelineAction.ISSUE_CREATED,
            "Issue Successfully Created. Our team review this issue soon.",
            visible_to_customer=True,
            status_change=StatusChange(
                None, InternalStatus.NEW, None, CustomerStatus.UNDER_REVIEW
            ),
            performed_by=actor.performer_id,
        )

        managers = await EmployeeRepository.find_active_by_role(db, EmployeeRole.ISSUE_MANAGER)
        if not managers:
            logger.warning(f"No active issue managers to notify about {ticket_no}")
        await NotificationService.notify(
            db,
            [manager.id for manager in managers],
            "New Issue Created",
            f"{customer.name} raised issue: {ticket_no}.\n tap to view details.",
            NotificationService.ticket_payload(issue.id, ticket_no),
        )

        if temp_batch_id:
            moved = await MinIOStorageService.move_folder(
                temp_prefix(temp_batch_id), issue_prefix(ticket_no)
            )
            if moved:
                issue.attachment_urls = moved
            else:
                logger.warning(f"No uploads found for batch {temp_batch_id} on {ticket_no}")

        logger.info(f"Issue {ticket_no} created by customer {customer.id}")
        return IssueRead.model_validate(issue)

    # ------------------------------------------------------------------
    # Work by the owning head
    # ------------------------------------------------------------------

    @staticmethod
    @lifecycle_operation("start_working", allowed_actors=(ActorKind.HEAD,))
    async def start_working(db: AsyncSession, actor: Actor, issue_id: UUID):
        """Mark the head's assignment as started and move the issue to IN_PROGRESS."""
        issue = await get_issue_for_update(db, issue_id)
        ensure_open(issue)
        head = await get_acting_employee(db, actor, EmployeeRole.HEAD)
        assignment = await require_active_assignment(db, issue, head)
        if assignment.is_started_work:
            raise InvalidStateError(f"Work on {issue.ticket_no} has already started")

        change = apply_transition(issue, InternalStatus.IN_PROGRESS)
        assignment.is_started_work = True

        await TimelineService.append(
            db,
            issue,
            TimelineAction.WORK_STARTED,
            "Issue taken up for processing",
            visible_to_customer=True,
            status_change=change,
            performed_by=actor.performer_id,
        )
        await NotificationService.notify(
            db,
            [issue.customer_id],
            "Issue In Progress",
            f"Our team has started working on ticket No: {issue.ticket_no}.",
            NotificationService.ticket_payload(issue.id, issue.ticket_no),
        )
        return IssueRead.model_validate(issue)

    @staticmethod
    @lifecycle_operation("add_comment", allowed_actors=(ActorKind.HEAD,))
    async def add_comment(
        db: AsyncSession,
        actor: Actor,
        issue_id: UUID,
        text: str,
        visible_to_customer: bool = False,
    ):
        issue = await get_issue_for_update(db, issue_id)
        ensure_open(issue)
        head = await get_acting_employee(db, actor, EmployeeRole.HEAD)
        await require_active_assignment(db, issue, head)

        text = (text or "").strip()
        if not text:
            raise InvalidStateError("Comment must not be empty")

        entry = await TimelineService.append(
            db,
            issue,
            TimelineAction.COMMENT_ADDED,
            text,
            visible_to_customer=visible_to_customer,
            performed_by=actor.performer_id,
        )
        if visible_to_customer:
            await NotificationService.notify(
                db,
                [issue.customer_id],
                "New Comment",
                f"{head.name} commented on ticket No: {issue.ticket_no}.",
                NotificationService.ticket_payload(issue.id, issue.ticket_no),
            )
        return TimelineEntryRead.model_validate(entry)

    @staticmethod
    @lifecycle_operation("request_attachment", allowed_actors=(ActorKind.HEAD,))
    async def request_attachment(
        db: AsyncSession, actor: Actor, issue_id: UUID, remark: Optional[str] = None
    ):
        """
        Ask the customer for photos, videos or documents.

        Raises:
            ConflictError: A request is already outstanding
        """
        issue = await get_issue_for_update(db, issue_id)
        ensure_open(issue)
        head = await get_acting_employee(db, actor, EmployeeRole.HEAD)
        await require_active_assignment(db, issue, head)
        if issue.is_attachments_requested:
            raise ConflictError(f"Attachments are already requested for {issue.ticket_no}")

        issue.is_attachments_requested = True
        issue.attachments_requested_by_id = head.id

        await TimelineService.append(
            db,
            issue,
            TimelineAction.ATTACHMENT_REQUESTED,
            remark or "Please upload attachments for this issue.",
            visible_to_customer=True,
            performed_by=actor.performer_id,
        )
        await NotificationService.notify(
            db,
            [issue.customer_id],
            "Attachments Requested",
            f"Please upload attachments for ticket No: {issue.ticket_no}.",
            NotificationService.ticket_payload(issue.id, issue.ticket_no),
        )
        return IssueRead.model_validate(issue)

    @staticmethod
    @lifecycle_operation("confirm_attachments_uploaded", allowed_actors=(ActorKind.CUSTOMER,))
    async def confirm_attachments_uploaded(
        db: AsyncSession, actor: Actor, issue_id: UUID, temp_batch_id: str
    ):
        """
        Attach a batch the customer uploaded through presigned policies.

        Files are moved before the write transaction starts so no row lock is
        held during storage I/O; the request flag is checked again afterwards.

        Raises:
            InvalidStateError: No attachments are requested
            NoFilesMovedError: Nothing was uploaded under the batch
            ExternalDependencyError: Storage failed
        """
        source_prefix = temp_prefix(temp_batch_id)
        customer = await get_acting_customer(db, actor)
        issue = await IssueRepository.find_by_id(db, issue_id)
        if issue is None:
            raise NotFoundError(f"Issue {issue_id} not found")
        if issue.customer_id != customer.id:
            raise PermissionDeniedError(f"Issue {issue.ticket_no} belongs to another customer")
        ensure_open(issue)
        if not issue.is_attachments_requested:
            raise InvalidStateError(f"No attachments are requested for {issue.ticket_no}")
        ticket_no = issue.ticket_no

        # Release the read transaction before touching storage
        await db.commit()

        moved = await MinIOStorageService.move_folder(source_prefix, issue_prefix(ticket_no))
        if not moved:
            raise NoFilesMovedError(f"No uploaded files found for {ticket_no}")

        issue = await get_issue_for_update(db, issue_id)
        ensure_open(issue)
        if not issue.is_attachments_requested:
            logger.warning(
                f"Attachment request on {ticket_no} closed during upload; "
                f"{len(moved)} moved file(s) left unreferenced"
            )
            raise InvalidStateError(f"No attachments are requested for {ticket_no}")

        requester_id = issue.attachments_requested_by_id
        issue.attachment_urls = list(issue.attachment_urls or []) + moved
        issue.is_attachments_requested = False
        issue.attachments_requested_by_id = None

        await TimelineService.append(
            db,
            issue,
            TimelineAction.ATTACHMENT_ADDED,
            f"Customer has uploaded {len(moved)} attachment(s).",
            visible_to_customer=True,
            performed_by=actor.performer_id,
        )
        await NotificationService.notify(
            db,
            [requester_id],
            "Attachments Succesfully Added!",
            f"{customer.name} uploaded attachments for ticket No: {ticket_no}.\n"
            f" tap to view details.",
            NotificationService.ticket_payload(issue.id, ticket_no),
        )

        logger.info(f"{len(moved)} attachment(s) added to {ticket_no}")
        return IssueRead.model_validate(issue)

    # ------------------------------------------------------------------
    # Closure
    # ------------------------------------------------------------------

    @staticmethod
    @lifecycle_operation("mark_resolved", allowed_actors=(ActorKind.HEAD,))
    async def mark_resolved(
        db: AsyncSession, actor: Actor, issue_id: UUID, remark: Optional[str] = None
    ):
        """
        Close an issue as resolved by its owning head.

        Any scheduled visit and pending visit request are withdrawn first,
        the assignment is deactivated and the RESOLVED entry is written last.
        """
        issue = await get_issue_for_update(db, issue_id)
        ensure_open(issue)
        head = await get_acting_employee(db, actor, EmployeeRole.HEAD)
        assignment = await require_active_assignment(db, issue, head)

        entries = await SiteVisitService.withdraw_for_closure(db, issue, actor.performer_id)
        change = apply_transition(issue, InternalStatus.CLOSED)
        now = utc_now()
        issue.resolved_at = now
        issue.closed_at = now
        _clear_request_flags(issue)
        assignment.is_active = False

        entries.append(
            TimelineEntry(
                TimelineAction.RESOLVED,
                remark or "Issue resolved.",
                visible_to_customer=True,
                status_change=change,
                performed_by=actor.performer_id,
            )
        )
        await TimelineService.append_batch(db, issue, entries)

        await NotificationService.notify(
            db,
            [issue.customer_id],
            "Issue Resolved",
            f"Ticket No: {issue.ticket_no} has been resolved.\n tap to view details.",
            NotificationService.ticket_payload(issue.id, issue.ticket_no),
        )
        logger.info(f"Issue {issue.ticket_no} resolved by {head.name}")
        return IssueRead.model_validate(issue)

    @staticmethod
    @lifecycle_operation("mark_invalid", allowed_actors=(ActorKind.MANAGER,))
    async def mark_invalid(
        db: AsyncSession, actor: Actor, issue_id: UUID, reason: Optional[str] = None
    ):
        """Close a NEW issue that will not be worked on."""
        manager = await get_acting_employee(db, actor, EmployeeRole.ISSUE_MANAGER)
        issue = await get_issue_for_update(db, issue_id)
        if issue.internal_status != InternalStatus.NEW:
            raise InvalidStateError(
                f"Only new issues can be marked invalid; {issue.ticket_no} is "
                f"{InternalStatus(issue.internal_status).value}"
            )

        change = apply_transition(issue, InternalStatus.CLOSED)
        now = utc_now()
        issue.resolved_at = now
        issue.closed_at = now
        _clear_request_flags(issue)

        await TimelineService.append(
            db,
            issue,
            TimelineAction.INVALID,
            reason or "Issue marked as invalid.",
            visible_to_customer=True,
            status_change=change,
            performed_by=actor.performer_id,
        )
        await NotificationService.notify(
            db,
            [issue.customer_id],
            "Issue Closed",
            f"Ticket No: {issue.ticket_no} was closed as invalid.",
            NotificationService.ticket_payload(issue.id, issue.ticket_no),
        )
        logger.info(f"Issue {issue.ticket_no} marked invalid by {manager.name}")
        return IssueRead.model_validate(issue)

    @staticmethod
    @lifecycle_operation("cancel_issue", allowed_actors=(ActorKind.MANAGER,))
    async def cancel_issue(
        db: AsyncSession, actor: Actor, issue_id: UUID, reason: Optional[str] = None
    ):
        """Cancel any open issue, withdrawing visits and ending its assignment."""
        manager = await get_acting_employee(db, actor, EmployeeRole.ISSUE_MANAGER)
        issue = await get_issue_for_update(db, issue_id)
        ensure_open(issue)

        entries = await SiteVisitService.withdraw_for_closure(db, issue, actor.performer_id)
        change = apply_transition(issue, InternalStatus.CANCELLED)
        issue.closed_at = utc_now()
        _clear_request_flags(issue)

        recipients: List[object] = [issue.customer_id]
        assignment = await AssignmentRepository.find_active(db, issue.id, for_update=True)
        if assignment is not None:
            assignment.is_active = False
            recipients.append(assignment.employee_id)

        entries.append(
            TimelineEntry(
                TimelineAction.CANCELLED,
                reason or "Issue cancelled.",
                visible_to_customer=True,
                status_change=change,
                performed_by=actor.performer_id,
            )
        )
        await TimelineService.append_batch(db, issue, entries)

        await NotificationService.notify(
            db,
            recipients,
            "Issue Cancelled",
            f"Ticket No: {issue.ticket_no} has been cancelled.",
            NotificationService.ticket_payload(issue.id, issue.ticket_no),
        )
        logger.info(f"Issue {issue.ticket_no} cancelled by {manager.name}")
        return IssueRead.model_validate(issue)

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    @staticmethod
    @lifecycle_operation(
        "get_issue_detail",
        allowed_actors=(ActorKind.CUSTOMER, ActorKind.HEAD, ActorKind.MANAGER),
    )
    async def get_issue_detail(db: AsyncSession, actor: Actor, issue_id: UUID):
        """
        Issue with timeline, shaped for the caller.

        Customers see their own issues and customer-visible entries only.
        Heads see issues ever assigned to them; service heads also see any
        issue, since they schedule visits for other departments.
        """
        issue = await IssueRepository.find_by_id(db, issue_id)
        if issue is None:
            raise NotFoundError(f"Issue {issue_id} not found")

        await check_issue_access(db, actor, issue)

        if actor.kind == ActorKind.CUSTOMER:
            timeline = await TimelineRepository.list_for_issue(
                db, issue.id, customer_visible_only=True
            )
            return IssueDetail(
                issue=_customer_view(issue),
                attachment_urls=issue.attachment_urls or [],
                is_attachments_requested=issue.is_attachments_requested,
                is_site_visit_requested=issue.is_site_visit_requested,
                is_site_visit_scheduled=issue.is_site_visit_scheduled,
                timeline=[TimelineEntryRead.model_validate(entry) for entry in timeline],
            )

        assignment = await AssignmentRepository.find_active(db, issue.id)
        timeline = await TimelineRepository.list_for_issue(db, issue.id)
        return IssueDetail(
            issue=IssueListItem.model_validate(issue),
            attachment_urls=issue.attachment_urls or [],
            is_attachments_requested=issue.is_attachments_requested,
            is_site_visit_requested=issue.is_site_visit_requested,
            is_site_visit_scheduled=issue.is_site_visit_scheduled,
            active_assignment=AssignmentRead.model_validate(assignment) if assignment else None,
            timeline=[TimelineEntryRead.model_validate(entry) for entry in timeline],
        )

    @staticmethod
    @lifecycle_operation("list_customer_issues", allowed_actors=(ActorKind.CUSTOMER,))
    async def list_customer_issues(db: AsyncSession, actor: Actor, closed: bool = False):
        """The customer's open issues, or their closed and cancelled ones."""
        customer = await get_acting_customer(db, actor)
        issues = await IssueRepository.list_for_customer(db, customer.id, closed=closed)
        return [_customer_view(issue) for issue in issues]

    @staticmethod
    @lifecycle_operation("list_head_issues", allowed_actors=(ActorKind.HEAD,))
    async def list_head_issues(
        db: AsyncSession, actor: Actor, bucket: HeadIssueBucket = HeadIssueBucket.NEW
    ):
        head = await get_acting_employee(db, actor, EmployeeRole.HEAD)
        issues = await IssueRepository.list_for_head(db, head.id, HeadIssueBucket(bucket))
        return [IssueListItem.model_validate(issue) for issue in issues]

    @staticmethod
    @lifecycle_operation("list_manager_issues", allowed_actors=(ActorKind.MANAGER,))
    async def list_manager_issues(
        db: AsyncSession,
        actor: Actor,
        status: Optional[InternalStatus] = InternalStatus.NEW,
    ):
        """
        The issue manager's queues.

        The default is the intake queue of NEW issues waiting for an owner.
        Pass another status to filter on it, or ``None`` for every issue
        past intake.
        """
        await get_acting_employee(db, actor, EmployeeRole.ISSUE_MANAGER)
        issues = await IssueRepository.list_by_status(
            db, InternalStatus(status) if status is not None else None
        )
        return [IssueListItem.model_validate(issue) for issue in issues]
