"""
Site visit scheduling.

A non-service head asks for a visit, a service head either rejects the
request or schedules a service engineer against it, and service heads can
also schedule directly for issues their department owns. A scheduled visit
ends as completed or cancelled. Engineer workload counters move exactly once
per visit transition, in SQL, in the same transaction as the visit row.
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
    NotFoundError,
    PermissionDeniedError,
)
from core.logging_config import LifecycleLogger
from db.enums import (
    ActorKind,
    EmployeeRole,
    SiteVisitRequestStatus,
    TimelineAction,
    VisitStatus,
)
from db.models import Employee, Issue, IssueSiteVisit, SiteVisitRequest, utc_now
from repositories.assignment_repository import AssignmentRepository
from repositories.employee_repository import EmployeeRepository
from repositories.site_visit_repository import (
    SiteVisitRepository,
    SiteVisitRequestRepository,
)
from schemas.actor import Actor
from schemas.site_visit import EngineerRead, SiteVisitRead, SiteVisitRequestRead
from services.guards import (
    get_acting_employee,
    get_issue_for_update,
    get_service_head,
    get_target_employee,
    is_service_department,
    require_active_assignment,
    same_department,
)
from services.issue_status import ensure_open
from services.notification_service import NotificationService
from services.timeline_service import TimelineEntry, TimelineService

logger = logging.getLogger(__name__)
lifecycle_logger = LifecycleLogger("site_visits")


def _format_visit_date(value: datetime) -> str:
    return value.strftime(settings.lifecycle.visit_date_format)


def _scheduled_comment(scheduled_date: datetime, engineer: Employee) -> str:
    return (
        f"Site visit scheduled for {_format_visit_date(scheduled_date)} by Service "
        f"Engineer {engineer.name} (Mobile: {engineer.mobile_no or 'N/A'})."
    )


async def _move_engineer_counters(
    db: AsyncSession,
    engineer_id: UUID,
    *,
    pending_delta: int = 0,
    completed_delta: int = 0,
) -> None:
    await EmployeeRepository.adjust_visit_counters(
        db, engineer_id, pending_delta=pending_delta, completed_delta=completed_delta
    )
    lifecycle_logger.visit_counter_adjusted(str(engineer_id), pending_delta, completed_delta)


async def _visit_stakeholders(db: AsyncSession, visit: IssueSiteVisit, issue: Issue) -> List:
    """Customer, working head and the head that asked for the visit."""
    recipients = [issue.customer_id, visit.working_head_id]
    if visit.site_visit_request_id is not None:
        request = await SiteVisitRequestRepository.find_by_id(db, visit.site_visit_request_id)
        if request is not None:
            recipients.append(request.request_from_head_id)
    return recipients


class SiteVisitService:
    """Site visit requests, scheduling and visit outcomes."""

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    @staticmethod
    @lifecycle_operation("request_visit", allowed_actors=(ActorKind.HEAD,))
    async def request_visit(db: AsyncSession, actor: Actor, issue_id: UUID):
        """
        Ask the service department to send an engineer.

        Raises:
            PermissionDeniedError: Service heads, heads without a department, or a
                head without the assignment
            ConflictError: A request is already pending or a visit is scheduled
        """
        issue = await get_issue_for_update(db, issue_id)
        ensure_open(issue)
        head = await get_acting_employee(db, actor, EmployeeRole.HEAD)
        if is_service_department(head.department):
            raise PermissionDeniedError(
                "Service department heads schedule visits directly"
            )
        if not (head.department or "").strip():
            raise PermissionDeniedError(
                f"{head.name} has no department to receive the visit"
            )
        await require_active_assignment(db, issue, head)

        if await SiteVisitRequestRepository.find_pending_for_issue(db, issue.id, for_update=True):
            raise ConflictError(f"A site visit request is already pending for {issue.ticket_no}")
        if await SiteVisitRepository.find_scheduled_for_issue(db, issue.id, for_update=True):
            raise ConflictError(f"A site visit is already scheduled for {issue.ticket_no}")

        now = utc_now()
        request = await SiteVisitRequestRepository.add(
            db,
            SiteVisitRequest(
                issue_id=issue.id,
                request_from_head_id=head.id,
                request_from_name=head.name,
                request_from_department=head.department,
                ticket_no=issue.ticket_no,
                status=SiteVisitRequestStatus.PENDING,
                requested_at=now,
                updated_at=now,
            ),
        )
        issue.is_site_visit_requested = True

        await TimelineService.append(
            db,
            issue,
            TimelineAction.SITE_VISIT_REQUESTED,
            "Site visit scheduling requested; awaiting Service Head assignment.",
            performed_by=actor.performer_id,
        )

        service_heads = await EmployeeRepository.find_active_by_role(
            db, EmployeeRole.HEAD, department=settings.lifecycle.service_department
        )
        await NotificationService.notify(
            db,
            [service_head.id for service_head in service_heads],
            "Site Visit Requested",
            f"{head.name} ({head.department}) requested a site visit for {issue.ticket_no}.",
            NotificationService.ticket_payload(issue.id, issue.ticket_no),
        )

        logger.info(f"Site visit requested for {issue.ticket_no} by {head.name}")
        return SiteVisitRequestRead.model_validate(request)

    @staticmethod
    @lifecycle_operation("reject_request", allowed_actors=(ActorKind.HEAD,))
    async def reject_request(
        db: AsyncSession,
        actor: Actor,
        request_id: UUID,
        remark: Optional[str] = None,
    ):
        """Turn down a pending request and tell the head who made it."""
        head = await get_service_head(db, actor)
        request = await SiteVisitRequestRepository.find_by_id(db, request_id)
        if request is None:
            raise NotFoundError(f"Site visit request {request_id} not found")

        issue = await get_issue_for_update(db, request.issue_id)
        request = await SiteVisitRequestRepository.find_by_id(db, request_id, for_update=True)
        if request.status != SiteVisitRequestStatus.PENDING:
            raise InvalidStateError(
                f"Site visit request for {request.ticket_no} is {request.status.value.lower()}"
            )

        request.status = SiteVisitRequestStatus.REJECTED
        request.updated_at = utc_now()
        issue.is_site_visit_requested = False

        comment = f"Site visit request rejected by {head.name}."
        if remark:
            comment = f"{comment} Remark: {remark}"
        await TimelineService.append(
            db,
            issue,
            TimelineAction.SITE_VISIT_REQUEST_REJECTED,
            comment,
            performed_by=actor.performer_id,
        )

        await NotificationService.notify(
            db,
            [request.request_from_head_id],
            "Site Visit Request Rejected",
            f"Your site visit request for {issue.ticket_no} was rejected.",
            NotificationService.ticket_payload(issue.id, issue.ticket_no),
        )

        logger.info(f"Site visit request for {issue.ticket_no} rejected by {head.name}")
        return SiteVisitRequestRead.model_validate(request)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    @staticmethod
    async def _create_visit(
        db: AsyncSession,
        actor: Actor,
        issue: Issue,
        head: Employee,
        engineer: Employee,
        scheduled_date: datetime,
        working_department: str,
        request: Optional[SiteVisitRequest] = None,
    ) -> IssueSiteVisit:
        visit = await SiteVisitRepository.add(
            db,
            IssueSiteVisit(
                issue_id=issue.id,
                site_visitor_id=engineer.id,
                working_department=working_department,
                working_head_id=head.id,
                site_visit_request_id=request.id if request else None,
                scheduled_date=scheduled_date,
                status=VisitStatus.SCHEDULED,
                created_at=utc_now(),
            ),
        )
        await _move_engineer_counters(db, engineer.id, pending_delta=1)
        issue.is_site_visit_scheduled = True

        await TimelineService.append(
            db,
            issue,
            TimelineAction.SITE_VISIT_SCHEDULED,
            _scheduled_comment(scheduled_date, engineer),
            visible_to_customer=True,
            performed_by=actor.performer_id,
        )

        recipients = [issue.customer_id]
        if request is not None:
            recipients.append(request.request_from_head_id)
        await NotificationService.notify(
            db,
            recipients,
            "Site Visit Scheduled",
            f"Site visit for {issue.ticket_no} scheduled on "
            f"{_format_visit_date(scheduled_date)} with {engineer.name}.",
            NotificationService.ticket_payload(issue.id, issue.ticket_no),
        )

        logger.info(
            f"Site visit scheduled for {issue.ticket_no} on {scheduled_date.isoformat()} "
            f"with engineer {engineer.name}"
        )
        return visit

    @staticmethod
    @lifecycle_operation("schedule_for_request", allowed_actors=(ActorKind.HEAD,))
    async def schedule_for_request(
        db: AsyncSession,
        actor: Actor,
        issue_id: UUID,
        engineer_id: UUID,
        request_id: UUID,
        scheduled_date: datetime,
    ):
        """
        Schedule an engineer against a pending request.

        Raises:
            NotFoundError: Unknown issue or engineer
            ConflictError: Engineer inactive, or a visit already scheduled
            InvalidStateError: The request is not pending for this issue
        """
        head = await get_service_head(db, actor)
        issue = await get_issue_for_update(db, issue_id)
        ensure_open(issue)
        engineer = await get_target_employee(db, engineer_id, EmployeeRole.SERVICE_ENGINEER)

        if await SiteVisitRepository.find_scheduled_for_issue(db, issue.id, for_update=True):
            raise ConflictError(f"A site visit is already scheduled for {issue.ticket_no}")

        request = await SiteVisitRequestRepository.find_by_id(db, request_id, for_update=True)
        if (
            request is None
            or request.issue_id != issue.id
            or request.status != SiteVisitRequestStatus.PENDING
        ):
            raise InvalidStateError(
                f"No pending site visit request {request_id} for {issue.ticket_no}"
            )

        visit = await SiteVisitService._create_visit(
            db,
            actor,
            issue,
            head,
            engineer,
            scheduled_date,
            request.request_from_department,
            request,
        )
        request.status = SiteVisitRequestStatus.COMPLETED
        request.updated_at = utc_now()
        return SiteVisitRead.model_validate(visit)

    @staticmethod
    @lifecycle_operation("schedule_direct", allowed_actors=(ActorKind.HEAD,))
    async def schedule_direct(
        db: AsyncSession,
        actor: Actor,
        issue_id: UUID,
        engineer_id: UUID,
        scheduled_date: datetime,
    ):
        """Schedule a visit for an issue the service department itself owns."""
        head = await get_service_head(db, actor)
        issue = await get_issue_for_update(db, issue_id)
        ensure_open(issue)

        assignment = await AssignmentRepository.find_active(db, issue.id, for_update=True)
        owner = (
            await EmployeeRepository.find_by_id(db, assignment.employee_id)
            if assignment
            else None
        )
        if owner is None or not is_service_department(owner.department):
            raise InvalidStateError(
                f"{issue.ticket_no} is not owned by the "
                f"{settings.lifecycle.service_department} department"
            )

        engineer = await get_target_employee(db, engineer_id, EmployeeRole.SERVICE_ENGINEER)
        if await SiteVisitRepository.find_scheduled_for_issue(db, issue.id, for_update=True):
            raise ConflictError(f"A site visit is already scheduled for {issue.ticket_no}")

        visit = await SiteVisitService._create_visit(
            db,
            actor,
            issue,
            head,
            engineer,
            scheduled_date,
            owner.department,
        )
        return SiteVisitRead.model_validate(visit)

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    @staticmethod
    async def _lock_scheduled_visit(
        db: AsyncSession, actor: Actor, visit_id: UUID, department: str
    ):
        """Lock issue then visit and check the acting head may close the visit."""
        visit = await SiteVisitRepository.find_by_id(db, visit_id)
        if visit is None:
            raise NotFoundError(f"Site visit {visit_id} not found")

        head = await get_acting_employee(db, actor, EmployeeRole.HEAD)
        if not (
            same_department(head.department, visit.working_department)
            or is_service_department(head.department)
        ):
            raise PermissionDeniedError(
                f"{head.name} does not work in the {visit.working_department} department"
            )
        if not same_department(department, visit.working_department):
            raise PermissionDeniedError(
                f"Visit belongs to the {visit.working_department} department, not {department}"
            )

        issue = await get_issue_for_update(db, visit.issue_id)
        visit = await SiteVisitRepository.find_by_id(db, visit_id, for_update=True)
        if visit.status != VisitStatus.SCHEDULED:
            raise InvalidStateError(f"Site visit is already {visit.status.value.lower()}")
        return head, issue, visit

    @staticmethod
    @lifecycle_operation("complete_visit", allowed_actors=(ActorKind.HEAD,))
    async def complete(db: AsyncSession, actor: Actor, visit_id: UUID, department: str):
        """Record that the engineer visited the site."""
        head, issue, visit = await SiteVisitService._lock_scheduled_visit(
            db, actor, visit_id, department
        )

        visit.status = VisitStatus.COMPLETED
        visit.actual_date = utc_now()
        await _move_engineer_counters(
            db, visit.site_visitor_id, pending_delta=-1, completed_delta=1
        )
        issue.is_site_visit_scheduled = False
        issue.is_site_visit_requested = False

        await TimelineService.append(
            db,
            issue,
            TimelineAction.SITE_VISIT_COMPLETED,
            "Site visit completed.",
            visible_to_customer=True,
            performed_by=actor.performer_id,
        )
        await NotificationService.notify(
            db,
            await _visit_stakeholders(db, visit, issue),
            "Site Visit Completed",
            f"Site visit for {issue.ticket_no} has been completed.",
            NotificationService.ticket_payload(issue.id, issue.ticket_no),
        )

        logger.info(f"Site visit for {issue.ticket_no} completed by {head.name}")
        return SiteVisitRead.model_validate(visit)

    @staticmethod
    @lifecycle_operation("cancel_visit", allowed_actors=(ActorKind.HEAD,))
    async def cancel(
        db: AsyncSession,
        actor: Actor,
        visit_id: UUID,
        department: str,
        remark: Optional[str] = None,
    ):
        """Call off a scheduled visit."""
        head, issue, visit = await SiteVisitService._lock_scheduled_visit(
            db, actor, visit_id, department
        )

        visit.status = VisitStatus.CANCELLED
        visit.actual_date = utc_now()
        visit.remark = remark
        await _move_engineer_counters(db, visit.site_visitor_id, pending_delta=-1)
        issue.is_site_visit_scheduled = False
        issue.is_site_visit_requested = False

        comment = "Site visit cancelled."
        if remark:
            comment = f"Site visit cancelled. Remark: {remark}"
        await TimelineService.append(
            db,
            issue,
            TimelineAction.SITE_VISIT_CANCELLED,
            comment,
            visible_to_customer=True,
            performed_by=actor.performer_id,
        )
        await NotificationService.notify(
            db,
            await _visit_stakeholders(db, visit, issue),
            "Site Visit Cancelled",
            f"Site visit for {issue.ticket_no} has been cancelled.",
            NotificationService.ticket_payload(issue.id, issue.ticket_no),
        )

        logger.info(f"Site visit for {issue.ticket_no} cancelled by {head.name}")
        return SiteVisitRead.model_validate(visit)

    @staticmethod
    async def withdraw_for_closure(
        db: AsyncSession, issue: Issue, performed_by: Optional[str]
    ) -> List[TimelineEntry]:
        """
        Cancel the scheduled visit and pending request of an issue being closed.

        Mutates the rows and counters; the caller appends the returned entries
        ahead of its own closing entry.
        """
        entries: List[TimelineEntry] = []

        visit = await SiteVisitRepository.find_scheduled_for_issue(db, issue.id, for_update=True)
        if visit is not None:
            visit.status = VisitStatus.CANCELLED
            visit.actual_date = utc_now()
            visit.remark = "Issue closed"
            await _move_engineer_counters(db, visit.site_visitor_id, pending_delta=-1)
            entries.append(
                TimelineEntry(
                    TimelineAction.SITE_VISIT_CANCELLED,
                    "Scheduled site visit cancelled because the issue was closed.",
                    visible_to_customer=True,
                    performed_by=performed_by,
                )
            )

        request = await SiteVisitRequestRepository.find_pending_for_issue(
            db, issue.id, for_update=True
        )
        if request is not None:
            request.status = SiteVisitRequestStatus.CANCELLED
            request.updated_at = utc_now()
            entries.append(
                TimelineEntry(
                    TimelineAction.SITE_VISIT_CANCELLED,
                    "Pending site visit request withdrawn because the issue was closed.",
                    performed_by=performed_by,
                )
            )

        issue.is_site_visit_scheduled = False
        issue.is_site_visit_requested = False
        return entries

    # ------------------------------------------------------------------
    # Service department queues
    # ------------------------------------------------------------------

    @staticmethod
    @lifecycle_operation("list_pending_visit_requests", allowed_actors=(ActorKind.HEAD,))
    async def list_pending_requests(db: AsyncSession, actor: Actor):
        await get_service_head(db, actor)
        requests = await SiteVisitRequestRepository.list_by_status(
            db, SiteVisitRequestStatus.PENDING
        )
        return [SiteVisitRequestRead.model_validate(request) for request in requests]

    @staticmethod
    @lifecycle_operation("list_site_visits", allowed_actors=(ActorKind.HEAD,))
    async def list_site_visits(
        db: AsyncSession, actor: Actor, status: VisitStatus = VisitStatus.SCHEDULED
    ):
        await get_service_head(db, actor)
        visits = await SiteVisitRepository.list_by_status(db, status)
        return [SiteVisitRead.model_validate(visit) for visit in visits]

    @staticmethod
    @lifecycle_operation("list_service_engineers", allowed_actors=(ActorKind.HEAD,))
    async def list_service_engineers(db: AsyncSession, actor: Actor):
        """Active engineers, least loaded first."""
        await get_service_head(db, actor)
        engineers = await EmployeeRepository.list_service_engineers(db)
        return [EngineerRead.model_validate(engineer) for engineer in engineers]

    @staticmethod
    @lifecycle_operation("list_upcoming_visits", allowed_actors=(ActorKind.HEAD,))
    async def list_upcoming_visits(db: AsyncSession, actor: Actor, engineer_id: UUID):
        """An engineer's scheduled visits from now on, to avoid double booking."""
        await get_service_head(db, actor)
        engineer = await EmployeeRepository.find_by_id(db, engineer_id)
        if engineer is None or engineer.role != EmployeeRole.SERVICE_ENGINEER:
            raise NotFoundError(f"Service engineer {engineer_id} not found")

        visits = await SiteVisitRepository.list_upcoming_for_engineer(
            db, engineer.id, utc_now()
        )
        return [SiteVisitRead.model_validate(visit) for visit in visits]
