"""
Assignment of issues to department heads.

An issue has at most one active assignment. A manager assigns a new issue to
a head; the binding ends only when the issue is resolved or cancelled.
"""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.decorators import lifecycle_operation
from core.exceptions import ConflictError, InvalidStateError
from db.enums import ActorKind, EmployeeRole, InternalStatus, TimelineAction
from db.models import IssueAssignedDepartment, utc_now
from repositories.assignment_repository import AssignmentRepository
from repositories.employee_repository import EmployeeRepository
from schemas.actor import Actor
from schemas.issue import AssignmentRead, HeadRead
from services.guards import get_acting_employee, get_issue_for_update, get_target_employee
from services.issue_status import apply_transition, ensure_open
from services.notification_service import NotificationService
from services.timeline_service import TimelineService

logger = logging.getLogger(__name__)


class AssignmentService:
    """Binds issues to the head that owns them."""

    @staticmethod
    @lifecycle_operation("assign_to_department", allowed_actors=(ActorKind.MANAGER,))
    async def assign_to_department(
        db: AsyncSession,
        actor: Actor,
        issue_id: UUID,
        head_id: UUID,
        deadline: Optional[datetime] = None,
    ):
        """
        Assign an issue to a department head.

        Args:
            db: Database session
            actor: The issue manager making the assignment
            issue_id: Issue to assign
            head_id: Head who will own the issue
            deadline: Initial and final deadline for the work

        Raises:
            NotFoundError: Unknown issue, or head missing / not a head
            ConflictError: Head inactive, or the issue already has an owner
            InvalidStateError: Issue closed, cancelled or past NEW
        """
        manager = await get_acting_employee(db, actor, EmployeeRole.ISSUE_MANAGER)
        issue = await get_issue_for_update(db, issue_id)
        ensure_open(issue)
        head = await get_target_employee(db, head_id, EmployeeRole.HEAD)

        current = await AssignmentRepository.find_active(db, issue.id, for_update=True)
        if current is not None:
            owner = await EmployeeRepository.find_by_id(db, current.employee_id)
            owner_label = (
                f"{owner.name} ({owner.department})" if owner else str(current.employee_id)
            )
            raise ConflictError(
                f"Issue {issue.ticket_no} is already assigned to {owner_label}",
                detail={"employee_id": str(current.employee_id)},
            )

        if issue.internal_status != InternalStatus.NEW:
            raise InvalidStateError(
                f"Issue {issue.ticket_no} is {InternalStatus(issue.internal_status).value} "
                f"and cannot be assigned"
            )

        assignment = await AssignmentRepository.add(
            db,
            IssueAssignedDepartment(
                issue_id=issue.id,
                employee_id=head.id,
                assigned_by_id=manager.id,
                is_active=True,
                is_started_work=False,
                assigned_at=utc_now(),
                initial_deadline=deadline,
                final_deadline=deadline,
            ),
        )
        change = apply_transition(issue, settings.lifecycle.post_assignment_status)

        await TimelineService.append(
            db,
            issue,
            TimelineAction.ASSIGNED,
            f"Issue assigned to {head.name} ({head.department or 'no department'}).",
            visible_to_customer=True,
            status_change=change,
            performed_by=actor.performer_id,
        )
        await NotificationService.notify(
            db,
            [head.id],
            "New Issue Assigned",
            f"Ticket No: {issue.ticket_no} has been assigned to you.\n tap to view details.",
            NotificationService.ticket_payload(issue.id, issue.ticket_no),
        )

        logger.info(f"Issue {issue.ticket_no} assigned to {head.name} by {manager.name}")
        return AssignmentRead.model_validate(assignment)

    @staticmethod
    @lifecycle_operation("list_department_heads", allowed_actors=(ActorKind.MANAGER,))
    async def list_department_heads(db: AsyncSession, actor: Actor):
        """Active heads a manager can assign to."""
        await get_acting_employee(db, actor, EmployeeRole.ISSUE_MANAGER)
        heads = await EmployeeRepository.find_active_by_role(db, EmployeeRole.HEAD)
        return [HeadRead.model_validate(head) for head in heads]
