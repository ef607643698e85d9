"""
Precondition checks shared by lifecycle services.

Every check reads persisted state inside the caller's transaction; nothing
here trusts what the caller claims about an issue or an actor.
"""
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)
from db.enums import ActorKind, EmployeeRole
from db.models import Customer, Employee, Issue, IssueAssignedDepartment
from repositories.assignment_repository import AssignmentRepository
from repositories.customer_repository import CustomerRepository
from repositories.employee_repository import EmployeeRepository
from repositories.issue_repository import IssueRepository
from schemas.actor import Actor

_ROLE_LABELS = {
    EmployeeRole.ISSUE_MANAGER: "Issue manager",
    EmployeeRole.HEAD: "Department head",
    EmployeeRole.SERVICE_ENGINEER: "Service engineer",
}


def same_department(left: object, right: object) -> bool:
    """Department names match trimmed and case-insensitively."""
    return (
        isinstance(left, str)
        and isinstance(right, str)
        and left.strip().upper() == right.strip().upper()
    )


def is_service_department(department: object) -> bool:
    return same_department(department, settings.lifecycle.service_department)


async def get_issue_for_update(db: AsyncSession, issue_id: UUID) -> Issue:
    issue = await IssueRepository.get_for_update(db, issue_id)
    if issue is None:
        raise NotFoundError(f"Issue {issue_id} not found")
    return issue


async def get_acting_customer(db: AsyncSession, actor: Actor) -> Customer:
    customer = await CustomerRepository.find_by_id(db, actor.id)
    if customer is None:
        raise NotFoundError(f"Customer {actor.id} not found")
    return customer


async def get_acting_employee(
    db: AsyncSession, actor: Actor, role: EmployeeRole
) -> Employee:
    """The persisted employee behind ``actor``; must hold ``role`` and be active."""
    employee = await EmployeeRepository.find_by_id(db, actor.id)
    if employee is None:
        raise NotFoundError(f"{_ROLE_LABELS[role]} {actor.id} not found")
    if employee.role != role:
        raise PermissionDeniedError(f"{employee.name} is not a {_ROLE_LABELS[role].lower()}")
    if not employee.is_active:
        raise PermissionDeniedError(f"{employee.name} is inactive")
    return employee


async def get_service_head(db: AsyncSession, actor: Actor) -> Employee:
    """The acting head, who must belong to the service department."""
    head = await get_acting_employee(db, actor, EmployeeRole.HEAD)
    if not is_service_department(head.department):
        raise PermissionDeniedError(
            f"Only {settings.lifecycle.service_department} department heads can do this"
        )
    return head


async def get_target_employee(
    db: AsyncSession, employee_id: UUID, role: EmployeeRole
) -> Employee:
    """
    An employee an operation acts upon (assignee head, visiting engineer).

    Raises:
        NotFoundError: Missing, or not holding ``role``
        ConflictError: Inactive
    """
    label = _ROLE_LABELS[role]
    employee = await EmployeeRepository.find_by_id(db, employee_id)
    if employee is None or employee.role != role:
        raise NotFoundError(f"{label} {employee_id} not found")
    if not employee.is_active:
        raise ConflictError(f"{label} {employee.name} is inactive")
    return employee


async def require_active_assignment(
    db: AsyncSession, issue: Issue, head: Employee
) -> IssueAssignedDepartment:
    """The issue's active assignment, which must belong to ``head``."""
    assignment = await AssignmentRepository.find_active(db, issue.id, for_update=True)
    if assignment is None:
        raise InvalidStateError(f"Issue {issue.ticket_no} is not assigned to any department")
    if assignment.employee_id != head.id:
        raise PermissionDeniedError(f"Issue {issue.ticket_no} is not assigned to {head.name}")
    return assignment


async def check_issue_access(db: AsyncSession, actor: Actor, issue: Issue) -> None:
    """
    Read access to one issue.

    Customers reach their own issues, heads the issues ever assigned to them
    (service heads any issue, since they visit for every department) and
    issue managers all issues.
    """
    if actor.kind == ActorKind.CUSTOMER:
        customer = await get_acting_customer(db, actor)
        if issue.customer_id != customer.id:
            raise PermissionDeniedError(f"Issue {issue.ticket_no} belongs to another customer")
    elif actor.kind == ActorKind.HEAD:
        head = await get_acting_employee(db, actor, EmployeeRole.HEAD)
        if not (
            is_service_department(head.department)
            or await AssignmentRepository.was_ever_assigned(db, issue.id, head.id)
        ):
            raise PermissionDeniedError(
                f"Issue {issue.ticket_no} was never assigned to {head.name}"
            )
    elif actor.kind == ActorKind.MANAGER:
        await get_acting_employee(db, actor, EmployeeRole.ISSUE_MANAGER)
    else:
        raise PermissionDeniedError(f"{actor.kind.value.title()} actors cannot view issues")
