"""
Issue reports for department heads and issue managers.

Definitions:
- Period = issues created within [start, end]
- Completed = CLOSED or RESOLVED; cancelled issues count toward the total only
- In progress = IN_PROGRESS, TRANSFERRED or a WAITING_* status
- Pending = any other open status
- Overdue = a final deadline exists and the issue was resolved after it, or is
  still open past it
- Department = department of the head on the most recent assignment
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from core.decorators import lifecycle_operation
from core.exceptions import InvalidStateError
from db.enums import ActorKind, EmployeeRole, InternalStatus
from db.models import Employee, Issue, IssueAssignedDepartment, utc_now
from repositories.assignment_repository import AssignmentRepository
from repositories.employee_repository import EmployeeRepository
from repositories.issue_repository import IssueRepository
from schemas.actor import Actor
from schemas.reports import (
    DepartmentBreakdownItem,
    IssueReport,
    IssueReportRow,
    ReportPeriod,
    StatusBreakdownItem,
)
from services.guards import get_acting_employee
from services.issue_status import is_terminal

logger = logging.getLogger(__name__)

UNASSIGNED = "Unassigned"

COMPLETED_STATUSES = frozenset({InternalStatus.CLOSED, InternalStatus.RESOLVED})
IN_PROGRESS_STATUSES = frozenset(
    {
        InternalStatus.IN_PROGRESS,
        InternalStatus.TRANSFERRED,
        InternalStatus.WAITING_FOR_PARTS,
        InternalStatus.WAITING_FOR_APPROVAL,
    }
)


def _period(start: datetime, end: datetime) -> ReportPeriod:
    if end < start:
        raise InvalidStateError("Report end must not be before its start")
    return ReportPeriod(start=start, end=end)


def _is_overdue(issue: Issue, deadline: Optional[datetime], now: datetime) -> bool:
    if deadline is None:
        return False
    if issue.resolved_at is not None:
        return issue.resolved_at > deadline
    return not is_terminal(issue.internal_status) and now > deadline


def _build_row(
    issue: Issue,
    assignment: Optional[IssueAssignedDepartment],
    head: Optional[Employee],
    now: datetime,
) -> IssueReportRow:
    deadline = assignment.final_deadline if assignment else None
    resolution_days = None
    if issue.resolved_at is not None:
        resolution_days = round(
            (issue.resolved_at - issue.created_at).total_seconds() / 86400, 2
        )

    return IssueReportRow(
        issue_id=issue.id,
        ticket_no=issue.ticket_no,
        description=issue.description,
        priority=issue.priority,
        category=issue.category,
        internal_status=issue.internal_status,
        customer_status=issue.customer_status,
        department=(head.department or UNASSIGNED) if head else UNASSIGNED,
        assigned_head=head.name if head else None,
        created_at=issue.created_at,
        deadline=deadline,
        resolved_at=issue.resolved_at,
        resolution_days=resolution_days,
        is_overdue=_is_overdue(issue, deadline, now),
    )


def _aggregate(period: ReportPeriod, rows: List[IssueReportRow]) -> IssueReport:
    """Totals, rates and breakdowns over report rows."""
    report = IssueReport(period=period, rows=rows, total=len(rows))
    if not rows:
        return report

    by_status = Counter(InternalStatus(row.internal_status) for row in rows)
    report.completed = sum(by_status[status] for status in COMPLETED_STATUSES)
    report.in_progress = sum(by_status[status] for status in IN_PROGRESS_STATUSES)
    report.pending = sum(
        count
        for status, count in by_status.items()
        if status not in COMPLETED_STATUSES
        and status not in IN_PROGRESS_STATUSES
        and status != InternalStatus.CANCELLED
    )
    report.completion_rate = round(report.completed / report.total * 100, 2)
    report.overdue = sum(1 for row in rows if row.is_overdue)

    resolution_days = [row.resolution_days for row in rows if row.resolution_days is not None]
    if resolution_days:
        report.average_resolution_days = round(sum(resolution_days) / len(resolution_days), 2)

    report.status_breakdown = [
        StatusBreakdownItem(status=status, count=count)
        for status, count in sorted(by_status.items(), key=lambda item: (-item[1], item[0].value))
    ]

    departments: Dict[str, Counter] = defaultdict(Counter)
    for row in rows:
        bucket = departments[row.department or UNASSIGNED]
        bucket["total"] += 1
        status = InternalStatus(row.internal_status)
        if status in COMPLETED_STATUSES:
            bucket["completed"] += 1
        elif not is_terminal(status):
            bucket["pending"] += 1
    report.department_breakdown = [
        DepartmentBreakdownItem(
            department=name,
            total=counts["total"],
            completed=counts["completed"],
            pending=counts["pending"],
        )
        for name, counts in sorted(departments.items())
    ]
    return report


async def _rows_for(db: AsyncSession, issues: List[Issue]) -> List[IssueReportRow]:
    assignments = await AssignmentRepository.latest_by_issue(db, [issue.id for issue in issues])
    heads = await EmployeeRepository.find_by_ids(
        db, [assignment.employee_id for assignment in assignments.values()]
    )
    now = utc_now()
    rows = []
    for issue in issues:
        assignment = assignments.get(issue.id)
        head = heads.get(assignment.employee_id) if assignment else None
        rows.append(_build_row(issue, assignment, head, now))
    return rows


class ReportService:
    """Period reports over issues."""

    @staticmethod
    @lifecycle_operation("head_report", allowed_actors=(ActorKind.HEAD,))
    async def head_report(db: AsyncSession, actor: Actor, start: datetime, end: datetime):
        """Report over issues that were ever assigned to the acting head."""
        period = _period(start, end)
        head = await get_acting_employee(db, actor, EmployeeRole.HEAD)

        issue_ids: List[UUID] = await AssignmentRepository.issue_ids_for_employee(db, head.id)
        issues = await IssueRepository.list_created_between(
            db, period.start, period.end, issue_ids=issue_ids
        )
        report = _aggregate(period, await _rows_for(db, issues))
        logger.info(f"Head report for {head.name}: {report.total} issue(s)")
        return report

    @staticmethod
    @lifecycle_operation("manager_report", allowed_actors=(ActorKind.MANAGER,))
    async def manager_report(
        db: AsyncSession,
        actor: Actor,
        start: datetime,
        end: datetime,
        department: Optional[str] = None,
    ):
        """Report over every issue, optionally limited to one department."""
        period = _period(start, end)
        await get_acting_employee(db, actor, EmployeeRole.ISSUE_MANAGER)

        issues = await IssueRepository.list_created_between(db, period.start, period.end)
        rows = await _rows_for(db, issues)
        if department:
            wanted = department.strip().upper()
            rows = [row for row in rows if (row.department or "").upper() == wanted]

        report = _aggregate(period, rows)
        logger.info(
            f"Manager report {period.start:%Y-%m-%d}..{period.end:%Y-%m-%d}"
            f"{f' for {department}' if department else ''}: {report.total} issue(s)"
        )
        return report
