"""
Database models for the issue lifecycle engine.

All timestamps are stored as timezone-naive UTC (see ``utc_now``). Enum
columns are stored as VARCHAR so the same schema runs on PostgreSQL and on the
SQLite engine used by the test suite.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    event,
    text,
)
from sqlmodel import Field, SQLModel

from .enums import (
    Category,
    CustomerStatus,
    EmployeeRole,
    InternalStatus,
    Priority,
    SiteVisitRequestStatus,
    TimelineAction,
    VisitStatus,
)


def utc_now():
    """
    Get current time in UTC (timezone-naive) for database storage.

    The API layer serializes these with a 'Z' suffix; callers never store
    local times.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_column(enum_cls, *, nullable: bool = False, index: bool = False) -> Column:
    return Column(
        SAEnum(enum_cls, native_enum=False, length=32, validate_strings=True),
        nullable=nullable,
        index=index,
    )


class TableModel(SQLModel):
    """Base table model with common functionality."""

    pass


# ============================================================================
# PARTIES
# ============================================================================


class Customer(TableModel, table=True):
    """A company that owns projects and files issues."""

    __tablename__ = "customers"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(200), nullable=False))
    email: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    mobile_no: Optional[str] = Field(default=None, sa_column=Column(String(32), nullable=True))
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP")),
    )


class Project(TableModel, table=True):
    """An installation at a customer site that issues are filed against."""

    __tablename__ = "projects"

    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
        ),
    )
    project_name: str = Field(sa_column=Column(String(200), nullable=False))
    machine_type: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    capacity: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    location: Optional[str] = Field(default=None, sa_column=Column(String(200), nullable=True))

    __table_args__ = (Index("ix_projects_customer_id", "customer_id"),)


class Employee(TableModel, table=True):
    """Internal staff: issue managers, department heads and service engineers.

    ``pending_visits`` and ``completed_visits`` are only meaningful for service
    engineers and are adjusted exactly once per site-visit transition.
    """

    __tablename__ = "employees"

    id: Optional[UUID] = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    name: str = Field(sa_column=Column(String(200), nullable=False))
    email: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    mobile_no: Optional[str] = Field(default=None, sa_column=Column(String(32), nullable=True))
    role: EmployeeRole = Field(sa_column=_enum_column(EmployeeRole, index=True))
    department: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    location: Optional[str] = Field(default=None, sa_column=Column(String(200), nullable=True))
    pending_visits: int = Field(
        default=0, sa_column=Column(Integer, nullable=False)
    )
    completed_visits: int = Field(
        default=0, sa_column=Column(Integer, nullable=False)
    )
    is_active: bool = Field(
        default=True, sa_column=Column(Boolean, nullable=False)
    )

    __table_args__ = (Index("ix_employees_department_role", "department", "role"),)


class DeviceToken(TableModel, table=True):
    """Push token registered by a customer or employee device."""

    __tablename__ = "device_tokens"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(sa_column=Column(String(64), nullable=False, unique=True))
    token: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime, nullable=False)
    )


# ============================================================================
# ISSUES
# ============================================================================


class Issue(TableModel, table=True):
    """A customer-reported problem on a project."""

    __tablename__ = "issues"

    id: Optional[UUID] = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    ticket_no: str = Field(sa_column=Column(String(20), nullable=False, unique=True))
    description: str = Field(sa_column=Column(Text, nullable=False))
    internal_status: InternalStatus = Field(
        default=InternalStatus.NEW, sa_column=_enum_column(InternalStatus, index=True)
    )
    customer_status: CustomerStatus = Field(
        default=CustomerStatus.UNDER_REVIEW, sa_column=_enum_column(CustomerStatus)
    )
    priority: Priority = Field(default=Priority.MEDIUM, sa_column=_enum_column(Priority))
    category: Category = Field(default=Category.OTHER, sa_column=_enum_column(Category))
    project_id: int = Field(
        sa_column=Column(Integer, ForeignKey("projects.id"), nullable=False),
    )
    customer_id: int = Field(
        sa_column=Column(Integer, ForeignKey("customers.id"), nullable=False),
    )
    # Reassigned, never mutated in place, so the JSON column is always flushed
    attachment_urls: List[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    is_attachments_requested: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False)
    )
    attachments_requested_by_id: Optional[UUID] = Field(
        default=None,
        sa_column=Column(Uuid(as_uuid=True), ForeignKey("employees.id"), nullable=True),
    )
    is_site_visit_requested: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False)
    )
    is_site_visit_scheduled: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False)
    )
    # Points at the newest issue_timelines row; no FK to avoid a table cycle
    latest_status_id: Optional[int] = Field(
        default=None, sa_column=Column(Integer, nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
    )
    resolved_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    closed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))

    __table_args__ = (
        Index("ix_issues_customer_id", "customer_id"),
        Index("ix_issues_project_id", "project_id"),
    )


class IssueTimeLine(TableModel, table=True):
    """Append-only event log for an issue.

    Rows are never updated or deleted. The autoincrement id breaks ties between
    entries written in the same instant, so (created_at, id) is the canonical
    order.
    """

    __tablename__ = "issue_timelines"

    id: Optional[int] = Field(default=None, primary_key=True)
    issue_id: UUID = Field(
        sa_column=Column(
            Uuid(as_uuid=True),
            ForeignKey("issues.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    action: TimelineAction = Field(sa_column=_enum_column(TimelineAction))
    from_internal_status: Optional[InternalStatus] = Field(
        default=None, sa_column=_enum_column(InternalStatus, nullable=True)
    )
    to_internal_status: Optional[InternalStatus] = Field(
        default=None, sa_column=_enum_column(InternalStatus, nullable=True)
    )
    from_customer_status: Optional[CustomerStatus] = Field(
        default=None, sa_column=_enum_column(CustomerStatus, nullable=True)
    )
    to_customer_status: Optional[CustomerStatus] = Field(
        default=None, sa_column=_enum_column(CustomerStatus, nullable=True)
    )
    comment: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    visible_to_customer: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False)
    )
    performed_by: Optional[str] = Field(
        default=None, sa_column=Column(String(64), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
    )

    __table_args__ = (
        Index("ix_issue_timelines_issue_created", "issue_id", "created_at", "id"),
    )


class ImmutableTimelineError(RuntimeError):
    """Raised when code tries to change or remove a timeline entry."""


@event.listens_for(IssueTimeLine, "before_update")
def _reject_timeline_update(mapper, connection, target):
    raise ImmutableTimelineError(f"Timeline entry {target.id} cannot be updated")


@event.listens_for(IssueTimeLine, "before_delete")
def _reject_timeline_delete(mapper, connection, target):
    raise ImmutableTimelineError(f"Timeline entry {target.id} cannot be deleted")


class IssueAssignedDepartment(TableModel, table=True):
    """Binding of an issue to the department head that owns it.

    At most one row per issue has ``is_active`` set.
    """

    __tablename__ = "issue_assigned_departments"

    id: Optional[int] = Field(default=None, primary_key=True)
    issue_id: UUID = Field(
        sa_column=Column(
            Uuid(as_uuid=True),
            ForeignKey("issues.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    employee_id: UUID = Field(
        sa_column=Column(Uuid(as_uuid=True), ForeignKey("employees.id"), nullable=False),
    )
    assigned_by_id: Optional[UUID] = Field(
        default=None,
        sa_column=Column(Uuid(as_uuid=True), ForeignKey("employees.id"), nullable=True),
    )
    is_active: bool = Field(
        default=True, sa_column=Column(Boolean, nullable=False)
    )
    is_started_work: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False)
    )
    assigned_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime, nullable=False)
    )
    initial_deadline: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    final_deadline: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))

    __table_args__ = (
        Index("ix_issue_assigned_departments_issue_active", "issue_id", "is_active"),
        Index("ix_issue_assigned_departments_employee", "employee_id"),
    )


# ============================================================================
# SITE VISITS
# ============================================================================


class SiteVisitRequest(TableModel, table=True):
    """A head's request for the service department to send an engineer."""

    __tablename__ = "site_visit_requests"

    id: Optional[UUID] = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    issue_id: UUID = Field(
        sa_column=Column(
            Uuid(as_uuid=True),
            ForeignKey("issues.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    request_from_head_id: UUID = Field(
        sa_column=Column(Uuid(as_uuid=True), ForeignKey("employees.id"), nullable=False),
    )
    request_from_name: str = Field(sa_column=Column(String(200), nullable=False))
    request_from_department: Optional[str] = Field(
        default=None, sa_column=Column(String(100), nullable=True)
    )
    ticket_no: str = Field(sa_column=Column(String(20), nullable=False))
    status: SiteVisitRequestStatus = Field(
        default=SiteVisitRequestStatus.PENDING,
        sa_column=_enum_column(SiteVisitRequestStatus, index=True),
    )
    requested_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime, nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime, nullable=False)
    )

    __table_args__ = (Index("ix_site_visit_requests_issue_status", "issue_id", "status"),)


class IssueSiteVisit(TableModel, table=True):
    """A scheduled engineer visit to the customer's site."""

    __tablename__ = "issue_site_visits"

    id: Optional[UUID] = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    issue_id: UUID = Field(
        sa_column=Column(
            Uuid(as_uuid=True),
            ForeignKey("issues.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    site_visitor_id: UUID = Field(
        sa_column=Column(Uuid(as_uuid=True), ForeignKey("employees.id"), nullable=False),
    )
    working_department: str = Field(sa_column=Column(String(100), nullable=False))
    working_head_id: UUID = Field(
        sa_column=Column(Uuid(as_uuid=True), ForeignKey("employees.id"), nullable=False),
    )
    site_visit_request_id: Optional[UUID] = Field(
        default=None,
        sa_column=Column(
            Uuid(as_uuid=True), ForeignKey("site_visit_requests.id"), nullable=True
        ),
    )
    scheduled_date: datetime = Field(sa_column=Column(DateTime, nullable=False))
    actual_date: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    status: VisitStatus = Field(
        default=VisitStatus.SCHEDULED, sa_column=_enum_column(VisitStatus, index=True)
    )
    remark: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime, nullable=False)
    )

    __table_args__ = (
        Index("ix_issue_site_visits_issue_status", "issue_id", "status"),
        Index("ix_issue_site_visits_visitor_date", "site_visitor_id", "scheduled_date"),
    )
