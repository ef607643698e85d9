"""
Issue read models returned by lifecycle queries.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from core.schema_base import HTTPSchemaModel
from db.enums import (
    Category,
    CustomerStatus,
    InternalStatus,
    Priority,
    TimelineAction,
)


class TimelineEntryRead(HTTPSchemaModel):
    id: int
    action: TimelineAction
    from_internal_status: Optional[InternalStatus] = None
    to_internal_status: Optional[InternalStatus] = None
    from_customer_status: Optional[CustomerStatus] = None
    to_customer_status: Optional[CustomerStatus] = None
    comment: Optional[str] = None
    visible_to_customer: bool
    performed_by: Optional[str] = None
    created_at: datetime


class AssignmentRead(HTTPSchemaModel):
    id: int
    issue_id: UUID
    employee_id: UUID
    assigned_by_id: Optional[UUID] = None
    is_active: bool
    is_started_work: bool
    assigned_at: datetime
    initial_deadline: Optional[datetime] = None
    final_deadline: Optional[datetime] = None


class HeadRead(HTTPSchemaModel):
    """Department head a manager can assign issues to."""

    id: UUID
    name: str
    department: Optional[str] = None
    email: Optional[str] = None
    mobile_no: Optional[str] = None


class IssueRead(HTTPSchemaModel):
    """Full issue row."""

    id: UUID
    ticket_no: str
    description: str
    internal_status: InternalStatus
    customer_status: CustomerStatus
    priority: Priority
    category: Category
    project_id: int
    customer_id: int
    attachment_urls: List[str] = []
    is_attachments_requested: bool
    is_site_visit_requested: bool
    is_site_visit_scheduled: bool
    latest_status_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None


class IssueListItem(HTTPSchemaModel):
    """Compact issue row for work queues and customer lists."""

    id: UUID
    ticket_no: str
    description: str
    customer_status: CustomerStatus
    internal_status: Optional[InternalStatus] = None
    priority: Priority
    category: Category
    project_id: int
    created_at: datetime
    updated_at: datetime


class IssueDetail(HTTPSchemaModel):
    """Issue with its timeline and current owner.

    Customers receive ``internal_status=None`` and only customer-visible
    timeline entries.
    """

    issue: IssueListItem
    attachment_urls: List[str] = []
    is_attachments_requested: bool = False
    is_site_visit_requested: bool = False
    is_site_visit_scheduled: bool = False
    active_assignment: Optional[AssignmentRead] = None
    timeline: List[TimelineEntryRead] = []
