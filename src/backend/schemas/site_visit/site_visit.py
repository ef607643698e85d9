"""
Site visit, visit request and service engineer read models.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from core.schema_base import HTTPSchemaModel
from db.enums import SiteVisitRequestStatus, VisitStatus


class SiteVisitRequestRead(HTTPSchemaModel):
    id: UUID
    issue_id: UUID
    ticket_no: str
    request_from_head_id: UUID
    request_from_name: str
    request_from_department: Optional[str] = None
    status: SiteVisitRequestStatus
    requested_at: datetime
    updated_at: datetime


class SiteVisitRead(HTTPSchemaModel):
    id: UUID
    issue_id: UUID
    site_visitor_id: UUID
    working_department: str
    working_head_id: UUID
    site_visit_request_id: Optional[UUID] = None
    scheduled_date: datetime
    actual_date: Optional[datetime] = None
    status: VisitStatus
    remark: Optional[str] = None
    created_at: datetime


class EngineerRead(HTTPSchemaModel):
    """Service engineer with current workload."""

    id: UUID
    name: str
    mobile_no: Optional[str] = None
    location: Optional[str] = None
    pending_visits: int
    completed_visits: int
