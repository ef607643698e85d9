"""Issue report schemas for heads and issue managers."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field, model_validator

from core.schema_base import HTTPSchemaModel
from db.enums import Category, CustomerStatus, InternalStatus, Priority


class ReportPeriod(HTTPSchemaModel):
    """Inclusive creation-date window a report covers."""

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def check_order(self) -> "ReportPeriod":
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self


class IssueReportRow(HTTPSchemaModel):
    """One issue in a report."""

    issue_id: UUID
    ticket_no: str
    description: str
    priority: Priority
    category: Category
    internal_status: InternalStatus
    customer_status: CustomerStatus
    department: Optional[str] = None
    assigned_head: Optional[str] = None
    created_at: datetime
    deadline: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolution_days: Optional[float] = None
    is_overdue: bool = False


class StatusBreakdownItem(HTTPSchemaModel):
    status: InternalStatus
    count: int


class DepartmentBreakdownItem(HTTPSchemaModel):
    department: str
    total: int
    completed: int
    pending: int


class IssueReport(HTTPSchemaModel):
    """Aggregates and rows for one reporting period."""

    period: ReportPeriod
    total: int = 0
    completed: int = 0
    pending: int = 0
    in_progress: int = 0
    completion_rate: float = Field(0.0, description="Completed share in percent")
    average_resolution_days: Optional[float] = None
    overdue: int = 0
    status_breakdown: List[StatusBreakdownItem] = []
    department_breakdown: List[DepartmentBreakdownItem] = []
    rows: List[IssueReportRow] = []
