"""Report schemas."""

from .issue_report import (
    DepartmentBreakdownItem,
    IssueReport,
    IssueReportRow,
    ReportPeriod,
    StatusBreakdownItem,
)

__all__ = [
    "DepartmentBreakdownItem",
    "IssueReport",
    "IssueReportRow",
    "ReportPeriod",
    "StatusBreakdownItem",
]
