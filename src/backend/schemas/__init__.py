"""
Schemas package: actor identity, operation results, notifications and the
read models returned by lifecycle queries.
"""
from .actor import Actor
from .attachment import AttachmentUpload, AttachmentUploadBatch, UploadFileSpec
from .issue import (
    AssignmentRead,
    IssueDetail,
    IssueListItem,
    IssueRead,
    TimelineEntryRead,
)
from .notification import PushNotification
from .operation_result import OperationResult
from .reports import (
    DepartmentBreakdownItem,
    IssueReport,
    IssueReportRow,
    ReportPeriod,
    StatusBreakdownItem,
)
from .site_visit import (
    EngineerRead,
    SiteVisitRead,
    SiteVisitRequestRead,
)

__all__ = [
    "Actor",
    "AssignmentRead",
    "AttachmentUpload",
    "AttachmentUploadBatch",
    "DepartmentBreakdownItem",
    "EngineerRead",
    "IssueDetail",
    "IssueListItem",
    "IssueRead",
    "IssueReport",
    "IssueReportRow",
    "OperationResult",
    "PushNotification",
    "ReportPeriod",
    "SiteVisitRead",
    "SiteVisitRequestRead",
    "StatusBreakdownItem",
    "TimelineEntryRead",
    "UploadFileSpec",
]
