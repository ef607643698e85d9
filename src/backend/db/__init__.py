"""
Database models and enums for the issue lifecycle engine.
"""
from .models import (
    Customer,
    DeviceToken,
    Employee,
    ImmutableTimelineError,
    Issue,
    IssueAssignedDepartment,
    IssueSiteVisit,
    IssueTimeLine,
    Project,
    SiteVisitRequest,
    utc_now,
)
from .enums import (
    ActorKind,
    Category,
    CustomerStatus,
    EmployeeRole,
    HeadIssueBucket,
    InternalStatus,
    Priority,
    SiteVisitRequestStatus,
    TimelineAction,
    VisitStatus,
)

__all__ = [
    # Enums
    "ActorKind",
    "Category",
    "CustomerStatus",
    "EmployeeRole",
    "HeadIssueBucket",
    "InternalStatus",
    "Priority",
    "SiteVisitRequestStatus",
    "TimelineAction",
    "VisitStatus",

    # Parties
    "Customer",
    "Project",
    "Employee",
    "DeviceToken",

    # Issues
    "Issue",
    "IssueTimeLine",
    "IssueAssignedDepartment",
    "ImmutableTimelineError",

    # Site visits
    "SiteVisitRequest",
    "IssueSiteVisit",

    # Utilities
    "utc_now",
]
