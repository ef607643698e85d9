"""
Enumerations shared by table models, schemas and services.

Stored as their string values; every enum subclasses ``str`` so values
compare equal to the raw column text.
"""

from enum import Enum


class InternalStatus(str, Enum):
    """Workflow state seen by staff."""

    NEW = "NEW"
    ASSIGNED = "ASSIGNED"
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    REASSIGNED = "REASSIGNED"
    TRANSFERRED = "TRANSFERRED"
    WAITING_FOR_PARTS = "WAITING_FOR_PARTS"
    WAITING_FOR_APPROVAL = "WAITING_FOR_APPROVAL"
    RESOLVED = "RESOLVED"
    REOPENED = "REOPENED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class CustomerStatus(str, Enum):
    """Coarse state shown to the customer, always derived from InternalStatus."""

    UNDER_REVIEW = "UNDER_REVIEW"
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class TimelineAction(str, Enum):
    ISSUE_CREATED = "ISSUE_CREATED"
    ASSIGNED = "ASSIGNED"
    WORK_STARTED = "WORK_STARTED"
    COMMENT_ADDED = "COMMENT_ADDED"
    ATTACHMENT_REQUESTED = "ATTACHMENT_REQUESTED"
    ATTACHMENT_ADDED = "ATTACHMENT_ADDED"
    SITE_VISIT_REQUESTED = "SITE_VISIT_REQUESTED"
    SITE_VISIT_REQUEST_REJECTED = "SITE_VISIT_REQUEST_REJECTED"
    SITE_VISIT_SCHEDULED = "SITE_VISIT_SCHEDULED"
    SITE_VISIT_COMPLETED = "SITE_VISIT_COMPLETED"
    SITE_VISIT_CANCELLED = "SITE_VISIT_CANCELLED"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    REOPENED = "REOPENED"
    INVALID = "INVALID"
    CANCELLED = "CANCELLED"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
    URGENT = "URGENT"


class Category(str, Enum):
    HARDWARE_ISSUE = "HARDWARE_ISSUE"
    SOFTWARE_ISSUE = "SOFTWARE_ISSUE"
    QUALITY_ISSUE = "QUALITY_ISSUE"
    MAINTENANCE = "MAINTENANCE"
    INSTALLATION = "INSTALLATION"
    TRAINING = "TRAINING"
    WARRANTY_CLAIM = "WARRANTY_CLAIM"
    SERVICING = "SERVICING"
    NETWORK_ISSUE = "NETWORK_ISSUE"
    ELECTRICAL_ISSUE = "ELECTRICAL_ISSUE"
    OTHER = "OTHER"


class SiteVisitRequestStatus(str, Enum):
    """A department head's request for the service department to visit site."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"  # a visit was scheduled for it
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class VisitStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class EmployeeRole(str, Enum):
    """Persisted role of an internal staff member."""

    ISSUE_MANAGER = "ISSUE_MANAGER"
    HEAD = "HEAD"
    SERVICE_ENGINEER = "SERVICE_ENGINEER"


class ActorKind(str, Enum):
    """Who is invoking an operation."""

    CUSTOMER = "CUSTOMER"
    HEAD = "HEAD"
    MANAGER = "MANAGER"
    SERVICE_ENGINEER = "SERVICE_ENGINEER"


class HeadIssueBucket(str, Enum):
    """Work-queue views a department head can list."""

    NEW = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    CLOSED = "CLOSED"
