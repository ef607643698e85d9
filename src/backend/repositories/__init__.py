"""
Repository layer for database operations.

Data access is isolated from lifecycle rules; each repository handles one
entity (or a closely related pair) and never commits.
"""

from repositories.assignment_repository import AssignmentRepository
from repositories.base_repository import BaseRepository
from repositories.customer_repository import CustomerRepository, ProjectRepository
from repositories.device_token_repository import DeviceTokenRepository
from repositories.employee_repository import EmployeeRepository
from repositories.issue_repository import IssueRepository
from repositories.site_visit_repository import (
    SiteVisitRepository,
    SiteVisitRequestRepository,
)
from repositories.timeline_repository import TimelineRepository

__all__ = [
    "AssignmentRepository",
    "BaseRepository",
    "CustomerRepository",
    "DeviceTokenRepository",
    "EmployeeRepository",
    "IssueRepository",
    "ProjectRepository",
    "SiteVisitRepository",
    "SiteVisitRequestRepository",
    "TimelineRepository",
]
