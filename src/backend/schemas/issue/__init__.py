"""Issue schemas package."""
from .issue import (
    AssignmentRead,
    HeadRead,
    IssueDetail,
    IssueListItem,
    IssueRead,
    TimelineEntryRead,
)

__all__ = [
    "AssignmentRead",
    "HeadRead",
    "IssueDetail",
    "IssueListItem",
    "IssueRead",
    "TimelineEntryRead",
]
