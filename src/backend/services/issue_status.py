"""
Issue status state machine.

One table maps every internal status to the status the customer sees, and one
table lists the legal internal transitions. Services never set a customer
status directly; they move the internal status and derive the rest from here.
"""
from typing import Dict, FrozenSet, Optional

from core.exceptions import InvalidStateError
from db.enums import CustomerStatus, InternalStatus
from db.models import Issue, utc_now

CUSTOMER_STATUS_FOR: Dict[InternalStatus, CustomerStatus] = {
    InternalStatus.NEW: CustomerStatus.UNDER_REVIEW,
    InternalStatus.ASSIGNED: CustomerStatus.OPEN,
    InternalStatus.OPEN: CustomerStatus.OPEN,
    InternalStatus.REASSIGNED: CustomerStatus.OPEN,
    InternalStatus.REOPENED: CustomerStatus.OPEN,
    InternalStatus.IN_PROGRESS: CustomerStatus.IN_PROGRESS,
    InternalStatus.TRANSFERRED: CustomerStatus.IN_PROGRESS,
    InternalStatus.WAITING_FOR_PARTS: CustomerStatus.IN_PROGRESS,
    InternalStatus.WAITING_FOR_APPROVAL: CustomerStatus.IN_PROGRESS,
    InternalStatus.RESOLVED: CustomerStatus.CLOSED,
    InternalStatus.CLOSED: CustomerStatus.CLOSED,
    InternalStatus.CANCELLED: CustomerStatus.CANCELLED,
}

TERMINAL_STATUSES: FrozenSet[InternalStatus] = frozenset(
    {InternalStatus.CLOSED, InternalStatus.CANCELLED}
)

_WORKING = frozenset(
    {
        InternalStatus.IN_PROGRESS,
        InternalStatus.TRANSFERRED,
        InternalStatus.WAITING_FOR_PARTS,
        InternalStatus.WAITING_FOR_APPROVAL,
    }
)

# CANCELLED is added to every non-terminal state below
_TRANSITIONS: Dict[InternalStatus, FrozenSet[InternalStatus]] = {
    InternalStatus.NEW: frozenset(
        {InternalStatus.ASSIGNED, InternalStatus.OPEN, InternalStatus.CLOSED}
    ),
    InternalStatus.ASSIGNED: frozenset(
        {InternalStatus.IN_PROGRESS, InternalStatus.REASSIGNED, InternalStatus.CLOSED}
    ),
    InternalStatus.OPEN: frozenset(
        {InternalStatus.IN_PROGRESS, InternalStatus.REASSIGNED, InternalStatus.CLOSED}
    ),
    InternalStatus.REASSIGNED: frozenset(
        {InternalStatus.IN_PROGRESS, InternalStatus.CLOSED}
    ),
    InternalStatus.REOPENED: frozenset(
        {InternalStatus.ASSIGNED, InternalStatus.IN_PROGRESS, InternalStatus.CLOSED}
    ),
    InternalStatus.IN_PROGRESS: _WORKING
    | frozenset({InternalStatus.RESOLVED, InternalStatus.CLOSED}),
    InternalStatus.TRANSFERRED: _WORKING
    | frozenset({InternalStatus.RESOLVED, InternalStatus.CLOSED}),
    InternalStatus.WAITING_FOR_PARTS: _WORKING
    | frozenset({InternalStatus.RESOLVED, InternalStatus.CLOSED}),
    InternalStatus.WAITING_FOR_APPROVAL: _WORKING
    | frozenset({InternalStatus.RESOLVED, InternalStatus.CLOSED}),
    InternalStatus.RESOLVED: frozenset({InternalStatus.CLOSED, InternalStatus.REOPENED}),
    InternalStatus.CLOSED: frozenset(),
    InternalStatus.CANCELLED: frozenset(),
}

ALLOWED_TRANSITIONS: Dict[InternalStatus, FrozenSet[InternalStatus]] = {
    status: targets if status in TERMINAL_STATUSES else targets | {InternalStatus.CANCELLED}
    for status, targets in _TRANSITIONS.items()
}


def customer_status_for(status: InternalStatus) -> CustomerStatus:
    return CUSTOMER_STATUS_FOR[InternalStatus(status)]


def is_terminal(status: InternalStatus) -> bool:
    return InternalStatus(status) in TERMINAL_STATUSES


def can_transition(current: InternalStatus, target: InternalStatus) -> bool:
    return InternalStatus(target) in ALLOWED_TRANSITIONS[InternalStatus(current)]


def ensure_open(issue: Issue) -> None:
    """Reject any mutation of a closed or cancelled issue."""
    if is_terminal(issue.internal_status):
        raise InvalidStateError(
            f"Issue {issue.ticket_no} is {InternalStatus(issue.internal_status).value.lower()}"
        )


class StatusChange:
    """Before/after pair of both status tracks, recorded on the timeline."""

    def __init__(
        self,
        from_internal: Optional[InternalStatus],
        to_internal: InternalStatus,
        from_customer: Optional[CustomerStatus],
        to_customer: CustomerStatus,
    ):
        self.from_internal = from_internal
        self.to_internal = to_internal
        self.from_customer = from_customer
        self.to_customer = to_customer

    @property
    def changed(self) -> bool:
        return self.from_internal != self.to_internal


def apply_transition(issue: Issue, target: InternalStatus) -> StatusChange:
    """
    Move an issue to ``target`` and derive its customer status.

    The current status is whatever was read inside the caller's transaction.

    Raises:
        InvalidStateError: If the transition is not in the table
    """
    current = InternalStatus(issue.internal_status)
    target = InternalStatus(target)
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Issue {issue.ticket_no} cannot move from {current.value} to {target.value}"
        )

    change = StatusChange(
        from_internal=current,
        to_internal=target,
        from_customer=CustomerStatus(issue.customer_status),
        to_customer=customer_status_for(target),
    )
    issue.internal_status = target
    issue.customer_status = change.to_customer
    issue.updated_at = utc_now()
    return change
