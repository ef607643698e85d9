"""
Timeline ledger service.

Every mutating lifecycle operation writes one entry, or an ordered batch,
through here in the same transaction as the change it describes. Each insert
moves ``issue.latest_status_id`` to the new entry.
"""
import logging
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import LifecycleLogger
from db.enums import TimelineAction
from db.models import Issue, IssueTimeLine, utc_now
from services.issue_status import StatusChange

logger = logging.getLogger(__name__)
lifecycle_logger = LifecycleLogger("timeline")


class TimelineEntry:
    """An entry waiting to be appended."""

    def __init__(
        self,
        action: TimelineAction,
        comment: Optional[str] = None,
        *,
        visible_to_customer: bool = False,
        status_change: Optional[StatusChange] = None,
        performed_by: Optional[str] = None,
    ):
        self.action = action
        self.comment = comment
        self.visible_to_customer = visible_to_customer
        self.status_change = status_change
        self.performed_by = performed_by


class TimelineService:
    """Append-only writes to ``issue_timelines``."""

    @staticmethod
    async def append(
        db: AsyncSession,
        issue: Issue,
        action: TimelineAction,
        comment: Optional[str] = None,
        *,
        visible_to_customer: bool = False,
        status_change: Optional[StatusChange] = None,
        performed_by: Optional[str] = None,
    ) -> IssueTimeLine:
        """Append a single entry and point the issue at it."""
        entries = await TimelineService.append_batch(
            db,
            issue,
            [
                TimelineEntry(
                    action,
                    comment,
                    visible_to_customer=visible_to_customer,
                    status_change=status_change,
                    performed_by=performed_by,
                )
            ],
        )
        return entries[0]

    @staticmethod
    async def append_batch(
        db: AsyncSession, issue: Issue, entries: Sequence[TimelineEntry]
    ) -> List[IssueTimeLine]:
        """
        Append entries in order.

        Each row is flushed before the next so ids increase in batch order;
        ``latest_status_id`` ends on the last one.
        """
        written: List[IssueTimeLine] = []
        for entry in entries:
            change = entry.status_change
            row = IssueTimeLine(
                issue_id=issue.id,
                action=entry.action,
                from_internal_status=change.from_internal if change else None,
                to_internal_status=change.to_internal if change else None,
                from_customer_status=change.from_customer if change else None,
                to_customer_status=change.to_customer if change else None,
                comment=entry.comment,
                visible_to_customer=entry.visible_to_customer,
                performed_by=entry.performed_by,
                created_at=utc_now(),
            )
            db.add(row)
            await db.flush()

            issue.latest_status_id = row.id
            issue.updated_at = row.created_at
            written.append(row)

            if change and change.changed:
                lifecycle_logger.status_changed(
                    issue.ticket_no,
                    change.from_internal.value if change.from_internal else None,
                    change.to_internal.value,
                    entry.performed_by,
                )

        await db.flush()
        logger.debug(
            f"Appended {len(written)} timeline entr{'y' if len(written) == 1 else 'ies'} "
            f"to {issue.ticket_no}"
        )
        return written
