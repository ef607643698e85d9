"""
Issue repository: locking reads, ticket sequencing and work-queue listings.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.enums import HeadIssueBucket, InternalStatus
from db.models import Issue, IssueAssignedDepartment
from repositories.base_repository import BaseRepository

TERMINAL_STATUSES = (InternalStatus.CLOSED, InternalStatus.CANCELLED)


class IssueRepository(BaseRepository[Issue]):
    """Repository for Issue database operations."""

    model = Issue

    @classmethod
    async def get_for_update(cls, db: AsyncSession, issue_id: UUID) -> Optional[Issue]:
        """Load an issue and lock it until the transaction ends."""
        return await cls.find_by_id(db, issue_id, for_update=True)

    @classmethod
    async def find_by_ticket_no(cls, db: AsyncSession, ticket_no: str) -> Optional[Issue]:
        result = await db.execute(select(Issue).where(Issue.ticket_no == ticket_no))
        return result.scalar_one_or_none()

    @classmethod
    async def count_created_between(
        cls, db: AsyncSession, start: datetime, end: datetime
    ) -> int:
        """Count issues created in [start, end)."""
        stmt = select(func.count()).select_from(Issue).where(
            Issue.created_at >= start,
            Issue.created_at < end,
        )
        result = await db.execute(stmt)
        return result.scalar() or 0

    @classmethod
    async def list_for_customer(
        cls, db: AsyncSession, customer_id: int, *, closed: bool = False
    ) -> List[Issue]:
        """A customer's open issues, or their closed and cancelled ones."""
        stmt = select(Issue).where(Issue.customer_id == customer_id)
        if closed:
            stmt = stmt.where(Issue.internal_status.in_(TERMINAL_STATUSES))
        else:
            stmt = stmt.where(Issue.internal_status.not_in(TERMINAL_STATUSES))

        result = await db.execute(stmt.order_by(Issue.created_at.desc()))
        return list(result.scalars().all())

    @classmethod
    async def list_for_head(
        cls, db: AsyncSession, head_id: UUID, bucket: HeadIssueBucket
    ) -> List[Issue]:
        """
        Issues in one of a head's work queues.

        NEW: actively assigned, work not started
        IN_PROGRESS: actively assigned, work started
        CLOSED: assignment ended after work started and the issue is closed
        """
        conditions = [IssueAssignedDepartment.employee_id == head_id]
        if bucket == HeadIssueBucket.NEW:
            conditions += [
                IssueAssignedDepartment.is_active == True,  # noqa: E712
                IssueAssignedDepartment.is_started_work == False,  # noqa: E712
            ]
        elif bucket == HeadIssueBucket.IN_PROGRESS:
            conditions += [
                IssueAssignedDepartment.is_active == True,  # noqa: E712
                IssueAssignedDepartment.is_started_work == True,  # noqa: E712
                Issue.internal_status.not_in(TERMINAL_STATUSES),
            ]
        else:
            conditions += [
                IssueAssignedDepartment.is_active == False,  # noqa: E712
                IssueAssignedDepartment.is_started_work == True,  # noqa: E712
                Issue.internal_status == InternalStatus.CLOSED,
            ]

        stmt = (
            select(Issue)
            .join(IssueAssignedDepartment, IssueAssignedDepartment.issue_id == Issue.id)
            .where(and_(*conditions))
            .order_by(Issue.updated_at.desc())
            .distinct()
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @classmethod
    async def list_created_between(
        cls,
        db: AsyncSession,
        start: datetime,
        end: datetime,
        *,
        issue_ids: Optional[List[UUID]] = None,
    ) -> List[Issue]:
        """Issues created within [start, end], optionally restricted to ids."""
        stmt = select(Issue).where(Issue.created_at >= start, Issue.created_at <= end)
        if issue_ids is not None:
            if not issue_ids:
                return []
            stmt = stmt.where(Issue.id.in_(issue_ids))
        result = await db.execute(stmt.order_by(Issue.created_at.asc()))
        return list(result.scalars().all())

    @classmethod
    async def list_by_status(
        cls, db: AsyncSession, status: Optional[InternalStatus]
    ) -> List[Issue]:
        """Issues in one internal status; ``None`` means every issue past intake."""
        stmt = select(Issue)
        if status is None:
            stmt = stmt.where(Issue.internal_status != InternalStatus.NEW)
        else:
            stmt = stmt.where(Issue.internal_status == status)

        result = await db.execute(stmt.order_by(Issue.created_at.desc()))
        return list(result.scalars().all())
