"""
Timeline repository. Entries are only ever inserted and read.
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import IssueTimeLine
from repositories.base_repository import BaseRepository


class TimelineRepository(BaseRepository[IssueTimeLine]):
    model = IssueTimeLine

    @classmethod
    async def list_for_issue(
        cls,
        db: AsyncSession,
        issue_id: UUID,
        *,
        customer_visible_only: bool = False,
    ) -> List[IssueTimeLine]:
        """Entries for an issue in canonical (created_at, id) order."""
        stmt = select(IssueTimeLine).where(IssueTimeLine.issue_id == issue_id)
        if customer_visible_only:
            stmt = stmt.where(IssueTimeLine.visible_to_customer == True)  # noqa: E712

        stmt = stmt.order_by(IssueTimeLine.created_at.asc(), IssueTimeLine.id.asc())
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @classmethod
    async def find_latest(cls, db: AsyncSession, issue_id: UUID) -> Optional[IssueTimeLine]:
        stmt = (
            select(IssueTimeLine)
            .where(IssueTimeLine.issue_id == issue_id)
            .order_by(IssueTimeLine.created_at.desc(), IssueTimeLine.id.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()
