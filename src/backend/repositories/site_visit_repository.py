"""
Site visit and site visit request repositories.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.enums import SiteVisitRequestStatus, VisitStatus
from db.models import IssueSiteVisit, SiteVisitRequest
from repositories.base_repository import BaseRepository


class SiteVisitRequestRepository(BaseRepository[SiteVisitRequest]):
    model = SiteVisitRequest

    @classmethod
    async def find_pending_for_issue(
        cls, db: AsyncSession, issue_id: UUID, *, for_update: bool = False
    ) -> Optional[SiteVisitRequest]:
        stmt = select(SiteVisitRequest).where(
            SiteVisitRequest.issue_id == issue_id,
            SiteVisitRequest.status == SiteVisitRequestStatus.PENDING,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalars().first()

    @classmethod
    async def list_by_status(
        cls, db: AsyncSession, status: SiteVisitRequestStatus
    ) -> List[SiteVisitRequest]:
        stmt = (
            select(SiteVisitRequest)
            .where(SiteVisitRequest.status == status)
            .order_by(SiteVisitRequest.requested_at.asc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())


class SiteVisitRepository(BaseRepository[IssueSiteVisit]):
    model = IssueSiteVisit

    @classmethod
    async def find_scheduled_for_issue(
        cls, db: AsyncSession, issue_id: UUID, *, for_update: bool = False
    ) -> Optional[IssueSiteVisit]:
        stmt = select(IssueSiteVisit).where(
            IssueSiteVisit.issue_id == issue_id,
            IssueSiteVisit.status == VisitStatus.SCHEDULED,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalars().first()

    @classmethod
    async def list_by_status(cls, db: AsyncSession, status: VisitStatus) -> List[IssueSiteVisit]:
        stmt = (
            select(IssueSiteVisit)
            .where(IssueSiteVisit.status == status)
            .order_by(IssueSiteVisit.scheduled_date.asc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @classmethod
    async def list_upcoming_for_engineer(
        cls, db: AsyncSession, engineer_id: UUID, after: datetime
    ) -> List[IssueSiteVisit]:
        stmt = (
            select(IssueSiteVisit)
            .where(
                IssueSiteVisit.site_visitor_id == engineer_id,
                IssueSiteVisit.status == VisitStatus.SCHEDULED,
                IssueSiteVisit.scheduled_date >= after,
            )
            .order_by(IssueSiteVisit.scheduled_date.asc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())
