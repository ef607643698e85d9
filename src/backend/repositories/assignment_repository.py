"""
Repository for issue-to-head assignments.
"""
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import IssueAssignedDepartment
from repositories.base_repository import BaseRepository


class AssignmentRepository(BaseRepository[IssueAssignedDepartment]):
    model = IssueAssignedDepartment

    @classmethod
    async def find_active(
        cls,
        db: AsyncSession,
        issue_id: UUID,
        *,
        for_update: bool = False,
    ) -> Optional[IssueAssignedDepartment]:
        """The single active assignment of an issue, if any."""
        stmt = select(IssueAssignedDepartment).where(
            IssueAssignedDepartment.issue_id == issue_id,
            IssueAssignedDepartment.is_active == True,  # noqa: E712
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)

        result = await db.execute(stmt)
        return result.scalars().first()

    @classmethod
    async def was_ever_assigned(
        cls, db: AsyncSession, issue_id: UUID, employee_id: UUID
    ) -> bool:
        stmt = (
            select(IssueAssignedDepartment.id)
            .where(
                IssueAssignedDepartment.issue_id == issue_id,
                IssueAssignedDepartment.employee_id == employee_id,
            )
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    @classmethod
    async def issue_ids_for_employee(cls, db: AsyncSession, employee_id: UUID) -> List[UUID]:
        stmt = (
            select(IssueAssignedDepartment.issue_id)
            .where(IssueAssignedDepartment.employee_id == employee_id)
            .distinct()
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @classmethod
    async def latest_by_issue(
        cls, db: AsyncSession, issue_ids: List[UUID]
    ) -> Dict[UUID, IssueAssignedDepartment]:
        """Most recent assignment per issue, keyed by issue id."""
        if not issue_ids:
            return {}
        stmt = (
            select(IssueAssignedDepartment)
            .where(IssueAssignedDepartment.issue_id.in_(issue_ids))
            .order_by(IssueAssignedDepartment.assigned_at.asc(), IssueAssignedDepartment.id.asc())
        )
        result = await db.execute(stmt)
        latest: Dict[UUID, IssueAssignedDepartment] = {}
        for assignment in result.scalars().all():
            latest[assignment.issue_id] = assignment
        return latest
