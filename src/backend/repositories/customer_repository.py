"""
Customer and Project repositories.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Customer, Project
from repositories.base_repository import BaseRepository


class CustomerRepository(BaseRepository[Customer]):
    model = Customer


class ProjectRepository(BaseRepository[Project]):
    model = Project

    @classmethod
    async def find_for_customer(
        cls, db: AsyncSession, project_id: int, customer_id: int
    ) -> Optional[Project]:
        """Find a project only if it belongs to the given customer."""
        stmt = select(Project).where(
            Project.id == project_id,
            Project.customer_id == customer_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()
