"""
Employee repository: staff lookups and service engineer workload counters.
"""
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.enums import EmployeeRole
from db.models import Employee
from repositories.base_repository import BaseRepository


class EmployeeRepository(BaseRepository[Employee]):
    """Repository for Employee database operations."""

    model = Employee

    @classmethod
    async def find_active_by_role(
        cls,
        db: AsyncSession,
        role: EmployeeRole,
        *,
        department: Optional[str] = None,
    ) -> List[Employee]:
        """Active employees with a role, optionally limited to one department.

        Departments compare trimmed and case-insensitively.
        """
        stmt = select(Employee).where(
            Employee.role == role,
            Employee.is_active == True,  # noqa: E712
        )
        if department is not None:
            stmt = stmt.where(
                func.upper(func.trim(Employee.department)) == department.strip().upper()
            )

        result = await db.execute(stmt.order_by(Employee.name))
        return list(result.scalars().all())

    @classmethod
    async def list_service_engineers(cls, db: AsyncSession) -> List[Employee]:
        """Active service engineers, least loaded first."""
        stmt = (
            select(Employee)
            .where(
                Employee.role == EmployeeRole.SERVICE_ENGINEER,
                Employee.is_active == True,  # noqa: E712
            )
            .order_by(Employee.pending_visits.asc(), Employee.name.asc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @classmethod
    async def adjust_visit_counters(
        cls,
        db: AsyncSession,
        engineer_id: UUID,
        *,
        pending_delta: int = 0,
        completed_delta: int = 0,
    ) -> None:
        """
        Shift an engineer's visit counters relative to their stored values.

        The arithmetic runs in SQL so concurrent visit transitions on the same
        engineer cannot lose an update.
        """
        stmt = (
            update(Employee)
            .where(Employee.id == engineer_id)
            .values(
                pending_visits=Employee.pending_visits + pending_delta,
                completed_visits=Employee.completed_visits + completed_delta,
            )
            .execution_options(synchronize_session="evaluate")
        )
        await db.execute(stmt)

    @classmethod
    async def find_by_ids(cls, db: AsyncSession, employee_ids: Iterable[UUID]) -> Dict[UUID, Employee]:
        ids = list(set(employee_ids))
        if not ids:
            return {}
        result = await db.execute(select(Employee).where(Employee.id.in_(ids)))
        return {employee.id: employee for employee in result.scalars().all()}
