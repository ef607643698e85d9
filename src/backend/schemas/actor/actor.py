"""
Actor value passed into every lifecycle operation.

Authentication happens outside this service; callers hand in who is acting
and the operation boundary checks the kind once before touching the store.
"""
from typing import Optional, Union
from uuid import UUID

from pydantic import ConfigDict

from core.schema_base import HTTPSchemaModel, to_camel
from db.enums import ActorKind


class Actor(HTTPSchemaModel):
    """Who is invoking an operation.

    Customers are identified by their integer id, staff by their UUID.
    ``department`` is informational; department rules are always checked
    against the persisted employee.
    """

    model_config = ConfigDict(
        frozen=True,
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    kind: ActorKind
    id: Union[int, UUID]
    department: Optional[str] = None

    @classmethod
    def customer(cls, customer_id: int) -> "Actor":
        return cls(kind=ActorKind.CUSTOMER, id=customer_id)

    @classmethod
    def head(cls, employee_id: UUID, department: Optional[str] = None) -> "Actor":
        return cls(kind=ActorKind.HEAD, id=employee_id, department=department)

    @classmethod
    def manager(cls, employee_id: UUID) -> "Actor":
        return cls(kind=ActorKind.MANAGER, id=employee_id)

    @classmethod
    def service_engineer(cls, employee_id: UUID) -> "Actor":
        return cls(kind=ActorKind.SERVICE_ENGINEER, id=employee_id)

    @property
    def performer_id(self) -> str:
        """Identifier recorded on timeline entries."""
        return str(self.id)
