"""
Base schema model for operation payloads and results.

Field names are exposed in camelCase for API consumers, accepted in either
case on input, and datetimes (stored as naive UTC) are written with a 'Z'
suffix.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_serializer


def to_camel(string: str) -> str:
    """
    Convert snake_case to camelCase.

    Example:
        >>> to_camel("ticket_no")
        'ticketNo'
    """
    head, *rest = string.split("_")
    return head + "".join(word.capitalize() for word in rest)


def serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Render a datetime as ISO 8601 UTC with a 'Z' suffix."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat() + "Z"


class HTTPSchemaModel(BaseModel):
    """
    Base model for every schema in the project.

    - camelCase aliases, snake_case still accepted (populate_by_name)
    - builds from ORM rows (from_attributes)
    - datetimes serialized as UTC with a 'Z' suffix
    """

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_serializer("*", mode="wrap")
    @classmethod
    def serialize_any_datetime(cls, value: Any, handler: Any) -> Any:
        if isinstance(value, datetime):
            return serialize_datetime(value)
        return handler(value)
