"""
Push notification payload collected during an operation.
"""
from typing import Dict

from pydantic import Field

from core.schema_base import HTTPSchemaModel


class PushNotification(HTTPSchemaModel):
    """One message for one device token.

    ``data`` values are strings because push gateways only carry string maps.
    """

    recipient_id: str
    token: str
    title: str = Field(..., max_length=200)
    body: str
    data: Dict[str, str] = Field(default_factory=dict)

    def to_gateway_payload(self) -> dict:
        return {
            "token": self.token,
            "notification": {"title": self.title, "body": self.body},
            "data": self.data,
        }
