"""
Push notifications for lifecycle events.

Services call ``NotificationService.notify`` inside their transaction; it
resolves device tokens and queues messages in the session outbox. After the
transaction commits the operation boundary hands the queue to
``NotificationDispatcher``, which delivers in background tasks. A failed
delivery is logged and never reaches the caller.
"""
import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.decorators import lifecycle_operation
from core.exceptions import InvalidStateError
from core.logging_config import LifecycleLogger
from core.outbox import NotificationOutbox
from db.enums import ActorKind
from repositories.device_token_repository import DeviceTokenRepository
from schemas.actor import Actor
from schemas.notification import PushNotification

logger = logging.getLogger(__name__)
lifecycle_logger = LifecycleLogger("notifications")

OPEN_TICKET_DETAIL_PAGE = "OPEN_TICKET_DETAIL_PAGE"


class PushNotificationService:
    """HTTP client for the push gateway."""

    _client: Optional[httpx.AsyncClient] = None

    @classmethod
    async def get_client(cls) -> httpx.AsyncClient:
        """Get or create the pooled async HTTP client."""
        if cls._client is None or cls._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if settings.push.server_key:
                headers["Authorization"] = f"Bearer {settings.push.server_key}"
            cls._client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.push.timeout_seconds),
                headers=headers,
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
            )
        return cls._client

    @classmethod
    async def close(cls) -> None:
        """Close pooled connections (call during shutdown)."""
        if cls._client is not None and not cls._client.is_closed:
            await cls._client.aclose()
        cls._client = None

    @classmethod
    async def send(cls, notification: PushNotification) -> None:
        """
        Post one notification to the gateway.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response
        """
        client = await cls.get_client()
        response = await client.post(
            settings.push.gateway_url, json=notification.to_gateway_payload()
        )
        response.raise_for_status()
        logger.debug(
            f"Push delivered | Recipient: {notification.recipient_id} | "
            f"Title: {notification.title}"
        )


class NotificationDispatcher:
    """Fire-and-forget delivery of committed notifications."""

    _tasks: Set[asyncio.Task] = set()

    @classmethod
    def dispatch(cls, notifications: List[PushNotification]) -> None:
        """Schedule delivery without waiting for it."""
        if not settings.push.enabled:
            logger.debug(f"Push disabled, dropping {len(notifications)} notification(s)")
            return

        task = asyncio.create_task(cls._deliver_all(list(notifications)))
        cls._tasks.add(task)
        task.add_done_callback(cls._tasks.discard)

    @classmethod
    async def _deliver_all(cls, notifications: List[PushNotification]) -> None:
        for notification in notifications:
            try:
                await PushNotificationService.send(notification)
            except httpx.HTTPError as exc:
                lifecycle_logger.notification_failed(
                    notification.recipient_id, notification.title, str(exc)
                )
            except Exception as exc:
                lifecycle_logger.notification_failed(
                    notification.recipient_id,
                    notification.title,
                    f"{type(exc).__name__}: {exc}",
                )

    @classmethod
    async def drain(cls) -> None:
        """Wait for every in-flight delivery (shutdown and tests)."""
        pending = list(cls._tasks)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


class NotificationService:
    """Queue notifications for the current transaction."""

    @staticmethod
    async def notify(
        db: AsyncSession,
        recipient_ids: Iterable[object],
        title: str,
        body: str,
        data: Optional[Dict[str, str]] = None,
    ) -> int:
        """
        Queue one notification per recipient that has a registered device.

        Args:
            db: Session whose commit releases the notifications
            recipient_ids: Customer or employee ids (stringified for lookup)
            title: Notification title
            body: Notification body
            data: Extra string payload for the client app

        Returns:
            Number of notifications queued
        """
        ids = [str(recipient_id) for recipient_id in recipient_ids if recipient_id is not None]
        tokens = await DeviceTokenRepository.tokens_for(db, ids)

        queued = 0
        for recipient_id in dict.fromkeys(ids):
            token = tokens.get(recipient_id)
            if not token:
                logger.debug(f"No device token for {recipient_id}, skipping '{title}'")
                continue
            NotificationOutbox.add(
                db,
                PushNotification(
                    recipient_id=recipient_id,
                    token=token,
                    title=title,
                    body=body,
                    data=data or {},
                ),
            )
            queued += 1
        return queued

    @staticmethod
    def ticket_payload(issue_id: object, ticket_no: str) -> Dict[str, str]:
        """Data payload that opens the ticket detail page in the mobile app."""
        return {
            "action": OPEN_TICKET_DETAIL_PAGE,
            "issueId": str(issue_id),
            "ticketNo": ticket_no,
        }

    @staticmethod
    @lifecycle_operation(
        "register_device_token",
        allowed_actors=(
            ActorKind.CUSTOMER,
            ActorKind.HEAD,
            ActorKind.MANAGER,
            ActorKind.SERVICE_ENGINEER,
        ),
    )
    async def register_device_token(db: AsyncSession, actor: Actor, token: str):
        """Store or replace the push token for the acting user."""
        token = token.strip()
        if not token:
            raise InvalidStateError("Device token must not be empty")

        device = await DeviceTokenRepository.upsert(db, actor.performer_id, token)
        logger.info(f"Device token registered for {actor.kind.value} {actor.performer_id}")
        return device
