"""
Per-session notification outbox.

Services queue push notifications while they mutate state; the operation
boundary hands the queue to the dispatcher only after the transaction has
committed, and drops it on rollback.
"""
import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from schemas.notification import PushNotification

logger = logging.getLogger(__name__)


class NotificationOutbox:
    """Notifications waiting on the current transaction of a session."""

    INFO_KEY = "pending_notifications"

    @classmethod
    def add(cls, db: AsyncSession, notification: PushNotification) -> None:
        db.info.setdefault(cls.INFO_KEY, []).append(notification)

    @classmethod
    def pending(cls, db: AsyncSession) -> List[PushNotification]:
        return list(db.info.get(cls.INFO_KEY, []))

    @classmethod
    def pop_all(cls, db: AsyncSession) -> List[PushNotification]:
        return db.info.pop(cls.INFO_KEY, [])

    @classmethod
    def discard(cls, db: AsyncSession) -> None:
        dropped = db.info.pop(cls.INFO_KEY, [])
        if dropped:
            logger.debug(f"Discarded {len(dropped)} queued notification(s) after rollback")
