"""
Device token repository for push recipients.
"""
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import DeviceToken, utc_now
from repositories.base_repository import BaseRepository


class DeviceTokenRepository(BaseRepository[DeviceToken]):
    model = DeviceToken

    @classmethod
    async def find_by_user(cls, db: AsyncSession, user_id: str) -> Optional[DeviceToken]:
        result = await db.execute(select(DeviceToken).where(DeviceToken.user_id == user_id))
        return result.scalar_one_or_none()

    @classmethod
    async def tokens_for(cls, db: AsyncSession, user_ids: Iterable[str]) -> Dict[str, str]:
        """Map user id to push token for every user that registered one."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        result = await db.execute(
            select(DeviceToken.user_id, DeviceToken.token).where(DeviceToken.user_id.in_(ids))
        )
        return {user_id: token for user_id, token in result.all()}

    @classmethod
    async def upsert(cls, db: AsyncSession, user_id: str, token: str) -> DeviceToken:
        existing = await cls.find_by_user(db, user_id)
        if existing:
            existing.token = token
            existing.updated_at = utc_now()
            await db.flush()
            return existing
        return await cls.create(db, obj_in={"user_id": user_id, "token": token})
