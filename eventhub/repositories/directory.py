"""
Lookups for records owned by other parts of the platform (events, users).
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.orm.event import Event
from eventhub.orm.user import User


class Directory:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_event(self, event_id: int) -> Optional[Event]:
        result = await self.db.execute(select(Event).where(Event.id == event_id))
        return result.scalar_one_or_none()

    async def get_user(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()
