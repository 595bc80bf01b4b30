"""
Shared fixtures: an in-memory SQLite database per test and small factories
for users, events and rounds.
"""
from datetime import datetime
from typing import AsyncGenerator

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from eventhub.orm.base import Base
from eventhub.orm.event import Event
from eventhub.orm.event_round import EventRound, RoundType
from eventhub.orm.round_assignment import RoundAssignment, AssignmentRole, AssignmentStatus
from eventhub.orm.user import User, UserRole

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

EVENT_START = datetime(2026, 3, 1, 8, 0)
EVENT_END = datetime(2026, 3, 3, 20, 0)


def at(hour: int, day: int = 1, minute: int = 0) -> datetime:
    """A timestamp inside the test event window (March 2026)."""
    return datetime(2026, 3, day, hour, minute)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Factories
# =============================================================================

class Factory:
    """Inserts rows directly, bypassing the services under test."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._counter = 0

    async def user(self, role: UserRole = UserRole.participant, name: str = None) -> User:
        self._counter += 1
        user = User(
            name=name or f"{role.value} {self._counter}",
            email=f"{role.value}{self._counter}@example.com",
            role=role,
        )
        self.db.add(user)
        await self.db.commit()
        return user

    async def users(self, count: int, role: UserRole = UserRole.participant):
        return [await self.user(role) for _ in range(count)]

    async def event(self, organizer: User = None, start=EVENT_START, end=EVENT_END, category=None) -> Event:
        if organizer is None:
            organizer = await self.user(UserRole.organizer)
        event = Event(
            organizer_id=organizer.id,
            title="Spring Hackathon",
            start_date=start,
            end_date=end,
            location="Main Hall",
            category=category,
        )
        self.db.add(event)
        await self.db.commit()
        return event

    async def round(self, event: Event, start: datetime, end: datetime, **kwargs) -> EventRound:
        self._counter += 1
        values = {
            "name": f"Round {self._counter}",
            "round_type": RoundType.PRELIMINARY,
            "judges_required": 1,
        }
        values.update(kwargs)
        round_obj = EventRound(event_id=event.id, start_time=start, end_time=end, **values)
        self.db.add(round_obj)
        await self.db.commit()
        return round_obj

    async def assignment(
        self,
        round_obj: EventRound,
        user: User,
        role: AssignmentRole = AssignmentRole.PARTICIPANT,
        **kwargs
    ) -> RoundAssignment:
        assignment = RoundAssignment(
            round_id=round_obj.id,
            user_id=user.id,
            role=role,
            status=kwargs.pop("status", AssignmentStatus.ASSIGNED),
            **kwargs
        )
        self.db.add(assignment)
        await self.db.commit()
        return assignment


@pytest_asyncio.fixture
async def factory(db) -> Factory:
    return Factory(db)


@pytest_asyncio.fixture
async def event(factory) -> Event:
    return await factory.event()
