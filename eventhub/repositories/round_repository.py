"""
Round Repository

Persistence and conflict-detection queries for the rounds of an event.

Conflicts are reported as a typed result rather than raised: the caller
decides how to surface them. Two intervals [s1, e1] and [s2, e2] conflict
iff s1 < e2 AND s2 < e1, so back-to-back rounds sharing a boundary
timestamp do not conflict. The check is event-wide; location is not
considered.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.orm.event import Event
from eventhub.orm.event_round import EventRound, RoundStatus

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "name", "round_type", "description", "start_time", "end_time",
    "location", "judges_required", "max_participants", "status",
)


@dataclass
class RoundWriteResult:
    """Outcome of a round create/update: either the round or its conflicts."""
    round: Optional[EventRound] = None
    conflicts: List[EventRound] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.round is not None and not self.conflicts

    def conflicts_as_dicts(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": r.id,
                "name": r.name,
                "type": r.round_type.value if r.round_type else None,
                "start_time": r.start_time.isoformat(),
                "end_time": r.end_time.isoformat(),
                "location": r.location,
            }
            for r in self.conflicts
        ]


class RoundRepository:
    """Round persistence bound to one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, round_id: int) -> Optional[EventRound]:
        result = await self.db.execute(
            select(EventRound).where(EventRound.id == round_id)
        )
        return result.scalar_one_or_none()

    async def find_by_event_id(self, event_id: int) -> List[EventRound]:
        result = await self.db.execute(
            select(EventRound)
            .where(EventRound.event_id == event_id)
            .order_by(EventRound.start_time.asc(), EventRound.id.asc())
        )
        return list(result.scalars().all())

    async def find_upcoming(
        self,
        now: datetime,
        category: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 10,
        offset: int = 0
    ) -> List[Tuple[EventRound, Event]]:
        """
        Upcoming rounds that have not started yet, soonest first, paired
        with their event.

        ``start_date`` / ``end_date`` bound the round's own interval;
        ``category`` matches the event's category.
        """
        conditions = [
            EventRound.status == RoundStatus.UPCOMING,
            EventRound.start_time >= now,
        ]
        if category:
            conditions.append(Event.category == category)
        if start_date is not None:
            conditions.append(EventRound.start_time >= start_date)
        if end_date is not None:
            conditions.append(EventRound.end_time <= end_date)

        result = await self.db.execute(
            select(EventRound, Event)
            .join(Event, EventRound.event_id == Event.id)
            .where(and_(*conditions))
            .order_by(EventRound.start_time.asc(), EventRound.id.asc())
            .limit(limit)
            .offset(offset)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def find_conflicts(
        self,
        event_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_round_id: Optional[int] = None
    ) -> List[EventRound]:
        """Rounds of the event whose interval strictly overlaps [start, end]."""
        conditions = [
            EventRound.event_id == event_id,
            EventRound.start_time < end_time,
            EventRound.end_time > start_time,
        ]
        if exclude_round_id is not None:
            conditions.append(EventRound.id != exclude_round_id)

        result = await self.db.execute(
            select(EventRound)
            .where(and_(*conditions))
            .order_by(EventRound.start_time.asc())
        )
        return list(result.scalars().all())

    async def create(self, data: Dict[str, Any]) -> RoundWriteResult:
        """
        Persist a new round unless it conflicts.

        Event existence and date bounds are validated upstream.
        """
        conflicts = await self.find_conflicts(
            data["event_id"], data["start_time"], data["end_time"]
        )
        if conflicts:
            logger.info(
                f"[ROUNDS] create rejected for event={data['event_id']}: "
                f"{len(conflicts)} conflicting round(s)"
            )
            return RoundWriteResult(conflicts=conflicts)

        round_obj = EventRound(**data)
        self.db.add(round_obj)
        await self.db.flush()
        return RoundWriteResult(round=round_obj)

    async def update(self, round_id: int, patch: Dict[str, Any]) -> RoundWriteResult:
        """Apply a patch, re-checking conflicts against every other round."""
        round_obj = await self.find_by_id(round_id)
        if round_obj is None:
            return RoundWriteResult()

        start_time = patch.get("start_time", round_obj.start_time)
        end_time = patch.get("end_time", round_obj.end_time)

        conflicts = await self.find_conflicts(
            round_obj.event_id, start_time, end_time, exclude_round_id=round_id
        )
        if conflicts:
            logger.info(
                f"[ROUNDS] update rejected for round={round_id}: "
                f"{len(conflicts)} conflicting round(s)"
            )
            return RoundWriteResult(conflicts=conflicts)

        for key, value in patch.items():
            if key in UPDATABLE_FIELDS:
                setattr(round_obj, key, value)
        await self.db.flush()
        return RoundWriteResult(round=round_obj)

    async def delete(self, round_id: int) -> bool:
        """Hard delete. Dependent assignments are the caller's responsibility."""
        round_obj = await self.find_by_id(round_id)
        if round_obj is None:
            return False
        await self.db.delete(round_obj)
        await self.db.flush()
        return True
