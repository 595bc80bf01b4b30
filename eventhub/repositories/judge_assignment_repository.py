"""
Judge Assignment Repository

Event-scoped judge assignments. A NULL round marks an event-wide judge.
"""
import logging
from typing import List, Optional

from sqlalchemy import select, and_, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.errors import DuplicateError
from eventhub.orm.event_round import EventRound
from eventhub.orm.judge_assignment import JudgeAssignment, JudgeAssignmentStatus

logger = logging.getLogger(__name__)


def _round_clause(round_id: Optional[int]):
    if round_id is None:
        return JudgeAssignment.round_id.is_(None)
    return JudgeAssignment.round_id == round_id


class JudgeAssignmentRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, assignment_id: int) -> Optional[JudgeAssignment]:
        result = await self.db.execute(
            select(JudgeAssignment).where(JudgeAssignment.id == assignment_id)
        )
        return result.scalar_one_or_none()

    async def exists(self, event_id: int, round_id: Optional[int], judge_id: int) -> bool:
        result = await self.db.execute(
            select(JudgeAssignment.id).where(
                and_(
                    JudgeAssignment.event_id == event_id,
                    JudgeAssignment.judge_id == judge_id,
                    _round_clause(round_id),
                )
            )
        )
        return result.first() is not None

    async def find_for_round_and_judge(self, round_id: int, judge_id: int) -> List[JudgeAssignment]:
        result = await self.db.execute(
            select(JudgeAssignment).where(
                and_(
                    JudgeAssignment.round_id == round_id,
                    JudgeAssignment.judge_id == judge_id,
                )
            )
        )
        return list(result.scalars().all())

    async def find_by_event_id(self, event_id: int) -> List[JudgeAssignment]:
        result = await self.db.execute(
            select(JudgeAssignment)
            .where(JudgeAssignment.event_id == event_id)
            .order_by(JudgeAssignment.round_id, JudgeAssignment.assigned_at, JudgeAssignment.id)
        )
        return list(result.scalars().all())

    async def find_by_round_id(self, round_id: int) -> List[JudgeAssignment]:
        result = await self.db.execute(
            select(JudgeAssignment)
            .where(JudgeAssignment.round_id == round_id)
            .order_by(JudgeAssignment.assigned_at, JudgeAssignment.id)
        )
        return list(result.scalars().all())

    async def find_by_judge_id(self, judge_id: int) -> List[JudgeAssignment]:
        # Round-scoped assignments first in schedule order, event-wide ones last
        result = await self.db.execute(
            select(JudgeAssignment)
            .outerjoin(EventRound, JudgeAssignment.round_id == EventRound.id)
            .where(JudgeAssignment.judge_id == judge_id)
            .order_by(
                EventRound.start_time.is_(None),
                EventRound.start_time,
                JudgeAssignment.id,
            )
        )
        return list(result.scalars().all())

    async def create(self, event_id: int, judge_id: int, round_id: Optional[int] = None) -> JudgeAssignment:
        if await self.exists(event_id, round_id, judge_id):
            raise DuplicateError(
                "Judge is already assigned to this event/round",
                {"event_id": event_id, "round_id": round_id, "judge_id": judge_id}
            )

        assignment = JudgeAssignment(
            event_id=event_id,
            round_id=round_id,
            judge_id=judge_id,
            status=JudgeAssignmentStatus.PENDING,
        )
        self.db.add(assignment)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"[RACE] duplicate judge assignment event={event_id} judge={judge_id}: {e}")
            raise DuplicateError("Judge is already assigned to this event/round")
        return assignment

    async def update_status(
        self,
        assignment_id: int,
        status: JudgeAssignmentStatus
    ) -> Optional[JudgeAssignment]:
        assignment = await self.find_by_id(assignment_id)
        if assignment is None:
            return None
        assignment.status = status
        await self.db.flush()
        return assignment

    async def delete(self, assignment_id: int) -> bool:
        assignment = await self.find_by_id(assignment_id)
        if assignment is None:
            return False
        await self.db.delete(assignment)
        await self.db.flush()
        return True

    async def delete_by_round(self, round_id: int) -> int:
        result = await self.db.execute(
            delete(JudgeAssignment).where(JudgeAssignment.round_id == round_id)
        )
        return result.rowcount or 0
