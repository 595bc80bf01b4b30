"""
Assignment Repository

Persistence for participant / judge assignments to rounds, plus the
capacity and availability queries the workflow uses for validation.

The (round, user, role) tuple is unique. The pre-insert check gives a
clean error; the unique constraint catches the concurrent case.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, and_, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.errors import DuplicateError
from eventhub.orm.event_round import EventRound
from eventhub.orm.round_assignment import (
    RoundAssignment, AssignmentRole, AssignmentStatus, SCORE_COMPONENTS
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("status", "score", "feedback", "judge_comments", "team_id") + SCORE_COMPONENTS


class AssignmentRepository:
    """Round assignment persistence bound to one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, assignment_id: int) -> Optional[RoundAssignment]:
        result = await self.db.execute(
            select(RoundAssignment).where(RoundAssignment.id == assignment_id)
        )
        return result.scalar_one_or_none()

    async def find_one(
        self,
        round_id: int,
        user_id: int,
        role: AssignmentRole
    ) -> Optional[RoundAssignment]:
        result = await self.db.execute(
            select(RoundAssignment).where(
                and_(
                    RoundAssignment.round_id == round_id,
                    RoundAssignment.user_id == user_id,
                    RoundAssignment.role == role,
                )
            )
        )
        return result.scalar_one_or_none()

    async def find_by_round_id(
        self,
        round_id: int,
        role: Optional[AssignmentRole] = None
    ) -> List[RoundAssignment]:
        query = select(RoundAssignment).where(RoundAssignment.round_id == round_id)
        if role is not None:
            query = query.where(RoundAssignment.role == role)
        query = query.order_by(RoundAssignment.role, RoundAssignment.user_id)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_by_user_and_event(self, user_id: int, event_id: int) -> List[RoundAssignment]:
        result = await self.db.execute(
            select(RoundAssignment)
            .join(EventRound, RoundAssignment.round_id == EventRound.id)
            .where(
                and_(
                    RoundAssignment.user_id == user_id,
                    EventRound.event_id == event_id,
                )
            )
            .order_by(EventRound.start_time)
        )
        return list(result.scalars().all())

    async def find_participants_by_subject(
        self,
        round_id: int,
        participant_id: Optional[int] = None,
        team_id: Optional[int] = None
    ) -> List[RoundAssignment]:
        """Participant rows of a round matched by user XOR team."""
        query = select(RoundAssignment).where(
            and_(
                RoundAssignment.round_id == round_id,
                RoundAssignment.role == AssignmentRole.PARTICIPANT,
            )
        )
        if participant_id is not None:
            query = query.where(RoundAssignment.user_id == participant_id)
        else:
            query = query.where(RoundAssignment.team_id == team_id)

        result = await self.db.execute(query.order_by(RoundAssignment.id))
        return list(result.scalars().all())

    async def count_by_role(self, round_id: int, role: AssignmentRole) -> int:
        result = await self.db.execute(
            select(func.count(RoundAssignment.id)).where(
                and_(
                    RoundAssignment.round_id == round_id,
                    RoundAssignment.role == role,
                )
            )
        )
        return result.scalar() or 0

    async def check_availability(
        self,
        user_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_round_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        The user's assignments on other rounds that strictly overlap
        [start_time, end_time]. Advisory only.
        """
        conditions = [
            RoundAssignment.user_id == user_id,
            EventRound.start_time < end_time,
            EventRound.end_time > start_time,
        ]
        if exclude_round_id is not None:
            conditions.append(EventRound.id != exclude_round_id)

        result = await self.db.execute(
            select(RoundAssignment, EventRound)
            .join(EventRound, RoundAssignment.round_id == EventRound.id)
            .where(and_(*conditions))
            .order_by(EventRound.start_time)
        )
        return [
            {
                "assignment_id": assignment.id,
                "round_id": round_obj.id,
                "round_name": round_obj.name,
                "event_id": round_obj.event_id,
                "role": assignment.role.value,
                "start_time": round_obj.start_time.isoformat(),
                "end_time": round_obj.end_time.isoformat(),
            }
            for assignment, round_obj in result.all()
        ]

    async def create(self, data: Dict[str, Any]) -> RoundAssignment:
        existing = await self.find_one(data["round_id"], data["user_id"], data["role"])
        if existing is not None:
            raise DuplicateError(
                "User is already assigned to this round with the same role",
                {"assignment_id": existing.id}
            )

        assignment = RoundAssignment(
            round_id=data["round_id"],
            user_id=data["user_id"],
            team_id=data.get("team_id"),
            role=data["role"],
            status=data.get("status") or AssignmentStatus.ASSIGNED,
        )
        self.db.add(assignment)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"[RACE] duplicate assignment round={data['round_id']} user={data['user_id']}: {e}")
            raise DuplicateError("User is already assigned to this round with the same role")
        return assignment

    async def update(self, assignment_id: int, patch: Dict[str, Any]) -> Optional[RoundAssignment]:
        assignment = await self.find_by_id(assignment_id)
        if assignment is None:
            return None
        for key, value in patch.items():
            if key in UPDATABLE_FIELDS:
                setattr(assignment, key, value)
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
            delete(RoundAssignment).where(RoundAssignment.round_id == round_id)
        )
        return result.rowcount or 0
