"""
Judging Workflow Service

Orchestrates judge assignment, round assignment validation, score
submission, winner declaration and the round leaderboard.

Core Principles:
- Data access is injected: one AsyncSession per request, passed in
- Hard conflicts always raise; advisory conflicts raise only when the
  caller has not asked to override them
- Score submission is all-or-nothing (run_atomic)
- Winner declaration degrades and continues (run_best_effort)
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.config.settings import settings
from eventhub.errors import (
    ValidationError, NotFoundError, NotEligibleError, InvalidRoleError,
    InvalidEntryError, NotAssignedError, DuplicateError, CrossEventRoundError,
    CapacityExceededError, JudgeQuotaReachedError, SchedulingConflictError,
    RegistrationClosedError,
)
from eventhub.orm.event_round import EventRound, RoundStatus
from eventhub.orm.judge_assignment import JudgeAssignment, JudgeAssignmentStatus
from eventhub.orm.round_assignment import (
    RoundAssignment, AssignmentRole, AssignmentStatus, SCORE_COMPONENTS
)
from eventhub.orm.user import UserRole
from eventhub.repositories.assignment_repository import AssignmentRepository
from eventhub.repositories.directory import Directory
from eventhub.repositories.judge_assignment_repository import JudgeAssignmentRepository
from eventhub.repositories.round_repository import RoundRepository
from eventhub.services.execution import run_atomic, run_best_effort, commit_or_raise
from eventhub.services.leaderboard import rank_entries

logger = logging.getLogger(__name__)

SCORE_QUANTUM = Decimal("0.01")


def coerce_assignment_role(value: Any) -> AssignmentRole:
    try:
        return AssignmentRole(value)
    except ValueError:
        allowed = [r.value for r in AssignmentRole]
        raise ValidationError(
            f"Invalid role. Must be one of: {', '.join(allowed)}",
            details={"field": "role", "value": value, "allowed": allowed}
        )


def coerce_assignment_status(value: Any) -> AssignmentStatus:
    try:
        return AssignmentStatus(value)
    except ValueError:
        allowed = [s.value for s in AssignmentStatus]
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(allowed)}",
            details={"field": "status", "value": value, "allowed": allowed}
        )


def coerce_judge_status(value: Any) -> JudgeAssignmentStatus:
    try:
        return JudgeAssignmentStatus(value)
    except ValueError:
        allowed = [s.value for s in JudgeAssignmentStatus]
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(allowed)}",
            details={"field": "status", "value": value, "allowed": allowed}
        )


def to_score(value: Any, field_name: str) -> Decimal:
    """Parse a score into a Decimal inside the configured bounds."""
    try:
        score = Decimal(str(value))
    except (ArithmeticError, ValueError):
        raise ValidationError(f"{field_name} must be numeric", details={"field": field_name})
    if not score.is_finite():
        raise ValidationError(f"{field_name} must be numeric", details={"field": field_name})
    low, high = settings.MIN_COMPONENT_SCORE, settings.MAX_COMPONENT_SCORE
    if score < low or score > high:
        raise ValidationError(
            f"{field_name} must be between {low} and {high}",
            details={"field": field_name, "value": str(value)}
        )
    return score


def mean_of_components(components: Dict[str, Optional[Decimal]]) -> Optional[Decimal]:
    """Mean of the supplied components; missing ones count in neither sum nor count."""
    supplied = [v for v in components.values() if v is not None]
    if not supplied:
        return None
    return (sum(supplied) / Decimal(len(supplied))).quantize(SCORE_QUANTUM, rounding=ROUND_HALF_UP)


def validate_score_entry(entry: Dict[str, Any], index: int) -> Dict[str, Any]:
    """
    Check one score entry and return its parsed form.

    Exactly one of participant_id / team_id, at least one component.
    """
    participant_id = entry.get("participant_id")
    team_id = entry.get("team_id")
    if participant_id is None and team_id is None:
        raise InvalidEntryError("Each score entry must have either participant_id or team_id", index)
    if participant_id is not None and team_id is not None:
        raise InvalidEntryError("Score entry must not have both participant_id and team_id", index)

    components = {}
    for name in SCORE_COMPONENTS:
        raw = entry.get(name)
        components[name] = to_score(raw, name) if raw is not None else None
    if all(v is None for v in components.values()):
        raise InvalidEntryError("Each score entry must have at least one score component", index)

    return {
        "participant_id": participant_id,
        "team_id": team_id,
        "components": components,
        "score": mean_of_components(components),
        "judge_comments": entry.get("judge_comments"),
    }


class JudgingWorkflowService:
    """Round / judging workflow bound to one request's session."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.rounds = RoundRepository(db)
        self.assignments = AssignmentRepository(db)
        self.judge_assignments = JudgeAssignmentRepository(db)
        self.directory = Directory(db)

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get_round(self, round_id: int) -> EventRound:
        round_obj = await self.rounds.find_by_id(round_id)
        if round_obj is None:
            raise NotFoundError("Round", round_id)
        return round_obj

    async def get_assignment(self, assignment_id: int) -> RoundAssignment:
        assignment = await self.assignments.find_by_id(assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        return assignment

    async def get_judge_assignment(self, assignment_id: int) -> JudgeAssignment:
        assignment = await self.judge_assignments.find_by_id(assignment_id)
        if assignment is None:
            raise NotFoundError("Judge assignment", assignment_id)
        return assignment

    async def is_round_judge(self, round_id: int, user_id: int) -> bool:
        if await self.judge_assignments.find_for_round_and_judge(round_id, user_id):
            return True
        return await self.assignments.find_one(round_id, user_id, AssignmentRole.JUDGE) is not None

    # =========================================================================
    # Event / round judges
    # =========================================================================

    async def assign_judge(
        self,
        event_id: int,
        judge_id: int,
        round_id: Optional[int] = None
    ) -> JudgeAssignment:
        """Assign a judge to an event, or to one round of it."""
        event = await self.directory.get_event(event_id)
        if event is None:
            raise NotFoundError("Event", event_id)

        if round_id is not None:
            round_obj = await self.get_round(round_id)
            if round_obj.event_id != event.id:
                raise ValidationError(
                    "Round does not belong to the specified event",
                    details={"event_id": event_id, "round_id": round_id}
                )

        judge = await self.directory.get_user(judge_id)
        if judge is None:
            raise NotFoundError("Judge", judge_id)
        if judge.role != UserRole.judge:
            raise NotEligibleError(judge_id)

        assignment = await self.judge_assignments.create(event_id, judge_id, round_id)
        await self.db.commit()
        logger.info(f"[JUDGES] assigned judge={judge_id} event={event_id} round={round_id}")
        return assignment

    async def update_judge_assignment_status(self, assignment_id: int, status: Any) -> JudgeAssignment:
        new_status = coerce_judge_status(status)
        await self.get_judge_assignment(assignment_id)
        assignment = await self.judge_assignments.update_status(assignment_id, new_status)
        await self.db.commit()
        return assignment

    async def remove_judge_assignment(self, assignment_id: int) -> None:
        await self.get_judge_assignment(assignment_id)
        await self.judge_assignments.delete(assignment_id)
        await self.db.commit()

    async def list_event_judges(self, event_id: int) -> List[JudgeAssignment]:
        if await self.directory.get_event(event_id) is None:
            raise NotFoundError("Event", event_id)
        return await self.judge_assignments.find_by_event_id(event_id)

    async def list_round_judges(self, round_id: int) -> List[JudgeAssignment]:
        await self.get_round(round_id)
        return await self.judge_assignments.find_by_round_id(round_id)

    async def list_judge_assignments(self, judge_id: int) -> List[JudgeAssignment]:
        return await self.judge_assignments.find_by_judge_id(judge_id)

    # =========================================================================
    # Round assignments
    # =========================================================================

    async def create_round_assignment(
        self,
        round_id: int,
        user_id: int,
        role: Any,
        status: Any = None,
        team_id: Optional[int] = None,
        override_conflicts: bool = False
    ) -> RoundAssignment:
        """
        Attach a user to a round as participant or judge.

        Hard failures: unknown round/user, role mismatch, duplicate tuple,
        participant capacity. Advisory (raised unless override_conflicts):
        judge quota reached, scheduling conflicts with the user's other
        rounds.
        """
        role = coerce_assignment_role(role)
        status = coerce_assignment_status(status) if status is not None else AssignmentStatus.ASSIGNED

        round_obj = await self.get_round(round_id)
        user = await self.directory.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        if role == AssignmentRole.JUDGE and user.role != UserRole.judge:
            raise InvalidRoleError(details={"user_id": user_id, "user_role": user.role.value})

        if await self.assignments.find_one(round_id, user_id, role) is not None:
            raise DuplicateError(
                "User is already assigned to this round with the same role",
                {"round_id": round_id, "user_id": user_id, "role": role.value}
            )

        if role == AssignmentRole.PARTICIPANT and round_obj.max_participants:
            count = await self.assignments.count_by_role(round_id, AssignmentRole.PARTICIPANT)
            if count >= round_obj.max_participants:
                raise CapacityExceededError(round_id, round_obj.max_participants)

        if role == AssignmentRole.JUDGE and round_obj.judges_required and not override_conflicts:
            count = await self.assignments.count_by_role(round_id, AssignmentRole.JUDGE)
            if count >= round_obj.judges_required:
                raise JudgeQuotaReachedError(round_id, round_obj.judges_required)

        conflicts = await self.assignments.check_availability(
            user_id, round_obj.start_time, round_obj.end_time, exclude_round_id=round_id
        )
        if conflicts:
            if not override_conflicts:
                raise SchedulingConflictError(user_id, conflicts)
            logger.info(
                f"[ASSIGNMENTS] overriding {len(conflicts)} scheduling conflict(s) "
                f"for user={user_id} round={round_id}"
            )

        assignment = await self.assignments.create({
            "round_id": round_id,
            "user_id": user_id,
            "team_id": team_id,
            "role": role,
            "status": status,
        })
        await self.db.commit()
        logger.info(f"[ASSIGNMENTS] user={user_id} -> round={round_id} as {role.value}")
        return assignment

    async def register_participant(
        self,
        round_id: int,
        user_id: int,
        team_id: Optional[int] = None,
        override_conflicts: bool = False
    ) -> RoundAssignment:
        """
        Self-registration of a participant. Open only while the round is
        upcoming; capacity, duplicate and scheduling checks are the same as
        for an organizer-made assignment.
        """
        round_obj = await self.get_round(round_id)
        if round_obj.status != RoundStatus.UPCOMING:
            raise RegistrationClosedError(round_id, round_obj.status.value)

        return await self.create_round_assignment(
            round_id,
            user_id,
            AssignmentRole.PARTICIPANT,
            team_id=team_id,
            override_conflicts=override_conflicts,
        )

    async def update_assignment(self, assignment_id: int, patch: Dict[str, Any]) -> RoundAssignment:
        """Update status, score or feedback of an assignment."""
        assignment = await self.get_assignment(assignment_id)
        values: Dict[str, Any] = {}

        if patch.get("status") is not None:
            values["status"] = coerce_assignment_status(patch["status"])

        if assignment.role == AssignmentRole.PARTICIPANT:
            if patch.get("score") is not None:
                values["score"] = to_score(patch["score"], "score")
            if patch.get("feedback") is not None:
                values["feedback"] = patch["feedback"]

        if not values:
            raise ValidationError("No valid fields to update")

        updated = await self.assignments.update(assignment_id, values)
        await self.db.commit()
        return updated

    async def remove_assignment(self, assignment_id: int) -> None:
        await self.get_assignment(assignment_id)
        await self.assignments.delete(assignment_id)
        await self.db.commit()

    async def list_round_assignments(self, round_id: int, role: Any = None) -> List[RoundAssignment]:
        await self.get_round(round_id)
        role_filter = coerce_assignment_role(role) if role else None
        return await self.assignments.find_by_round_id(round_id, role_filter)

    async def list_user_event_assignments(self, user_id: int, event_id: int) -> List[RoundAssignment]:
        return await self.assignments.find_by_user_and_event(user_id, event_id)

    # =========================================================================
    # Scores
    # =========================================================================

    async def submit_scores(
        self,
        round_id: int,
        judge_id: int,
        entries: Sequence[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """
        Write a judge's scores onto the round's participant records.

        Every entry is validated before anything is written. The writes and
        the final status change run in one transaction: if any entry fails
        (for instance it matches no participant) nothing is persisted.
        """
        await self.get_round(round_id)

        judge_rows = await self.judge_assignments.find_for_round_and_judge(round_id, judge_id)
        round_judge = await self.assignments.find_one(round_id, judge_id, AssignmentRole.JUDGE)
        if not judge_rows and round_judge is None:
            raise NotAssignedError(round_id, judge_id)

        if not entries:
            raise ValidationError("Scores must be provided as a non-empty array")
        parsed = [validate_score_entry(entry, i) for i, entry in enumerate(entries)]

        async def write_all() -> int:
            written = 0
            for index, entry in enumerate(parsed):
                rows = await self.assignments.find_participants_by_subject(
                    round_id,
                    participant_id=entry["participant_id"],
                    team_id=entry["team_id"],
                )
                if not rows:
                    subject = (
                        f"participant {entry['participant_id']}"
                        if entry["participant_id"] is not None
                        else f"team {entry['team_id']}"
                    )
                    raise NotFoundError(f"Round participant for {subject}")

                for row in rows:
                    row.score = entry["score"]
                    for name, value in entry["components"].items():
                        setattr(row, name, value)
                    row.judge_comments = entry["judge_comments"]
                    written += 1
                await self.db.flush()

            for judge_row in judge_rows:
                judge_row.status = JudgeAssignmentStatus.COMPLETED
            if round_judge is not None:
                round_judge.status = AssignmentStatus.COMPLETED
            await self.db.flush()
            return written

        written = await run_atomic(self.db, write_all, "SCORES")
        logger.info(f"[SCORES] judge={judge_id} round={round_id} entries={len(parsed)} rows={written}")
        return {
            "round_id": round_id,
            "judge_id": judge_id,
            "entries": len(parsed),
            "rows_updated": written,
        }

    # =========================================================================
    # Winners
    # =========================================================================

    async def declare_winners(
        self,
        round_id: int,
        winner_ids: Sequence[int],
        next_round_id: Optional[int] = None,
        override_conflicts: bool = False
    ) -> Dict[str, Any]:
        """
        Mark winners advanced and everyone else eliminated, then optionally
        register the winners in the next round of the same event.

        Status updates are best-effort: each id is written in its own
        savepoint, so a failing id (unknown, or rejected by the data store)
        is logged and reported and the rest of the batch still commits.
        """
        round_obj = await self.get_round(round_id)

        next_round = None
        if next_round_id is not None:
            next_round = await self.rounds.find_by_id(next_round_id)
            if next_round is None:
                raise NotFoundError("Next round", next_round_id)
            if next_round.event_id != round_obj.event_id:
                raise CrossEventRoundError(next_round_id, round_obj.event_id, next_round.event_id)

        # dict.fromkeys keeps order and drops repeats
        winners = list(dict.fromkeys(winner_ids))
        winner_set = set(winners)

        async def mark_advanced(user_id: int) -> None:
            await self._set_participant_status(round_id, user_id, AssignmentStatus.ADVANCED)

        async def mark_eliminated(user_id: int) -> None:
            await self._set_participant_status(round_id, user_id, AssignmentStatus.ELIMINATED)

        advanced = await run_best_effort(winners, mark_advanced, "WINNERS", db=self.db)

        participants = await self.assignments.find_by_round_id(round_id, AssignmentRole.PARTICIPANT)
        # read before the elimination pass; a rolled back savepoint expires its row
        teams = {p.user_id: p.team_id for p in participants}
        losers = [
            p.user_id for p in participants
            if p.user_id not in winner_set and p.status != AssignmentStatus.ADVANCED
        ]
        eliminated = await run_best_effort(losers, mark_eliminated, "WINNERS", db=self.db)
        await commit_or_raise(self.db, "WINNERS")

        registered: List[int] = []
        registration_failures: List[Dict[str, Any]] = []
        if next_round is not None:

            async def register(user_id: int) -> None:
                await self.create_round_assignment(
                    next_round_id,
                    user_id,
                    AssignmentRole.PARTICIPANT,
                    team_id=teams.get(user_id),
                    override_conflicts=override_conflicts,
                )

            outcome = await run_best_effort(advanced.succeeded, register, "ADVANCEMENT")
            registered = outcome.succeeded
            registration_failures = outcome.failed

        logger.info(
            f"[WINNERS] round={round_id} advanced={len(advanced.succeeded)} "
            f"eliminated={len(eliminated.succeeded)} next_round={next_round_id} "
            f"registered={len(registered)}"
        )
        return {
            "round_id": round_id,
            "winners": advanced.succeeded,
            "eliminated": eliminated.succeeded,
            "failures": advanced.failed + eliminated.failed,
            "next_round_id": next_round_id,
            "advancement_occurred": bool(registered),
            "registered": registered,
            "registration_failures": registration_failures,
        }

    async def _set_participant_status(self, round_id: int, user_id: int, status: AssignmentStatus) -> None:
        participant = await self.assignments.find_one(round_id, user_id, AssignmentRole.PARTICIPANT)
        if participant is None:
            raise NotFoundError(f"Participant {user_id} in round {round_id}")
        participant.status = status

    # =========================================================================
    # Leaderboard
    # =========================================================================

    async def get_leaderboard(self, round_id: int) -> Dict[str, Any]:
        round_obj = await self.get_round(round_id)
        participants = await self.assignments.find_by_round_id(round_id, AssignmentRole.PARTICIPANT)
        entries = rank_entries([p.to_dict() for p in participants])
        return {
            "round_id": round_id,
            "round_name": round_obj.name,
            "total_participants": len(entries),
            "leaderboard": entries,
        }
