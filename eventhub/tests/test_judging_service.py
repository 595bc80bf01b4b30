"""
Judging workflow tests

Coverage:
- Judge eligibility (NotEligible / InvalidRole leave no record behind)
- Participant capacity (hard) vs judge quota and double booking (advisory)
- Participant self-registration while a round is upcoming
- Score submission: aggregation, subject matching, all-or-nothing writes
- Winner declaration: best-effort status updates, advancement to the next
  round of the same event
"""
from decimal import Decimal

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError

from eventhub.errors import (
    CapacityExceededError, CrossEventRoundError, DuplicateError, InvalidEntryError,
    InvalidRoleError, JudgeQuotaReachedError, NotAssignedError, NotEligibleError,
    NotFoundError, RegistrationClosedError, SchedulingConflictError, UnexpectedError,
    ValidationError,
)
from eventhub.orm.event_round import RoundStatus
from eventhub.orm.judge_assignment import JudgeAssignment, JudgeAssignmentStatus
from eventhub.orm.round_assignment import RoundAssignment, AssignmentRole, AssignmentStatus
from eventhub.orm.user import UserRole
from eventhub.repositories.assignment_repository import AssignmentRepository
from eventhub.services.judging_service import JudgingWorkflowService, mean_of_components
from eventhub.tests.conftest import at


async def count_rows(db, model) -> int:
    result = await db.execute(select(func.count(model.id)))
    return result.scalar()


async def lock_status_of(db, user_id: int) -> None:
    """Make the data store reject any status change on one user's assignment rows."""
    await db.execute(text(
        "CREATE TRIGGER lock_status BEFORE UPDATE OF status ON round_assignments "
        f"WHEN NEW.user_id = {user_id} "
        "BEGIN SELECT RAISE(ABORT, 'row locked'); END"
    ))
    await db.commit()


# =============================================================================
# Judge assignment
# =============================================================================

class TestAssignJudge:

    async def test_assign_event_wide_judge(self, db, factory, event):
        judge = await factory.user(UserRole.judge)

        assignment = await JudgingWorkflowService(db).assign_judge(event.id, judge.id)

        assert assignment.round_id is None
        assert assignment.status == JudgeAssignmentStatus.PENDING

    async def test_assign_round_judge(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        judge = await factory.user(UserRole.judge)

        assignment = await JudgingWorkflowService(db).assign_judge(event.id, judge.id, round_obj.id)
        assert assignment.round_id == round_obj.id

    async def test_non_judge_not_eligible_and_nothing_written(self, db, factory, event):
        participant = await factory.user(UserRole.participant)

        with pytest.raises(NotEligibleError) as exc_info:
            await JudgingWorkflowService(db).assign_judge(event.id, participant.id)

        assert exc_info.value.status_code == 400
        assert await count_rows(db, JudgeAssignment) == 0

    async def test_duplicate_judge_assignment(self, db, factory, event):
        judge = await factory.user(UserRole.judge)
        service = JudgingWorkflowService(db)
        await service.assign_judge(event.id, judge.id)

        with pytest.raises(DuplicateError):
            await service.assign_judge(event.id, judge.id)

    async def test_round_from_other_event_rejected(self, db, factory, event):
        other_round = await factory.round(await factory.event(), at(9), at(11))
        judge = await factory.user(UserRole.judge)

        with pytest.raises(ValidationError):
            await JudgingWorkflowService(db).assign_judge(event.id, judge.id, other_round.id)

    async def test_unknown_event_and_judge(self, db, factory, event):
        judge = await factory.user(UserRole.judge)
        service = JudgingWorkflowService(db)

        with pytest.raises(NotFoundError):
            await service.assign_judge(999, judge.id)
        with pytest.raises(NotFoundError):
            await service.assign_judge(event.id, 999)

    async def test_status_update_and_removal(self, db, factory, event):
        judge = await factory.user(UserRole.judge)
        service = JudgingWorkflowService(db)
        assignment = await service.assign_judge(event.id, judge.id)

        updated = await service.update_judge_assignment_status(assignment.id, "accepted")
        assert updated.status == JudgeAssignmentStatus.ACCEPTED

        with pytest.raises(ValidationError):
            await service.update_judge_assignment_status(assignment.id, "maybe")

        await service.remove_judge_assignment(assignment.id)
        assert await service.list_event_judges(event.id) == []


# =============================================================================
# Round assignment
# =============================================================================

class TestCreateRoundAssignment:

    async def test_participant_assignment(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        user = await factory.user()

        assignment = await JudgingWorkflowService(db).create_round_assignment(
            round_obj.id, user.id, "participant", team_id=3
        )
        assert assignment.role == AssignmentRole.PARTICIPANT
        assert assignment.status == AssignmentStatus.ASSIGNED
        assert assignment.team_id == 3

    async def test_judge_role_requires_judge_user(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        participant = await factory.user(UserRole.participant)

        with pytest.raises(InvalidRoleError):
            await JudgingWorkflowService(db).create_round_assignment(
                round_obj.id, participant.id, AssignmentRole.JUDGE
            )
        assert await count_rows(db, RoundAssignment) == 0

    async def test_unknown_role_rejected(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        user = await factory.user()

        with pytest.raises(ValidationError):
            await JudgingWorkflowService(db).create_round_assignment(round_obj.id, user.id, "mentor")

    async def test_duplicate_rejected(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        user = await factory.user()
        service = JudgingWorkflowService(db)
        await service.create_round_assignment(round_obj.id, user.id, "participant")

        with pytest.raises(DuplicateError) as exc_info:
            await service.create_round_assignment(round_obj.id, user.id, "participant")
        assert exc_info.value.details["can_proceed"] is False

    async def test_capacity_exceeded(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11), max_participants=2)
        first, second, third = await factory.users(3)
        service = JudgingWorkflowService(db)
        await service.create_round_assignment(round_obj.id, first.id, "participant")
        await service.create_round_assignment(round_obj.id, second.id, "participant")

        with pytest.raises(CapacityExceededError) as exc_info:
            await service.create_round_assignment(round_obj.id, third.id, "participant")

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["can_proceed"] is False
        assert await service.assignments.count_by_role(round_obj.id, AssignmentRole.PARTICIPANT) == 2

    async def test_capacity_not_overridable(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11), max_participants=1)
        first, second = await factory.users(2)
        service = JudgingWorkflowService(db)
        await service.create_round_assignment(round_obj.id, first.id, "participant")

        with pytest.raises(CapacityExceededError):
            await service.create_round_assignment(
                round_obj.id, second.id, "participant", override_conflicts=True
            )

    async def test_judge_quota_is_advisory(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11), judges_required=1)
        first, second = await factory.users(2, UserRole.judge)
        service = JudgingWorkflowService(db)
        await service.create_round_assignment(round_obj.id, first.id, "judge")

        with pytest.raises(JudgeQuotaReachedError) as exc_info:
            await service.create_round_assignment(round_obj.id, second.id, "judge")
        assert exc_info.value.details["can_proceed"] is True

        assignment = await service.create_round_assignment(
            round_obj.id, second.id, "judge", override_conflicts=True
        )
        assert assignment.id is not None
        assert await service.assignments.count_by_role(round_obj.id, AssignmentRole.JUDGE) == 2

    async def test_scheduling_conflict_is_advisory(self, db, factory, event):
        other_event = await factory.event()
        elsewhere = await factory.round(other_event, at(10), at(12))
        here = await factory.round(event, at(9), at(11))
        judge = await factory.user(UserRole.judge)
        await factory.assignment(elsewhere, judge, AssignmentRole.JUDGE)
        service = JudgingWorkflowService(db)

        with pytest.raises(SchedulingConflictError) as exc_info:
            await service.create_round_assignment(here.id, judge.id, "judge")

        details = exc_info.value.details
        assert details["can_proceed"] is True
        assert [c["round_id"] for c in details["conflicts"]] == [elsewhere.id]

        assignment = await service.create_round_assignment(
            here.id, judge.id, "judge", override_conflicts=True
        )
        assert assignment.round_id == here.id

    async def test_same_round_other_role_is_not_a_conflict(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11), judges_required=2)
        user = await factory.user(UserRole.judge)
        service = JudgingWorkflowService(db)
        await service.create_round_assignment(round_obj.id, user.id, "participant")

        assignment = await service.create_round_assignment(round_obj.id, user.id, "judge")
        assert assignment.role == AssignmentRole.JUDGE


class TestRegisterParticipant:

    async def test_participant_registers_for_upcoming_round(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        player = await factory.user()

        assignment = await JudgingWorkflowService(db).register_participant(round_obj.id, player.id, team_id=7)

        assert assignment.role == AssignmentRole.PARTICIPANT
        assert assignment.status == AssignmentStatus.ASSIGNED
        assert assignment.team_id == 7

    async def test_closed_once_round_has_started(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11), status=RoundStatus.ONGOING)
        player = await factory.user()
        round_id = round_obj.id

        with pytest.raises(RegistrationClosedError) as exc_info:
            await JudgingWorkflowService(db).register_participant(round_id, player.id)

        assert exc_info.value.details["status"] == "ongoing"
        assert await count_rows(db, RoundAssignment) == 0

    async def test_capacity_applies(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11), max_participants=1)
        first, second = await factory.users(2)
        await factory.assignment(round_obj, first)

        with pytest.raises(CapacityExceededError):
            await JudgingWorkflowService(db).register_participant(round_obj.id, second.id)

    async def test_registering_twice_is_duplicate(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        player = await factory.user()
        service = JudgingWorkflowService(db)
        await service.register_participant(round_obj.id, player.id)

        with pytest.raises(DuplicateError):
            await service.register_participant(round_obj.id, player.id)


class TestUpdateAssignment:

    async def test_update_score_and_feedback(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        assignment = await factory.assignment(round_obj, await factory.user())

        updated = await JudgingWorkflowService(db).update_assignment(
            assignment.id, {"status": "accepted", "score": 88.5, "feedback": "Strong demo"}
        )
        assert updated.status == AssignmentStatus.ACCEPTED
        assert updated.score == Decimal("88.5")
        assert updated.feedback == "Strong demo"

    async def test_score_out_of_range(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        assignment = await factory.assignment(round_obj, await factory.user())

        with pytest.raises(ValidationError):
            await JudgingWorkflowService(db).update_assignment(assignment.id, {"score": 101})

    async def test_empty_patch(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        assignment = await factory.assignment(round_obj, await factory.user())

        with pytest.raises(ValidationError):
            await JudgingWorkflowService(db).update_assignment(assignment.id, {})

    async def test_remove(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        assignment = await factory.assignment(round_obj, await factory.user())
        service = JudgingWorkflowService(db)

        await service.remove_assignment(assignment.id)
        with pytest.raises(NotFoundError):
            await service.get_assignment(assignment.id)


# =============================================================================
# Scores
# =============================================================================

class TestMeanOfComponents:

    def test_missing_components_ignored(self):
        assert mean_of_components({
            "technical_score": Decimal("80"),
            "presentation_score": Decimal("90"),
            "creativity_score": None,
            "implementation_score": None,
        }) == Decimal("85.00")

    def test_rounded_to_cents(self):
        assert mean_of_components({
            "technical_score": Decimal("70"),
            "presentation_score": Decimal("80"),
            "creativity_score": Decimal("85"),
        }) == Decimal("78.33")

    def test_no_components(self):
        assert mean_of_components({"technical_score": None}) is None


class TestSubmitScores:

    @pytest.fixture
    async def scored_round(self, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        judge = await factory.user(UserRole.judge)
        await factory.assignment(round_obj, judge, AssignmentRole.JUDGE)
        participants = await factory.users(3)
        for p in participants:
            await factory.assignment(round_obj, p)
        return round_obj.id, judge.id, [p.id for p in participants]

    async def test_scores_written(self, db, scored_round):
        round_id, judge_id, (p1, p2, _) = scored_round

        result = await JudgingWorkflowService(db).submit_scores(round_id, judge_id, [
            {"participant_id": p1, "technical_score": 80, "presentation_score": 90, "judge_comments": "Nice"},
            {"participant_id": p2, "technical_score": 70, "presentation_score": 80, "creativity_score": 85},
        ])
        assert result["rows_updated"] == 2

        repo = AssignmentRepository(db)
        first = await repo.find_one(round_id, p1, AssignmentRole.PARTICIPANT)
        second = await repo.find_one(round_id, p2, AssignmentRole.PARTICIPANT)
        judge_row = await repo.find_one(round_id, judge_id, AssignmentRole.JUDGE)

        assert first.score == Decimal("85.00")
        assert first.technical_score == Decimal("80")
        assert first.creativity_score is None
        assert first.judge_comments == "Nice"
        assert second.score == Decimal("78.33")
        assert judge_row.status == AssignmentStatus.COMPLETED

    async def test_team_entry_scores_every_member(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        judge = await factory.user(UserRole.judge)
        await factory.assignment(round_obj, judge, AssignmentRole.JUDGE)
        members = await factory.users(2)
        for m in members:
            await factory.assignment(round_obj, m, team_id=42)

        result = await JudgingWorkflowService(db).submit_scores(
            round_obj.id, judge.id, [{"team_id": 42, "implementation_score": 64}]
        )

        assert result["rows_updated"] == 2
        rows = await AssignmentRepository(db).find_participants_by_subject(round_obj.id, team_id=42)
        assert [r.score for r in rows] == [Decimal("64.00"), Decimal("64.00")]

    async def test_event_judge_assignment_for_round_accepted(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        judge = await factory.user(UserRole.judge)
        participant = await factory.user()
        await factory.assignment(round_obj, participant)
        service = JudgingWorkflowService(db)
        judge_assignment = await service.assign_judge(event.id, judge.id, round_obj.id)

        await service.submit_scores(round_obj.id, judge.id, [
            {"participant_id": participant.id, "technical_score": 50}
        ])
        assert judge_assignment.status == JudgeAssignmentStatus.COMPLETED

    async def test_unassigned_judge_rejected(self, db, factory, scored_round):
        round_id, _, (p1, _, _) = scored_round
        stranger = await factory.user(UserRole.judge)

        with pytest.raises(NotAssignedError) as exc_info:
            await JudgingWorkflowService(db).submit_scores(round_id, stranger.id, [
                {"participant_id": p1, "technical_score": 50}
            ])
        assert exc_info.value.status_code == 403

    @pytest.mark.parametrize("entry", [
        {"technical_score": 50},
        {"participant_id": 1, "team_id": 1, "technical_score": 50},
        {"participant_id": 1},
        {"participant_id": 1, "technical_score": None},
    ])
    async def test_invalid_entries(self, db, scored_round, entry):
        round_id, judge_id, _ = scored_round

        with pytest.raises(InvalidEntryError) as exc_info:
            await JudgingWorkflowService(db).submit_scores(round_id, judge_id, [entry])
        assert exc_info.value.details["entry_index"] == 0

    async def test_component_out_of_range(self, db, scored_round):
        round_id, judge_id, (p1, _, _) = scored_round

        with pytest.raises(ValidationError):
            await JudgingWorkflowService(db).submit_scores(round_id, judge_id, [
                {"participant_id": p1, "technical_score": 120}
            ])

    async def test_empty_submission(self, db, scored_round):
        round_id, judge_id, _ = scored_round

        with pytest.raises(ValidationError):
            await JudgingWorkflowService(db).submit_scores(round_id, judge_id, [])

    async def test_failing_last_entry_persists_nothing(self, db, scored_round):
        round_id, judge_id, (p1, p2, _) = scored_round

        with pytest.raises(NotFoundError):
            await JudgingWorkflowService(db).submit_scores(round_id, judge_id, [
                {"participant_id": p1, "technical_score": 90},
                {"participant_id": p2, "technical_score": 80},
                {"participant_id": 9999, "technical_score": 70},
            ])

        repo = AssignmentRepository(db)
        participants = await repo.find_by_round_id(round_id, AssignmentRole.PARTICIPANT)
        assert [p.score for p in participants] == [None, None, None]
        judge_row = await repo.find_one(round_id, judge_id, AssignmentRole.JUDGE)
        assert judge_row.status == AssignmentStatus.ASSIGNED

    async def test_store_failure_on_last_write_rolls_back(self, db, scored_round, monkeypatch):
        round_id, judge_id, participant_ids = scored_round
        original = AssignmentRepository.find_participants_by_subject
        calls = []

        async def fail_on_last(self, round_id, participant_id=None, team_id=None):
            calls.append(participant_id)
            if len(calls) == len(participant_ids):
                raise OperationalError("UPDATE round_assignments", {}, Exception("disk I/O error"))
            return await original(self, round_id, participant_id=participant_id, team_id=team_id)

        monkeypatch.setattr(AssignmentRepository, "find_participants_by_subject", fail_on_last)

        with pytest.raises(UnexpectedError) as exc_info:
            await JudgingWorkflowService(db).submit_scores(round_id, judge_id, [
                {"participant_id": pid, "technical_score": 75} for pid in participant_ids
            ])
        assert "disk I/O error" in exc_info.value.details["cause"]

        monkeypatch.undo()
        participants = await AssignmentRepository(db).find_by_round_id(round_id, AssignmentRole.PARTICIPANT)
        assert all(p.score is None for p in participants)


# =============================================================================
# Winners
# =============================================================================

class TestDeclareWinners:

    @pytest.fixture
    async def five_participants(self, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        users = await factory.users(5)
        for u in users:
            await factory.assignment(round_obj, u)
        return round_obj.id, [u.id for u in users]

    async def statuses(self, db, round_id):
        db.expire_all()
        rows = await AssignmentRepository(db).find_by_round_id(round_id, AssignmentRole.PARTICIPANT)
        return {r.user_id: r.status for r in rows}

    async def test_winners_advanced_rest_eliminated(self, db, five_participants):
        round_id, ids = five_participants

        result = await JudgingWorkflowService(db).declare_winners(round_id, ids[:3])

        statuses = await self.statuses(db, round_id)
        assert [statuses[i] for i in ids] == [AssignmentStatus.ADVANCED] * 3 + [AssignmentStatus.ELIMINATED] * 2
        assert result["winners"] == ids[:3]
        assert sorted(result["eliminated"]) == sorted(ids[3:])
        assert result["failures"] == []
        assert result["advancement_occurred"] is False

    async def test_failure_on_one_participant_does_not_block_the_next(self, db, five_participants, monkeypatch):
        round_id, ids = five_participants
        fourth, fifth = ids[3], ids[4]
        original = JudgingWorkflowService._set_participant_status

        async def flaky(self, round_id, user_id, status):
            if user_id == fourth:
                raise RuntimeError("write failed")
            return await original(self, round_id, user_id, status)

        monkeypatch.setattr(JudgingWorkflowService, "_set_participant_status", flaky)

        result = await JudgingWorkflowService(db).declare_winners(round_id, ids[:3])

        statuses = await self.statuses(db, round_id)
        assert statuses[fourth] == AssignmentStatus.ASSIGNED
        assert statuses[fifth] == AssignmentStatus.ELIMINATED
        assert result["failures"] == [{"id": fourth, "error": "write failed"}]

    async def test_rejected_row_write_does_not_block_the_batch(self, db, five_participants):
        round_id, ids = five_participants
        fourth, fifth = ids[3], ids[4]
        await lock_status_of(db, fourth)

        result = await JudgingWorkflowService(db).declare_winners(round_id, ids[:3])

        statuses = await self.statuses(db, round_id)
        assert [statuses[i] for i in ids[:3]] == [AssignmentStatus.ADVANCED] * 3
        assert statuses[fourth] == AssignmentStatus.ASSIGNED
        assert statuses[fifth] == AssignmentStatus.ELIMINATED
        assert result["winners"] == ids[:3]
        assert result["eliminated"] == [fifth]
        assert [f["id"] for f in result["failures"]] == [fourth]

    async def test_rejected_winner_is_not_registered(self, db, factory, event, five_participants):
        round_id, ids = five_participants
        final = await factory.round(event, at(14), at(16))
        final_id = final.id
        await lock_status_of(db, ids[1])

        result = await JudgingWorkflowService(db).declare_winners(round_id, ids[:3], next_round_id=final_id)

        assert result["winners"] == [ids[0], ids[2]]
        assert [f["id"] for f in result["failures"]] == [ids[1]]
        assert result["registered"] == [ids[0], ids[2]]
        next_round = await AssignmentRepository(db).find_by_round_id(final_id, AssignmentRole.PARTICIPANT)
        assert [a.user_id for a in next_round] == [ids[0], ids[2]]

    async def test_unknown_winner_reported_not_fatal(self, db, five_participants):
        round_id, ids = five_participants

        result = await JudgingWorkflowService(db).declare_winners(round_id, [ids[0], 8888])

        assert result["winners"] == [ids[0]]
        assert [f["id"] for f in result["failures"]] == [8888]
        assert (await self.statuses(db, round_id))[ids[0]] == AssignmentStatus.ADVANCED

    async def test_next_round_must_share_event(self, db, factory, five_participants):
        round_id, ids = five_participants
        foreign = await factory.round(await factory.event(), at(14), at(15))

        with pytest.raises(CrossEventRoundError):
            await JudgingWorkflowService(db).declare_winners(round_id, ids[:3], next_round_id=foreign.id)

        statuses = await self.statuses(db, round_id)
        assert set(statuses.values()) == {AssignmentStatus.ASSIGNED}

    async def test_unknown_next_round(self, db, five_participants):
        round_id, ids = five_participants

        with pytest.raises(NotFoundError):
            await JudgingWorkflowService(db).declare_winners(round_id, ids[:3], next_round_id=4040)

    async def test_winners_registered_in_next_round(self, db, factory, event, five_participants):
        round_id, ids = five_participants
        final = await factory.round(event, at(14), at(16), max_participants=2)

        result = await JudgingWorkflowService(db).declare_winners(round_id, ids[:3], next_round_id=final.id)

        assert result["advancement_occurred"] is True
        assert result["registered"] == ids[:2]
        assert [f["id"] for f in result["registration_failures"]] == [ids[2]]
        next_round = await AssignmentRepository(db).find_by_round_id(final.id, AssignmentRole.PARTICIPANT)
        assert [a.user_id for a in next_round] == ids[:2]

    async def test_already_advanced_participants_kept(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        earlier, other = await factory.users(2)
        await factory.assignment(round_obj, earlier, status=AssignmentStatus.ADVANCED)
        await factory.assignment(round_obj, other)
        round_id, earlier_id, other_id = round_obj.id, earlier.id, other.id

        await JudgingWorkflowService(db).declare_winners(round_id, [])

        statuses = await self.statuses(db, round_id)
        assert statuses[earlier_id] == AssignmentStatus.ADVANCED
        assert statuses[other_id] == AssignmentStatus.ELIMINATED
