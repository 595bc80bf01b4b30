"""
Leaderboard ranking tests

Coverage:
- Standard competition ranking (ties share a rank, next rank skips)
- Deterministic tie order
- Null scores last with no rank
- Leaderboard built from round participants
"""
from decimal import Decimal

from eventhub.orm.round_assignment import AssignmentRole
from eventhub.orm.user import UserRole
from eventhub.services.judging_service import JudgingWorkflowService
from eventhub.services.leaderboard import rank_entries
from eventhub.tests.conftest import at


class TestRankEntries:

    def test_ties_consume_rank_slots(self):
        entries = [
            {"id": 1, "score": 95},
            {"id": 2, "score": 88},
            {"id": 3, "score": 95},
            {"id": 4, "score": 75},
        ]
        ranked = rank_entries(entries)

        ranks = {e["id"]: e["rank"] for e in ranked}
        assert [ranks[i] for i in (1, 2, 3, 4)] == [1, 3, 1, 4]
        assert [e["id"] for e in ranked] == [1, 3, 2, 4]

    def test_rank_is_one_plus_strictly_greater(self):
        scores = [70, 90, 90, 90, 60, 70]
        ranked = rank_entries({"id": i, "score": s} for i, s in enumerate(scores))
        for entry in ranked:
            greater = sum(1 for s in scores if s > entry["score"])
            assert entry["rank"] == greater + 1

    def test_null_scores_listed_last_without_rank(self):
        ranked = rank_entries([
            {"id": 1, "score": None},
            {"id": 2, "score": 50},
            {"id": 3, "score": None},
        ])
        assert [e["id"] for e in ranked] == [2, 1, 3]
        assert [e["rank"] for e in ranked] == [1, None, None]

    def test_original_fields_preserved(self):
        entry = {"id": 7, "score": 10, "user_id": 42, "feedback": "ok"}
        ranked = rank_entries([entry])
        assert ranked[0] == {**entry, "rank": 1}
        assert "rank" not in entry

    def test_custom_keys_and_decimals(self):
        ranked = rank_entries(
            [{"user_id": 2, "total": Decimal("80.50")}, {"user_id": 1, "total": Decimal("80.50")}],
            score_key="total",
            tie_key="user_id",
        )
        assert [e["user_id"] for e in ranked] == [1, 2]
        assert [e["rank"] for e in ranked] == [1, 1]

    def test_empty(self):
        assert rank_entries([]) == []


class TestRoundLeaderboard:

    async def test_leaderboard_ranks_round_participants(self, db, factory, event):
        round_obj = await factory.round(event, at(9), at(11))
        judge = await factory.user(UserRole.judge)
        await factory.assignment(round_obj, judge, AssignmentRole.JUDGE)
        scores = [Decimal("95"), Decimal("88"), Decimal("95"), None]
        for score in scores:
            user = await factory.user()
            await factory.assignment(round_obj, user, score=score)

        board = await JudgingWorkflowService(db).get_leaderboard(round_obj.id)

        assert board["round_id"] == round_obj.id
        assert board["total_participants"] == 4
        assert [e["score"] for e in board["leaderboard"]] == [95.0, 95.0, 88.0, None]
        assert [e["rank"] for e in board["leaderboard"]] == [1, 1, 3, None]
        assert all(e["role"] == "participant" for e in board["leaderboard"])
