"""
Round Service

Validated create / update / delete of event rounds.

Validation order for create and update:
1. Event exists
2. Required fields and round type
3. start_time < end_time
4. [start_time, end_time] lies inside [event.start_date, event.end_date]
5. No strict overlap with another round of the same event
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.errors import (
    ValidationError, NotFoundError, RoundConflictError, ErrorCode
)
from eventhub.orm.event import Event
from eventhub.orm.event_round import EventRound, RoundType, RoundStatus
from eventhub.repositories.assignment_repository import AssignmentRepository
from eventhub.repositories.directory import Directory
from eventhub.repositories.judge_assignment_repository import JudgeAssignmentRepository
from eventhub.repositories.round_repository import RoundRepository

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("event_id", "name", "start_time", "end_time")
NULLABLE_FIELDS = ("description", "location", "judges_required", "max_participants")


def coerce_datetime(value: Any, field_name: str) -> datetime:
    """Accept datetimes or ISO strings; aware values are stored as naive UTC."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(
                f"{field_name} must be an ISO 8601 datetime",
                code=ErrorCode.INVALID_INPUT,
                details={"field": field_name, "value": value}
            )
    if not isinstance(value, datetime):
        raise ValidationError(
            f"{field_name} must be a datetime",
            details={"field": field_name}
        )
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def coerce_round_type(value: Any) -> RoundType:
    try:
        return RoundType(value)
    except ValueError:
        allowed = [t.value for t in RoundType]
        raise ValidationError(
            f"Invalid round type. Must be one of: {', '.join(allowed)}",
            details={"field": "type", "value": value, "allowed": allowed}
        )


def coerce_round_status(value: Any) -> RoundStatus:
    try:
        return RoundStatus(value)
    except ValueError:
        allowed = [s.value for s in RoundStatus]
        raise ValidationError(
            f"Invalid round status. Must be one of: {', '.join(allowed)}",
            details={"field": "status", "value": value, "allowed": allowed}
        )


def validate_limit(value: Optional[int], field_name: str) -> None:
    if value is not None and value <= 0:
        raise ValidationError(
            f"{field_name} must be a positive integer",
            details={"field": field_name, "value": value}
        )


def validate_interval(event: Event, start_time: datetime, end_time: datetime) -> None:
    if start_time >= end_time:
        raise ValidationError(
            "start_time must be before end_time",
            code=ErrorCode.INVALID_INTERVAL,
            details={"start_time": start_time.isoformat(), "end_time": end_time.isoformat()}
        )
    if not event.contains(start_time, end_time):
        raise ValidationError(
            "Round time must be within the event time frame",
            code=ErrorCode.OUTSIDE_EVENT_WINDOW,
            details={
                "event_start": event.start_date.isoformat(),
                "event_end": event.end_date.isoformat(),
            }
        )


class RoundService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.rounds = RoundRepository(db)
        self.assignments = AssignmentRepository(db)
        self.judge_assignments = JudgeAssignmentRepository(db)
        self.directory = Directory(db)

    async def get_event(self, event_id: int) -> Event:
        event = await self.directory.get_event(event_id)
        if event is None:
            raise NotFoundError("Event", event_id)
        return event

    async def get_round(self, round_id: int) -> EventRound:
        round_obj = await self.rounds.find_by_id(round_id)
        if round_obj is None:
            raise NotFoundError("Round", round_id)
        return round_obj

    async def list_rounds(self, event_id: int) -> List[EventRound]:
        await self.get_event(event_id)
        return await self.rounds.find_by_event_id(event_id)

    async def list_upcoming_rounds(
        self,
        category: Optional[str] = None,
        start_date: Any = None,
        end_date: Any = None,
        limit: int = 10,
        offset: int = 0,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Rounds across all events that are upcoming and not yet started."""
        validate_limit(limit, "limit")
        if offset < 0:
            raise ValidationError("offset must not be negative", details={"field": "offset", "value": offset})
        if start_date is not None:
            start_date = coerce_datetime(start_date, "startDate")
        if end_date is not None:
            end_date = coerce_datetime(end_date, "endDate")

        rows = await self.rounds.find_upcoming(
            now or datetime.utcnow(),
            category=category,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=offset,
        )
        return [
            {**round_obj.to_dict(), "event_title": event.title, "category": event.category}
            for round_obj, event in rows
        ]

    def _normalize(self, data: Dict[str, Any], keep_nulls: bool = False) -> Dict[str, Any]:
        """
        Map wire field names onto model attributes and coerce values.

        With ``keep_nulls`` an explicit None on a nullable column is kept so
        an update can clear it; None on any other field is dropped.
        """
        values = {
            k: v for k, v in data.items()
            if v is not None or (keep_nulls and k in NULLABLE_FIELDS)
        }
        if "type" in values:
            values["round_type"] = coerce_round_type(values.pop("type"))
        if "status" in values:
            values["status"] = coerce_round_status(values["status"])
        for key in ("start_time", "end_time"):
            if key in values:
                values[key] = coerce_datetime(values[key], key)
        validate_limit(values.get("judges_required"), "judges_required")
        validate_limit(values.get("max_participants"), "max_participants")
        return values

    async def create_round(self, data: Dict[str, Any]) -> EventRound:
        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(
                f"Please provide {', '.join(REQUIRED_FIELDS)}",
                code=ErrorCode.MISSING_FIELD,
                details={"missing": missing}
            )

        event = await self.get_event(data["event_id"])
        values = self._normalize(data)
        values.setdefault("round_type", RoundType.PRELIMINARY)
        validate_interval(event, values["start_time"], values["end_time"])

        result = await self.rounds.create(values)
        if not result.ok:
            raise RoundConflictError(result.conflicts_as_dicts())

        await self.db.commit()
        logger.info(f"[ROUNDS] created round={result.round.id} event={event.id}")
        return result.round

    async def update_round(self, round_id: int, patch: Dict[str, Any]) -> EventRound:
        round_obj = await self.get_round(round_id)
        event = await self.get_event(round_obj.event_id)

        values = self._normalize(
            {k: v for k, v in patch.items() if k != "event_id"}, keep_nulls=True
        )
        validate_interval(
            event,
            values.get("start_time", round_obj.start_time),
            values.get("end_time", round_obj.end_time),
        )

        result = await self.rounds.update(round_id, values)
        if not result.ok:
            raise RoundConflictError(result.conflicts_as_dicts())

        await self.db.commit()
        logger.info(f"[ROUNDS] updated round={round_id} fields={sorted(values)}")
        return result.round

    async def delete_round(self, round_id: int) -> Dict[str, Any]:
        """Delete a round together with its assignments, in one commit."""
        await self.get_round(round_id)

        removed_assignments = await self.assignments.delete_by_round(round_id)
        removed_judges = await self.judge_assignments.delete_by_round(round_id)
        await self.rounds.delete(round_id)
        await self.db.commit()

        logger.info(
            f"[ROUNDS] deleted round={round_id} "
            f"assignments={removed_assignments} judge_assignments={removed_judges}"
        )
        return {
            "round_id": round_id,
            "removed_assignments": removed_assignments,
            "removed_judge_assignments": removed_judges,
        }
