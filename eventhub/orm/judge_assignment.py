"""
eventhub/orm/judge_assignment.py
Judge assignment model

A judge's association with an event, optionally scoped to one round.
Rows with no round are event-wide assignments.
"""
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, DateTime, ForeignKey,
    Index, UniqueConstraint, Enum
)
from sqlalchemy.orm import relationship

from eventhub.orm.base import BaseModel, isoformat


class JudgeAssignmentStatus(str, PyEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COMPLETED = "completed"


class JudgeAssignment(BaseModel):
    __tablename__ = "judge_assignments"

    event_id = Column(
        Integer,
        ForeignKey("events.id", ondelete="RESTRICT"),
        nullable=False
    )
    round_id = Column(
        Integer,
        ForeignKey("event_rounds.id", ondelete="RESTRICT"),
        nullable=True
    )
    judge_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False
    )
    status = Column(
        Enum(JudgeAssignmentStatus, values_callable=lambda e: [m.value for m in e], create_constraint=True),
        nullable=False,
        default=JudgeAssignmentStatus.PENDING
    )
    assigned_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    event = relationship("Event")
    round = relationship("EventRound")
    judge = relationship("User")

    __table_args__ = (
        UniqueConstraint("event_id", "round_id", "judge_id", name="uq_judge_event_round"),
        # NULL round_id never collides under the constraint above
        Index(
            "uq_judge_event_wide",
            "event_id", "judge_id",
            unique=True,
            sqlite_where=round_id.is_(None),
            postgresql_where=round_id.is_(None),
        ),
        Index("idx_judge_assignments_round", "round_id"),
        Index("idx_judge_assignments_judge", "judge_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "round_id": self.round_id,
            "judge_id": self.judge_id,
            "status": self.status.value if self.status else None,
            "assigned_at": isoformat(self.assigned_at),
        }
