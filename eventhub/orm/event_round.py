"""
eventhub/orm/event_round.py
Event round model

A round is a scheduled phase of an event with its own time window,
location and capacity limits.
"""
from enum import Enum as PyEnum
from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey,
    Index, CheckConstraint, Enum
)
from sqlalchemy.orm import relationship

from eventhub.orm.base import BaseModel, isoformat


class RoundType(str, PyEnum):
    PRELIMINARY = "preliminary"
    SEMIFINAL = "semifinal"
    FINAL = "final"
    OTHER = "other"


class RoundStatus(str, PyEnum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EventRound(BaseModel):
    __tablename__ = "event_rounds"

    event_id = Column(
        Integer,
        ForeignKey("events.id", ondelete="RESTRICT"),
        nullable=False
    )
    name = Column(String(100), nullable=False)
    round_type = Column(
        "type",
        Enum(RoundType, values_callable=lambda e: [m.value for m in e], create_constraint=True),
        nullable=False,
        default=RoundType.PRELIMINARY
    )
    description = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    location = Column(String(200), nullable=True)
    judges_required = Column(Integer, nullable=True, default=1)
    max_participants = Column(Integer, nullable=True)
    status = Column(
        Enum(RoundStatus, values_callable=lambda e: [m.value for m in e], create_constraint=True),
        nullable=False,
        default=RoundStatus.UPCOMING
    )

    event = relationship("Event", back_populates="rounds")

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_round_interval"),
        Index("idx_rounds_event_start", "event_id", "start_time"),
    )

    def overlaps(self, start, end) -> bool:
        """Strict interval overlap; touching boundaries do not overlap."""
        return self.start_time < end and start < self.end_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "name": self.name,
            "type": self.round_type.value if self.round_type else None,
            "description": self.description,
            "start_time": isoformat(self.start_time),
            "end_time": isoformat(self.end_time),
            "location": self.location,
            "judges_required": self.judges_required,
            "max_participants": self.max_participants,
            "status": self.status.value if self.status else None,
        }
