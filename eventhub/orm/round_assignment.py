"""
eventhub/orm/round_assignment.py
Round assignment model

Associates a user with a round either as a participant or as a judge.
Participant rows double as the round participant record: judges write
component scores and comments onto them and winner declaration moves them
to advanced / eliminated.
"""
from enum import Enum as PyEnum
from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, Text, Numeric, ForeignKey,
    Index, UniqueConstraint, Enum
)
from sqlalchemy.orm import relationship

from eventhub.orm.base import BaseModel, isoformat, decimal_or_none


class AssignmentRole(str, PyEnum):
    PARTICIPANT = "participant"
    JUDGE = "judge"


class AssignmentStatus(str, PyEnum):
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COMPLETED = "completed"
    ADVANCED = "advanced"
    ELIMINATED = "eliminated"


SCORE_COMPONENTS = (
    "technical_score",
    "presentation_score",
    "creativity_score",
    "implementation_score",
)


class RoundAssignment(BaseModel):
    __tablename__ = "round_assignments"

    round_id = Column(
        Integer,
        ForeignKey("event_rounds.id", ondelete="RESTRICT"),
        nullable=False
    )
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False
    )
    # Set when the participant competes on behalf of a team
    team_id = Column(Integer, nullable=True, index=True)
    role = Column(
        Enum(AssignmentRole, values_callable=lambda e: [m.value for m in e], create_constraint=True),
        nullable=False
    )
    status = Column(
        Enum(AssignmentStatus, values_callable=lambda e: [m.value for m in e], create_constraint=True),
        nullable=False,
        default=AssignmentStatus.ASSIGNED
    )

    score = Column(Numeric(5, 2), nullable=True)
    technical_score = Column(Numeric(5, 2), nullable=True)
    presentation_score = Column(Numeric(5, 2), nullable=True)
    creativity_score = Column(Numeric(5, 2), nullable=True)
    implementation_score = Column(Numeric(5, 2), nullable=True)
    judge_comments = Column(Text, nullable=True)
    feedback = Column(Text, nullable=True)

    round = relationship("EventRound")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("round_id", "user_id", "role", name="uq_round_user_role"),
        Index("idx_assignments_round_role", "round_id", "role"),
        Index("idx_assignments_user", "user_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "round_id": self.round_id,
            "user_id": self.user_id,
            "team_id": self.team_id,
            "role": self.role.value if self.role else None,
            "status": self.status.value if self.status else None,
            "score": decimal_or_none(self.score),
            "judge_comments": self.judge_comments,
            "feedback": self.feedback,
            "updated_at": isoformat(self.updated_at),
        }
        for component in SCORE_COMPONENTS:
            data[component] = decimal_or_none(getattr(self, component))
        return data
