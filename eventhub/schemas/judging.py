"""
Pydantic Schemas for assignments, judges, scores and winners
"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from eventhub.orm.judge_assignment import JudgeAssignmentStatus
from eventhub.orm.round_assignment import AssignmentRole, AssignmentStatus


# ============================================================================
# Round Assignments
# ============================================================================

class AssignmentCreate(BaseModel):
    """Attach a user to a round."""
    user_id: int
    role: AssignmentRole
    status: Optional[AssignmentStatus] = None
    team_id: Optional[int] = None
    override_conflicts: bool = Field(
        False, description="Proceed despite judge-quota or scheduling conflicts"
    )


class RoundRegistration(BaseModel):
    """A participant registering themselves for a round."""
    team_id: Optional[int] = None
    override_conflicts: bool = False


class AssignmentUpdate(BaseModel):
    status: Optional[AssignmentStatus] = None
    score: Optional[float] = Field(None, ge=0, le=100)
    feedback: Optional[str] = None


# ============================================================================
# Judges
# ============================================================================

class JudgeAssign(BaseModel):
    """Assign a judge to an event, optionally scoped to one round."""
    event_id: int
    judge_id: int
    round_id: Optional[int] = None


class JudgeAssignmentStatusUpdate(BaseModel):
    status: JudgeAssignmentStatus


# ============================================================================
# Scores
# ============================================================================

class ScoreEntry(BaseModel):
    """One judge score entry. Subject is participant_id or team_id, never both."""
    participant_id: Optional[int] = None
    team_id: Optional[int] = None
    technical_score: Optional[float] = Field(None, ge=0, le=100)
    presentation_score: Optional[float] = Field(None, ge=0, le=100)
    creativity_score: Optional[float] = Field(None, ge=0, le=100)
    implementation_score: Optional[float] = Field(None, ge=0, le=100)
    judge_comments: Optional[str] = None


class ScoreSubmission(BaseModel):
    scores: List[ScoreEntry]


# ============================================================================
# Winners
# ============================================================================

class WinnerDeclaration(BaseModel):
    """Winners of a round; ``winnerIds`` / ``nextRoundId`` are accepted too."""
    winner_ids: List[int] = Field(..., alias="winnerIds")
    next_round_id: Optional[int] = Field(None, alias="nextRoundId")
    override_conflicts: bool = False

    model_config = ConfigDict(populate_by_name=True)
