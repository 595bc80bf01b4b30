"""
Pydantic Schemas for event rounds

Request models for round scheduling. Field names follow the snake_case wire
format; ``type`` is the round type.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from eventhub.orm.event_round import RoundType, RoundStatus


class RoundCreate(BaseModel):
    """Schema for creating a round."""
    event_id: int = Field(..., description="Owning event")
    name: str = Field(..., min_length=1, max_length=100)
    type: RoundType = Field(RoundType.PRELIMINARY, description="preliminary, semifinal, final or other")
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: Optional[str] = Field(None, max_length=200)
    judges_required: Optional[int] = Field(1, ge=1)
    max_participants: Optional[int] = Field(None, ge=1)
    status: Optional[RoundStatus] = None


class RoundUpdate(BaseModel):
    """Schema for a partial round update. Omitted fields keep their value."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[RoundType] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=200)
    judges_required: Optional[int] = Field(None, ge=1)
    max_participants: Optional[int] = Field(None, ge=1)
    status: Optional[RoundStatus] = None

    model_config = ConfigDict(extra="forbid")
