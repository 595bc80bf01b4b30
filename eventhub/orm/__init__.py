from .base import Base

# Core models
from .user import User, UserRole
from .event import Event

# Rounds + judging
from .event_round import EventRound, RoundType, RoundStatus
from .round_assignment import RoundAssignment, AssignmentRole, AssignmentStatus
from .judge_assignment import JudgeAssignment, JudgeAssignmentStatus
