"""
Judging API routes

- Judge assignment to events / rounds (organizer or admin)
- Score submission (assigned judges only, all-or-nothing)
- Winner declaration and advancement (organizer or admin, best-effort)
- Round leaderboard
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.database import get_db
from eventhub.errors import ForbiddenError, NotFoundError
from eventhub.rbac import Actor, get_current_actor, require_judge, ensure_event_manager
from eventhub.routes.assignments import authorize_round_manager
from eventhub.schemas.judging import (
    JudgeAssign, JudgeAssignmentStatusUpdate, ScoreSubmission, WinnerDeclaration
)
from eventhub.services.judging_service import JudgingWorkflowService

router = APIRouter(tags=["Judging"])


async def authorize_event_manager(service: JudgingWorkflowService, actor: Actor, event_id: int) -> None:
    event = await service.directory.get_event(event_id)
    if event is None:
        raise NotFoundError("Event", event_id)
    ensure_event_manager(actor, event)


# =============================================================================
# Judge assignments
# =============================================================================

@router.post("/judges/assign", status_code=status.HTTP_201_CREATED)
async def assign_judge(
    payload: JudgeAssign,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    service = JudgingWorkflowService(db)
    await authorize_event_manager(service, actor, payload.event_id)

    assignment = await service.assign_judge(payload.event_id, payload.judge_id, payload.round_id)
    return {"message": "Judge assigned successfully", "assignment": assignment.to_dict()}


@router.get("/events/{event_id}/judges")
async def list_event_judges(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    assignments = await JudgingWorkflowService(db).list_event_judges(event_id)
    return {"judges": [a.to_dict() for a in assignments]}


@router.get("/rounds/{round_id}/judges")
async def list_round_judges(
    round_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    assignments = await JudgingWorkflowService(db).list_round_judges(round_id)
    return {"judges": [a.to_dict() for a in assignments]}


@router.get("/judges/me/assignments")
async def list_my_judge_assignments(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_judge)
) -> Dict[str, Any]:
    assignments = await JudgingWorkflowService(db).list_judge_assignments(actor.id)
    return {"assignments": [a.to_dict() for a in assignments]}


@router.patch("/judges/assignments/{assignment_id}")
async def update_judge_assignment(
    assignment_id: int,
    payload: JudgeAssignmentStatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    """The assigned judge accepts / declines; admins may set any status."""
    service = JudgingWorkflowService(db)
    assignment = await service.get_judge_assignment(assignment_id)
    if assignment.judge_id != actor.id and not actor.is_admin:
        raise ForbiddenError("Not authorized to update this assignment")

    updated = await service.update_judge_assignment_status(assignment_id, payload.status)
    return {"message": "Assignment status updated successfully", "assignment": updated.to_dict()}


@router.delete("/judges/assignments/{assignment_id}")
async def remove_judge_assignment(
    assignment_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    service = JudgingWorkflowService(db)
    assignment = await service.get_judge_assignment(assignment_id)
    await authorize_event_manager(service, actor, assignment.event_id)

    await service.remove_judge_assignment(assignment_id)
    return {"message": "Judge assignment removed successfully"}


# =============================================================================
# Scores, winners, leaderboard
# =============================================================================

@router.post("/rounds/{round_id}/scores")
async def submit_scores(
    round_id: int,
    payload: ScoreSubmission,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_judge)
) -> Dict[str, Any]:
    entries = [entry.model_dump() for entry in payload.scores]
    result = await JudgingWorkflowService(db).submit_scores(round_id, actor.id, entries)
    return {"message": "Scores submitted successfully", **result}


@router.post("/rounds/{round_id}/winners")
async def declare_winners(
    round_id: int,
    payload: WinnerDeclaration,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    service = JudgingWorkflowService(db)
    await authorize_round_manager(service, actor, round_id)

    result = await service.declare_winners(
        round_id,
        payload.winner_ids,
        next_round_id=payload.next_round_id,
        override_conflicts=payload.override_conflicts,
    )
    return {"message": "Winners declared successfully", **result}


@router.get("/rounds/{round_id}/leaderboard")
async def get_leaderboard(
    round_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    return await JudgingWorkflowService(db).get_leaderboard(round_id)
