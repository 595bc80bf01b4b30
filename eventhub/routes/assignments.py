"""
Round assignment API routes

Participants and judges are attached to rounds by the event's organizer or
an admin; participants may also register themselves for an upcoming round.
Advisory conflicts (judge quota, double booking) come back as 409 with
``details.can_proceed = true``; re-submit with ``override_conflicts`` to
proceed.

Assignment rows carry scores and judge comments, so reading them is limited
to the round's managers, judges assigned to the round, and the assigned
user for their own row.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.database import get_db
from eventhub.errors import NotFoundError
from eventhub.orm.round_assignment import AssignmentRole
from eventhub.orm.user import UserRole
from eventhub.rbac import Actor, get_current_actor, ensure_event_manager, require_participant
from eventhub.schemas.judging import AssignmentCreate, AssignmentUpdate, RoundRegistration
from eventhub.services.judging_service import JudgingWorkflowService

router = APIRouter(tags=["Round Assignments"])


async def authorize_round_manager(service: JudgingWorkflowService, actor: Actor, round_id: int) -> None:
    round_obj = await service.get_round(round_id)
    event = await service.directory.get_event(round_obj.event_id)
    if event is None:
        raise NotFoundError("Event", round_obj.event_id)
    ensure_event_manager(actor, event)


async def authorize_round_viewer(service: JudgingWorkflowService, actor: Actor, round_id: int) -> None:
    """Round managers, plus judges assigned to the round."""
    if actor.role == UserRole.judge and await service.is_round_judge(round_id, actor.id):
        return
    await authorize_round_manager(service, actor, round_id)


@router.post("/rounds/{round_id}/assignments", status_code=status.HTTP_201_CREATED)
async def create_assignment(
    round_id: int,
    payload: AssignmentCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    service = JudgingWorkflowService(db)
    await authorize_round_manager(service, actor, round_id)

    assignment = await service.create_round_assignment(
        round_id,
        payload.user_id,
        payload.role,
        status=payload.status,
        team_id=payload.team_id,
        override_conflicts=payload.override_conflicts,
    )
    return {"message": "Assignment created successfully", "assignment": assignment.to_dict()}


@router.post("/rounds/register/{round_id}", status_code=status.HTTP_201_CREATED)
async def register_for_round(
    round_id: int,
    payload: Optional[RoundRegistration] = None,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_participant)
) -> Dict[str, Any]:
    """Register the calling participant for an upcoming round."""
    payload = payload or RoundRegistration()
    assignment = await JudgingWorkflowService(db).register_participant(
        round_id,
        actor.id,
        team_id=payload.team_id,
        override_conflicts=payload.override_conflicts,
    )
    return {"message": "Registered for round successfully", "assignment": assignment.to_dict()}


@router.get("/rounds/{round_id}/assignments")
async def list_assignments(
    round_id: int,
    role: Optional[AssignmentRole] = Query(None, description="participant or judge"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    service = JudgingWorkflowService(db)
    await authorize_round_viewer(service, actor, round_id)

    assignments = await service.list_round_assignments(round_id, role)
    return {"assignments": [a.to_dict() for a in assignments]}


@router.get("/events/{event_id}/assignments/me")
async def list_my_event_assignments(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    assignments = await JudgingWorkflowService(db).list_user_event_assignments(actor.id, event_id)
    return {"assignments": [a.to_dict() for a in assignments]}


@router.get("/assignments/{assignment_id}")
async def get_assignment(
    assignment_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    service = JudgingWorkflowService(db)
    assignment = await service.get_assignment(assignment_id)
    if assignment.user_id != actor.id:
        await authorize_round_viewer(service, actor, assignment.round_id)
    return {"assignment": assignment.to_dict()}


@router.patch("/assignments/{assignment_id}")
async def update_assignment(
    assignment_id: int,
    payload: AssignmentUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    service = JudgingWorkflowService(db)
    assignment = await service.get_assignment(assignment_id)
    await authorize_round_manager(service, actor, assignment.round_id)

    updated = await service.update_assignment(assignment_id, payload.model_dump(exclude_none=True))
    return {"message": "Assignment updated successfully", "assignment": updated.to_dict()}


@router.delete("/assignments/{assignment_id}")
async def delete_assignment(
    assignment_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    service = JudgingWorkflowService(db)
    assignment = await service.get_assignment(assignment_id)
    await authorize_round_manager(service, actor, assignment.round_id)

    await service.remove_assignment(assignment_id)
    return {"message": "Assignment deleted successfully"}
