"""
Round scheduling API routes

Event organizers (of their own events) and admins create, update and delete
rounds; any authenticated user can read them.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.database import get_db
from eventhub.rbac import Actor, get_current_actor, ensure_event_manager
from eventhub.schemas.rounds import RoundCreate, RoundUpdate
from eventhub.services.round_service import RoundService

router = APIRouter(tags=["Rounds"])


@router.post("/rounds", status_code=status.HTTP_201_CREATED)
async def create_round(
    payload: RoundCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    """
    Create a round inside an event.

    Fails with 400 when the interval is empty or leaves the event window,
    409 when it overlaps another round of the event.
    """
    service = RoundService(db)
    event = await service.get_event(payload.event_id)
    ensure_event_manager(actor, event)

    round_obj = await service.create_round(payload.model_dump())
    return {"message": "Round created successfully", "round": round_obj.to_dict()}


@router.get("/events/{event_id}/rounds")
async def list_event_rounds(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    rounds = await RoundService(db).list_rounds(event_id)
    return {"rounds": [r.to_dict() for r in rounds]}


@router.get("/rounds/upcoming")
async def list_upcoming_rounds(
    category: Optional[str] = Query(None, description="Event category"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    """Upcoming rounds across all events, soonest first."""
    rounds = await RoundService(db).list_upcoming_rounds(
        category=category,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    return {"rounds": rounds}


@router.get("/rounds/{round_id}")
async def get_round(
    round_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    round_obj = await RoundService(db).get_round(round_id)
    return {"round": round_obj.to_dict()}


@router.put("/rounds/{round_id}")
async def update_round(
    round_id: int,
    payload: RoundUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    service = RoundService(db)
    round_obj = await service.get_round(round_id)
    ensure_event_manager(actor, await service.get_event(round_obj.event_id))

    updated = await service.update_round(round_id, payload.model_dump(exclude_unset=True))
    return {"message": "Round updated successfully", "round": updated.to_dict()}


@router.delete("/rounds/{round_id}")
async def delete_round(
    round_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    service = RoundService(db)
    round_obj = await service.get_round(round_id)
    ensure_event_manager(actor, await service.get_event(round_obj.event_id))

    removed = await service.delete_round(round_id)
    return {"message": "Round deleted successfully", **removed}
