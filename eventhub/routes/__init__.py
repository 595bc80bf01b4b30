"""
eventhub/routes/__init__.py
Route registration
"""
from fastapi import APIRouter
from eventhub.routes import rounds, assignments, judging

router = APIRouter()

router.include_router(rounds.router)
router.include_router(assignments.router)
router.include_router(judging.router)
