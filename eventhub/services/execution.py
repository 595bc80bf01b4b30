"""
Execution strategies for multi-row workflow writes.

Two deliberately different policies:

- ``run_atomic``: one transaction, abort everything on the first error.
  Used for score submission.
- ``run_best_effort``: continue past per-item errors and collect them.
  Used for winner declaration, where one bad id must not block the batch.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.errors import APIError, UnexpectedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchOutcome:
    succeeded: List[Any] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


async def run_atomic(db: AsyncSession, work: Callable[[], Awaitable[T]], label: str) -> T:
    """
    Run ``work`` and commit, or roll back every write it made.

    Domain errors propagate unchanged; data-store errors are wrapped in
    UnexpectedError with the original message preserved.
    """
    try:
        result = await work()
        await db.commit()
    except APIError as e:
        await db.rollback()
        logger.warning(f"[{label}] rolled back: {e.code} - {e.message}")
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        error = UnexpectedError(f"{label} failed and was rolled back", original=e)
        logger.error(f"[{label}] [{error.log_id}] rolled back after data store error: {e}")
        raise error from e
    return result


async def run_best_effort(
    items: Iterable[T],
    action: Callable[[T], Awaitable[Any]],
    label: str,
    db: Optional[AsyncSession] = None
) -> BatchOutcome:
    """
    Apply ``action`` to each item; log and record failures, never abort.

    With ``db`` each item runs inside its own SAVEPOINT and is flushed
    there, so a row the data store rejects rolls back alone and the
    writes of the other items stay pending for the caller's commit.
    Actions that commit themselves must be run without ``db``.
    """
    outcome = BatchOutcome()
    for item in items:
        try:
            if db is None:
                await action(item)
            else:
                async with db.begin_nested():
                    await action(item)
                    await db.flush()
        except Exception as e:
            message = e.message if isinstance(e, APIError) else str(e)
            logger.warning(f"[{label}] item={item} failed: {type(e).__name__}: {message}")
            outcome.failed.append({"id": item, "error": message})
        else:
            outcome.succeeded.append(item)
    return outcome


async def commit_or_raise(db: AsyncSession, label: str) -> None:
    """Commit, wrapping a data-store failure in UnexpectedError."""
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        error = UnexpectedError(f"{label} commit failed and was rolled back", original=e)
        logger.error(f"[{label}] [{error.log_id}] commit failed: {e}")
        raise error from e
