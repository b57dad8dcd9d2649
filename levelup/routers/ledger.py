"""
XP ledger router.

GET /progression/{subject_id}/events   — the subject's XP ledger (paginated, newest first)
"""
from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Query

from levelup.models.experience_event import ExperienceReason
from levelup.routers.deps import get_ledger_store
from levelup.schemas.ledger import LedgerEventListResponse, LedgerEventResponse
from levelup.services.ledger_store import LedgerEntry, SqlLedgerStore

router = APIRouter(prefix="/progression", tags=["ledger"])


# ---------------------------------------------------------------------------
# Serialization helper
# ---------------------------------------------------------------------------

def entry_to_response(entry: LedgerEntry) -> LedgerEventResponse:
    return LedgerEventResponse(
        id=entry.id,
        amount=entry.amount,
        reason=entry.reason,
        task_id=entry.task_id,
        item_type=entry.item_type,
        day=str(entry.day),
        created_at=entry.created_at.isoformat() if entry.created_at else "",
    )


# ---------------------------------------------------------------------------
# GET /progression/{subject_id}/events
# ---------------------------------------------------------------------------

@router.get(
    "/{subject_id}/events",
    response_model=LedgerEventListResponse,
    summary="List XP ledger events (newest first)",
    responses={
        200: {"description": "Paginated slice of the subject's XP ledger."},
    },
)
def list_ledger_events(
    subject_id: Annotated[str, Path(min_length=1, max_length=64)],
    reason: Optional[ExperienceReason] = Query(
        default=None,
        description=(
            'Filter by reason: "task_complete", "streak_bonus", '
            '"daily_goal", "task_revoked". Omit for all.'
        ),
        examples=["task_complete"],
    ),
    limit: int = Query(default=50, ge=1, le=200, description="Page size."),
    offset: int = Query(default=0, ge=0, description="Skip N items."),
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    """
    Return the append-only XP ledger for a subject.

    ### Reasons
    | Reason | Amount |
    |---|---|
    | `task_complete` | +15 task, +25 event, +50 study |
    | `streak_bonus`  | +15 on the first completion of a day when the streak is ≥ 2 |
    | `daily_goal`    | +100 on exactly the 5th completion of a day |
    | `task_revoked`  | minus the original award when a task leaves "completed" |
    """
    total, items = store.list_events(
        subject_id,
        reason=reason.value if reason else None,
        limit=limit,
        offset=offset,
    )
    return LedgerEventListResponse(
        total=total,
        items=[entry_to_response(e) for e in items],
    )
