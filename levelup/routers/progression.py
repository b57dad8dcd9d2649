"""
Progression router.

GET  /progression/{subject_id}
GET  /progression/{subject_id}/level
GET  /progression/{subject_id}/achievements
POST /progression/{subject_id}/award
POST /progression/{subject_id}/revoke
POST /progression/{subject_id}/status-change
POST /progression/{subject_id}/level-up/dismiss
POST /progression/{subject_id}/reconcile
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Path

from levelup.core.errors import CommitFailureError
from levelup.routers.deps import get_ledger_store, get_orchestrator
from levelup.routers.ledger import entry_to_response
from levelup.schemas.achievements import AchievementProgressResponse, AchievementStatusResponse
from levelup.schemas.common import ErrorResponse
from levelup.schemas.progression import (
    AwardRequest,
    BreakdownItem,
    LevelProgressResponse,
    NotificationResponse,
    ReconcileResponse,
    RevokeRequest,
    RewardOutcomeResponse,
    SnapshotResponse,
    StatusChangeRequest,
    UnlockedAchievementResponse,
)
from levelup.services.achievements import ACHIEVEMENTS
from levelup.services.ledger_store import SqlLedgerStore
from levelup.services.progression import progress_in_level
from levelup.services.reward_orchestrator import (
    OutcomeStatus,
    RewardOrchestrator,
    RewardOutcome,
    TaskStatusChange,
)
from levelup.services.snapshot_cache import ClientSnapshot

router = APIRouter(prefix="/progression", tags=["progression"])

SubjectId = Annotated[str, Path(
    min_length=1,
    max_length=64,
    description="Account whose progression is tracked.",
    examples=["user-42"],
)]


# --- serialization helpers ---

def _snapshot_to_response(s: ClientSnapshot) -> SnapshotResponse:
    return SnapshotResponse(
        subject_id=s.subject_id,
        total_xp=s.total_xp,
        level=s.level,
        streak=s.streak,
        last_active_date=str(s.last_active_date) if s.last_active_date else None,
        recent_events=[entry_to_response(e) for e in s.recent_events],
        unlocked_achievements=[
            UnlockedAchievementResponse(
                id=a.id,
                achievement_id=a.achievement_id,
                unlocked_at=a.unlocked_at.isoformat() if a.unlocked_at else "",
            )
            for a in s.unlocked_achievements
        ],
        pending_level_up=s.pending_level_up,
        loading=s.loading,
    )


def _outcome_to_response(outcome: RewardOutcome) -> RewardOutcomeResponse:
    """Rolled-back outcomes become a 503 so clients know the write was lost."""
    if outcome.status == OutcomeStatus.rolled_back:
        raise outcome.error or CommitFailureError(outcome.subject_id)
    return RewardOutcomeResponse(
        status=outcome.status.value,
        task_id=outcome.task_id,
        xp_delta=outcome.xp_delta,
        breakdown=[BreakdownItem(reason=r, amount=a) for r, a in outcome.breakdown],
        leveled_up=outcome.leveled_up,
        unlocked=outcome.unlocked,
        notifications=[
            NotificationResponse(kind=n.kind.value, message=n.message, data=n.data)
            for n in outcome.notifications
        ],
        snapshot=_snapshot_to_response(outcome.snapshot),
    )


_COMMIT_FAILED = {503: {"model": ErrorResponse, "description": "Durable commit failed; totals were restored."}}
_INVALID = {422: {"model": ErrorResponse, "description": "Invalid subject, task id or item type."}}


# --- reads ---

@router.get(
    "/{subject_id}",
    response_model=SnapshotResponse,
    summary="Current progression snapshot",
)
def get_snapshot(
    subject_id: SubjectId,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    """
    Return total XP, level, streak, the recent ledger window and unlocked
    achievements. The first request for a subject loads it from the
    database; later requests are served from memory and never wait on an
    in-flight award.
    """
    return _snapshot_to_response(orchestrator.snapshot(store, subject_id))


@router.get(
    "/{subject_id}/level",
    response_model=LevelProgressResponse,
    summary="Progress inside the current level",
)
def get_level_progress(
    subject_id: SubjectId,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    snapshot = orchestrator.snapshot(store, subject_id)
    progress = progress_in_level(snapshot.total_xp)
    return LevelProgressResponse(
        total_xp=snapshot.total_xp,
        level=progress.level,
        current=progress.current,
        required=progress.required,
        percent=round(progress.percent, 2),
    )


@router.get(
    "/{subject_id}/achievements",
    response_model=AchievementProgressResponse,
    summary="Achievement catalog with this subject's unlock status",
)
def get_achievement_progress(
    subject_id: SubjectId,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    snapshot = orchestrator.snapshot(store, subject_id)
    unlocked_at = {
        a.achievement_id: a.unlocked_at.isoformat() if a.unlocked_at else None
        for a in snapshot.unlocked_achievements
    }
    items = [
        AchievementStatusResponse(
            id=d.id,
            title=d.title,
            description=d.description,
            icon=d.icon,
            unlocked=d.id in unlocked_at,
            unlocked_at=unlocked_at.get(d.id),
        )
        for d in ACHIEVEMENTS
    ]
    return AchievementProgressResponse(
        subject_id=snapshot.subject_id,
        unlocked=sum(1 for i in items if i.unlocked),
        total=len(items),
        items=items,
    )


# --- writes ---

@router.post(
    "/{subject_id}/award",
    response_model=RewardOutcomeResponse,
    summary="Award XP for a completed item",
    responses={**_INVALID, **_COMMIT_FAILED},
)
def award(
    payload: AwardRequest,
    subject_id: SubjectId,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    """
    Award base XP for the item type plus any streak / daily-goal bonus.

    Awarding a task that was already rewarded is a no-op with
    `status="duplicate"`.
    """
    outcome = orchestrator.award(store, subject_id, payload.task_id, payload.item_type)
    return _outcome_to_response(outcome)


@router.post(
    "/{subject_id}/revoke",
    response_model=RewardOutcomeResponse,
    summary="Take back the XP of an item that is no longer completed",
    responses={**_INVALID, **_COMMIT_FAILED},
)
def revoke(
    payload: RevokeRequest,
    subject_id: SubjectId,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    """
    Append a negative ledger entry equal to the item's award. Streaks and
    achievements are kept. Nothing to revoke → `status="not_found"`.
    """
    outcome = orchestrator.revoke(store, subject_id, payload.task_id)
    return _outcome_to_response(outcome)


@router.post(
    "/{subject_id}/status-change",
    response_model=RewardOutcomeResponse,
    summary="React to a task moving between board columns",
    responses={**_INVALID, **_COMMIT_FAILED},
)
def status_change(
    payload: StatusChangeRequest,
    subject_id: SubjectId,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    """
    Into `completed` → award; out of `completed` → revoke; any other move
    returns `status="ignored"`.
    """
    change = TaskStatusChange(
        task_id=payload.task_id,
        old_status=payload.old_status,
        new_status=payload.new_status,
        importance=payload.importance,
        item_type=payload.item_type,
    )
    outcome = orchestrator.handle_status_change(store, subject_id, change)
    return _outcome_to_response(outcome)


@router.post(
    "/{subject_id}/level-up/dismiss",
    response_model=SnapshotResponse,
    summary="Clear the pending level-up banner",
)
def dismiss_level_up(
    subject_id: SubjectId,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
):
    return _snapshot_to_response(orchestrator.dismiss_level_up(subject_id))


@router.post(
    "/{subject_id}/reconcile",
    response_model=ReconcileResponse,
    summary="Rebuild total XP and level from the ledger",
    responses=_COMMIT_FAILED,
)
def reconcile(
    subject_id: SubjectId,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    """
    Recompute `total_xp = max(0, sum(amount))` and the level from the
    ledger and save them if the stored state drifted.
    """
    result = orchestrator.reconcile(store, subject_id)
    return ReconcileResponse(
        subject_id=result.subject_id,
        changed=result.changed,
        total_xp_before=result.before.total_xp,
        total_xp_after=result.after.total_xp,
        level_before=result.before.level,
        level_after=result.after.level,
    )
