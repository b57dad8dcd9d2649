"""
Ledger store — durable home of the XP ledger, progression state and
unlocked achievements.

The reward orchestrator only talks to the abstract `LedgerStore`; every
call either succeeds as a whole or raises. `SqlLedgerStore` is the
SQLAlchemy implementation used by the API (one instance per request
session).

Public API
----------
fetch(subject_id, limit)                                  -> LedgerSnapshot
get_state(subject_id)                                     -> StoredProgression
has_completion(subject_id, task_id)                       -> bool
outstanding_for_task(subject_id, task_id)                 -> int
count_completions(subject_id, day=None)                   -> int
completed_item_types(subject_id)                          -> set[str]
append(subject_id, events, new_state, expected_version, now, day) -> tuple[LedgerEntry, ...]
insert_achievements(subject_id, achievement_ids, unlocked_at) -> tuple[AchievementRecord, ...]
list_events(subject_id, reason, limit, offset)            -> (total, list[LedgerEntry])
ledger_total(subject_id)                                  -> int
"""
from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Sequence

from sqlalchemy import and_, func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from levelup.core.config import settings
from levelup.core.errors import AchievementPersistError, CommitFailureError
from levelup.models.experience_event import ExperienceEvent, ExperienceReason, ItemType
from levelup.models.progression_state import ProgressionState
from levelup.models.unlocked_achievement import UnlockedAchievement

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types: plain dataclasses, no ORM objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LedgerEntry:
    subject_id: str
    amount: int
    reason: str
    task_id: Optional[str]
    item_type: Optional[str]
    day: date
    created_at: datetime
    id: Optional[int] = None   # None until the row is committed


@dataclass(frozen=True)
class NewEvent:
    """An event the orchestrator wants appended."""
    amount: int
    reason: str
    task_id: Optional[str] = None
    item_type: Optional[str] = None


@dataclass(frozen=True)
class StoredProgression:
    total_xp: int = 0
    level: int = 1
    streak: int = 0
    last_active_date: Optional[date] = None
    version: int = 0           # 0 means no row has been written yet


@dataclass(frozen=True)
class AchievementRecord:
    achievement_id: str
    unlocked_at: datetime
    id: Optional[int] = None


@dataclass(frozen=True)
class LedgerSnapshot:
    state: StoredProgression
    recent_events: tuple[LedgerEntry, ...] = field(default_factory=tuple)
    unlocked: tuple[AchievementRecord, ...] = field(default_factory=tuple)


def _ev(v) -> Optional[str]:
    if v is None:
        return None
    return v.value if hasattr(v, "value") else str(v)


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

class LedgerStore(abc.ABC):

    @abc.abstractmethod
    def fetch(self, subject_id: str, limit: int) -> LedgerSnapshot: ...

    @abc.abstractmethod
    def get_state(self, subject_id: str) -> StoredProgression: ...

    @abc.abstractmethod
    def has_completion(self, subject_id: str, task_id: str) -> bool:
        """True if a positive task_complete event exists for task_id."""

    @abc.abstractmethod
    def outstanding_for_task(self, subject_id: str, task_id: str) -> int:
        """Positive task_complete amounts for task_id minus what was already revoked."""

    @abc.abstractmethod
    def count_completions(self, subject_id: str, day: Optional[date] = None) -> int:
        """Number of positive task_complete events, optionally for one day."""

    @abc.abstractmethod
    def completed_item_types(self, subject_id: str) -> set[str]: ...

    @abc.abstractmethod
    def append(
        self,
        subject_id: str,
        events: Sequence[NewEvent],
        new_state: StoredProgression,
        expected_version: int,
        now: datetime,
        day: date,
    ) -> tuple[LedgerEntry, ...]:
        """
        Atomically append `events` and replace the progression state.
        Raises CommitFailureError if anything is rejected; nothing is
        written in that case.
        """

    @abc.abstractmethod
    def insert_achievements(
        self,
        subject_id: str,
        achievement_ids: Sequence[str],
        unlocked_at: datetime,
    ) -> tuple[AchievementRecord, ...]: ...

    @abc.abstractmethod
    def list_events(
        self,
        subject_id: str,
        reason: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[int, list[LedgerEntry]]: ...

    @abc.abstractmethod
    def ledger_total(self, subject_id: str) -> int:
        """Raw sum of every event amount for the subject."""


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

def _entry(row: ExperienceEvent) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,
        subject_id=row.subject_id,
        amount=row.amount,
        reason=_ev(row.reason),
        task_id=row.task_id,
        item_type=_ev(row.item_type),
        day=row.day,
        created_at=row.created_at,
    )


def _record(row: UnlockedAchievement) -> AchievementRecord:
    return AchievementRecord(
        id=row.id,
        achievement_id=row.achievement_id,
        unlocked_at=row.unlocked_at,
    )


def _state(row: Optional[ProgressionState]) -> StoredProgression:
    if row is None:
        return StoredProgression()
    return StoredProgression(
        total_xp=row.total_xp,
        level=row.level,
        streak=row.streak,
        last_active_date=row.last_active_date,
        version=row.version,
    )


class SqlLedgerStore(LedgerStore):

    def __init__(self, db: Session, achievement_retries: Optional[int] = None):
        self.db = db
        self.achievement_retries = (
            settings.ACHIEVEMENT_INSERT_RETRIES
            if achievement_retries is None
            else achievement_retries
        )

    # --- reads ---

    def _completions(self, subject_id: str):
        return self.db.query(ExperienceEvent).filter(
            ExperienceEvent.subject_id == subject_id,
            ExperienceEvent.reason == ExperienceReason.task_complete,
            ExperienceEvent.amount > 0,
        )

    def fetch(self, subject_id: str, limit: int) -> LedgerSnapshot:
        events = (
            self.db.query(ExperienceEvent)
            .filter(ExperienceEvent.subject_id == subject_id)
            .order_by(ExperienceEvent.created_at.desc(), ExperienceEvent.id.desc())
            .limit(limit)
            .all()
        )
        unlocked = (
            self.db.query(UnlockedAchievement)
            .filter(UnlockedAchievement.subject_id == subject_id)
            .order_by(UnlockedAchievement.id)
            .all()
        )
        return LedgerSnapshot(
            state=self.get_state(subject_id),
            recent_events=tuple(_entry(e) for e in events),
            unlocked=tuple(_record(u) for u in unlocked),
        )

    def get_state(self, subject_id: str) -> StoredProgression:
        row = (
            self.db.query(ProgressionState)
            .filter(ProgressionState.subject_id == subject_id)
            .populate_existing()
            .first()
        )
        return _state(row)

    def has_completion(self, subject_id: str, task_id: str) -> bool:
        return (
            self._completions(subject_id)
            .filter(ExperienceEvent.task_id == task_id)
            .with_entities(ExperienceEvent.id)
            .first()
            is not None
        )

    def outstanding_for_task(self, subject_id: str, task_id: str) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(ExperienceEvent.amount), 0))
            .filter(
                ExperienceEvent.subject_id == subject_id,
                ExperienceEvent.task_id == task_id,
                or_(
                    and_(
                        ExperienceEvent.reason == ExperienceReason.task_complete,
                        ExperienceEvent.amount > 0,
                    ),
                    ExperienceEvent.reason == ExperienceReason.task_revoked,
                ),
            )
            .scalar()
        )
        return int(total or 0)

    def count_completions(self, subject_id: str, day: Optional[date] = None) -> int:
        q = self._completions(subject_id)
        if day is not None:
            q = q.filter(ExperienceEvent.day == day)
        return q.count()

    def completed_item_types(self, subject_id: str) -> set[str]:
        rows = (
            self._completions(subject_id)
            .filter(ExperienceEvent.item_type.isnot(None))
            .with_entities(ExperienceEvent.item_type)
            .distinct()
            .all()
        )
        return {_ev(r[0]) for r in rows}

    def list_events(
        self,
        subject_id: str,
        reason: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[int, list[LedgerEntry]]:
        """Return (total, page) ordered newest first."""
        q = self.db.query(ExperienceEvent).filter(ExperienceEvent.subject_id == subject_id)
        if reason:
            q = q.filter(ExperienceEvent.reason == ExperienceReason(reason))
        total = q.count()
        items = (
            q.order_by(ExperienceEvent.created_at.desc(), ExperienceEvent.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return total, [_entry(e) for e in items]

    def ledger_total(self, subject_id: str) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(ExperienceEvent.amount), 0))
            .filter(ExperienceEvent.subject_id == subject_id)
            .scalar()
        )
        return int(total or 0)

    # --- writes ---

    def _write_state(
        self,
        subject_id: str,
        new_state: StoredProgression,
        expected_version: int,
    ) -> None:
        if expected_version == 0:
            # First write for this subject; the unique subject_id catches a racing insert.
            self.db.add(ProgressionState(
                subject_id=subject_id,
                total_xp=new_state.total_xp,
                level=new_state.level,
                streak=new_state.streak,
                last_active_date=new_state.last_active_date,
                version=1,
            ))
            self.db.flush()
            return

        result = self.db.execute(
            update(ProgressionState)
            .where(
                ProgressionState.subject_id == subject_id,
                ProgressionState.version == expected_version,
            )
            .values(
                total_xp=new_state.total_xp,
                level=new_state.level,
                streak=new_state.streak,
                last_active_date=new_state.last_active_date,
                version=expected_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise CommitFailureError(subject_id, reason="version_conflict")

    def append(
        self,
        subject_id: str,
        events: Sequence[NewEvent],
        new_state: StoredProgression,
        expected_version: int,
        now: datetime,
        day: date,
    ) -> tuple[LedgerEntry, ...]:
        rows = [
            ExperienceEvent(
                subject_id=subject_id,
                amount=e.amount,
                reason=ExperienceReason(e.reason),
                task_id=e.task_id,
                item_type=ItemType(e.item_type) if e.item_type else None,
                day=day,
                created_at=now,
            )
            for e in events
        ]
        try:
            self._write_state(subject_id, new_state, expected_version)
            self.db.add_all(rows)
            self.db.flush()
            entries = tuple(_entry(r) for r in rows)
            self.db.commit()
        except CommitFailureError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise CommitFailureError(subject_id, reason=type(exc).__name__) from exc
        return entries

    def insert_achievements(
        self,
        subject_id: str,
        achievement_ids: Sequence[str],
        unlocked_at: datetime,
    ) -> tuple[AchievementRecord, ...]:
        """
        Insert one row per id as a single batch. Ids that another writer
        already inserted are dropped and the batch is retried; other
        database errors are retried `achievement_retries` times.
        """
        pending = list(achievement_ids)
        attempts = 1 + max(0, self.achievement_retries)
        for attempt in range(1, attempts + 1):
            if not pending:
                return ()
            rows = [
                UnlockedAchievement(
                    subject_id=subject_id,
                    achievement_id=aid,
                    unlocked_at=unlocked_at,
                )
                for aid in pending
            ]
            try:
                self.db.add_all(rows)
                self.db.flush()
                records = tuple(_record(r) for r in rows)
                self.db.commit()
                return records
            except IntegrityError:
                self.db.rollback()
                existing = {
                    r[0]
                    for r in self.db.query(UnlockedAchievement.achievement_id)
                    .filter(UnlockedAchievement.subject_id == subject_id)
                    .all()
                }
                pending = [aid for aid in pending if aid not in existing]
                logger.info(
                    "Achievements already unlocked for %s; retrying with %s",
                    subject_id, pending,
                )
            except SQLAlchemyError:
                self.db.rollback()
                logger.warning(
                    "Achievement insert failed for %s (attempt %d/%d)",
                    subject_id, attempt, attempts, exc_info=True,
                )
        if not pending:
            return ()
        raise AchievementPersistError(subject_id, list(pending))
