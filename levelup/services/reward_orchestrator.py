"""
Reward orchestrator — turns task status changes into XP, streaks,
bonuses, levels and achievements.

Flow (award)
------------
  validate -> read stored version -> dedup -> streak transition (+ streak bonus)
  -> daily goal check (+ daily goal bonus) -> level recompute
  -> optimistic snapshot update -> durable commit
  -> on failure: restore the pre-call snapshot, stop
  -> on success: evaluate achievements, persist unlocks, notify

Revoke mirrors award's apply / commit / rollback but only appends one
negative `task_revoked` event; streaks and achievements are kept.

Concurrency
-----------
Operations for one subject are serialized by a subject lock, so no
operation reads the old totals while another is still committing. Each
operation reads the stored state version before anything else and the
commit compare-and-swaps on it, which covers writers in other processes:
a commit landing after the first read makes the late writer roll back.

Snapshot reads never wait on the subject lock. They compare the cached
version with the stored one and reload when another process has
committed since.

Reward constants
----------------
  task=15, event=25, study=50 base XP
  streak bonus 15 (streak >= 2, first completion of the day)
  daily goal bonus 100 on exactly the 5th completion of a day
"""
from __future__ import annotations

import enum
import logging
import threading
import zlib
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from levelup.core.config import settings
from levelup.core.errors import (
    AchievementPersistError,
    CommitFailureError,
    DuplicateAwardError,
    RevokeNotFoundError,
    RewardValidationError,
)
from levelup.models.experience_event import ExperienceReason, ItemType
from levelup.services import notifications
from levelup.services.achievements import (
    ACHIEVEMENTS,
    GamificationState,
    evaluate_achievements,
)
from levelup.services.ledger_store import (
    AchievementRecord,
    LedgerEntry,
    LedgerStore,
    NewEvent,
    StoredProgression,
)
from levelup.services.notifications import Notification
from levelup.services.progression import level_from_xp
from levelup.services.snapshot_cache import ClientSnapshot, SnapshotCache
from levelup.services.streak import StreakState, advance_streak

logger = logging.getLogger(__name__)


XP_REWARDS: dict[str, int] = {
    ItemType.task.value: 15,
    ItemType.event.value: 25,
    ItemType.study.value: 50,
}
STREAK_BONUS = 15
DAILY_GOAL_BONUS = 100
DAILY_GOAL_TASK_COUNT = 5

COMPLETED_STATUS = "completed"

MAX_SUBJECT_ID_LENGTH = 64
MAX_TASK_ID_LENGTH = 128


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class OutcomeStatus(str, enum.Enum):
    applied = "applied"
    duplicate = "duplicate"
    not_found = "not_found"
    rolled_back = "rolled_back"
    ignored = "ignored"


@dataclass
class RewardOutcome:
    """What an award / revoke / status change did."""
    status: OutcomeStatus
    subject_id: str
    task_id: Optional[str]
    snapshot: ClientSnapshot
    xp_delta: int = 0
    breakdown: list[tuple[str, int]] = field(default_factory=list)
    leveled_up: bool = False
    unlocked: list[str] = field(default_factory=list)
    notifications: list[Notification] = field(default_factory=list)
    error: Optional[CommitFailureError] = None


@dataclass(frozen=True)
class TaskStatusChange:
    task_id: str
    old_status: str
    new_status: str
    importance: Optional[str] = None
    item_type: str = ItemType.task.value


@dataclass(frozen=True)
class ReconcileResult:
    subject_id: str
    changed: bool
    before: StoredProgression
    after: StoredProgression


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _validate_subject(subject_id) -> str:
    if not isinstance(subject_id, str) or not subject_id.strip():
        raise RewardValidationError("subject_id", "subject_id must be a non-empty string")
    subject_id = subject_id.strip()
    if len(subject_id) > MAX_SUBJECT_ID_LENGTH:
        raise RewardValidationError(
            "subject_id", f"subject_id must be at most {MAX_SUBJECT_ID_LENGTH} characters"
        )
    return subject_id


def _validate_task_id(task_id) -> str:
    if not isinstance(task_id, str) or not task_id.strip():
        raise RewardValidationError("task_id", "task_id must be a non-empty string")
    task_id = task_id.strip()
    if len(task_id) > MAX_TASK_ID_LENGTH:
        raise RewardValidationError(
            "task_id", f"task_id must be at most {MAX_TASK_ID_LENGTH} characters"
        )
    return task_id


def _validate_item_type(item_type) -> str:
    value = item_type.value if isinstance(item_type, ItemType) else item_type
    if value not in XP_REWARDS:
        raise RewardValidationError(
            "item_type",
            f"item_type must be one of {sorted(XP_REWARDS)}, got {item_type!r}",
        )
    return value


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _ensure_not_rewarded(store: LedgerStore, subject_id: str, task_id: str) -> None:
    if store.has_completion(subject_id, task_id):
        raise DuplicateAwardError(subject_id, task_id)


def _outstanding_amount(store: LedgerStore, subject_id: str, task_id: str) -> int:
    amount = store.outstanding_for_task(subject_id, task_id)
    if amount <= 0:
        raise RevokeNotFoundError(subject_id, task_id)
    return amount


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class RewardOrchestrator:
    """
    Holds the snapshot cache and the subject locks. The ledger store is
    passed into every call because it is bound to the caller's DB session.

    Subjects are hashed onto a fixed set of locks, so memory stays bounded
    however many subjects a worker sees; two subjects sharing a stripe
    simply take turns.
    """

    def __init__(
        self,
        cache: Optional[SnapshotCache] = None,
        clock: Callable[[], datetime] = _utcnow,
        lock_stripes: Optional[int] = None,
    ):
        self.cache = cache or SnapshotCache()
        self._clock = clock
        self._locks = tuple(
            threading.Lock() for _ in range(lock_stripes or settings.SUBJECT_LOCK_STRIPES)
        )

    def _subject_lock(self, subject_id: str) -> threading.Lock:
        return self._locks[zlib.crc32(subject_id.encode("utf-8")) % len(self._locks)]

    # --- snapshot access ---

    def _load(self, store: LedgerStore, subject_id: str) -> ClientSnapshot:
        self.cache.begin_loading(subject_id)
        try:
            ledger = store.fetch(subject_id, self.cache.recent_limit)
        except Exception:
            self.cache.evict(subject_id)
            raise
        return self.cache.load(subject_id, ledger)

    def _ensure_loaded(self, store: LedgerStore, subject_id: str) -> ClientSnapshot:
        """Fetch durable state into the cache on first use. Caller holds the subject lock."""
        if self.cache.is_loaded(subject_id):
            return self.cache.get(subject_id)
        return self._load(store, subject_id)

    def _sync(self, store: LedgerStore, subject_id: str) -> StoredProgression:
        """
        Read the durable state the operation will compare-and-swap against
        and reload the cache if it holds another version. Must be the
        operation's first store read. Caller holds the subject lock.
        """
        stored = store.get_state(subject_id)
        cached = self.cache.get(subject_id)
        if cached.loading or cached.version != stored.version:
            self._load(store, subject_id)
        return stored

    def snapshot(self, store: LedgerStore, subject_id: str) -> ClientSnapshot:
        """
        Current snapshot. The first call for a subject loads it from the
        store; later calls reload when another process has committed since.
        While this process has an operation in flight for the subject the
        cached snapshot is returned without waiting.
        """
        subject_id = _validate_subject(subject_id)
        lock = self._subject_lock(subject_id)
        if self.cache.is_loaded(subject_id):
            cached = self.cache.get(subject_id)
            if store.get_state(subject_id).version == cached.version:
                return cached
            if not lock.acquire(blocking=False):
                return cached
            try:
                return self._load(store, subject_id)
            finally:
                lock.release()
        with lock:
            return self._ensure_loaded(store, subject_id)

    def peek(self, subject_id: str) -> ClientSnapshot:
        """Cached snapshot without touching the store (loading=True if never fetched)."""
        return self.cache.get(_validate_subject(subject_id))

    def refresh(self, store: LedgerStore, subject_id: str) -> ClientSnapshot:
        subject_id = _validate_subject(subject_id)
        with self._subject_lock(subject_id):
            return self._load(store, subject_id)

    def dismiss_level_up(self, subject_id: str) -> ClientSnapshot:
        return self.cache.dismiss_level_up(_validate_subject(subject_id))

    # --- two-phase apply ---

    def _apply_optimistic(
        self,
        subject_id: str,
        events: list[NewEvent],
        new_state: StoredProgression,
        now: datetime,
        today: date,
        level_up_to: Optional[int],
    ) -> ClientSnapshot:
        """Install the predicted snapshot; returns the one it replaced."""
        optimistic = tuple(
            LedgerEntry(
                subject_id=subject_id,
                amount=e.amount,
                reason=e.reason,
                task_id=e.task_id,
                item_type=e.item_type,
                day=today,
                created_at=now,
            )
            for e in reversed(events)
        )

        def predict(current: ClientSnapshot) -> ClientSnapshot:
            return replace(
                current,
                total_xp=new_state.total_xp,
                level=new_state.level,
                streak=new_state.streak,
                last_active_date=new_state.last_active_date,
                recent_events=self.cache.window(optimistic, current.recent_events),
                pending_level_up=level_up_to if level_up_to is not None else current.pending_level_up,
                version=new_state.version + 1,
            )

        previous, _ = self.cache.update(subject_id, predict)
        return previous

    def _commit(
        self,
        store: LedgerStore,
        subject_id: str,
        events: list[NewEvent],
        new_state: StoredProgression,
        expected_version: int,
        now: datetime,
        today: date,
        previous: ClientSnapshot,
    ) -> tuple[LedgerEntry, ...]:
        """Commit or put `previous` back. Raises CommitFailureError after restoring."""
        try:
            committed = store.append(subject_id, events, new_state, expected_version, now, today)
        except CommitFailureError:
            self.cache.restore(subject_id, previous)
            logger.warning(
                "Commit failed for %s; snapshot restored to total_xp=%d level=%d",
                subject_id, previous.total_xp, previous.level,
            )
            raise

        # Swap the optimistic rows for the committed ones (which carry ids).
        newest = tuple(reversed(committed))
        self.cache.update(subject_id, lambda current: replace(
            current,
            recent_events=self.cache.window(newest, previous.recent_events),
        ))
        return committed

    # --- achievements ---

    def _unlock_achievements(
        self,
        store: LedgerStore,
        subject_id: str,
        state: StoredProgression,
        daily_count: int,
        now: datetime,
    ) -> list[str]:
        """Runs after the award is durable; failures here are logged, never raised."""
        try:
            item_types = store.completed_item_types(subject_id)
            total_completed = store.count_completions(subject_id)
        except SQLAlchemyError:
            logger.error("Could not evaluate achievements for %s", subject_id, exc_info=True)
            return []

        gamification = GamificationState(
            total_xp=state.total_xp,
            level=state.level,
            streak=state.streak,
            total_tasks_completed=total_completed,
            daily_tasks_completed=daily_count,
            has_completed_task=ItemType.task.value in item_types,
            has_completed_event_task=ItemType.event.value in item_types,
            has_completed_study_task=ItemType.study.value in item_types,
        )
        newly = evaluate_achievements(gamification, self.cache.get(subject_id).unlocked_ids)
        if not newly:
            return []

        try:
            records: tuple[AchievementRecord, ...] = store.insert_achievements(
                subject_id, [d.id for d in newly], now
            )
        except AchievementPersistError as exc:
            # The award stands; the unlock is picked up again on the next award.
            logger.error("Could not persist achievements %s for %s", exc.details.get("achievement_ids"), subject_id)
            return []

        inserted = {r.achievement_id for r in records}
        self.cache.update(subject_id, lambda current: replace(
            current,
            unlocked_achievements=current.unlocked_achievements + tuple(records),
        ))
        return [d.id for d in ACHIEVEMENTS if d.id in inserted]

    # --- public operations ---

    def award(
        self,
        store: LedgerStore,
        subject_id: str,
        task_id: str,
        item_type: str,
    ) -> RewardOutcome:
        subject_id = _validate_subject(subject_id)
        task_id = _validate_task_id(task_id)
        item_type = _validate_item_type(item_type)

        with self._subject_lock(subject_id):
            stored = self._sync(store, subject_id)
            try:
                _ensure_not_rewarded(store, subject_id, task_id)
            except DuplicateAwardError:
                logger.debug("Task %s already rewarded for %s; skipping", task_id, subject_id)
                return RewardOutcome(
                    status=OutcomeStatus.duplicate,
                    subject_id=subject_id,
                    task_id=task_id,
                    snapshot=self.cache.get(subject_id),
                )

            now = self._clock()
            today = now.date()

            base_xp = XP_REWARDS[item_type]
            events = [NewEvent(
                amount=base_xp,
                reason=ExperienceReason.task_complete.value,
                task_id=task_id,
                item_type=item_type,
            )]

            transition = advance_streak(
                StreakState(streak=stored.streak, last_active_date=stored.last_active_date),
                today,
            )
            if transition.bonus_granted:
                events.append(NewEvent(amount=STREAK_BONUS, reason=ExperienceReason.streak_bonus.value))

            # Counted from the ledger on every call; there is no stored daily counter.
            daily_count = store.count_completions(subject_id, today) + 1
            if daily_count == DAILY_GOAL_TASK_COUNT:
                events.append(NewEvent(amount=DAILY_GOAL_BONUS, reason=ExperienceReason.daily_goal.value))

            xp_delta = sum(e.amount for e in events)
            new_total = stored.total_xp + xp_delta
            new_level = level_from_xp(new_total)
            leveled_up = new_level > stored.level
            new_state = StoredProgression(
                total_xp=new_total,
                level=new_level,
                streak=transition.state.streak,
                last_active_date=transition.state.last_active_date,
                version=stored.version,
            )

            previous = self._apply_optimistic(
                subject_id, events, new_state, now, today,
                level_up_to=new_level if leveled_up else None,
            )
            try:
                self._commit(store, subject_id, events, new_state, stored.version, now, today, previous)
            except CommitFailureError as exc:
                return RewardOutcome(
                    status=OutcomeStatus.rolled_back,
                    subject_id=subject_id,
                    task_id=task_id,
                    snapshot=self.cache.get(subject_id),
                    notifications=[notifications.commit_failed()],
                    error=exc,
                )

            breakdown = [(e.reason, e.amount) for e in events]
            unlocked = self._unlock_achievements(store, subject_id, new_state, daily_count, now)

            result_notifications = [notifications.xp_breakdown(item_type, breakdown)]
            result_notifications.extend(
                notifications.achievement_unlocked(d) for d in ACHIEVEMENTS if d.id in unlocked
            )
            if leveled_up:
                result_notifications.append(notifications.level_up(new_level))
                logger.info("Subject %s reached level %d", subject_id, new_level)

            logger.info(
                "Awarded %d XP to %s for task %s (%s); total=%d streak=%d",
                xp_delta, subject_id, task_id, item_type, new_total, new_state.streak,
            )
            return RewardOutcome(
                status=OutcomeStatus.applied,
                subject_id=subject_id,
                task_id=task_id,
                snapshot=self.cache.get(subject_id),
                xp_delta=xp_delta,
                breakdown=breakdown,
                leveled_up=leveled_up,
                unlocked=unlocked,
                notifications=result_notifications,
            )

    def revoke(self, store: LedgerStore, subject_id: str, task_id: str) -> RewardOutcome:
        subject_id = _validate_subject(subject_id)
        task_id = _validate_task_id(task_id)

        with self._subject_lock(subject_id):
            stored = self._sync(store, subject_id)
            try:
                revoke_amount = _outstanding_amount(store, subject_id, task_id)
            except RevokeNotFoundError:
                logger.debug("Nothing to revoke for task %s of %s", task_id, subject_id)
                return RewardOutcome(
                    status=OutcomeStatus.not_found,
                    subject_id=subject_id,
                    task_id=task_id,
                    snapshot=self.cache.get(subject_id),
                )

            now = self._clock()
            today = now.date()

            new_total = max(0, stored.total_xp - revoke_amount)
            new_state = replace(stored, total_xp=new_total, level=level_from_xp(new_total))
            events = [NewEvent(
                amount=-revoke_amount,
                reason=ExperienceReason.task_revoked.value,
                task_id=task_id,
            )]

            previous = self._apply_optimistic(subject_id, events, new_state, now, today, level_up_to=None)
            try:
                self._commit(store, subject_id, events, new_state, stored.version, now, today, previous)
            except CommitFailureError as exc:
                return RewardOutcome(
                    status=OutcomeStatus.rolled_back,
                    subject_id=subject_id,
                    task_id=task_id,
                    snapshot=self.cache.get(subject_id),
                    notifications=[notifications.commit_failed()],
                    error=exc,
                )

            logger.info(
                "Revoked %d XP from %s for task %s; total=%d level=%d",
                revoke_amount, subject_id, task_id, new_total, new_state.level,
            )
            return RewardOutcome(
                status=OutcomeStatus.applied,
                subject_id=subject_id,
                task_id=task_id,
                snapshot=self.cache.get(subject_id),
                xp_delta=-revoke_amount,
                breakdown=[(ExperienceReason.task_revoked.value, -revoke_amount)],
                notifications=[notifications.xp_revoked(revoke_amount, task_id)],
            )

    def handle_status_change(
        self,
        store: LedgerStore,
        subject_id: str,
        change: TaskStatusChange,
    ) -> RewardOutcome:
        """Award on a move into "completed", revoke on a move out of it."""
        if change.new_status == COMPLETED_STATUS and change.old_status != COMPLETED_STATUS:
            return self.award(store, subject_id, change.task_id, change.item_type)
        if change.old_status == COMPLETED_STATUS and change.new_status != COMPLETED_STATUS:
            return self.revoke(store, subject_id, change.task_id)
        subject_id = _validate_subject(subject_id)
        return RewardOutcome(
            status=OutcomeStatus.ignored,
            subject_id=subject_id,
            task_id=change.task_id,
            snapshot=self.cache.get(subject_id),
        )

    def reconcile(self, store: LedgerStore, subject_id: str) -> ReconcileResult:
        """
        Rebuild total XP and level from the ledger sum. Streak fields are
        left alone. Raises CommitFailureError if the fix cannot be saved.
        """
        subject_id = _validate_subject(subject_id)
        with self._subject_lock(subject_id):
            stored = store.get_state(subject_id)
            total = max(0, store.ledger_total(subject_id))
            fixed = replace(stored, total_xp=total, level=level_from_xp(total))
            if (fixed.total_xp, fixed.level) == (stored.total_xp, stored.level):
                return ReconcileResult(subject_id=subject_id, changed=False, before=stored, after=stored)

            now = self._clock()
            store.append(subject_id, [], fixed, stored.version, now, now.date())
            logger.warning(
                "Reconciled %s: total_xp %d -> %d, level %d -> %d",
                subject_id, stored.total_xp, fixed.total_xp, stored.level, fixed.level,
            )
            self._load(store, subject_id)
            return ReconcileResult(
                subject_id=subject_id,
                changed=True,
                before=stored,
                after=replace(fixed, version=stored.version + 1),
            )
