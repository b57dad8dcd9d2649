"""
Client snapshot cache — the in-memory view display surfaces read.

Snapshots are immutable values; every change swaps in a new object under
a short lock. Reads never wait for a pending commit, and a rollback puts
back the exact object that was there before the operation started.

Each snapshot remembers the `progression_states.version` it reflects, so
a reader can tell when another process has committed since. The cache
holds at most `max_subjects` entries; the least recently written subject
is dropped first and simply reloads on its next read.
"""
from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Iterable, Optional

from levelup.core.config import settings
from levelup.services.ledger_store import AchievementRecord, LedgerEntry, LedgerSnapshot


@dataclass(frozen=True)
class ClientSnapshot:
    subject_id: str
    total_xp: int = 0
    level: int = 1
    streak: int = 0
    last_active_date: Optional[date] = None
    recent_events: tuple[LedgerEntry, ...] = ()
    unlocked_achievements: tuple[AchievementRecord, ...] = ()
    pending_level_up: Optional[int] = None
    loading: bool = False
    version: int = 0

    @property
    def unlocked_ids(self) -> frozenset[str]:
        return frozenset(a.achievement_id for a in self.unlocked_achievements)


class SnapshotCache:

    def __init__(self, recent_limit: Optional[int] = None, max_subjects: Optional[int] = None):
        self.recent_limit = recent_limit or settings.RECENT_EVENTS_LIMIT
        self.max_subjects = max_subjects or settings.SNAPSHOT_CACHE_SIZE
        self._lock = threading.Lock()
        self._snapshots: OrderedDict[str, ClientSnapshot] = OrderedDict()

    def __len__(self) -> int:
        return len(self._snapshots)

    def _put(self, subject_id: str, snapshot: ClientSnapshot) -> None:
        # Caller holds self._lock.
        self._snapshots[subject_id] = snapshot
        self._snapshots.move_to_end(subject_id)
        while len(self._snapshots) > self.max_subjects:
            self._snapshots.popitem(last=False)

    def get(self, subject_id: str) -> ClientSnapshot:
        """Current snapshot, or an empty loading placeholder if never fetched."""
        snapshot = self._snapshots.get(subject_id)
        if snapshot is None:
            return ClientSnapshot(subject_id=subject_id, loading=True)
        return snapshot

    def is_loaded(self, subject_id: str) -> bool:
        snapshot = self._snapshots.get(subject_id)
        return snapshot is not None and not snapshot.loading

    def begin_loading(self, subject_id: str) -> None:
        with self._lock:
            current = self._snapshots.get(subject_id)
            if current is None:
                self._put(subject_id, ClientSnapshot(subject_id=subject_id, loading=True))
            elif not current.loading:
                self._put(subject_id, replace(current, loading=True))

    def load(self, subject_id: str, ledger: LedgerSnapshot) -> ClientSnapshot:
        """Replace the snapshot with freshly fetched durable state."""
        with self._lock:
            current = self._snapshots.get(subject_id)
            snapshot = ClientSnapshot(
                subject_id=subject_id,
                total_xp=ledger.state.total_xp,
                level=ledger.state.level,
                streak=ledger.state.streak,
                last_active_date=ledger.state.last_active_date,
                recent_events=tuple(ledger.recent_events[: self.recent_limit]),
                unlocked_achievements=tuple(ledger.unlocked),
                pending_level_up=current.pending_level_up if current else None,
                loading=False,
                version=ledger.state.version,
            )
            self._put(subject_id, snapshot)
            return snapshot

    def replace(self, subject_id: str, snapshot: ClientSnapshot) -> Optional[ClientSnapshot]:
        """Install `snapshot` and return whatever it displaced."""
        with self._lock:
            previous = self._snapshots.get(subject_id)
            self._put(subject_id, snapshot)
            return previous

    def update(
        self,
        subject_id: str,
        fn: Callable[[ClientSnapshot], ClientSnapshot],
    ) -> tuple[ClientSnapshot, ClientSnapshot]:
        """
        Read-modify-write under the cache lock. `fn` gets the current
        snapshot (or a loading placeholder) and returns its successor.
        Returns (previous, new).
        """
        with self._lock:
            previous = self.get(subject_id)
            snapshot = fn(previous)
            self._put(subject_id, snapshot)
            return previous, snapshot

    def restore(self, subject_id: str, previous: Optional[ClientSnapshot]) -> None:
        with self._lock:
            if previous is None or previous.loading:
                self._snapshots.pop(subject_id, None)
            else:
                self._put(subject_id, previous)

    def dismiss_level_up(self, subject_id: str) -> ClientSnapshot:
        with self._lock:
            current = self._snapshots.get(subject_id)
            if current is None:
                return ClientSnapshot(subject_id=subject_id, loading=True)
            if current.pending_level_up is not None:
                current = replace(current, pending_level_up=None)
                self._snapshots[subject_id] = current
            return current

    def evict(self, subject_id: str) -> None:
        with self._lock:
            self._snapshots.pop(subject_id, None)

    def window(self, newest: Iterable[LedgerEntry], older: Iterable[LedgerEntry]) -> tuple[LedgerEntry, ...]:
        """Prepend `newest` to `older`, trimmed to the recent-events limit."""
        return (tuple(newest) + tuple(older))[: self.recent_limit]
