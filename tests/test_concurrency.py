"""
Concurrent awards for one subject, each thread on its own DB session
(the way FastAPI's threadpool runs sync endpoints).
"""
from concurrent.futures import ThreadPoolExecutor

import pytest

from levelup.services.ledger_store import SqlLedgerStore
from levelup.services.reward_orchestrator import OutcomeStatus, RewardOrchestrator


def _run(session_factory, fn, *args):
    db = session_factory()
    try:
        return fn(SqlLedgerStore(db), *args)
    finally:
        db.close()


def test_parallel_awards_are_serialized(orchestrator, session_factory, store, subject_id):
    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(
            lambda i: _run(session_factory, orchestrator.award, subject_id, f"t{i}", "task"),
            range(8),
        ))

    assert all(o.status == OutcomeStatus.applied for o in outcomes)
    # 8 * 15 base + one daily goal; first day so no streak bonus.
    assert store.get_state(subject_id).total_xp == 8 * 15 + 100
    assert store.ledger_total(subject_id) == 8 * 15 + 100
    assert store.get_state(subject_id).version == 8
    assert orchestrator.peek(subject_id).total_xp == 8 * 15 + 100
    assert sum(1 for o in outcomes if ("daily_goal", 100) in o.breakdown) == 1
    assert sum(len(o.unlocked) for o in outcomes) == 1


def test_parallel_duplicate_awards_apply_once(orchestrator, session_factory, store, subject_id):
    with ThreadPoolExecutor(max_workers=6) as pool:
        outcomes = list(pool.map(
            lambda _: _run(session_factory, orchestrator.award, subject_id, "same", "study"),
            range(6),
        ))

    statuses = sorted(o.status.value for o in outcomes)
    assert statuses == ["applied"] + ["duplicate"] * 5
    assert store.count_completions(subject_id) == 1
    assert store.get_state(subject_id).total_xp == 50


def test_parallel_award_and_revoke(orchestrator, session_factory, store, subject_id):
    orchestrator.award(store, subject_id, "keep", "event")
    orchestrator.award(store, subject_id, "drop", "task")

    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = [
            pool.submit(_run, session_factory, orchestrator.revoke, subject_id, "drop"),
            pool.submit(_run, session_factory, orchestrator.revoke, subject_id, "drop"),
            pool.submit(_run, session_factory, orchestrator.award, subject_id, "new", "study"),
        ]
        outcomes = [f.result() for f in futures]

    revokes = sorted(o.status.value for o in outcomes[:2])
    assert revokes == ["applied", "not_found"]
    assert store.get_state(subject_id).total_xp == 25 + 50
    assert store.ledger_total(subject_id) == 25 + 50


# ---------------------------------------------------------------------------
# Two workers (separate orchestrators and sessions) on one subject
# ---------------------------------------------------------------------------

class InterleavingStore(SqlLedgerStore):
    """Runs `interleave` once, right after the read named by `after` returns."""

    def __init__(self, db, after, interleave):
        super().__init__(db)
        self._after = after
        self._interleave = interleave

    def _maybe_interleave(self, name):
        if name == self._after and self._interleave is not None:
            interleave, self._interleave = self._interleave, None
            interleave()

    def has_completion(self, subject_id, task_id):
        result = super().has_completion(subject_id, task_id)
        self._maybe_interleave("has_completion")
        return result

    def outstanding_for_task(self, subject_id, task_id):
        result = super().outstanding_for_task(subject_id, task_id)
        self._maybe_interleave("outstanding_for_task")
        return result


@pytest.fixture()
def two_workers(clock, session_factory):
    db_a, db_b = session_factory(), session_factory()
    try:
        yield (
            RewardOrchestrator(clock=clock), SqlLedgerStore(db_a),
            RewardOrchestrator(clock=clock), db_b,
        )
    finally:
        db_a.close()
        db_b.close()


def _task_ids(store, subject_id, reason):
    _, items = store.list_events(subject_id, reason=reason, limit=200)
    return [e.task_id for e in items]


class TestTwoWorkers:
    def test_award_racing_award_of_same_task(self, two_workers, subject_id):
        worker_a, store_a, worker_b, db_b = two_workers
        worker_a.award(store_a, subject_id, "t0", "task")

        store_b = InterleavingStore(
            db_b, "has_completion",
            lambda: worker_a.award(store_a, subject_id, "t1", "task"),
        )
        outcome = worker_b.award(store_b, subject_id, "t1", "task")

        assert outcome.status == OutcomeStatus.rolled_back
        assert outcome.error.details["reason"] == "version_conflict"
        assert _task_ids(store_a, subject_id, "task_complete").count("t1") == 1
        assert store_a.get_state(subject_id).total_xp == 30
        assert store_a.ledger_total(subject_id) == 30

        retry = worker_b.award(store_b, subject_id, "t1", "task")
        assert retry.status == OutcomeStatus.duplicate
        assert retry.snapshot.total_xp == 30

    def test_first_award_racing_on_fresh_subject(self, two_workers, subject_id):
        worker_a, store_a, worker_b, db_b = two_workers
        store_b = InterleavingStore(
            db_b, "has_completion",
            lambda: worker_a.award(store_a, subject_id, "t1", "task"),
        )
        outcome = worker_b.award(store_b, subject_id, "t1", "task")

        assert outcome.status == OutcomeStatus.rolled_back
        assert _task_ids(store_a, subject_id, "task_complete") == ["t1"]
        assert store_a.get_state(subject_id).total_xp == 15

    def test_revoke_racing_revoke(self, two_workers, subject_id):
        worker_a, store_a, worker_b, db_b = two_workers
        worker_a.award(store_a, subject_id, "t1", "event")

        store_b = InterleavingStore(
            db_b, "outstanding_for_task",
            lambda: worker_a.revoke(store_a, subject_id, "t1"),
        )
        outcome = worker_b.revoke(store_b, subject_id, "t1")

        assert outcome.status == OutcomeStatus.rolled_back
        assert _task_ids(store_a, subject_id, "task_revoked") == ["t1"]
        assert store_a.ledger_total(subject_id) == 0
        assert store_a.get_state(subject_id).total_xp == 0

        assert worker_b.revoke(store_b, subject_id, "t1").status == OutcomeStatus.not_found

    def test_snapshot_follows_other_worker(self, two_workers, subject_id):
        worker_a, store_a, worker_b, db_b = two_workers
        store_b = SqlLedgerStore(db_b)
        assert worker_b.snapshot(store_b, subject_id).total_xp == 0

        worker_a.award(store_a, subject_id, "s1", "study")

        snap = worker_b.snapshot(store_b, subject_id)
        assert snap.total_xp == 50
        assert snap.level == 2
        assert snap.unlocked_ids == frozenset({"first_study"})
        assert snap.recent_events[0].task_id == "s1"

    def test_award_starts_from_other_workers_totals(self, two_workers, subject_id):
        worker_a, store_a, worker_b, db_b = two_workers
        store_b = SqlLedgerStore(db_b)
        worker_b.snapshot(store_b, subject_id)
        worker_a.award(store_a, subject_id, "s1", "study")

        outcome = worker_b.award(store_b, subject_id, "t1", "task")
        assert outcome.status == OutcomeStatus.applied
        assert outcome.snapshot.total_xp == 65
        assert outcome.snapshot.unlocked_ids == frozenset({"first_study", "first_task"})
        assert store_b.get_state(subject_id).total_xp == 65
