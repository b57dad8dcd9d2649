"""
Tests for the achievement catalog and evaluator.
"""
from dataclasses import replace

from levelup.services.achievements import (
    ACHIEVEMENTS,
    AchievementDefinition,
    GamificationState,
    evaluate_achievements,
    get_achievement,
)

EMPTY = GamificationState(
    total_xp=0,
    level=1,
    streak=0,
    total_tasks_completed=0,
    daily_tasks_completed=0,
    has_completed_task=False,
    has_completed_event_task=False,
    has_completed_study_task=False,
)


def _ids(defs):
    return [d.id for d in defs]


def test_catalog_ids():
    assert _ids(ACHIEVEMENTS) == ["first_task", "first_event", "first_study"]


def test_get_achievement():
    assert get_achievement("first_study").title == "Scholar"
    assert get_achievement("nope") is None


def test_nothing_unlocks_for_empty_state():
    assert evaluate_achievements(EMPTY, set()) == []


def test_first_task():
    state = replace(EMPTY, has_completed_task=True, total_tasks_completed=1)
    assert _ids(evaluate_achievements(state, set())) == ["first_task"]


def test_already_unlocked_is_skipped():
    state = replace(EMPTY, has_completed_task=True)
    assert evaluate_achievements(state, {"first_task"}) == []


def test_results_follow_catalog_order():
    state = replace(
        EMPTY,
        has_completed_task=True,
        has_completed_event_task=True,
        has_completed_study_task=True,
    )
    assert _ids(evaluate_achievements(state, set())) == ["first_task", "first_event", "first_study"]
    assert _ids(evaluate_achievements(state, {"first_event"})) == ["first_task", "first_study"]


def test_custom_catalog_entry():
    ten_tasks = AchievementDefinition(
        id="ten_tasks",
        title="Busy Bee",
        description="Complete 10 tasks",
        icon="🐝",
        condition=lambda s: s.total_tasks_completed >= 10,
    )
    catalog = ACHIEVEMENTS + (ten_tasks,)
    state = replace(EMPTY, has_completed_task=True, total_tasks_completed=10)
    assert _ids(evaluate_achievements(state, {"first_task"}, catalog)) == ["ten_tasks"]
