"""
Achievement evaluator.

Each AchievementDefinition holds a pure predicate over a GamificationState
snapshot. New achievements are added by appending to ACHIEVEMENTS; the
evaluator itself never special-cases an id.

Unlocks are monotonic: once an id is in the unlocked set it is skipped
forever, even if its predicate later turns false (e.g. after a revoke).
Results come back in catalog order so notifications are deterministic.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional


@dataclass(frozen=True)
class GamificationState:
    """Point-in-time view used by achievement predicates."""
    total_xp: int
    level: int
    streak: int
    total_tasks_completed: int
    daily_tasks_completed: int
    has_completed_task: bool
    has_completed_event_task: bool
    has_completed_study_task: bool


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    title: str
    description: str
    icon: str
    condition: Callable[[GamificationState], bool]


ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    AchievementDefinition(
        id="first_task",
        title="First Step",
        description="Complete your first task",
        icon="🎯",
        condition=lambda s: s.has_completed_task,
    ),
    AchievementDefinition(
        id="first_event",
        title="Event Planner",
        description="Complete your first event",
        icon="📅",
        condition=lambda s: s.has_completed_event_task,
    ),
    AchievementDefinition(
        id="first_study",
        title="Scholar",
        description="Complete your first study session",
        icon="📚",
        condition=lambda s: s.has_completed_study_task,
    ),
)

_BY_ID = {a.id: a for a in ACHIEVEMENTS}


def get_achievement(achievement_id: str) -> Optional[AchievementDefinition]:
    return _BY_ID.get(achievement_id)


def evaluate_achievements(
    state: GamificationState,
    unlocked_ids: Iterable[str],
    catalog: Iterable[AchievementDefinition] = ACHIEVEMENTS,
) -> list[AchievementDefinition]:
    """Return the definitions newly satisfied by `state`, in catalog order."""
    already = set(unlocked_ids)
    return [
        definition
        for definition in catalog
        if definition.id not in already and definition.condition(state)
    ]
