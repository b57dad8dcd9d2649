"""
User-facing notifications produced by award / revoke.

The engine only builds these records; delivering them (toast, push,
websocket) is the client's job.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Sequence

from levelup.services.achievements import AchievementDefinition


class NotificationKind(str, enum.Enum):
    xp_awarded = "xp_awarded"
    xp_revoked = "xp_revoked"
    level_up = "level_up"
    achievement_unlocked = "achievement_unlocked"
    commit_failed = "commit_failed"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    message: str
    data: dict[str, Any] = field(default_factory=dict)


_TYPE_LABELS = {"task": "Task", "event": "Event", "study": "Study"}


def xp_breakdown(item_type: str, breakdown: Sequence[tuple[str, int]]) -> Notification:
    """One summary line itemised by reason, e.g. '+15 XP (Task) | +15 streak'."""
    parts = []
    for reason, amount in breakdown:
        if reason == "task_complete":
            parts.append(f"+{amount} XP ({_TYPE_LABELS.get(item_type, 'Task')})")
        elif reason == "streak_bonus":
            parts.append(f"+{amount} streak")
        elif reason == "daily_goal":
            parts.append(f"+{amount} daily goal!")
    return Notification(
        kind=NotificationKind.xp_awarded,
        message=" | ".join(parts),
        data={
            "item_type": item_type,
            "total": sum(amount for _, amount in breakdown),
            "breakdown": [{"reason": r, "amount": a} for r, a in breakdown],
        },
    )


def xp_revoked(amount: int, task_id: str) -> Notification:
    return Notification(
        kind=NotificationKind.xp_revoked,
        message=f"-{amount} XP (task uncompleted)",
        data={"amount": -amount, "task_id": task_id},
    )


def level_up(level: int) -> Notification:
    return Notification(
        kind=NotificationKind.level_up,
        message=f"Level up! You reached level {level}.",
        data={"level": level},
    )


def achievement_unlocked(definition: AchievementDefinition) -> Notification:
    return Notification(
        kind=NotificationKind.achievement_unlocked,
        message=f"{definition.icon} Achievement Unlocked: {definition.title}",
        data={"achievement_id": definition.id, "title": definition.title, "icon": definition.icon},
    )


def commit_failed() -> Notification:
    return Notification(
        kind=NotificationKind.commit_failed,
        message="Something went wrong saving your progress. Please try again.",
    )
