"""
Streak tracker — consecutive calendar days with at least one completion.

The transition fires at most once per calendar day: the first qualifying
event of a day moves the streak, later events that day leave it alone.

  last_active_date == today       -> no change
  last_active_date == yesterday   -> streak + 1
  anything else (gap, none, future) -> streak = 1

A streak bonus is owed exactly when the transition fired and the new
streak is at least 2, so first-ever activity never earns one.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional


MIN_BONUS_STREAK = 2


@dataclass(frozen=True)
class StreakState:
    streak: int = 0
    last_active_date: Optional[date] = None


@dataclass(frozen=True)
class StreakTransition:
    state: StreakState
    fired: bool
    bonus_granted: bool


def advance_streak(current: StreakState, today: date) -> StreakTransition:
    if current.last_active_date == today:
        return StreakTransition(state=current, fired=False, bonus_granted=False)

    if current.last_active_date == today - timedelta(days=1):
        new_streak = current.streak + 1
    else:
        new_streak = 1

    return StreakTransition(
        state=StreakState(streak=new_streak, last_active_date=today),
        fired=True,
        bonus_granted=new_streak >= MIN_BONUS_STREAK,
    )
