"""
Progression curve — maps total XP to a level and in-level progress.

Definition
----------
Completing level L costs round(50 * L^1.8) XP, so level 1 costs 50,
level 2 costs 174, and every next step is strictly more expensive.
A subject with T total XP is at the smallest level L such that the
cumulative cost of levels 1..L exceeds T.

There is no closed form for the inverse, so `level_from_xp` walks the
curve upward from level 1.

Public API
----------
xp_required_for_level(level)   -> int
total_xp_for_level(level)      -> int
level_from_xp(total_xp)        -> int
progress_in_level(total_xp)    -> LevelProgress

All functions are pure; negative XP is treated as 0.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache


BASE_LEVEL_COST = 50
LEVEL_EXPONENT = 1.8


@dataclass(frozen=True)
class LevelProgress:
    level: int
    current: int     # XP earned inside the current level
    required: int    # XP needed to finish the current level

    @property
    def percent(self) -> float:
        if self.required <= 0:
            return 100.0
        return min(self.current / self.required * 100, 100.0)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@lru_cache(maxsize=512)
def xp_required_for_level(level: int) -> int:
    """XP needed to go from `level` to `level + 1`."""
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    return _round_half_up(BASE_LEVEL_COST * math.pow(level, LEVEL_EXPONENT))


def total_xp_for_level(level: int) -> int:
    """Cumulative XP needed to reach `level` (0 for level 1)."""
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    return sum(xp_required_for_level(i) for i in range(1, level))


def level_from_xp(total_xp: int) -> int:
    total_xp = max(0, total_xp)
    level = 1
    cumulative = 0
    while cumulative + xp_required_for_level(level) <= total_xp:
        cumulative += xp_required_for_level(level)
        level += 1
    return level


def progress_in_level(total_xp: int) -> LevelProgress:
    total_xp = max(0, total_xp)
    level = level_from_xp(total_xp)
    return LevelProgress(
        level=level,
        current=total_xp - total_xp_for_level(level),
        required=xp_required_for_level(level),
    )


def level_table(up_to: int) -> list[tuple[int, int, int]]:
    """(level, xp to finish it, cumulative xp to reach it) for levels 1..up_to."""
    rows = []
    cumulative = 0
    for level in range(1, up_to + 1):
        step = xp_required_for_level(level)
        rows.append((level, step, cumulative))
        cumulative += step
    return rows
