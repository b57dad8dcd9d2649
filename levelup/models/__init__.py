from .experience_event import ExperienceEvent, ExperienceReason, ItemType
from .progression_state import ProgressionState
from .unlocked_achievement import UnlockedAchievement

__all__ = [
    "ExperienceEvent",
    "ExperienceReason",
    "ItemType",
    "ProgressionState",
    "UnlockedAchievement",
]
