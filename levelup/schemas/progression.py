"""
Progression request / response schemas.

POST /progression/{subject_id}/award          → AwardRequest        → RewardOutcomeResponse
POST /progression/{subject_id}/revoke         → RevokeRequest       → RewardOutcomeResponse
POST /progression/{subject_id}/status-change  → StatusChangeRequest → RewardOutcomeResponse
GET  /progression/{subject_id}                → SnapshotResponse
GET  /progression/{subject_id}/level          → LevelProgressResponse
POST /progression/{subject_id}/reconcile      → ReconcileResponse
GET  /levels                                  → LevelTableResponse
"""
from __future__ import annotations

import enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from levelup.models.experience_event import ItemType
from levelup.schemas.ledger import LedgerEventResponse


class Importance(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"


def _strip_task_id(v):
    stripped = v.strip() if isinstance(v, str) else v
    if not stripped:
        raise ValueError("task_id must not be empty after stripping whitespace")
    return stripped


TaskId = Annotated[str, Field(
    min_length=1,
    max_length=128,
    description="Opaque identifier of the task / event / study item.",
    examples=["4f1c2a9e-task"],
)]


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class AwardRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    task_id: TaskId
    item_type: ItemType = Field(
        default=ItemType.task,
        description="Selects the base reward: task=15, event=25, study=50.",
    )

    @field_validator("task_id", mode="before")
    @classmethod
    def strip_task_id(cls, v: str) -> str:
        return _strip_task_id(v)


class RevokeRequest(BaseModel):
    task_id: TaskId

    @field_validator("task_id", mode="before")
    @classmethod
    def strip_task_id(cls, v: str) -> str:
        return _strip_task_id(v)


class StatusChangeRequest(BaseModel):
    """Notification from the task board that an item moved between columns."""
    model_config = ConfigDict(use_enum_values=True)

    task_id: TaskId
    old_status: str = Field(min_length=1, max_length=32, examples=["in_progress"])
    new_status: str = Field(min_length=1, max_length=32, examples=["completed"])
    importance: Optional[Importance] = None
    item_type: ItemType = ItemType.task

    @field_validator("task_id", mode="before")
    @classmethod
    def strip_task_id(cls, v: str) -> str:
        return _strip_task_id(v)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class UnlockedAchievementResponse(BaseModel):
    id: Optional[int] = None
    achievement_id: str
    unlocked_at: str


class SnapshotResponse(BaseModel):
    """What display surfaces render: totals, streak, recent ledger, achievements."""
    subject_id: str
    total_xp: int
    level: int
    streak: int
    last_active_date: Optional[str] = None
    recent_events: list[LedgerEventResponse]
    unlocked_achievements: list[UnlockedAchievementResponse]
    pending_level_up: Optional[int] = Field(
        default=None,
        description="Level reached by the last level-up; cleared by the dismiss endpoint.",
    )
    loading: bool = Field(description="True while the initial fetch is still running.")


class NotificationResponse(BaseModel):
    kind: str = Field(
        description='"xp_awarded" | "xp_revoked" | "level_up" | "achievement_unlocked" | "commit_failed"'
    )
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class BreakdownItem(BaseModel):
    reason: str
    amount: int


class RewardOutcomeResponse(BaseModel):
    status: str = Field(
        description='"applied" | "duplicate" | "not_found" | "ignored"'
    )
    task_id: Optional[str] = None
    xp_delta: int = 0
    breakdown: list[BreakdownItem] = Field(default_factory=list)
    leveled_up: bool = False
    unlocked: list[str] = Field(default_factory=list)
    notifications: list[NotificationResponse] = Field(default_factory=list)
    snapshot: SnapshotResponse


class LevelProgressResponse(BaseModel):
    total_xp: int
    level: int
    current: int = Field(description="XP earned inside the current level.")
    required: int = Field(description="XP needed to finish the current level.")
    percent: float = Field(description="current / required, capped at 100.")


class ReconcileResponse(BaseModel):
    subject_id: str
    changed: bool
    total_xp_before: int
    total_xp_after: int
    level_before: int
    level_after: int


class LevelRow(BaseModel):
    level: int
    xp_required: int = Field(description="XP to go from this level to the next.")
    total_xp: int = Field(description="Cumulative XP needed to reach this level.")


class LevelTableResponse(BaseModel):
    levels: list[LevelRow]
