"""
XP ledger response schemas.

GET /progression/{subject_id}/events → LedgerEventListResponse
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class LedgerEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = Field(
        default=None,
        description="Ledger row id; null for an optimistic entry not yet committed.",
    )
    amount: int = Field(description="Signed XP amount.")
    reason: str = Field(
        description='"task_complete" | "streak_bonus" | "daily_goal" | "task_revoked"'
    )
    task_id: Optional[str] = None
    item_type: Optional[str] = Field(
        default=None,
        description='"task" | "event" | "study" on task_complete rows.',
    )
    day: str = Field(description="ISO date the activity counted toward.")
    created_at: str


class LedgerEventListResponse(BaseModel):
    total: int
    items: list[LedgerEventResponse]
