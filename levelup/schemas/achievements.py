"""
Achievement catalog schemas.

GET /achievements                          → AchievementCatalogResponse
GET /progression/{subject_id}/achievements → AchievementProgressResponse
"""
from typing import Optional
from pydantic import BaseModel, Field


class AchievementResponse(BaseModel):
    id: str
    title: str
    description: str
    icon: str


class AchievementCatalogResponse(BaseModel):
    total: int
    items: list[AchievementResponse]


class AchievementStatusResponse(AchievementResponse):
    unlocked: bool
    unlocked_at: Optional[str] = Field(default=None, description="Set once unlocked; never cleared.")


class AchievementProgressResponse(BaseModel):
    subject_id: str
    unlocked: int
    total: int
    items: list[AchievementStatusResponse] = Field(description="Catalog order.")
