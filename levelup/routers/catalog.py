"""
Static catalog router — things that are the same for every subject.

GET /achievements   — achievement catalog
GET /levels         — level cost curve
"""
from __future__ import annotations

from fastapi import APIRouter, Query

from levelup.schemas.achievements import AchievementCatalogResponse, AchievementResponse
from levelup.schemas.progression import LevelRow, LevelTableResponse
from levelup.services.achievements import ACHIEVEMENTS
from levelup.services.progression import level_table

router = APIRouter(tags=["catalog"])


@router.get(
    "/achievements",
    response_model=AchievementCatalogResponse,
    summary="All achievements that can be unlocked",
)
def achievement_catalog():
    return AchievementCatalogResponse(
        total=len(ACHIEVEMENTS),
        items=[
            AchievementResponse(id=d.id, title=d.title, description=d.description, icon=d.icon)
            for d in ACHIEVEMENTS
        ],
    )


@router.get(
    "/levels",
    response_model=LevelTableResponse,
    summary="Level cost curve",
)
def levels(
    up_to: int = Query(default=20, ge=1, le=200, description="Highest level to include."),
):
    """
    Completing level L costs `round(50 * L^1.8)` XP. `total_xp` is the
    cumulative XP needed to reach each level.
    """
    return LevelTableResponse(
        levels=[
            LevelRow(level=level, xp_required=step, total_xp=cumulative)
            for level, step, cumulative in level_table(up_to)
        ],
    )
