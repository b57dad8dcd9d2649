from datetime import datetime
from sqlalchemy import Integer, String, DateTime, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from levelup.db.base import Base


class UnlockedAchievement(Base):
    """An achievement a subject has earned. Never removed once inserted."""

    __tablename__ = "unlocked_achievements"
    __table_args__ = (
        UniqueConstraint("subject_id", "achievement_id", name="uq_unlocked_achievement_subject"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    achievement_id: Mapped[str] = mapped_column(String(64), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
