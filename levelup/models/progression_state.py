"""
ProgressionState — one row per subject, derived from the XP ledger.

Only written in the same transaction as a batch of ExperienceEvents.
`version` is bumped on every write; writers compare-and-swap on it so two
processes racing on one subject cannot both commit from the same base.
"""
from datetime import datetime, date
from sqlalchemy import Integer, String, DateTime, Date, func
from sqlalchemy.orm import Mapped, mapped_column

from levelup.db.base import Base


class ProgressionState(Base):
    __tablename__ = "progression_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_active_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
