"""
ExperienceEvent — the XP ledger.

Append-only. Rows are never updated or deleted; a subject's total XP is
max(0, sum(amount)) over its rows. Revocations are recorded as negative
`task_revoked` rows, not by editing the original award.

`day` is the UTC calendar date the activity counted toward; streak and
daily-goal checks read it instead of parsing `created_at`.
"""
from datetime import datetime, date
from sqlalchemy import Integer, String, DateTime, Date, Enum, Index, func
from sqlalchemy.orm import Mapped, mapped_column
import enum

from levelup.db.base import Base


class ExperienceReason(str, enum.Enum):
    task_complete = "task_complete"
    streak_bonus = "streak_bonus"
    daily_goal = "daily_goal"
    task_revoked = "task_revoked"


class ItemType(str, enum.Enum):
    task = "task"
    event = "event"
    study = "study"


class ExperienceEvent(Base):
    __tablename__ = "experience_events"
    __table_args__ = (
        Index("ix_experience_events_subject_task", "subject_id", "task_id"),
        Index("ix_experience_events_subject_day", "subject_id", "day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(
        Enum(ExperienceReason, name="experience_reason_enum"),
        nullable=False,
    )
    task_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    item_type: Mapped[str | None] = mapped_column(
        Enum(ItemType, name="item_type_enum"),
        nullable=True,
        comment="Set on task_complete rows only",
    )
    day: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
