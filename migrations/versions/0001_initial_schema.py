"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- ENUM types ---
    experience_reason_enum = sa.Enum(
        "task_complete", "streak_bonus", "daily_goal", "task_revoked",
        name="experience_reason_enum",
    )
    experience_reason_enum.create(op.get_bind(), checkfirst=True)

    item_type_enum = sa.Enum("task", "event", "study", name="item_type_enum")
    item_type_enum.create(op.get_bind(), checkfirst=True)

    # --- experience_events (append-only ledger) ---
    op.create_table(
        "experience_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Enum(
            "task_complete", "streak_bonus", "daily_goal", "task_revoked",
            name="experience_reason_enum", create_type=False,
        ), nullable=False),
        sa.Column("task_id", sa.String(128), nullable=True),
        sa.Column("item_type", sa.Enum(
            "task", "event", "study",
            name="item_type_enum", create_type=False,
        ), nullable=True, comment="Set on task_complete rows only"),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_experience_events_id", "experience_events", ["id"])
    op.create_index("ix_experience_events_subject_id", "experience_events", ["subject_id"])
    op.create_index("ix_experience_events_subject_task", "experience_events", ["subject_id", "task_id"])
    op.create_index("ix_experience_events_subject_day", "experience_events", ["subject_id", "day"])

    # --- progression_states ---
    op.create_table(
        "progression_states",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("total_xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_active_date", sa.Date(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_progression_states_id", "progression_states", ["id"])
    op.create_index("ix_progression_states_subject_id", "progression_states", ["subject_id"], unique=True)

    # --- unlocked_achievements ---
    op.create_table(
        "unlocked_achievements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("achievement_id", sa.String(64), nullable=False),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subject_id", "achievement_id", name="uq_unlocked_achievement_subject"),
    )
    op.create_index("ix_unlocked_achievements_id", "unlocked_achievements", ["id"])
    op.create_index("ix_unlocked_achievements_subject_id", "unlocked_achievements", ["subject_id"])


def downgrade() -> None:
    op.drop_index("ix_unlocked_achievements_subject_id", table_name="unlocked_achievements")
    op.drop_index("ix_unlocked_achievements_id", table_name="unlocked_achievements")
    op.drop_table("unlocked_achievements")

    op.drop_index("ix_progression_states_subject_id", table_name="progression_states")
    op.drop_index("ix_progression_states_id", table_name="progression_states")
    op.drop_table("progression_states")

    op.drop_index("ix_experience_events_subject_day", table_name="experience_events")
    op.drop_index("ix_experience_events_subject_task", table_name="experience_events")
    op.drop_index("ix_experience_events_subject_id", table_name="experience_events")
    op.drop_index("ix_experience_events_id", table_name="experience_events")
    op.drop_table("experience_events")

    sa.Enum(name="item_type_enum").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="experience_reason_enum").drop(op.get_bind(), checkfirst=True)
