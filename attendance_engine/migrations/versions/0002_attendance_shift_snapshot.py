"""Snapshot break, grace and midnight terms on attendances

Revision ID: 0002_attendance_shift_snapshot
Revises: 0001_initial
Create Date: 2026-10-20 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002_attendance_shift_snapshot"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SNAPSHOT_COLUMNS: tuple[tuple[str, str], ...] = (
    ("scheduled_crosses_midnight", "crosses_midnight"),
    ("scheduled_break_minutes", "break_minutes"),
    ("scheduled_grace_late_minutes", "grace_period_late_minutes"),
    ("scheduled_grace_early_leave_minutes", "grace_period_early_leave_minutes"),
)


def upgrade() -> None:
    op.add_column("attendances", sa.Column("scheduled_crosses_midnight", sa.Boolean(), nullable=True))
    op.add_column("attendances", sa.Column("scheduled_break_minutes", sa.Integer(), nullable=True))
    op.add_column("attendances", sa.Column("scheduled_grace_late_minutes", sa.Integer(), nullable=True))
    op.add_column("attendances", sa.Column("scheduled_grace_early_leave_minutes", sa.Integer(), nullable=True))

    # Existing rows take the terms of their shift as it stands at upgrade time.
    for attendance_column, shift_column in SNAPSHOT_COLUMNS:
        op.execute(
            f"""
            UPDATE attendances
            SET {attendance_column} = (
                SELECT shifts.{shift_column} FROM shifts WHERE shifts.id = attendances.shift_id
            )
            WHERE shift_id IS NOT NULL AND scheduled_start_time IS NOT NULL
            """
        )


def downgrade() -> None:
    op.drop_column("attendances", "scheduled_grace_early_leave_minutes")
    op.drop_column("attendances", "scheduled_grace_late_minutes")
    op.drop_column("attendances", "scheduled_break_minutes")
    op.drop_column("attendances", "scheduled_crosses_midnight")
