"""Initial attendance engine schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

device_status = postgresql.ENUM(
    "PENDING",
    "APPROVED",
    "REJECTED",
    "REVOKED",
    name="device_status",
    create_type=False,
)
attendance_clock_in_status = postgresql.ENUM(
    "ON_TIME",
    "LATE",
    name="attendance_clock_in_status",
    create_type=False,
)
attendance_clock_out_status = postgresql.ENUM(
    "FINISHED_ON_TIME",
    "LEFT_EARLY",
    "OVERTIME",
    name="attendance_clock_out_status",
    create_type=False,
)
attendance_method = postgresql.ENUM(
    "QR_SCAN",
    "MANUAL_ADMIN",
    name="attendance_method",
    create_type=False,
)
audit_actor_type = postgresql.ENUM(
    "ADMIN",
    "EMPLOYEE",
    "SYSTEM",
    name="audit_actor_type",
    create_type=False,
)

ENUMS = (
    device_status,
    attendance_clock_in_status,
    attendance_clock_out_status,
    attendance_method,
    audit_actor_type,
)

DEFAULT_SETTINGS: list[dict[str, str | None]] = [
    {
        "key": "late_tolerance_minutes",
        "value": "15",
        "data_type": "integer",
        "description": "Minutes after the shift start before a clock-in counts as late.",
        "group": "attendance_rules",
    },
    {
        "key": "early_leave_tolerance_minutes",
        "value": "10",
        "data_type": "integer",
        "description": "Minutes before the shift end before a clock-out counts as leaving early.",
        "group": "attendance_rules",
    },
    {
        "key": "min_duration_before_clock_out_minutes",
        "value": "60",
        "data_type": "integer",
        "description": "Minimum minutes between clock-in and clock-out.",
        "group": "attendance_rules",
    },
    {
        "key": "min_overtime_threshold_minutes",
        "value": "30",
        "data_type": "integer",
        "description": "Minimum extra minutes before overtime is recorded.",
        "group": "attendance_rules",
    },
    {
        "key": "night_shift_clock_out_buffer_hours",
        "value": "3",
        "data_type": "integer",
        "description": "Hours after a night shift ends during which a scan still closes it.",
        "group": "attendance_rules",
    },
    {
        "key": "enable_gps_validation",
        "value": "false",
        "data_type": "boolean",
        "description": "Reject scans outside the office radius.",
        "group": "gps",
    },
    {
        "key": "office_latitude",
        "value": "-6.2087634",
        "data_type": "decimal",
        "description": "Office latitude used for GPS validation.",
        "group": "gps",
    },
    {
        "key": "office_longitude",
        "value": "106.845599",
        "data_type": "decimal",
        "description": "Office longitude used for GPS validation.",
        "group": "gps",
    },
    {
        "key": "gps_radius_meters",
        "value": "100",
        "data_type": "integer",
        "description": "Allowed distance from the office in meters.",
        "group": "gps",
    },
    {
        "key": "enforce_approved_device_for_attendance",
        "value": "false",
        "data_type": "boolean",
        "description": "Only accept scans from approved devices.",
        "group": "devices",
    },
]


def _timestamp_column(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("start_time", sa.Time(timezone=False), nullable=False),
        sa.Column("end_time", sa.Time(timezone=False), nullable=False),
        sa.Column("crosses_midnight", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("work_duration_minutes", sa.Integer(), nullable=False),
        sa.Column("break_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("monday", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("tuesday", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("wednesday", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("thursday", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("friday", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("saturday", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("sunday", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("grace_period_late_minutes", sa.Integer(), nullable=True),
        sa.Column("grace_period_early_leave_minutes", sa.Integer(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp_column("created_at"),
        _timestamp_column("updated_at"),
    )
    op.create_index("ix_shifts_name", "shifts", ["name"], unique=False)
    op.create_index("ix_shifts_is_default", "shifts", ["is_default"], unique=False)
    op.create_index("ix_shifts_is_active", "shifts", ["is_active"], unique=False)

    op.create_table(
        "shift_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("effective_start_date", sa.Date(), nullable=False),
        sa.Column("effective_end_date", sa.Date(), nullable=True),
        sa.Column("assigned_by_employee_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp_column("created_at"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assigned_by_employee_id"], ["employees.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_shift_assignments_employee_id", "shift_assignments", ["employee_id"], unique=False)
    op.create_index("ix_shift_assignments_shift_id", "shift_assignments", ["shift_id"], unique=False)
    op.create_index(
        "ix_shift_assignments_effective_start_date",
        "shift_assignments",
        ["effective_start_date"],
        unique=False,
    )
    op.create_index(
        "ix_shift_assignments_effective_end_date",
        "shift_assignments",
        ["effective_end_date"],
        unique=False,
    )

    op.create_table(
        "devices",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("device_identifier", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("status", device_status, nullable=False, server_default=sa.text("'PENDING'")),
        _timestamp_column("created_at"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_devices_device_identifier", "devices", ["device_identifier"], unique=True)

    op.create_table(
        "qr_codes",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("token", sa.String(length=255), nullable=False),
        sa.Column("location_name", sa.String(length=100), nullable=False),
        sa.Column("valid_on_date", sa.Date(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp_column("created_at"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_qr_codes_token", "qr_codes", ["token"], unique=True)
    op.create_index("ix_qr_codes_valid_on_date", "qr_codes", ["valid_on_date"], unique=False)

    op.create_table(
        "attendances",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("clock_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clock_in_status", attendance_clock_in_status, nullable=True),
        sa.Column("clock_in_notes", sa.Text(), nullable=True),
        sa.Column("clock_in_latitude", sa.Float(), nullable=True),
        sa.Column("clock_in_longitude", sa.Float(), nullable=True),
        sa.Column("clock_in_device_id", sa.Integer(), nullable=True),
        sa.Column("clock_in_qr_code_id", sa.Integer(), nullable=True),
        sa.Column("clock_in_method", attendance_method, nullable=True),
        sa.Column("clock_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clock_out_status", attendance_clock_out_status, nullable=True),
        sa.Column("clock_out_notes", sa.Text(), nullable=True),
        sa.Column("clock_out_latitude", sa.Float(), nullable=True),
        sa.Column("clock_out_longitude", sa.Float(), nullable=True),
        sa.Column("clock_out_device_id", sa.Integer(), nullable=True),
        sa.Column("clock_out_qr_code_id", sa.Integer(), nullable=True),
        sa.Column("clock_out_method", attendance_method, nullable=True),
        sa.Column("scheduled_start_time", sa.Time(timezone=False), nullable=True),
        sa.Column("scheduled_end_time", sa.Time(timezone=False), nullable=True),
        sa.Column("scheduled_work_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("work_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("effective_work_minutes", sa.Integer(), nullable=True),
        sa.Column("overtime_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("lateness_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("early_leave_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_manually_corrected", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("last_corrected_by", sa.Integer(), nullable=True),
        sa.Column("last_correction_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("correction_summary_notes", sa.Text(), nullable=True),
        _timestamp_column("created_at"),
        _timestamp_column("updated_at"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["clock_in_device_id"], ["devices.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["clock_out_device_id"], ["devices.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["clock_in_qr_code_id"], ["qr_codes.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["clock_out_qr_code_id"], ["qr_codes.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["last_corrected_by"], ["employees.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("employee_id", "work_date", name="uq_attendances_employee_work_date"),
    )
    op.create_index("ix_attendances_employee_id", "attendances", ["employee_id"], unique=False)
    op.create_index("ix_attendances_work_date", "attendances", ["work_date"], unique=False)
    op.create_index("ix_attendances_clock_in_at", "attendances", ["clock_in_at"], unique=False)
    op.create_index("ix_attendances_clock_out_at", "attendances", ["clock_out_at"], unique=False)

    op.create_table(
        "attendance_correction_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("attendance_id", sa.Integer(), nullable=False),
        sa.Column("corrector_id", sa.Integer(), nullable=False),
        sa.Column("changed_field", sa.String(length=100), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("corrector_ip", sa.String(length=45), nullable=True),
        _timestamp_column("corrected_at"),
        sa.ForeignKeyConstraint(["attendance_id"], ["attendances.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["corrector_id"], ["employees.id"], ondelete="RESTRICT"),
    )
    op.create_index(
        "ix_attendance_correction_logs_attendance_id",
        "attendance_correction_logs",
        ["attendance_id"],
        unique=False,
    )
    op.create_index(
        "ix_attendance_correction_logs_corrector_id",
        "attendance_correction_logs",
        ["corrector_id"],
        unique=False,
    )
    op.create_index(
        "ix_attendance_correction_logs_corrected_at",
        "attendance_correction_logs",
        ["corrected_at"],
        unique=False,
    )

    settings_table = op.create_table(
        "attendance_settings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("data_type", sa.String(length=20), nullable=False, server_default=sa.text("'string'")),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("group", sa.String(length=50), nullable=True),
    )
    op.create_index("ix_attendance_settings_key", "attendance_settings", ["key"], unique=True)
    op.bulk_insert(settings_table, DEFAULT_SETTINGS)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        _timestamp_column("ts_utc"),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_attendance_settings_key", table_name="attendance_settings")
    op.drop_table("attendance_settings")
    op.drop_table("attendance_correction_logs")
    op.drop_table("attendances")
    op.drop_index("ix_qr_codes_token", table_name="qr_codes")
    op.drop_table("qr_codes")
    op.drop_index("ix_devices_device_identifier", table_name="devices")
    op.drop_table("devices")
    op.drop_table("shift_assignments")
    op.drop_table("shifts")
    op.drop_table("employees")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
