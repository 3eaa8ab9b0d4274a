from __future__ import annotations

import enum
from datetime import date, datetime, time, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from attendance_engine.db import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class ClockInStatus(str, enum.Enum):
    ON_TIME = "ON_TIME"
    LATE = "LATE"


class ClockOutStatus(str, enum.Enum):
    FINISHED_ON_TIME = "FINISHED_ON_TIME"
    LEFT_EARLY = "LEFT_EARLY"
    OVERTIME = "OVERTIME"


class AttendanceMethod(str, enum.Enum):
    QR_SCAN = "QR_SCAN"
    MANUAL_ADMIN = "MANUAL_ADMIN"


class DeviceStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REVOKED = "REVOKED"


class AuditActorType(str, enum.Enum):
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"
    SYSTEM = "SYSTEM"


WEEKDAY_COLUMNS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    devices: Mapped[list[Device]] = relationship(back_populates="employee")
    shift_assignments: Mapped[list[ShiftAssignment]] = relationship(
        back_populates="employee",
        foreign_keys="ShiftAssignment.employee_id",
    )
    attendances: Mapped[list[Attendance]] = relationship(
        back_populates="employee",
        foreign_keys="Attendance.employee_id",
    )


class Shift(Base):
    __tablename__ = "shifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    start_time: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    end_time: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    crosses_midnight: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    work_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    monday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    tuesday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    wednesday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    thursday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    friday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    saturday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    sunday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    grace_period_late_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    grace_period_early_leave_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_default: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    assignments: Mapped[list[ShiftAssignment]] = relationship(back_populates="shift")

    @property
    def net_work_minutes(self) -> int:
        return max(0, (self.work_duration_minutes or 0) - (self.break_minutes or 0))


class ShiftAssignment(Base):
    __tablename__ = "shift_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    shift_id: Mapped[int] = mapped_column(
        ForeignKey("shifts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    effective_start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    effective_end_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    assigned_by_employee_id: Mapped[int | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    employee: Mapped[Employee] = relationship(
        back_populates="shift_assignments",
        foreign_keys=[employee_id],
    )
    shift: Mapped[Shift] = relationship(back_populates="assignments")


class Device(Base):
    __tablename__ = "devices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    device_identifier: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[DeviceStatus] = mapped_column(
        Enum(DeviceStatus, name="device_status"),
        nullable=False,
        default=DeviceStatus.PENDING,
        server_default=text("'PENDING'"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    employee: Mapped[Employee] = relationship(back_populates="devices")


class QRCode(Base):
    __tablename__ = "qr_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    token: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    location_name: Mapped[str] = mapped_column(String(100), nullable=False)
    valid_on_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    shift_id: Mapped[int | None] = mapped_column(
        ForeignKey("shifts.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class Attendance(Base):
    __tablename__ = "attendances"
    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="uq_attendances_employee_work_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    shift_id: Mapped[int | None] = mapped_column(
        ForeignKey("shifts.id", ondelete="SET NULL"),
        nullable=True,
    )

    clock_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    clock_in_status: Mapped[ClockInStatus | None] = mapped_column(
        Enum(ClockInStatus, name="attendance_clock_in_status"),
        nullable=True,
    )
    clock_in_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    clock_in_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    clock_in_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    clock_in_device_id: Mapped[int | None] = mapped_column(
        ForeignKey("devices.id", ondelete="SET NULL"),
        nullable=True,
    )
    clock_in_qr_code_id: Mapped[int | None] = mapped_column(
        ForeignKey("qr_codes.id", ondelete="SET NULL"),
        nullable=True,
    )
    clock_in_method: Mapped[AttendanceMethod | None] = mapped_column(
        Enum(AttendanceMethod, name="attendance_method"),
        nullable=True,
    )

    clock_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    clock_out_status: Mapped[ClockOutStatus | None] = mapped_column(
        Enum(ClockOutStatus, name="attendance_clock_out_status"),
        nullable=True,
    )
    clock_out_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    clock_out_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    clock_out_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    clock_out_device_id: Mapped[int | None] = mapped_column(
        ForeignKey("devices.id", ondelete="SET NULL"),
        nullable=True,
    )
    clock_out_qr_code_id: Mapped[int | None] = mapped_column(
        ForeignKey("qr_codes.id", ondelete="SET NULL"),
        nullable=True,
    )
    clock_out_method: Mapped[AttendanceMethod | None] = mapped_column(
        Enum(AttendanceMethod, name="attendance_method"),
        nullable=True,
    )

    # Snapshot of the shift in effect at clock-in.
    scheduled_start_time: Mapped[time | None] = mapped_column(Time(timezone=False), nullable=True)
    scheduled_end_time: Mapped[time | None] = mapped_column(Time(timezone=False), nullable=True)
    scheduled_work_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scheduled_crosses_midnight: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    scheduled_break_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scheduled_grace_late_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scheduled_grace_early_leave_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    work_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    effective_work_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    lateness_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    early_leave_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))

    is_manually_corrected: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    last_corrected_by: Mapped[int | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
    )
    last_correction_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    correction_summary_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="attendances", foreign_keys=[employee_id])
    shift: Mapped[Shift | None] = relationship()
    correction_logs: Mapped[list[AttendanceCorrectionLog]] = relationship(
        back_populates="attendance",
        order_by="AttendanceCorrectionLog.id",
    )


class AttendanceCorrectionLog(Base):
    __tablename__ = "attendance_correction_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    attendance_id: Mapped[int] = mapped_column(
        ForeignKey("attendances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    corrector_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    changed_field: Mapped[str] = mapped_column(String(100), nullable=False)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    corrector_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    corrected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )

    attendance: Mapped[Attendance] = relationship(back_populates="correction_logs")


class AttendanceSetting(Base):
    __tablename__ = "attendance_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    data_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="string",
        server_default=text("'string'"),
    )
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    group: Mapped[str | None] = mapped_column(String(50), nullable=True)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    details: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )
