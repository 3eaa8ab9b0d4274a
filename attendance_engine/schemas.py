from datetime import date, datetime, time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from attendance_engine.models import AttendanceMethod, ClockInStatus, ClockOutStatus


class ScanLocationPayload(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class ScanTokenPayload(BaseModel):
    token: str = Field(min_length=1, max_length=255)
    location_name: str | None = Field(default=None, max_length=100)
    shift_id: int | None = Field(default=None, ge=1)
    valid_on: date | None = None


class AttendanceScanRequest(BaseModel):
    employee_id: int = Field(ge=1)
    qr_payload: ScanTokenPayload
    scanned_at: datetime | None = None
    location: ScanLocationPayload | None = None
    device_identifier: str | None = Field(default=None, max_length=255)


class ShiftSummaryRead(BaseModel):
    id: int
    name: str
    start_time: time
    end_time: time

    model_config = ConfigDict(from_attributes=True)


class AttendanceRead(BaseModel):
    id: int
    employee_id: int
    work_date: date
    shift_id: int | None
    shift: ShiftSummaryRead | None = None

    clock_in_at: datetime | None
    clock_in_status: ClockInStatus | None
    clock_in_notes: str | None
    clock_in_latitude: float | None
    clock_in_longitude: float | None
    clock_in_device_id: int | None
    clock_in_qr_code_id: int | None
    clock_in_method: AttendanceMethod | None

    clock_out_at: datetime | None
    clock_out_status: ClockOutStatus | None
    clock_out_notes: str | None
    clock_out_latitude: float | None
    clock_out_longitude: float | None
    clock_out_device_id: int | None
    clock_out_qr_code_id: int | None
    clock_out_method: AttendanceMethod | None

    scheduled_start_time: time | None
    scheduled_end_time: time | None
    scheduled_work_duration_minutes: int | None
    scheduled_crosses_midnight: bool | None = None
    scheduled_break_minutes: int | None = None
    scheduled_grace_late_minutes: int | None = None
    scheduled_grace_early_leave_minutes: int | None = None
    work_duration_minutes: int | None
    effective_work_minutes: int | None
    overtime_minutes: int
    lateness_minutes: int
    early_leave_minutes: int

    is_manually_corrected: bool
    last_corrected_by: int | None
    last_correction_at: datetime | None
    correction_summary_notes: str | None

    model_config = ConfigDict(from_attributes=True)


class AttendanceScanResponse(BaseModel):
    ok: bool = True
    phase: str
    message: str
    attendance: AttendanceRead


class AttendancePage(BaseModel):
    items: list[AttendanceRead]
    total: int
    offset: int
    limit: int


class AttendanceCorrectionRequest(BaseModel):
    corrector_id: int = Field(ge=1)
    reason: str = Field(max_length=1000)
    work_date: date | None = None
    shift_id: int | None = Field(default=None, ge=1)
    clock_in_at: datetime | None = None
    clock_in_time: time | None = None
    clock_in_status: ClockInStatus | None = None
    clock_in_notes: str | None = Field(default=None, max_length=1000)
    clock_out_at: datetime | None = None
    clock_out_time: time | None = None
    clock_out_status: ClockOutStatus | None = None
    clock_out_notes: str | None = Field(default=None, max_length=1000)

    def field_changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"corrector_id", "reason"})


class CorrectionLogRead(BaseModel):
    id: int
    attendance_id: int
    corrector_id: int
    changed_field: str
    old_value: str | None
    new_value: str | None
    reason: str
    corrector_ip: str | None
    corrected_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttendanceCorrectionResponse(BaseModel):
    ok: bool = True
    changed_fields: list[str]
    attendance: AttendanceRead


class ShiftBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    start_time: time
    end_time: time
    crosses_midnight: bool = False
    work_duration_minutes: int | None = Field(default=None, ge=0)
    break_minutes: int = Field(default=0, ge=0)
    monday: bool = True
    tuesday: bool = True
    wednesday: bool = True
    thursday: bool = True
    friday: bool = True
    saturday: bool = False
    sunday: bool = False
    grace_period_late_minutes: int | None = Field(default=None, ge=0)
    grace_period_early_leave_minutes: int | None = Field(default=None, ge=0)
    is_default: bool = False
    is_active: bool = True


class ShiftCreate(ShiftBase):
    pass


class ShiftUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    start_time: time | None = None
    end_time: time | None = None
    crosses_midnight: bool | None = None
    work_duration_minutes: int | None = Field(default=None, ge=0)
    break_minutes: int | None = Field(default=None, ge=0)
    monday: bool | None = None
    tuesday: bool | None = None
    wednesday: bool | None = None
    thursday: bool | None = None
    friday: bool | None = None
    saturday: bool | None = None
    sunday: bool | None = None
    grace_period_late_minutes: int | None = Field(default=None, ge=0)
    grace_period_early_leave_minutes: int | None = Field(default=None, ge=0)
    is_default: bool | None = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def validate_required_fields_not_null(self) -> "ShiftUpdate":
        non_nullable = (
            "name",
            "start_time",
            "end_time",
            "crosses_midnight",
            "work_duration_minutes",
            "break_minutes",
            "is_default",
            "is_active",
        )
        for field_name in non_nullable:
            if field_name in self.model_fields_set and getattr(self, field_name) is None:
                raise ValueError(f"{field_name} cannot be null")
        return self


class ShiftRead(ShiftBase):
    id: int
    work_duration_minutes: int
    net_work_minutes: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ShiftAssignmentCreate(BaseModel):
    employee_id: int = Field(ge=1)
    shift_id: int = Field(ge=1)
    effective_start_date: date
    effective_end_date: date | None = None
    assigned_by_employee_id: int | None = Field(default=None, ge=1)
    notes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_date_range(self) -> "ShiftAssignmentCreate":
        if self.effective_end_date is not None and self.effective_end_date < self.effective_start_date:
            raise ValueError("effective_end_date cannot be earlier than effective_start_date")
        return self


class ShiftAssignmentRead(BaseModel):
    id: int
    employee_id: int
    shift_id: int
    shift: ShiftSummaryRead | None = None
    effective_start_date: date
    effective_end_date: date | None
    assigned_by_employee_id: int | None
    notes: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttendanceSettingsRead(BaseModel):
    late_tolerance_minutes: int
    early_leave_tolerance_minutes: int
    min_duration_before_clock_out_minutes: int
    min_overtime_threshold_minutes: int
    night_shift_clock_out_buffer_hours: int
    enable_gps_validation: bool
    office_latitude: float | None
    office_longitude: float | None
    gps_radius_meters: int
    enforce_approved_device_for_attendance: bool
    timezone: str
