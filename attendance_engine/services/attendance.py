from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from attendance_engine.errors import ApiError, ConflictError, NotFoundError, ValidationError
from attendance_engine.models import (
    Attendance,
    AttendanceMethod,
    ClockInStatus,
    ClockOutStatus,
    Employee,
    Shift,
)
from attendance_engine.services.configuration import AttendanceConfig, resolve_attendance_config
from attendance_engine.services.locks import KeyedLock, attendance_locks
from attendance_engine.services.metrics import (
    ShiftTerms,
    compute_clock_in,
    compute_clock_out,
    to_utc,
)
from attendance_engine.services.scan_gates import (
    DatabaseDeviceGate,
    DatabaseTokenValidator,
    DeviceGate,
    ScanLocation,
    TokenPayload,
    TokenValidator,
    check_device,
    check_token,
    validate_gps_location,
)
from attendance_engine.services.shift_assignments import resolve_active_shift
from attendance_engine.services.work_date import resolve_work_date

logger = logging.getLogger("attendance_engine.attendance")

CLOCK_IN_NOTE = "Clocked in via QR code."
CLOCK_OUT_NOTE = "Clocked out via QR code."
SCAN_ATTEMPTS = 2

CLOCK_IN_STATUS_LABELS: dict[ClockInStatus, str] = {
    ClockInStatus.ON_TIME: "On Time",
    ClockInStatus.LATE: "Late",
}
CLOCK_OUT_STATUS_LABELS: dict[ClockOutStatus, str] = {
    ClockOutStatus.FINISHED_ON_TIME: "Finished On Time",
    ClockOutStatus.LEFT_EARLY: "Left Early",
    ClockOutStatus.OVERTIME: "Overtime",
}


@dataclass(frozen=True)
class ScanResult:
    attendance: Attendance
    message: str
    phase: str


def format_duration(minutes: int | None) -> str:
    total = max(0, int(minutes or 0))
    return f"{total // 60}h {total % 60}m"


def _load_active_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError(f"Employee {employee_id} not found.", code="EMPLOYEE_NOT_FOUND")
    if not employee.is_active:
        raise ApiError(
            status_code=403,
            code="EMPLOYEE_INACTIVE",
            message="Inactive employee cannot perform attendance actions.",
        )
    return employee


def lock_attendance_row(db: Session, *, employee_id: int, work_date: date) -> Attendance | None:
    return db.scalar(
        select(Attendance)
        .where(Attendance.employee_id == employee_id, Attendance.work_date == work_date)
        .with_for_update()
    )


def snapshot_shift(attendance: Attendance, shift: Shift | None) -> None:
    attendance.shift_id = shift.id if shift is not None else None
    attendance.scheduled_start_time = shift.start_time if shift is not None else None
    attendance.scheduled_end_time = shift.end_time if shift is not None else None
    attendance.scheduled_work_duration_minutes = shift.net_work_minutes if shift is not None else None
    attendance.scheduled_crosses_midnight = shift.crosses_midnight if shift is not None else None
    attendance.scheduled_break_minutes = shift.break_minutes if shift is not None else None
    attendance.scheduled_grace_late_minutes = shift.grace_period_late_minutes if shift is not None else None
    attendance.scheduled_grace_early_leave_minutes = (
        shift.grace_period_early_leave_minutes if shift is not None else None
    )


def _clock_in(
    attendance: Attendance,
    *,
    instant: datetime,
    shift: Shift,
    token_id: int,
    device_id: int | None,
    location: ScanLocation | None,
    config: AttendanceConfig,
) -> str:
    snapshot_shift(attendance, shift)
    attendance.clock_in_at = instant
    attendance.clock_in_notes = CLOCK_IN_NOTE
    attendance.clock_in_latitude = location.latitude if location is not None else None
    attendance.clock_in_longitude = location.longitude if location is not None else None
    attendance.clock_in_device_id = device_id
    attendance.clock_in_qr_code_id = token_id
    attendance.clock_in_method = AttendanceMethod.QR_SCAN

    metrics = compute_clock_in(
        work_date=attendance.work_date,
        clock_in_at=instant,
        shift=ShiftTerms.from_shift(shift),
        config=config,
    )
    attendance.clock_in_status = metrics.status
    attendance.lateness_minutes = metrics.lateness_minutes

    local_time = instant.astimezone(config.timezone).strftime("%H:%M:%S")
    message = f"Clocked in successfully at {local_time}. Status: {CLOCK_IN_STATUS_LABELS[metrics.status]}."
    if metrics.lateness_minutes > 0:
        message += f" Late by: {metrics.lateness_minutes} minutes."
    return message


def _clock_out(
    attendance: Attendance,
    *,
    instant: datetime,
    shift: Shift,
    token_id: int,
    device_id: int | None,
    location: ScanLocation | None,
    config: AttendanceConfig,
) -> str:
    clock_in_at = to_utc(attendance.clock_in_at)
    minimum = timedelta(minutes=config.min_duration_before_clock_out_minutes)
    if instant - clock_in_at < minimum:
        raise ValidationError(
            "clock_out_scan",
            "You cannot clock out yet. Minimum work duration: "
            f"{config.min_duration_before_clock_out_minutes} minutes.",
            code="CLOCK_OUT_TOO_EARLY",
        )

    attendance.clock_out_at = instant
    attendance.clock_out_notes = CLOCK_OUT_NOTE
    attendance.clock_out_latitude = location.latitude if location is not None else None
    attendance.clock_out_longitude = location.longitude if location is not None else None
    attendance.clock_out_device_id = device_id
    attendance.clock_out_qr_code_id = token_id
    attendance.clock_out_method = AttendanceMethod.QR_SCAN

    terms = ShiftTerms.from_snapshot(attendance)
    if terms is None:
        snapshot_shift(attendance, shift)
        terms = ShiftTerms.from_shift(shift)
    metrics = compute_clock_out(
        work_date=attendance.work_date,
        clock_in_at=clock_in_at,
        clock_out_at=instant,
        shift=terms,
        config=config,
    )
    attendance.clock_out_status = metrics.status
    attendance.work_duration_minutes = metrics.work_duration_minutes
    attendance.effective_work_minutes = metrics.effective_work_minutes
    attendance.overtime_minutes = metrics.overtime_minutes
    attendance.early_leave_minutes = metrics.early_leave_minutes

    local_time = instant.astimezone(config.timezone).strftime("%H:%M:%S")
    message = (
        f"Clocked out successfully at {local_time}. "
        f"Status: {CLOCK_OUT_STATUS_LABELS[metrics.status]}. "
        f"Work duration: {format_duration(metrics.work_duration_minutes)}"
    )
    if metrics.overtime_minutes > 0:
        message += f" Overtime: {metrics.overtime_minutes} minutes."
    if metrics.early_leave_minutes > 0:
        message += f" Left early by: {metrics.early_leave_minutes} minutes."
    return message


def _apply_scan(
    db: Session,
    *,
    employee_id: int,
    work_date: date,
    instant: datetime,
    shift: Shift,
    token_id: int,
    device_id: int | None,
    location: ScanLocation | None,
    config: AttendanceConfig,
) -> ScanResult:
    attendance = lock_attendance_row(db, employee_id=employee_id, work_date=work_date)
    phase_kwargs = {
        "instant": instant,
        "shift": shift,
        "token_id": token_id,
        "device_id": device_id,
        "location": location,
        "config": config,
    }

    if attendance is None or attendance.clock_in_at is None:
        if attendance is None:
            attendance = Attendance(employee_id=employee_id, work_date=work_date)
            db.add(attendance)
        message = _clock_in(attendance, **phase_kwargs)
        db.flush()
        return ScanResult(attendance=attendance, message=message, phase="clock_in")

    if attendance.clock_out_at is None:
        message = _clock_out(attendance, **phase_kwargs)
        db.flush()
        return ScanResult(attendance=attendance, message=message, phase="clock_out")

    logger.info(
        "scan_after_completion",
        extra={"employee_id": employee_id, "work_date": work_date.isoformat(), "attendance_id": attendance.id},
    )
    raise ValidationError(
        "attendance",
        "You have already clocked in and out for this work date.",
        code="ATTENDANCE_COMPLETED",
    )


def process_scan(
    db: Session,
    *,
    employee_id: int,
    token: TokenPayload,
    scan_instant: datetime | None = None,
    location: ScanLocation | None = None,
    device_identifier: str | None = None,
    config: AttendanceConfig | None = None,
    token_validator: TokenValidator | None = None,
    device_gate: DeviceGate | None = None,
    locks: KeyedLock = attendance_locks,
) -> ScanResult:
    _load_active_employee(db, employee_id)
    instant = to_utc(scan_instant) if scan_instant is not None else datetime.now(timezone.utc)
    config = config or resolve_attendance_config(db)

    work_date = resolve_work_date(db, employee_id=employee_id, scan_instant=instant, config=config)
    token_id = check_token(
        db,
        token_validator or DatabaseTokenValidator(),
        payload=token,
        work_date=work_date,
        employee_id=employee_id,
    )
    validate_gps_location(location, config)

    shift = resolve_active_shift(db, employee_id=employee_id, day_date=work_date)
    if shift is None:
        logger.warning(
            "scan_no_shift",
            extra={"employee_id": employee_id, "work_date": work_date.isoformat()},
        )
        raise ValidationError("schedule", "No active work schedule found for this date.", code="NO_ACTIVE_SHIFT")

    device_id = check_device(
        db,
        device_gate or DatabaseDeviceGate(),
        employee_id=employee_id,
        identifier=device_identifier,
        config=config,
    )

    with locks.hold((employee_id, work_date)):
        attempt = 0
        while True:
            attempt += 1
            try:
                result = _apply_scan(
                    db,
                    employee_id=employee_id,
                    work_date=work_date,
                    instant=instant,
                    shift=shift,
                    token_id=token_id,
                    device_id=device_id,
                    location=location,
                    config=config,
                )
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.warning(
                    "scan_unique_race_lost",
                    extra={"employee_id": employee_id, "work_date": work_date.isoformat(), "attempt": attempt},
                )
                if attempt == SCAN_ATTEMPTS:
                    raise ConflictError(
                        "Another scan for this work date is being processed. Please retry.",
                        code="ATTENDANCE_CONFLICT",
                    ) from None
                continue
            except Exception:
                db.rollback()
                raise

            db.refresh(result.attendance)
            logger.info(
                "scan_accepted",
                extra={
                    "employee_id": employee_id,
                    "attendance_id": result.attendance.id,
                    "work_date": work_date.isoformat(),
                    "phase": result.phase,
                },
            )
            return result


def get_attendance(db: Session, attendance_id: int) -> Attendance:
    attendance = db.scalar(
        select(Attendance)
        .options(selectinload(Attendance.shift), selectinload(Attendance.employee))
        .where(Attendance.id == attendance_id)
    )
    if attendance is None:
        raise NotFoundError(f"Attendance {attendance_id} not found.", code="ATTENDANCE_NOT_FOUND")
    return attendance


def list_employee_history(
    db: Session,
    *,
    employee_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    offset: int = 0,
    limit: int = 15,
) -> tuple[list[Attendance], int]:
    if db.get(Employee, employee_id) is None:
        raise NotFoundError(f"Employee {employee_id} not found.", code="EMPLOYEE_NOT_FOUND")
    return list_attendances(
        db,
        employee_id=employee_id,
        start_date=start_date,
        end_date=end_date,
        offset=offset,
        limit=limit,
    )


def list_attendances(
    db: Session,
    *,
    employee_id: int | None = None,
    shift_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    clock_in_status: ClockInStatus | None = None,
    clock_out_status: ClockOutStatus | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[Attendance], int]:
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ValidationError("end_date", "end_date cannot be earlier than start_date.")

    conditions = []
    if employee_id is not None:
        conditions.append(Attendance.employee_id == employee_id)
    if shift_id is not None:
        conditions.append(Attendance.shift_id == shift_id)
    if start_date is not None:
        conditions.append(Attendance.work_date >= start_date)
    if end_date is not None:
        conditions.append(Attendance.work_date <= end_date)
    if clock_in_status is not None:
        conditions.append(Attendance.clock_in_status == clock_in_status)
    if clock_out_status is not None:
        conditions.append(Attendance.clock_out_status == clock_out_status)

    total = int(db.scalar(select(func.count(Attendance.id)).where(*conditions)) or 0)
    rows = list(
        db.scalars(
            select(Attendance)
            .options(selectinload(Attendance.shift), selectinload(Attendance.employee))
            .where(*conditions)
            .order_by(Attendance.work_date.desc(), Attendance.clock_in_at.desc(), Attendance.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
    )
    return rows, total
