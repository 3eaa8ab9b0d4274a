from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from attendance_engine.models import Attendance
from attendance_engine.services.configuration import AttendanceConfig
from attendance_engine.services.metrics import ShiftTerms, scheduled_end_at, to_utc


def local_date(instant: datetime, config: AttendanceConfig) -> date:
    return to_utc(instant).astimezone(config.timezone).date()


def clock_out_window_end(previous_date: date, shift: ShiftTerms, config: AttendanceConfig) -> datetime:
    buffer = timedelta(hours=max(0, config.night_shift_clock_out_buffer_hours))
    return scheduled_end_at(previous_date, shift, config) + buffer


def pick_work_date(
    scan_instant: datetime,
    *,
    open_previous_shift: ShiftTerms | None,
    config: AttendanceConfig,
) -> date:
    """Work date for a scan given the shift of yesterday's still-open record.

    ``open_previous_shift`` is ``None`` when yesterday has no open record.
    Only a midnight-crossing shift can pull the scan back to yesterday, and
    only up to the shift end plus the clock-out buffer.
    """
    today = local_date(scan_instant, config)
    if open_previous_shift is None or not open_previous_shift.crosses_midnight:
        return today

    yesterday = today - timedelta(days=1)
    if to_utc(scan_instant) <= to_utc(clock_out_window_end(yesterday, open_previous_shift, config)):
        return yesterday
    return today


def find_open_attendance(db: Session, *, employee_id: int, work_date: date) -> Attendance | None:
    return db.scalar(
        select(Attendance)
        .options(selectinload(Attendance.shift))
        .where(
            Attendance.employee_id == employee_id,
            Attendance.work_date == work_date,
            Attendance.clock_in_at.is_not(None),
            Attendance.clock_out_at.is_(None),
        )
    )


def resolve_work_date(
    db: Session,
    *,
    employee_id: int,
    scan_instant: datetime,
    config: AttendanceConfig,
) -> date:
    yesterday = local_date(scan_instant, config) - timedelta(days=1)
    open_record = find_open_attendance(db, employee_id=employee_id, work_date=yesterday)
    open_shift = ShiftTerms.from_shift(open_record.shift) if open_record is not None else None
    return pick_work_date(scan_instant, open_previous_shift=open_shift, config=config)
