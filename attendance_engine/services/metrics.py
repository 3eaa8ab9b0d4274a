"""Punctuality and duration metrics for a single attendance day.

Everything here is pure: inputs are immutable values, outputs are frozen
dataclasses, and no database or settings lookups happen. Wall-clock shift
times are anchored to the work date in ``config.timezone``; instants are
compared as timezone-aware datetimes. Minute counts are truncated.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import TYPE_CHECKING

from attendance_engine.models import ClockInStatus, ClockOutStatus
from attendance_engine.services.configuration import AttendanceConfig

if TYPE_CHECKING:
    from attendance_engine.models import Attendance, Shift


@dataclass(frozen=True)
class ShiftTerms:
    start_time: time
    end_time: time
    crosses_midnight: bool
    gross_minutes: int
    break_minutes: int
    grace_late_minutes: int | None = None
    grace_early_leave_minutes: int | None = None

    @property
    def net_minutes(self) -> int:
        return max(0, self.gross_minutes - self.break_minutes)

    @classmethod
    def from_shift(cls, shift: Shift | None) -> ShiftTerms | None:
        if shift is None:
            return None
        return cls(
            start_time=shift.start_time,
            end_time=shift.end_time,
            crosses_midnight=bool(shift.crosses_midnight),
            gross_minutes=int(shift.work_duration_minutes or 0),
            break_minutes=int(shift.break_minutes or 0),
            grace_late_minutes=shift.grace_period_late_minutes,
            grace_early_leave_minutes=shift.grace_period_early_leave_minutes,
        )

    @classmethod
    def from_snapshot(cls, attendance: Attendance) -> ShiftTerms | None:
        """Rebuild the terms frozen on the record at clock-in.

        Later edits to the shift row never reach these values. ``None`` when the
        record carries no schedule.
        """
        start_time = attendance.scheduled_start_time
        end_time = attendance.scheduled_end_time
        if start_time is None or end_time is None:
            return None
        break_minutes = int(attendance.scheduled_break_minutes or 0)
        crosses_midnight = attendance.scheduled_crosses_midnight
        if crosses_midnight is None:
            crosses_midnight = end_time <= start_time
        return cls(
            start_time=start_time,
            end_time=end_time,
            crosses_midnight=bool(crosses_midnight),
            gross_minutes=int(attendance.scheduled_work_duration_minutes or 0) + break_minutes,
            break_minutes=break_minutes,
            grace_late_minutes=attendance.scheduled_grace_late_minutes,
            grace_early_leave_minutes=attendance.scheduled_grace_early_leave_minutes,
        )


@dataclass(frozen=True)
class ClockInMetrics:
    status: ClockInStatus
    lateness_minutes: int


@dataclass(frozen=True)
class ClockOutMetrics:
    status: ClockOutStatus
    work_duration_minutes: int
    effective_work_minutes: int
    overtime_minutes: int
    early_leave_minutes: int


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def whole_minutes(start: datetime, end: datetime) -> int:
    seconds = (to_utc(end) - to_utc(start)).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // 60)


def scheduled_start_at(work_date: date, shift: ShiftTerms, config: AttendanceConfig) -> datetime:
    return datetime.combine(work_date, shift.start_time, tzinfo=config.timezone)


def scheduled_end_at(work_date: date, shift: ShiftTerms, config: AttendanceConfig) -> datetime:
    end_at = datetime.combine(work_date, shift.end_time, tzinfo=config.timezone)
    if shift.crosses_midnight and shift.end_time < shift.start_time:
        end_at += timedelta(days=1)
    return end_at


def effective_start_at(work_date: date, shift: ShiftTerms, config: AttendanceConfig) -> datetime:
    grace = shift.grace_late_minutes
    if grace is None:
        grace = config.late_tolerance_minutes
    return scheduled_start_at(work_date, shift, config) + timedelta(minutes=max(0, grace))


def effective_end_at(work_date: date, shift: ShiftTerms, config: AttendanceConfig) -> datetime:
    grace = shift.grace_early_leave_minutes
    if grace is None:
        grace = config.early_leave_tolerance_minutes
    return scheduled_end_at(work_date, shift, config) - timedelta(minutes=max(0, grace))


def compute_clock_in(
    *,
    work_date: date,
    clock_in_at: datetime,
    shift: ShiftTerms | None,
    config: AttendanceConfig,
) -> ClockInMetrics:
    if shift is None:
        return ClockInMetrics(status=ClockInStatus.ON_TIME, lateness_minutes=0)

    effective_start = effective_start_at(work_date, shift, config)
    if to_utc(clock_in_at) > to_utc(effective_start):
        return ClockInMetrics(
            status=ClockInStatus.LATE,
            lateness_minutes=whole_minutes(effective_start, clock_in_at),
        )
    return ClockInMetrics(status=ClockInStatus.ON_TIME, lateness_minutes=0)


def lateness_for_status(
    status: ClockInStatus,
    *,
    work_date: date,
    clock_in_at: datetime | None,
    shift: ShiftTerms | None,
    config: AttendanceConfig,
) -> int:
    if status == ClockInStatus.ON_TIME or clock_in_at is None or shift is None:
        return 0
    return whole_minutes(effective_start_at(work_date, shift, config), clock_in_at)


def _durations(
    clock_in_at: datetime,
    clock_out_at: datetime,
    shift: ShiftTerms | None,
) -> tuple[int, int]:
    work_duration = whole_minutes(clock_in_at, clock_out_at)
    break_minutes = shift.break_minutes if shift is not None else 0
    return work_duration, max(0, work_duration - break_minutes)


def _qualifying_overtime(effective_minutes: int, shift: ShiftTerms, config: AttendanceConfig) -> int:
    raw_overtime = max(0, effective_minutes - shift.net_minutes)
    if raw_overtime > 0 and raw_overtime >= config.min_overtime_threshold_minutes:
        return raw_overtime
    return 0


def compute_clock_out(
    *,
    work_date: date,
    clock_in_at: datetime,
    clock_out_at: datetime,
    shift: ShiftTerms | None,
    config: AttendanceConfig,
) -> ClockOutMetrics:
    work_duration, effective = _durations(clock_in_at, clock_out_at, shift)
    if shift is None:
        return ClockOutMetrics(
            status=ClockOutStatus.FINISHED_ON_TIME,
            work_duration_minutes=work_duration,
            effective_work_minutes=effective,
            overtime_minutes=0,
            early_leave_minutes=0,
        )

    effective_end = effective_end_at(work_date, shift, config)
    if to_utc(clock_out_at) < to_utc(effective_end):
        return ClockOutMetrics(
            status=ClockOutStatus.LEFT_EARLY,
            work_duration_minutes=work_duration,
            effective_work_minutes=effective,
            overtime_minutes=0,
            early_leave_minutes=whole_minutes(clock_out_at, effective_end),
        )

    overtime = _qualifying_overtime(effective, shift, config)
    return ClockOutMetrics(
        status=ClockOutStatus.OVERTIME if overtime else ClockOutStatus.FINISHED_ON_TIME,
        work_duration_minutes=work_duration,
        effective_work_minutes=effective,
        overtime_minutes=overtime,
        early_leave_minutes=0,
    )


def clock_out_for_status(
    status: ClockOutStatus,
    *,
    work_date: date,
    clock_in_at: datetime,
    clock_out_at: datetime,
    shift: ShiftTerms | None,
    config: AttendanceConfig,
) -> ClockOutMetrics:
    """Durations for a clock-out whose status was chosen by a corrector.

    Only the minute counter that belongs to ``status`` can be non-zero.
    """
    work_duration, effective = _durations(clock_in_at, clock_out_at, shift)
    overtime = 0
    early_leave = 0
    if shift is not None and status == ClockOutStatus.LEFT_EARLY:
        early_leave = whole_minutes(clock_out_at, effective_end_at(work_date, shift, config))
    elif shift is not None and status == ClockOutStatus.OVERTIME:
        overtime = _qualifying_overtime(effective, shift, config)
    return ClockOutMetrics(
        status=status,
        work_duration_minutes=work_duration,
        effective_work_minutes=effective,
        overtime_minutes=overtime,
        early_leave_minutes=early_leave,
    )
