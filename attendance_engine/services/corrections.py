"""Authorized corrections of attendance records with a field-level trail.

A correction snapshots the tracked fields, applies the requested overrides,
re-derives every metric so the record stays internally consistent, and then
writes one ``AttendanceCorrectionLog`` row per field whose canonical text
value changed. The record update and its log rows share one transaction.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from attendance_engine.audit import FieldChange, diff_snapshots, take_snapshot
from attendance_engine.errors import ConflictError, NotFoundError, ValidationError
from attendance_engine.models import (
    Attendance,
    AttendanceCorrectionLog,
    ClockInStatus,
    ClockOutStatus,
    Employee,
    Shift,
)
from attendance_engine.services.attendance import get_attendance, snapshot_shift
from attendance_engine.services.configuration import AttendanceConfig, resolve_attendance_config
from attendance_engine.services.locks import KeyedLock, attendance_locks
from attendance_engine.services.metrics import (
    ShiftTerms,
    clock_out_for_status,
    compute_clock_in,
    compute_clock_out,
    lateness_for_status,
    to_utc,
)
from attendance_engine.services.shift_assignments import resolve_active_shift
from attendance_engine.services.shift_catalog import get_shift

logger = logging.getLogger("attendance_engine.corrections")

StatusT = TypeVar("StatusT", ClockInStatus, ClockOutStatus)

TRACKED_FIELDS: tuple[str, ...] = (
    "work_date",
    "shift_id",
    "clock_in_at",
    "clock_in_status",
    "clock_in_notes",
    "clock_out_at",
    "clock_out_status",
    "clock_out_notes",
    "scheduled_start_time",
    "scheduled_end_time",
    "scheduled_work_duration_minutes",
    "scheduled_crosses_midnight",
    "scheduled_break_minutes",
    "scheduled_grace_late_minutes",
    "scheduled_grace_early_leave_minutes",
    "work_duration_minutes",
    "effective_work_minutes",
    "overtime_minutes",
    "lateness_minutes",
    "early_leave_minutes",
)

CORRECTABLE_FIELDS: frozenset[str] = frozenset(
    {
        "work_date",
        "shift_id",
        "clock_in_at",
        "clock_in_time",
        "clock_in_status",
        "clock_in_notes",
        "clock_out_at",
        "clock_out_time",
        "clock_out_status",
        "clock_out_notes",
    }
)


@dataclass(frozen=True)
class CorrectionResult:
    attendance: Attendance
    changes: list[FieldChange]


def _combine_local(day: date, wall_clock: time, config: AttendanceConfig) -> datetime:
    return datetime.combine(day, wall_clock, tzinfo=config.timezone).astimezone(timezone.utc)


def expand_wall_clock_times(
    changes: dict[str, Any],
    *,
    current_work_date: date,
    current_clock_in_at: datetime | None,
    config: AttendanceConfig,
) -> dict[str, Any]:
    """Turn ``clock_in_time``/``clock_out_time`` into instants on the work date.

    A clock-out wall time earlier than the clock-in rolls over to the next day.
    """
    expanded = dict(changes)
    base_date = expanded.get("work_date") or current_work_date

    for side in ("clock_in", "clock_out"):
        time_key = f"{side}_time"
        if time_key not in expanded:
            continue
        if f"{side}_at" in expanded:
            raise ValidationError(time_key, f"Send either {side}_at or {time_key}, not both.")
        wall_clock = expanded.pop(time_key)
        expanded[f"{side}_at"] = None if wall_clock is None else _combine_local(base_date, wall_clock, config)

    if "clock_out_at" in expanded and "clock_out_time" in changes and expanded["clock_out_at"] is not None:
        clock_in_at = expanded.get("clock_in_at", current_clock_in_at)
        if clock_in_at is not None and expanded["clock_out_at"] < to_utc(clock_in_at):
            expanded["clock_out_at"] = expanded["clock_out_at"] + timedelta(days=1)
    return expanded


def _resolve_correction_shift(
    db: Session,
    attendance: Attendance,
    changes: dict[str, Any],
    *,
    work_date_changed: bool,
) -> tuple[Shift | None, bool]:
    if "shift_id" in changes:
        requested = changes["shift_id"]
        if requested is None:
            return resolve_active_shift(db, employee_id=attendance.employee_id, day_date=attendance.work_date), True
        if requested != attendance.shift_id:
            return get_shift(db, int(requested)), True
    if work_date_changed:
        return resolve_active_shift(db, employee_id=attendance.employee_id, day_date=attendance.work_date), True
    return None, False


def _recompute_clock_in(
    attendance: Attendance,
    *,
    status_override: ClockInStatus | None,
    shift: ShiftTerms | None,
    config: AttendanceConfig,
) -> None:
    if attendance.clock_in_at is None:
        attendance.clock_in_status = None
        attendance.lateness_minutes = 0
        return
    clock_in_at = to_utc(attendance.clock_in_at)
    if status_override is not None:
        attendance.clock_in_status = status_override
        attendance.lateness_minutes = lateness_for_status(
            status_override,
            work_date=attendance.work_date,
            clock_in_at=clock_in_at,
            shift=shift,
            config=config,
        )
        return
    metrics = compute_clock_in(
        work_date=attendance.work_date,
        clock_in_at=clock_in_at,
        shift=shift,
        config=config,
    )
    attendance.clock_in_status = metrics.status
    attendance.lateness_minutes = metrics.lateness_minutes


def _recompute_clock_out(
    attendance: Attendance,
    *,
    status_override: ClockOutStatus | None,
    shift: ShiftTerms | None,
    config: AttendanceConfig,
) -> None:
    if attendance.clock_in_at is None or attendance.clock_out_at is None:
        attendance.clock_out_status = None
        attendance.work_duration_minutes = None
        attendance.effective_work_minutes = None
        attendance.overtime_minutes = 0
        attendance.early_leave_minutes = 0
        return

    arguments = {
        "work_date": attendance.work_date,
        "clock_in_at": to_utc(attendance.clock_in_at),
        "clock_out_at": to_utc(attendance.clock_out_at),
        "shift": shift,
        "config": config,
    }
    if status_override is not None:
        metrics = clock_out_for_status(status_override, **arguments)
    else:
        metrics = compute_clock_out(**arguments)
    attendance.clock_out_status = metrics.status
    attendance.work_duration_minutes = metrics.work_duration_minutes
    attendance.effective_work_minutes = metrics.effective_work_minutes
    attendance.overtime_minutes = metrics.overtime_minutes
    attendance.early_leave_minutes = metrics.early_leave_minutes


def _parse_status(enum_cls: type[StatusT], value: Any, field_name: str) -> StatusT | None:
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(item.value for item in enum_cls)
        raise ValidationError(field_name, f"{field_name} must be one of: {allowed}.") from None


def _ensure_work_date_free(db: Session, attendance: Attendance, work_date: date) -> None:
    occupant = db.scalar(
        select(Attendance.id)
        .where(
            Attendance.employee_id == attendance.employee_id,
            Attendance.work_date == work_date,
            Attendance.id != attendance.id,
        )
        .with_for_update()
    )
    if occupant is not None:
        raise ConflictError(
            f"Attendance {occupant} already exists for {work_date.isoformat()}.",
            code="WORK_DATE_TAKEN",
        )


def _apply_changes(
    db: Session,
    attendance: Attendance,
    changes: dict[str, Any],
    *,
    config: AttendanceConfig,
) -> None:
    work_date_changed = False
    if "work_date" in changes:
        new_work_date = changes["work_date"]
        if new_work_date is None:
            raise ValidationError("work_date", "Work date cannot be removed.")
        if new_work_date != attendance.work_date:
            _ensure_work_date_free(db, attendance, new_work_date)
            attendance.work_date = new_work_date
            work_date_changed = True

    if "clock_in_at" in changes:
        if changes["clock_in_at"] is None:
            raise ValidationError("clock_in_at", "Clock-in time cannot be removed.")
        attendance.clock_in_at = to_utc(changes["clock_in_at"])
    if "clock_out_at" in changes:
        value = changes["clock_out_at"]
        attendance.clock_out_at = to_utc(value) if value is not None else None
    if "clock_in_notes" in changes:
        attendance.clock_in_notes = changes["clock_in_notes"]
    if "clock_out_notes" in changes:
        attendance.clock_out_notes = changes["clock_out_notes"]

    if (
        attendance.clock_in_at is not None
        and attendance.clock_out_at is not None
        and to_utc(attendance.clock_out_at) < to_utc(attendance.clock_in_at)
    ):
        raise ValidationError("clock_out_at", "Clock-out cannot be earlier than clock-in.")

    clock_in_override = _parse_status(ClockInStatus, changes.get("clock_in_status"), "clock_in_status")
    clock_out_override = _parse_status(ClockOutStatus, changes.get("clock_out_status"), "clock_out_status")
    if clock_in_override is not None and attendance.clock_in_at is None:
        raise ValidationError("clock_in_status", "Clock-in status needs a clock-in time.")
    if clock_out_override is not None and attendance.clock_out_at is None:
        raise ValidationError("clock_out_status", "Clock-out status needs a clock-out time.")

    shift, reresolved = _resolve_correction_shift(db, attendance, changes, work_date_changed=work_date_changed)
    if reresolved:
        snapshot_shift(attendance, shift)
    terms = ShiftTerms.from_snapshot(attendance)

    _recompute_clock_in(attendance, status_override=clock_in_override, shift=terms, config=config)
    _recompute_clock_out(attendance, status_override=clock_out_override, shift=terms, config=config)


def _append_summary_note(
    attendance: Attendance,
    *,
    corrector_id: int,
    reason: str,
    now_utc: datetime,
    config: AttendanceConfig,
) -> None:
    stamp = now_utc.astimezone(config.timezone).strftime("%Y-%m-%d %H:%M:%S")
    note = f"[{stamp}] Corrector #{corrector_id}: {reason}"
    current = (attendance.correction_summary_notes or "").strip()
    attendance.correction_summary_notes = f"{current}\n{note}" if current else note


def correct_attendance(
    db: Session,
    *,
    attendance_id: int,
    changes: dict[str, Any],
    corrector_id: int,
    reason: str,
    corrector_ip: str | None = None,
    config: AttendanceConfig | None = None,
    locks: KeyedLock = attendance_locks,
) -> CorrectionResult:
    normalized_reason = (reason or "").strip()
    if not normalized_reason:
        raise ValidationError("reason", "A correction reason is required.", code="REASON_REQUIRED")
    unknown = sorted(set(changes) - CORRECTABLE_FIELDS)
    if unknown:
        raise ValidationError(unknown[0], f"Field {unknown[0]} cannot be corrected.")
    if db.get(Employee, corrector_id) is None:
        raise NotFoundError(f"Corrector {corrector_id} not found.", code="CORRECTOR_NOT_FOUND")

    attendance = get_attendance(db, attendance_id)
    config = config or resolve_attendance_config(db)
    lock_keys = {(attendance.employee_id, attendance.work_date)}
    if changes.get("work_date") is not None:
        lock_keys.add((attendance.employee_id, changes["work_date"]))

    with ExitStack() as stack:
        for key in sorted(lock_keys):
            stack.enter_context(locks.hold(key))
        try:
            attendance = db.scalar(
                select(Attendance)
                .where(Attendance.id == attendance_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if attendance is None:
                raise NotFoundError(f"Attendance {attendance_id} not found.", code="ATTENDANCE_NOT_FOUND")

            expanded = expand_wall_clock_times(
                changes,
                current_work_date=attendance.work_date,
                current_clock_in_at=attendance.clock_in_at,
                config=config,
            )
            before = take_snapshot(attendance, TRACKED_FIELDS)
            _apply_changes(db, attendance, expanded, config=config)
            field_changes = diff_snapshots(before, take_snapshot(attendance, TRACKED_FIELDS))

            if not field_changes:
                db.rollback()
                db.refresh(attendance)
                logger.info("correction_no_changes", extra={"attendance_id": attendance_id, "corrector_id": corrector_id})
                return CorrectionResult(attendance=attendance, changes=[])

            now_utc = datetime.now(timezone.utc)
            for change in field_changes:
                db.add(
                    AttendanceCorrectionLog(
                        attendance_id=attendance.id,
                        corrector_id=corrector_id,
                        changed_field=change.field,
                        old_value=change.old_value,
                        new_value=change.new_value,
                        reason=normalized_reason,
                        corrector_ip=corrector_ip,
                        corrected_at=now_utc,
                    )
                )
            attendance.is_manually_corrected = True
            attendance.last_corrected_by = corrector_id
            attendance.last_correction_at = now_utc
            _append_summary_note(
                attendance,
                corrector_id=corrector_id,
                reason=normalized_reason,
                now_utc=now_utc,
                config=config,
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(
                "The corrected work date collides with another attendance record.",
                code="WORK_DATE_TAKEN",
            ) from None
        except Exception:
            db.rollback()
            raise

    db.refresh(attendance)
    logger.info(
        "attendance_corrected",
        extra={
            "attendance_id": attendance.id,
            "corrector_id": corrector_id,
            "changed_fields": [change.field for change in field_changes],
        },
    )
    return CorrectionResult(attendance=attendance, changes=field_changes)


def list_correction_logs(db: Session, *, attendance_id: int) -> list[AttendanceCorrectionLog]:
    get_attendance(db, attendance_id)
    return list(
        db.scalars(
            select(AttendanceCorrectionLog)
            .where(AttendanceCorrectionLog.attendance_id == attendance_id)
            .order_by(AttendanceCorrectionLog.corrected_at.asc(), AttendanceCorrectionLog.id.asc())
        ).all()
    )
