from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from attendance_engine.errors import NotFoundError, ValidationError
from attendance_engine.models import WEEKDAY_COLUMNS, Shift

logger = logging.getLogger("attendance_engine.shifts")

SHIFT_EDITABLE_FIELDS: tuple[str, ...] = (
    "name",
    "start_time",
    "end_time",
    "crosses_midnight",
    "work_duration_minutes",
    "break_minutes",
    *WEEKDAY_COLUMNS,
    "grace_period_late_minutes",
    "grace_period_early_leave_minutes",
    "is_default",
    "is_active",
)


def span_minutes(start_time: time, end_time: time, *, crosses_midnight: bool) -> int:
    anchor = date(2000, 1, 1)
    start_at = datetime.combine(anchor, start_time)
    end_at = datetime.combine(anchor, end_time)
    if crosses_midnight and end_time < start_time:
        end_at += timedelta(days=1)
    return max(0, int((end_at - start_at).total_seconds() // 60))


def _non_negative(values: dict[str, Any], field_name: str, *, nullable: bool = False) -> None:
    value = values.get(field_name)
    if value is None:
        if nullable:
            return
        raise ValidationError(field_name, f"{field_name} is required.")
    if int(value) < 0:
        raise ValidationError(field_name, f"{field_name} must not be negative.")


def validate_shift_values(values: dict[str, Any]) -> None:
    name = (values.get("name") or "").strip()
    if not name:
        raise ValidationError("name", "Shift name is required.")

    start_time = values.get("start_time")
    end_time = values.get("end_time")
    if start_time is None:
        raise ValidationError("start_time", "Shift start time is required.")
    if end_time is None:
        raise ValidationError("end_time", "Shift end time is required.")

    if values.get("crosses_midnight"):
        if end_time == start_time:
            raise ValidationError("end_time", "Shift end time must differ from the start time.")
    elif end_time <= start_time:
        raise ValidationError(
            "end_time",
            "Shift end time must be after the start time unless the shift crosses midnight.",
        )

    _non_negative(values, "work_duration_minutes")
    _non_negative(values, "break_minutes")
    _non_negative(values, "grace_period_late_minutes", nullable=True)
    _non_negative(values, "grace_period_early_leave_minutes", nullable=True)
    if int(values["break_minutes"]) > int(values["work_duration_minutes"]):
        raise ValidationError("break_minutes", "Break minutes cannot exceed the shift duration.")


def _clear_other_defaults(db: Session, *, keep_shift_id: int) -> None:
    db.execute(
        update(Shift)
        .where(Shift.is_default.is_(True), Shift.id != keep_shift_id)
        .values(is_default=False)
    )


def get_shift(db: Session, shift_id: int) -> Shift:
    shift = db.get(Shift, shift_id)
    if shift is None:
        raise NotFoundError(f"Shift {shift_id} not found.", code="SHIFT_NOT_FOUND")
    return shift


def list_shifts(db: Session, *, include_inactive: bool = False) -> list[Shift]:
    stmt = select(Shift).order_by(Shift.start_time.asc(), Shift.name.asc(), Shift.id.asc())
    if not include_inactive:
        stmt = stmt.where(Shift.is_active.is_(True))
    return list(db.scalars(stmt).all())


def get_default_shift(db: Session) -> Shift | None:
    return db.scalar(
        select(Shift)
        .where(Shift.is_default.is_(True), Shift.is_active.is_(True))
        .order_by(Shift.id.asc())
        .limit(1)
    )


def create_shift(db: Session, *, values: dict[str, Any]) -> Shift:
    payload = {key: values[key] for key in SHIFT_EDITABLE_FIELDS if key in values}
    payload.setdefault("crosses_midnight", False)
    payload.setdefault("break_minutes", 0)
    payload.setdefault("is_default", False)
    payload.setdefault("is_active", True)
    if payload.get("work_duration_minutes") is None and payload.get("start_time") and payload.get("end_time"):
        payload["work_duration_minutes"] = span_minutes(
            payload["start_time"],
            payload["end_time"],
            crosses_midnight=bool(payload["crosses_midnight"]),
        )
    validate_shift_values(payload)
    payload["name"] = payload["name"].strip()

    shift = Shift(**payload)
    db.add(shift)
    db.flush()
    if shift.is_default:
        _clear_other_defaults(db, keep_shift_id=shift.id)
    db.commit()
    db.refresh(shift)
    logger.info("shift_created", extra={"shift_id": shift.id, "is_default": shift.is_default})
    return shift


def update_shift(db: Session, *, shift_id: int, changes: dict[str, Any]) -> Shift:
    shift = get_shift(db, shift_id)
    merged = {key: getattr(shift, key) for key in SHIFT_EDITABLE_FIELDS}
    merged.update({key: changes[key] for key in SHIFT_EDITABLE_FIELDS if key in changes})
    validate_shift_values(merged)
    merged["name"] = merged["name"].strip()

    for key, value in merged.items():
        setattr(shift, key, value)
    db.flush()
    if shift.is_default:
        _clear_other_defaults(db, keep_shift_id=shift.id)
    db.commit()
    db.refresh(shift)
    logger.info("shift_updated", extra={"shift_id": shift.id, "changed": sorted(changes)})
    return shift
