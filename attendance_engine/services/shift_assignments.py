from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from attendance_engine.errors import NotFoundError, ValidationError
from attendance_engine.models import Employee, Shift, ShiftAssignment
from attendance_engine.services.shift_catalog import get_default_shift, get_shift

logger = logging.getLogger("attendance_engine.shifts")


def find_covering_assignment(
    db: Session,
    *,
    employee_id: int,
    day_date: date,
) -> ShiftAssignment | None:
    return db.scalar(
        select(ShiftAssignment)
        .options(selectinload(ShiftAssignment.shift))
        .where(
            ShiftAssignment.employee_id == employee_id,
            ShiftAssignment.effective_start_date <= day_date,
            or_(
                ShiftAssignment.effective_end_date.is_(None),
                ShiftAssignment.effective_end_date >= day_date,
            ),
        )
        .order_by(ShiftAssignment.effective_start_date.desc(), ShiftAssignment.id.desc())
        .limit(1)
    )


def resolve_active_shift(db: Session, *, employee_id: int, day_date: date) -> Shift | None:
    """Shift in effect for ``employee_id`` on ``day_date``.

    The most recently started covering assignment wins; an assignment whose
    shift was deactivated falls through to the active default shift.
    """
    assignment = find_covering_assignment(db, employee_id=employee_id, day_date=day_date)
    if assignment is not None and assignment.shift is not None and assignment.shift.is_active:
        return assignment.shift
    return get_default_shift(db)


def list_assignments(db: Session, *, employee_id: int) -> list[ShiftAssignment]:
    if db.get(Employee, employee_id) is None:
        raise NotFoundError(f"Employee {employee_id} not found.", code="EMPLOYEE_NOT_FOUND")
    return list(
        db.scalars(
            select(ShiftAssignment)
            .options(selectinload(ShiftAssignment.shift))
            .where(ShiftAssignment.employee_id == employee_id)
            .order_by(ShiftAssignment.effective_start_date.desc(), ShiftAssignment.id.desc())
        ).all()
    )


def assign_shift(
    db: Session,
    *,
    employee_id: int,
    shift_id: int,
    effective_start_date: date,
    effective_end_date: date | None = None,
    assigned_by_employee_id: int | None = None,
    notes: str | None = None,
) -> ShiftAssignment:
    if db.get(Employee, employee_id) is None:
        raise NotFoundError(f"Employee {employee_id} not found.", code="EMPLOYEE_NOT_FOUND")
    shift = get_shift(db, shift_id)
    if not shift.is_active:
        raise ValidationError("shift_id", "Inactive shifts cannot be assigned.")
    if effective_end_date is not None and effective_end_date < effective_start_date:
        raise ValidationError(
            "effective_end_date",
            "Effective end date cannot be earlier than the effective start date.",
        )
    if assigned_by_employee_id is not None and db.get(Employee, assigned_by_employee_id) is None:
        raise NotFoundError(
            f"Employee {assigned_by_employee_id} not found.",
            code="EMPLOYEE_NOT_FOUND",
        )

    overlapping = list(
        db.scalars(
            select(ShiftAssignment).where(
                ShiftAssignment.employee_id == employee_id,
                ShiftAssignment.effective_start_date < effective_start_date,
                or_(
                    ShiftAssignment.effective_end_date.is_(None),
                    ShiftAssignment.effective_end_date >= effective_start_date,
                ),
            )
        ).all()
    )
    closing_date = effective_start_date - timedelta(days=1)
    for previous in overlapping:
        previous.effective_end_date = closing_date

    assignment = ShiftAssignment(
        employee_id=employee_id,
        shift_id=shift.id,
        effective_start_date=effective_start_date,
        effective_end_date=effective_end_date,
        assigned_by_employee_id=assigned_by_employee_id,
        notes=(notes or "").strip() or None,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info(
        "shift_assigned",
        extra={
            "employee_id": employee_id,
            "shift_id": shift.id,
            "assignment_id": assignment.id,
            "closed_assignment_ids": [item.id for item in overlapping],
        },
    )
    return assignment
