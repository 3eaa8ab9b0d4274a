from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from attendance_engine.audit import log_audit
from attendance_engine.db import get_db
from attendance_engine.errors import ApiError
from attendance_engine.models import AuditActorType, ClockInStatus, ClockOutStatus
from attendance_engine.routers.attendance import client_ip, user_agent
from attendance_engine.schemas import (
    AttendanceCorrectionRequest,
    AttendanceCorrectionResponse,
    AttendancePage,
    AttendanceRead,
    AttendanceSettingsRead,
    CorrectionLogRead,
    ShiftAssignmentCreate,
    ShiftAssignmentRead,
    ShiftCreate,
    ShiftRead,
    ShiftUpdate,
)
from attendance_engine.services.attendance import list_attendances
from attendance_engine.services.configuration import resolve_attendance_config
from attendance_engine.services.corrections import correct_attendance, list_correction_logs
from attendance_engine.services.shift_assignments import assign_shift, list_assignments
from attendance_engine.services.shift_catalog import create_shift, get_shift, list_shifts, update_shift

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


@router.get("/attendance", response_model=AttendancePage)
def attendance_report(
    employee_id: int | None = Query(default=None, ge=1),
    shift_id: int | None = Query(default=None, ge=1),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    clock_in_status: ClockInStatus | None = Query(default=None),
    clock_out_status: ClockOutStatus | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> AttendancePage:
    rows, total = list_attendances(
        db,
        employee_id=employee_id,
        shift_id=shift_id,
        start_date=start_date,
        end_date=end_date,
        clock_in_status=clock_in_status,
        clock_out_status=clock_out_status,
        offset=offset,
        limit=limit,
    )
    return AttendancePage(
        items=[AttendanceRead.model_validate(row) for row in rows],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.post("/attendance/{attendance_id}/corrections", response_model=AttendanceCorrectionResponse)
def create_correction(
    attendance_id: int,
    payload: AttendanceCorrectionRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> AttendanceCorrectionResponse:
    request.state.actor = "admin"
    changes = payload.field_changes()
    try:
        result = correct_attendance(
            db,
            attendance_id=attendance_id,
            changes=changes,
            corrector_id=payload.corrector_id,
            reason=payload.reason,
            corrector_ip=client_ip(request),
        )
    except ApiError as exc:
        log_audit(
            db,
            actor_type=AuditActorType.ADMIN,
            actor_id=str(payload.corrector_id),
            action="ATTENDANCE_CORRECTION_REJECTED",
            success=False,
            entity_type="attendance",
            entity_id=str(attendance_id),
            ip=client_ip(request),
            user_agent=user_agent(request),
            details={"code": exc.code, "field": exc.field, "requested_fields": sorted(changes)},
            request_id=_request_id(request),
        )
        raise

    changed_fields = [change.field for change in result.changes]
    if changed_fields:
        log_audit(
            db,
            actor_type=AuditActorType.ADMIN,
            actor_id=str(payload.corrector_id),
            action="ATTENDANCE_CORRECTED",
            success=True,
            entity_type="attendance",
            entity_id=str(attendance_id),
            ip=client_ip(request),
            user_agent=user_agent(request),
            details={"changed_fields": changed_fields},
            request_id=_request_id(request),
        )
    return AttendanceCorrectionResponse(
        changed_fields=changed_fields,
        attendance=AttendanceRead.model_validate(result.attendance),
    )


@router.get("/attendance/{attendance_id}/corrections", response_model=list[CorrectionLogRead])
def correction_history(attendance_id: int, db: Session = Depends(get_db)) -> list[CorrectionLogRead]:
    return [CorrectionLogRead.model_validate(row) for row in list_correction_logs(db, attendance_id=attendance_id)]


@router.get("/shifts", response_model=list[ShiftRead])
def shifts_index(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[ShiftRead]:
    return [ShiftRead.model_validate(row) for row in list_shifts(db, include_inactive=include_inactive)]


@router.post("/shifts", response_model=ShiftRead, status_code=status.HTTP_201_CREATED)
def shifts_create(
    payload: ShiftCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> ShiftRead:
    shift = create_shift(db, values=payload.model_dump())
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id="admin",
        action="SHIFT_CREATED",
        success=True,
        entity_type="shift",
        entity_id=str(shift.id),
        ip=client_ip(request),
        user_agent=user_agent(request),
        details={"name": shift.name, "is_default": shift.is_default},
        request_id=_request_id(request),
    )
    return ShiftRead.model_validate(shift)


@router.get("/shifts/{shift_id}", response_model=ShiftRead)
def shifts_show(shift_id: int, db: Session = Depends(get_db)) -> ShiftRead:
    return ShiftRead.model_validate(get_shift(db, shift_id))


@router.patch("/shifts/{shift_id}", response_model=ShiftRead)
def shifts_update(
    shift_id: int,
    payload: ShiftUpdate,
    request: Request,
    db: Session = Depends(get_db),
) -> ShiftRead:
    changes = payload.model_dump(exclude_unset=True)
    shift = update_shift(db, shift_id=shift_id, changes=changes)
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id="admin",
        action="SHIFT_UPDATED",
        success=True,
        entity_type="shift",
        entity_id=str(shift.id),
        ip=client_ip(request),
        user_agent=user_agent(request),
        details={"changed_fields": sorted(changes)},
        request_id=_request_id(request),
    )
    return ShiftRead.model_validate(shift)


@router.post("/shift-assignments", response_model=ShiftAssignmentRead, status_code=status.HTTP_201_CREATED)
def shift_assignments_create(
    payload: ShiftAssignmentCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> ShiftAssignmentRead:
    assignment = assign_shift(
        db,
        employee_id=payload.employee_id,
        shift_id=payload.shift_id,
        effective_start_date=payload.effective_start_date,
        effective_end_date=payload.effective_end_date,
        assigned_by_employee_id=payload.assigned_by_employee_id,
        notes=payload.notes,
    )
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=str(payload.assigned_by_employee_id or "admin"),
        action="SHIFT_ASSIGNED",
        success=True,
        entity_type="shift_assignment",
        entity_id=str(assignment.id),
        ip=client_ip(request),
        user_agent=user_agent(request),
        details={
            "employee_id": assignment.employee_id,
            "shift_id": assignment.shift_id,
            "effective_start_date": assignment.effective_start_date.isoformat(),
        },
        request_id=_request_id(request),
    )
    return ShiftAssignmentRead.model_validate(assignment)


@router.get("/employees/{employee_id}/shift-assignments", response_model=list[ShiftAssignmentRead])
def shift_assignments_index(employee_id: int, db: Session = Depends(get_db)) -> list[ShiftAssignmentRead]:
    return [ShiftAssignmentRead.model_validate(row) for row in list_assignments(db, employee_id=employee_id)]


@router.get("/attendance-settings", response_model=AttendanceSettingsRead)
def attendance_settings(db: Session = Depends(get_db)) -> AttendanceSettingsRead:
    return AttendanceSettingsRead(**resolve_attendance_config(db).to_dict())
