from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from attendance_engine.audit import log_audit
from attendance_engine.db import get_db
from attendance_engine.errors import ApiError
from attendance_engine.models import AuditActorType
from attendance_engine.schemas import (
    AttendancePage,
    AttendanceRead,
    AttendanceScanRequest,
    AttendanceScanResponse,
)
from attendance_engine.services.attendance import list_employee_history, process_scan
from attendance_engine.services.scan_gates import ScanLocation, TokenPayload

router = APIRouter(tags=["attendance"])


def client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


@router.post("/api/attendance/scan", response_model=AttendanceScanResponse)
def scan(
    payload: AttendanceScanRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> AttendanceScanResponse:
    request.state.actor = "employee"
    request.state.employee_id = payload.employee_id
    token = TokenPayload(
        token=payload.qr_payload.token,
        location_name=payload.qr_payload.location_name,
        shift_id=payload.qr_payload.shift_id,
        valid_on=payload.qr_payload.valid_on,
    )
    location = (
        ScanLocation(latitude=payload.location.latitude, longitude=payload.location.longitude)
        if payload.location is not None
        else None
    )
    try:
        result = process_scan(
            db,
            employee_id=payload.employee_id,
            token=token,
            scan_instant=payload.scanned_at,
            location=location,
            device_identifier=payload.device_identifier,
        )
    except ApiError as exc:
        log_audit(
            db,
            actor_type=AuditActorType.EMPLOYEE,
            actor_id=str(payload.employee_id),
            action="ATTENDANCE_SCAN_REJECTED",
            success=False,
            entity_type="attendance",
            ip=client_ip(request),
            user_agent=user_agent(request),
            details={"code": exc.code, "field": exc.field, "message": exc.message},
            request_id=getattr(request.state, "request_id", None),
        )
        raise

    attendance = result.attendance
    request.state.attendance_id = attendance.id
    log_audit(
        db,
        actor_type=AuditActorType.EMPLOYEE,
        actor_id=str(payload.employee_id),
        action="ATTENDANCE_CLOCK_IN" if result.phase == "clock_in" else "ATTENDANCE_CLOCK_OUT",
        success=True,
        entity_type="attendance",
        entity_id=str(attendance.id),
        ip=client_ip(request),
        user_agent=user_agent(request),
        details={
            "work_date": attendance.work_date.isoformat(),
            "shift_id": attendance.shift_id,
            "device_id": attendance.clock_out_device_id if result.phase == "clock_out" else attendance.clock_in_device_id,
        },
        request_id=getattr(request.state, "request_id", None),
    )
    return AttendanceScanResponse(
        phase=result.phase,
        message=result.message,
        attendance=AttendanceRead.model_validate(attendance),
    )


@router.get("/api/attendance/history", response_model=AttendancePage)
def history(
    employee_id: int = Query(ge=1),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=15, ge=1, le=200),
    db: Session = Depends(get_db),
) -> AttendancePage:
    rows, total = list_employee_history(
        db,
        employee_id=employee_id,
        start_date=start_date,
        end_date=end_date,
        offset=offset,
        limit=limit,
    )
    return AttendancePage(
        items=[AttendanceRead.model_validate(row) for row in rows],
        total=total,
        offset=offset,
        limit=limit,
    )
