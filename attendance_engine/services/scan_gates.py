"""Checks that run before a scan reaches the attendance state machine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Protocol

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from attendance_engine.errors import ValidationError
from attendance_engine.models import Device, DeviceStatus, QRCode
from attendance_engine.services.configuration import AttendanceConfig
from attendance_engine.services.location import within_radius

logger = logging.getLogger("attendance_engine.attendance")


@dataclass(frozen=True)
class TokenPayload:
    token: str
    location_name: str | None = None
    shift_id: int | None = None
    valid_on: date | None = None


@dataclass(frozen=True)
class ScanLocation:
    latitude: float
    longitude: float


class TokenValidator(Protocol):
    def validate_for_work_date(self, db: Session, payload: TokenPayload, work_date: date) -> int | None:
        ...


class DeviceGate(Protocol):
    def resolve_approved_device(self, db: Session, employee_id: int, identifier: str | None) -> int | None:
        ...


class DatabaseTokenValidator:
    def validate_for_work_date(self, db: Session, payload: TokenPayload, work_date: date) -> int | None:
        token = (payload.token or "").strip()
        if not token:
            return None
        if payload.valid_on is not None and payload.valid_on != work_date:
            logger.info(
                "scan_token_date_mismatch",
                extra={"payload_date": payload.valid_on.isoformat(), "work_date": work_date.isoformat()},
            )
            return None

        now_utc = datetime.now(timezone.utc)
        stmt = select(QRCode.id).where(
            QRCode.token == token,
            QRCode.valid_on_date == work_date,
            QRCode.is_active.is_(True),
            or_(QRCode.expires_at.is_(None), QRCode.expires_at > now_utc),
        )
        if payload.location_name:
            stmt = stmt.where(QRCode.location_name == payload.location_name)
        if payload.shift_id is not None:
            stmt = stmt.where(QRCode.shift_id == payload.shift_id)
        return db.scalar(stmt.limit(1))


class DatabaseDeviceGate:
    def resolve_approved_device(self, db: Session, employee_id: int, identifier: str | None) -> int | None:
        normalized = (identifier or "").strip()
        if not normalized:
            return None
        return db.scalar(
            select(Device.id).where(
                Device.device_identifier == normalized,
                Device.employee_id == employee_id,
                Device.status == DeviceStatus.APPROVED,
            )
        )


def check_token(
    db: Session,
    validator: TokenValidator,
    *,
    payload: TokenPayload,
    work_date: date,
    employee_id: int,
) -> int:
    token_id = validator.validate_for_work_date(db, payload, work_date)
    if token_id is None:
        logger.warning(
            "scan_token_rejected",
            extra={"employee_id": employee_id, "work_date": work_date.isoformat()},
        )
        raise ValidationError(
            "qr_code",
            "QR Code is invalid or not applicable for the current/determined work date.",
            code="INVALID_QR_CODE",
        )
    return token_id


def check_device(
    db: Session,
    gate: DeviceGate,
    *,
    employee_id: int,
    identifier: str | None,
    config: AttendanceConfig,
) -> int | None:
    device_id = gate.resolve_approved_device(db, employee_id, identifier)
    if device_id is not None:
        return device_id

    has_identifier = bool((identifier or "").strip())
    if config.enforce_approved_device_for_attendance:
        if has_identifier:
            raise ValidationError(
                "device",
                "Attendance from this device is not permitted.",
                code="DEVICE_NOT_APPROVED",
            )
        raise ValidationError(
            "device",
            "Device identifier is required for attendance.",
            code="DEVICE_REQUIRED",
        )
    if has_identifier:
        logger.warning(
            "scan_device_not_approved",
            extra={"employee_id": employee_id, "device_identifier": identifier},
        )
    return None


def validate_gps_location(location: ScanLocation | None, config: AttendanceConfig) -> float | None:
    """Distance from the office in meters, or ``None`` when the check is skipped."""
    if not config.enable_gps_validation or location is None:
        return None
    if config.office_latitude is None or config.office_longitude is None:
        logger.warning("gps_validation_skipped", extra={"reason": "office_location_not_configured"})
        return None

    inside, distance_value = within_radius(
        center_lat=config.office_latitude,
        center_lon=config.office_longitude,
        lat=location.latitude,
        lon=location.longitude,
        radius_m=config.gps_radius_meters,
    )
    if not inside:
        raise ValidationError(
            "location",
            f"You are outside the allowed area for attendance (Distance: {round(distance_value)}m).",
            code="OUTSIDE_GPS_RADIUS",
        )
    return distance_value
