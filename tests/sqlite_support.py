from __future__ import annotations

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from attendance_engine.db import Base
from attendance_engine.models import Attendance, Device, DeviceStatus, Employee, QRCode, Shift
from attendance_engine.services.configuration import AttendanceConfig
from attendance_engine.services.shift_catalog import span_minutes

UTC = ZoneInfo("UTC")


def memory_engine() -> Engine:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


def file_engine(path: str) -> Engine:
    engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False, "timeout": 30})
    Base.metadata.create_all(engine)
    return engine


def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def seeded_config(**overrides) -> AttendanceConfig:  # type: ignore[no-untyped-def]
    values = {
        "late_tolerance_minutes": 15,
        "early_leave_tolerance_minutes": 10,
        "min_duration_before_clock_out_minutes": 60,
        "min_overtime_threshold_minutes": 30,
        "night_shift_clock_out_buffer_hours": 3,
        "timezone": UTC,
    }
    values.update(overrides)
    return AttendanceConfig(**values)


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=UTC)


def add_employee(db: Session, employee_id: int, *, is_active: bool = True) -> Employee:
    employee = Employee(id=employee_id, full_name=f"Employee {employee_id}", is_active=is_active)
    db.add(employee)
    db.commit()
    return employee


def add_shift(
    db: Session,
    *,
    name: str = "Day",
    start: time = time(8, 0),
    end: time = time(17, 0),
    crosses_midnight: bool = False,
    break_minutes: int = 60,
    work_duration_minutes: int | None = None,
    grace_late: int | None = None,
    grace_early: int | None = None,
    is_default: bool = False,
    is_active: bool = True,
) -> Shift:
    shift = Shift(
        name=name,
        start_time=start,
        end_time=end,
        crosses_midnight=crosses_midnight,
        work_duration_minutes=(
            work_duration_minutes
            if work_duration_minutes is not None
            else span_minutes(start, end, crosses_midnight=crosses_midnight)
        ),
        break_minutes=break_minutes,
        monday=True,
        tuesday=True,
        wednesday=True,
        thursday=True,
        friday=True,
        grace_period_late_minutes=grace_late,
        grace_period_early_leave_minutes=grace_early,
        is_default=is_default,
        is_active=is_active,
    )
    db.add(shift)
    db.commit()
    return shift


def add_token(db: Session, *, token: str, valid_on: date, location_name: str = "HQ") -> QRCode:
    qr_code = QRCode(token=token, location_name=location_name, valid_on_date=valid_on, is_active=True)
    db.add(qr_code)
    db.commit()
    return qr_code


def add_device(
    db: Session,
    *,
    employee_id: int,
    identifier: str,
    status: DeviceStatus = DeviceStatus.APPROVED,
) -> Device:
    device = Device(employee_id=employee_id, device_identifier=identifier, status=status)
    db.add(device)
    db.commit()
    return device


def attendance_rows(db: Session, employee_id: int) -> list[Attendance]:
    return list(db.query(Attendance).filter(Attendance.employee_id == employee_id).all())
