from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from datetime import time
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.orm import Session

from attendance_engine.models import AttendanceSetting
from attendance_engine.settings import get_settings

logger = logging.getLogger("attendance_engine.configuration")


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or "UTC"
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("attendance_timezone_invalid", extra={"timezone": raw_name})
        return ZoneInfo("UTC")


def cast_setting_value(raw_value: str | None, data_type: str) -> Any:
    if raw_value is None:
        return None
    if data_type == "integer":
        return int(raw_value)
    if data_type == "boolean":
        return raw_value.strip().lower() in {"1", "true", "yes", "on"}
    if data_type == "decimal":
        return float(raw_value)
    if data_type == "time":
        return time.fromisoformat(raw_value.strip())
    if data_type == "json":
        return json.loads(raw_value)
    return raw_value


class SettingsResolver:
    """Typed read access to the ``attendance_settings`` table.

    Rows are loaded once when the resolver is built, so a single operation
    never observes a setting changing halfway through.
    """

    def __init__(self, rows: list[AttendanceSetting]):
        self._values: dict[str, Any] = {}
        for row in rows:
            try:
                self._values[row.key] = cast_setting_value(row.value, row.data_type)
            except (TypeError, ValueError):
                logger.warning(
                    "attendance_setting_unparseable",
                    extra={"key": row.key, "data_type": row.data_type},
                )

    @classmethod
    def load(cls, db: Session) -> SettingsResolver:
        return cls(list(db.scalars(select(AttendanceSetting)).all()))

    def get(self, key: str, default: Any = None) -> Any:
        value = self._values.get(key)
        if value is None:
            return default
        return value


@dataclass(frozen=True)
class AttendanceConfig:
    late_tolerance_minutes: int = 0
    early_leave_tolerance_minutes: int = 0
    min_duration_before_clock_out_minutes: int = 60
    min_overtime_threshold_minutes: int = 0
    night_shift_clock_out_buffer_hours: int = 3
    enable_gps_validation: bool = False
    office_latitude: float | None = None
    office_longitude: float | None = None
    gps_radius_meters: int = 100
    enforce_approved_device_for_attendance: bool = False
    timezone: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))

    def to_dict(self) -> dict[str, Any]:
        payload = {item.name: getattr(self, item.name) for item in fields(self)}
        payload["timezone"] = self.timezone.key
        return payload


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def build_attendance_config(resolver: SettingsResolver, *, tz: ZoneInfo | None = None) -> AttendanceConfig:
    return AttendanceConfig(
        late_tolerance_minutes=int(resolver.get("late_tolerance_minutes", 0)),
        early_leave_tolerance_minutes=int(resolver.get("early_leave_tolerance_minutes", 0)),
        min_duration_before_clock_out_minutes=int(resolver.get("min_duration_before_clock_out_minutes", 60)),
        min_overtime_threshold_minutes=int(resolver.get("min_overtime_threshold_minutes", 0)),
        night_shift_clock_out_buffer_hours=int(resolver.get("night_shift_clock_out_buffer_hours", 3)),
        enable_gps_validation=bool(resolver.get("enable_gps_validation", False)),
        office_latitude=_optional_float(resolver.get("office_latitude")),
        office_longitude=_optional_float(resolver.get("office_longitude")),
        gps_radius_meters=int(resolver.get("gps_radius_meters", 100)),
        enforce_approved_device_for_attendance=bool(
            resolver.get("enforce_approved_device_for_attendance", False)
        ),
        timezone=tz or attendance_timezone(),
    )


def resolve_attendance_config(db: Session) -> AttendanceConfig:
    return build_attendance_config(SettingsResolver.load(db))
