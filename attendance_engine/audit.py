from __future__ import annotations

import enum
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from attendance_engine.models import AuditActorType, AuditLog

logger = logging.getLogger("attendance_engine.audit")


@dataclass(frozen=True)
class FieldChange:
    field: str
    old_value: str | None
    new_value: str | None


def serialize_audit_value(value: Any) -> str | None:
    """Canonical text form used when comparing and storing audited values."""
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, sort_keys=True, ensure_ascii=True)
    return str(value)


def take_snapshot(entity: Any, field_names: Iterable[str]) -> dict[str, str | None]:
    return {name: serialize_audit_value(getattr(entity, name)) for name in field_names}


def diff_snapshots(
    before: Mapping[str, str | None],
    after: Mapping[str, str | None],
) -> list[FieldChange]:
    changes: list[FieldChange] = []
    for name, old_value in before.items():
        new_value = after.get(name)
        if old_value != new_value:
            changes.append(FieldChange(field=name, old_value=old_value, new_value=new_value))
    for name in after:
        if name not in before and after[name] is not None:
            changes.append(FieldChange(field=name, old_value=None, new_value=after[name]))
    return changes


def log_audit(
    db: Session,
    *,
    actor_type: AuditActorType,
    actor_id: str,
    action: str,
    success: bool,
    entity_type: str | None = None,
    entity_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> None:
    payload = details or {}
    db.add(
        AuditLog(
            ts_utc=datetime.now(timezone.utc),
            actor_type=actor_type,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            ip=ip,
            user_agent=user_agent,
            success=success,
            details=json.loads(json.dumps(payload, default=str)),
        )
    )
    log_extra = {
        "request_id": request_id,
        "action": action,
        "actor_type": actor_type.value,
        "actor_id": actor_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "success": success,
    }
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("audit_log_write_failed", extra=log_extra)
        return

    logger.info("audit_event", extra={**log_extra, "ip": ip, "details": payload})
