from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine, Inspector

REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "employees": {"id", "is_active"},
    "shifts": {"id", "start_time", "end_time", "crosses_midnight", "break_minutes", "is_default", "is_active"},
    "shift_assignments": {"employee_id", "shift_id", "effective_start_date", "effective_end_date"},
    "attendances": {
        "employee_id",
        "work_date",
        "shift_id",
        "clock_in_at",
        "clock_out_at",
        "scheduled_work_duration_minutes",
        "scheduled_break_minutes",
        "is_manually_corrected",
        "correction_summary_notes",
    },
    "attendance_correction_logs": {"attendance_id", "corrector_id", "changed_field", "reason"},
    "attendance_settings": {"key", "value", "data_type"},
}

REQUIRED_UNIQUE_CONSTRAINTS: dict[str, str] = {
    "attendances": "uq_attendances_employee_work_date",
}


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["checked_at_utc"] = self.checked_at_utc.isoformat()
        payload["issue_count"] = len(self.issues)
        payload["warning_count"] = len(self.warnings)
        return payload


def _table_issues(inspector: Inspector, tables: set[str]) -> list[str]:
    issues = []
    for table_name, required in REQUIRED_TABLE_COLUMNS.items():
        if table_name not in tables:
            issues.append(f"MISSING_TABLE:{table_name}")
            continue
        present = {column["name"] for column in inspector.get_columns(table_name)}
        missing = sorted(required - present)
        if missing:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing)}")
    return issues


def _constraint_issues(inspector: Inspector, tables: set[str]) -> list[str]:
    issues = []
    for table_name, constraint_name in REQUIRED_UNIQUE_CONSTRAINTS.items():
        if table_name not in tables:
            continue
        # SQLite reflects some unique constraints as unique indexes.
        unique_names = {item.get("name") for item in inspector.get_unique_constraints(table_name)}
        unique_names |= {item.get("name") for item in inspector.get_indexes(table_name) if item.get("unique")}
        if constraint_name not in unique_names:
            issues.append(f"MISSING_UNIQUE_CONSTRAINT:{table_name}:{constraint_name}")
    return issues


def verify_runtime_schema(engine: Engine, *, require_alembic: bool = True) -> SchemaGuardResult:
    """Check that the connected database carries the tables and keys the engine relies on."""
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())

    issues = _table_issues(inspector, tables) + _constraint_issues(inspector, tables)
    warnings: list[str] = []

    if require_alembic and "alembic_version" not in tables:
        warnings.append("ALEMBIC_VERSION_TABLE_MISSING")
    elif require_alembic:
        with engine.connect() as connection:
            version = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
        if version is None or not str(version).strip():
            issues.append("ALEMBIC_VERSION_EMPTY")

    return SchemaGuardResult(ok=not issues, checked_at_utc=checked_at_utc, issues=issues, warnings=warnings)
