#!/usr/bin/env python
"""Pre-deploy database report for the attendance engine.

Prints a JSON report and exits non-zero when any check fails. Reads
``DATABASE_URL`` from the environment or ``.env`` through the app settings.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from attendance_engine.services.schema_guard import verify_runtime_schema
from attendance_engine.settings import get_settings

MIGRATIONS_DIR = ROOT_DIR / "attendance_engine" / "migrations"
MAX_REVISION_LENGTH = 32
SAMPLE_LIMIT = 20

INTEGRITY_QUERIES: dict[str, str] = {
    "duplicate_attendance_work_date": """
        select min(id)
        from attendances
        group by employee_id, work_date
        having count(*) > 1
        limit :limit
    """,
    "attendance_clock_out_before_clock_in": """
        select id
        from attendances
        where clock_in_at is not null and clock_out_at is not null and clock_out_at < clock_in_at
        limit :limit
    """,
    "attendance_clock_out_without_clock_in": """
        select id
        from attendances
        where clock_out_at is not null and clock_in_at is null
        limit :limit
    """,
}


def _check(name: str, status: str, **details: Any) -> dict[str, Any]:
    return {"name": name, "status": status, "details": details}


def _migration_script() -> ScriptDirectory:
    config = Config(str(ROOT_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    return ScriptDirectory.from_config(config)


def check_revision_ids(script: ScriptDirectory) -> dict[str, Any]:
    revisions = [item.revision for item in script.walk_revisions()]
    too_long = sorted(revision for revision in revisions if len(revision) > MAX_REVISION_LENGTH)
    return _check(
        "migration_revision_length",
        "fail" if too_long else "ok",
        max_len=MAX_REVISION_LENGTH,
        too_long=too_long,
        total=len(revisions),
    )


def check_alembic_heads(connection: Connection, script: ScriptDirectory, tables: set[str]) -> dict[str, Any]:
    expected = sorted(script.get_heads())
    current: list[str] = []
    if "alembic_version" in tables:
        current = [str(row[0]) for row in connection.execute(text("select version_num from alembic_version"))]
    missing = [head for head in expected if head not in current]
    return _check("alembic_heads", "fail" if missing else "ok", expected=expected, current=current, missing=missing)


def check_attendance_integrity(connection: Connection) -> list[dict[str, Any]]:
    results = []
    for name, query in INTEGRITY_QUERIES.items():
        sample_ids = [row[0] for row in connection.execute(text(query), {"limit": SAMPLE_LIMIT})]
        results.append(_check(name, "fail" if sample_ids else "ok", sample_ids=sample_ids))
    return results


def check_default_shift(connection: Connection) -> dict[str, Any]:
    count = connection.execute(
        text("select count(*) from shifts where is_default = true and is_active = true")
    ).scalar_one()
    if count == 1:
        status = "ok"
    elif count == 0:
        status = "warn"
    else:
        status = "fail"
    return _check("active_default_shift", status, count=count)


def run(database_url: str) -> dict[str, Any]:
    script = _migration_script()
    checks = [check_revision_ids(script)]

    engine = create_engine(database_url, pool_pre_ping=True)
    try:
        tables = set(inspect(engine).get_table_names())
        schema_result = verify_runtime_schema(engine)
        checks.append(
            _check(
                "runtime_schema_guard",
                "ok" if schema_result.ok else "fail",
                issues=schema_result.issues,
                warnings=schema_result.warnings,
            )
        )
        with engine.connect() as connection:
            checks.append(check_alembic_heads(connection, script, tables))
            if "attendances" in tables:
                checks.extend(check_attendance_integrity(connection))
            if "shifts" in tables:
                checks.append(check_default_shift(connection))
    finally:
        engine.dispose()

    return {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "ok": all(item["status"] != "fail" for item in checks),
        "checks": checks,
    }


def main() -> int:
    report = run(get_settings().database_url)
    print(json.dumps(report, ensure_ascii=False, indent=2, default=str))
    return 0 if report["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
