from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlite_support import memory_engine

from attendance_engine.services.schema_guard import REQUIRED_TABLE_COLUMNS, verify_runtime_schema


class _FakeResult:
    def __init__(self, value):
        self._value = value

    def scalar(self):  # type: ignore[no-untyped-def]
        return self._value


class _FakeConnection:
    def __init__(self, version_value):
        self._version_value = version_value

    def __enter__(self):  # type: ignore[no-untyped-def]
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False

    def execute(self, _statement):  # type: ignore[no-untyped-def]
        return _FakeResult(self._version_value)


class _FakeEngine:
    def __init__(self, version_value):
        self._version_value = version_value

    def connect(self):  # type: ignore[no-untyped-def]
        return _FakeConnection(self._version_value)


class _FakeInspector:
    def __init__(self, *, columns_by_table: dict[str, set[str]], unique_constraints: dict[str, list[str]]):
        self._columns_by_table = columns_by_table
        self._unique_constraints = unique_constraints

    def get_table_names(self):  # type: ignore[no-untyped-def]
        return list(self._columns_by_table)

    def get_columns(self, table_name: str):  # type: ignore[no-untyped-def]
        return [{"name": item} for item in self._columns_by_table[table_name]]

    def get_unique_constraints(self, table_name: str):  # type: ignore[no-untyped-def]
        return [{"name": item} for item in self._unique_constraints.get(table_name, [])]

    def get_indexes(self, _table_name: str):  # type: ignore[no-untyped-def]
        return []


def _complete_columns() -> dict[str, set[str]]:
    columns = {table: set(required) for table, required in REQUIRED_TABLE_COLUMNS.items()}
    columns["alembic_version"] = {"version_num"}
    return columns


class SchemaGuardTests(unittest.TestCase):
    def test_verify_runtime_schema_ok_when_required_columns_exist(self) -> None:
        fake_inspector = _FakeInspector(
            columns_by_table=_complete_columns(),
            unique_constraints={"attendances": ["uq_attendances_employee_work_date"]},
        )

        with patch("attendance_engine.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine("0002_attendance_shift_snapshot"))  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertEqual(result.issues, [])
        self.assertEqual(result.warnings, [])

    def test_verify_runtime_schema_reports_missing_pieces(self) -> None:
        columns = _complete_columns()
        columns["attendances"] = columns["attendances"] - {"work_date"}
        del columns["attendance_correction_logs"]
        fake_inspector = _FakeInspector(columns_by_table=columns, unique_constraints={})

        with patch("attendance_engine.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine(""))  # type: ignore[arg-type]

        self.assertFalse(result.ok)
        self.assertIn("MISSING_COLUMNS:attendances:work_date", result.issues)
        self.assertIn("MISSING_TABLE:attendance_correction_logs", result.issues)
        self.assertIn(
            "MISSING_UNIQUE_CONSTRAINT:attendances:uq_attendances_employee_work_date",
            result.issues,
        )
        self.assertIn("ALEMBIC_VERSION_EMPTY", result.issues)

    def test_metadata_schema_passes_without_alembic_table(self) -> None:
        engine = memory_engine()
        try:
            result = verify_runtime_schema(engine)
        finally:
            engine.dispose()

        self.assertTrue(result.ok, result.issues)
        self.assertEqual(result.warnings, ["ALEMBIC_VERSION_TABLE_MISSING"])


if __name__ == "__main__":
    unittest.main()
