from __future__ import annotations

import unittest
from collections.abc import Generator
from datetime import date

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlite_support import add_employee, add_shift, add_token, memory_engine, session_factory

from attendance_engine.db import get_db
from attendance_engine.main import app
from attendance_engine.models import AttendanceSetting, AuditLog

DAY = date(2026, 3, 2)


def _override_get_db(factory):  # type: ignore[no-untyped-def]
    def _override() -> Generator:
        db = factory()
        try:
            yield db
        finally:
            db.close()

    return _override


class ApiEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = memory_engine()
        self.session_factory = session_factory(self.engine)
        with self.session_factory() as db:
            add_employee(db, 1)
            add_employee(db, 50)
            add_shift(db, name="Day", is_default=True)
            add_token(db, token="HQ-0302", valid_on=DAY)
            db.add_all(
                [
                    AttendanceSetting(key="late_tolerance_minutes", value="15", data_type="integer"),
                    AttendanceSetting(key="min_overtime_threshold_minutes", value="30", data_type="integer"),
                    AttendanceSetting(key="enable_gps_validation", value="false", data_type="boolean"),
                ]
            )
            db.commit()
        app.dependency_overrides[get_db] = _override_get_db(self.session_factory)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.engine.dispose()

    def _scan(self, scanned_at: str, **payload):  # type: ignore[no-untyped-def]
        body = {
            "employee_id": 1,
            "qr_payload": {"token": "HQ-0302"},
            "scanned_at": scanned_at,
        }
        body.update(payload)
        return self.client.post("/api/attendance/scan", json=body)

    def _audit_actions(self) -> list[str]:
        with self.session_factory() as db:
            return list(db.scalars(select(AuditLog.action).order_by(AuditLog.id)).all())

    def test_scan_clock_in_then_clock_out(self) -> None:
        first = self._scan("2026-03-02T08:10:00+00:00")
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["phase"], "clock_in")
        self.assertEqual(first.json()["attendance"]["clock_in_status"], "ON_TIME")
        self.assertIn("X-Request-Id", first.headers)

        second = self._scan("2026-03-02T18:00:00+00:00")
        body = second.json()
        self.assertEqual(second.status_code, 200)
        self.assertEqual(body["phase"], "clock_out")
        self.assertEqual(body["attendance"]["clock_out_status"], "OVERTIME")
        self.assertEqual(body["attendance"]["overtime_minutes"], 50)
        self.assertEqual(self._audit_actions(), ["ATTENDANCE_CLOCK_IN", "ATTENDANCE_CLOCK_OUT"])

    def test_rejected_scan_uses_error_envelope_and_is_audited(self) -> None:
        response = self._scan("2026-03-05T08:00:00+00:00")

        self.assertEqual(response.status_code, 422)
        error = response.json()["error"]
        self.assertEqual(error["code"], "INVALID_QR_CODE")
        self.assertEqual(error["field"], "qr_code")
        self.assertIn("request_id", error)
        self.assertEqual(self._audit_actions(), ["ATTENDANCE_SCAN_REJECTED"])

    def test_request_validation_error(self) -> None:
        response = self.client.post("/api/attendance/scan", json={"employee_id": 1})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_unknown_employee_is_404(self) -> None:
        response = self._scan("2026-03-02T08:00:00+00:00", employee_id=404)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "EMPLOYEE_NOT_FOUND")

    def test_history_lists_employee_records(self) -> None:
        self._scan("2026-03-02T08:00:00+00:00")
        response = self.client.get("/api/attendance/history", params={"employee_id": 1})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["total"], 1)
        self.assertEqual(body["limit"], 15)
        self.assertEqual(body["items"][0]["work_date"], "2026-03-02")

    def test_correction_endpoint_and_log_listing(self) -> None:
        attendance_id = self._scan("2026-03-02T09:05:00+00:00").json()["attendance"]["id"]

        response = self.client.post(
            f"/api/admin/attendance/{attendance_id}/corrections",
            json={"corrector_id": 50, "reason": "Traffic accident on site road", "clock_in_status": "ON_TIME"},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(sorted(body["changed_fields"]), ["clock_in_status", "lateness_minutes"])
        self.assertTrue(body["attendance"]["is_manually_corrected"])

        logs = self.client.get(f"/api/admin/attendance/{attendance_id}/corrections").json()
        self.assertEqual(len(logs), 2)
        self.assertIn("ATTENDANCE_CORRECTED", self._audit_actions())

    def test_correction_without_reason_is_rejected(self) -> None:
        attendance_id = self._scan("2026-03-02T09:05:00+00:00").json()["attendance"]["id"]
        response = self.client.post(
            f"/api/admin/attendance/{attendance_id}/corrections",
            json={"corrector_id": 50, "reason": "  ", "clock_in_status": "ON_TIME"},
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "REASON_REQUIRED")
        self.assertIn("ATTENDANCE_CORRECTION_REJECTED", self._audit_actions())

    def test_attendance_report_filters(self) -> None:
        self._scan("2026-03-02T09:05:00+00:00")
        late = self.client.get("/api/admin/attendance", params={"clock_in_status": "LATE"}).json()
        on_time = self.client.get("/api/admin/attendance", params={"clock_in_status": "ON_TIME"}).json()
        self.assertEqual(late["total"], 1)
        self.assertEqual(on_time["total"], 0)

        bad_range = self.client.get(
            "/api/admin/attendance",
            params={"start_date": "2026-03-05", "end_date": "2026-03-01"},
        )
        self.assertEqual(bad_range.status_code, 422)

    def test_shift_crud_and_assignment(self) -> None:
        created = self.client.post(
            "/api/admin/shifts",
            json={
                "name": "Night",
                "start_time": "22:00:00",
                "end_time": "06:00:00",
                "crosses_midnight": True,
                "break_minutes": 60,
            },
        )
        self.assertEqual(created.status_code, 201)
        shift = created.json()
        self.assertEqual(shift["work_duration_minutes"], 480)
        self.assertEqual(shift["net_work_minutes"], 420)

        updated = self.client.patch(f"/api/admin/shifts/{shift['id']}", json={"break_minutes": 30})
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["net_work_minutes"], 450)

        null_name = self.client.patch(f"/api/admin/shifts/{shift['id']}", json={"name": None})
        self.assertEqual(null_name.status_code, 422)

        assignment = self.client.post(
            "/api/admin/shift-assignments",
            json={"employee_id": 1, "shift_id": shift["id"], "effective_start_date": "2026-03-01"},
        )
        self.assertEqual(assignment.status_code, 201)

        listing = self.client.get("/api/admin/employees/1/shift-assignments").json()
        self.assertEqual(listing[0]["shift"]["name"], "Night")
        self.assertIn("SHIFT_ASSIGNED", self._audit_actions())

    def test_invalid_shift_times_are_rejected(self) -> None:
        response = self.client.post(
            "/api/admin/shifts",
            json={"name": "Broken", "start_time": "17:00:00", "end_time": "08:00:00"},
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["field"], "end_time")

    def test_unknown_shift_is_404(self) -> None:
        response = self.client.get("/api/admin/shifts/999")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "SHIFT_NOT_FOUND")

    def test_attendance_settings_are_resolved(self) -> None:
        body = self.client.get("/api/admin/attendance-settings").json()
        self.assertEqual(body["late_tolerance_minutes"], 15)
        self.assertEqual(body["min_duration_before_clock_out_minutes"], 60)
        self.assertFalse(body["enable_gps_validation"])

    def test_unknown_route_uses_error_envelope(self) -> None:
        response = self.client.get("/api/does-not-exist")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "NOT_FOUND")

    def test_health_reports_schema_guard_state(self) -> None:
        body = self.client.get("/health").json()
        self.assertEqual(body["status"], "ok")
        self.assertIn("schema_guard", body)


if __name__ == "__main__":
    unittest.main()
