from __future__ import annotations

import unittest
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from sqlite_support import add_employee, add_shift, memory_engine, seeded_config, session_factory, utc

from attendance_engine.models import Attendance
from attendance_engine.services.metrics import ShiftTerms
from attendance_engine.services.work_date import local_date, pick_work_date, resolve_work_date

NIGHT = ShiftTerms(
    start_time=time(22, 0),
    end_time=time(6, 0),
    crosses_midnight=True,
    gross_minutes=480,
    break_minutes=60,
)
DAY_SHIFT = ShiftTerms(
    start_time=time(8, 0),
    end_time=time(17, 0),
    crosses_midnight=False,
    gross_minutes=540,
    break_minutes=60,
)


class PickWorkDateTests(unittest.TestCase):
    def test_without_open_record_uses_local_date(self) -> None:
        config = seeded_config()
        self.assertEqual(
            pick_work_date(utc(2026, 3, 3, 5, 55), open_previous_shift=None, config=config),
            date(2026, 3, 3),
        )

    def test_open_night_shift_pulls_scan_back_to_yesterday(self) -> None:
        config = seeded_config()
        self.assertEqual(
            pick_work_date(utc(2026, 3, 3, 5, 55), open_previous_shift=NIGHT, config=config),
            date(2026, 3, 2),
        )

    def test_buffer_end_is_inclusive(self) -> None:
        config = seeded_config()
        self.assertEqual(
            pick_work_date(utc(2026, 3, 3, 9, 0), open_previous_shift=NIGHT, config=config),
            date(2026, 3, 2),
        )
        self.assertEqual(
            pick_work_date(utc(2026, 3, 3, 9, 1), open_previous_shift=NIGHT, config=config),
            date(2026, 3, 3),
        )

    def test_day_shift_never_pulls_back(self) -> None:
        config = seeded_config()
        self.assertEqual(
            pick_work_date(utc(2026, 3, 3, 1, 0), open_previous_shift=DAY_SHIFT, config=config),
            date(2026, 3, 3),
        )

    def test_local_date_uses_configured_timezone(self) -> None:
        config = seeded_config(timezone=ZoneInfo("Asia/Jakarta"))
        instant = datetime(2026, 3, 2, 18, 30, tzinfo=timezone.utc)
        self.assertEqual(local_date(instant, config), date(2026, 3, 3))


class ResolveWorkDateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = memory_engine()
        self.db = session_factory(self.engine)()
        add_employee(self.db, 1)
        self.night = add_shift(
            self.db,
            name="Night",
            start=time(22, 0),
            end=time(6, 0),
            crosses_midnight=True,
        )
        self.config = seeded_config()

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def test_open_night_record_owns_early_morning_scan(self) -> None:
        self.db.add(
            Attendance(
                employee_id=1,
                work_date=date(2026, 3, 2),
                shift_id=self.night.id,
                clock_in_at=utc(2026, 3, 2, 22, 5),
            )
        )
        self.db.commit()

        work_date = resolve_work_date(self.db, employee_id=1, scan_instant=utc(2026, 3, 3, 5, 55), config=self.config)
        self.assertEqual(work_date, date(2026, 3, 2))

    def test_closed_night_record_does_not_pull_back(self) -> None:
        self.db.add(
            Attendance(
                employee_id=1,
                work_date=date(2026, 3, 2),
                shift_id=self.night.id,
                clock_in_at=utc(2026, 3, 2, 22, 5),
                clock_out_at=utc(2026, 3, 3, 6, 0),
            )
        )
        self.db.commit()

        work_date = resolve_work_date(self.db, employee_id=1, scan_instant=utc(2026, 3, 3, 7, 0), config=self.config)
        self.assertEqual(work_date, date(2026, 3, 3))


if __name__ == "__main__":
    unittest.main()
