from __future__ import annotations

import unittest
from datetime import time

from sqlite_support import add_shift, memory_engine, session_factory

from attendance_engine.errors import NotFoundError, ValidationError
from attendance_engine.models import Shift
from attendance_engine.services.shift_catalog import (
    create_shift,
    get_default_shift,
    get_shift,
    list_shifts,
    span_minutes,
    update_shift,
    validate_shift_values,
)


def _values(**overrides):  # type: ignore[no-untyped-def]
    values = {
        "name": "Day",
        "start_time": time(8, 0),
        "end_time": time(17, 0),
        "crosses_midnight": False,
        "work_duration_minutes": 540,
        "break_minutes": 60,
    }
    values.update(overrides)
    return values


class ShiftValidationTests(unittest.TestCase):
    def test_span_minutes_wraps_for_night_shift(self) -> None:
        self.assertEqual(span_minutes(time(22, 0), time(6, 0), crosses_midnight=True), 480)
        self.assertEqual(span_minutes(time(8, 0), time(17, 0), crosses_midnight=False), 540)

    def test_day_shift_end_must_follow_start(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_shift_values(_values(start_time=time(17, 0), end_time=time(8, 0)))
        self.assertEqual(ctx.exception.field, "end_time")

    def test_night_shift_end_must_differ_from_start(self) -> None:
        with self.assertRaises(ValidationError):
            validate_shift_values(_values(start_time=time(22, 0), end_time=time(22, 0), crosses_midnight=True))

    def test_night_shift_may_end_before_start(self) -> None:
        validate_shift_values(_values(start_time=time(22, 0), end_time=time(6, 0), crosses_midnight=True))

    def test_break_cannot_exceed_gross(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_shift_values(_values(break_minutes=600))
        self.assertEqual(ctx.exception.field, "break_minutes")

    def test_negative_grace_is_rejected(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_shift_values(_values(grace_period_late_minutes=-1))
        self.assertEqual(ctx.exception.field, "grace_period_late_minutes")

    def test_blank_name_is_rejected(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_shift_values(_values(name="   "))
        self.assertEqual(ctx.exception.field, "name")


class ShiftCatalogTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = memory_engine()
        self.db = session_factory(self.engine)()

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def test_create_derives_gross_minutes_from_times(self) -> None:
        shift = create_shift(
            self.db,
            values={
                "name": " Night ",
                "start_time": time(22, 0),
                "end_time": time(6, 0),
                "crosses_midnight": True,
                "break_minutes": 60,
            },
        )
        self.assertEqual(shift.name, "Night")
        self.assertEqual(shift.work_duration_minutes, 480)
        self.assertEqual(shift.net_work_minutes, 420)

    def test_new_default_clears_previous_default(self) -> None:
        first = create_shift(self.db, values=_values(name="First", is_default=True))
        second = create_shift(self.db, values=_values(name="Second", is_default=True))

        self.db.expire_all()
        self.assertFalse(self.db.get(Shift, first.id).is_default)
        self.assertTrue(self.db.get(Shift, second.id).is_default)
        self.assertEqual(get_default_shift(self.db).id, second.id)

    def test_update_to_default_clears_previous_default(self) -> None:
        first = add_shift(self.db, name="First", is_default=True)
        second = add_shift(self.db, name="Second")

        update_shift(self.db, shift_id=second.id, changes={"is_default": True})

        self.db.expire_all()
        self.assertFalse(self.db.get(Shift, first.id).is_default)
        self.assertTrue(self.db.get(Shift, second.id).is_default)

    def test_update_validates_merged_values(self) -> None:
        shift = add_shift(self.db)
        with self.assertRaises(ValidationError):
            update_shift(self.db, shift_id=shift.id, changes={"end_time": time(7, 0)})

    def test_inactive_default_is_not_returned(self) -> None:
        add_shift(self.db, name="Retired", is_default=True, is_active=False)
        self.assertIsNone(get_default_shift(self.db))

    def test_list_hides_inactive_unless_requested(self) -> None:
        add_shift(self.db, name="Active")
        add_shift(self.db, name="Retired", is_active=False)

        self.assertEqual([item.name for item in list_shifts(self.db)], ["Active"])
        self.assertEqual(len(list_shifts(self.db, include_inactive=True)), 2)

    def test_get_unknown_shift_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            get_shift(self.db, 404)
        self.assertEqual(ctx.exception.code, "SHIFT_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
