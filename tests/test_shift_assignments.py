from __future__ import annotations

import unittest
from datetime import date, time

from sqlite_support import add_employee, add_shift, memory_engine, session_factory

from attendance_engine.errors import NotFoundError, ValidationError
from attendance_engine.models import ShiftAssignment
from attendance_engine.services.shift_assignments import assign_shift, list_assignments, resolve_active_shift


class ShiftAssignmentTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = memory_engine()
        self.db = session_factory(self.engine)()
        add_employee(self.db, 1)
        self.default_shift = add_shift(self.db, name="Default", is_default=True)
        self.night = add_shift(
            self.db,
            name="Night",
            start=time(22, 0),
            end=time(6, 0),
            crosses_midnight=True,
        )

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def test_falls_back_to_default_without_assignment(self) -> None:
        shift = resolve_active_shift(self.db, employee_id=1, day_date=date(2026, 3, 2))
        self.assertEqual(shift.id, self.default_shift.id)

    def test_covering_assignment_wins_over_default(self) -> None:
        assign_shift(self.db, employee_id=1, shift_id=self.night.id, effective_start_date=date(2026, 3, 1))

        shift = resolve_active_shift(self.db, employee_id=1, day_date=date(2026, 3, 2))
        self.assertEqual(shift.id, self.night.id)
        before = resolve_active_shift(self.db, employee_id=1, day_date=date(2026, 2, 28))
        self.assertEqual(before.id, self.default_shift.id)

    def test_new_assignment_closes_open_predecessor(self) -> None:
        first = assign_shift(self.db, employee_id=1, shift_id=self.night.id, effective_start_date=date(2026, 3, 1))
        assign_shift(
            self.db,
            employee_id=1,
            shift_id=self.default_shift.id,
            effective_start_date=date(2026, 3, 10),
        )

        self.db.expire_all()
        self.assertEqual(self.db.get(ShiftAssignment, first.id).effective_end_date, date(2026, 3, 9))
        self.assertEqual(
            resolve_active_shift(self.db, employee_id=1, day_date=date(2026, 3, 9)).id,
            self.night.id,
        )
        self.assertEqual(
            resolve_active_shift(self.db, employee_id=1, day_date=date(2026, 3, 10)).id,
            self.default_shift.id,
        )

    def test_deactivated_assigned_shift_falls_back_to_default(self) -> None:
        assign_shift(self.db, employee_id=1, shift_id=self.night.id, effective_start_date=date(2026, 3, 1))
        self.night.is_active = False
        self.db.commit()

        shift = resolve_active_shift(self.db, employee_id=1, day_date=date(2026, 3, 2))
        self.assertEqual(shift.id, self.default_shift.id)

    def test_no_assignment_and_no_default_resolves_none(self) -> None:
        self.default_shift.is_default = False
        self.db.commit()
        self.assertIsNone(resolve_active_shift(self.db, employee_id=1, day_date=date(2026, 3, 2)))

    def test_end_before_start_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            assign_shift(
                self.db,
                employee_id=1,
                shift_id=self.night.id,
                effective_start_date=date(2026, 3, 10),
                effective_end_date=date(2026, 3, 9),
            )

    def test_inactive_shift_cannot_be_assigned(self) -> None:
        retired = add_shift(self.db, name="Retired", is_active=False)
        with self.assertRaises(ValidationError) as ctx:
            assign_shift(self.db, employee_id=1, shift_id=retired.id, effective_start_date=date(2026, 3, 1))
        self.assertEqual(ctx.exception.field, "shift_id")

    def test_unknown_employee_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            assign_shift(self.db, employee_id=99, shift_id=self.night.id, effective_start_date=date(2026, 3, 1))

    def test_list_returns_newest_start_first(self) -> None:
        assign_shift(self.db, employee_id=1, shift_id=self.night.id, effective_start_date=date(2026, 3, 1))
        assign_shift(self.db, employee_id=1, shift_id=self.default_shift.id, effective_start_date=date(2026, 4, 1))

        starts = [item.effective_start_date for item in list_assignments(self.db, employee_id=1)]
        self.assertEqual(starts, [date(2026, 4, 1), date(2026, 3, 1)])


if __name__ == "__main__":
    unittest.main()
