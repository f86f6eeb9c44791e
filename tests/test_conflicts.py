import unittest
from datetime import datetime

from progression.conflicts import (
    UNKNOWN_COURSE_LABEL,
    CourseSchedule,
    check_schedule_conflicts,
    find_course_conflicts,
    find_internal_conflicts,
)
from progression.slots import RecurringScheduleSlot


ANCHOR = datetime(2024, 1, 1)


def slot(day: int, start: int, end: int, start_date: datetime = ANCHOR) -> RecurringScheduleSlot:
    return RecurringScheduleSlot(day, start, end, start_date)


class FindCourseConflictsTestCase(unittest.TestCase):
    def test_touching_slots_do_not_conflict(self) -> None:
        others = [CourseSchedule(2, "Histoire", [slot(1, 10, 12)])]
        self.assertEqual(find_course_conflicts([slot(1, 8, 10)], others), [])

    def test_overlapping_slots_conflict(self) -> None:
        others = [CourseSchedule(2, "Histoire", [slot(1, 9, 11)])]
        conflicts = find_course_conflicts([slot(1, 8, 10)], others)
        self.assertEqual(len(conflicts), 1)
        self.assertEqual(conflicts[0].conflicting_course_progress_id, 2)
        self.assertEqual(conflicts[0].slot, slot(1, 8, 10))
        self.assertEqual(
            conflicts[0].message, 'Conflit avec le cours "Histoire" le lundi de 9h à 11h'
        )

    def test_different_days_never_conflict(self) -> None:
        others = [CourseSchedule(2, "Histoire", [slot(day, 0, 23) for day in range(2, 8)])]
        self.assertEqual(find_course_conflicts([slot(1, 0, 23)], others), [])

    def test_anchor_dates_are_ignored(self) -> None:
        later = datetime(2030, 6, 3)
        others = [CourseSchedule(2, "Histoire", [slot(1, 9, 11, later)])]
        self.assertEqual(len(find_course_conflicts([slot(1, 8, 10)], others)), 1)

    def test_missing_label(self) -> None:
        others = [CourseSchedule(2, None, [slot(2, 8, 10)])]
        conflicts = find_course_conflicts([slot(2, 9, 10)], others)
        self.assertIn(f'"{UNKNOWN_COURSE_LABEL}"', conflicts[0].message)

    def test_one_entry_per_conflicting_pair(self) -> None:
        others = [
            CourseSchedule(2, "Histoire", [slot(1, 8, 9), slot(1, 9, 10)]),
            CourseSchedule(3, "Musique", [slot(1, 8, 12)]),
        ]
        conflicts = find_course_conflicts([slot(1, 8, 10)], others)
        self.assertEqual(
            [c.conflicting_course_progress_id for c in conflicts], [2, 2, 3]
        )


class InternalConflictsTestCase(unittest.TestCase):
    def test_overlapping_candidates(self) -> None:
        conflicts = find_internal_conflicts([slot(1, 8, 10), slot(1, 9, 11), slot(2, 8, 10)])
        self.assertEqual(len(conflicts), 1)
        self.assertIsNone(conflicts[0].conflicting_course_progress_id)
        self.assertEqual(
            conflicts[0].message,
            "Conflit interne: deux créneaux se chevauchent le lundi (8h-10h)",
        )


class CheckScheduleConflictsTestCase(unittest.TestCase):
    def test_own_course_is_skipped(self) -> None:
        requested = []

        def lookup(course_progress_id):
            requested.append(course_progress_id)
            return [
                CourseSchedule(1, "Maths", [slot(1, 8, 10)]),
                CourseSchedule(2, "Histoire", [slot(1, 9, 10)]),
            ]

        report = check_schedule_conflicts(1, [slot(1, 8, 10)], lookup)
        self.assertEqual(requested, [1])
        self.assertTrue(report.has_conflicts)
        self.assertEqual(len(report.conflicts), 1)
        self.assertEqual(report.conflicts[0].conflicting_course_progress_id, 2)
        self.assertEqual(report.internal_conflicts, [])

    def test_payload(self) -> None:
        report = check_schedule_conflicts(
            "1",
            [slot(1, 8, 10), slot(1, 8, 9)],
            lambda _: [CourseSchedule(7, "Histoire", [slot(1, 9, 11)])],
        )
        payload = report.as_payload()
        self.assertEqual(len(payload["conflicts"]), 1)
        self.assertEqual(payload["conflicts"][0]["conflicting_course_progress_id"], "7")
        self.assertEqual(payload["conflicts"][0]["slot"]["start_hour"], 8)
        self.assertEqual(len(payload["internal_conflicts"]), 1)
        self.assertIsNone(payload["internal_conflicts"][0]["conflicting_course_progress_id"])

    def test_no_conflicts(self) -> None:
        report = check_schedule_conflicts(1, [slot(3, 8, 10)], lambda _: [])
        self.assertFalse(report.has_conflicts)


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    unittest.main()
