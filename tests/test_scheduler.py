import unittest
from datetime import date, datetime

from progression.scheduler import (
    NOT_ENOUGH_SLOTS_WARNING,
    REDUCE_DURATION,
    SPLIT_WARNING,
    LessonItem,
    ScheduleConfigurationError,
    calculate_schedule_preview,
    pack_lessons,
    project_occurrences,
)
from progression.slots import RecurringScheduleSlot


# Monday 1 January 2024, in the past for every run.
ANCHOR = datetime(2024, 1, 1)
NOW = datetime(2024, 1, 1, 12)


def slot(day: int, start: int, end: int) -> RecurringScheduleSlot:
    return RecurringScheduleSlot(day, start, end, ANCHOR)


class ProjectOccurrencesTestCase(unittest.TestCase):
    def test_projection_is_deterministic(self) -> None:
        slots = [slot(3, 14, 15), slot(1, 8, 10)]
        first = project_occurrences(slots, 7, now=NOW)
        second = project_occurrences(slots, 7, now=NOW)
        self.assertEqual(first, second)

    def test_slots_are_visited_by_day_then_hour(self) -> None:
        slots = [slot(3, 14, 15), slot(1, 10, 11), slot(1, 8, 10)]
        occurrences = project_occurrences(slots, 8, now=NOW)
        keys = [(o.start_hour, o.end_hour) for o in occurrences[:3]]
        self.assertEqual(keys, [(8, 10), (10, 11), (14, 15)])
        self.assertEqual([o.slot_index for o in occurrences[3:6]], [0, 1, 2])

    def test_budget_is_met_without_extra_occurrence(self) -> None:
        slots = [slot(1, 8, 10), slot(3, 14, 15)]
        for budget in (0.5, 1, 2, 3, 4.5, 5, 7, 12):
            occurrences = project_occurrences(slots, budget, now=NOW)
            total = sum(o.duration for o in occurrences)
            self.assertGreaterEqual(total, budget)
            self.assertLess(total - occurrences[-1].duration, budget)

    def test_weeks_advance_by_seven_days(self) -> None:
        occurrences = project_occurrences([slot(1, 8, 10)], 6, now=NOW)
        self.assertEqual(
            [o.date for o in occurrences],
            [date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)],
        )

    def test_empty_inputs(self) -> None:
        self.assertEqual(project_occurrences([], 10, now=NOW), [])
        self.assertEqual(project_occurrences([slot(1, 8, 10)], 0, now=NOW), [])

    def test_invalid_slots_alone_are_refused(self) -> None:
        with self.assertRaises(ScheduleConfigurationError):
            project_occurrences([slot(1, 10, 10), slot(2, 12, 9)], 3, now=NOW)

    def test_invalid_slot_contributes_nothing(self) -> None:
        occurrences = project_occurrences([slot(1, 8, 10), slot(2, 12, 9)], 4, now=NOW)
        self.assertEqual(len(occurrences), 3)
        self.assertEqual(sum(max(o.duration, 0) for o in occurrences), 4)


class PackLessonsTestCase(unittest.TestCase):
    def test_three_one_hour_lessons_on_a_two_hour_slot(self) -> None:
        lessons = [
            LessonItem("1", "Leçon 1", 60, 1),
            LessonItem("2", "Leçon 2", 60, 2),
            LessonItem("3", "Leçon 3", 60, 3),
        ]
        preview = calculate_schedule_preview(lessons, [slot(1, 8, 10)], now=NOW)

        self.assertEqual(preview.warnings, [])
        self.assertEqual(preview.weeks_needed, 2)
        self.assertEqual(preview.total_lessons, 3)
        self.assertEqual(preview.total_hours, 3)
        entries = [(e.lesson_label, e.scheduled_date) for e in preview.schedule_preview]
        self.assertEqual(
            entries,
            [
                ("Leçon 1", datetime(2024, 1, 8, 8)),
                ("Leçon 2", datetime(2024, 1, 8, 8)),
                ("Leçon 3", datetime(2024, 1, 15, 8)),
            ],
        )
        starts = [p.start for p in preview.placements]
        self.assertEqual(
            starts,
            [datetime(2024, 1, 8, 8), datetime(2024, 1, 8, 9), datetime(2024, 1, 15, 8)],
        )

    def test_long_lesson_is_split_across_weeks(self) -> None:
        lessons = [LessonItem("long", "Projet", 180, 1)]
        preview = calculate_schedule_preview(lessons, [slot(1, 8, 10)], now=NOW)

        self.assertEqual(len(preview.schedule_preview), 2)
        first, second = preview.schedule_preview
        self.assertEqual(first.scheduled_date, datetime(2024, 1, 8, 8))
        self.assertEqual(first.duration_hours, 2)
        self.assertEqual(second.scheduled_date, datetime(2024, 1, 15, 8))
        self.assertEqual(second.duration_hours, 1)
        self.assertEqual([w.message for w in preview.warnings], [SPLIT_WARNING])

    def test_split_warning_emitted_once_per_lesson(self) -> None:
        lessons = [LessonItem("long", "Projet", 300, 1)]
        preview = calculate_schedule_preview(lessons, [slot(1, 8, 9)], now=NOW)
        self.assertEqual(len(preview.schedule_preview), 5)
        self.assertEqual(len(preview.warnings), 1)
        self.assertEqual(preview.warnings[0].lesson_id, "long")

    def test_durations_are_conserved(self) -> None:
        lessons = [
            LessonItem("a", "A", 90, 1),
            LessonItem("b", "B", 45, 2),
            LessonItem("c", "C", 150, 3),
            LessonItem("d", "D", None, 4),
        ]
        slots = [slot(1, 8, 10), slot(4, 13, 14)]
        preview = calculate_schedule_preview(lessons, slots, now=NOW)
        short = {w.lesson_id for w in preview.warnings if w.message == NOT_ENOUGH_SLOTS_WARNING}
        self.assertEqual(short, set())
        for lesson in lessons:
            placed = sum(p.minutes for p in preview.placements if p.lesson.id == lesson.id)
            self.assertEqual(placed, lesson.minutes)

    def test_lessons_sorted_with_missing_order_last(self) -> None:
        lessons = [
            LessonItem("z", "Zéro", 60, None),
            LessonItem("b", "Bilan", 60, None),
            LessonItem("2", "Deux", 60, 2),
            LessonItem("1", "Un", 60, 1),
        ]
        preview = calculate_schedule_preview(lessons, [slot(1, 8, 12)], now=NOW)
        self.assertEqual(
            [e.lesson_label for e in preview.schedule_preview],
            ["Un", "Deux", "Bilan", "Zéro"],
        )

    def test_missing_duration_counts_as_one_hour(self) -> None:
        self.assertEqual(LessonItem("1", "A").minutes, 60)
        self.assertEqual(LessonItem("1", "A", 0).minutes, 60)
        self.assertEqual(LessonItem("1", "A", 45).hours, 0.75)

    def test_fractional_durations_round_up_to_whole_minutes(self) -> None:
        self.assertEqual(LessonItem("1", "A", 0.5).minutes, 1)
        self.assertEqual(LessonItem("1", "A", 90.2).minutes, 91)
        lessons = [LessonItem("a", "A", 0.5, 1), LessonItem("b", "B", 58.5, 2)]
        preview = calculate_schedule_preview(lessons, [slot(1, 8, 9)], now=NOW)
        self.assertEqual([p.minutes for p in preview.placements], [1, 59])
        self.assertEqual(preview.total_hours, 1)
        self.assertEqual(preview.warnings, [])

    def test_empty_slots_warn_every_lesson(self) -> None:
        lessons = [LessonItem("1", "A", 60, 1), LessonItem("2", "B", 30, 2)]
        preview = calculate_schedule_preview(lessons, [], now=NOW)
        self.assertEqual(preview.schedule_preview, [])
        self.assertEqual(preview.weeks_needed, 0)
        self.assertEqual(preview.total_hours, 1.5)
        self.assertEqual(
            [(w.lesson_id, w.message) for w in preview.warnings],
            [("1", NOT_ENOUGH_SLOTS_WARNING), ("2", NOT_ENOUGH_SLOTS_WARNING)],
        )

    def test_occurrences_exhausted_before_lessons(self) -> None:
        lessons = [LessonItem("1", "A", 60, 1), LessonItem("2", "B", 60, 2)]
        occurrences = project_occurrences([slot(1, 8, 9)], 1, now=NOW)
        result = pack_lessons(lessons, occurrences)
        self.assertEqual(len(result.placements), 1)
        self.assertEqual(
            [(w.lesson_id, w.message) for w in result.warnings],
            [("2", NOT_ENOUGH_SLOTS_WARNING)],
        )

    def test_reduce_duration_caps_lesson(self) -> None:
        lessons = [LessonItem("a", "Intro", 60, 1), LessonItem("b", "Projet", 180, 2)]
        preview = calculate_schedule_preview(
            lessons, [slot(1, 8, 10)], now=NOW, policy=REDUCE_DURATION
        )
        self.assertEqual([p.minutes for p in preview.placements], [60, 60])
        self.assertEqual(preview.placements[1].start, datetime(2024, 1, 8, 9))
        self.assertEqual(len(preview.warnings), 1)
        self.assertEqual(preview.warnings[0].lesson_id, "b")
        self.assertEqual(
            preview.warnings[0].message,
            "La durée de la leçon (3h) dépasse le créneau disponible (1h). "
            "La durée sera réduite.",
        )
        self.assertEqual(preview.weeks_needed, 1)

    def test_unknown_policy(self) -> None:
        with self.assertRaises(ScheduleConfigurationError):
            pack_lessons([LessonItem("1", "A")], [], policy="squeeze")

    def test_preview_payload(self) -> None:
        preview = calculate_schedule_preview(
            [LessonItem("1", "A", 90, 1)], [slot(1, 8, 10)], now=NOW
        )
        payload = preview.as_payload()
        self.assertEqual(payload["total_hours"], 1.5)
        self.assertEqual(
            payload["schedule_preview"],
            [
                {
                    "lesson_label": "A",
                    "scheduled_date": "2024-01-08T08:00:00",
                    "slot": "8h-10h",
                    "duration_hours": 1.5,
                }
            ],
        )


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    unittest.main()
