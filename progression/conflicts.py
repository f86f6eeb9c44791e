"""Structural double-booking detection between recurring slots.

Slots are compared on weekday and hour range only; the date from which a
slot starts recurring is not taken into account.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Callable, Iterable, List, Optional, Sequence

from .slots import RecurringScheduleSlot, day_name, times_overlap


UNKNOWN_COURSE_LABEL = "cours inconnu"


@dataclass(frozen=True)
class CourseSchedule:
    """Recurring slots of another course, as returned by a lookup."""

    course_progress_id: Any
    label: Optional[str]
    slots: Sequence[RecurringScheduleSlot]


@dataclass(frozen=True)
class ConflictEntry:
    slot: RecurringScheduleSlot
    conflicting_course_progress_id: Any
    message: str

    def as_payload(self) -> dict[str, Any]:
        other_id = self.conflicting_course_progress_id
        return {
            "slot": self.slot.as_payload(),
            "conflicting_course_progress_id": None if other_id is None else str(other_id),
            "message": self.message,
        }


@dataclass
class ConflictReport:
    conflicts: List[ConflictEntry] = field(default_factory=list)
    internal_conflicts: List[ConflictEntry] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts or self.internal_conflicts)

    def as_payload(self) -> dict[str, Any]:
        return {
            "conflicts": [entry.as_payload() for entry in self.conflicts],
            "internal_conflicts": [entry.as_payload() for entry in self.internal_conflicts],
        }


def slots_conflict(first: RecurringScheduleSlot, second: RecurringScheduleSlot) -> bool:
    return first.day_of_week == second.day_of_week and times_overlap(
        first.start_hour, first.end_hour, second.start_hour, second.end_hour
    )


def find_internal_conflicts(
    slots: Sequence[RecurringScheduleSlot],
) -> List[ConflictEntry]:
    """Report candidate slots of a single course that overlap each other."""

    conflicts: List[ConflictEntry] = []
    for first, second in combinations(slots, 2):
        if slots_conflict(first, second):
            conflicts.append(
                ConflictEntry(
                    slot=first,
                    conflicting_course_progress_id=None,
                    message=(
                        "Conflit interne: deux créneaux se chevauchent le "
                        f"{day_name(first.day_of_week)} "
                        f"({first.start_hour}h-{first.end_hour}h)"
                    ),
                )
            )
    return conflicts


def find_course_conflicts(
    candidate_slots: Sequence[RecurringScheduleSlot],
    other_courses: Iterable[CourseSchedule],
) -> List[ConflictEntry]:
    """Compare every candidate slot with the slots of the other courses."""

    others = list(other_courses)
    conflicts: List[ConflictEntry] = []
    for candidate in candidate_slots:
        for course in others:
            label = course.label or UNKNOWN_COURSE_LABEL
            for existing in course.slots:
                if not slots_conflict(candidate, existing):
                    continue
                conflicts.append(
                    ConflictEntry(
                        slot=candidate,
                        conflicting_course_progress_id=course.course_progress_id,
                        message=(
                            f'Conflit avec le cours "{label}" le '
                            f"{day_name(candidate.day_of_week)} de "
                            f"{existing.start_hour}h à {existing.end_hour}h"
                        ),
                    )
                )
    return conflicts


def check_schedule_conflicts(
    course_progress_id: Any,
    candidate_slots: Iterable[RecurringScheduleSlot],
    lookup: Callable[[Any], Iterable[CourseSchedule]],
) -> ConflictReport:
    """Check ``candidate_slots`` of one course against the owner's other courses.

    ``lookup`` receives ``course_progress_id`` and returns the recurring
    schedules of the other courses belonging to the same owner. A record
    carrying ``course_progress_id`` itself is skipped.
    """

    candidates = list(candidate_slots)
    others = [
        course
        for course in lookup(course_progress_id)
        if str(course.course_progress_id) != str(course_progress_id)
    ]
    return ConflictReport(
        conflicts=find_course_conflicts(candidates, others),
        internal_conflicts=find_internal_conflicts(candidates),
    )
