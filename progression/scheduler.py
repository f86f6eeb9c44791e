"""Recurring lesson scheduler.

Two pure steps turn a course's weekly slots and its ordered lessons into a
dated plan:

* the occurrence projector walks the weekly slots week after week and emits
  concrete occurrences until enough hours are available;
* the lesson packer fills those occurrences greedily with the lessons,
  splitting (or shortening) a lesson that does not fit.

Nothing here touches the database or the clock: ``now`` is always passed in
by the caller so that the preview path and the persistence path compute the
exact same plan.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Iterator, List, Optional, Sequence

from .slots import RecurringScheduleSlot, next_occurrence, slot_duration


SPLIT = "split"
REDUCE_DURATION = "reduce_duration"
SCHEDULE_POLICIES = (SPLIT, REDUCE_DURATION)

DEFAULT_LESSON_MINUTES = 60

SPLIT_WARNING = "La leçon sera répartie sur plusieurs créneaux"
NOT_ENOUGH_SLOTS_WARNING = "Pas assez de créneaux disponibles pour cette leçon"
NO_USABLE_SLOT_ERROR = (
    "Aucun créneau récurrent n'a une durée positive : impossible de planifier."
)


class ScheduleConfigurationError(ValueError):
    """Raised when the recurring slots cannot produce a schedule at all."""


def _format_hours(minutes: int) -> str:
    return f"{minutes / 60:g}"


@dataclass(frozen=True)
class ScheduleOccurrence:
    date: date
    start_hour: int
    end_hour: int
    slot_index: int

    @property
    def duration(self) -> int:
        return slot_duration(self.start_hour, self.end_hour)

    @property
    def start(self) -> datetime:
        return datetime.combine(self.date, time(self.start_hour))

    @property
    def label(self) -> str:
        return f"{self.start_hour}h-{self.end_hour}h"


@dataclass(frozen=True)
class LessonItem:
    """A lesson as seen by the packer: identity, ordering and duration."""

    id: str
    label: str
    duration_minutes: Optional[float] = None
    order: Optional[int] = None

    @property
    def minutes(self) -> int:
        # A missing or empty duration counts as one hour, never zero.
        if not self.duration_minutes or self.duration_minutes <= 0:
            return DEFAULT_LESSON_MINUTES
        # Fractions of a minute round up so nothing is packed as zero.
        return math.ceil(self.duration_minutes)

    @property
    def hours(self) -> float:
        return self.minutes / 60

    @property
    def sort_key(self) -> tuple[bool, int, str]:
        return (self.order is None, self.order or 0, self.label or "")


def sort_lessons(lessons: Iterable[LessonItem]) -> List[LessonItem]:
    return sorted(lessons, key=lambda lesson: lesson.sort_key)


def sort_slots(slots: Iterable[RecurringScheduleSlot]) -> List[RecurringScheduleSlot]:
    return sorted(slots, key=lambda slot: (slot.day_of_week, slot.start_hour))


@dataclass(frozen=True)
class ScheduleWarning:
    lesson_id: str
    message: str

    def as_payload(self) -> dict[str, str]:
        return {"lesson_id": self.lesson_id, "message": self.message}


@dataclass(frozen=True)
class SchedulePreviewEntry:
    lesson_label: str
    scheduled_date: datetime
    slot: str
    duration_hours: float

    def as_payload(self) -> dict[str, Any]:
        return {
            "lesson_label": self.lesson_label,
            "scheduled_date": self.scheduled_date.isoformat(),
            "slot": self.slot,
            "duration_hours": self.duration_hours,
        }


@dataclass(frozen=True)
class Placement:
    """Part (or all) of a lesson assigned to one occurrence."""

    lesson: LessonItem
    occurrence: ScheduleOccurrence
    offset_minutes: int
    minutes: int

    @property
    def hours(self) -> float:
        return self.minutes / 60

    @property
    def start(self) -> datetime:
        return self.occurrence.start + timedelta(minutes=self.offset_minutes)

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.minutes)

    def as_preview_entry(self) -> SchedulePreviewEntry:
        return SchedulePreviewEntry(
            lesson_label=self.lesson.label,
            scheduled_date=self.occurrence.start,
            slot=self.occurrence.label,
            duration_hours=self.hours,
        )


def weeks_spanned(placements: Sequence[Placement]) -> int:
    if not placements:
        return 0
    dates = [placement.occurrence.date for placement in placements]
    return (max(dates) - min(dates)).days // 7 + 1


@dataclass
class PackingResult:
    placements: List[Placement] = field(default_factory=list)
    warnings: List[ScheduleWarning] = field(default_factory=list)

    @property
    def preview(self) -> List[SchedulePreviewEntry]:
        return [placement.as_preview_entry() for placement in self.placements]

    @property
    def weeks_needed(self) -> int:
        return weeks_spanned(self.placements)

    def placements_for(self, lesson_id: str) -> List[Placement]:
        return [p for p in self.placements if p.lesson.id == lesson_id]


@dataclass
class SchedulePreview:
    total_lessons: int
    total_hours: float
    weeks_needed: int
    schedule_preview: List[SchedulePreviewEntry]
    warnings: List[ScheduleWarning]
    placements: List[Placement] = field(default_factory=list, repr=False)

    def as_payload(self) -> dict[str, Any]:
        return {
            "total_lessons": self.total_lessons,
            "total_hours": self.total_hours,
            "weeks_needed": self.weeks_needed,
            "schedule_preview": [entry.as_payload() for entry in self.schedule_preview],
            "warnings": [warning.as_payload() for warning in self.warnings],
        }


# ----------------------------------------------------------------------
# Occurrence projection
# ----------------------------------------------------------------------


def iter_occurrences(
    slots: Iterable[RecurringScheduleSlot], now: datetime
) -> Iterator[ScheduleOccurrence]:
    """Yield occurrences week after week, without end.

    Slots are visited in ``(day_of_week, start_hour)`` order inside each
    week so the first hours of every week always go to the same slot,
    whatever order the slots were stored in.
    """

    ordered = sort_slots(slots)
    if not ordered:
        return
    anchors = [
        next_occurrence(slot.start_date, slot.day_of_week, now).date()
        for slot in ordered
    ]
    week = 0
    while True:
        for index, (slot, anchor) in enumerate(zip(ordered, anchors)):
            yield ScheduleOccurrence(
                date=anchor + timedelta(weeks=week),
                start_hour=slot.start_hour,
                end_hour=slot.end_hour,
                slot_index=index,
            )
        week += 1


def project_occurrences(
    slots: Iterable[RecurringScheduleSlot],
    total_hours_needed: float,
    now: datetime | None = None,
) -> List[ScheduleOccurrence]:
    """Materialise just enough occurrences to cover ``total_hours_needed``.

    An empty slot list yields no occurrence at all. Slots whose end hour is
    not after their start hour contribute no time; when every slot is in
    that state the projection is refused instead of looping forever.
    """

    slots = list(slots)
    if not slots or total_hours_needed <= 0:
        return []
    if not any(slot.duration > 0 for slot in slots):
        raise ScheduleConfigurationError(NO_USABLE_SLOT_ERROR)
    if now is None:
        now = datetime.now()

    occurrences: List[ScheduleOccurrence] = []
    scheduled_hours = 0
    for occurrence in iter_occurrences(slots, now):
        occurrences.append(occurrence)
        scheduled_hours += max(occurrence.duration, 0)
        if scheduled_hours >= total_hours_needed:
            break
    return occurrences


# ----------------------------------------------------------------------
# Lesson packing
# ----------------------------------------------------------------------


def pack_lessons(
    lessons: Iterable[LessonItem],
    occurrences: Iterable[ScheduleOccurrence],
    policy: str = SPLIT,
) -> PackingResult:
    """Greedily fill ``occurrences`` with ``lessons`` in lesson order.

    Each occurrence is filled before moving to the next one. A lesson longer
    than what is left in the current occurrence is either split (``split``:
    the rest continues in the following occurrences) or shortened to the
    remaining capacity (``reduce_duration``: the rest is dropped).
    Capacities are tracked in minutes.
    """

    if policy not in SCHEDULE_POLICIES:
        raise ScheduleConfigurationError(
            f"Politique de planification inconnue : {policy!r}"
        )

    ordered = sort_lessons(lessons)
    remaining = [lesson.minutes for lesson in ordered]
    result = PackingResult()
    split_lessons: set[int] = set()
    lesson_index = 0

    for occurrence in occurrences:
        if lesson_index >= len(ordered):
            break
        capacity = max(occurrence.duration, 0) * 60
        offset = 0
        while capacity > 0 and lesson_index < len(ordered):
            lesson = ordered[lesson_index]
            needed = remaining[lesson_index]

            if needed <= capacity:
                result.placements.append(
                    Placement(lesson, occurrence, offset_minutes=offset, minutes=needed)
                )
                capacity -= needed
                offset += needed
                remaining[lesson_index] = 0
                lesson_index += 1
                continue

            result.placements.append(
                Placement(lesson, occurrence, offset_minutes=offset, minutes=capacity)
            )
            if policy == REDUCE_DURATION:
                result.warnings.append(
                    ScheduleWarning(
                        lesson.id,
                        f"La durée de la leçon ({_format_hours(needed)}h) dépasse le "
                        f"créneau disponible ({_format_hours(capacity)}h). "
                        "La durée sera réduite.",
                    )
                )
                remaining[lesson_index] = 0
                lesson_index += 1
            else:
                remaining[lesson_index] -= capacity
                if lesson_index not in split_lessons:
                    split_lessons.add(lesson_index)
                    result.warnings.append(ScheduleWarning(lesson.id, SPLIT_WARNING))
            capacity = 0

    for index in range(lesson_index, len(ordered)):
        result.warnings.append(
            ScheduleWarning(ordered[index].id, NOT_ENOUGH_SLOTS_WARNING)
        )
    return result


def calculate_schedule_preview(
    lessons: Iterable[LessonItem],
    slots: Iterable[RecurringScheduleSlot],
    now: datetime | None = None,
    policy: str = SPLIT,
) -> SchedulePreview:
    """Project occurrences for ``slots`` and pack ``lessons`` into them."""

    ordered = sort_lessons(lessons)
    total_hours = sum(lesson.minutes for lesson in ordered) / 60
    occurrences = project_occurrences(slots, total_hours, now=now)
    result = pack_lessons(ordered, occurrences, policy=policy)
    return SchedulePreview(
        total_lessons=len(ordered),
        total_hours=total_hours,
        weeks_needed=result.weeks_needed,
        schedule_preview=result.preview,
        warnings=result.warnings,
        placements=result.placements,
    )
