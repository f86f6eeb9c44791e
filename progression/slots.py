"""Weekly recurring slots and the date helpers shared by the scheduler.

Slots are expressed in whole wall-clock hours. ``day_of_week`` follows the
ISO convention used by :meth:`datetime.date.isoweekday` (1 = Monday,
7 = Sunday), so no conversion is needed when matching calendar dates.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, List


DAYS_OF_WEEK: dict[int, str] = {
    1: "Lundi",
    2: "Mardi",
    3: "Mercredi",
    4: "Jeudi",
    5: "Vendredi",
    6: "Samedi",
    7: "Dimanche",
}

HOURS: List[int] = list(range(24))


def day_name(day_of_week: int) -> str:
    return DAYS_OF_WEEK.get(day_of_week, "").lower()


def format_hour(hour: int) -> str:
    return f"{hour:02d}:00"


def slot_duration(start_hour: int, end_hour: int) -> int:
    return end_hour - start_hour


def times_overlap(start1: int, end1: int, start2: int, end2: int) -> bool:
    """Return ``True`` when ``[start1, end1)`` and ``[start2, end2)`` overlap.

    Ranges that merely touch (``[8, 10)`` and ``[10, 12)``) do not overlap,
    containment in either direction does.
    """

    return (
        (start1 >= start2 and start1 < end2)
        or (end1 > start2 and end1 <= end2)
        or (start1 <= start2 and end1 >= end2)
    )


def parse_iso_datetime(value: Any) -> datetime:
    """Parse ``value`` into a naive local datetime.

    Accepts ISO-8601 strings (a trailing ``Z`` is understood as UTC),
    ``datetime`` and ``date`` objects. Timezone-aware values are converted
    to the local wall clock before the offset is dropped.
    """

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Date de début manquante")
        if text.endswith(("Z", "z")):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"Date invalide : {value!r}") from exc
    else:
        raise ValueError(f"Date invalide : {value!r}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def next_occurrence(start: datetime, day_of_week: int, now: datetime) -> datetime:
    """Return the first moment on or after ``start`` falling on ``day_of_week``.

    When ``start`` already falls on that weekday but is not in the future
    relative to ``now``, the following week is used instead.
    """

    days_to_add = (day_of_week - start.isoweekday()) % 7
    if days_to_add == 0 and start <= now:
        days_to_add = 7
    return start + timedelta(days=days_to_add)


@dataclass(frozen=True)
class RecurringScheduleSlot:
    day_of_week: int
    start_hour: int
    end_hour: int
    start_date: datetime

    @property
    def duration(self) -> int:
        return slot_duration(self.start_hour, self.end_hour)

    @property
    def label(self) -> str:
        return f"{self.start_hour}h-{self.end_hour}h"

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.day_of_week, self.start_hour, self.end_hour)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RecurringScheduleSlot":
        try:
            day_of_week = int(payload["day_of_week"])
            start_hour = int(payload["start_hour"])
            end_hour = int(payload["end_hour"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError("Créneau récurrent incomplet ou invalide") from exc
        return cls(
            day_of_week=day_of_week,
            start_hour=start_hour,
            end_hour=end_hour,
            start_date=parse_iso_datetime(payload.get("start_date")),
        )

    def as_payload(self) -> dict[str, Any]:
        return {
            "day_of_week": self.day_of_week,
            "start_hour": self.start_hour,
            "end_hour": self.end_hour,
            "start_date": self.start_date.isoformat(),
        }

    def describe(self) -> str:
        return f"{DAYS_OF_WEEK.get(self.day_of_week, '?')} {self.label}"


def validate_slot(slot: RecurringScheduleSlot) -> List[str]:
    errors: List[str] = []
    if slot.day_of_week < 1 or slot.day_of_week > 7:
        errors.append(
            f"Jour invalide ({slot.day_of_week}) : il doit être compris entre 1 et 7."
        )
    for field_name, hour in (("début", slot.start_hour), ("fin", slot.end_hour)):
        if hour < 0 or hour > 23:
            errors.append(
                f"Heure de {field_name} invalide ({hour}) : elle doit être comprise entre 0 et 23."
            )
    if slot.end_hour <= slot.start_hour:
        errors.append(
            f"{slot.describe()} : l'heure de fin doit être après l'heure de début."
        )
    return errors


def validate_slots(slots: Iterable[RecurringScheduleSlot]) -> List[str]:
    """Validate every slot, returning all error messages (empty list => valid)."""

    errors: List[str] = []
    for slot in slots:
        errors.extend(validate_slot(slot))
    return errors
