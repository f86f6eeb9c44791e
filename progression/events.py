from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import List

from .models import LessonProgress
from .slots import parse_iso_datetime


def _progress_can_chain(previous: LessonProgress, current: LessonProgress) -> bool:
    if previous.lesson_id != current.lesson_id:
        return False
    if previous.course_progress_id != current.course_progress_id:
        return False
    if previous.status != current.status:
        return False
    if previous.scheduled_date is None or current.scheduled_date is None:
        return False
    if previous.scheduled_date.date() != current.scheduled_date.date():
        return False
    # Fragments of a split lesson only merge when they touch.
    return previous.end_date == current.scheduled_date


def _build_event_from_group(group: List[LessonProgress]) -> dict[str, object]:
    first = group[0]
    event = first.as_event()
    extended = event.setdefault("extendedProps", {})
    segments = [
        {
            "id": str(progress.id),
            "start": progress.scheduled_date.isoformat(),
            "end": progress.end_date.isoformat(),
        }
        for progress in group
    ]
    event["start"] = group[0].scheduled_date.isoformat()
    event["end"] = group[-1].end_date.isoformat()
    extended["segments"] = segments
    extended["segment_ids"] = [segment["id"] for segment in segments]
    extended["is_grouped"] = len(group) > 1
    extended["duration_minutes"] = sum(progress.scheduled_duration or 0 for progress in group)
    if len(group) > 1:
        event["id"] = "group-" + "-".join(extended["segment_ids"])
    return event


def lesson_progress_to_events(progress_rows: Iterable[LessonProgress]) -> list[dict[str, object]]:
    """Turn dated lesson progress into calendar events, merging touching fragments."""

    dated = [progress for progress in progress_rows if progress.scheduled_date is not None]
    ordered = sorted(
        dated,
        key=lambda progress: (
            progress.course_progress_id,
            progress.lesson_id,
            progress.scheduled_date,
            progress.id,
        ),
    )
    events: list[dict[str, object]] = []
    current_group: list[LessonProgress] = []
    for progress in ordered:
        if not current_group:
            current_group = [progress]
            continue
        if _progress_can_chain(current_group[-1], progress):
            current_group.append(progress)
            continue
        events.append(_build_event_from_group(current_group))
        current_group = [progress]
    if current_group:
        events.append(_build_event_from_group(current_group))
    events.sort(key=lambda event: (str(event["start"]), str(event["id"])))
    return events


def parse_calendar_bound(value: str | None) -> datetime | None:
    if not value:
        return None
    return parse_iso_datetime(value)
