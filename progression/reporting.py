from __future__ import annotations

import json
import logging
from typing import Iterable

from flask import current_app

from . import db
from .models import CourseProgress, ScheduleLog
from .scheduler import ScheduleWarning


class ScheduleReporter:
    """Collect the messages of one schedule generation and store them as a log."""

    MAX_DETAILED_ENTRIES = 50
    MAX_TOTAL_ENTRIES = 120
    LEVELS = {
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def __init__(self, course: CourseProgress) -> None:
        self.course = course
        self.entries: list[dict[str, object]] = []
        self.status = "success"
        self.summary: str | None = None
        self._record: ScheduleLog | None = None

    def info(self, message: str) -> None:
        self._add_entry("info", message)

    def warning(self, message: str) -> None:
        self._add_entry("warning", message)
        if self.status != "error":
            self.status = "warning"

    def error(self, message: str) -> None:
        self._add_entry("error", message)
        self.status = "error"

    def schedule_warnings(
        self, warnings: Iterable[ScheduleWarning], labels: dict[str, str]
    ) -> None:
        for warning in warnings:
            label = labels.get(warning.lesson_id, warning.lesson_id)
            self.warning(f"{label} : {warning.message}")

    def finalise(self, created_count: int) -> ScheduleLog:
        if self._record is not None:
            return self._record
        if self.summary is None:
            if created_count:
                if self.status == "success":
                    self.summary = f"{created_count} séance(s) planifiée(s)"
                else:
                    self.summary = (
                        f"{created_count} séance(s) planifiée(s) avec avertissements"
                    )
            elif self.status == "success":
                self.summary = "Aucune séance planifiée"
            else:
                self.summary = "Aucune séance planifiée : vérifier les avertissements"

        log = ScheduleLog(
            course_progress=self.course,
            status=self.status,
            summary=self.summary,
            messages=json.dumps(self._serialise_entries(), ensure_ascii=False),
        )
        db.session.add(log)
        self._record = log
        return log

    def _add_entry(self, level: str, message: str) -> None:
        text = message.strip()
        if not text:
            return
        self.entries.append({"level": level, "message": text})
        current_app.logger.log(
            self.LEVELS.get(level, logging.INFO),
            "[%s] %s",
            self.course.display_name,
            text,
        )

    def _serialise_entries(self) -> list[dict[str, object]]:
        if len(self.entries) <= self.MAX_DETAILED_ENTRIES:
            return [dict(entry) for entry in self.entries]

        detailed = [dict(entry) for entry in self.entries[: self.MAX_DETAILED_ENTRIES]]
        summary_counts: dict[tuple[object, object], int] = {}
        for entry in self.entries[self.MAX_DETAILED_ENTRIES :]:
            key = (entry["level"], entry["message"])
            summary_counts[key] = summary_counts.get(key, 0) + 1

        for (level, message), count in summary_counts.items():
            if count > 1:
                label = f"{message} (résumé {count}×)"
            else:
                label = f"{message} (résumé)"
            detailed.append({"level": level, "message": label})
            if len(detailed) >= self.MAX_TOTAL_ENTRIES:
                break
        return detailed[: self.MAX_TOTAL_ENTRIES]
