from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import db
from .scheduler import LessonItem
from .slots import DAYS_OF_WEEK, RecurringScheduleSlot


COURSE_PROGRESS_STATUSES = ("not_started", "in_progress", "completed", "on_hold")
LESSON_PROGRESS_STATUSES = (
    "not_started",
    "scheduled",
    "in_progress",
    "completed",
    "skipped",
)
LESSON_SCOPES = ("core", "bonus", "optional")

LESSON_STATUS_COLORS = {
    "not_started": "#6c757d",
    "scheduled": "#0d6efd",
    "in_progress": "#fd7e14",
    "completed": "#198754",
    "skipped": "#adb5bd",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimeStampedModel:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class User(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True)

    course_progress: Mapped[List["CourseProgress"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"User<{self.name}>"


class SchoolClass(db.Model, TimeStampedModel):
    __tablename__ = "school_class"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    level: Mapped[Optional[str]] = mapped_column(String(50))

    user: Mapped[User] = relationship()

    def as_dict(self) -> dict[str, object]:
        return {"id": self.id, "name": self.name, "level": self.level}

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"SchoolClass<{self.name}>"


class Subject(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(80))

    user: Mapped[User] = relationship()

    lessons: Mapped[List["Lesson"]] = relationship(
        back_populates="subject",
        cascade="all, delete-orphan",
        order_by="Lesson.id",
    )

    def ordered_lessons(self) -> List["Lesson"]:
        return sorted(self.lessons, key=lambda lesson: lesson.as_item().sort_key)

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "lesson_count": len(self.lessons),
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Subject<{self.name}>"


class Lesson(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False, index=True)
    subject_id: Mapped[int] = mapped_column(ForeignKey("subject.id"), nullable=False, index=True)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    # minutes
    duration: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    order: Mapped[Optional[int]] = mapped_column("lesson_order", Integer)
    scope: Mapped[str] = mapped_column(String(20), default="core", nullable=False)

    user: Mapped[User] = relationship()
    subject: Mapped[Subject] = relationship(back_populates="lessons")

    __table_args__ = (
        CheckConstraint("duration >= 0", name="chk_lesson_duration_positive"),
        CheckConstraint(
            "scope IN ('core','bonus','optional')", name="chk_lesson_scope"
        ),
    )

    def as_item(self) -> LessonItem:
        return LessonItem(
            id=str(self.id),
            label=self.label,
            duration_minutes=self.duration,
            order=self.order,
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "label": self.label,
            "description": self.description,
            "duration": self.duration,
            "order": self.order,
            "scope": self.scope,
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Lesson<{self.label}>"


class CourseProgress(db.Model, TimeStampedModel):
    __tablename__ = "course_progress"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False, index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("school_class.id"), nullable=False)
    subject_id: Mapped[int] = mapped_column(ForeignKey("subject.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="not_started", nullable=False)
    auto_scheduled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user: Mapped[User] = relationship(back_populates="course_progress")
    school_class: Mapped[SchoolClass] = relationship()
    subject: Mapped[Subject] = relationship()
    recurring_slots: Mapped[List["RecurringSlot"]] = relationship(
        back_populates="course_progress",
        cascade="all, delete-orphan",
        order_by=lambda: [RecurringSlot.day_of_week, RecurringSlot.start_hour],
    )
    lesson_progress: Mapped[List["LessonProgress"]] = relationship(
        back_populates="course_progress",
        cascade="all, delete-orphan",
        order_by="LessonProgress.id",
    )
    schedule_logs: Mapped[List["ScheduleLog"]] = relationship(
        back_populates="course_progress",
        cascade="all, delete-orphan",
        order_by=lambda: ScheduleLog.id.desc(),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "class_id", "subject_id", name="uq_course_progress_scope"),
        CheckConstraint(
            "status IN ('not_started','in_progress','completed','on_hold')",
            name="chk_course_progress_status",
        ),
    )

    @property
    def display_name(self) -> str:
        subject_name = self.subject.name if self.subject else "Matière inconnue"
        class_name = self.school_class.name if self.school_class else "Classe inconnue"
        return f"{subject_name} ({class_name})"

    def schedule_slots(self) -> List[RecurringScheduleSlot]:
        return [slot.as_slot() for slot in self.recurring_slots]

    def lessons(self) -> List["Lesson"]:
        if self.subject is None:
            return []
        return [
            lesson
            for lesson in self.subject.ordered_lessons()
            if lesson.user_id == self.user_id
        ]

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "class_id": self.class_id,
            "subject_id": self.subject_id,
            "user_id": self.user_id,
            "name": self.display_name,
            "status": self.status,
            "auto_scheduled": self.auto_scheduled,
            "recurring_schedule": [slot.as_slot().as_payload() for slot in self.recurring_slots],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"CourseProgress<{self.id}>"


class RecurringSlot(db.Model):
    __tablename__ = "recurring_slot"

    id: Mapped[int] = mapped_column(primary_key=True)
    course_progress_id: Mapped[int] = mapped_column(
        ForeignKey("course_progress.id"), nullable=False, index=True
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    end_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    course_progress: Mapped[CourseProgress] = relationship(back_populates="recurring_slots")

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 1 AND 7", name="chk_slot_day_range"),
        CheckConstraint(
            "start_hour BETWEEN 0 AND 23 AND end_hour BETWEEN 0 AND 23",
            name="chk_slot_hour_range",
        ),
    )

    @classmethod
    def from_slot(cls, slot: RecurringScheduleSlot) -> "RecurringSlot":
        return cls(
            day_of_week=slot.day_of_week,
            start_hour=slot.start_hour,
            end_hour=slot.end_hour,
            start_date=slot.start_date,
        )

    def as_slot(self) -> RecurringScheduleSlot:
        return RecurringScheduleSlot(
            day_of_week=self.day_of_week,
            start_hour=self.start_hour,
            end_hour=self.end_hour,
            start_date=self.start_date,
        )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        day = DAYS_OF_WEEK.get(self.day_of_week, "?")
        return f"RecurringSlot<{day} {self.start_hour}h-{self.end_hour}h>"


class LessonProgress(db.Model, TimeStampedModel):
    __tablename__ = "lesson_progress"

    id: Mapped[int] = mapped_column(primary_key=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lesson.id"), nullable=False, index=True)
    course_progress_id: Mapped[int] = mapped_column(
        ForeignKey("course_progress.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), default="not_started", nullable=False)
    scheduled_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    # minutes
    scheduled_duration: Mapped[Optional[int]] = mapped_column(Integer)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    # JSON list of {title, description, created_at, updated_at}
    comments: Mapped[str] = mapped_column(Text, default="[]", nullable=False)

    lesson: Mapped[Lesson] = relationship()
    course_progress: Mapped[CourseProgress] = relationship(back_populates="lesson_progress")

    __table_args__ = (
        CheckConstraint(
            "status IN ('not_started','scheduled','in_progress','completed','skipped')",
            name="chk_lesson_progress_status",
        ),
    )

    @property
    def end_date(self) -> Optional[datetime]:
        if self.scheduled_date is None:
            return None
        minutes = self.scheduled_duration or (self.lesson.duration if self.lesson else 60)
        return self.scheduled_date + timedelta(minutes=minutes)

    def is_scheduled_after(self, moment: datetime) -> bool:
        return self.scheduled_date is not None and self.scheduled_date > moment

    def parsed_comments(self) -> list[dict[str, object]]:
        try:
            payload = json.loads(self.comments or "[]")
        except (TypeError, ValueError):
            return []
        if not isinstance(payload, list):
            return []
        return [entry for entry in payload if isinstance(entry, dict)]

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "lesson_id": self.lesson_id,
            "lesson_label": self.lesson.label if self.lesson else None,
            "course_progress_id": self.course_progress_id,
            "status": self.status,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "scheduled_duration": self.scheduled_duration,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "comments": self.parsed_comments(),
        }

    def as_event(self) -> dict[str, object]:
        course = self.course_progress
        subject = course.subject if course else None
        school_class = course.school_class if course else None
        lesson_label = self.lesson.label if self.lesson else "Leçon"
        return {
            "id": str(self.id),
            "title": f"{subject.name if subject else 'Cours'} : {lesson_label}",
            "start": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "end": self.end_date.isoformat() if self.end_date else None,
            "color": LESSON_STATUS_COLORS.get(self.status, LESSON_STATUS_COLORS["not_started"]),
            "extendedProps": {
                "lesson_id": self.lesson_id,
                "lesson_label": lesson_label,
                "course_progress_id": self.course_progress_id,
                "subject_name": subject.name if subject else None,
                "subject_category": subject.category if subject else None,
                "class_name": school_class.name if school_class else None,
                "class_level": school_class.level if school_class else None,
                "status": self.status,
                "duration_minutes": self.scheduled_duration,
            },
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"LessonProgress<{self.lesson_id}@{self.scheduled_date}>"


class ScheduleLog(db.Model):
    __tablename__ = "schedule_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    course_progress_id: Mapped[int] = mapped_column(
        ForeignKey("course_progress.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), default="success", nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text)
    messages: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    course_progress: Mapped[CourseProgress] = relationship(back_populates="schedule_logs")

    __table_args__ = (
        CheckConstraint(
            "status IN ('success','warning','error')",
            name="chk_schedule_log_status",
        ),
    )

    STATUS_LABELS = {
        "success": "Succès",
        "warning": "Avertissement",
        "error": "Erreur",
    }

    def parsed_messages(self) -> list[dict[str, object]]:
        try:
            payload = json.loads(self.messages or "[]")
        except (TypeError, ValueError):
            return []
        if not isinstance(payload, list):
            return []
        normalised: list[dict[str, object]] = []
        for entry in payload:
            if not isinstance(entry, dict):
                continue
            message = str(entry.get("message", "")).strip()
            if not message:
                continue
            normalised.append(
                {"level": str(entry.get("level", "info")).lower(), "message": message}
            )
        return normalised

    @property
    def status_label(self) -> str:
        return self.STATUS_LABELS.get(self.status, self.status)

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "status": self.status,
            "status_label": self.status_label,
            "summary": self.summary,
            "messages": self.parsed_messages(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
