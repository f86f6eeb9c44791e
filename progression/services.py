"""Database-backed operations around the recurring lesson scheduler.

Every operation is scoped to the requesting user: records belonging to
somebody else behave exactly like missing records.
"""
from __future__ import annotations

import json
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Sequence

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from . import db
from .conflicts import ConflictReport, CourseSchedule, check_schedule_conflicts
from .events import lesson_progress_to_events
from .models import (
    COURSE_PROGRESS_STATUSES,
    LESSON_PROGRESS_STATUSES,
    LESSON_SCOPES,
    CourseProgress,
    Lesson,
    LessonProgress,
    RecurringSlot,
    ScheduleLog,
    SchoolClass,
    Subject,
    User,
)
from .reporting import ScheduleReporter
from .scheduler import (
    NO_USABLE_SLOT_ERROR,
    SCHEDULE_POLICIES,
    SPLIT,
    ScheduleConfigurationError,
    SchedulePreview,
    ScheduleWarning,
    calculate_schedule_preview,
)
from .slots import RecurringScheduleSlot, parse_iso_datetime, validate_slots


COURSE_NOT_FOUND = (
    "Progression de cours non trouvée ou vous n'avez pas l'autorisation d'y accéder"
)
FINISHED_LESSON_STATUSES = {"completed", "skipped"}


class ServiceError(Exception):
    def __init__(self, message: str, errors: Iterable[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = list(errors or [])


class NotFoundError(ServiceError):
    """The record does not exist or belongs to another user."""


class InvalidRequestError(ServiceError):
    """The request cannot be honoured with the data provided."""


def _commit(action: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while %s", action)
        raise


def _resolve_policy(policy: str | None) -> str:
    resolved = policy or current_app.config.get("SCHEDULE_DEFAULT_POLICY") or SPLIT
    if resolved not in SCHEDULE_POLICIES:
        raise InvalidRequestError(
            f"Option handle_long_lessons inconnue : {resolved}",
            [f"Valeurs acceptées : {', '.join(SCHEDULE_POLICIES)}"],
        )
    return resolved


def parse_slot_payloads(payloads: Iterable[Any] | None) -> List[RecurringScheduleSlot]:
    slots: List[RecurringScheduleSlot] = []
    errors: List[str] = []
    for index, payload in enumerate(payloads or [], start=1):
        if not isinstance(payload, dict):
            errors.append(f"Créneau {index} : format invalide.")
            continue
        try:
            slots.append(RecurringScheduleSlot.from_payload(payload))
        except ValueError as exc:
            errors.append(f"Créneau {index} : {exc}")
    if errors:
        raise InvalidRequestError("Créneaux récurrents invalides", errors)
    return slots


# ----------------------------------------------------------------------
# Owners, classes, subjects and lessons
# ----------------------------------------------------------------------


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("Utilisateur non trouvé")
    return user


def list_school_classes(user_id: int) -> List[SchoolClass]:
    return (
        SchoolClass.query.filter_by(user_id=user_id)
        .order_by(SchoolClass.name, SchoolClass.id)
        .all()
    )


def create_school_class(user_id: int, name: str, level: str | None = None) -> SchoolClass:
    get_user(user_id)
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidRequestError("Le nom de la classe est requis")
    school_class = SchoolClass(user_id=user_id, name=cleaned, level=level)
    db.session.add(school_class)
    _commit("creating a class")
    return school_class


def list_subjects(user_id: int) -> List[Subject]:
    return Subject.query.filter_by(user_id=user_id).order_by(Subject.name, Subject.id).all()


def get_owned_subject(subject_id: int, user_id: int) -> Subject:
    subject = Subject.query.filter_by(id=subject_id, user_id=user_id).first()
    if subject is None:
        raise NotFoundError("Matière non trouvée")
    return subject


def create_subject(user_id: int, name: str, category: str | None = None) -> Subject:
    get_user(user_id)
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidRequestError("Le nom de la matière est requis")
    subject = Subject(user_id=user_id, name=cleaned, category=category)
    db.session.add(subject)
    _commit("creating a subject")
    return subject


def list_lessons(subject_id: int, user_id: int) -> List[Lesson]:
    subject = get_owned_subject(subject_id, user_id)
    return [lesson for lesson in subject.ordered_lessons() if lesson.user_id == user_id]


def create_lesson(
    subject_id: int,
    user_id: int,
    *,
    label: str,
    duration: int | None = None,
    order: int | None = None,
    description: str | None = None,
    scope: str = "core",
) -> Lesson:
    subject = get_owned_subject(subject_id, user_id)
    errors: List[str] = []
    cleaned = (label or "").strip()
    if not cleaned:
        errors.append("Le libellé de la leçon est requis")
    if duration is not None and duration < 0:
        errors.append("La durée de la leçon ne peut pas être négative")
    if scope not in LESSON_SCOPES:
        errors.append(f"Portée inconnue : {scope}")
    if errors:
        raise InvalidRequestError("Leçon invalide", errors)
    lesson = Lesson(
        user_id=user_id,
        subject=subject,
        label=cleaned,
        duration=duration or 60,
        order=order,
        description=description,
        scope=scope,
    )
    db.session.add(lesson)
    _commit("creating a lesson")
    return lesson


# ----------------------------------------------------------------------
# Course progress
# ----------------------------------------------------------------------


def get_owned_course_progress(course_progress_id: int, user_id: int) -> CourseProgress:
    course = CourseProgress.query.filter_by(id=course_progress_id, user_id=user_id).first()
    if course is None:
        raise NotFoundError(COURSE_NOT_FOUND)
    return course


def list_course_progress(
    user_id: int, class_id: int | None = None, subject_id: int | None = None
) -> List[CourseProgress]:
    query = CourseProgress.query.filter_by(user_id=user_id)
    if class_id is not None:
        query = query.filter_by(class_id=class_id)
    if subject_id is not None:
        query = query.filter_by(subject_id=subject_id)
    return query.order_by(CourseProgress.id).all()


def create_course_progress(
    user_id: int, class_id: int, subject_id: int, status: str | None = None
) -> CourseProgress:
    get_user(user_id)
    status = status or "not_started"
    if status not in COURSE_PROGRESS_STATUSES:
        raise InvalidRequestError(f"Statut inconnu : {status}")
    existing = CourseProgress.query.filter_by(
        user_id=user_id, class_id=class_id, subject_id=subject_id
    ).first()
    if existing is not None:
        raise InvalidRequestError("Un cours existe déjà pour cette classe et cette matière")
    if SchoolClass.query.filter_by(id=class_id, user_id=user_id).first() is None:
        raise NotFoundError("Classe non trouvée")
    get_owned_subject(subject_id, user_id)

    course = CourseProgress(
        user_id=user_id, class_id=class_id, subject_id=subject_id, status=status
    )
    db.session.add(course)
    _commit("creating a course progress")
    return course


def patch_course_progress(
    course_progress_id: int,
    user_id: int,
    *,
    status: str | None = None,
    auto_scheduled: bool | None = None,
) -> CourseProgress:
    course = get_owned_course_progress(course_progress_id, user_id)
    if status is not None:
        if status not in COURSE_PROGRESS_STATUSES:
            raise InvalidRequestError(f"Statut inconnu : {status}")
        course.status = status
    if auto_scheduled is not None:
        course.auto_scheduled = bool(auto_scheduled)
    _commit("updating a course progress")
    return course


def delete_course_progress(course_progress_id: int, user_id: int) -> None:
    course = get_owned_course_progress(course_progress_id, user_id)
    db.session.delete(course)
    _commit("deleting a course progress")


def course_lessons(course: CourseProgress) -> List[Lesson]:
    """Lessons of the course's subject owned by the course owner, in packing order."""
    return course.lessons()


# ----------------------------------------------------------------------
# Recurring schedule, preview and conflicts
# ----------------------------------------------------------------------


def update_recurring_schedule(
    course_progress_id: int, user_id: int, slots: Sequence[RecurringScheduleSlot]
) -> CourseProgress:
    """Replace the recurring slots of a course once they are all valid.

    The change is committed before returning so that a generation started
    afterwards reads the new slots.
    """

    course = get_owned_course_progress(course_progress_id, user_id)
    errors = validate_slots(slots)
    if errors:
        raise InvalidRequestError("Créneaux récurrents invalides", errors)
    course.recurring_slots = [RecurringSlot.from_slot(slot) for slot in slots]
    _commit("updating a recurring schedule")
    current_app.logger.info(
        "Recurring schedule of course progress %s updated (%s slot(s))",
        course.id,
        len(slots),
    )
    return course


def preview_course_schedule(
    course_progress_id: int,
    user_id: int,
    slots: Sequence[RecurringScheduleSlot] | None = None,
    *,
    policy: str | None = None,
    now: datetime | None = None,
) -> SchedulePreview:
    """Compute the schedule a generation would produce, without saving anything.

    ``slots`` lets an editing surface preview candidate slots before they
    are stored; the stored slots are used otherwise.
    """

    course = get_owned_course_progress(course_progress_id, user_id)
    if slots is None:
        slots = course.schedule_slots()
    else:
        errors = validate_slots(slots)
        if errors:
            raise InvalidRequestError("Créneaux récurrents invalides", errors)
    lessons = [lesson.as_item() for lesson in course_lessons(course)]
    try:
        return calculate_schedule_preview(
            lessons, slots, now=now, policy=_resolve_policy(policy)
        )
    except ScheduleConfigurationError as exc:
        raise InvalidRequestError(str(exc)) from exc


def other_course_schedules(user_id: int) -> Callable[[int], List[CourseSchedule]]:
    """Build the lookup returning the user's other courses and their slots."""

    def lookup(course_progress_id: int) -> List[CourseSchedule]:
        courses = (
            CourseProgress.query.filter(
                CourseProgress.user_id == user_id,
                CourseProgress.id != course_progress_id,
            )
            .order_by(CourseProgress.id)
            .all()
        )
        return [
            CourseSchedule(
                course_progress_id=course.id,
                label=course.subject.name if course.subject else None,
                slots=course.schedule_slots(),
            )
            for course in courses
        ]

    return lookup


def check_conflicts_for_input(
    course_progress_id: int, user_id: int, slots: Sequence[RecurringScheduleSlot]
) -> ConflictReport:
    course = get_owned_course_progress(course_progress_id, user_id)
    return check_schedule_conflicts(course.id, slots, other_course_schedules(user_id))


# ----------------------------------------------------------------------
# Generation
# ----------------------------------------------------------------------


@dataclass
class GenerationResult:
    generated: int
    warnings: List[ScheduleWarning] = field(default_factory=list)
    log: Optional[ScheduleLog] = None
    lesson_progress: List[LessonProgress] = field(default_factory=list)

    def as_payload(self) -> dict[str, Any]:
        return {
            "success": True,
            "generated": self.generated,
            "warnings": [warning.as_payload() for warning in self.warnings],
            "log": self.log.as_dict() if self.log is not None else None,
        }


def _generation_failed(course: CourseProgress, message: str) -> InvalidRequestError:
    """Discard pending changes and keep only an error log of the attempt."""
    db.session.rollback()
    reporter = ScheduleReporter(course)
    reporter.error(message)
    reporter.finalise(0)
    _commit("recording a failed generation")
    return InvalidRequestError(message)


def generate_lesson_schedule(
    course_progress_id: int,
    user_id: int,
    *,
    regenerate_existing: bool = False,
    handle_long_lessons: str | None = None,
    now: datetime | None = None,
) -> GenerationResult:
    """Write ``scheduled`` lesson progress for a course from its recurring slots.

    With ``regenerate_existing`` every ``scheduled`` progress of the course is
    dropped first. Without it, lessons already scheduled in the future keep
    their date. Completed or skipped lessons are never rescheduled.
    """

    course = get_owned_course_progress(course_progress_id, user_id)
    policy = _resolve_policy(handle_long_lessons)
    slots = course.schedule_slots()
    if not slots:
        raise InvalidRequestError("Aucun créneau horaire récurrent configuré pour ce cours")
    lessons = course_lessons(course)
    if not lessons:
        raise InvalidRequestError("Aucune leçon trouvée pour cette matière")
    if not any(slot.duration > 0 for slot in slots):
        raise _generation_failed(course, NO_USABLE_SLOT_ERROR)
    if now is None:
        now = datetime.now()

    reporter = ScheduleReporter(course)

    if regenerate_existing:
        stale = [p for p in course.lesson_progress if p.status == "scheduled"]
        for progress in stale:
            course.lesson_progress.remove(progress)
        db.session.flush()
        if stale:
            reporter.info(f"{len(stale)} séance(s) planifiée(s) supprimée(s) avant régénération")

    existing: dict[int, list[LessonProgress]] = defaultdict(list)
    for progress in course.lesson_progress:
        existing[progress.lesson_id].append(progress)

    to_schedule: List[Lesson] = []
    for lesson in lessons:
        rows = existing.get(lesson.id, [])
        if any(row.status in FINISHED_LESSON_STATUSES for row in rows):
            continue
        if not regenerate_existing and any(
            row.status == "scheduled" and row.is_scheduled_after(now) for row in rows
        ):
            reporter.info(f"{lesson.label} : déjà planifiée, date conservée")
            continue
        to_schedule.append(lesson)

    try:
        preview = calculate_schedule_preview(
            [lesson.as_item() for lesson in to_schedule], slots, now=now, policy=policy
        )
    except ScheduleConfigurationError as exc:
        raise _generation_failed(course, str(exc)) from exc

    lessons_by_id = {str(lesson.id): lesson for lesson in to_schedule}
    reusable = {lesson.id: list(existing.get(lesson.id, [])) for lesson in to_schedule}
    written: List[LessonProgress] = []
    for placement in preview.placements:
        lesson = lessons_by_id[placement.lesson.id]
        pool = reusable[lesson.id]
        if pool:
            progress = pool.pop(0)
        else:
            progress = LessonProgress(lesson=lesson)
            course.lesson_progress.append(progress)
        progress.status = "scheduled"
        progress.scheduled_date = placement.start
        progress.scheduled_duration = placement.minutes
        written.append(progress)

    # Fragments left over from an earlier plan are superseded.
    for leftovers in reusable.values():
        for progress in leftovers:
            if progress.status == "scheduled":
                course.lesson_progress.remove(progress)

    reporter.schedule_warnings(
        preview.warnings, {key: lesson.label for key, lesson in lessons_by_id.items()}
    )
    course.auto_scheduled = True
    log = reporter.finalise(len(written))
    _commit("generating a lesson schedule")
    current_app.logger.info(
        "Generated %s lesson occurrence(s) for course progress %s (%s warning(s))",
        len(written),
        course.id,
        len(preview.warnings),
    )
    return GenerationResult(
        generated=len(written),
        warnings=list(preview.warnings),
        log=log,
        lesson_progress=written,
    )


# ----------------------------------------------------------------------
# Lesson progress and calendar
# ----------------------------------------------------------------------


def list_lesson_progress(course_progress_id: int, user_id: int) -> List[LessonProgress]:
    course = get_owned_course_progress(course_progress_id, user_id)
    return sorted(
        course.lesson_progress,
        key=lambda p: (p.scheduled_date is None, p.scheduled_date or datetime.min, p.id),
    )


def get_owned_lesson_progress(lesson_progress_id: int, user_id: int) -> LessonProgress:
    progress = (
        LessonProgress.query.join(CourseProgress)
        .filter(LessonProgress.id == lesson_progress_id, CourseProgress.user_id == user_id)
        .first()
    )
    if progress is None:
        raise NotFoundError("Progression de leçon non trouvée")
    return progress


def _optional_datetime(value: Any, label: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return parse_iso_datetime(value)
    except ValueError as exc:
        raise InvalidRequestError(f"{label} invalide", [str(exc)]) from exc


def _comment_entries(comments: Any) -> list[dict[str, object]]:
    if not isinstance(comments, list):
        raise InvalidRequestError("Commentaires invalides", ["Une liste est attendue."])
    errors: List[str] = []
    entries: list[dict[str, object]] = []
    stamp = datetime.now().isoformat()
    for index, comment in enumerate(comments, start=1):
        title = comment.get("title") if isinstance(comment, dict) else None
        if not isinstance(title, str) or not title.strip():
            errors.append(f"Commentaire {index} : un titre est requis.")
            continue
        entries.append(
            {
                "title": title.strip(),
                "description": comment.get("description") or "",
                "created_at": stamp,
                "updated_at": stamp,
            }
        )
    if errors:
        raise InvalidRequestError("Commentaires invalides", errors)
    return entries


def patch_lesson_progress(
    lesson_progress_id: int, user_id: int, changes: dict[str, Any]
) -> LessonProgress:
    progress = get_owned_lesson_progress(lesson_progress_id, user_id)
    comments = _comment_entries(changes["comments"]) if "comments" in changes else None
    if "status" in changes and changes["status"] is not None:
        status = changes["status"]
        if status not in LESSON_PROGRESS_STATUSES:
            raise InvalidRequestError(f"Statut inconnu : {status}")
        progress.status = status
    if "scheduled_date" in changes:
        progress.scheduled_date = _optional_datetime(
            changes["scheduled_date"], "Date de planification"
        )
    if "scheduled_duration" in changes:
        progress.scheduled_duration = changes["scheduled_duration"]
    if "completed_at" in changes:
        progress.completed_at = _optional_datetime(changes["completed_at"], "Date de fin")
    if comments is not None:
        progress.comments = json.dumps(comments, ensure_ascii=False)
    if progress.status == "completed" and progress.completed_at is None:
        progress.completed_at = datetime.now()
    _commit("updating a lesson progress")
    return progress


def delete_lesson_progress(lesson_progress_id: int, user_id: int) -> None:
    progress = get_owned_lesson_progress(lesson_progress_id, user_id)
    db.session.delete(progress)
    _commit("deleting a lesson progress")


def calendar_events(
    user_id: int, start: datetime | None = None, end: datetime | None = None
) -> list[dict[str, object]]:
    query = (
        LessonProgress.query.join(CourseProgress)
        .filter(CourseProgress.user_id == user_id, LessonProgress.scheduled_date.isnot(None))
    )
    if start is not None:
        query = query.filter(LessonProgress.scheduled_date >= start)
    if end is not None:
        query = query.filter(LessonProgress.scheduled_date < end)
    return lesson_progress_to_events(query.order_by(LessonProgress.scheduled_date).all())
