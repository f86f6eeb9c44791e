from datetime import date, datetime, time, timedelta

from . import db
from .models import (
    CourseProgress,
    Lesson,
    RecurringSlot,
    SchoolClass,
    Subject,
    User,
)


def seed_data() -> None:
    if User.query.count():
        return

    today = date.today()
    # Anchor the slots on the Monday of the current week.
    monday = datetime.combine(today - timedelta(days=today.weekday()), time.min)

    teacher = User(name="Alice Martin", email="alice@example.com")

    class_a = SchoolClass(user=teacher, name="6e A", level="6e")
    class_b = SchoolClass(user=teacher, name="5e B", level="5e")

    maths = Subject(user=teacher, name="Mathématiques", category="Sciences")
    french = Subject(user=teacher, name="Français", category="Lettres")

    maths_lessons = [
        ("Nombres décimaux", 60),
        ("Fractions", 90),
        ("Proportionnalité", 120),
        ("Géométrie plane", 60),
        ("Évaluation", 60),
    ]
    for index, (label, duration) in enumerate(maths_lessons, start=1):
        maths.lessons.append(
            Lesson(user=teacher, label=label, duration=duration, order=index)
        )
    for index, label in enumerate(["Le conte", "La fable", "Le récit d'aventure"], start=1):
        french.lessons.append(Lesson(user=teacher, label=label, duration=60, order=index))

    maths_course = CourseProgress(user=teacher, school_class=class_a, subject=maths)
    maths_course.recurring_slots.extend(
        [
            RecurringSlot(day_of_week=1, start_hour=8, end_hour=10, start_date=monday),
            RecurringSlot(day_of_week=4, start_hour=14, end_hour=15, start_date=monday),
        ]
    )
    french_course = CourseProgress(user=teacher, school_class=class_b, subject=french)
    french_course.recurring_slots.append(
        RecurringSlot(day_of_week=2, start_hour=10, end_hour=11, start_date=monday)
    )

    db.session.add_all([teacher, class_a, class_b, maths, french, maths_course, french_course])
    db.session.commit()
