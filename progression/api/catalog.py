"""Classes, subjects and their lessons."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_restx import Namespace, Resource, fields

from .. import services
from .common import current_user_id, service_errors


classes_ns = Namespace("classes", description="School classes of the current teacher")
subjects_ns = Namespace("subjects", description="Subjects and their ordered lessons")

class_model = classes_ns.model(
    "SchoolClass",
    {
        "id": fields.Integer(readonly=True),
        "name": fields.String(required=True),
        "level": fields.String,
    },
)

subject_model = subjects_ns.model(
    "Subject",
    {
        "id": fields.Integer(readonly=True),
        "name": fields.String(required=True),
        "category": fields.String,
        "lesson_count": fields.Integer(readonly=True),
    },
)

lesson_model = subjects_ns.model(
    "Lesson",
    {
        "id": fields.Integer(readonly=True),
        "subject_id": fields.Integer(readonly=True),
        "label": fields.String(required=True),
        "description": fields.String,
        "duration": fields.Integer(description="Minutes", min=0),
        "order": fields.Integer,
        "scope": fields.String(enum=["core", "bonus", "optional"]),
    },
)


@classes_ns.route("")
class SchoolClassList(Resource):
    @classes_ns.marshal_list_with(class_model)
    def get(self) -> list[dict[str, Any]]:
        user_id = current_user_id(classes_ns)
        return [item.as_dict() for item in services.list_school_classes(user_id)]

    @classes_ns.expect(class_model, validate=True)
    @classes_ns.marshal_with(class_model, code=201)
    def post(self) -> tuple[dict[str, Any], int]:
        user_id = current_user_id(classes_ns)
        payload = request.json or {}
        with service_errors(classes_ns):
            school_class = services.create_school_class(
                user_id, payload.get("name", ""), payload.get("level")
            )
        return school_class.as_dict(), 201


@subjects_ns.route("")
class SubjectList(Resource):
    @subjects_ns.marshal_list_with(subject_model)
    def get(self) -> list[dict[str, Any]]:
        user_id = current_user_id(subjects_ns)
        return [subject.as_dict() for subject in services.list_subjects(user_id)]

    @subjects_ns.expect(subject_model, validate=True)
    @subjects_ns.marshal_with(subject_model, code=201)
    def post(self) -> tuple[dict[str, Any], int]:
        user_id = current_user_id(subjects_ns)
        payload = request.json or {}
        with service_errors(subjects_ns):
            subject = services.create_subject(
                user_id, payload.get("name", ""), payload.get("category")
            )
        return subject.as_dict(), 201


@subjects_ns.route("/<int:subject_id>/lessons")
class LessonList(Resource):
    @subjects_ns.marshal_list_with(lesson_model)
    def get(self, subject_id: int) -> list[dict[str, Any]]:
        user_id = current_user_id(subjects_ns)
        with service_errors(subjects_ns):
            lessons = services.list_lessons(subject_id, user_id)
        return [lesson.as_dict() for lesson in lessons]

    @subjects_ns.expect(lesson_model, validate=True)
    @subjects_ns.marshal_with(lesson_model, code=201)
    def post(self, subject_id: int) -> tuple[dict[str, Any], int]:
        user_id = current_user_id(subjects_ns)
        payload = request.json or {}
        with service_errors(subjects_ns):
            lesson = services.create_lesson(
                subject_id,
                user_id,
                label=payload.get("label", ""),
                duration=payload.get("duration"),
                order=payload.get("order"),
                description=payload.get("description"),
                scope=payload.get("scope") or "core",
            )
        return lesson.as_dict(), 201
