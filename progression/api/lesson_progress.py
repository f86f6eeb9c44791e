"""Lesson progress endpoints."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_restx import Namespace, Resource, fields

from .. import services
from .common import current_user_id, service_errors


ns = Namespace("lesson-progress", description="Progress of one lesson inside a course")

comment_model = ns.model(
    "LessonComment",
    {
        "title": fields.String(required=True),
        "description": fields.String,
        "created_at": fields.String(readonly=True),
        "updated_at": fields.String(readonly=True),
    },
)

lesson_progress_model = ns.model(
    "LessonProgress",
    {
        "id": fields.Integer(readonly=True),
        "lesson_id": fields.Integer(readonly=True),
        "lesson_label": fields.String(readonly=True),
        "course_progress_id": fields.Integer(readonly=True),
        "status": fields.String,
        "scheduled_date": fields.String,
        "scheduled_duration": fields.Integer,
        "completed_at": fields.String,
        "comments": fields.List(fields.Nested(comment_model)),
    },
)

lesson_progress_patch = ns.model(
    "LessonProgressPatch",
    {
        "status": fields.String(
            enum=["not_started", "scheduled", "in_progress", "completed", "skipped"]
        ),
        "scheduled_date": fields.String(description="ISO-8601 date-time"),
        "scheduled_duration": fields.Integer(description="Minutes", min=0),
        "completed_at": fields.String(description="ISO-8601 date-time"),
        "comments": fields.List(fields.Nested(comment_model)),
    },
)


@ns.route("/<int:lesson_progress_id>")
class LessonProgressResource(Resource):
    @ns.expect(lesson_progress_patch, validate=True)
    @ns.marshal_with(lesson_progress_model)
    def patch(self, lesson_progress_id: int) -> dict[str, Any]:
        user_id = current_user_id(ns)
        payload = request.json or {}
        with service_errors(ns):
            progress = services.patch_lesson_progress(lesson_progress_id, user_id, payload)
        return progress.as_dict()

    def delete(self, lesson_progress_id: int) -> tuple[str, int]:
        user_id = current_user_id(ns)
        with service_errors(ns):
            services.delete_lesson_progress(lesson_progress_id, user_id)
        return "", 204
