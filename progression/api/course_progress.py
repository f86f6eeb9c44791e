"""Course progress endpoints: CRUD, recurring schedule, preview and generation."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_restx import Namespace, Resource, fields

from .. import services
from .common import current_user_id, service_errors, slot_fields


ns = Namespace("course-progress", description="Course progress and recurring schedules")

slot_model = ns.model("RecurringSlot", slot_fields())

course_progress_model = ns.model(
    "CourseProgress",
    {
        "id": fields.Integer(readonly=True),
        "class_id": fields.Integer(required=True),
        "subject_id": fields.Integer(required=True),
        "user_id": fields.Integer(readonly=True),
        "name": fields.String(readonly=True),
        "status": fields.String(
            enum=["not_started", "in_progress", "completed", "on_hold"]
        ),
        "auto_scheduled": fields.Boolean(readonly=True),
        "recurring_schedule": fields.List(fields.Nested(slot_model), readonly=True),
        "created_at": fields.String(readonly=True),
        "updated_at": fields.String(readonly=True),
    },
)

course_progress_patch = ns.model(
    "CourseProgressPatch",
    {
        "status": fields.String(
            enum=["not_started", "in_progress", "completed", "on_hold"]
        ),
        "auto_scheduled": fields.Boolean,
    },
)

schedule_input = ns.model(
    "RecurringScheduleInput",
    {"recurring_schedule": fields.List(fields.Nested(slot_model), required=True)},
)

preview_input = ns.model(
    "SchedulePreviewInput",
    {
        "recurring_schedule": fields.List(fields.Nested(slot_model)),
        "handle_long_lessons": fields.String(enum=["split", "reduce_duration"]),
    },
)

generation_options = ns.model(
    "GenerationOptions",
    {
        "regenerate_existing": fields.Boolean(default=False),
        "handle_long_lessons": fields.String(enum=["split", "reduce_duration"]),
    },
)

generation_input = ns.model(
    "GenerationInput", {"options": fields.Nested(generation_options)}
)


@ns.route("")
class CourseProgressList(Resource):
    @ns.marshal_list_with(course_progress_model)
    @ns.param("class_id", "Filter on a class")
    @ns.param("subject_id", "Filter on a subject")
    def get(self) -> list[dict[str, Any]]:
        user_id = current_user_id(ns)
        courses = services.list_course_progress(
            user_id,
            class_id=request.args.get("class_id", type=int),
            subject_id=request.args.get("subject_id", type=int),
        )
        return [course.as_dict() for course in courses]

    @ns.expect(course_progress_model, validate=True)
    @ns.marshal_with(course_progress_model, code=201)
    def post(self) -> tuple[dict[str, Any], int]:
        user_id = current_user_id(ns)
        payload = request.json or {}
        with service_errors(ns):
            course = services.create_course_progress(
                user_id,
                payload["class_id"],
                payload["subject_id"],
                payload.get("status"),
            )
        return course.as_dict(), 201


@ns.route("/<int:course_progress_id>")
class CourseProgressResource(Resource):
    @ns.marshal_with(course_progress_model)
    def get(self, course_progress_id: int) -> dict[str, Any]:
        user_id = current_user_id(ns)
        with service_errors(ns):
            course = services.get_owned_course_progress(course_progress_id, user_id)
        return course.as_dict()

    @ns.expect(course_progress_patch, validate=True)
    @ns.marshal_with(course_progress_model)
    def patch(self, course_progress_id: int) -> dict[str, Any]:
        user_id = current_user_id(ns)
        payload = request.json or {}
        with service_errors(ns):
            course = services.patch_course_progress(
                course_progress_id,
                user_id,
                status=payload.get("status"),
                auto_scheduled=payload.get("auto_scheduled"),
            )
        return course.as_dict()

    def delete(self, course_progress_id: int) -> tuple[str, int]:
        user_id = current_user_id(ns)
        with service_errors(ns):
            services.delete_course_progress(course_progress_id, user_id)
        return "", 204


@ns.route("/<int:course_progress_id>/schedule")
class RecurringScheduleResource(Resource):
    def get(self, course_progress_id: int) -> dict[str, Any]:
        user_id = current_user_id(ns)
        with service_errors(ns):
            course = services.get_owned_course_progress(course_progress_id, user_id)
        return {"recurring_schedule": [slot.as_payload() for slot in course.schedule_slots()]}

    @ns.expect(schedule_input, validate=True)
    def put(self, course_progress_id: int) -> dict[str, Any]:
        user_id = current_user_id(ns)
        payload = request.json or {}
        with service_errors(ns):
            slots = services.parse_slot_payloads(payload.get("recurring_schedule"))
            course = services.update_recurring_schedule(course_progress_id, user_id, slots)
        return {"recurring_schedule": [slot.as_payload() for slot in course.schedule_slots()]}


@ns.route("/<int:course_progress_id>/schedule/preview")
class SchedulePreviewResource(Resource):
    @ns.expect(preview_input, validate=True)
    def post(self, course_progress_id: int) -> dict[str, Any]:
        user_id = current_user_id(ns)
        payload = request.get_json(silent=True) or {}
        with service_errors(ns):
            slots = None
            if payload.get("recurring_schedule") is not None:
                slots = services.parse_slot_payloads(payload["recurring_schedule"])
            preview = services.preview_course_schedule(
                course_progress_id,
                user_id,
                slots,
                policy=payload.get("handle_long_lessons"),
            )
        return preview.as_payload()


@ns.route("/<int:course_progress_id>/schedule/conflicts")
class ScheduleConflictsResource(Resource):
    @ns.expect(schedule_input, validate=True)
    def post(self, course_progress_id: int) -> dict[str, Any]:
        user_id = current_user_id(ns)
        payload = request.json or {}
        with service_errors(ns):
            slots = services.parse_slot_payloads(payload.get("recurring_schedule"))
            report = services.check_conflicts_for_input(course_progress_id, user_id, slots)
        return report.as_payload()


@ns.route("/<int:course_progress_id>/schedule/generate")
class ScheduleGenerationResource(Resource):
    @ns.expect(generation_input, validate=True)
    def post(self, course_progress_id: int) -> dict[str, Any]:
        user_id = current_user_id(ns)
        payload = request.get_json(silent=True) or {}
        options = payload.get("options") or {}
        with service_errors(ns):
            result = services.generate_lesson_schedule(
                course_progress_id,
                user_id,
                regenerate_existing=bool(options.get("regenerate_existing", False)),
                handle_long_lessons=options.get("handle_long_lessons"),
            )
        return result.as_payload()


@ns.route("/<int:course_progress_id>/lessons")
class CourseLessonProgressList(Resource):
    def get(self, course_progress_id: int) -> list[dict[str, Any]]:
        user_id = current_user_id(ns)
        with service_errors(ns):
            progress_rows = services.list_lesson_progress(course_progress_id, user_id)
        return [progress.as_dict() for progress in progress_rows]
