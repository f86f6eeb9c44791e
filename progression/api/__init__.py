"""REST API definition using Flask-RESTX."""
from __future__ import annotations

from flask import Blueprint
from flask_restx import Api

from .calendar import ns as calendar_ns
from .catalog import classes_ns, subjects_ns
from .course_progress import ns as course_progress_ns
from .health import ns as health_ns
from .lesson_progress import ns as lesson_progress_ns


def register_namespaces(api: Api) -> None:
    """Register all API namespaces."""
    api.add_namespace(health_ns, path="/health")
    api.add_namespace(classes_ns, path="/classes")
    api.add_namespace(subjects_ns, path="/subjects")
    api.add_namespace(course_progress_ns, path="/course-progress")
    api.add_namespace(lesson_progress_ns, path="/lesson-progress")
    api.add_namespace(calendar_ns, path="/calendar")


def create_api_blueprint() -> Blueprint:
    """Build the API blueprint; one per application instance."""
    bp = Blueprint("api", __name__)
    api = Api(bp, version="0.1.0", title="Progression API", doc="/docs")
    register_namespaces(api)
    return bp
