"""Calendar feed of scheduled lessons."""
from __future__ import annotations

from flask import request
from flask_restx import Namespace, Resource

from .. import services
from ..events import parse_calendar_bound
from .common import current_user_id


ns = Namespace("calendar", description="Scheduled lessons as calendar events")


@ns.route("")
@ns.param("start", "Lower bound (ISO-8601), inclusive")
@ns.param("end", "Upper bound (ISO-8601), exclusive")
class CalendarResource(Resource):
    def get(self) -> list[dict[str, object]]:
        user_id = current_user_id(ns)
        try:
            start = parse_calendar_bound(request.args.get("start"))
            end = parse_calendar_bound(request.args.get("end"))
        except ValueError as exc:
            ns.abort(400, str(exc))
        return services.calendar_events(user_id, start=start, end=end)
