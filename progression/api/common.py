from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from flask import request
from flask_restx import Namespace, fields

from ..services import InvalidRequestError, NotFoundError


USER_HEADER = "X-User-Id"


def current_user_id(ns: Namespace) -> int:
    """Identifier of the caller, as set by the authentication layer in front of us."""
    raw = (request.headers.get(USER_HEADER) or "").strip()
    if not raw.isdigit() or int(raw) <= 0:
        ns.abort(401, "Authentification requise")
    return int(raw)


@contextmanager
def service_errors(ns: Namespace) -> Iterator[None]:
    try:
        yield
    except NotFoundError as exc:
        ns.abort(404, exc.message)
    except InvalidRequestError as exc:
        if exc.errors:
            ns.abort(400, exc.message, errors=exc.errors)
        ns.abort(400, exc.message)


def slot_fields() -> dict[str, fields.Raw]:
    return {
        "day_of_week": fields.Integer(required=True, description="1 = lundi"),
        "start_hour": fields.Integer(required=True),
        "end_hour": fields.Integer(required=True),
        "start_date": fields.String(required=True, description="ISO-8601 date"),
    }
