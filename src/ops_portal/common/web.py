"""Flask helpers shared by the JSON controllers: session guards and error mapping."""

from __future__ import annotations

import csv
import io
from functools import wraps
from typing import Any, Iterable, Sequence

from flask import current_app, jsonify, request, session

from ..core.enums import Role
from ..core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from .logger import get_logger
from .serialization import to_jsonable

log = get_logger(__name__)

_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
)


def login_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if "user_id" not in session:
            return jsonify({"success": False, "message": "Please sign in to continue"}), 401
        return view(*args, **kwargs)

    return wrapper


def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if "user_id" not in session:
            return jsonify({"success": False, "message": "Please sign in to continue"}), 401
        if session.get("role") != Role.ADMIN.value:
            return jsonify({"success": False, "message": "Admin access required"}), 403
        return view(*args, **kwargs)

    return wrapper


def staff_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if "user_id" not in session:
            return jsonify({"success": False, "message": "Please sign in to continue"}), 401
        if session.get("role") != Role.STAFF.value:
            return jsonify({"success": False, "message": "Staff access required"}), 403
        return view(*args, **kwargs)

    return wrapper


def current_role() -> Role:
    return Role(session.get("role"))


def current_user_id() -> int:
    return int(session["user_id"])


def payload() -> dict:
    """JSON body, falling back to form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def ok(data: Any = None, message: str = "", status: int = 200):
    body: dict = {"success": True, "message": message}
    if data is not None:
        body["data"] = to_jsonable(data)
    return jsonify(body), status


def json_action(fail_message: str):
    """Run a view and map domain errors to JSON responses.

    Domain errors keep their raw message; anything else is logged and answered
    with ``fail_message``.
    """

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            try:
                return view(*args, **kwargs)
            except tuple(cls for cls, _ in _STATUS_BY_ERROR) as e:
                status = next(code for cls, code in _STATUS_BY_ERROR if isinstance(e, cls))
                return jsonify({"success": False, "message": str(e)}), status
            except Exception:
                log.exception("%s (%s %s)", fail_message, request.method, request.path)
                return jsonify({"success": False, "message": fail_message}), 500

        return wrapper

    return decorator


def csv_response(rows: Iterable[dict], *, fieldnames: Sequence[str], filename: str):
    """Report rows as a CSV download (UTF-8 with BOM so spreadsheets pick the encoding)."""
    out = io.StringIO()
    writer = csv.DictWriter(out, fieldnames=list(fieldnames), extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow(row)

    return current_app.response_class(
        out.getvalue().encode("utf-8-sig"),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
