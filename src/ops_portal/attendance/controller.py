from __future__ import annotations

from flask import Flask, request

from ..common.datetime_utils import now_utc
from ..common.validators import require_positive_int
from ..common.web import admin_required, csv_response, current_role, current_user_id, json_action, login_required, ok
from ..container import Container


def register(app: Flask, container: Container) -> None:
    service = container.attendance_service

    @app.route("/api/attendance/today", methods=["GET"], endpoint="attendance_today")
    @login_required
    @json_action("Failed to load today's attendance")
    def attendance_today():
        user_id = current_user_id()
        record = container.cache.get_or_load(
            ("attendance", "today", user_id, now_utc().date().isoformat()),
            lambda: service.today_record(staff_id=user_id),
        )
        return ok({"record": record})

    @app.route("/api/attendance/today/all", methods=["GET"], endpoint="attendance_today_all")
    @admin_required
    @json_action("Failed to load today's attendance")
    def attendance_today_all():
        role = current_role()
        items = container.cache.get_or_load(
            ("attendance", "today", "all", now_utc().date().isoformat()),
            lambda: list(service.today_all(current_role=role)),
        )
        return ok(items)

    @app.route("/api/attendance/summary", methods=["GET"], endpoint="attendance_summary")
    @admin_required
    @json_action("Failed to load attendance summary")
    def attendance_summary():
        summary = container.cache.get_or_load(
            ("attendance-summary", now_utc().date().isoformat()), service.today_summary
        )
        return ok(summary)

    @app.route("/api/attendance/history", methods=["GET"], endpoint="attendance_history")
    @login_required
    @json_action("Failed to load attendance history")
    def attendance_history():
        role, user_id = current_role(), current_user_id()
        raw_staff = request.args.get("staff_id")
        staff_id = require_positive_int(raw_staff, "Staff") if raw_staff else None
        days = require_positive_int(request.args.get("days") or 30, "Days")
        items = container.cache.get_or_load(
            ("attendance", "history", user_id, staff_id, days),
            lambda: list(service.history(current_role=role, user_id=user_id, staff_id=staff_id, days=days)),
        )
        return ok(items)

    @app.route("/api/attendance/export.csv", methods=["GET"], endpoint="attendance_export")
    @login_required
    @json_action("Failed to export attendance")
    def attendance_export():
        data = service.export(
            current_role=current_role(),
            user_id=current_user_id(),
            start=request.args.get("start") or None,
            end=request.args.get("end") or None,
        )
        filename = f"attendance_{now_utc().strftime('%Y%m%d')}.csv"
        return csv_response(data.rows, fieldnames=data.fieldnames, filename=filename)
