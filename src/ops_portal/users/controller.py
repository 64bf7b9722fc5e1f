from __future__ import annotations

from datetime import timedelta

from flask import Flask, jsonify, session

from ..common.logger import get_logger
from ..common.validators import require_enum
from ..common.web import (
    admin_required,
    current_role,
    current_user_id,
    json_action,
    login_required,
    ok,
    payload,
)
from ..core.enums import Role
from ..core.exceptions import AuthenticationError
from ..container import Container

log = get_logger(__name__)


def _public(user) -> dict:
    return {
        "user_id": user.user_id,
        "full_name": user.full_name,
        "username": user.username,
        "email": user.email,
        "role": user.role.value,
        "branch": user.branch,
        "department": user.department,
        "designation": user.designation,
        "is_active": user.is_active,
    }


def register(app: Flask, container: Container) -> None:
    @app.route("/api/auth/login", methods=["POST"], endpoint="login")
    def login():
        data = payload()
        try:
            s_user = container.auth_service.authenticate(data.get("username", ""), data.get("password", ""))
        except AuthenticationError as e:
            return jsonify({"success": False, "message": str(e)}), 401
        except Exception:
            log.exception("login failed")
            return jsonify({"success": False, "message": "System error while signing in"}), 500

        session.clear()
        session.permanent = bool(data.get("remember_me"))
        app.permanent_session_lifetime = timedelta(days=int(app.config.get("SESSION_DAYS", 7)))
        session["user_id"] = s_user.user_id
        session["name"] = s_user.full_name
        session["role"] = s_user.role.value
        session["branch"] = s_user.branch

        if s_user.role == Role.STAFF:
            try:
                container.attendance_service.mark_login(staff_id=s_user.user_id)
            except Exception:
                log.exception("attendance login mark failed for user %s", s_user.user_id)

        return ok(
            {"user_id": s_user.user_id, "full_name": s_user.full_name, "role": s_user.role.value, "branch": s_user.branch},
            "Signed in",
        )

    @app.route("/api/auth/logout", methods=["POST"], endpoint="logout")
    @login_required
    def logout():
        if session.get("role") == Role.STAFF.value:
            try:
                container.attendance_service.mark_logout(staff_id=current_user_id())
            except Exception:
                log.exception("attendance logout mark failed for user %s", session.get("user_id"))
        session.clear()
        return ok(message="Signed out")

    @app.route("/api/auth/me", methods=["GET"], endpoint="me")
    @login_required
    @json_action("Failed to load profile")
    def me():
        return ok(_public(container.user_service.get(current_user_id())))

    @app.route("/api/staff", methods=["GET"], endpoint="list_staff")
    @admin_required
    @json_action("Failed to load staff")
    def list_staff():
        users = container.cache.get_or_load(
            ("staff", "all"), lambda: [_public(u) for u in container.user_service.list_staff()]
        )
        return ok(users)

    @app.route("/api/staff", methods=["POST"], endpoint="create_staff")
    @admin_required
    @json_action("System error while creating account")
    def create_staff():
        data = payload()
        role = require_enum(Role, data.get("role") or Role.STAFF.value, "Role")
        user_id = container.user_service.create_staff(
            current_role=current_role(),
            full_name=data.get("full_name", ""),
            username=data.get("username", ""),
            password=data.get("password", ""),
            email=data.get("email", ""),
            branch=data.get("branch", ""),
            department=data.get("department", ""),
            designation=data.get("designation", ""),
            role=role,
        )
        return ok({"user_id": user_id}, "Account created", 201)

    @app.route("/api/staff/<int:user_id>/deactivate", methods=["POST"], endpoint="deactivate_staff")
    @admin_required
    @json_action("System error while deactivating account")
    def deactivate_staff(user_id: int):
        container.user_service.deactivate_staff(
            current_role=current_role(),
            current_user_id=current_user_id(),
            user_id=user_id,
        )
        return ok(message="Account deactivated")
