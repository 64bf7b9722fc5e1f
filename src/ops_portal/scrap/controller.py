from __future__ import annotations

from flask import Flask, request

from ..common.web import admin_required, current_role, current_user_id, json_action, login_required, ok, payload
from ..container import Container


def _details(container: Container, data: dict):
    return container.scrap_service.build_details(
        branch=data.get("branch", ""),
        brand_name=data.get("brand_name", ""),
        scrap_status=data.get("scrap_status", ""),
        workstation_number=data.get("workstation_number", ""),
        users_name=data.get("users_name", ""),
        serial_number=data.get("serial_number", ""),
        other_issue=data.get("other_issue", ""),
    )


def register(app: Flask, container: Container) -> None:
    service = container.scrap_service

    @app.route("/api/scrap", methods=["GET"], endpoint="list_scrap")
    @login_required
    @json_action("Failed to load scrap requests")
    def list_scrap():
        role, user_id = current_role(), current_user_id()
        status = request.args.get("status") or None
        branch = request.args.get("branch") or None
        items = container.cache.get_or_load(
            ("scrap-requests", role.value, user_id, status, branch),
            lambda: list(service.list(current_role=role, user_id=user_id, status=status, branch=branch)),
        )
        return ok(items)

    @app.route("/api/scrap", methods=["POST"], endpoint="create_scrap")
    @login_required
    @json_action("System error while submitting scrap request")
    def create_scrap():
        scrap_id = service.create(
            current_role=current_role(),
            user_id=current_user_id(),
            details=_details(container, payload()),
        )
        return ok({"scrap_id": scrap_id}, "Scrap request submitted", 201)

    @app.route("/api/scrap/<int:scrap_id>", methods=["PUT"], endpoint="update_scrap")
    @login_required
    @json_action("System error while updating scrap request")
    def update_scrap(scrap_id: int):
        service.update(
            current_role=current_role(),
            user_id=current_user_id(),
            scrap_id=scrap_id,
            details=_details(container, payload()),
        )
        return ok(message="Scrap request updated")

    @app.route("/api/scrap/<int:scrap_id>", methods=["DELETE"], endpoint="delete_scrap")
    @login_required
    @json_action("System error while deleting scrap request")
    def delete_scrap(scrap_id: int):
        service.delete(current_role=current_role(), user_id=current_user_id(), scrap_id=scrap_id)
        return ok(message="Scrap request deleted")

    @app.route("/api/scrap/pending-count", methods=["GET"], endpoint="scrap_pending_count")
    @admin_required
    @json_action("Failed to load pending count")
    def scrap_pending_count():
        n = container.cache.get_or_load(("scrap-pending-count",), service.pending_count)
        return ok({"count": n})

    @app.route("/api/scrap/<int:scrap_id>/approve", methods=["POST"], endpoint="approve_scrap")
    @admin_required
    @json_action("System error while approving scrap request")
    def approve_scrap(scrap_id: int):
        scrap = service.approve(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            scrap_id=scrap_id,
            admin_response=payload().get("admin_response", ""),
        )
        return ok(scrap, "Scrap request approved")

    @app.route("/api/scrap/<int:scrap_id>/reject", methods=["POST"], endpoint="reject_scrap")
    @admin_required
    @json_action("System error while rejecting scrap request")
    def reject_scrap(scrap_id: int):
        scrap = service.reject(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            scrap_id=scrap_id,
            admin_response=payload().get("admin_response", ""),
        )
        return ok(scrap, "Scrap request rejected")
