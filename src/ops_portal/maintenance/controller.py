from __future__ import annotations

from flask import Flask, request

from ..common.web import admin_required, current_role, current_user_id, json_action, login_required, ok, payload
from ..container import Container


def _details(container: Container, data: dict):
    return container.maintenance_service.build_details(
        branch=data.get("branch", ""),
        brand_name=data.get("brand_name", ""),
        serial_number=data.get("serial_number", ""),
        workstation_number=data.get("workstation_number", ""),
        report_month=data.get("report_month", ""),
        date_of_purchase=data.get("date_of_purchase", ""),
        warranty_end_date=data.get("warranty_end_date", ""),
        contact_name=data.get("contact_name", ""),
        contact_number=data.get("contact_number", ""),
        condition=data.get("condition") or "used",
        running_status=data.get("running_status") or "running",
        description=data.get("description", ""),
    )


def register(app: Flask, container: Container) -> None:
    service = container.maintenance_service

    @app.route("/api/maintenance", methods=["GET"], endpoint="list_maintenance")
    @login_required
    @json_action("Failed to load maintenance requests")
    def list_maintenance():
        role, user_id = current_role(), current_user_id()
        status = request.args.get("status") or None
        branch = request.args.get("branch") or None
        items = container.cache.get_or_load(
            ("maintenance-requests", role.value, user_id, status, branch),
            lambda: list(service.list(current_role=role, user_id=user_id, status=status, branch=branch)),
        )
        return ok(items)

    @app.route("/api/maintenance", methods=["POST"], endpoint="create_maintenance")
    @login_required
    @json_action("System error while submitting maintenance request")
    def create_maintenance():
        request_id = service.create(
            current_role=current_role(),
            user_id=current_user_id(),
            details=_details(container, payload()),
        )
        return ok({"request_id": request_id}, "Maintenance request submitted", 201)

    @app.route("/api/maintenance/<int:request_id>", methods=["PUT"], endpoint="update_maintenance")
    @login_required
    @json_action("System error while updating maintenance request")
    def update_maintenance(request_id: int):
        service.update(
            current_role=current_role(),
            user_id=current_user_id(),
            request_id=request_id,
            details=_details(container, payload()),
        )
        return ok(message="Maintenance request updated")

    @app.route("/api/maintenance/<int:request_id>", methods=["DELETE"], endpoint="delete_maintenance")
    @login_required
    @json_action("System error while deleting maintenance request")
    def delete_maintenance(request_id: int):
        service.delete(current_role=current_role(), user_id=current_user_id(), request_id=request_id)
        return ok(message="Maintenance request deleted")

    @app.route("/api/maintenance/pending-count", methods=["GET"], endpoint="maintenance_pending_count")
    @admin_required
    @json_action("Failed to load pending count")
    def maintenance_pending_count():
        n = container.cache.get_or_load(("maintenance-pending-count",), service.pending_count)
        return ok({"count": n})

    @app.route("/api/maintenance/<int:request_id>/approve", methods=["POST"], endpoint="approve_maintenance")
    @admin_required
    @json_action("System error while approving maintenance request")
    def approve_maintenance(request_id: int):
        req = service.approve(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            request_id=request_id,
            admin_notes=payload().get("admin_notes", ""),
        )
        return ok(req, "Maintenance request approved")

    @app.route("/api/maintenance/<int:request_id>/reject", methods=["POST"], endpoint="reject_maintenance")
    @admin_required
    @json_action("System error while rejecting maintenance request")
    def reject_maintenance(request_id: int):
        data = payload()
        req = service.reject(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            request_id=request_id,
            rejection_reason=data.get("rejection_reason", ""),
            admin_notes=data.get("admin_notes", ""),
        )
        return ok(req, "Maintenance request rejected")
