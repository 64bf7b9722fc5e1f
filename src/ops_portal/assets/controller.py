from __future__ import annotations

from flask import Flask, request

from ..common.web import admin_required, current_role, current_user_id, json_action, login_required, ok, payload
from ..container import Container


def register(app: Flask, container: Container) -> None:
    service = container.asset_service

    @app.route("/api/assets", methods=["GET"], endpoint="list_assets")
    @login_required
    @json_action("Failed to load assets")
    def list_assets():
        role, user_id = current_role(), current_user_id()
        status = request.args.get("status") or None
        branch = request.args.get("branch") or None
        items = container.cache.get_or_load(
            ("asset-requests", role.value, user_id, status, branch),
            lambda: list(service.list(current_role=role, user_id=user_id, status=status, branch=branch)),
        )
        return ok(items)

    @app.route("/api/assets", methods=["POST"], endpoint="create_asset")
    @login_required
    @json_action("System error while submitting asset request")
    def create_asset():
        data = payload()
        asset_id = service.create_request(
            current_role=current_role(),
            user_id=current_user_id(),
            branch=data.get("branch", ""),
            product_name=data.get("product_name", ""),
            brand_name=data.get("brand_name", ""),
            serial_no=data.get("serial_no", ""),
            workstation_number=data.get("workstation_number", ""),
            quantity=data.get("quantity") or 1,
            condition=data.get("condition") or "new",
            warranty=data.get("warranty", ""),
            request_type=data.get("request_type") or "common",
        )
        return ok({"asset_id": asset_id}, "Asset request submitted", 201)

    @app.route("/api/assets/pending-count", methods=["GET"], endpoint="asset_pending_count")
    @admin_required
    @json_action("Failed to load pending count")
    def asset_pending_count():
        n = container.cache.get_or_load(("asset-pending-count",), service.pending_count)
        return ok({"count": n})

    @app.route("/api/assets/<int:asset_id>/approve", methods=["POST"], endpoint="approve_asset")
    @admin_required
    @json_action("System error while approving asset request")
    def approve_asset(asset_id: int):
        asset = service.approve(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            asset_id=asset_id,
            admin_notes=payload().get("admin_notes", ""),
        )
        return ok(asset, "Asset request approved")

    @app.route("/api/assets/<int:asset_id>/reject", methods=["POST"], endpoint="reject_asset")
    @admin_required
    @json_action("System error while rejecting asset request")
    def reject_asset(asset_id: int):
        asset = service.reject(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            asset_id=asset_id,
            admin_notes=payload().get("admin_notes", ""),
        )
        return ok(asset, "Asset request rejected")

    @app.route("/api/assets/<int:asset_id>", methods=["DELETE"], endpoint="delete_asset")
    @login_required
    @json_action("System error while deleting asset")
    def delete_asset(asset_id: int):
        service.delete(current_role=current_role(), user_id=current_user_id(), asset_id=asset_id)
        return ok(message="Asset deleted")

    @app.route("/api/assets/<int:asset_id>/maintenance", methods=["POST"], endpoint="asset_to_maintenance")
    @login_required
    @json_action("System error while sending asset to maintenance")
    def asset_to_maintenance(asset_id: int):
        data = payload()
        request_id = container.maintenance_service.create_from_asset(
            current_role=current_role(),
            user_id=current_user_id(),
            asset=service.get(asset_id),
            description=data.get("description", ""),
            running_status=data.get("running_status") or "not_running",
        )
        return ok({"request_id": request_id}, "Maintenance request created from asset", 201)

    @app.route("/api/assets/<int:asset_id>/scrap", methods=["POST"], endpoint="asset_to_scrap")
    @login_required
    @json_action("System error while sending asset to scrap")
    def asset_to_scrap(asset_id: int):
        data = payload()
        scrap_id = container.scrap_service.create_from_asset(
            current_role=current_role(),
            user_id=current_user_id(),
            asset=service.get(asset_id),
            scrap_status=data.get("scrap_status") or "damaged",
            other_issue=data.get("other_issue", ""),
        )
        return ok({"scrap_id": scrap_id}, "Scrap request created from asset", 201)
