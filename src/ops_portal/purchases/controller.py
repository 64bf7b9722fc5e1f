from __future__ import annotations

from flask import Flask, request

from ..common.web import admin_required, current_role, current_user_id, json_action, login_required, ok, payload
from ..container import Container
from ..core.exceptions import ValidationError


def _details(container: Container, data: dict):
    return container.purchase_service.build_details(
        name=data.get("name", ""),
        branch=data.get("branch", ""),
        purchase_item=data.get("purchase_item", ""),
        designation=data.get("designation", ""),
        department=data.get("department", ""),
        description=data.get("description", ""),
        request_type=data.get("request_type") or "common",
    )


def register(app: Flask, container: Container) -> None:
    service = container.purchase_service

    @app.route("/api/purchases", methods=["GET"], endpoint="list_purchases")
    @login_required
    @json_action("Failed to load purchase requisitions")
    def list_purchases():
        role, user_id = current_role(), current_user_id()
        status = request.args.get("status") or None
        branch = request.args.get("branch") or None
        items = container.cache.get_or_load(
            ("purchase-requisitions", role.value, user_id, status, branch),
            lambda: list(service.list(current_role=role, user_id=user_id, status=status, branch=branch)),
        )
        return ok(items)

    @app.route("/api/purchases", methods=["POST"], endpoint="create_purchase")
    @login_required
    @json_action("System error while submitting requisition")
    def create_purchase():
        requisition_id = service.create(
            current_role=current_role(),
            user_id=current_user_id(),
            details=_details(container, payload()),
        )
        return ok({"requisition_id": requisition_id}, "Purchase requisition submitted", 201)

    @app.route("/api/purchases/<int:requisition_id>", methods=["PUT"], endpoint="update_purchase")
    @login_required
    @json_action("System error while updating requisition")
    def update_purchase(requisition_id: int):
        service.update(
            current_role=current_role(),
            user_id=current_user_id(),
            requisition_id=requisition_id,
            details=_details(container, payload()),
        )
        return ok(message="Purchase requisition updated")

    @app.route("/api/purchases/<int:requisition_id>", methods=["DELETE"], endpoint="delete_purchase")
    @login_required
    @json_action("System error while deleting requisition")
    def delete_purchase(requisition_id: int):
        service.delete(current_role=current_role(), user_id=current_user_id(), requisition_id=requisition_id)
        return ok(message="Purchase requisition deleted")

    @app.route("/api/purchases/pending-count", methods=["GET"], endpoint="purchase_pending_count")
    @admin_required
    @json_action("Failed to load pending count")
    def purchase_pending_count():
        counts = container.cache.get_or_load(
            ("purchase-pending-count",),
            lambda: {"pending": service.pending_count(), "awaiting_verification": service.awaiting_verification_count()},
        )
        return ok(counts)

    @app.route("/api/purchases/<int:requisition_id>/approve", methods=["POST"], endpoint="approve_purchase")
    @admin_required
    @json_action("System error while approving requisition")
    def approve_purchase(requisition_id: int):
        req = service.approve(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            requisition_id=requisition_id,
            admin_notes=payload().get("admin_notes", ""),
        )
        return ok(req, "Purchase requisition approved")

    @app.route("/api/purchases/<int:requisition_id>/reject", methods=["POST"], endpoint="reject_purchase")
    @admin_required
    @json_action("System error while rejecting requisition")
    def reject_purchase(requisition_id: int):
        data = payload()
        req = service.reject(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            requisition_id=requisition_id,
            rejection_reason=data.get("rejection_reason", ""),
            admin_notes=data.get("admin_notes", ""),
        )
        return ok(req, "Purchase requisition rejected")

    @app.route("/api/purchases/<int:requisition_id>/product", methods=["POST"], endpoint="upload_purchase_product")
    @login_required
    @json_action("System error while uploading product details")
    def upload_purchase_product(requisition_id: int):
        data = payload()
        product = service.build_product(
            product_name=data.get("product_name", ""),
            brand_name=data.get("brand_name", ""),
            serial_no=data.get("serial_no", ""),
            warranty=data.get("warranty", ""),
            condition=data.get("condition") or "new",
            specification=data.get("specification", ""),
            quantity=data.get("quantity") or 1,
            price=data.get("price"),
            shop_contact=data.get("shop_contact", ""),
        )
        req = service.upload_product(
            current_role=current_role(),
            user_id=current_user_id(),
            requisition_id=requisition_id,
            product=product,
        )
        return ok(req, "Product details uploaded")

    @app.route("/api/purchases/<int:requisition_id>/verify", methods=["POST"], endpoint="verify_purchase")
    @admin_required
    @json_action("System error while verifying purchase")
    def verify_purchase(requisition_id: int):
        data = payload()
        action = str(data.get("action", "")).strip().lower()
        if action not in {"approve", "reject"}:
            raise ValidationError("Action must be approve or reject")
        approve = action == "approve"
        req = service.final_verify(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            requisition_id=requisition_id,
            approve=approve,
            notes=data.get("notes", ""),
        )
        return ok(req, "Purchase completed" if approve else "Product details sent back")
