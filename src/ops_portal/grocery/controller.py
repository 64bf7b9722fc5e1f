from __future__ import annotations

from flask import Flask, request, session

from ..common.web import admin_required, current_role, current_user_id, json_action, login_required, ok, payload
from ..container import Container


def register(app: Flask, container: Container) -> None:
    service = container.grocery_service

    @app.route("/api/grocery", methods=["GET"], endpoint="list_grocery")
    @login_required
    @json_action("Failed to load stationary requests")
    def list_grocery():
        role, user_id = current_role(), current_user_id()
        status = request.args.get("status") or None
        branch = request.args.get("branch") or None
        items = container.cache.get_or_load(
            ("grocery-requests", role.value, user_id, status, branch),
            lambda: list(service.list(current_role=role, user_id=user_id, status=status, branch=branch)),
        )
        return ok(items)

    @app.route("/api/grocery", methods=["POST"], endpoint="create_grocery")
    @login_required
    @json_action("System error while submitting stationary request")
    def create_grocery():
        data = payload()
        grocery_id = service.create(
            current_role=current_role(),
            user_id=current_user_id(),
            branch=data.get("branch") or session.get("branch") or "",
            items=data.get("items"),
            notes=data.get("notes", ""),
        )
        return ok({"grocery_id": grocery_id}, "Stationary request submitted", 201)

    @app.route("/api/grocery/<int:grocery_id>", methods=["PUT"], endpoint="update_grocery")
    @login_required
    @json_action("System error while updating stationary request")
    def update_grocery(grocery_id: int):
        data = payload()
        service.update(
            current_role=current_role(),
            user_id=current_user_id(),
            grocery_id=grocery_id,
            items=data.get("items"),
            notes=data.get("notes", ""),
        )
        return ok(message="Stationary request updated")

    @app.route("/api/grocery/<int:grocery_id>", methods=["DELETE"], endpoint="delete_grocery")
    @login_required
    @json_action("System error while deleting stationary request")
    def delete_grocery(grocery_id: int):
        service.delete(current_role=current_role(), user_id=current_user_id(), grocery_id=grocery_id)
        return ok(message="Stationary request deleted")

    @app.route("/api/grocery/pending-count", methods=["GET"], endpoint="grocery_pending_count")
    @admin_required
    @json_action("Failed to load pending count")
    def grocery_pending_count():
        n = container.cache.get_or_load(("grocery-pending-count",), service.pending_count)
        return ok({"count": n})

    @app.route("/api/grocery/<int:grocery_id>/approve", methods=["POST"], endpoint="approve_grocery")
    @admin_required
    @json_action("System error while approving stationary request")
    def approve_grocery(grocery_id: int):
        req = service.approve(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            grocery_id=grocery_id,
            admin_notes=payload().get("admin_notes", ""),
        )
        return ok(req, "Stationary request approved")

    @app.route("/api/grocery/<int:grocery_id>/reject", methods=["POST"], endpoint="reject_grocery")
    @admin_required
    @json_action("System error while rejecting stationary request")
    def reject_grocery(grocery_id: int):
        data = payload()
        req = service.reject(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            grocery_id=grocery_id,
            rejection_reason=data.get("rejection_reason", ""),
            admin_notes=data.get("admin_notes", ""),
        )
        return ok(req, "Stationary request rejected")

    @app.route("/api/stationary", methods=["GET"], endpoint="list_stationary")
    @login_required
    @json_action("Failed to load stationary stock")
    def list_stationary():
        branch = request.args.get("branch") or session.get("branch") or ""
        items = container.cache.get_or_load(
            ("stationary-items", branch),
            lambda: list(service.stationary(branch=branch)),
        )
        return ok(items)

    @app.route("/api/stationary/<int:item_id>/buy", methods=["POST"], endpoint="buy_stationary")
    @login_required
    @json_action("System error while updating stationary stock")
    def buy_stationary(item_id: int):
        remaining = service.buy_item(
            current_role=current_role(),
            user_id=current_user_id(),
            item_id=item_id,
            quantity=payload().get("quantity"),
            staff_name=session.get("name") or "",
        )
        return ok({"item_id": item_id, "quantity": remaining}, "Stock updated")

    @app.route("/api/stationary/<int:item_id>", methods=["DELETE"], endpoint="delete_stationary")
    @login_required
    @json_action("System error while deleting stationary item")
    def delete_stationary(item_id: int):
        service.delete_item(current_role=current_role(), branch=session.get("branch"), item_id=item_id)
        return ok(message="Item deleted")
