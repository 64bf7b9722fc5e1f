from __future__ import annotations

from flask import Flask, request

from ..common.web import admin_required, current_role, current_user_id, json_action, login_required, ok, payload
from ..container import Container


def register(app: Flask, container: Container) -> None:
    service = container.support_service

    @app.route("/api/support/tickets", methods=["GET"], endpoint="list_support_tickets")
    @login_required
    @json_action("Failed to load support tickets")
    def list_support_tickets():
        role, user_id = current_role(), current_user_id()
        status = request.args.get("status") or None
        items = container.cache.get_or_load(
            ("support-tickets", role.value, user_id, status),
            lambda: list(service.list(current_role=role, user_id=user_id, status=status)),
        )
        return ok(items)

    @app.route("/api/support/tickets", methods=["POST"], endpoint="create_support_ticket")
    @login_required
    @json_action("System error while submitting ticket")
    def create_support_ticket():
        data = payload()
        ticket_id = service.create(
            current_role=current_role(),
            user_id=current_user_id(),
            subject=data.get("subject") or data.get("title", ""),
            description=data.get("description", ""),
            category=data.get("category", ""),
            priority=data.get("priority", ""),
        )
        return ok(service.get(ticket_id), "Support ticket submitted", 201)

    @app.route("/api/support/tickets/open-count", methods=["GET"], endpoint="support_open_count")
    @admin_required
    @json_action("Failed to load open ticket count")
    def support_open_count():
        n = container.cache.get_or_load(("support-tickets", "open-count"), service.open_count)
        return ok({"count": n})

    @app.route("/api/support/tickets/<int:ticket_id>", methods=["PUT"], endpoint="respond_support_ticket")
    @admin_required
    @json_action("System error while updating ticket")
    def respond_support_ticket(ticket_id: int):
        data = payload()
        ticket = service.respond(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            ticket_id=ticket_id,
            status=data.get("status", ""),
            admin_response=data.get("admin_response", ""),
        )
        return ok(ticket, "Ticket updated")

    @app.route("/api/support/tickets/<int:ticket_id>/resolve", methods=["POST"], endpoint="resolve_support_ticket")
    @admin_required
    @json_action("System error while resolving ticket")
    def resolve_support_ticket(ticket_id: int):
        ticket = service.resolve(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            ticket_id=ticket_id,
            admin_response=payload().get("admin_response", ""),
        )
        return ok(ticket, "Ticket resolved")
