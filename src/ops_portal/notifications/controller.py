from __future__ import annotations

from flask import Flask, request

from ..common.datetime_utils import to_iso
from ..common.web import current_role, current_user_id, json_action, login_required, ok, payload
from ..container import Container


def register(app: Flask, container: Container) -> None:
    notifications = container.notification_service
    badges = container.badge_service

    @app.route("/api/notifications", methods=["GET"], endpoint="list_notifications")
    @login_required
    @json_action("Failed to load notifications")
    def list_notifications():
        user_id = current_user_id()
        unviewed_only = request.args.get("unviewed") in {"1", "true"}
        items = container.cache.get_or_load(
            ("all-notifications", user_id, unviewed_only),
            lambda: list(notifications.list_for_user(user_id=user_id, unviewed_only=unviewed_only)),
        )
        return ok(items)

    @app.route("/api/notifications/unviewed-count", methods=["GET"], endpoint="notification_count")
    @login_required
    @json_action("Failed to load notification count")
    def notification_count():
        user_id = current_user_id()
        n = container.cache.get_or_load(
            ("notification-count", user_id), lambda: notifications.unviewed_count(user_id=user_id)
        )
        return ok({"count": n})

    @app.route("/api/notifications/<int:notification_id>/viewed", methods=["POST"], endpoint="mark_notification_viewed")
    @login_required
    @json_action("Failed to update notification")
    def mark_notification_viewed(notification_id: int):
        notifications.mark_viewed(user_id=current_user_id(), notification_id=notification_id)
        return ok(message="Notification marked as viewed")

    @app.route("/api/notifications/viewed", methods=["POST"], endpoint="mark_all_notifications_viewed")
    @login_required
    @json_action("Failed to update notifications")
    def mark_all_notifications_viewed():
        n = notifications.mark_all_viewed(user_id=current_user_id())
        return ok({"updated": n}, "All notifications marked as viewed")

    @app.route("/api/notifications/badges", methods=["GET"], endpoint="notification_badges")
    @login_required
    @json_action("Failed to load badges")
    def notification_badges():
        role = current_role()
        user_id = current_user_id()
        data = {
            name: badges.badge(user_id=user_id, role=role, category=name) for name in badges.categories_for(role)
        }
        return ok(data)

    @app.route("/api/notifications/badges/<category>", methods=["GET"], endpoint="notification_badge")
    @login_required
    @json_action("Failed to load badge")
    def notification_badge(category: str):
        return ok(badges.badge(user_id=current_user_id(), role=current_role(), category=category))

    @app.route("/api/notifications/badges/<category>/open", methods=["POST"], endpoint="open_notification_dropdown")
    @login_required
    @json_action("Failed to update badge")
    def open_notification_dropdown(category: str):
        at = badges.open_dropdown(user_id=current_user_id(), role=current_role(), category=category)
        return ok({"category": category, "last_viewed": to_iso(at)})

    @app.route("/api/notifications/last-viewed/<category>", methods=["GET"], endpoint="get_last_viewed")
    @login_required
    @json_action("Failed to load last viewed time")
    def get_last_viewed(category: str):
        at = badges.get_last_viewed(user_id=current_user_id(), role=current_role(), category=category)
        return ok({"category": category, "last_viewed": to_iso(at)})

    @app.route("/api/notifications/last-viewed/<category>", methods=["PUT"], endpoint="set_last_viewed")
    @login_required
    @json_action("Failed to save last viewed time")
    def set_last_viewed(category: str):
        at = badges.set_last_viewed(
            user_id=current_user_id(),
            role=current_role(),
            category=category,
            viewed_at=payload().get("last_viewed"),
        )
        return ok({"category": category, "last_viewed": to_iso(at)})
