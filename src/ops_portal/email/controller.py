from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.logger import get_logger
from ..common.web import json_action, ok
from ..container import Container
from .service import EmailDeliveryError

log = get_logger(__name__)


def register(app: Flask, container: Container) -> None:
    @app.route("/api/email/send-<domain>-notification", methods=["POST"], endpoint="send_email_notification")
    @json_action("Failed to send email notification")
    def send_email_notification(domain: str):
        body = request.get_json(silent=True)
        if body is None:
            body = {}
        try:
            result = container.email_dispatch.dispatch(domain, body)
        except EmailDeliveryError as e:
            log.warning("email endpoint %s failed: %s", domain, e)
            return jsonify({"success": False, "message": "Failed to send email notification"}), 502
        return ok(result, "Email sent")
