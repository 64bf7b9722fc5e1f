from __future__ import annotations

from typing import Any, Mapping

from ..common.logger import get_logger
from ..core.exceptions import NotFoundError, ValidationError
from .mailer import Mailer
from .templates import ROUTES, render

log = get_logger(__name__)


class EmailDeliveryError(Exception):
    """Raised when the mailer could not hand a message off."""


class EmailDispatchService:
    """Backs the ``/api/email/send-<domain>-notification`` endpoints."""

    def __init__(self, mailer: Mailer):
        self._mailer = mailer

    def domains(self) -> list[str]:
        return sorted(ROUTES)

    def dispatch(self, domain: str, body: Mapping[str, Any]) -> dict:
        route = ROUTES.get(domain)
        if not route:
            raise NotFoundError(f"Unknown email notification: {domain}")

        if not isinstance(body, Mapping):
            raise ValidationError("Request body must be a JSON object")

        type_ = body.get("type")
        if not type_ or not isinstance(body.get("requestData"), Mapping):
            raise ValidationError("Missing required fields")

        kind = route.kinds.get(str(type_))
        if not kind:
            raise ValidationError("Invalid notification type")

        raw_email = body.get(kind.recipient_field)
        to_email = raw_email.strip() if isinstance(raw_email, str) else ""
        if not to_email or "@" not in to_email:
            raise ValidationError(f"{kind.recipient_field} is required for {type_} notification")

        subject, text = render(route, kind, body)
        sent, error = self._mailer.send(to_email=to_email, subject=subject, body=text)
        if not sent:
            raise EmailDeliveryError(error or "send failed")

        log.info("email %s/%s sent to %s", domain, type_, to_email)
        return {"domain": domain, "type": type_, "to": to_email, "subject": subject}
