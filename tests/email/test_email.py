from __future__ import annotations

import json

import httpx
import pytest

from ops_portal.core.exceptions import NotFoundError, ValidationError
from ops_portal.email.client import EmailNotifier, endpoint_path
from ops_portal.email.mailer import LogMailer, SmtpMailer, SmtpSettings, build_mailer
from ops_portal.email.service import EmailDeliveryError, EmailDispatchService


class FailingMailer:
    def send(self, *, to_email, subject, body):
        return False, "connection refused"


def test_endpoint_path_keeps_hyphenated_domains():
    assert endpoint_path("cash-transaction") == "/api/email/send-cash-transaction-notification"


def test_disabled_notifier_sends_nothing():
    calls = []
    client = httpx.Client(transport=httpx.MockTransport(lambda r: calls.append(r) or httpx.Response(200)))
    assert EmailNotifier("", client).send("task", {"type": "assigned"}) is False
    assert calls == []


def test_notifier_posts_json_and_reports_transport_errors():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        if len(bodies) == 2:
            raise httpx.ConnectError("down", request=request)
        return httpx.Response(200)

    notifier = EmailNotifier("http://portal.local/", httpx.Client(transport=httpx.MockTransport(handler)))

    assert notifier.send("task", {"type": "assigned", "staffEmail": "a@x.io"}) is True
    assert notifier.send("task", {"type": "assigned", "staffEmail": "b@x.io"}) is False
    assert bodies[0]["staffEmail"] == "a@x.io"


def test_send_to_each_skips_duplicates_and_blanks():
    seen = []
    client = httpx.Client(
        transport=httpx.MockTransport(lambda r: seen.append(json.loads(r.content)["adminEmail"]) or httpx.Response(200))
    )
    n = EmailNotifier("http://portal.local", client).send_to_each(
        "maintenance", {"type": "new_request"}, field="adminEmail", emails=["a@x.io", "", "a@x.io", "b@x.io"]
    )
    assert n == 2
    assert seen == ["a@x.io", "b@x.io"]


def test_dispatch_renders_subject_and_notes():
    mailer = LogMailer()
    svc = EmailDispatchService(mailer)

    out = svc.dispatch(
        "support",
        {
            "type": "resolved",
            "staffEmail": "asha@example.com",
            "adminResponse": "Replaced the cable",
            "requestData": {"ticket_no": "ST-2026-0004", "subject": "Printer offline", "status": "resolved"},
        },
    )

    assert out["to"] == "asha@example.com"
    assert mailer.sent[0]["subject"] == "Support ticket resolved #ST-2026-0004"
    assert "Subject: Printer offline" in mailer.sent[0]["body"]
    assert "Notes: Replaced the cable" in mailer.sent[0]["body"]


def test_dispatch_validates_domain_type_and_recipient():
    svc = EmailDispatchService(LogMailer())
    with pytest.raises(NotFoundError):
        svc.dispatch("payroll", {"type": "x", "requestData": {}})
    with pytest.raises(ValidationError):
        svc.dispatch("task", {"type": "assigned"})
    with pytest.raises(ValidationError):
        svc.dispatch("task", {"type": "archived", "requestData": {}})
    with pytest.raises(ValidationError):
        svc.dispatch("task", {"type": "assigned", "requestData": {}, "staffEmail": "not-an-address"})


def test_dispatch_rejects_non_object_bodies_and_non_string_recipients():
    svc = EmailDispatchService(LogMailer())
    with pytest.raises(ValidationError, match="JSON object"):
        svc.dispatch("task", [{"type": "assigned"}])
    with pytest.raises(ValidationError, match="staffEmail is required"):
        svc.dispatch("task", {"type": "assigned", "requestData": {}, "staffEmail": 42})
    with pytest.raises(ValidationError):
        svc.dispatch("task", {"type": "assigned", "requestData": {}, "staffEmail": ["a@x.io"]})


def test_alert_routes_render_for_admins():
    mailer = LogMailer()
    svc = EmailDispatchService(mailer)

    svc.dispatch(
        "low-balance",
        {"type": "alert", "adminEmail": "boss@x.io", "requestData": {"branch": "Kochi", "balance": 420.0}},
    )
    svc.dispatch(
        "stationary-low-stock",
        {"type": "alert", "adminEmail": "boss@x.io", "requestData": {"item_id": 5, "item_name": "Pens", "quantity": 1}},
    )

    assert mailer.sent[0]["subject"] == "Low cash balance alert #Kochi"
    assert "Balance: 420.0" in mailer.sent[0]["body"]
    assert mailer.sent[1]["subject"] == "Low stock alert #5"
    assert "Item name: Pens" in mailer.sent[1]["body"]


def test_dispatch_raises_when_mailer_fails():
    svc = EmailDispatchService(FailingMailer())
    with pytest.raises(EmailDeliveryError):
        svc.dispatch("scrap", {"type": "approved", "submitterEmail": "s@x.io", "requestData": {"scrap_id": 3}})


def test_build_mailer_falls_back_to_log_mailer():
    assert isinstance(build_mailer(SmtpSettings(host="")), LogMailer)
    assert isinstance(build_mailer(SmtpSettings(host="smtp.local", sender="ops@x.io")), SmtpMailer)
