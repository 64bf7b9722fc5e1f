from __future__ import annotations

from types import SimpleNamespace

import pytest
from flask import Flask

from ops_portal.core.enums import Role
from ops_portal.core.exceptions import AuthenticationError
from ops_portal.email.controller import register as register_email
from ops_portal.email.mailer import LogMailer
from ops_portal.email.service import EmailDispatchService
from ops_portal.notifications.badge import BadgeService
from ops_portal.notifications.controller import register as register_notifications
from ops_portal.support.controller import register as register_support
from ops_portal.support.model import SupportTicket
from ops_portal.support.service import SupportService
from ops_portal.sync.broadcast import BroadcastChannel
from ops_portal.sync.cache import QueryCache
from ops_portal.sync.controller import register as register_sync
from ops_portal.sync.hub import NOTIFICATIONS_CLEARED
from ops_portal.users.controller import register as register_users
from ops_portal.users.service import SessionUser


class FakeAuth:
    def authenticate(self, username, password):
        if (username, password) == ("asha", "secret"):
            return SessionUser(user_id=7, full_name="Asha", role=Role.STAFF, email=None, branch="Kochi")
        raise AuthenticationError("Invalid username or password")


class FakeAttendance:
    def __init__(self):
        self.calls = []

    def mark_login(self, *, staff_id, now=None):
        self.calls.append(("login", staff_id))

    def mark_logout(self, *, staff_id, now=None):
        self.calls.append(("logout", staff_id))


class SilentFanout:
    def changed(self, *a, **kw):
        pass

    def notify_user(self, *a, **kw):
        pass

    def notify_admins(self, **kw):
        return 0

    def email_admins(self, *a, **kw):
        return 0

    def email_user(self, *a, **kw):
        return False


class FakeTickets:
    def __init__(self):
        self.items = {}

    def list_ticket_numbers(self, prefix):
        return [t.ticket_no for t in self.items.values()]

    def create(self, *, ticket_no, staff_id, category, subject, description, priority):
        tid = len(self.items) + 1
        self.items[tid] = SupportTicket(
            ticket_id=tid,
            ticket_no=ticket_no,
            staff_id=staff_id,
            subject=subject,
            description=description,
            category=category,
            priority=priority,
        )
        return tid

    def get(self, ticket_id):
        return self.items.get(ticket_id)

    def list(self, *, staff_id=None, status=None, limit=100):
        return [t for t in self.items.values() if staff_id is None or t.staff_id == staff_id]

    def count_by_status(self, status):
        return sum(1 for t in self.items.values() if t.status == status)


@pytest.fixture()
def ctx():
    mailer = LogMailer()
    container = SimpleNamespace(
        auth_service=FakeAuth(),
        attendance_service=FakeAttendance(),
        user_service=None,
        support_service=SupportService(FakeTickets(), SilentFanout()),
        email_dispatch=EmailDispatchService(mailer),
        cache=QueryCache(),
    )
    app = Flask(__name__)
    app.secret_key = "test"
    register_users(app, container)
    register_support(app, container)
    register_email(app, container)
    return app.test_client(), container, mailer


def _sign_in(client, user_id, role):
    with client.session_transaction() as s:
        s["user_id"] = user_id
        s["role"] = role


def test_login_marks_attendance_for_staff(ctx):
    client, container, _ = ctx

    bad = client.post("/api/auth/login", json={"username": "asha", "password": "nope"})
    assert bad.status_code == 401

    res = client.post("/api/auth/login", json={"username": "asha", "password": "secret"})
    assert res.status_code == 200
    assert res.get_json()["data"]["role"] == "staff"
    assert container.attendance_service.calls == [("login", 7)]

    client.post("/api/auth/logout")
    assert container.attendance_service.calls[-1] == ("logout", 7)


def test_guards_answer_401_and_403(ctx):
    client, _, _ = ctx
    assert client.get("/api/support/tickets").status_code == 401

    _sign_in(client, 7, "staff")
    res = client.get("/api/support/tickets/open-count")
    assert res.status_code == 403
    assert res.get_json()["success"] is False


def test_ticket_create_and_cached_list(ctx):
    client, container, _ = ctx
    _sign_in(client, 7, "staff")

    assert client.get("/api/support/tickets").get_json()["data"] == []

    res = client.post("/api/support/tickets", json={"title": "VPN drops", "description": "Every 10 minutes"})
    assert res.status_code == 201
    body = res.get_json()
    assert body["data"]["ticket_no"].startswith("ST-")
    assert body["data"]["category"] == "other"

    # nothing invalidated the cached list in this setup
    assert client.get("/api/support/tickets").get_json()["data"] == []
    container.cache.invalidate_domain("support")
    assert len(client.get("/api/support/tickets").get_json()["data"]) == 1


def test_domain_errors_map_to_status_codes(ctx):
    client, _, _ = ctx
    _sign_in(client, 7, "staff")
    res = client.post("/api/support/tickets", json={"subject": "", "description": "x"})
    assert res.status_code == 400
    assert res.get_json()["message"] == "Subject is required"

    _sign_in(client, 1, "admin")
    res = client.post("/api/support/tickets/42/resolve", json={"admin_response": "done"})
    assert res.status_code == 404


def test_email_endpoint_sends_through_mailer(ctx):
    client, _, mailer = ctx
    res = client.post(
        "/api/email/send-cash-transaction-notification",
        json={
            "type": "approved",
            "staffEmail": "asha@example.com",
            "requestData": {"voucher_no": "CO014", "branch": "Kochi"},
        },
    )

    assert res.status_code == 200
    assert mailer.sent[0]["subject"] == "Cash transaction approved #CO014"
    assert client.post("/api/email/send-payroll-notification", json={}).status_code == 404


def test_email_endpoint_rejects_bad_bodies(ctx):
    client, _, mailer = ctx
    url = "/api/email/send-cash-transaction-notification"

    res = client.post(url, json=[{"type": "approved"}])
    assert res.status_code == 400
    assert res.get_json()["message"] == "Request body must be a JSON object"

    res = client.post(url, json={"type": "approved", "staffEmail": ["asha@example.com"], "requestData": {}})
    assert res.status_code == 400
    assert mailer.sent == []


class FakeLastViewed:
    def __init__(self):
        self.values = {}

    def get(self, *, user_id, category):
        return self.values.get((user_id, category))

    def set(self, *, user_id, category, viewed_at):
        self.values[(user_id, category)] = viewed_at


@pytest.fixture()
def sync_ctx():
    channel = BroadcastChannel("test-sync")
    container = SimpleNamespace(
        channel=channel,
        cache=QueryCache(),
        notification_service=None,
        badge_service=BadgeService({}, FakeLastViewed(), channel),
    )
    app = Flask(__name__)
    app.secret_key = "test"
    register_sync(app, container)
    register_notifications(app, container)
    return app.test_client(), channel


def test_sync_trigger_reports_last_post(sync_ctx):
    client, channel = sync_ctx
    assert client.get("/api/sync/trigger").status_code == 401

    _sign_in(client, 1, "admin")
    assert client.get("/api/sync/trigger").get_json()["data"]["data-sync-trigger"] is None

    msg = channel.post_message("task-updated", {"record_id": 3})
    data = client.get("/api/sync/trigger").get_json()["data"]
    assert data["data-sync-trigger"] == msg.timestamp == channel.last_trigger


def test_event_stream_relays_posts_and_unsubscribes_on_close(sync_ctx):
    client, channel = sync_ctx
    _sign_in(client, 7, "staff")

    res = client.get("/api/sync/events", buffered=False)
    assert res.status_code == 200
    assert res.mimetype == "text/event-stream"

    chunks = iter(res.response)
    first = next(chunks).decode()
    assert first.startswith("event: ready\n")
    assert channel.listener_count == 1

    channel.post_message("maintenance-updated", {"record_id": 12})
    second = next(chunks).decode()
    assert second.startswith("event: maintenance-updated\n")
    assert '"record_id": 12' in second

    res.close()
    assert channel.listener_count == 0


def test_last_viewed_round_trip(sync_ctx):
    client, _ = sync_ctx
    _sign_in(client, 7, "staff")
    url = "/api/notifications/last-viewed/staff-notifications"

    assert client.get(url).get_json()["data"]["last_viewed"] is None

    res = client.put(url, json={"last_viewed": "2026-03-01T10:00:00Z"})
    assert res.status_code == 200
    assert res.get_json()["data"]["last_viewed"] == "2026-03-01T10:00:00+00:00"
    assert client.get(url).get_json()["data"]["last_viewed"] == "2026-03-01T10:00:00+00:00"

    assert client.get("/api/notifications/last-viewed/maintenance").status_code == 403
    assert client.put("/api/notifications/last-viewed/nope", json={}).status_code == 400


def test_opening_a_badge_dropdown_broadcasts_the_clear(sync_ctx):
    client, channel = sync_ctx
    _sign_in(client, 1, "admin")
    seen = []
    channel.subscribe(seen.append)

    res = client.post("/api/notifications/badges/maintenance/open")
    assert res.status_code == 200
    opened_at = res.get_json()["data"]["last_viewed"]

    assert seen[0].type == NOTIFICATIONS_CLEARED
    assert seen[0].data == {"category": "maintenance", "user_id": 1, "timestamp": opened_at}

    badge = client.get("/api/notifications/badges/maintenance").get_json()["data"]
    assert badge["last_viewed"] == opened_at
    assert badge["new_count"] == 0
