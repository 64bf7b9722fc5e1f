from __future__ import annotations

import json
from dataclasses import replace

import httpx
import pytest

from ops_portal.core.enums import ChangeEvent, Role
from ops_portal.core.exceptions import ValidationError
from ops_portal.email.client import EmailNotifier
from ops_portal.notifications.fanout import Fanout
from ops_portal.notifications.model import Notification
from ops_portal.notifications.service import NotificationService
from ops_portal.sync.feed import ChangeFeed
from ops_portal.users.model import User


def _user(uid, name, role, email=None):
    return User(user_id=uid, full_name=name, username=name.lower(), password_hash="x", role=role, email=email)


USERS = {
    1: _user(1, "Admin", Role.ADMIN, "admin@example.com"),
    2: _user(2, "Lead", Role.ADMIN, "lead@example.com"),
    7: _user(7, "Asha", Role.STAFF, "asha@example.com"),
    8: _user(8, "Binu", Role.STAFF),
}


class FakeUsersRepo:
    def get_by_id(self, user_id):
        return USERS.get(int(user_id))

    def list_by_role(self, role, *, active_only=True, branch=None):
        return [u for u in USERS.values() if u.role == role]


class FakeNotifications:
    def __init__(self):
        self.rows = {}
        self._next = 1

    def create(self, *, user_id, type, title, message, reference_id, reference_table, metadata):
        nid = self._next
        self._next += 1
        self.rows[nid] = Notification(
            notification_id=nid,
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            reference_id=reference_id,
            reference_table=reference_table,
            metadata=metadata or {},
        )
        return nid

    def list_for_user(self, user_id, *, unviewed_only=False, limit=50):
        rows = [n for n in self.rows.values() if n.user_id == user_id and not (unviewed_only and n.is_viewed)]
        return rows[:limit]

    def count_unviewed(self, user_id):
        return len(self.list_for_user(user_id, unviewed_only=True))

    def mark_viewed(self, *, notification_id, user_id):
        n = self.rows.get(notification_id)
        if not n or n.user_id != user_id:
            return False
        self.rows[notification_id] = replace(n, is_viewed=True)
        return True

    def mark_all_viewed(self, user_id):
        ids = [n.notification_id for n in self.list_for_user(user_id, unviewed_only=True)]
        for nid in ids:
            self.mark_viewed(notification_id=nid, user_id=user_id)
        return len(ids)


@pytest.fixture()
def feed_events():
    feed = ChangeFeed()
    events = []
    feed.subscribe("notifications", events.append)
    feed.subscribe("support_tickets", events.append)
    return feed, events


@pytest.fixture()
def service(feed_events):
    feed, _ = feed_events
    return NotificationService(FakeNotifications(), FakeUsersRepo(), feed)


def test_notify_admins_inserts_one_row_per_admin(service, feed_events):
    _, events = feed_events
    admins = service.notify_admins(
        type="maintenance_request", title="New request", message="Branch A", reference_id=5, reference_table="maintenance_requests"
    )

    assert [a.user_id for a in admins] == [1, 2]
    assert service.unviewed_count(user_id=1) == 1
    assert service.unviewed_count(user_id=2) == 1
    assert service.unviewed_count(user_id=7) == 0
    assert [e.event for e in events] == [ChangeEvent.INSERT, ChangeEvent.INSERT]


def test_notify_requires_type_and_title(service):
    with pytest.raises(ValidationError):
        service.notify(user_id=7, type="", title="x", message="")
    with pytest.raises(ValidationError):
        service.notify(user_id=7, type="task", title="  ", message="")


def test_mark_viewed_is_scoped_to_owner(service):
    nid = service.notify(user_id=7, type="task", title="Task assigned", message="")

    with pytest.raises(ValidationError):
        service.mark_viewed(user_id=8, notification_id=nid)

    service.mark_viewed(user_id=7, notification_id=nid)
    assert service.unviewed_count(user_id=7) == 0


def test_mark_all_viewed_only_emits_when_something_changed(service, feed_events):
    _, events = feed_events
    service.notify(user_id=7, type="task", title="One", message="")
    service.notify(user_id=7, type="task", title="Two", message="")
    events.clear()

    assert service.mark_all_viewed(user_id=7) == 2
    assert service.mark_all_viewed(user_id=7) == 0
    assert len(events) == 1
    assert service.list_for_user(user_id=7, unviewed_only=True) == []


def _recording_notifier(sent, status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        sent.append((request.url.path, json.loads(request.content)))
        return httpx.Response(status, json={"success": status < 400})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    return EmailNotifier("http://portal.local", client)


def test_fanout_emails_admins_once_each_and_skips_users_without_email(service, feed_events):
    feed, events = feed_events
    sent = []
    fanout = Fanout(service, FakeUsersRepo(), _recording_notifier(sent), feed)

    fanout.changed("support_tickets", ChangeEvent.INSERT, 3, {"ticket_no": "ST-2026-0001"})
    n = fanout.email_admins("support", "new_ticket", {"ticket_no": "ST-2026-0001"})

    assert n == 2
    assert {p["adminEmail"] for _, p in sent} == {"admin@example.com", "lead@example.com"}
    assert all(path == "/api/email/send-support-notification" for path, _ in sent)
    assert events[-1].new == {"ticket_no": "ST-2026-0001"}

    sent.clear()
    assert fanout.email_user("support", "resolved", {"ticket_no": "ST-2026-0001"}, 8) is False
    assert fanout.email_user("support", "resolved", {"ticket_no": "ST-2026-0001"}, 7, adminResponse="done") is True
    assert sent[0][1]["staffEmail"] == "asha@example.com"
    assert sent[0][1]["adminResponse"] == "done"


def test_fanout_email_failure_does_not_raise(service, feed_events):
    feed, _ = feed_events
    sent = []
    fanout = Fanout(service, FakeUsersRepo(), _recording_notifier(sent, status=500), feed)

    assert fanout.email_admins("support", "new_ticket", {"ticket_no": "ST-2026-0002"}) == 0
    assert len(sent) == 2


def test_fanout_notify_user_ignores_missing_user(service):
    fanout = Fanout(service, FakeUsersRepo(), EmailNotifier(""), ChangeFeed())
    assert fanout.notify_user(None, type="t", title="x", message="", reference_id=None, reference_table="tasks") is None
    assert fanout.notify_admins(type="t", title="x", message="", reference_id=None, reference_table="tasks") == 2
