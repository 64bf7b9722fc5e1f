from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ops_portal.common.datetime_utils import parse_timestamp
from ops_portal.core.constants import DEFAULT_LIST_LIMIT
from ops_portal.core.enums import RequestStatus, Role
from ops_portal.core.exceptions import AuthorizationError, ValidationError
from ops_portal.maintenance.service import MaintenanceService
from ops_portal.notifications.badge import BadgeService, count_new
from ops_portal.sync.broadcast import BroadcastChannel
from ops_portal.sync.hub import NOTIFICATIONS_CLEARED


class FakeLastViewed:
    def __init__(self):
        self.values = {}

    def get(self, *, user_id, category):
        return self.values.get((user_id, category))

    def set(self, *, user_id, category, viewed_at):
        self.values[(user_id, category)] = viewed_at


def _rec(status, created, updated=None, owner=7, **extra):
    return {"status": status, "created_at": created, "updated_at": updated or created, "staff_id": owner, **extra}


def test_parse_timestamp_treats_bare_strings_as_utc():
    assert parse_timestamp("2026-03-01 10:00:00") == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert parse_timestamp("2026-03-01T10:00:00+05:30") == datetime(2026, 3, 1, 4, 30, tzinfo=timezone.utc)
    assert parse_timestamp("2026-03-01T10:00:00Z") == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert parse_timestamp("") is None
    with pytest.raises(ValidationError):
        parse_timestamp("yesterday at noon")


def test_count_new_without_last_viewed_counts_all_pending():
    records = [
        _rec("pending", "2026-03-01T10:00:00"),
        _rec(RequestStatus.PENDING, "2026-03-02T10:00:00"),
        _rec("approved", "2026-03-03T10:00:00"),
    ]
    assert count_new(records, None) == 2


def test_count_new_only_counts_after_last_viewed():
    records = [
        _rec("pending", "2026-03-01T10:00:00"),
        _rec("pending", "2026-03-02T10:00:00"),
        _rec("pending", None),
    ]
    assert count_new(records, "2026-03-01T12:00:00Z") == 1
    assert count_new(records, "2026-03-05T00:00:00Z") == 0


def test_count_new_compares_offset_timestamps_in_utc():
    # 15:00+05:30 is 09:30 UTC, before the 10:00 UTC record
    records = [_rec("pending", "2026-03-01T10:00:00")]
    assert count_new(records, "2026-03-01T15:00:00+05:30") == 1


@pytest.fixture()
def badges():
    admin_records = {
        "maintenance": [_rec("pending", "2026-03-01T10:00:00"), _rec("approved", "2026-03-01T11:00:00")],
        "purchase": [_rec("pending", "2026-03-02T10:00:00")],
        "scrap": [],
        "cashbook": [{"status": "pending", "created_at": "2026-03-02T09:00:00"}],
        "support": [_rec("open", "2026-03-02T09:00:00"), _rec("resolved", "2026-03-02T09:00:00")],
    }
    staff_records = {
        "maintenance": [
            _rec("approved", "2026-03-01T10:00:00", "2026-03-03T10:00:00", owner=7),
            _rec("pending", "2026-03-01T10:00:00", owner=7),
        ],
        "task": [_rec("in_progress", "2026-03-01T10:00:00", "2026-03-01T10:00:00", owner=7)],
    }
    calls = []

    def loader(domain):
        def load(statuses, owner_id):
            calls.append((domain, owner_id))
            source = staff_records if owner_id is not None else admin_records
            return [r for r in source.get(domain, []) if r["status"] in statuses]

        return load

    domains = ["maintenance", "purchase", "scrap", "asset", "task", "reschedule", "cashbook", "support"]
    channel = BroadcastChannel("test")
    svc = BadgeService({d: loader(d) for d in domains}, FakeLastViewed(), channel)
    return svc, channel, calls


def test_admin_maintenance_badge_sums_sources(badges):
    svc, _, _ = badges
    b = svc.badge(user_id=1, role=Role.ADMIN, category="maintenance")

    assert b["total_pending"] == 2
    assert b["new_count"] == 2
    assert b["per_source"]["maintenance"] == {"total": 1, "new": 1}
    assert b["last_viewed"] is None


def test_admin_notifications_count_each_source_in_its_statuses(badges):
    svc, _, _ = badges
    b = svc.badge(user_id=1, role=Role.ADMIN, category="admin-notifications")

    assert b["per_source"]["cashbook"]["total"] == 1
    assert b["per_source"]["support"]["total"] == 1
    assert b["total_pending"] == 2


def test_opening_dropdown_clears_new_count_and_broadcasts(badges):
    svc, channel, _ = badges
    seen = []
    channel.subscribe(seen.append)

    svc.open_dropdown(
        user_id=1, role=Role.ADMIN, category="maintenance", now=datetime(2026, 3, 4, tzinfo=timezone.utc)
    )
    b = svc.badge(user_id=1, role=Role.ADMIN, category="maintenance")

    assert b["new_count"] == 0
    assert b["total_pending"] == 2
    assert seen[0].type == NOTIFICATIONS_CLEARED
    assert seen[0].data["category"] == "maintenance"
    assert seen[0].data["timestamp"] == "2026-03-04T00:00:00+00:00"
    assert "last_viewed" not in seen[0].data


def test_staff_badge_loads_own_records_and_uses_updated_at(badges):
    svc, _, calls = badges
    svc.set_last_viewed(user_id=7, role=Role.STAFF, category="staff-notifications", viewed_at="2026-03-02T00:00:00Z")

    b = svc.badge(user_id=7, role=Role.STAFF, category="staff-notifications")

    assert ("maintenance", 7) in calls
    assert b["per_source"]["maintenance"] == {"total": 1, "new": 1}
    assert b["per_source"]["task"] == {"total": 1, "new": 0}


def test_categories_are_role_bound(badges):
    svc, _, _ = badges
    with pytest.raises(AuthorizationError):
        svc.badge(user_id=7, role=Role.STAFF, category="maintenance")
    with pytest.raises(ValidationError):
        svc.badge(user_id=1, role=Role.ADMIN, category="nope")
    assert svc.categories_for(Role.STAFF) == ["staff-notifications"]


class ManyRowsMaintenanceRepo:
    """Rows come back newest first and capped, like the list query."""

    def __init__(self, rows):
        self.rows = rows

    def list(self, *, status=None, staff_id=None, branch=None, limit=200):
        return sorted(self.rows, key=lambda r: r["created_at"], reverse=True)[:limit]

    def badge_rows(self, *, statuses, owner_id=None):
        wanted = set(statuses)
        return [r for r in self.rows if r["status"] in wanted and (owner_id is None or r["staff_id"] == owner_id)]

    def count_by_status(self, status):
        return sum(1 for r in self.rows if r["status"] == status.value)


def test_badge_counts_pending_rows_older_than_the_list_window():
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    rows = [_rec("pending", start + timedelta(minutes=i)) for i in range(5)]
    rows += [_rec("approved", start + timedelta(days=1, minutes=i)) for i in range(DEFAULT_LIST_LIMIT)]
    maintenance = MaintenanceService(ManyRowsMaintenanceRepo(rows), None, None)

    listed = maintenance.list(current_role=Role.ADMIN, user_id=1)
    assert len(listed) == DEFAULT_LIST_LIMIT
    assert all(r["status"] == "approved" for r in listed)

    svc = BadgeService({"maintenance": maintenance.badge_rows}, FakeLastViewed())
    b = svc.badge(user_id=1, role=Role.ADMIN, category="maintenance")

    assert b["per_source"]["maintenance"] == {"total": 5, "new": 5}
    assert b["new_count"] == maintenance.pending_count() == 5
