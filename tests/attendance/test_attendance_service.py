from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest

from ops_portal.attendance.model import AttendanceRecord
from ops_portal.attendance.service import AttendanceService, session_minutes
from ops_portal.core.enums import AttendanceStatus, Role
from ops_portal.core.exceptions import AuthorizationError, NotFoundError
from ops_portal.users.model import User
from ops_portal.users.service import UserService

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeUsersRepo:
    def __init__(self, staff_count=4):
        self._staff = [
            User(user_id=i, full_name=f"S{i}", username=f"s{i}", password_hash="x", role=Role.STAFF)
            for i in range(1, staff_count + 1)
        ]

    def get_by_id(self, user_id):
        return next((u for u in self._staff if u.user_id == int(user_id)), None)

    def list_by_role(self, role, *, active_only=True, branch=None):
        return list(self._staff) if role == Role.STAFF else []


class FakeFanout:
    def __init__(self):
        self.changes = []

    def changed(self, table, event, record_id, new=None):
        self.changes.append((table, event.value, record_id))


class FakeAttendanceRepo:
    def __init__(self):
        self._next_id = 1
        self.items: dict[int, AttendanceRecord] = {}
        self.touches = 0

    def _find(self, staff_id, work_date):
        return next((r for r in self.items.values() if r.staff_id == staff_id and r.work_date == work_date), None)

    def get_for_staff_and_date(self, staff_id, work_date):
        return self._find(staff_id, work_date)

    def create(self, *, staff_id, work_date, now):
        aid = self._next_id
        self._next_id += 1
        self.items[aid] = AttendanceRecord(
            attendance_id=aid,
            staff_id=staff_id,
            work_date=work_date,
            login_time=now,
            logout_time=None,
            status=AttendanceStatus.ACTIVE,
            check_ins=(now,),
            last_activity=now,
        )
        return aid

    def add_check_in(self, *, attendance_id, check_ins, now):
        r = self.items[attendance_id]
        if r.status != AttendanceStatus.LOGGED_OUT:
            return False
        self.items[attendance_id] = replace(
            r,
            login_time=now,
            check_ins=tuple(check_ins),
            status=AttendanceStatus.ACTIVE,
            logout_time=None,
            last_activity=now,
        )
        return True

    def touch(self, *, attendance_id, now):
        self.touches += 1
        self.items[attendance_id] = replace(self.items[attendance_id], last_activity=now, status=AttendanceStatus.ACTIVE)
        return True

    def mark_logout(self, *, staff_id, work_date, now):
        r = self._find(staff_id, work_date)
        if not r:
            return False
        self.items[r.attendance_id] = replace(r, logout_time=now, status=AttendanceStatus.LOGGED_OUT)
        return True

    def list(self, *, staff_id=None, start=None, end=None, limit=200):
        rows = [
            r
            for r in self.items.values()
            if (staff_id is None or r.staff_id == staff_id)
            and (start is None or r.work_date >= start)
            and (end is None or r.work_date <= end)
        ]
        return sorted(rows, key=lambda r: r.work_date, reverse=True)[:limit]


@pytest.fixture()
def env():
    repo = FakeAttendanceRepo()
    fanout = FakeFanout()
    svc = AttendanceService(repo, UserService(FakeUsersRepo()), fanout)
    return svc, repo, fanout


def test_first_login_of_day_creates_active_record_with_one_check_in(env):
    svc, repo, fanout = env

    mark = svc.mark_login(staff_id=1, now=T0)

    assert mark.is_new_login
    assert mark.record.status == AttendanceStatus.ACTIVE
    assert mark.record.check_ins == (T0,)
    assert fanout.changes[0] == ("attendance", "INSERT", mark.record.attendance_id)


def test_page_refresh_changes_nothing(env):
    svc, repo, fanout = env
    svc.mark_login(staff_id=1, now=T0)

    mark = svc.mark_login(staff_id=1, now=T0 + timedelta(seconds=10))

    assert not mark.is_new_login and not mark.is_check_in
    assert repo.touches == 0
    assert len(fanout.changes) == 1


def test_activity_refreshes_after_thirty_seconds_without_check_in(env):
    svc, repo, _ = env
    svc.mark_login(staff_id=1, now=T0)

    mark = svc.mark_login(staff_id=1, now=T0 + timedelta(seconds=45))

    assert not mark.is_check_in
    assert repo.touches == 1
    assert mark.record.last_activity == T0 + timedelta(seconds=45)
    assert len(mark.record.check_ins) == 1


def test_login_after_logout_appends_check_in(env):
    svc, _, _ = env
    svc.mark_login(staff_id=1, now=T0)
    svc.mark_logout(staff_id=1, now=T0 + timedelta(hours=1))
    back = T0 + timedelta(hours=2)

    mark = svc.mark_login(staff_id=1, now=back)

    assert mark.is_check_in
    assert mark.record.status == AttendanceStatus.ACTIVE
    assert mark.record.logout_time is None
    assert mark.record.check_ins == (T0, back)
    assert mark.record.login_time == back


def test_quick_relogin_within_a_minute_is_not_a_check_in(env):
    svc, _, _ = env
    svc.mark_login(staff_id=1, now=T0)
    svc.mark_logout(staff_id=1, now=T0 + timedelta(seconds=20))

    mark = svc.mark_login(staff_id=1, now=T0 + timedelta(seconds=40))

    assert not mark.is_check_in
    assert len(mark.record.check_ins) == 1
    # the activity refresh still re-activates the day
    assert mark.record.status == AttendanceStatus.ACTIVE


def test_logout_without_login_is_not_found(env):
    svc, _, _ = env
    with pytest.raises(NotFoundError):
        svc.mark_logout(staff_id=3, now=T0)


def test_today_summary_counts_present_absent_and_logged_out(env):
    svc, _, _ = env
    svc.mark_login(staff_id=1, now=T0)
    svc.mark_login(staff_id=2, now=T0)
    svc.mark_logout(staff_id=2, now=T0 + timedelta(hours=8))

    s = svc.today_summary(now=T0 + timedelta(hours=9))

    assert (s.total_staff, s.present, s.absent, s.logged_out) == (4, 2, 2, 1)


def test_session_minutes_use_logout_or_last_activity():
    active = AttendanceRecord(
        attendance_id=1,
        staff_id=1,
        work_date=date(2026, 3, 2),
        login_time=T0,
        logout_time=None,
        status=AttendanceStatus.ACTIVE,
        last_activity=T0 + timedelta(minutes=95, seconds=30),
    )
    done = replace(active, logout_time=T0 + timedelta(hours=8), status=AttendanceStatus.LOGGED_OUT)

    assert session_minutes(active) == 95
    assert session_minutes(done) == 480
    assert session_minutes(replace(active, last_activity=None)) == 0


def test_history_is_own_unless_admin(env):
    svc, _, _ = env
    svc.mark_login(staff_id=1, now=T0)
    svc.mark_logout(staff_id=1, now=T0 + timedelta(minutes=30))

    rows = svc.history(current_role=Role.STAFF, user_id=1, now=T0)
    assert rows[0].duration_minutes == 30
    assert rows[0].check_in_count == 1

    with pytest.raises(AuthorizationError):
        svc.history(current_role=Role.STAFF, user_id=2, staff_id=1, now=T0)
    assert len(svc.history(current_role=Role.ADMIN, user_id=9, staff_id=1, now=T0)) == 1


def test_export_rows(env):
    svc, _, _ = env
    svc.mark_login(staff_id=1, now=T0)
    svc.mark_login(staff_id=2, now=T0)

    data = svc.export(current_role=Role.ADMIN, user_id=9, start="2026-03-01", end="2026-03-02")

    assert {r["staff_id"] for r in data.rows} == {1, 2}
    assert data.rows[0]["status"] == "active"
    assert data.fieldnames[0] == "work_date"
