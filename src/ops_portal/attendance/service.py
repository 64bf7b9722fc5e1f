from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from ..common.datetime_utils import now_utc, parse_optional_date, to_iso
from ..common.logger import get_logger
from ..core.constants import ACTIVITY_REFRESH_SECONDS, CHECK_IN_MIN_GAP_SECONDS, DEFAULT_ADMIN_LIST_LIMIT
from ..core.enums import AttendanceStatus, ChangeEvent, Role
from ..core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ..notifications.fanout import Fanout
from ..users.service import UserService
from .model import AttendanceHistoryRow, AttendanceRecord, AttendanceSummary
from .repository import AttendanceRepository

log = get_logger(__name__)

TABLE = "attendance"
DEFAULT_HISTORY_DAYS = 30

EXPORT_FIELDS = [
    "work_date",
    "staff_id",
    "staff_name",
    "branch",
    "first_login",
    "login_time",
    "logout_time",
    "check_ins",
    "duration_minutes",
    "status",
]


@dataclass(frozen=True)
class LoginMark:
    """Outcome of a login mark: which of the three paths was taken."""

    record: AttendanceRecord
    is_new_login: bool = False
    is_check_in: bool = False


@dataclass(frozen=True)
class ExportData:
    rows: list[dict]
    fieldnames: list[str]


def session_minutes(record: AttendanceRecord) -> int:
    """Minutes from the latest login to logout, or to the last activity while active."""
    end = record.logout_time or record.last_activity
    if end is None or end < record.login_time:
        return 0
    return int((end - record.login_time).total_seconds() // 60)


class AttendanceService:
    def __init__(self, attendance: AttendanceRepository, users: UserService, fanout: Fanout):
        self._attendance = attendance
        self._users = users
        self._fanout = fanout

    def _today(self, staff_id: int, today: date) -> AttendanceRecord:
        record = self._attendance.get_for_staff_and_date(int(staff_id), today)
        if not record:
            raise NotFoundError("No attendance record for today")
        return record

    def mark_login(self, *, staff_id: int, now: Optional[datetime] = None) -> LoginMark:
        now = now or now_utc()
        today = now.date()

        existing = self._attendance.get_for_staff_and_date(int(staff_id), today)
        if not existing:
            attendance_id = self._attendance.create(staff_id=int(staff_id), work_date=today, now=now)
            self._fanout.changed(TABLE, ChangeEvent.INSERT, attendance_id, {"status": AttendanceStatus.ACTIVE.value})
            log.info("first login of %s for staff %s", today, staff_id)
            return LoginMark(record=self._today(staff_id, today), is_new_login=True)

        elapsed = (now - existing.last_check_in).total_seconds()

        if existing.status == AttendanceStatus.LOGGED_OUT and elapsed >= CHECK_IN_MIN_GAP_SECONDS:
            check_ins = list(existing.check_ins) + [now]
            if self._attendance.add_check_in(attendance_id=existing.attendance_id, check_ins=check_ins, now=now):
                self._fanout.changed(
                    TABLE,
                    ChangeEvent.UPDATE,
                    existing.attendance_id,
                    {"status": AttendanceStatus.ACTIVE.value, "check_ins": len(check_ins)},
                )
                return LoginMark(record=self._today(staff_id, today), is_check_in=True)
            # another request re-opened the day first
            return LoginMark(record=self._today(staff_id, today))

        if elapsed >= ACTIVITY_REFRESH_SECONDS:
            self._attendance.touch(attendance_id=existing.attendance_id, now=now)
            self._fanout.changed(TABLE, ChangeEvent.UPDATE, existing.attendance_id)
            return LoginMark(record=self._today(staff_id, today))

        # page refresh
        return LoginMark(record=existing)

    def mark_logout(self, *, staff_id: int, now: Optional[datetime] = None) -> AttendanceRecord:
        now = now or now_utc()
        today = now.date()
        if not self._attendance.mark_logout(staff_id=int(staff_id), work_date=today, now=now):
            raise NotFoundError("No attendance record for today")
        record = self._today(staff_id, today)
        self._fanout.changed(
            TABLE, ChangeEvent.UPDATE, record.attendance_id, {"status": AttendanceStatus.LOGGED_OUT.value}
        )
        return record

    def today_record(self, *, staff_id: int, now: Optional[datetime] = None) -> Optional[AttendanceRecord]:
        today = (now or now_utc()).date()
        return self._attendance.get_for_staff_and_date(int(staff_id), today)

    def today_all(self, *, current_role: Role, now: Optional[datetime] = None) -> Sequence[AttendanceRecord]:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can view everyone's attendance")
        today = (now or now_utc()).date()
        return self._attendance.list(start=today, end=today, limit=DEFAULT_ADMIN_LIST_LIMIT)

    def today_summary(self, *, now: Optional[datetime] = None) -> AttendanceSummary:
        today = (now or now_utc()).date()
        records = self._attendance.list(start=today, end=today, limit=DEFAULT_ADMIN_LIST_LIMIT)
        total = self._users.count_active_staff()
        present = len(records)
        return AttendanceSummary(
            total_staff=total,
            present=present,
            absent=max(total - present, 0),
            logged_out=sum(1 for r in records if r.status == AttendanceStatus.LOGGED_OUT),
        )

    def _range(
        self, *, start: Optional[str], end: Optional[str], days: int, now: Optional[datetime]
    ) -> tuple[date, date]:
        end_d = parse_optional_date(end) or (now or now_utc()).date()
        start_d = parse_optional_date(start) or end_d - timedelta(days=int(days))
        if start_d > end_d:
            raise ValidationError("Start date must be on or before end date")
        return start_d, end_d

    def history(
        self,
        *,
        current_role: Role,
        user_id: int,
        staff_id: Optional[int] = None,
        days: int = DEFAULT_HISTORY_DAYS,
        now: Optional[datetime] = None,
    ) -> Sequence[AttendanceHistoryRow]:
        """A staff member's own days, newest first; admins may pass any ``staff_id``."""
        target = int(user_id)
        if staff_id is not None and int(staff_id) != target:
            if current_role != Role.ADMIN:
                raise AuthorizationError("You can only view your own attendance")
            target = int(staff_id)

        start, end = self._range(start=None, end=None, days=days, now=now)
        return [
            AttendanceHistoryRow(
                work_date=r.work_date,
                login_time=r.login_time,
                logout_time=r.logout_time,
                duration_minutes=session_minutes(r),
                status=r.status,
                check_in_count=len(r.check_ins),
            )
            for r in self._attendance.list(staff_id=target, start=start, end=end)
        ]

    def export(
        self,
        *,
        current_role: Role,
        user_id: int,
        start: Optional[str] = None,
        end: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ExportData:
        start_d, end_d = self._range(start=start, end=end, days=DEFAULT_HISTORY_DAYS, now=now)
        staff_id = None if current_role == Role.ADMIN else int(user_id)
        rows = []
        for r in self._attendance.list(staff_id=staff_id, start=start_d, end=end_d, limit=DEFAULT_ADMIN_LIST_LIMIT):
            rows.append(
                {
                    "work_date": r.work_date.strftime("%Y-%m-%d"),
                    "staff_id": r.staff_id,
                    "staff_name": r.staff_name or "-",
                    "branch": r.branch or "",
                    "first_login": to_iso(r.check_ins[0]) if r.check_ins else to_iso(r.login_time),
                    "login_time": to_iso(r.login_time),
                    "logout_time": to_iso(r.logout_time) or "",
                    "check_ins": len(r.check_ins),
                    "duration_minutes": session_minutes(r),
                    "status": r.status.value,
                }
            )
        return ExportData(rows=rows, fieldnames=list(EXPORT_FIELDS))
