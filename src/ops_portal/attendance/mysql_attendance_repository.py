from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Sequence

from ..common.datetime_utils import parse_timestamp
from ..core.enums import AttendanceStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import build_where, db_cursor, dump_json, fetchall, fetchone, load_json
from .model import AttendanceRecord
from .repository import AttendanceRepository

_SELECT = """
    SELECT a.attendance_id, a.staff_id, a.work_date, a.login_time, a.logout_time, a.status,
           a.check_ins, a.last_activity, u.full_name AS staff_name, u.branch
    FROM attendance a
    LEFT JOIN users u ON u.user_id = a.staff_id
"""


def _naive_utc(value: datetime) -> datetime:
    # DATETIME columns hold UTC wall-clock time
    return parse_timestamp(value).replace(tzinfo=None)


def _to_record(r: dict) -> AttendanceRecord:
    check_ins = load_json(r.get("check_ins"), default=[]) or []
    return AttendanceRecord(
        attendance_id=int(r["attendance_id"]),
        staff_id=int(r["staff_id"]),
        work_date=r["work_date"],
        login_time=parse_timestamp(r["login_time"]),
        logout_time=parse_timestamp(r.get("logout_time")),
        status=AttendanceStatus(r["status"]),
        check_ins=tuple(parse_timestamp(c) for c in check_ins if c),
        last_activity=parse_timestamp(r.get("last_activity")),
        staff_name=r.get("staff_name"),
        branch=r.get("branch"),
    )


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_for_staff_and_date(self, staff_id: int, work_date: date) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT + " WHERE a.staff_id=%s AND a.work_date=%s", (int(staff_id), work_date))
            row = fetchone(cur)
            return _to_record(row) if row else None

    def create(self, *, staff_id: int, work_date: date, now: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance(staff_id, work_date, login_time, status, check_ins, last_activity)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(staff_id),
                    work_date,
                    _naive_utc(now),
                    AttendanceStatus.ACTIVE.value,
                    dump_json([parse_timestamp(now)]),
                    _naive_utc(now),
                ),
            )
            return int(cur.lastrowid)

    def add_check_in(self, *, attendance_id: int, check_ins: Sequence[datetime], now: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance
                SET login_time=%s, check_ins=%s, status=%s, logout_time=NULL, last_activity=%s
                WHERE attendance_id=%s AND status=%s
                """,
                (
                    _naive_utc(now),
                    dump_json([parse_timestamp(c) for c in check_ins]),
                    AttendanceStatus.ACTIVE.value,
                    _naive_utc(now),
                    int(attendance_id),
                    AttendanceStatus.LOGGED_OUT.value,
                ),
            )
            return cur.rowcount > 0

    def touch(self, *, attendance_id: int, now: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE attendance SET last_activity=%s, status=%s WHERE attendance_id=%s",
                (_naive_utc(now), AttendanceStatus.ACTIVE.value, int(attendance_id)),
            )
            return cur.rowcount > 0

    def mark_logout(self, *, staff_id: int, work_date: date, now: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance SET logout_time=%s, status=%s
                WHERE staff_id=%s AND work_date=%s
                """,
                (_naive_utc(now), AttendanceStatus.LOGGED_OUT.value, int(staff_id), work_date),
            )
            return cur.rowcount > 0

    def list(
        self,
        *,
        staff_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: int = 200,
    ) -> Sequence[AttendanceRecord]:
        where, params = build_where(
            [
                ("a.staff_id=%s", staff_id),
                ("a.work_date >= %s", start),
                ("a.work_date <= %s", end),
            ]
        )
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SELECT + f" WHERE {where} ORDER BY a.work_date DESC, a.login_time DESC LIMIT %s",
                tuple(params + [int(limit)]),
            )
            return [_to_record(r) for r in fetchall(cur)]
