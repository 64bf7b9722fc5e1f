from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Tuple

from ..core.enums import AttendanceStatus


@dataclass(frozen=True)
class AttendanceRecord:
    """One row per staff member per working day.

    ``check_ins`` holds every genuine login of the day; ``login_time`` is the
    most recent one.
    """

    attendance_id: int
    staff_id: int
    work_date: date
    login_time: datetime
    logout_time: Optional[datetime]
    status: AttendanceStatus
    check_ins: Tuple[datetime, ...] = ()
    last_activity: Optional[datetime] = None
    staff_name: Optional[str] = None
    branch: Optional[str] = None

    @property
    def last_check_in(self) -> datetime:
        return self.check_ins[-1] if self.check_ins else self.login_time


@dataclass(frozen=True)
class AttendanceSummary:
    total_staff: int
    present: int
    absent: int
    logged_out: int


@dataclass(frozen=True)
class AttendanceHistoryRow:
    work_date: date
    login_time: datetime
    logout_time: Optional[datetime]
    duration_minutes: int
    status: AttendanceStatus
    check_in_count: int
