from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Protocol, Sequence

from .model import AttendanceRecord


class AttendanceRepository(Protocol):
    def get_for_staff_and_date(self, staff_id: int, work_date: date) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def create(self, *, staff_id: int, work_date: date, now: datetime) -> int:
        raise NotImplementedError

    def add_check_in(self, *, attendance_id: int, check_ins: Sequence[datetime], now: datetime) -> bool:
        """Re-open a logged-out day with a new check-in."""
        raise NotImplementedError

    def touch(self, *, attendance_id: int, now: datetime) -> bool:
        raise NotImplementedError

    def mark_logout(self, *, staff_id: int, work_date: date, now: datetime) -> bool:
        raise NotImplementedError

    def list(
        self,
        *,
        staff_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: int = 200,
    ) -> Sequence[AttendanceRecord]:
        raise NotImplementedError
