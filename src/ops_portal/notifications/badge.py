"""Notification badge counting.

A badge shows how many records in a category are still waiting on the viewer
and arrived after the viewer last opened that category's dropdown.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Tuple, Union

from ..common.datetime_utils import now_utc, parse_timestamp
from ..common.logger import get_logger
from ..core.enums import Role
from ..core.exceptions import AuthorizationError, ValidationError
from ..sync.broadcast import BroadcastChannel
from ..sync.hub import NOTIFICATIONS_CLEARED
from .repository import LastViewedRepository

log = get_logger(__name__)

PENDING: FrozenSet[str] = frozenset({"pending"})

Timestamp = Union[str, datetime, None]
# (statuses, owner_id or None for everyone) -> rows carrying status and timestamps
RecordLoader = Callable[[FrozenSet[str], Optional[int]], Sequence[Any]]


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _status_value(value: Any) -> Optional[str]:
    if isinstance(value, Enum):
        return str(value.value)
    return None if value is None else str(value)


def count_new(
    records: Iterable[Any],
    last_viewed: Timestamp,
    *,
    statuses: Iterable[str] = PENDING,
    timestamp_field: str = "created_at",
    status_field: str = "status",
) -> int:
    """Count records in ``statuses`` whose timestamp is after ``last_viewed``.

    With no ``last_viewed`` every record in ``statuses`` counts. Records
    without a timestamp never count as new once a last-viewed value exists.
    """
    wanted = {str(s) for s in statuses}
    cutoff = parse_timestamp(last_viewed)

    n = 0
    for record in records:
        if _status_value(_field(record, status_field)) not in wanted:
            continue
        if cutoff is None:
            n += 1
            continue
        ts = parse_timestamp(_field(record, timestamp_field))
        if ts is not None and ts > cutoff:
            n += 1
    return n


def count_in_status(records: Iterable[Any], *, statuses: Iterable[str] = PENDING, status_field: str = "status") -> int:
    wanted = {str(s) for s in statuses}
    return sum(1 for r in records if _status_value(_field(r, status_field)) in wanted)


@dataclass(frozen=True)
class BadgeSource:
    domain: str
    statuses: FrozenSet[str] = PENDING
    timestamp_field: str = "created_at"
    own_only: bool = False


@dataclass(frozen=True)
class NotificationCategory:
    name: str
    audience: Role
    sources: Tuple[BadgeSource, ...] = field(default_factory=tuple)

    @property
    def storage_key(self) -> str:
        return f"{self.name}-last-viewed"


CATEGORIES: Dict[str, NotificationCategory] = {
    c.name: c
    for c in (
        NotificationCategory(
            name="maintenance",
            audience=Role.ADMIN,
            sources=(
                BadgeSource("maintenance"),
                BadgeSource("purchase"),
                BadgeSource("scrap"),
                BadgeSource("grocery"),
            ),
        ),
        NotificationCategory(
            name="admin-notifications",
            audience=Role.ADMIN,
            sources=(
                BadgeSource("reschedule"),
                BadgeSource("asset"),
                BadgeSource("cashbook"),
                BadgeSource("support", statuses=frozenset({"open"})),
                BadgeSource("task-proofs"),
            ),
        ),
        NotificationCategory(
            name="staff-notifications",
            audience=Role.STAFF,
            sources=(
                BadgeSource(
                    "maintenance",
                    statuses=frozenset({"approved", "rejected"}),
                    timestamp_field="updated_at",
                    own_only=True,
                ),
                BadgeSource(
                    "purchase",
                    statuses=frozenset({"verification_pending", "completed", "rejected"}),
                    timestamp_field="updated_at",
                    own_only=True,
                ),
                BadgeSource(
                    "task",
                    statuses=frozenset({"pending", "in_progress"}),
                    timestamp_field="updated_at",
                    own_only=True,
                ),
                BadgeSource(
                    "reschedule",
                    statuses=frozenset({"approved", "rejected"}),
                    timestamp_field="updated_at",
                    own_only=True,
                ),
                BadgeSource(
                    "grocery",
                    statuses=frozenset({"approved", "rejected"}),
                    timestamp_field="updated_at",
                    own_only=True,
                ),
                BadgeSource(
                    "task-proofs",
                    statuses=frozenset({"approved", "rejected"}),
                    timestamp_field="updated_at",
                    own_only=True,
                ),
            ),
        ),
    )
}


class BadgeService:
    def __init__(
        self,
        loaders: Mapping[str, RecordLoader],
        last_viewed: LastViewedRepository,
        channel: Optional[BroadcastChannel] = None,
        *,
        categories: Optional[Mapping[str, NotificationCategory]] = None,
    ):
        self._loaders = dict(loaders)
        self._last_viewed = last_viewed
        self._channel = channel
        self._categories = dict(categories or CATEGORIES)

    def category(self, name: str, *, role: Role) -> NotificationCategory:
        cat = self._categories.get(name)
        if not cat:
            raise ValidationError(f"Unknown notification category: {name}")
        if cat.audience != role:
            raise AuthorizationError("This notification category is not available for your role")
        return cat

    def categories_for(self, role: Role) -> list[str]:
        return [c.name for c in self._categories.values() if c.audience == role]

    def _records(self, source: BadgeSource, user_id: int) -> Sequence[Any]:
        loader = self._loaders.get(source.domain)
        if loader is None:
            return []
        return loader(source.statuses, int(user_id) if source.own_only else None)

    def badge(self, *, user_id: int, role: Role, category: str) -> dict:
        cat = self.category(category, role=role)
        last_viewed = self._last_viewed.get(user_id=int(user_id), category=cat.name)

        per_source: dict[str, dict] = {}
        total = 0
        new = 0
        for source in cat.sources:
            records = self._records(source, user_id)
            src_total = count_in_status(records, statuses=source.statuses)
            src_new = count_new(
                records,
                last_viewed,
                statuses=source.statuses,
                timestamp_field=source.timestamp_field,
            )
            per_source[source.domain] = {"total": src_total, "new": src_new}
            total += src_total
            new += src_new

        return {
            "category": cat.name,
            "last_viewed": parse_timestamp(last_viewed).isoformat() if last_viewed else None,
            "total_pending": total,
            "new_count": new,
            "per_source": per_source,
        }

    def get_last_viewed(self, *, user_id: int, role: Role, category: str) -> Optional[datetime]:
        cat = self.category(category, role=role)
        return parse_timestamp(self._last_viewed.get(user_id=int(user_id), category=cat.name))

    def set_last_viewed(self, *, user_id: int, role: Role, category: str, viewed_at: Timestamp = None) -> datetime:
        cat = self.category(category, role=role)
        at = parse_timestamp(viewed_at) or now_utc()
        self._last_viewed.set(user_id=int(user_id), category=cat.name, viewed_at=at)
        return at

    def open_dropdown(self, *, user_id: int, role: Role, category: str, now: Optional[datetime] = None) -> datetime:
        """Mark the category as seen and tell sibling surfaces to recount."""
        at = self.set_last_viewed(user_id=user_id, role=role, category=category, viewed_at=now)
        if self._channel is not None:
            self._channel.post_message(
                NOTIFICATIONS_CLEARED,
                {"category": category, "user_id": int(user_id), "timestamp": at.isoformat()},
            )
        return at
