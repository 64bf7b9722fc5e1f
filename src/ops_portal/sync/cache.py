from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Hashable, Iterable, Tuple

from ..common.logger import get_logger

log = get_logger(__name__)

QueryKey = Tuple[Hashable, ...]

# Domain -> query groups that go stale when that domain changes.
INVALIDATION_GROUPS: Dict[str, Tuple[str, ...]] = {
    "maintenance": (
        "maintenance-requests",
        "notification-count",
        "dashboard-stats",
        "maintenance-pending-count",
    ),
    "purchase": (
        "purchase-requisitions",
        "notification-count",
        "dashboard-stats",
        "purchase-pending-count",
    ),
    "scrap": (
        "scrap-requests",
        "notification-count",
        "dashboard-stats",
        "scrap-pending-count",
    ),
    "asset": (
        "asset-requests",
        "notification-count",
        "dashboard-stats",
        "asset-pending-count",
    ),
    "task": (
        "tasks",
        "attendance-tasks",
        "staff-tasks",
        "notification-count",
        "dashboard-stats",
    ),
    "reschedule": (
        "task-reschedules",
        "tasks",
        "staff-tasks",
        "notification-count",
    ),
    "cashbook": (
        "cash-transactions",
        "branch-opening-balances",
        "cashbook-summary",
        "notification-count",
        "dashboard-stats",
    ),
    "grocery": (
        "grocery-requests",
        "stationary-items",
        "notification-count",
        "dashboard-stats",
        "grocery-pending-count",
    ),
    "stationary": ("stationary-items",),
    "task-proofs": (
        "task-proofs",
        "task-proofs-pending-count",
        "tasks",
        "staff-tasks",
        "notification-count",
    ),
    "support": (
        "support-tickets",
        "notification-count",
        "dashboard-stats",
    ),
    "attendance": (
        "attendance",
        "attendance-summary",
        "dashboard-stats",
    ),
    "staff": (
        "staff",
        "attendance-summary",
        "dashboard-stats",
    ),
    "notification": (
        "all-notifications",
        "notification-count",
    ),
}

# Table -> domain, for change feed events.
TABLE_DOMAINS: Dict[str, str] = {
    "maintenance_requests": "maintenance",
    "purchase_requisitions": "purchase",
    "scrap_requests": "scrap",
    "asset_requests": "asset",
    "tasks": "task",
    "task_delegations": "task",
    "task_reschedules": "reschedule",
    "cash_transactions": "cashbook",
    "branch_opening_balances": "cashbook",
    "grocery_requests": "grocery",
    "grocery_request_items": "stationary",
    "task_update_proofs": "task-proofs",
    "support_tickets": "support",
    "attendance": "attendance",
    "users": "staff",
    "notifications": "notification",
}


class QueryCache:
    """Process-wide query result cache keyed by ``(group, *params)``.

    Entries are dropped by group; nothing is patched in place. Each group has
    a generation that ``invalidate`` bumps, so a load that was in flight when
    its group went stale is returned to its caller but never stored.
    """

    def __init__(self):
        self._entries: Dict[QueryKey, Any] = {}
        self._generations: Dict[Hashable, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()

    def get_or_load(self, key: QueryKey, loader: Callable[[], Any]) -> Any:
        group = key[0] if key else None
        with self._lock:
            if key in self._entries:
                return self._entries[key]
            generation = (self._epoch, self._generations.get(group, 0))
        value = loader()
        with self._lock:
            if (self._epoch, self._generations.get(group, 0)) == generation:
                self._entries[key] = value
            else:
                log.debug("%s went stale during load, not caching", group)
        return value

    def peek(self, key: QueryKey) -> Any:
        with self._lock:
            return self._entries.get(key)

    def __contains__(self, key: QueryKey) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def invalidate(self, group: str) -> int:
        with self._lock:
            self._generations[group] = self._generations.get(group, 0) + 1
            stale = [k for k in self._entries if k and k[0] == group]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def invalidate_many(self, groups: Iterable[str]) -> int:
        return sum(self.invalidate(g) for g in groups)

    def invalidate_domain(self, domain: str) -> int:
        groups = INVALIDATION_GROUPS.get(domain, ())
        dropped = self.invalidate_many(groups)
        log.debug("invalidated %s (%d entries)", domain, dropped)
        return dropped

    def clear(self) -> None:
        with self._lock:
            self._epoch += 1
            self._entries.clear()
