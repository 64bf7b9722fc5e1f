from __future__ import annotations

from typing import Callable, Dict, List, Optional

from ..common.logger import get_logger
from .broadcast import BroadcastChannel, BroadcastMessage
from .cache import INVALIDATION_GROUPS, TABLE_DOMAINS, QueryCache
from .feed import ChangeFeed, TableChange

log = get_logger(__name__)

UPDATED_SUFFIX = "-updated"
NOTIFICATIONS_CLEARED = "notifications-cleared"
NOTIFICATION_COUNT_CHANGED = "notification-count-changed"


class SyncHub:
    """Realtime listener: table change -> cache invalidation -> broadcast.

    One feed subscription per known table. Broadcast messages coming from
    other posters re-run the same invalidation locally.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        channel: BroadcastChannel,
        cache: QueryCache,
        *,
        table_domains: Optional[Dict[str, str]] = None,
    ):
        self._feed = feed
        self._channel = channel
        self._cache = cache
        self._table_domains = dict(table_domains or TABLE_DOMAINS)
        self._unsubscribers: List[Callable[[], None]] = []

    @property
    def running(self) -> bool:
        return bool(self._unsubscribers)

    def start(self) -> "SyncHub":
        if self._unsubscribers:
            return self
        for table in self._table_domains:
            self._unsubscribers.append(self._feed.subscribe(table, self._on_change))
        self._unsubscribers.append(self._channel.subscribe(self._on_message))
        log.info("sync hub listening on %d tables", len(self._table_domains))
        return self

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _on_change(self, change: TableChange) -> None:
        domain = self._table_domains.get(change.table)
        if not domain:
            return
        self._cache.invalidate_domain(domain)
        self._channel.post_message(
            f"{domain}{UPDATED_SUFFIX}",
            {"table": change.table, "event": change.event.value, "record_id": change.record_id},
        )

    def _on_message(self, message: BroadcastMessage) -> None:
        if message.type in {NOTIFICATIONS_CLEARED, NOTIFICATION_COUNT_CHANGED}:
            self._cache.invalidate_domain("notification")
            return
        if not message.type.endswith(UPDATED_SUFFIX):
            return
        domain = message.type[: -len(UPDATED_SUFFIX)]
        if domain in INVALIDATION_GROUPS:
            self._cache.invalidate_domain(domain)
