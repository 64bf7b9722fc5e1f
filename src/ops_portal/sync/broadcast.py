from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..common.datetime_utils import now_utc
from ..common.logger import get_logger
from ..core.constants import SYNC_CHANNEL_NAME

log = get_logger(__name__)


@dataclass(frozen=True)
class BroadcastMessage:
    type: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = 0  # epoch milliseconds

    def as_dict(self) -> dict:
        return {"type": self.type, "data": dict(self.data), "timestamp": self.timestamp}


Listener = Callable[[BroadcastMessage], None]


def _epoch_ms() -> int:
    return int(now_utc().timestamp() * 1000)


class BroadcastChannel:
    """Named in-process channel that fans ``"<domain>-updated"`` tags out to listeners.

    Listeners are SSE client queues, the sync hub and tests. Delivery is
    synchronous, unordered across posters and never deduplicated. Every post
    also stamps the sync trigger sentinel with the post time.
    """

    def __init__(self, name: str = SYNC_CHANNEL_NAME):
        self.name = name
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()
        self._last_trigger: Optional[int] = None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    @property
    def last_trigger(self) -> Optional[int]:
        return self._last_trigger

    def post_message(self, type: str, data: Optional[Dict[str, Any]] = None) -> BroadcastMessage:
        message = BroadcastMessage(type=type, data=dict(data or {}), timestamp=_epoch_ms())
        self._last_trigger = message.timestamp

        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(message)
            except Exception:
                log.exception("broadcast listener failed for %s", message.type)
        return message
