from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..common.logger import get_logger
from ..core.enums import ChangeEvent

log = get_logger(__name__)


@dataclass(frozen=True)
class TableChange:
    table: str
    event: ChangeEvent
    record_id: Optional[int]
    new: Dict[str, Any] = field(default_factory=dict)


ChangeListener = Callable[[TableChange], None]


class ChangeFeed:
    """Row-level change notifications, one listener list per table.

    Services emit after a successful write; the payload carries no diff and
    listeners only use it to decide what to invalidate.
    """

    def __init__(self):
        self._listeners: Dict[str, List[ChangeListener]] = {}
        self._lock = threading.Lock()

    def subscribe(self, table: str, listener: ChangeListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.setdefault(table, []).append(listener)

        def unsubscribe() -> None:
            with self._lock:
                items = self._listeners.get(table, [])
                if listener in items:
                    items.remove(listener)

        return unsubscribe

    def emit(
        self,
        table: str,
        event: ChangeEvent,
        record_id: Optional[int] = None,
        new: Optional[Dict[str, Any]] = None,
    ) -> TableChange:
        change = TableChange(table=table, event=ChangeEvent(event), record_id=record_id, new=dict(new or {}))
        with self._lock:
            listeners = list(self._listeners.get(table, []))

        for listener in listeners:
            try:
                listener(change)
            except Exception:
                log.exception("change listener failed for %s %s", table, change.event.value)
        return change
