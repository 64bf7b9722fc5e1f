from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Protocol, Sequence

from .model import Notification


class NotificationRepository(Protocol):
    def create(
        self,
        *,
        user_id: int,
        type: str,
        title: str,
        message: str,
        reference_id: Optional[int],
        reference_table: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> int:
        raise NotImplementedError

    def list_for_user(self, user_id: int, *, unviewed_only: bool = False, limit: int = 50) -> Sequence[Notification]:
        raise NotImplementedError

    def count_unviewed(self, user_id: int) -> int:
        raise NotImplementedError

    def mark_viewed(self, *, notification_id: int, user_id: int) -> bool:
        raise NotImplementedError

    def mark_all_viewed(self, user_id: int) -> int:
        raise NotImplementedError


class LastViewedRepository(Protocol):
    """Per-user, per-category "dropdown last opened" timestamps."""

    def get(self, *, user_id: int, category: str) -> Optional[datetime]:
        raise NotImplementedError

    def set(self, *, user_id: int, category: str, viewed_at: datetime) -> None:
        raise NotImplementedError
