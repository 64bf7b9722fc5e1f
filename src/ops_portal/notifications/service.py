from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from ..common.logger import get_logger
from ..common.validators import require_non_empty
from ..core.enums import ChangeEvent, Role
from ..core.exceptions import ValidationError
from ..sync.feed import ChangeFeed
from ..users.model import User
from ..users.repository import UserRepository
from .model import Notification
from .repository import NotificationRepository

log = get_logger(__name__)

TABLE = "notifications"


class NotificationService:
    """Notification rows for admins and staff."""

    def __init__(self, notifications: NotificationRepository, users: UserRepository, feed: Optional[ChangeFeed] = None):
        self._notifications = notifications
        self._users = users
        self._feed = feed

    def notify(
        self,
        *,
        user_id: int,
        type: str,
        title: str,
        message: str,
        reference_id: Optional[int] = None,
        reference_table: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        notification_id = self._notifications.create(
            user_id=int(user_id),
            type=require_non_empty(type, "Notification type"),
            title=require_non_empty(title, "Notification title"),
            message=message or "",
            reference_id=reference_id,
            reference_table=reference_table,
            metadata=metadata,
        )
        if self._feed:
            self._feed.emit(TABLE, ChangeEvent.INSERT, notification_id, {"user_id": int(user_id), "type": type})
        return notification_id

    def notify_admins(
        self,
        *,
        type: str,
        title: str,
        message: str,
        reference_id: Optional[int] = None,
        reference_table: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Sequence[User]:
        """Insert one notification per active admin; returns the admins notified."""
        admins = list(self._users.list_by_role(Role.ADMIN))
        for admin in admins:
            self.notify(
                user_id=admin.user_id,
                type=type,
                title=title,
                message=message,
                reference_id=reference_id,
                reference_table=reference_table,
                metadata=metadata,
            )
        if not admins:
            log.warning("no active admins to notify for %s", type)
        return admins

    def list_for_user(self, *, user_id: int, unviewed_only: bool = False, limit: int = 50) -> Sequence[Notification]:
        return self._notifications.list_for_user(int(user_id), unviewed_only=unviewed_only, limit=int(limit))

    def unviewed_count(self, *, user_id: int) -> int:
        return self._notifications.count_unviewed(int(user_id))

    def mark_viewed(self, *, user_id: int, notification_id: int) -> None:
        if not self._notifications.mark_viewed(notification_id=int(notification_id), user_id=int(user_id)):
            raise ValidationError("Notification not found")
        if self._feed:
            self._feed.emit(TABLE, ChangeEvent.UPDATE, int(notification_id), {"is_viewed": True})

    def mark_all_viewed(self, *, user_id: int) -> int:
        n = self._notifications.mark_all_viewed(int(user_id))
        if n and self._feed:
            self._feed.emit(TABLE, ChangeEvent.UPDATE, None, {"user_id": int(user_id), "is_viewed": True})
        return n
