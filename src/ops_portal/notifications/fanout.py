from __future__ import annotations

from typing import Any, Dict, Optional

from ..common.logger import get_logger
from ..common.serialization import to_jsonable
from ..core.enums import ChangeEvent, Role
from ..email.client import EmailNotifier
from ..email.templates import ADMIN, STAFF
from ..sync.feed import ChangeFeed
from ..users.repository import UserRepository
from .service import NotificationService

log = get_logger(__name__)


class Fanout:
    """Side effects that follow a successful write.

    The write itself is the source of truth: notification rows and change
    events run inline, email is best-effort and never raises.
    """

    def __init__(
        self,
        notifications: NotificationService,
        users: UserRepository,
        emails: EmailNotifier,
        feed: ChangeFeed,
    ):
        self.notifications = notifications
        self._users = users
        self._emails = emails
        self._feed = feed

    def changed(self, table: str, event: ChangeEvent, record_id: Optional[int], new: Any = None) -> None:
        self._feed.emit(table, event, record_id, to_jsonable(new) if new is not None else None)

    def notify_user(
        self,
        user_id: Optional[int],
        *,
        type: str,
        title: str,
        message: str,
        reference_id: Optional[int],
        reference_table: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[int]:
        if user_id is None:
            return None
        return self.notifications.notify(
            user_id=int(user_id),
            type=type,
            title=title,
            message=message,
            reference_id=reference_id,
            reference_table=reference_table,
            metadata=metadata,
        )

    def notify_admins(
        self,
        *,
        type: str,
        title: str,
        message: str,
        reference_id: Optional[int],
        reference_table: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        admins = self.notifications.notify_admins(
            type=type,
            title=title,
            message=message,
            reference_id=reference_id,
            reference_table=reference_table,
            metadata=metadata,
        )
        return len(admins)

    def user_email(self, user_id: Optional[int]) -> Optional[str]:
        if user_id is None:
            return None
        user = self._users.get_by_id(int(user_id))
        return user.email if user and user.email else None

    def admin_emails(self) -> list[str]:
        emails: list[str] = []
        for admin in self._users.list_by_role(Role.ADMIN):
            if admin.email and admin.email not in emails:
                emails.append(admin.email)
        return emails

    def email_each(
        self,
        domain: str,
        type: str,
        record: Any,
        emails: list[str],
        *,
        field: str = ADMIN,
        **extra: Any,
    ) -> int:
        payload = {"type": type, "requestData": to_jsonable(record), **to_jsonable(extra)}
        return self._emails.send_to_each(domain, payload, field=field, emails=emails)

    def email_admins(self, domain: str, type: str, record: Any, **extra: Any) -> int:
        return self.email_each(domain, type, record, self.admin_emails(), **extra)

    def email_user(
        self,
        domain: str,
        type: str,
        record: Any,
        user_id: Optional[int],
        *,
        field: str = STAFF,
        **extra: Any,
    ) -> bool:
        email = self.user_email(user_id)
        if not email:
            log.info("no email on file for user %s, skipping %s/%s", user_id, domain, type)
            return False
        payload = {"type": type, "requestData": to_jsonable(record), field: email, **to_jsonable(extra)}
        return self._emails.send(domain, payload)
