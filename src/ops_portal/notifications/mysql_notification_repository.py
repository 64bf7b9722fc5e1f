from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from ..common.datetime_utils import parse_timestamp
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, dump_json, fetchall, fetchone, load_json
from .model import Notification
from .repository import LastViewedRepository, NotificationRepository


def _to_notification(r: dict) -> Notification:
    return Notification(
        notification_id=int(r["notification_id"]),
        user_id=int(r["user_id"]),
        type=r["type"],
        title=r["title"],
        message=r["message"],
        reference_id=r.get("reference_id"),
        reference_table=r.get("reference_table"),
        is_viewed=bool(r.get("is_viewed")),
        metadata=load_json(r.get("metadata"), {}),
        created_at=r.get("created_at"),
    )


class MySQLNotificationRepository(NotificationRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

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
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO notifications(user_id, type, title, message, reference_id, reference_table, is_viewed, metadata)
                VALUES(%s,%s,%s,%s,%s,%s,0,%s)
                """,
                (int(user_id), type, title, message, reference_id, reference_table, dump_json(metadata)),
            )
            return int(cur.lastrowid)

    def list_for_user(self, user_id: int, *, unviewed_only: bool = False, limit: int = 50) -> Sequence[Notification]:
        extra = "AND is_viewed=0" if unviewed_only else ""
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT notification_id, user_id, type, title, message, reference_id,
                       reference_table, is_viewed, metadata, created_at
                FROM notifications
                WHERE user_id=%s {extra}
                ORDER BY created_at DESC, notification_id DESC
                LIMIT %s
                """,
                (int(user_id), int(limit)),
            )
            return [_to_notification(r) for r in fetchall(cur)]

    def count_unviewed(self, user_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM notifications WHERE user_id=%s AND is_viewed=0", (int(user_id),))
            row = fetchone(cur)
            return int(row["n"]) if row else 0

    def mark_viewed(self, *, notification_id: int, user_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE notifications SET is_viewed=1 WHERE notification_id=%s AND user_id=%s",
                (int(notification_id), int(user_id)),
            )
            return cur.rowcount > 0

    def mark_all_viewed(self, user_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("UPDATE notifications SET is_viewed=1 WHERE user_id=%s AND is_viewed=0", (int(user_id),))
            return int(cur.rowcount)


class MySQLLastViewedRepository(LastViewedRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, *, user_id: int, category: str) -> Optional[datetime]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT last_viewed_at FROM notification_last_viewed WHERE user_id=%s AND category=%s",
                (int(user_id), category),
            )
            row = fetchone(cur)
            return row["last_viewed_at"] if row else None

    def set(self, *, user_id: int, category: str, viewed_at: datetime) -> None:
        # stored as naive UTC
        naive = parse_timestamp(viewed_at).replace(tzinfo=None)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO notification_last_viewed(user_id, category, last_viewed_at)
                VALUES(%s,%s,%s)
                ON DUPLICATE KEY UPDATE last_viewed_at=VALUES(last_viewed_at)
                """,
                (int(user_id), category, naive),
            )
