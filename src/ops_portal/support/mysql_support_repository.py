from __future__ import annotations

from typing import Iterable, Optional, Sequence

import mysql.connector

from ..core.enums import TaskPriority, TicketCategory, TicketStatus
from ..core.exceptions import ConflictError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import build_where, db_cursor, fetchall, fetchone, select_badge_rows
from .model import SupportTicket
from .repository import SupportTicketRepository

_SELECT = """
    SELECT s.*, u.full_name AS staff_name, u.role AS staff_role
    FROM support_tickets s
    LEFT JOIN users u ON u.user_id = s.staff_id
"""

_CLOSING = (TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value)


def _to_ticket(r: dict) -> SupportTicket:
    return SupportTicket(
        ticket_id=int(r["ticket_id"]),
        ticket_no=r["ticket_no"],
        staff_id=int(r["staff_id"]),
        subject=r["subject"],
        description=r["description"],
        category=TicketCategory(r["category"]),
        priority=TaskPriority(r["priority"]),
        status=TicketStatus(r["status"]),
        admin_response=r.get("admin_response"),
        resolved_by=r.get("resolved_by"),
        resolved_at=r.get("resolved_at"),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
        staff_name=r.get("staff_name"),
        staff_role=r.get("staff_role"),
    )


class MySQLSupportTicketRepository(SupportTicketRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return select_badge_rows(
            self._conn_factory,
            table="support_tickets",
            statuses=statuses,
            status_column="status",
            owner_column="staff_id",
            owner_id=owner_id,
        )

    def list_ticket_numbers(self, prefix: str) -> Sequence[str]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT ticket_no FROM support_tickets WHERE ticket_no LIKE %s", (f"{prefix}%",))
            return [r["ticket_no"] for r in fetchall(cur)]

    def create(
        self,
        *,
        ticket_no: str,
        staff_id: int,
        category: TicketCategory,
        subject: str,
        description: str,
        priority: TaskPriority,
    ) -> int:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO support_tickets(ticket_no, staff_id, category, subject, description, priority, status)
                    VALUES(%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        ticket_no,
                        int(staff_id),
                        category.value,
                        subject,
                        description,
                        priority.value,
                        TicketStatus.OPEN.value,
                    ),
                )
                return int(cur.lastrowid)
        except mysql.connector.IntegrityError as e:
            raise ConflictError(f"Ticket {ticket_no} already exists") from e

    def get(self, ticket_id: int) -> Optional[SupportTicket]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT + " WHERE s.ticket_id=%s", (int(ticket_id),))
            row = fetchone(cur)
            return _to_ticket(row) if row else None

    def list(
        self,
        *,
        staff_id: Optional[int] = None,
        status: Optional[TicketStatus] = None,
        limit: int = 200,
    ) -> Sequence[SupportTicket]:
        where, params = build_where([("s.staff_id=%s", staff_id), ("s.status=%s", status)])
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SELECT + f" WHERE {where} ORDER BY s.created_at DESC, s.ticket_id DESC LIMIT %s",
                tuple(params + [int(limit)]),
            )
            return [_to_ticket(r) for r in fetchall(cur)]

    def update(
        self,
        *,
        ticket_id: int,
        status: TicketStatus,
        admin_response: Optional[str],
        responded_by: Optional[int],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE support_tickets
                SET status=%s,
                    admin_response=COALESCE(%s, admin_response),
                    resolved_by=COALESCE(%s, resolved_by),
                    resolved_at=CASE WHEN %s IN (%s, %s) THEN NOW() ELSE resolved_at END
                WHERE ticket_id=%s
                """,
                (
                    status.value,
                    admin_response,
                    responded_by,
                    status.value,
                    *_CLOSING,
                    int(ticket_id),
                ),
            )
            return cur.rowcount > 0

    def count_by_status(self, status: TicketStatus) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM support_tickets WHERE status=%s", (status.value,))
            row = fetchone(cur)
            return int(row["n"]) if row else 0
