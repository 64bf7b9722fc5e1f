from __future__ import annotations

from typing import Iterable, Optional, Sequence

from ..core.enums import ItemCondition, RequestStatus, RunningStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import build_where, db_cursor, fetchall, fetchone, select_badge_rows
from .model import MaintenanceDetails, MaintenanceRequest
from .repository import MaintenanceRepository

_SELECT = """
    SELECT m.request_id, m.staff_id, u.full_name AS staff_name,
           m.branch, m.serial_number, m.workstation_number, m.brand_name, m.report_month,
           m.date_of_purchase, m.warranty_end_date, m.contact_name, m.contact_number,
           m.item_condition, m.running_status, m.description, m.status, m.requested_date,
           m.approved_by, m.approved_at, m.rejection_reason, m.admin_notes,
           m.created_at, m.updated_at
    FROM maintenance_requests m
    LEFT JOIN users u ON u.user_id = m.staff_id
"""


def _details_params(d: MaintenanceDetails) -> tuple:
    return (
        d.branch,
        d.serial_number,
        d.workstation_number,
        d.brand_name,
        d.report_month,
        d.date_of_purchase,
        d.warranty_end_date,
        d.contact_name,
        d.contact_number,
        d.condition.value,
        d.running_status.value,
        d.description,
    )


def _to_request(r: dict) -> MaintenanceRequest:
    return MaintenanceRequest(
        request_id=int(r["request_id"]),
        staff_id=int(r["staff_id"]),
        staff_name=r.get("staff_name"),
        details=MaintenanceDetails(
            branch=r["branch"],
            brand_name=r["brand_name"],
            serial_number=r.get("serial_number"),
            workstation_number=r.get("workstation_number"),
            report_month=r.get("report_month"),
            date_of_purchase=r.get("date_of_purchase"),
            warranty_end_date=r.get("warranty_end_date"),
            contact_name=r.get("contact_name"),
            contact_number=r.get("contact_number"),
            condition=ItemCondition(r["item_condition"]),
            running_status=RunningStatus(r["running_status"]),
            description=r.get("description"),
        ),
        status=RequestStatus(r["status"]),
        requested_date=r.get("requested_date"),
        approved_by=r.get("approved_by"),
        approved_at=r.get("approved_at"),
        rejection_reason=r.get("rejection_reason"),
        admin_notes=r.get("admin_notes"),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


class MySQLMaintenanceRepository(MaintenanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return select_badge_rows(
            self._conn_factory,
            table="maintenance_requests",
            statuses=statuses,
            status_column="status",
            owner_column="staff_id",
            owner_id=owner_id,
        )

    def create(self, *, staff_id: int, details: MaintenanceDetails) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO maintenance_requests(
                    staff_id, branch, serial_number, workstation_number, brand_name, report_month,
                    date_of_purchase, warranty_end_date, contact_name, contact_number,
                    item_condition, running_status, description, status, requested_date
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,NOW())
                """,
                (int(staff_id),) + _details_params(details) + (RequestStatus.PENDING.value,),
            )
            return int(cur.lastrowid)

    def get(self, request_id: int) -> Optional[MaintenanceRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT + " WHERE m.request_id=%s", (int(request_id),))
            row = fetchone(cur)
            return _to_request(row) if row else None

    def list(
        self,
        *,
        status: Optional[RequestStatus] = None,
        staff_id: Optional[int] = None,
        branch: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[MaintenanceRequest]:
        where, params = build_where([("m.status=%s", status), ("m.staff_id=%s", staff_id), ("m.branch=%s", branch)])
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SELECT + f" WHERE {where} ORDER BY m.created_at DESC LIMIT %s",
                tuple(params + [int(limit)]),
            )
            return [_to_request(r) for r in fetchall(cur)]

    def update_pending(self, *, request_id: int, details: MaintenanceDetails) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE maintenance_requests
                SET branch=%s, serial_number=%s, workstation_number=%s, brand_name=%s, report_month=%s,
                    date_of_purchase=%s, warranty_end_date=%s, contact_name=%s, contact_number=%s,
                    item_condition=%s, running_status=%s, description=%s
                WHERE request_id=%s AND status=%s
                """,
                _details_params(details) + (int(request_id), RequestStatus.PENDING.value),
            )
            return cur.rowcount > 0

    def delete(self, request_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM maintenance_requests WHERE request_id=%s", (int(request_id),))
            return cur.rowcount > 0

    def decide(
        self,
        *,
        request_id: int,
        status: RequestStatus,
        decided_by: int,
        admin_notes: Optional[str],
        rejection_reason: Optional[str] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE maintenance_requests
                SET status=%s, approved_by=%s, approved_at=NOW(), admin_notes=%s, rejection_reason=%s
                WHERE request_id=%s AND status=%s
                """,
                (
                    status.value,
                    int(decided_by),
                    admin_notes,
                    rejection_reason,
                    int(request_id),
                    RequestStatus.PENDING.value,
                ),
            )
            return cur.rowcount > 0

    def count_by_status(self, status: RequestStatus) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM maintenance_requests WHERE status=%s", (status.value,))
            row = fetchone(cur)
            return int(row["n"]) if row else 0
