from __future__ import annotations

from typing import Iterable, Optional, Sequence

import mysql.connector

from ..core.enums import AssetSource, ItemCondition, RequestStatus, RequestType
from ..core.exceptions import ConflictError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import build_where, db_cursor, fetchall, fetchone, select_badge_rows
from .model import AssetRequest, NewAsset
from .repository import AssetRepository

_COLUMNS = """
    asset_id, asset_number, staff_id, branch, product_name, brand_name, serial_no,
    workstation_number, quantity, item_condition, warranty, request_type, status, source,
    approved_by, approved_at, admin_notes, created_at, updated_at
"""


def _to_asset(r: dict) -> AssetRequest:
    return AssetRequest(
        asset_id=int(r["asset_id"]),
        asset_number=r["asset_number"],
        staff_id=int(r["staff_id"]),
        branch=r["branch"],
        product_name=r["product_name"],
        brand_name=r.get("brand_name"),
        serial_no=r.get("serial_no"),
        workstation_number=r.get("workstation_number"),
        quantity=int(r.get("quantity") or 1),
        condition=ItemCondition(r["item_condition"]),
        warranty=r.get("warranty"),
        request_type=RequestType(r["request_type"]),
        status=RequestStatus(r["status"]),
        source=AssetSource(r["source"]),
        approved_by=r.get("approved_by"),
        approved_at=r.get("approved_at"),
        admin_notes=r.get("admin_notes"),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


class MySQLAssetRepository(AssetRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return select_badge_rows(
            self._conn_factory,
            table="asset_requests",
            statuses=statuses,
            status_column="status",
            owner_column="staff_id",
            owner_id=owner_id,
        )

    def list_asset_numbers(self) -> Sequence[str]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT asset_number FROM asset_requests")
            return [r["asset_number"] for r in fetchall(cur)]

    def create(
        self,
        *,
        asset_number: str,
        asset: NewAsset,
        status: RequestStatus = RequestStatus.PENDING,
        approved_by: Optional[int] = None,
        admin_notes: Optional[str] = None,
    ) -> int:
        approved_at_sql = "NOW()" if status == RequestStatus.APPROVED else "NULL"
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    f"""
                    INSERT INTO asset_requests(
                        asset_number, staff_id, branch, product_name, brand_name, serial_no,
                        workstation_number, quantity, item_condition, warranty, request_type,
                        status, source, approved_by, approved_at, admin_notes
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,{approved_at_sql},%s)
                    """,
                    (
                        asset_number,
                        int(asset.staff_id),
                        asset.branch,
                        asset.product_name,
                        asset.brand_name,
                        asset.serial_no,
                        asset.workstation_number,
                        int(asset.quantity),
                        asset.condition.value,
                        asset.warranty,
                        asset.request_type.value,
                        status.value,
                        asset.source.value,
                        approved_by,
                        admin_notes,
                    ),
                )
                return int(cur.lastrowid)
        except mysql.connector.IntegrityError as e:
            raise ConflictError(f"Asset number {asset_number} already exists") from e

    def get(self, asset_id: int) -> Optional[AssetRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM asset_requests WHERE asset_id=%s", (int(asset_id),))
            row = fetchone(cur)
            return _to_asset(row) if row else None

    def list(
        self,
        *,
        status: Optional[RequestStatus] = None,
        staff_id: Optional[int] = None,
        branch: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[AssetRequest]:
        where, params = build_where([("status=%s", status), ("staff_id=%s", staff_id), ("branch=%s", branch)])
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM asset_requests WHERE {where} ORDER BY created_at DESC LIMIT %s",
                tuple(params + [int(limit)]),
            )
            return [_to_asset(r) for r in fetchall(cur)]

    def decide(
        self,
        *,
        asset_id: int,
        status: RequestStatus,
        decided_by: int,
        admin_notes: Optional[str],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE asset_requests
                SET status=%s, approved_by=%s, approved_at=NOW(), admin_notes=%s
                WHERE asset_id=%s AND status=%s
                """,
                (status.value, int(decided_by), admin_notes, int(asset_id), RequestStatus.PENDING.value),
            )
            return cur.rowcount > 0

    def delete(self, asset_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM asset_requests WHERE asset_id=%s", (int(asset_id),))
            return cur.rowcount > 0

    def count_by_status(self, status: RequestStatus) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM asset_requests WHERE status=%s", (status.value,))
            row = fetchone(cur)
            return int(row["n"]) if row else 0
