from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Sequence

from ..core.enums import GroceryUnit, RequestStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import build_where, db_cursor, fetchall, fetchone, select_badge_rows
from .model import GroceryItem, GroceryRequest, StationaryItem
from .repository import GroceryRepository

_SELECT = """
    SELECT g.*, u.full_name AS staff_name
    FROM grocery_requests g
    LEFT JOIN users u ON u.user_id = g.staff_id
"""

_ITEM_SELECT = "SELECT * FROM grocery_request_items"

_STOCK_SELECT = """
    SELECT i.item_id, i.grocery_id, i.item_name, i.unit, i.quantity, i.updated_at,
           g.branch, g.approved_at, u.full_name AS staff_name
    FROM grocery_request_items i
    JOIN grocery_requests g ON g.grocery_id = i.grocery_id
    LEFT JOIN users u ON u.user_id = g.staff_id
    WHERE g.status='approved'
"""


def _to_item(r: dict) -> GroceryItem:
    return GroceryItem(
        item_id=int(r["item_id"]),
        grocery_id=int(r["grocery_id"]),
        item_name=r["item_name"],
        unit=GroceryUnit(r["unit"]),
        quantity=int(r["quantity"]),
        unit_price=Decimal(str(r["unit_price"])),
        total_amount=Decimal(str(r["total_amount"])),
    )


def _to_request(r: dict, items=()) -> GroceryRequest:
    return GroceryRequest(
        grocery_id=int(r["grocery_id"]),
        staff_id=int(r["staff_id"]),
        staff_name=r.get("staff_name"),
        branch=r["branch"],
        items=tuple(items),
        notes=r.get("notes"),
        total_amount=Decimal(str(r.get("total_amount") or "0.00")),
        status=RequestStatus(r["status"]),
        requested_date=r.get("requested_date"),
        approved_by=r.get("approved_by"),
        approved_at=r.get("approved_at"),
        rejection_reason=r.get("rejection_reason"),
        admin_notes=r.get("admin_notes"),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


def _to_stock(r: dict) -> StationaryItem:
    return StationaryItem(
        item_id=int(r["item_id"]),
        grocery_id=int(r["grocery_id"]),
        item_name=r["item_name"],
        unit=GroceryUnit(r["unit"]),
        quantity=int(r["quantity"]),
        branch=r["branch"],
        last_added_date=r.get("approved_at") or r.get("updated_at"),
        added_by_staff_name=r.get("staff_name"),
    )


def _insert_items(cur, grocery_id: int, items: Sequence[GroceryItem]) -> None:
    for item in items:
        cur.execute(
            """
            INSERT INTO grocery_request_items(grocery_id, item_name, unit, quantity, unit_price, total_amount)
            VALUES(%s,%s,%s,%s,%s,%s)
            """,
            (
                int(grocery_id),
                item.item_name,
                item.unit.value,
                int(item.quantity),
                item.unit_price,
                item.total_amount,
            ),
        )


class MySQLGroceryRepository(GroceryRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return select_badge_rows(
            self._conn_factory,
            table="grocery_requests",
            statuses=statuses,
            owner_column="staff_id",
            owner_id=owner_id,
        )

    def create(
        self,
        *,
        staff_id: int,
        branch: str,
        notes: Optional[str],
        items: Sequence[GroceryItem],
        total_amount: Decimal,
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO grocery_requests(staff_id, branch, notes, total_amount, status, requested_date)
                VALUES(%s,%s,%s,%s,%s,NOW())
                """,
                (int(staff_id), branch, notes, total_amount, RequestStatus.PENDING.value),
            )
            grocery_id = int(cur.lastrowid)
            _insert_items(cur, grocery_id, items)
            return grocery_id

    def get(self, grocery_id: int) -> Optional[GroceryRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT + " WHERE g.grocery_id=%s", (int(grocery_id),))
            row = fetchone(cur)
            if not row:
                return None
            cur.execute(_ITEM_SELECT + " WHERE grocery_id=%s ORDER BY item_id", (int(grocery_id),))
            return _to_request(row, [_to_item(i) for i in fetchall(cur)])

    def list(
        self,
        *,
        status: Optional[RequestStatus] = None,
        staff_id: Optional[int] = None,
        branch: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[GroceryRequest]:
        where, params = build_where([("g.status=%s", status), ("g.staff_id=%s", staff_id), ("g.branch=%s", branch)])
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SELECT + f" WHERE {where} ORDER BY g.created_at DESC LIMIT %s",
                tuple(params + [int(limit)]),
            )
            rows = fetchall(cur)
            ids = [int(r["grocery_id"]) for r in rows]

            by_request: dict[int, list[GroceryItem]] = {}
            if ids:
                marks = ",".join(["%s"] * len(ids))
                cur.execute(_ITEM_SELECT + f" WHERE grocery_id IN ({marks}) ORDER BY item_id", tuple(ids))
                for r in fetchall(cur):
                    item = _to_item(r)
                    by_request.setdefault(item.grocery_id, []).append(item)

            return [_to_request(r, by_request.get(int(r["grocery_id"]), ())) for r in rows]

    def update_pending(
        self,
        *,
        grocery_id: int,
        notes: Optional[str],
        items: Sequence[GroceryItem],
        total_amount: Decimal,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE grocery_requests SET notes=%s, total_amount=%s WHERE grocery_id=%s AND status=%s",
                (notes, total_amount, int(grocery_id), RequestStatus.PENDING.value),
            )
            if cur.rowcount == 0:
                return False
            cur.execute("DELETE FROM grocery_request_items WHERE grocery_id=%s", (int(grocery_id),))
            _insert_items(cur, grocery_id, items)
            return True

    def delete(self, grocery_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM grocery_requests WHERE grocery_id=%s", (int(grocery_id),))
            return cur.rowcount > 0

    def decide(
        self,
        *,
        grocery_id: int,
        status: RequestStatus,
        decided_by: int,
        admin_notes: Optional[str],
        rejection_reason: Optional[str] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE grocery_requests
                SET status=%s, approved_by=%s, approved_at=NOW(), admin_notes=%s, rejection_reason=%s
                WHERE grocery_id=%s AND status=%s
                """,
                (
                    status.value,
                    int(decided_by),
                    admin_notes,
                    rejection_reason,
                    int(grocery_id),
                    RequestStatus.PENDING.value,
                ),
            )
            return cur.rowcount > 0

    def count_by_status(self, status: RequestStatus) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM grocery_requests WHERE status=%s", (status.value,))
            row = fetchone(cur)
            return int(row["n"]) if row else 0

    def stationary_items(self, *, branch: str) -> Sequence[StationaryItem]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_STOCK_SELECT + " AND g.branch=%s ORDER BY i.item_name", (branch,))
            return [_to_stock(r) for r in fetchall(cur)]

    def get_item(self, item_id: int) -> Optional[StationaryItem]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_STOCK_SELECT + " AND i.item_id=%s", (int(item_id),))
            row = fetchone(cur)
            return _to_stock(row) if row else None

    def take_item(self, *, item_id: int, quantity: int) -> Optional[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE grocery_request_items SET quantity = quantity - %s WHERE item_id=%s AND quantity >= %s",
                (int(quantity), int(item_id), int(quantity)),
            )
            if cur.rowcount == 0:
                return None
            cur.execute("SELECT quantity FROM grocery_request_items WHERE item_id=%s", (int(item_id),))
            row = fetchone(cur)
            return int(row["quantity"]) if row else None

    def delete_item(self, item_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM grocery_request_items WHERE item_id=%s", (int(item_id),))
            return cur.rowcount > 0
