from __future__ import annotations

from typing import Iterable, Optional, Sequence

from ..core.enums import ItemCondition, PurchaseStatus, RequestType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import as_decimal, build_where, db_cursor, fetchall, fetchone, select_badge_rows
from .model import PurchaseProduct, PurchaseRequisition, RequisitionDetails
from .repository import PurchaseRepository

_SELECT = """
    SELECT p.*, u.full_name AS staff_name
    FROM purchase_requisitions p
    LEFT JOIN users u ON u.user_id = p.staff_id
"""


def _to_requisition(r: dict) -> PurchaseRequisition:
    product = None
    if r.get("product_name"):
        product = PurchaseProduct(
            product_name=r["product_name"],
            brand_name=r.get("brand_name"),
            serial_no=r.get("serial_no"),
            warranty=r.get("warranty"),
            condition=ItemCondition(r.get("item_condition") or ItemCondition.NEW.value),
            specification=r.get("specification"),
            quantity=int(r.get("quantity") or 1),
            price=as_decimal(r["price"]) if r.get("price") is not None else None,
            shop_contact=r.get("shop_contact"),
            uploaded_at=r.get("product_uploaded_at"),
        )
    return PurchaseRequisition(
        requisition_id=int(r["requisition_id"]),
        staff_id=int(r["staff_id"]),
        staff_name=r.get("staff_name"),
        details=RequisitionDetails(
            name=r["name"],
            branch=r["branch"],
            purchase_item=r["purchase_item"],
            designation=r.get("designation"),
            department=r.get("department"),
            description=r.get("description"),
            request_type=RequestType(r["request_type"]),
        ),
        status=PurchaseStatus(r["status"]),
        product=product,
        approved_by=r.get("approved_by"),
        approved_at=r.get("approved_at"),
        rejection_reason=r.get("rejection_reason"),
        admin_notes=r.get("admin_notes"),
        verified_by=r.get("verified_by"),
        verified_at=r.get("verified_at"),
        verification_notes=r.get("verification_notes"),
        proof_rejection_reason=r.get("proof_rejection_reason"),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


class MySQLPurchaseRepository(PurchaseRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return select_badge_rows(
            self._conn_factory,
            table="purchase_requisitions",
            statuses=statuses,
            status_column="status",
            owner_column="staff_id",
            owner_id=owner_id,
        )

    def create(self, *, staff_id: int, details: RequisitionDetails) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO purchase_requisitions(
                    staff_id, name, designation, department, branch, purchase_item,
                    description, request_type, status
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(staff_id),
                    details.name,
                    details.designation,
                    details.department,
                    details.branch,
                    details.purchase_item,
                    details.description,
                    details.request_type.value,
                    PurchaseStatus.PENDING.value,
                ),
            )
            return int(cur.lastrowid)

    def get(self, requisition_id: int) -> Optional[PurchaseRequisition]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT + " WHERE p.requisition_id=%s", (int(requisition_id),))
            row = fetchone(cur)
            return _to_requisition(row) if row else None

    def list(
        self,
        *,
        status: Optional[PurchaseStatus] = None,
        staff_id: Optional[int] = None,
        branch: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[PurchaseRequisition]:
        where, params = build_where([("p.status=%s", status), ("p.staff_id=%s", staff_id), ("p.branch=%s", branch)])
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SELECT + f" WHERE {where} ORDER BY p.created_at DESC LIMIT %s",
                tuple(params + [int(limit)]),
            )
            return [_to_requisition(r) for r in fetchall(cur)]

    def update_pending(self, *, requisition_id: int, details: RequisitionDetails) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE purchase_requisitions
                SET name=%s, designation=%s, department=%s, branch=%s, purchase_item=%s,
                    description=%s, request_type=%s
                WHERE requisition_id=%s AND status=%s
                """,
                (
                    details.name,
                    details.designation,
                    details.department,
                    details.branch,
                    details.purchase_item,
                    details.description,
                    details.request_type.value,
                    int(requisition_id),
                    PurchaseStatus.PENDING.value,
                ),
            )
            return cur.rowcount > 0

    def delete(self, requisition_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM purchase_requisitions WHERE requisition_id=%s", (int(requisition_id),))
            return cur.rowcount > 0

    def decide(
        self,
        *,
        requisition_id: int,
        status: PurchaseStatus,
        decided_by: int,
        admin_notes: Optional[str],
        rejection_reason: Optional[str] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE purchase_requisitions
                SET status=%s, approved_by=%s, approved_at=NOW(), admin_notes=%s, rejection_reason=%s
                WHERE requisition_id=%s AND status=%s
                """,
                (
                    status.value,
                    int(decided_by),
                    admin_notes,
                    rejection_reason,
                    int(requisition_id),
                    PurchaseStatus.PENDING.value,
                ),
            )
            return cur.rowcount > 0

    def save_product(self, *, requisition_id: int, product: PurchaseProduct) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE purchase_requisitions
                SET product_name=%s, brand_name=%s, serial_no=%s, warranty=%s, item_condition=%s,
                    specification=%s, quantity=%s, price=%s, shop_contact=%s,
                    product_uploaded_at=NOW(), proof_rejection_reason=NULL, status=%s
                WHERE requisition_id=%s AND status=%s
                """,
                (
                    product.product_name,
                    product.brand_name,
                    product.serial_no,
                    product.warranty,
                    product.condition.value,
                    product.specification,
                    int(product.quantity),
                    product.price,
                    product.shop_contact,
                    PurchaseStatus.AWAITING_FINAL_VERIFICATION.value,
                    int(requisition_id),
                    PurchaseStatus.VERIFICATION_PENDING.value,
                ),
            )
            return cur.rowcount > 0

    def finalize(
        self,
        *,
        requisition_id: int,
        status: PurchaseStatus,
        verified_by: int,
        verification_notes: Optional[str],
        proof_rejection_reason: Optional[str] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE purchase_requisitions
                SET status=%s, verified_by=%s, verified_at=NOW(), verification_notes=%s,
                    proof_rejection_reason=%s
                WHERE requisition_id=%s AND status=%s
                """,
                (
                    status.value,
                    int(verified_by),
                    verification_notes,
                    proof_rejection_reason,
                    int(requisition_id),
                    PurchaseStatus.AWAITING_FINAL_VERIFICATION.value,
                ),
            )
            return cur.rowcount > 0

    def count_by_status(self, status: PurchaseStatus) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM purchase_requisitions WHERE status=%s", (status.value,))
            row = fetchone(cur)
            return int(row["n"]) if row else 0
