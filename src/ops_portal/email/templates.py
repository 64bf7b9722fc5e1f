from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

ADMIN = "adminEmail"
STAFF = "staffEmail"
SUBMITTER = "submitterEmail"


@dataclass(frozen=True)
class EmailKind:
    recipient_field: str
    subject: str
    intro: str
    note_field: Optional[str] = None


@dataclass(frozen=True)
class EmailRoute:
    domain: str
    label: str
    kinds: Mapping[str, EmailKind]
    # requestData keys listed in the body, in order
    fields: Tuple[str, ...] = ()


ROUTES: Dict[str, EmailRoute] = {
    r.domain: r
    for r in (
        EmailRoute(
            domain="maintenance",
            label="Maintenance request",
            kinds={
                "new_request": EmailKind(ADMIN, "New maintenance request", "A new maintenance request needs review."),
                "approved": EmailKind(STAFF, "Maintenance request approved", "Your maintenance request was approved.", "adminNotes"),
                "rejected": EmailKind(STAFF, "Maintenance request rejected", "Your maintenance request was rejected.", "rejectionReason"),
            },
            fields=("request_id", "branch", "brand_name", "serial_number", "workstation_number", "running_status"),
        ),
        EmailRoute(
            domain="purchase",
            label="Purchase requisition",
            kinds={
                "new_request": EmailKind(ADMIN, "New purchase requisition", "A new purchase requisition needs review."),
                "approved": EmailKind(STAFF, "Purchase requisition approved", "Your requisition was approved. Please upload the product details.", "adminNotes"),
                "rejected": EmailKind(STAFF, "Purchase requisition rejected", "Your requisition was rejected.", "rejectionReason"),
                "product_uploaded": EmailKind(ADMIN, "Purchase product details uploaded", "Product details were uploaded and need final verification."),
                "product_verified": EmailKind(STAFF, "Purchase completed", "The purchased product was verified and added to assets.", "verificationNotes"),
                "product_rejected": EmailKind(STAFF, "Purchase product details rejected", "The product details were sent back for correction.", "rejectionReason"),
            },
            fields=("requisition_id", "branch", "purchase_item", "request_type", "product_name", "serial_no"),
        ),
        EmailRoute(
            domain="asset",
            label="Asset request",
            kinds={
                "new_request": EmailKind(ADMIN, "New asset request", "A new asset request needs review."),
                "approved": EmailKind(STAFF, "Asset request approved", "Your asset request was approved.", "adminNotes"),
                "rejected": EmailKind(STAFF, "Asset request rejected", "Your asset request was rejected.", "rejectionReason"),
            },
            fields=("asset_number", "branch", "product_name", "brand_name", "serial_no", "quantity"),
        ),
        EmailRoute(
            domain="scrap",
            label="Scrap request",
            kinds={
                "new_request": EmailKind(ADMIN, "New scrap request", "A new scrap request needs review."),
                "approved": EmailKind(SUBMITTER, "Scrap request approved", "Your scrap request was approved.", "adminResponse"),
                "rejected": EmailKind(SUBMITTER, "Scrap request rejected", "Your scrap request was rejected.", "adminResponse"),
            },
            fields=("scrap_id", "branch", "brand_name", "serial_number", "workstation_number", "scrap_status"),
        ),
        EmailRoute(
            domain="task",
            label="Task",
            kinds={
                "assigned": EmailKind(STAFF, "New task assigned", "A task was assigned to you."),
                "delegated": EmailKind(STAFF, "Task delegated to you", "A task was delegated to you.", "notes"),
                "status_changed": EmailKind(ADMIN, "Task status changed", "A task changed status."),
            },
            fields=("task_no", "title", "priority", "status", "due_date"),
        ),
        EmailRoute(
            domain="reschedule",
            label="Task reschedule",
            kinds={
                "new_reschedule": EmailKind(ADMIN, "Task reschedule requested", "A staff member asked to move a due date.", "reason"),
                "reschedule_approved": EmailKind(STAFF, "Task reschedule approved", "Your reschedule request was approved.", "adminResponse"),
                "reschedule_rejected": EmailKind(STAFF, "Task reschedule rejected", "Your reschedule request was rejected.", "adminResponse"),
            },
            fields=("task_no", "title", "current_due_date", "requested_new_date"),
        ),
        EmailRoute(
            domain="cash-transaction",
            label="Cash transaction",
            kinds={
                "pending": EmailKind(ADMIN, "Cash transaction awaiting verification", "A cash transaction needs verification."),
                "approved": EmailKind(STAFF, "Cash transaction approved", "A cash transaction was approved.", "verificationNotes"),
                "rejected": EmailKind(STAFF, "Cash transaction rejected", "A cash transaction was rejected.", "verificationNotes"),
            },
            fields=("voucher_no", "branch", "transaction_date", "nature_of_expense", "cash_in", "cash_out", "balance"),
        ),
        EmailRoute(
            domain="support",
            label="Support ticket",
            kinds={
                "new_ticket": EmailKind(ADMIN, "New support ticket", "A new support ticket was opened."),
                "resolved": EmailKind(STAFF, "Support ticket resolved", "Your support ticket was resolved.", "adminResponse"),
            },
            fields=("ticket_no", "category", "subject", "priority", "status", "staff_name"),
        ),
        EmailRoute(
            domain="grocery",
            label="Stationary request",
            kinds={
                "new_request": EmailKind(ADMIN, "New stationary request", "A new stationary request needs review."),
                "approved": EmailKind(STAFF, "Stationary request approved", "Your stationary request was approved.", "adminNotes"),
                "rejected": EmailKind(STAFF, "Stationary request rejected", "Your stationary request was rejected.", "rejectionReason"),
            },
            fields=("grocery_id", "branch", "item_summary", "total_amount", "staff_name"),
        ),
        EmailRoute(
            domain="stationary-low-stock",
            label="Stationary stock",
            kinds={
                "alert": EmailKind(ADMIN, "Low stock alert", "A stationary item is running low."),
            },
            fields=("item_id", "item_name", "quantity", "unit", "branch", "staff_name"),
        ),
        EmailRoute(
            domain="low-balance",
            label="Cashbook balance",
            kinds={
                "alert": EmailKind(ADMIN, "Low cash balance alert", "A branch cash balance fell below the alert threshold."),
            },
            fields=("branch", "balance", "threshold", "voucher_no"),
        ),
        EmailRoute(
            domain="proof",
            label="Task proof",
            kinds={
                "proof_uploaded": EmailKind(ADMIN, "Task proof uploaded", "A task proof was uploaded and needs verification."),
                "proof_approved": EmailKind(STAFF, "Task proof approved", "Your task proof was approved.", "verificationNotes"),
                "proof_rejected": EmailKind(STAFF, "Task proof rejected", "Your task proof was rejected.", "verificationNotes"),
            },
            fields=("task_no", "title", "status", "proof_url", "staff_name"),
        ),
    )
}


def _fmt(value: Any) -> str:
    if value is None or value == "":
        return "-"
    return str(value)


def render(route: EmailRoute, kind: EmailKind, body: Mapping[str, Any]) -> Tuple[str, str]:
    """Plain-text subject and body for one notification."""
    data = body.get("requestData") or {}
    ref = data.get(route.fields[0]) if route.fields else None
    subject = f"{kind.subject} #{ref}" if ref not in (None, "") else kind.subject

    lines = [kind.intro, ""]
    for key in route.fields:
        if key in data:
            lines.append(f"{key.replace('_', ' ').capitalize()}: {_fmt(data.get(key))}")
    if kind.note_field and body.get(kind.note_field):
        lines.append("")
        lines.append(f"Notes: {body[kind.note_field]}")
    lines.append("")
    lines.append(f"-- {route.label} notification")
    return subject, "\n".join(lines)
