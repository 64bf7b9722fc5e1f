from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple

from ..common.logger import get_logger
from ..common.serialization import to_jsonable
from ..common.validators import optional_text, require_amount, require_enum, require_non_empty, require_positive_int
from ..core.constants import DEFAULT_LIST_LIMIT, STATIONARY_LOW_STOCK_THRESHOLD
from ..core.enums import ChangeEvent, GroceryUnit, RequestStatus, Role
from ..core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ..notifications.fanout import Fanout
from .model import GroceryItem, GroceryRequest, StationaryItem
from .repository import GroceryRepository

log = get_logger(__name__)

TABLE = "grocery_requests"
ITEMS_TABLE = "grocery_request_items"
EMAIL_DOMAIN = "grocery"
LOW_STOCK_EMAIL_DOMAIN = "stationary-low-stock"


def item_summary(items: Iterable[GroceryItem]) -> str:
    return ", ".join(f"{i.quantity} {i.unit.value} of {i.item_name}" for i in items)


def email_data(req: GroceryRequest) -> dict:
    return {
        "grocery_id": req.grocery_id,
        "branch": req.branch,
        "item_summary": item_summary(req.items),
        "items": to_jsonable(req.items),
        "total_amount": to_jsonable(req.total_amount),
        "notes": req.notes,
        "status": req.status.value,
        "staff_id": req.staff_id,
        "staff_name": req.staff_name,
        "requested_date": to_jsonable(req.requested_date),
    }


class GroceryService:
    def __init__(self, requests: GroceryRepository, fanout: Fanout):
        self._requests = requests
        self._fanout = fanout

    @staticmethod
    def build_items(items: Any) -> Tuple[Tuple[GroceryItem, ...], Decimal]:
        """Validate the submitted item rows; returns the items and the request total."""
        if not isinstance(items, (list, tuple)) or not items:
            raise ValidationError("Add at least one item")

        built = []
        for n, raw in enumerate(items, start=1):
            if not isinstance(raw, Mapping):
                raise ValidationError(f"Item {n} is not valid")
            quantity = require_positive_int(raw.get("quantity"), f"Item {n} quantity")
            unit_price = require_amount(raw.get("unit_price"), f"Item {n} unit price")
            built.append(
                GroceryItem(
                    item_name=require_non_empty(raw.get("item_name", ""), f"Item {n} name"),
                    unit=require_enum(GroceryUnit, raw.get("unit") or GroceryUnit.PCS.value, f"Item {n} unit"),
                    quantity=quantity,
                    unit_price=unit_price,
                    total_amount=(unit_price * quantity).quantize(Decimal("0.01")),
                )
            )
        total = sum((i.total_amount for i in built), Decimal("0.00"))
        return tuple(built), total

    def get(self, grocery_id: int) -> GroceryRequest:
        req = self._requests.get(int(grocery_id))
        if not req:
            raise NotFoundError("Stationary request not found")
        return req

    def create(
        self,
        *,
        current_role: Role,
        user_id: int,
        branch: str,
        items: Any,
        notes: str = "",
    ) -> int:
        if current_role not in {Role.STAFF, Role.ADMIN}:
            raise AuthorizationError("You are not allowed to submit stationary requests")

        branch = require_non_empty(branch, "Branch")
        built, total = self.build_items(items)
        grocery_id = self._requests.create(
            staff_id=int(user_id),
            branch=branch,
            notes=optional_text(notes),
            items=built,
            total_amount=total,
        )
        req = self.get(grocery_id)
        self._fanout.changed(TABLE, ChangeEvent.INSERT, grocery_id, {"status": req.status.value})

        who = req.staff_name or "A staff member"
        self._fanout.notify_admins(
            type="grocery_request",
            title="New stationary request",
            message=f"{who} from {branch} requested: {item_summary(built)}",
            reference_id=grocery_id,
            reference_table=TABLE,
            metadata={"status": req.status.value, "branch": branch, "total_amount": to_jsonable(total)},
        )
        self._fanout.email_admins(EMAIL_DOMAIN, "new_request", email_data(req))
        return grocery_id

    def update(self, *, current_role: Role, user_id: int, grocery_id: int, items: Any, notes: str = "") -> None:
        req = self.get(grocery_id)
        if req.staff_id != int(user_id):
            raise AuthorizationError("You can only edit your own stationary requests")
        if req.status != RequestStatus.PENDING:
            raise ValidationError("Only pending requests can be edited")

        built, total = self.build_items(items)
        if not self._requests.update_pending(
            grocery_id=req.grocery_id,
            notes=optional_text(notes),
            items=built,
            total_amount=total,
        ):
            raise ValidationError("This stationary request has already been processed")
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, req.grocery_id)

    def delete(self, *, current_role: Role, user_id: int, grocery_id: int) -> None:
        req = self.get(grocery_id)
        if current_role != Role.ADMIN and req.staff_id != int(user_id):
            raise AuthorizationError("You can only delete your own stationary requests")
        if req.status != RequestStatus.PENDING:
            raise ValidationError("Only pending requests can be deleted")
        if not self._requests.delete(req.grocery_id):
            raise ValidationError("Failed to delete stationary request")
        self._fanout.changed(TABLE, ChangeEvent.DELETE, req.grocery_id)

    def list(
        self,
        *,
        current_role: Role,
        user_id: int,
        status: Optional[str] = None,
        branch: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[GroceryRequest]:
        status_v = require_enum(RequestStatus, status, "Status") if status else None
        staff_id = None if current_role == Role.ADMIN else int(user_id)
        return self._requests.list(status=status_v, staff_id=staff_id, branch=optional_text(branch), limit=int(limit))

    def badge_rows(self, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return self._requests.badge_rows(statuses=statuses, owner_id=owner_id)

    def pending_count(self) -> int:
        return self._requests.count_by_status(RequestStatus.PENDING)

    def approve(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        grocery_id: int,
        admin_notes: str = "",
    ) -> GroceryRequest:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can approve stationary requests")

        req = self.get(grocery_id)
        notes = optional_text(admin_notes)
        if not self._requests.decide(
            grocery_id=req.grocery_id,
            status=RequestStatus.APPROVED,
            decided_by=int(admin_user_id),
            admin_notes=notes,
        ):
            raise ValidationError("This stationary request has already been processed")

        approved = self.get(req.grocery_id)
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, req.grocery_id, {"status": RequestStatus.APPROVED.value})
        self._fanout.notify_user(
            req.staff_id,
            type="grocery_status_update",
            title="Stationary request approved",
            message=f"Your stationary request for {req.branch} was approved.",
            reference_id=req.grocery_id,
            reference_table=TABLE,
            metadata={"status": RequestStatus.APPROVED.value, "admin_notes": notes},
        )
        self._fanout.email_user(EMAIL_DOMAIN, "approved", email_data(approved), approved.staff_id, adminNotes=notes)
        return approved

    def reject(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        grocery_id: int,
        rejection_reason: str,
        admin_notes: str = "",
    ) -> GroceryRequest:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can reject stationary requests")

        reason = require_non_empty(rejection_reason, "Rejection reason")
        req = self.get(grocery_id)
        if not self._requests.decide(
            grocery_id=req.grocery_id,
            status=RequestStatus.REJECTED,
            decided_by=int(admin_user_id),
            admin_notes=optional_text(admin_notes),
            rejection_reason=reason,
        ):
            raise ValidationError("This stationary request has already been processed")

        rejected = self.get(req.grocery_id)
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, req.grocery_id, {"status": RequestStatus.REJECTED.value})
        self._fanout.notify_user(
            req.staff_id,
            type="grocery_status_update",
            title="Stationary request rejected",
            message=f"Your stationary request for {req.branch} was rejected: {reason}",
            reference_id=req.grocery_id,
            reference_table=TABLE,
            metadata={"status": RequestStatus.REJECTED.value, "rejection_reason": reason},
        )
        self._fanout.email_user(EMAIL_DOMAIN, "rejected", email_data(rejected), rejected.staff_id, rejectionReason=reason)
        return rejected

    # -- stationary stock: items of approved requests, per branch --

    def stationary(self, *, branch: str) -> Sequence[StationaryItem]:
        return self._requests.stationary_items(branch=require_non_empty(branch, "Branch"))

    def _stock_item(self, item_id: int) -> StationaryItem:
        item = self._requests.get_item(int(item_id))
        if not item:
            raise NotFoundError("Item not found or not approved")
        return item

    def buy_item(
        self,
        *,
        current_role: Role,
        user_id: int,
        item_id: int,
        quantity: Any,
        staff_name: str = "",
    ) -> int:
        """Take stock off an item; emails admins once it drops to the low-stock threshold."""
        qty = require_positive_int(quantity, "Quantity")
        item = self._stock_item(item_id)
        if qty > item.quantity:
            raise ValidationError(f"Insufficient quantity. Available: {item.quantity}")

        remaining = self._requests.take_item(item_id=item.item_id, quantity=qty)
        if remaining is None:
            raise ValidationError("Insufficient quantity left for this item")
        self._fanout.changed(ITEMS_TABLE, ChangeEvent.UPDATE, item.item_id, {"quantity": remaining})

        if remaining <= STATIONARY_LOW_STOCK_THRESHOLD:
            log.info("stationary item %s at %s is low (%s left)", item.item_id, item.branch, remaining)
            self._fanout.email_admins(
                LOW_STOCK_EMAIL_DOMAIN,
                "alert",
                {
                    "item_id": item.item_id,
                    "item_name": item.item_name,
                    "quantity": remaining,
                    "unit": item.unit.value,
                    "branch": item.branch,
                    "staff_name": optional_text(staff_name) or f"user {int(user_id)}",
                },
            )
        return remaining

    def delete_item(self, *, current_role: Role, branch: Optional[str], item_id: int) -> None:
        item = self._stock_item(item_id)
        if current_role != Role.ADMIN and item.branch != (branch or ""):
            raise AuthorizationError("You can only remove stock from your own branch")
        if not self._requests.delete_item(item.item_id):
            raise ValidationError("Failed to delete item")
        self._fanout.changed(ITEMS_TABLE, ChangeEvent.DELETE, item.item_id)
