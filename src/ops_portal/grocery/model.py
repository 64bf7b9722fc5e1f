from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from ..core.enums import GroceryUnit, RequestStatus


@dataclass(frozen=True)
class GroceryItem:
    item_name: str
    unit: GroceryUnit
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    item_id: Optional[int] = None
    grocery_id: Optional[int] = None


@dataclass(frozen=True)
class GroceryRequest:
    """A stationary/grocery purchase request raised by a branch."""

    grocery_id: int
    staff_id: int
    branch: str
    items: Tuple[GroceryItem, ...] = ()
    notes: Optional[str] = None
    total_amount: Decimal = Decimal("0.00")
    status: RequestStatus = RequestStatus.PENDING
    requested_date: Optional[datetime] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    staff_name: Optional[str] = None


@dataclass(frozen=True)
class StationaryItem:
    """Stock left on an item of an approved request."""

    item_id: int
    grocery_id: int
    item_name: str
    unit: GroceryUnit
    quantity: int
    branch: str
    last_added_date: Optional[datetime] = None
    added_by_staff_name: Optional[str] = None
