from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Protocol, Sequence

from ..core.enums import RequestStatus
from .model import GroceryItem, GroceryRequest, StationaryItem


class GroceryRepository(Protocol):
    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        raise NotImplementedError

    def create(
        self,
        *,
        staff_id: int,
        branch: str,
        notes: Optional[str],
        items: Sequence[GroceryItem],
        total_amount: Decimal,
    ) -> int:
        raise NotImplementedError

    def get(self, grocery_id: int) -> Optional[GroceryRequest]:
        raise NotImplementedError

    def list(
        self,
        *,
        status: Optional[RequestStatus] = None,
        staff_id: Optional[int] = None,
        branch: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[GroceryRequest]:
        raise NotImplementedError

    def update_pending(
        self,
        *,
        grocery_id: int,
        notes: Optional[str],
        items: Sequence[GroceryItem],
        total_amount: Decimal,
    ) -> bool:
        """Replace notes and the whole item list while the request is still pending."""
        raise NotImplementedError

    def delete(self, grocery_id: int) -> bool:
        raise NotImplementedError

    def decide(
        self,
        *,
        grocery_id: int,
        status: RequestStatus,
        decided_by: int,
        admin_notes: Optional[str],
        rejection_reason: Optional[str] = None,
    ) -> bool:
        raise NotImplementedError

    def count_by_status(self, status: RequestStatus) -> int:
        raise NotImplementedError

    def stationary_items(self, *, branch: str) -> Sequence[StationaryItem]:
        raise NotImplementedError

    def get_item(self, item_id: int) -> Optional[StationaryItem]:
        raise NotImplementedError

    def take_item(self, *, item_id: int, quantity: int) -> Optional[int]:
        """Subtract ``quantity`` if enough is left; returns the new quantity or None."""
        raise NotImplementedError

    def delete_item(self, item_id: int) -> bool:
        raise NotImplementedError
