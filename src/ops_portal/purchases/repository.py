from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence

from ..core.enums import PurchaseStatus
from .model import PurchaseProduct, PurchaseRequisition, RequisitionDetails


class PurchaseRepository(Protocol):
    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        raise NotImplementedError

    def create(self, *, staff_id: int, details: RequisitionDetails) -> int:
        raise NotImplementedError

    def get(self, requisition_id: int) -> Optional[PurchaseRequisition]:
        raise NotImplementedError

    def list(
        self,
        *,
        status: Optional[PurchaseStatus] = None,
        staff_id: Optional[int] = None,
        branch: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[PurchaseRequisition]:
        raise NotImplementedError

    def update_pending(self, *, requisition_id: int, details: RequisitionDetails) -> bool:
        raise NotImplementedError

    def delete(self, requisition_id: int) -> bool:
        raise NotImplementedError

    def decide(
        self,
        *,
        requisition_id: int,
        status: PurchaseStatus,
        decided_by: int,
        admin_notes: Optional[str],
        rejection_reason: Optional[str] = None,
    ) -> bool:
        """pending -> verification_pending | rejected."""
        raise NotImplementedError

    def save_product(self, *, requisition_id: int, product: PurchaseProduct) -> bool:
        """verification_pending -> awaiting_final_verification."""
        raise NotImplementedError

    def finalize(
        self,
        *,
        requisition_id: int,
        status: PurchaseStatus,
        verified_by: int,
        verification_notes: Optional[str],
        proof_rejection_reason: Optional[str] = None,
    ) -> bool:
        """awaiting_final_verification -> completed | verification_pending."""
        raise NotImplementedError

    def count_by_status(self, status: PurchaseStatus) -> int:
        raise NotImplementedError
