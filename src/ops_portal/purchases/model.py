from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from ..core.enums import ItemCondition, PurchaseStatus, RequestType


@dataclass(frozen=True)
class RequisitionDetails:
    name: str
    branch: str
    purchase_item: str
    designation: Optional[str] = None
    department: Optional[str] = None
    description: Optional[str] = None
    request_type: RequestType = RequestType.COMMON


@dataclass(frozen=True)
class PurchaseProduct:
    """Details of the bought item, uploaded by staff after approval."""

    product_name: str
    brand_name: Optional[str] = None
    serial_no: Optional[str] = None
    warranty: Optional[str] = None
    condition: ItemCondition = ItemCondition.NEW
    specification: Optional[str] = None
    quantity: int = 1
    price: Optional[Decimal] = None
    shop_contact: Optional[str] = None
    uploaded_at: Optional[datetime] = None


@dataclass(frozen=True)
class PurchaseRequisition:
    requisition_id: int
    staff_id: int
    details: RequisitionDetails
    status: PurchaseStatus = PurchaseStatus.PENDING
    product: Optional[PurchaseProduct] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    verification_notes: Optional[str] = None
    proof_rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    staff_name: Optional[str] = None
