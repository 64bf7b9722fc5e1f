from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import AssetSource, ItemCondition, RequestStatus, RequestType


@dataclass(frozen=True)
class AssetRequest:
    asset_id: int
    asset_number: str
    staff_id: int
    branch: str
    product_name: str
    brand_name: Optional[str] = None
    serial_no: Optional[str] = None
    workstation_number: Optional[str] = None
    quantity: int = 1
    condition: ItemCondition = ItemCondition.NEW
    warranty: Optional[str] = None
    request_type: RequestType = RequestType.COMMON
    status: RequestStatus = RequestStatus.PENDING
    source: AssetSource = AssetSource.MANUAL
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class NewAsset:
    staff_id: int
    branch: str
    product_name: str
    brand_name: Optional[str] = None
    serial_no: Optional[str] = None
    workstation_number: Optional[str] = None
    quantity: int = 1
    condition: ItemCondition = ItemCondition.NEW
    warranty: Optional[str] = None
    request_type: RequestType = RequestType.COMMON
    source: AssetSource = AssetSource.MANUAL
