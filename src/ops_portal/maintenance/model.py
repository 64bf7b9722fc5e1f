from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..core.enums import ItemCondition, RequestStatus, RunningStatus


@dataclass(frozen=True)
class MaintenanceDetails:
    """Fields a staff member fills in (and may edit while pending)."""

    branch: str
    brand_name: str
    serial_number: Optional[str] = None
    workstation_number: Optional[str] = None
    report_month: Optional[str] = None  # YYYY-MM
    date_of_purchase: Optional[date] = None
    warranty_end_date: Optional[date] = None
    contact_name: Optional[str] = None
    contact_number: Optional[str] = None
    condition: ItemCondition = ItemCondition.USED
    running_status: RunningStatus = RunningStatus.RUNNING
    description: Optional[str] = None


@dataclass(frozen=True)
class MaintenanceRequest:
    request_id: int
    staff_id: int
    details: MaintenanceDetails
    status: RequestStatus = RequestStatus.PENDING
    requested_date: Optional[datetime] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    staff_name: Optional[str] = None
