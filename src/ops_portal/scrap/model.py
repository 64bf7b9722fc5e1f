from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import RequestStatus, ScrapCondition, SubmitterType


@dataclass(frozen=True)
class ScrapDetails:
    branch: str
    brand_name: str
    scrap_status: ScrapCondition
    workstation_number: Optional[str] = None
    users_name: Optional[str] = None
    serial_number: Optional[str] = None
    other_issue: Optional[str] = None


@dataclass(frozen=True)
class ScrapRequest:
    scrap_id: int
    submitter_type: SubmitterType
    submitter_id: int
    submitter_name: str
    details: ScrapDetails
    source_asset_id: Optional[int] = None
    status: RequestStatus = RequestStatus.PENDING
    admin_response: Optional[str] = None
    admin_approver_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
