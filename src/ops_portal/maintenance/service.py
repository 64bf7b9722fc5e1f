from __future__ import annotations

import re
from typing import Iterable, Optional, Sequence

from ..assets.model import AssetRequest
from ..assets.service import AssetService
from ..common.datetime_utils import parse_optional_date
from ..common.logger import get_logger
from ..common.serialization import to_jsonable
from ..common.validators import optional_text, require_enum, require_non_empty
from ..core.constants import DEFAULT_LIST_LIMIT
from ..core.enums import AssetSource, ChangeEvent, ItemCondition, RequestStatus, RequestType, Role, RunningStatus
from ..core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ..notifications.fanout import Fanout
from .model import MaintenanceDetails, MaintenanceRequest
from .repository import MaintenanceRepository

log = get_logger(__name__)

TABLE = "maintenance_requests"
EMAIL_DOMAIN = "maintenance"
_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def email_data(req: MaintenanceRequest) -> dict:
    data = to_jsonable(req.details)
    data.update(
        request_id=req.request_id,
        status=req.status.value,
        staff_id=req.staff_id,
        staff_name=req.staff_name,
        requested_date=to_jsonable(req.requested_date),
    )
    return data


class MaintenanceService:
    def __init__(self, requests: MaintenanceRepository, assets: AssetService, fanout: Fanout):
        self._requests = requests
        self._assets = assets
        self._fanout = fanout

    @staticmethod
    def build_details(
        *,
        branch: str,
        brand_name: str,
        serial_number: str = "",
        workstation_number: str = "",
        report_month: str = "",
        date_of_purchase: str = "",
        warranty_end_date: str = "",
        contact_name: str = "",
        contact_number: str = "",
        condition: str = ItemCondition.USED.value,
        running_status: str = RunningStatus.RUNNING.value,
        description: str = "",
    ) -> MaintenanceDetails:
        month = optional_text(report_month)
        if month and not _MONTH_RE.match(month):
            raise ValidationError("Report month must look like YYYY-MM")

        purchased = parse_optional_date(date_of_purchase)
        warranty_end = parse_optional_date(warranty_end_date)
        if purchased and warranty_end and warranty_end < purchased:
            raise ValidationError("Warranty end date cannot be before the purchase date")

        return MaintenanceDetails(
            branch=require_non_empty(branch, "Branch"),
            brand_name=require_non_empty(brand_name, "Brand name"),
            serial_number=optional_text(serial_number),
            workstation_number=optional_text(workstation_number),
            report_month=month,
            date_of_purchase=purchased,
            warranty_end_date=warranty_end,
            contact_name=optional_text(contact_name),
            contact_number=optional_text(contact_number),
            condition=require_enum(ItemCondition, condition, "Condition"),
            running_status=require_enum(RunningStatus, running_status, "Running status"),
            description=optional_text(description),
        )

    def get(self, request_id: int) -> MaintenanceRequest:
        req = self._requests.get(int(request_id))
        if not req:
            raise NotFoundError("Maintenance request not found")
        return req

    def create(self, *, current_role: Role, user_id: int, details: MaintenanceDetails) -> int:
        if current_role not in {Role.STAFF, Role.ADMIN}:
            raise AuthorizationError("You are not allowed to submit maintenance requests")

        request_id = self._requests.create(staff_id=int(user_id), details=details)
        req = self.get(request_id)
        self._fanout.changed(TABLE, ChangeEvent.INSERT, request_id, {"status": req.status.value})

        who = req.staff_name or "A staff member"
        self._fanout.notify_admins(
            type="maintenance_request",
            title="New maintenance request",
            message=f"{who} reported {details.brand_name} ({details.serial_number or 'no serial'}) at {details.branch}",
            reference_id=request_id,
            reference_table=TABLE,
            metadata={"status": req.status.value, "branch": details.branch},
        )
        self._fanout.email_admins(EMAIL_DOMAIN, "new_request", email_data(req))
        return request_id

    def create_from_asset(
        self,
        *,
        current_role: Role,
        user_id: int,
        asset: AssetRequest,
        description: str = "",
        running_status: str = RunningStatus.NOT_RUNNING.value,
    ) -> int:
        """Move an asset to maintenance: a request prefilled from the asset record."""
        if current_role != Role.ADMIN and asset.staff_id != int(user_id):
            raise AuthorizationError("You can only send your own assets to maintenance")
        if asset.status != RequestStatus.APPROVED:
            raise ValidationError("Only approved assets can be sent to maintenance")

        details = MaintenanceDetails(
            branch=asset.branch,
            brand_name=asset.brand_name or asset.product_name,
            serial_number=asset.serial_no,
            workstation_number=asset.workstation_number,
            condition=asset.condition,
            running_status=require_enum(RunningStatus, running_status, "Running status"),
            description=optional_text(description) or f"Sent from asset {asset.asset_number}",
        )
        return self.create(current_role=current_role, user_id=user_id, details=details)

    def update(self, *, current_role: Role, user_id: int, request_id: int, details: MaintenanceDetails) -> None:
        req = self.get(request_id)
        if req.staff_id != int(user_id):
            raise AuthorizationError("You can only edit your own maintenance requests")
        if req.status != RequestStatus.PENDING:
            raise ValidationError("Only pending requests can be edited")
        if not self._requests.update_pending(request_id=req.request_id, details=details):
            raise ValidationError("This maintenance request has already been processed")
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, req.request_id)

    def delete(self, *, current_role: Role, user_id: int, request_id: int) -> None:
        req = self.get(request_id)
        if current_role != Role.ADMIN:
            if req.staff_id != int(user_id):
                raise AuthorizationError("You can only delete your own maintenance requests")
            if req.status != RequestStatus.PENDING:
                raise ValidationError("Only pending requests can be deleted")
        if not self._requests.delete(req.request_id):
            raise ValidationError("Failed to delete maintenance request")
        self._fanout.changed(TABLE, ChangeEvent.DELETE, req.request_id)

    def list(
        self,
        *,
        current_role: Role,
        user_id: int,
        status: Optional[str] = None,
        branch: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[MaintenanceRequest]:
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
        request_id: int,
        admin_notes: str = "",
    ) -> MaintenanceRequest:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can approve maintenance requests")

        req = self.get(request_id)
        notes = optional_text(admin_notes)
        if not self._requests.decide(
            request_id=req.request_id,
            status=RequestStatus.APPROVED,
            decided_by=int(admin_user_id),
            admin_notes=notes,
        ):
            raise ValidationError("This maintenance request has already been processed")

        approved = self.get(req.request_id)
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, req.request_id, {"status": RequestStatus.APPROVED.value})
        self._fanout.notify_user(
            req.staff_id,
            type="maintenance_status_update",
            title="Maintenance request approved",
            message=f"Your maintenance request for {req.details.brand_name} was approved.",
            reference_id=req.request_id,
            reference_table=TABLE,
            metadata={"status": RequestStatus.APPROVED.value, "admin_notes": notes},
        )

        d = approved.details
        try:
            self._assets.create_approved(
                AssetService.from_source(
                    staff_id=approved.staff_id,
                    branch=d.branch,
                    brand_name=d.brand_name,
                    serial_no=d.serial_number,
                    workstation_number=d.workstation_number,
                    condition=d.condition,
                    source=AssetSource.MAINTENANCE,
                    request_type=RequestType.SYSTEM,
                ),
                approved_by=int(admin_user_id),
                admin_notes=f"Created from maintenance request #{approved.request_id}",
            )
        except Exception:
            log.exception("asset follow-up failed for maintenance request %s", approved.request_id)

        self._fanout.email_user(EMAIL_DOMAIN, "approved", email_data(approved), approved.staff_id, adminNotes=notes)
        return approved

    def reject(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        request_id: int,
        rejection_reason: str,
        admin_notes: str = "",
    ) -> MaintenanceRequest:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can reject maintenance requests")

        reason = require_non_empty(rejection_reason, "Rejection reason")
        req = self.get(request_id)
        if not self._requests.decide(
            request_id=req.request_id,
            status=RequestStatus.REJECTED,
            decided_by=int(admin_user_id),
            admin_notes=optional_text(admin_notes),
            rejection_reason=reason,
        ):
            raise ValidationError("This maintenance request has already been processed")

        rejected = self.get(req.request_id)
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, req.request_id, {"status": RequestStatus.REJECTED.value})
        self._fanout.notify_user(
            req.staff_id,
            type="maintenance_status_update",
            title="Maintenance request rejected",
            message=f"Your maintenance request for {req.details.brand_name} was rejected: {reason}",
            reference_id=req.request_id,
            reference_table=TABLE,
            metadata={"status": RequestStatus.REJECTED.value, "rejection_reason": reason},
        )
        self._fanout.email_user(EMAIL_DOMAIN, "rejected", email_data(rejected), rejected.staff_id, rejectionReason=reason)
        return rejected
