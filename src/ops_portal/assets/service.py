from __future__ import annotations

from typing import Iterable, Optional, Sequence

from ..common.logger import get_logger
from ..common.sequences import next_number
from ..common.validators import optional_text, require_enum, require_non_empty, require_positive_int
from ..core.constants import ASSET_NUMBER_PREFIX, DEFAULT_LIST_LIMIT, RECORD_NUMBER_DIGITS, NUMBER_MAX_ATTEMPTS
from ..core.enums import AssetSource, ChangeEvent, ItemCondition, RequestStatus, RequestType, Role
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..notifications.fanout import Fanout
from .model import AssetRequest, NewAsset
from .repository import AssetRepository

log = get_logger(__name__)

TABLE = "asset_requests"
EMAIL_DOMAIN = "asset"


class AssetService:
    def __init__(self, assets: AssetRepository, fanout: Fanout):
        self._assets = assets
        self._fanout = fanout

    def _insert(
        self,
        asset: NewAsset,
        *,
        status: RequestStatus,
        approved_by: Optional[int] = None,
        admin_notes: Optional[str] = None,
    ) -> int:
        existing = self._assets.list_asset_numbers()
        for attempt in range(NUMBER_MAX_ATTEMPTS):
            number = next_number(ASSET_NUMBER_PREFIX, existing, digits=RECORD_NUMBER_DIGITS, bump=attempt)
            try:
                asset_id = self._assets.create(
                    asset_number=number,
                    asset=asset,
                    status=status,
                    approved_by=approved_by,
                    admin_notes=admin_notes,
                )
            except ConflictError:
                log.info("asset number %s taken, retrying", number)
                continue
            self._fanout.changed(TABLE, ChangeEvent.INSERT, asset_id, {"asset_number": number})
            return asset_id
        raise ConflictError("Could not allocate a unique asset number, please retry")

    def get(self, asset_id: int) -> AssetRequest:
        asset = self._assets.get(int(asset_id))
        if not asset:
            raise NotFoundError("Asset request not found")
        return asset

    def create_request(
        self,
        *,
        current_role: Role,
        user_id: int,
        branch: str,
        product_name: str,
        brand_name: str = "",
        serial_no: str = "",
        workstation_number: str = "",
        quantity=1,
        condition: str = ItemCondition.NEW.value,
        warranty: str = "",
        request_type: str = RequestType.COMMON.value,
    ) -> int:
        if current_role not in {Role.STAFF, Role.ADMIN}:
            raise AuthorizationError("You are not allowed to request assets")

        new = NewAsset(
            staff_id=int(user_id),
            branch=require_non_empty(branch, "Branch"),
            product_name=require_non_empty(product_name, "Product name"),
            brand_name=optional_text(brand_name),
            serial_no=optional_text(serial_no),
            workstation_number=optional_text(workstation_number),
            quantity=require_positive_int(quantity, "Quantity"),
            condition=require_enum(ItemCondition, condition, "Condition"),
            warranty=optional_text(warranty),
            request_type=require_enum(RequestType, request_type, "Request type"),
        )
        asset_id = self._insert(new, status=RequestStatus.PENDING)
        asset = self.get(asset_id)

        self._fanout.notify_admins(
            type="asset_request",
            title="New asset request",
            message=f"{asset.asset_number}: {asset.product_name} requested for {asset.branch}",
            reference_id=asset_id,
            reference_table=TABLE,
            metadata={"asset_number": asset.asset_number, "status": asset.status.value},
        )
        self._fanout.email_admins(EMAIL_DOMAIN, "new_request", asset)
        return asset_id

    def create_approved(self, asset: NewAsset, *, approved_by: int, admin_notes: Optional[str] = None) -> int:
        """Record an asset that is approved on creation (maintenance or purchase follow-up)."""
        if not (asset.product_name or "").strip():
            raise ValidationError("Product name is required")
        return self._insert(asset, status=RequestStatus.APPROVED, approved_by=int(approved_by), admin_notes=admin_notes)

    def list(
        self,
        *,
        current_role: Role,
        user_id: int,
        status: Optional[str] = None,
        branch: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[AssetRequest]:
        status_v = require_enum(RequestStatus, status, "Status") if status else None
        staff_id = None if current_role == Role.ADMIN else int(user_id)
        return self._assets.list(status=status_v, staff_id=staff_id, branch=optional_text(branch), limit=int(limit))

    def badge_rows(self, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return self._assets.badge_rows(statuses=statuses, owner_id=owner_id)

    def pending_count(self) -> int:
        return self._assets.count_by_status(RequestStatus.PENDING)

    def _decide(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        asset_id: int,
        status: RequestStatus,
        admin_notes: str,
    ) -> AssetRequest:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can review asset requests")

        asset = self.get(asset_id)
        notes = optional_text(admin_notes)
        if status == RequestStatus.REJECTED and not notes:
            raise ValidationError("Please give a reason for the rejection")

        if not self._assets.decide(asset_id=asset.asset_id, status=status, decided_by=int(admin_user_id), admin_notes=notes):
            raise ValidationError("This asset request has already been processed")

        decided = self.get(asset.asset_id)
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, asset.asset_id, {"status": status.value})

        verb = "approved" if status == RequestStatus.APPROVED else "rejected"
        self._fanout.notify_user(
            asset.staff_id,
            type="asset_status_update",
            title=f"Asset request {verb}",
            message=f"Your asset request {asset.asset_number} ({asset.product_name}) was {verb}.",
            reference_id=asset.asset_id,
            reference_table=TABLE,
            metadata={"status": status.value, "admin_notes": notes},
        )
        extra = {"adminNotes": notes} if status == RequestStatus.APPROVED else {"rejectionReason": notes}
        self._fanout.email_user(EMAIL_DOMAIN, verb, decided, asset.staff_id, **extra)
        return decided

    def approve(self, *, current_role: Role, admin_user_id: int, asset_id: int, admin_notes: str = "") -> AssetRequest:
        return self._decide(
            current_role=current_role,
            admin_user_id=admin_user_id,
            asset_id=asset_id,
            status=RequestStatus.APPROVED,
            admin_notes=admin_notes,
        )

    def reject(self, *, current_role: Role, admin_user_id: int, asset_id: int, admin_notes: str = "") -> AssetRequest:
        return self._decide(
            current_role=current_role,
            admin_user_id=admin_user_id,
            asset_id=asset_id,
            status=RequestStatus.REJECTED,
            admin_notes=admin_notes,
        )

    def delete(self, *, current_role: Role, user_id: int, asset_id: int) -> None:
        asset = self.get(asset_id)
        if current_role != Role.ADMIN:
            if asset.staff_id != int(user_id):
                raise AuthorizationError("You can only delete your own asset requests")
            if asset.status != RequestStatus.PENDING:
                raise ValidationError("Only pending asset requests can be deleted")
        self.remove(asset.asset_id)

    def remove(self, asset_id: int) -> bool:
        """Delete without checks (scrap follow-up). Returns False if nothing was deleted."""
        deleted = self._assets.delete(int(asset_id))
        if deleted:
            self._fanout.changed(TABLE, ChangeEvent.DELETE, int(asset_id))
        return deleted

    @staticmethod
    def from_source(
        *,
        staff_id: int,
        branch: str,
        brand_name: Optional[str],
        serial_no: Optional[str],
        source: AssetSource,
        product_name: Optional[str] = None,
        workstation_number: Optional[str] = None,
        quantity: int = 1,
        condition: ItemCondition = ItemCondition.NEW,
        warranty: Optional[str] = None,
        request_type: RequestType = RequestType.SYSTEM,
    ) -> NewAsset:
        name = (product_name or "").strip()
        if not name:
            parts = [p for p in ((brand_name or "").strip(), (serial_no or "").strip()) if p]
            name = " - ".join(parts) if parts else "Unnamed asset"
        return NewAsset(
            staff_id=int(staff_id),
            branch=branch,
            product_name=name,
            brand_name=brand_name,
            serial_no=serial_no,
            workstation_number=workstation_number,
            quantity=int(quantity or 1),
            condition=condition,
            warranty=warranty,
            request_type=request_type,
            source=source,
        )
