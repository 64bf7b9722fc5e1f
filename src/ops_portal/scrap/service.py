from __future__ import annotations

from typing import Iterable, Optional, Sequence

from ..assets.model import AssetRequest
from ..assets.service import AssetService
from ..common.logger import get_logger
from ..common.serialization import to_jsonable
from ..common.validators import optional_text, require_enum, require_non_empty
from ..core.constants import DEFAULT_LIST_LIMIT
from ..core.enums import ChangeEvent, RequestStatus, Role, ScrapCondition, SubmitterType
from ..core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ..email.templates import SUBMITTER
from ..notifications.fanout import Fanout
from ..users.service import UserService
from .model import ScrapDetails, ScrapRequest
from .repository import ScrapRepository

log = get_logger(__name__)

TABLE = "scrap_requests"
EMAIL_DOMAIN = "scrap"


def email_data(scrap: ScrapRequest) -> dict:
    data = to_jsonable(scrap.details)
    data.update(
        scrap_id=scrap.scrap_id,
        status=scrap.status.value,
        submitter_type=scrap.submitter_type.value,
        submitter_name=scrap.submitter_name,
        source_asset_id=scrap.source_asset_id,
    )
    return data


class ScrapService:
    def __init__(self, scraps: ScrapRepository, assets: AssetService, users: UserService, fanout: Fanout):
        self._scraps = scraps
        self._assets = assets
        self._users = users
        self._fanout = fanout

    @staticmethod
    def build_details(
        *,
        branch: str,
        brand_name: str,
        scrap_status: str,
        workstation_number: str = "",
        users_name: str = "",
        serial_number: str = "",
        other_issue: str = "",
    ) -> ScrapDetails:
        return ScrapDetails(
            branch=require_non_empty(branch, "Branch"),
            brand_name=require_non_empty(brand_name, "Brand name"),
            scrap_status=require_enum(ScrapCondition, scrap_status, "Scrap status"),
            workstation_number=optional_text(workstation_number),
            users_name=optional_text(users_name),
            serial_number=optional_text(serial_number),
            other_issue=optional_text(other_issue),
        )

    def get(self, scrap_id: int) -> ScrapRequest:
        scrap = self._scraps.get(int(scrap_id))
        if not scrap:
            raise NotFoundError("Scrap request not found")
        return scrap

    def create(
        self,
        *,
        current_role: Role,
        user_id: int,
        details: ScrapDetails,
        source_asset_id: Optional[int] = None,
    ) -> int:
        if current_role not in {Role.STAFF, Role.ADMIN}:
            raise AuthorizationError("You are not allowed to submit scrap requests")

        submitter = self._users.get(user_id)
        submitter_type = SubmitterType.ADMIN if current_role == Role.ADMIN else SubmitterType.STAFF
        scrap_id = self._scraps.create(
            submitter_type=submitter_type,
            submitter_id=submitter.user_id,
            submitter_name=submitter.full_name,
            details=details,
            source_asset_id=source_asset_id,
        )
        scrap = self.get(scrap_id)
        self._fanout.changed(TABLE, ChangeEvent.INSERT, scrap_id, {"status": scrap.status.value})

        self._fanout.notify_admins(
            type="scrap_request",
            title="New scrap request",
            message=f"{submitter.full_name} asked to scrap {details.brand_name} ({details.serial_number or 'no serial'}) at {details.branch}",
            reference_id=scrap_id,
            reference_table=TABLE,
            metadata={"status": scrap.status.value, "scrap_status": details.scrap_status.value},
        )
        self._fanout.email_admins(EMAIL_DOMAIN, "new_request", email_data(scrap))
        return scrap_id

    def create_from_asset(
        self,
        *,
        current_role: Role,
        user_id: int,
        asset: AssetRequest,
        scrap_status: str = ScrapCondition.DAMAGED.value,
        other_issue: str = "",
    ) -> int:
        """Move an asset to scrap. The asset row is deleted once the scrap request is approved."""
        if current_role != Role.ADMIN and asset.staff_id != int(user_id):
            raise AuthorizationError("You can only scrap your own assets")
        if asset.status != RequestStatus.APPROVED:
            raise ValidationError("Only approved assets can be scrapped")

        owner = self._users.find(asset.staff_id)
        details = ScrapDetails(
            branch=asset.branch,
            brand_name=asset.brand_name or asset.product_name,
            scrap_status=require_enum(ScrapCondition, scrap_status, "Scrap status"),
            workstation_number=asset.workstation_number,
            users_name=owner.full_name if owner else None,
            serial_number=asset.serial_no,
            other_issue=optional_text(other_issue) or f"Sent from asset {asset.asset_number}",
        )
        return self.create(current_role=current_role, user_id=user_id, details=details, source_asset_id=asset.asset_id)

    def update(self, *, current_role: Role, user_id: int, scrap_id: int, details: ScrapDetails) -> None:
        scrap = self.get(scrap_id)
        if scrap.submitter_id != int(user_id):
            raise AuthorizationError("You can only edit your own scrap requests")
        if scrap.status != RequestStatus.PENDING:
            raise ValidationError("Only pending scrap requests can be edited")
        if not self._scraps.update_pending(scrap_id=scrap.scrap_id, details=details):
            raise ValidationError("This scrap request has already been processed")
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, scrap.scrap_id)

    def delete(self, *, current_role: Role, user_id: int, scrap_id: int) -> None:
        scrap = self.get(scrap_id)
        if current_role != Role.ADMIN:
            if scrap.submitter_id != int(user_id):
                raise AuthorizationError("You can only delete your own scrap requests")
            if scrap.status != RequestStatus.PENDING:
                raise ValidationError("Only pending scrap requests can be deleted")
        if not self._scraps.delete(scrap.scrap_id):
            raise ValidationError("Failed to delete scrap request")
        self._fanout.changed(TABLE, ChangeEvent.DELETE, scrap.scrap_id)

    def list(
        self,
        *,
        current_role: Role,
        user_id: int,
        status: Optional[str] = None,
        branch: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[ScrapRequest]:
        status_v = require_enum(RequestStatus, status, "Status") if status else None
        submitter_id = None if current_role == Role.ADMIN else int(user_id)
        return self._scraps.list(status=status_v, submitter_id=submitter_id, branch=optional_text(branch), limit=int(limit))

    def badge_rows(self, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return self._scraps.badge_rows(statuses=statuses, owner_id=owner_id)

    def pending_count(self) -> int:
        return self._scraps.count_by_status(RequestStatus.PENDING)

    def _decide(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        scrap_id: int,
        status: RequestStatus,
        admin_response: str,
    ) -> ScrapRequest:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can review scrap requests")

        scrap = self.get(scrap_id)
        response = optional_text(admin_response)
        if status == RequestStatus.REJECTED and not response:
            raise ValidationError("Please give a reason for the rejection")

        if not self._scraps.decide(
            scrap_id=scrap.scrap_id,
            status=status,
            decided_by=int(admin_user_id),
            admin_response=response,
        ):
            raise ValidationError("This scrap request has already been processed")

        decided = self.get(scrap.scrap_id)
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, scrap.scrap_id, {"status": status.value})

        if status == RequestStatus.APPROVED and decided.source_asset_id is not None:
            try:
                if not self._assets.remove(decided.source_asset_id):
                    log.warning("source asset %s of scrap %s was already gone", decided.source_asset_id, decided.scrap_id)
            except Exception:
                log.exception("asset removal failed for scrap request %s", decided.scrap_id)

        verb = "approved" if status == RequestStatus.APPROVED else "rejected"
        self._fanout.notify_user(
            scrap.submitter_id,
            type="scrap_status_update",
            title=f"Scrap request {verb}",
            message=f"Your scrap request for {scrap.details.brand_name} was {verb}.",
            reference_id=scrap.scrap_id,
            reference_table=TABLE,
            metadata={"status": status.value, "admin_response": response},
        )
        self._fanout.email_user(
            EMAIL_DOMAIN,
            verb,
            email_data(decided),
            decided.submitter_id,
            field=SUBMITTER,
            adminResponse=response,
        )
        return decided

    def approve(self, *, current_role: Role, admin_user_id: int, scrap_id: int, admin_response: str = "") -> ScrapRequest:
        return self._decide(
            current_role=current_role,
            admin_user_id=admin_user_id,
            scrap_id=scrap_id,
            status=RequestStatus.APPROVED,
            admin_response=admin_response,
        )

    def reject(self, *, current_role: Role, admin_user_id: int, scrap_id: int, admin_response: str = "") -> ScrapRequest:
        return self._decide(
            current_role=current_role,
            admin_user_id=admin_user_id,
            scrap_id=scrap_id,
            status=RequestStatus.REJECTED,
            admin_response=admin_response,
        )
