from __future__ import annotations

from typing import Iterable, Optional, Sequence

from ..assets.service import AssetService
from ..common.logger import get_logger
from ..common.serialization import to_jsonable
from ..common.validators import (
    optional_text,
    require_amount,
    require_enum,
    require_non_empty,
    require_positive_int,
)
from ..core.constants import DEFAULT_LIST_LIMIT
from ..core.enums import AssetSource, ChangeEvent, ItemCondition, PurchaseStatus, RequestType, Role
from ..core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ..notifications.fanout import Fanout
from .model import PurchaseProduct, PurchaseRequisition, RequisitionDetails
from .repository import PurchaseRepository

log = get_logger(__name__)

TABLE = "purchase_requisitions"
EMAIL_DOMAIN = "purchase"


def email_data(req: PurchaseRequisition) -> dict:
    data = to_jsonable(req.details)
    if req.product:
        data.update(to_jsonable(req.product))
    data.update(
        requisition_id=req.requisition_id,
        status=req.status.value,
        staff_id=req.staff_id,
        staff_name=req.staff_name,
    )
    return data


class PurchaseService:
    """Purchase requisitions.

    Lifecycle: pending -> verification_pending (approved, waiting for the
    product details) -> awaiting_final_verification -> completed. Rejection
    at the first step is final; rejection at final verification sends the
    requisition back to verification_pending so staff can re-upload.
    """

    def __init__(self, requisitions: PurchaseRepository, assets: AssetService, fanout: Fanout):
        self._requisitions = requisitions
        self._assets = assets
        self._fanout = fanout

    @staticmethod
    def build_details(
        *,
        name: str,
        branch: str,
        purchase_item: str,
        designation: str = "",
        department: str = "",
        description: str = "",
        request_type: str = RequestType.COMMON.value,
    ) -> RequisitionDetails:
        return RequisitionDetails(
            name=require_non_empty(name, "Name"),
            branch=require_non_empty(branch, "Branch"),
            purchase_item=require_non_empty(purchase_item, "Purchase item"),
            designation=optional_text(designation),
            department=optional_text(department),
            description=optional_text(description),
            request_type=require_enum(RequestType, request_type, "Request type"),
        )

    @staticmethod
    def build_product(
        *,
        product_name: str,
        brand_name: str = "",
        serial_no: str = "",
        warranty: str = "",
        condition: str = ItemCondition.NEW.value,
        specification: str = "",
        quantity=1,
        price=None,
        shop_contact: str = "",
    ) -> PurchaseProduct:
        return PurchaseProduct(
            product_name=require_non_empty(product_name, "Product name"),
            brand_name=optional_text(brand_name),
            serial_no=optional_text(serial_no),
            warranty=optional_text(warranty),
            condition=require_enum(ItemCondition, condition, "Condition"),
            specification=optional_text(specification),
            quantity=require_positive_int(quantity, "Quantity"),
            price=require_amount(price, "Price") if price not in (None, "") else None,
            shop_contact=optional_text(shop_contact),
        )

    def get(self, requisition_id: int) -> PurchaseRequisition:
        req = self._requisitions.get(int(requisition_id))
        if not req:
            raise NotFoundError("Purchase requisition not found")
        return req

    def create(self, *, current_role: Role, user_id: int, details: RequisitionDetails) -> int:
        if current_role not in {Role.STAFF, Role.ADMIN}:
            raise AuthorizationError("You are not allowed to submit purchase requisitions")

        requisition_id = self._requisitions.create(staff_id=int(user_id), details=details)
        req = self.get(requisition_id)
        self._fanout.changed(TABLE, ChangeEvent.INSERT, requisition_id, {"status": req.status.value})

        self._fanout.notify_admins(
            type="purchase_request",
            title="New purchase requisition",
            message=f"{details.name} requested {details.purchase_item} for {details.branch}",
            reference_id=requisition_id,
            reference_table=TABLE,
            metadata={"status": req.status.value, "request_type": details.request_type.value},
        )
        self._fanout.email_admins(EMAIL_DOMAIN, "new_request", email_data(req))
        return requisition_id

    def update(self, *, current_role: Role, user_id: int, requisition_id: int, details: RequisitionDetails) -> None:
        req = self.get(requisition_id)
        if req.staff_id != int(user_id):
            raise AuthorizationError("You can only edit your own requisitions")
        if req.status != PurchaseStatus.PENDING:
            raise ValidationError("Only pending requisitions can be edited")
        if not self._requisitions.update_pending(requisition_id=req.requisition_id, details=details):
            raise ValidationError("This requisition has already been processed")
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, req.requisition_id)

    def delete(self, *, current_role: Role, user_id: int, requisition_id: int) -> None:
        req = self.get(requisition_id)
        if current_role != Role.ADMIN:
            if req.staff_id != int(user_id):
                raise AuthorizationError("You can only delete your own requisitions")
            if req.status != PurchaseStatus.PENDING:
                raise ValidationError("Only pending requisitions can be deleted")
        if not self._requisitions.delete(req.requisition_id):
            raise ValidationError("Failed to delete requisition")
        self._fanout.changed(TABLE, ChangeEvent.DELETE, req.requisition_id)

    def list(
        self,
        *,
        current_role: Role,
        user_id: int,
        status: Optional[str] = None,
        branch: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[PurchaseRequisition]:
        status_v = require_enum(PurchaseStatus, status, "Status") if status else None
        staff_id = None if current_role == Role.ADMIN else int(user_id)
        return self._requisitions.list(status=status_v, staff_id=staff_id, branch=optional_text(branch), limit=int(limit))

    def badge_rows(self, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return self._requisitions.badge_rows(statuses=statuses, owner_id=owner_id)

    def pending_count(self) -> int:
        return self._requisitions.count_by_status(PurchaseStatus.PENDING)

    def awaiting_verification_count(self) -> int:
        return self._requisitions.count_by_status(PurchaseStatus.AWAITING_FINAL_VERIFICATION)

    def approve(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        requisition_id: int,
        admin_notes: str = "",
    ) -> PurchaseRequisition:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can approve requisitions")

        req = self.get(requisition_id)
        notes = optional_text(admin_notes)
        if not self._requisitions.decide(
            requisition_id=req.requisition_id,
            status=PurchaseStatus.VERIFICATION_PENDING,
            decided_by=int(admin_user_id),
            admin_notes=notes,
        ):
            raise ValidationError("This requisition has already been processed")

        approved = self.get(req.requisition_id)
        self._fanout.changed(
            TABLE, ChangeEvent.UPDATE, req.requisition_id, {"status": PurchaseStatus.VERIFICATION_PENDING.value}
        )
        self._fanout.notify_user(
            req.staff_id,
            type="purchase_status_update",
            title="Purchase requisition approved",
            message=f"Your requisition for {req.details.purchase_item} was approved. Please upload the product details.",
            reference_id=req.requisition_id,
            reference_table=TABLE,
            metadata={"status": PurchaseStatus.VERIFICATION_PENDING.value, "admin_notes": notes},
        )
        self._fanout.email_user(EMAIL_DOMAIN, "approved", email_data(approved), approved.staff_id, adminNotes=notes)
        return approved

    def reject(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        requisition_id: int,
        rejection_reason: str,
        admin_notes: str = "",
    ) -> PurchaseRequisition:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can reject requisitions")

        reason = require_non_empty(rejection_reason, "Rejection reason")
        req = self.get(requisition_id)
        if not self._requisitions.decide(
            requisition_id=req.requisition_id,
            status=PurchaseStatus.REJECTED,
            decided_by=int(admin_user_id),
            admin_notes=optional_text(admin_notes),
            rejection_reason=reason,
        ):
            raise ValidationError("This requisition has already been processed")

        rejected = self.get(req.requisition_id)
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, req.requisition_id, {"status": PurchaseStatus.REJECTED.value})
        self._fanout.notify_user(
            req.staff_id,
            type="purchase_status_update",
            title="Purchase requisition rejected",
            message=f"Your requisition for {req.details.purchase_item} was rejected: {reason}",
            reference_id=req.requisition_id,
            reference_table=TABLE,
            metadata={"status": PurchaseStatus.REJECTED.value, "rejection_reason": reason},
        )
        self._fanout.email_user(EMAIL_DOMAIN, "rejected", email_data(rejected), rejected.staff_id, rejectionReason=reason)
        return rejected

    def upload_product(
        self,
        *,
        current_role: Role,
        user_id: int,
        requisition_id: int,
        product: PurchaseProduct,
    ) -> PurchaseRequisition:
        req = self.get(requisition_id)
        if current_role != Role.ADMIN and req.staff_id != int(user_id):
            raise AuthorizationError("You can only upload product details for your own requisitions")
        if req.status != PurchaseStatus.VERIFICATION_PENDING:
            raise ValidationError("Product details can only be uploaded after approval")
        if not self._requisitions.save_product(requisition_id=req.requisition_id, product=product):
            raise ValidationError("This requisition is no longer waiting for product details")

        uploaded = self.get(req.requisition_id)
        self._fanout.changed(
            TABLE,
            ChangeEvent.UPDATE,
            req.requisition_id,
            {"status": PurchaseStatus.AWAITING_FINAL_VERIFICATION.value},
        )
        self._fanout.notify_admins(
            type="purchase_product_uploaded",
            title="Purchase product details uploaded",
            message=f"{product.product_name} was uploaded for requisition #{req.requisition_id}",
            reference_id=req.requisition_id,
            reference_table=TABLE,
            metadata={"status": PurchaseStatus.AWAITING_FINAL_VERIFICATION.value},
        )
        self._fanout.email_admins(EMAIL_DOMAIN, "product_uploaded", email_data(uploaded))
        return uploaded

    def final_verify(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        requisition_id: int,
        approve: bool,
        notes: str = "",
    ) -> PurchaseRequisition:
        """Final check of the uploaded product. Approval completes the
        requisition and records the product as an approved asset."""
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can verify purchases")

        req = self.get(requisition_id)
        text = optional_text(notes)
        if not approve and not text:
            raise ValidationError("Please give a reason for sending the product details back")

        status = PurchaseStatus.COMPLETED if approve else PurchaseStatus.VERIFICATION_PENDING
        if not self._requisitions.finalize(
            requisition_id=req.requisition_id,
            status=status,
            verified_by=int(admin_user_id),
            verification_notes=text if approve else None,
            proof_rejection_reason=None if approve else text,
        ):
            raise ValidationError("This requisition is not awaiting final verification")

        done = self.get(req.requisition_id)
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, req.requisition_id, {"status": status.value})

        if not approve:
            self._fanout.notify_user(
                req.staff_id,
                type="purchase_product_rejected",
                title="Product details sent back",
                message=f"Please correct the product details for requisition #{req.requisition_id}: {text}",
                reference_id=req.requisition_id,
                reference_table=TABLE,
                metadata={"status": status.value, "proof_rejection_reason": text},
            )
            self._fanout.email_user(EMAIL_DOMAIN, "product_rejected", email_data(done), done.staff_id, rejectionReason=text)
            return done

        self._fanout.notify_user(
            req.staff_id,
            type="purchase_completed",
            title="Purchase completed",
            message=f"Requisition #{req.requisition_id} was verified and added to assets.",
            reference_id=req.requisition_id,
            reference_table=TABLE,
            metadata={"status": status.value},
        )

        p = done.product
        if p is not None:
            try:
                self._assets.create_approved(
                    AssetService.from_source(
                        staff_id=done.staff_id,
                        branch=done.details.branch,
                        product_name=p.product_name,
                        brand_name=p.brand_name,
                        serial_no=p.serial_no,
                        quantity=p.quantity,
                        condition=p.condition,
                        warranty=p.warranty,
                        source=AssetSource.PURCHASE,
                        request_type=done.details.request_type,
                    ),
                    approved_by=int(admin_user_id),
                    admin_notes=f"Created from purchase requisition #{done.requisition_id}",
                )
            except Exception:
                log.exception("asset follow-up failed for purchase requisition %s", done.requisition_id)
        else:
            log.warning("completed requisition %s has no product details", done.requisition_id)

        self._fanout.email_user(EMAIL_DOMAIN, "product_verified", email_data(done), done.staff_id, verificationNotes=text)
        return done
