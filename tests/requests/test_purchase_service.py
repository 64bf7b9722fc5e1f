from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest

from ops_portal.core.enums import AssetSource, PurchaseStatus, RequestType, Role
from ops_portal.core.exceptions import AuthorizationError, ValidationError
from ops_portal.purchases.model import PurchaseRequisition
from ops_portal.purchases.service import PurchaseService


class FakeFanout:
    def __init__(self):
        self.user_notes = []
        self.admin_notes = []
        self.emails = []

    def changed(self, table, event, record_id, new=None):
        pass

    def notify_user(self, user_id, **kw):
        self.user_notes.append((user_id, kw))

    def notify_admins(self, **kw):
        self.admin_notes.append(kw)
        return 1

    def email_admins(self, domain, type, record, **extra):
        self.emails.append((type, None, extra))
        return 1

    def email_user(self, domain, type, record, user_id, **extra):
        self.emails.append((type, user_id, extra))
        return True


class FakeAssetService:
    def __init__(self):
        self.created = []

    def create_approved(self, asset, *, approved_by, admin_notes=None):
        self.created.append(asset)
        return len(self.created)


class FakeRequisitions:
    def __init__(self):
        self.items: dict[int, PurchaseRequisition] = {}
        self._next = 1

    def create(self, *, staff_id, details):
        rid = self._next
        self._next += 1
        self.items[rid] = PurchaseRequisition(requisition_id=rid, staff_id=staff_id, details=details)
        return rid

    def get(self, requisition_id):
        return self.items.get(requisition_id)

    def list(self, *, status=None, staff_id=None, branch=None, limit=200):
        return [
            r
            for r in self.items.values()
            if (status is None or r.status == status) and (staff_id is None or r.staff_id == staff_id)
        ][:limit]

    def update_pending(self, *, requisition_id, details):
        return False

    def delete(self, requisition_id):
        return self.items.pop(requisition_id, None) is not None

    def _move(self, requisition_id, expected, **changes):
        r = self.items.get(requisition_id)
        if not r or r.status != expected:
            return False
        self.items[requisition_id] = replace(r, **changes)
        return True

    def decide(self, *, requisition_id, status, decided_by, admin_notes, rejection_reason=None):
        return self._move(
            requisition_id,
            PurchaseStatus.PENDING,
            status=status,
            approved_by=decided_by,
            admin_notes=admin_notes,
            rejection_reason=rejection_reason,
        )

    def save_product(self, *, requisition_id, product):
        return self._move(
            requisition_id,
            PurchaseStatus.VERIFICATION_PENDING,
            status=PurchaseStatus.AWAITING_FINAL_VERIFICATION,
            product=product,
            proof_rejection_reason=None,
        )

    def finalize(self, *, requisition_id, status, verified_by, verification_notes, proof_rejection_reason=None):
        return self._move(
            requisition_id,
            PurchaseStatus.AWAITING_FINAL_VERIFICATION,
            status=status,
            verified_by=verified_by,
            verification_notes=verification_notes,
            proof_rejection_reason=proof_rejection_reason,
        )

    def count_by_status(self, status):
        return sum(1 for r in self.items.values() if r.status == status)


@pytest.fixture()
def env():
    reqs, assets, fanout = FakeRequisitions(), FakeAssetService(), FakeFanout()
    return PurchaseService(reqs, assets, fanout), assets, fanout


def _submit(svc, user_id=7):
    details = PurchaseService.build_details(
        name="Asha", branch="Kochi", purchase_item="Label printer", request_type="system"
    )
    return svc.create(current_role=Role.STAFF, user_id=user_id, details=details)


def _product(**kw):
    data = {"product_name": "Zebra ZD220", "brand_name": "Zebra", "serial_no": "ZB-9", "quantity": 1, "price": "12500"}
    data.update(kw)
    return PurchaseService.build_product(**data)


def test_full_lifecycle_ends_with_an_asset(env):
    svc, assets, fanout = env
    rid = _submit(svc)

    svc.approve(current_role=Role.ADMIN, admin_user_id=1, requisition_id=rid)
    assert svc.get(rid).status == PurchaseStatus.VERIFICATION_PENDING

    svc.upload_product(current_role=Role.STAFF, user_id=7, requisition_id=rid, product=_product())
    assert svc.awaiting_verification_count() == 1
    assert fanout.admin_notes[-1]["type"] == "purchase_product_uploaded"

    done = svc.final_verify(current_role=Role.ADMIN, admin_user_id=1, requisition_id=rid, approve=True, notes="OK")

    assert done.status == PurchaseStatus.COMPLETED
    asset = assets.created[0]
    assert asset.product_name == "Zebra ZD220"
    assert asset.source == AssetSource.PURCHASE
    assert asset.request_type == RequestType.SYSTEM
    assert fanout.emails[-1] == ("product_verified", 7, {"verificationNotes": "OK"})


def test_failed_final_verification_goes_back_for_reupload(env):
    svc, assets, fanout = env
    rid = _submit(svc)
    svc.approve(current_role=Role.ADMIN, admin_user_id=1, requisition_id=rid)
    svc.upload_product(current_role=Role.STAFF, user_id=7, requisition_id=rid, product=_product())

    with pytest.raises(ValidationError):
        svc.final_verify(current_role=Role.ADMIN, admin_user_id=1, requisition_id=rid, approve=False)
    back = svc.final_verify(
        current_role=Role.ADMIN, admin_user_id=1, requisition_id=rid, approve=False, notes="Serial unreadable"
    )

    assert back.status == PurchaseStatus.VERIFICATION_PENDING
    assert back.proof_rejection_reason == "Serial unreadable"
    assert assets.created == []
    assert fanout.emails[-1] == ("product_rejected", 7, {"rejectionReason": "Serial unreadable"})

    svc.upload_product(current_role=Role.STAFF, user_id=7, requisition_id=rid, product=_product(serial_no="ZB-10"))
    assert svc.get(rid).product.serial_no == "ZB-10"


def test_upload_only_after_approval_and_by_owner(env):
    svc, _, _ = env
    rid = _submit(svc)
    with pytest.raises(ValidationError):
        svc.upload_product(current_role=Role.STAFF, user_id=7, requisition_id=rid, product=_product())

    svc.approve(current_role=Role.ADMIN, admin_user_id=1, requisition_id=rid)
    with pytest.raises(AuthorizationError):
        svc.upload_product(current_role=Role.STAFF, user_id=8, requisition_id=rid, product=_product())


def test_rejection_is_final(env):
    svc, _, _ = env
    rid = _submit(svc)
    svc.reject(current_role=Role.ADMIN, admin_user_id=1, requisition_id=rid, rejection_reason="Not needed")

    assert svc.get(rid).status == PurchaseStatus.REJECTED
    with pytest.raises(ValidationError):
        svc.approve(current_role=Role.ADMIN, admin_user_id=1, requisition_id=rid)


def test_final_verify_needs_uploaded_product(env):
    svc, _, _ = env
    rid = _submit(svc)
    with pytest.raises(ValidationError):
        svc.final_verify(current_role=Role.ADMIN, admin_user_id=1, requisition_id=rid, approve=True)
    with pytest.raises(AuthorizationError):
        svc.final_verify(current_role=Role.STAFF, admin_user_id=7, requisition_id=rid, approve=True)


def test_build_product_parses_price_and_quantity():
    p = _product(price="99.5", quantity="3")
    assert p.price == Decimal("99.50")
    assert p.quantity == 3
    assert _product(price="").price is None
    with pytest.raises(ValidationError):
        _product(quantity=0)
