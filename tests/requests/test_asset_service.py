from __future__ import annotations

from dataclasses import replace

import pytest

from ops_portal.assets.model import AssetRequest
from ops_portal.assets.service import AssetService
from ops_portal.core.enums import AssetSource, RequestStatus, RequestType, Role
from ops_portal.core.exceptions import AuthorizationError, ConflictError, ValidationError


class FakeFanout:
    def __init__(self):
        self.changes = []
        self.user_notes = []
        self.admin_notes = []
        self.emails = []

    def changed(self, table, event, record_id, new=None):
        self.changes.append((table, event, record_id))

    def notify_user(self, user_id, **kw):
        self.user_notes.append((user_id, kw))

    def notify_admins(self, **kw):
        self.admin_notes.append(kw)
        return 1

    def email_admins(self, domain, type, record, **extra):
        self.emails.append((domain, type, None, extra))
        return 1

    def email_user(self, domain, type, record, user_id, **extra):
        self.emails.append((domain, type, user_id, extra))
        return True


class FakeAssets:
    def __init__(self):
        self.items: dict[int, AssetRequest] = {}
        self.taken: set[str] = set()
        self._next = 1

    def list_asset_numbers(self):
        return [a.asset_number for a in self.items.values()]

    def create(self, *, asset_number, asset, status=RequestStatus.PENDING, approved_by=None, admin_notes=None):
        if asset_number in self.taken:
            raise ConflictError("taken")
        aid = self._next
        self._next += 1
        self.items[aid] = AssetRequest(
            asset_id=aid,
            asset_number=asset_number,
            staff_id=asset.staff_id,
            branch=asset.branch,
            product_name=asset.product_name,
            brand_name=asset.brand_name,
            serial_no=asset.serial_no,
            quantity=asset.quantity,
            request_type=asset.request_type,
            source=asset.source,
            status=status,
            approved_by=approved_by,
            admin_notes=admin_notes,
        )
        return aid

    def get(self, asset_id):
        return self.items.get(asset_id)

    def list(self, *, status=None, staff_id=None, branch=None, limit=200):
        return [
            a
            for a in self.items.values()
            if (status is None or a.status == status) and (staff_id is None or a.staff_id == staff_id)
        ][:limit]

    def decide(self, *, asset_id, status, decided_by, admin_notes):
        a = self.items.get(asset_id)
        if not a or a.status != RequestStatus.PENDING:
            return False
        self.items[asset_id] = replace(a, status=status, approved_by=decided_by, admin_notes=admin_notes)
        return True

    def delete(self, asset_id):
        return self.items.pop(asset_id, None) is not None

    def count_by_status(self, status):
        return sum(1 for a in self.items.values() if a.status == status)


@pytest.fixture()
def env():
    assets, fanout = FakeAssets(), FakeFanout()
    return AssetService(assets, fanout), assets, fanout


def _request(svc, user_id=7, **kw):
    data = {"branch": "Kochi", "product_name": "Monitor", "brand_name": "Dell", "quantity": 2}
    data.update(kw)
    return svc.create_request(current_role=Role.STAFF, user_id=user_id, **data)


def test_asset_numbers_follow_highest_existing(env):
    svc, assets, _ = env
    first = svc.get(_request(svc))
    assets.items[99] = replace(first, asset_id=99, asset_number="ASS007")

    assert first.asset_number == "ASS001"
    assert svc.get(_request(svc)).asset_number == "ASS008"


def test_asset_number_conflict_retries_then_gives_up(env):
    svc, assets, _ = env
    assets.taken.add("ASS001")
    assert svc.get(_request(svc)).asset_number == "ASS002"

    assets.taken.update({"ASS003", "ASS004", "ASS005"})
    with pytest.raises(ConflictError):
        _request(svc)


def test_request_validates_quantity(env):
    svc, _, _ = env
    with pytest.raises(ValidationError):
        _request(svc, quantity=0)
    with pytest.raises(ValidationError):
        _request(svc, product_name="")


def test_reject_requires_reason_and_only_admins_decide(env):
    svc, _, fanout = env
    aid = _request(svc)
    with pytest.raises(AuthorizationError):
        svc.approve(current_role=Role.STAFF, admin_user_id=7, asset_id=aid)
    with pytest.raises(ValidationError):
        svc.reject(current_role=Role.ADMIN, admin_user_id=1, asset_id=aid, admin_notes=" ")

    rejected = svc.reject(current_role=Role.ADMIN, admin_user_id=1, asset_id=aid, admin_notes="Out of budget")

    assert rejected.status == RequestStatus.REJECTED
    assert fanout.emails[-1] == ("asset", "rejected", 7, {"rejectionReason": "Out of budget"})
    with pytest.raises(ValidationError):
        svc.approve(current_role=Role.ADMIN, admin_user_id=1, asset_id=aid)


def test_staff_can_only_delete_own_pending_requests(env):
    svc, _, _ = env
    aid = _request(svc)
    with pytest.raises(AuthorizationError):
        svc.delete(current_role=Role.STAFF, user_id=8, asset_id=aid)

    svc.approve(current_role=Role.ADMIN, admin_user_id=1, asset_id=aid)
    with pytest.raises(ValidationError):
        svc.delete(current_role=Role.STAFF, user_id=7, asset_id=aid)

    svc.delete(current_role=Role.ADMIN, user_id=1, asset_id=aid)
    assert svc.list(current_role=Role.ADMIN, user_id=1) == []


def test_from_source_builds_a_name_when_missing():
    asset = AssetService.from_source(
        staff_id=7, branch="Kochi", brand_name="HP", serial_no="SN-1", source=AssetSource.MAINTENANCE
    )
    assert asset.product_name == "HP - SN-1"
    assert asset.request_type == RequestType.SYSTEM

    blank = AssetService.from_source(staff_id=7, branch="Kochi", brand_name=None, serial_no=None, source=AssetSource.PURCHASE)
    assert blank.product_name == "Unnamed asset"
