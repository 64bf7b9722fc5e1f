from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest

from ops_portal.core.enums import GroceryUnit, RequestStatus, Role
from ops_portal.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ops_portal.grocery.model import GroceryRequest, StationaryItem
from ops_portal.grocery.service import GroceryService


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
        self.emails.append((domain, type, None, record))
        return 1

    def email_user(self, domain, type, record, user_id, **extra):
        self.emails.append((domain, type, user_id, extra))
        return True


class FakeGrocery:
    def __init__(self):
        self.items: dict[int, GroceryRequest] = {}
        self.stock: dict[int, StationaryItem] = {}
        self._next = 1

    def create(self, *, staff_id, branch, notes, items, total_amount):
        gid = self._next
        self._next += 1
        self.items[gid] = GroceryRequest(
            grocery_id=gid,
            staff_id=staff_id,
            branch=branch,
            items=tuple(items),
            notes=notes,
            total_amount=total_amount,
            staff_name="Asha",
        )
        return gid

    def get(self, grocery_id):
        return self.items.get(grocery_id)

    def list(self, *, status=None, staff_id=None, branch=None, limit=200):
        return [
            r
            for r in self.items.values()
            if (status is None or r.status == status) and (staff_id is None or r.staff_id == staff_id)
        ][:limit]

    def update_pending(self, *, grocery_id, notes, items, total_amount):
        r = self.items[grocery_id]
        if r.status != RequestStatus.PENDING:
            return False
        self.items[grocery_id] = replace(r, notes=notes, items=tuple(items), total_amount=total_amount)
        return True

    def delete(self, grocery_id):
        return self.items.pop(grocery_id, None) is not None

    def decide(self, *, grocery_id, status, decided_by, admin_notes, rejection_reason=None):
        r = self.items.get(grocery_id)
        if not r or r.status != RequestStatus.PENDING:
            return False
        self.items[grocery_id] = replace(
            r, status=status, approved_by=decided_by, admin_notes=admin_notes, rejection_reason=rejection_reason
        )
        return True

    def count_by_status(self, status):
        return sum(1 for r in self.items.values() if r.status == status)

    def stationary_items(self, *, branch):
        return [i for i in self.stock.values() if i.branch == branch]

    def get_item(self, item_id):
        return self.stock.get(item_id)

    def take_item(self, *, item_id, quantity):
        item = self.stock[item_id]
        if item.quantity < quantity:
            return None
        self.stock[item_id] = replace(item, quantity=item.quantity - quantity)
        return self.stock[item_id].quantity

    def delete_item(self, item_id):
        return self.stock.pop(item_id, None) is not None


@pytest.fixture()
def env():
    repo, fanout = FakeGrocery(), FakeFanout()
    return GroceryService(repo, fanout), repo, fanout


PENS = {"item_name": "Pens", "unit": "Box", "quantity": 2, "unit_price": "45.50"}
PAPER = {"item_name": "A4 paper", "unit": "Rim", "quantity": "3", "unit_price": 210}


def _create(svc, *items, user_id=7):
    return svc.create(current_role=Role.STAFF, user_id=user_id, branch="Kochi", items=list(items or [PENS]))


def _stock(repo, quantity, *, item_id=5, branch="Kochi"):
    repo.stock[item_id] = StationaryItem(
        item_id=item_id, grocery_id=1, item_name="Pens", unit=GroceryUnit.BOX, quantity=quantity, branch=branch
    )


def test_build_items_totals_each_row_and_the_request():
    items, total = GroceryService.build_items([PENS, PAPER])

    assert [i.total_amount for i in items] == [Decimal("91.00"), Decimal("630.00")]
    assert items[1].unit == GroceryUnit.RIM
    assert total == Decimal("721.00")


def test_build_items_rejects_empty_and_bad_rows():
    with pytest.raises(ValidationError, match="at least one item"):
        GroceryService.build_items([])
    with pytest.raises(ValidationError, match="Item 1 name"):
        GroceryService.build_items([{**PENS, "item_name": " "}])
    with pytest.raises(ValidationError, match="Item 2 quantity"):
        GroceryService.build_items([PENS, {**PAPER, "quantity": 0}])
    with pytest.raises(ValidationError, match="Item 1 unit"):
        GroceryService.build_items([{**PENS, "unit": "Crate"}])
    with pytest.raises(ValidationError):
        GroceryService.build_items(["pens"])


def test_create_notifies_and_emails_admins(env):
    svc, repo, fanout = env
    gid = _create(svc, PENS, PAPER)

    assert repo.items[gid].total_amount == Decimal("721.00")
    note = fanout.admin_notes[0]
    assert note["type"] == "grocery_request"
    assert "2 Box of Pens, 3 Rim of A4 paper" in note["message"]
    domain, kind, _, record = fanout.emails[0]
    assert (domain, kind) == ("grocery", "new_request")
    assert record["item_summary"] == "2 Box of Pens, 3 Rim of A4 paper"
    assert fanout.changes[0][0] == "grocery_requests"


def test_only_owner_edits_pending_requests(env):
    svc, _, _ = env
    gid = _create(svc)

    with pytest.raises(AuthorizationError):
        svc.update(current_role=Role.STAFF, user_id=8, grocery_id=gid, items=[PAPER])

    svc.update(current_role=Role.STAFF, user_id=7, grocery_id=gid, items=[PAPER], notes="urgent")
    assert svc.get(gid).notes == "urgent"
    assert svc.get(gid).total_amount == Decimal("630.00")

    svc.approve(current_role=Role.ADMIN, admin_user_id=1, grocery_id=gid)
    with pytest.raises(ValidationError):
        svc.update(current_role=Role.STAFF, user_id=7, grocery_id=gid, items=[PENS])


def test_approve_and_reject_notify_requester(env):
    svc, _, fanout = env
    first, second = _create(svc), _create(svc)

    with pytest.raises(AuthorizationError):
        svc.approve(current_role=Role.STAFF, admin_user_id=7, grocery_id=first)

    approved = svc.approve(current_role=Role.ADMIN, admin_user_id=1, grocery_id=first, admin_notes="buy local")
    assert approved.status == RequestStatus.APPROVED
    assert fanout.user_notes[-1][1]["type"] == "grocery_status_update"
    assert fanout.emails[-1][:3] == ("grocery", "approved", 7)
    assert fanout.emails[-1][3] == {"adminNotes": "buy local"}

    with pytest.raises(ValidationError, match="Rejection reason"):
        svc.reject(current_role=Role.ADMIN, admin_user_id=1, grocery_id=second, rejection_reason="")
    svc.reject(current_role=Role.ADMIN, admin_user_id=1, grocery_id=second, rejection_reason="over budget")
    assert fanout.emails[-1][:3] == ("grocery", "rejected", 7)
    assert svc.pending_count() == 0


def test_delete_only_while_pending(env):
    svc, repo, _ = env
    gid = _create(svc)
    svc.approve(current_role=Role.ADMIN, admin_user_id=1, grocery_id=gid)

    with pytest.raises(ValidationError):
        svc.delete(current_role=Role.ADMIN, user_id=1, grocery_id=gid)

    other = _create(svc)
    svc.delete(current_role=Role.STAFF, user_id=7, grocery_id=other)
    assert other not in repo.items
    with pytest.raises(NotFoundError):
        svc.get(other)


def test_list_scopes_staff_to_own_requests(env):
    svc, _, _ = env
    _create(svc, user_id=7)
    _create(svc, user_id=8)

    assert len(svc.list(current_role=Role.ADMIN, user_id=1)) == 2
    assert [r.staff_id for r in svc.list(current_role=Role.STAFF, user_id=8)] == [8]


def test_buy_item_reduces_stock_and_alerts_when_low(env):
    svc, repo, fanout = env
    _stock(repo, 5)

    assert svc.buy_item(current_role=Role.STAFF, user_id=7, item_id=5, quantity=2, staff_name="Asha") == 3
    assert fanout.emails == []
    assert fanout.changes[-1][0] == "grocery_request_items"

    assert svc.buy_item(current_role=Role.STAFF, user_id=7, item_id=5, quantity="2", staff_name="Asha") == 1
    domain, kind, _, record = fanout.emails[-1]
    assert (domain, kind) == ("stationary-low-stock", "alert")
    assert record["quantity"] == 1
    assert record["staff_name"] == "Asha"


def test_buy_item_refuses_more_than_available(env):
    svc, repo, _ = env
    _stock(repo, 2)

    with pytest.raises(ValidationError, match="Available: 2"):
        svc.buy_item(current_role=Role.STAFF, user_id=7, item_id=5, quantity=3)
    with pytest.raises(ValidationError):
        svc.buy_item(current_role=Role.STAFF, user_id=7, item_id=5, quantity=0)
    with pytest.raises(NotFoundError):
        svc.buy_item(current_role=Role.STAFF, user_id=7, item_id=99, quantity=1)


def test_staff_delete_stock_only_in_own_branch(env):
    svc, repo, _ = env
    _stock(repo, 4, branch="Thrissur")

    with pytest.raises(AuthorizationError):
        svc.delete_item(current_role=Role.STAFF, branch="Kochi", item_id=5)

    svc.delete_item(current_role=Role.ADMIN, branch=None, item_id=5)
    assert svc.stationary(branch="Thrissur") == []
