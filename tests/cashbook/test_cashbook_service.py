from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from ops_portal.cashbook.model import CashTransaction, OpeningBalance
from ops_portal.cashbook.service import CashbookService
from ops_portal.core.enums import RequestStatus, Role
from ops_portal.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError


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

    def user_email(self, user_id):
        return {7: "staff@example.com", 1: "boss@example.com"}.get(user_id)

    def admin_emails(self):
        return ["boss@example.com", "ops@example.com"]

    def email_admins(self, domain, type, record, **extra):
        self.emails.append((domain, type, list(self.admin_emails())))
        return 2

    def email_each(self, domain, type, record, emails, *, field="adminEmail", **extra):
        self.emails.append((domain, type, list(emails)))
        return len(emails)

    def email_user(self, domain, type, record, user_id, **extra):
        self.emails.append((domain, type, [self.user_email(user_id)]))
        return True


class FakeTransactions:
    def __init__(self):
        self._next_id = 1
        self.items: dict[int, CashTransaction] = {}
        self.taken: set[tuple[str, str]] = set()
        self.extra_numbers: list[str] = []

    def list_voucher_numbers(self, *, branch, prefix, year):
        nums = [
            t.voucher_no
            for t in self.items.values()
            if t.branch == branch and t.voucher_no.startswith(prefix) and t.transaction_date.year == year
        ]
        return nums + self.extra_numbers

    def create(self, *, voucher_no, staff_id, txn):
        if (txn.branch, voucher_no) in self.taken:
            raise ConflictError("taken")
        tid = self._next_id
        self._next_id += 1
        self.items[tid] = CashTransaction(
            transaction_id=tid,
            voucher_no=voucher_no,
            staff_id=staff_id,
            branch=txn.branch,
            transaction_date=txn.transaction_date,
            cash_in=txn.cash_in,
            cash_out=txn.cash_out,
            nature_of_expense=txn.nature_of_expense,
        )
        return tid

    def get(self, transaction_id):
        return self.items.get(int(transaction_id))

    def list(self, *, branch=None, status=None, staff_id=None, start=None, end=None, limit=500):
        return [
            t
            for t in self.items.values()
            if (branch is None or t.branch == branch)
            and (status is None or t.verification_status == status)
            and (staff_id is None or t.staff_id == staff_id)
        ]

    def latest_approved_balance(self, branch):
        approved = [
            t for t in self.items.values() if t.branch == branch and t.verification_status == RequestStatus.APPROVED
        ]
        return approved[-1].balance if approved else None

    def approved_totals(self, *, branch, start=None, end=None):
        approved = [
            t for t in self.items.values() if t.branch == branch and t.verification_status == RequestStatus.APPROVED
        ]
        return (
            sum((t.cash_in for t in approved), Decimal("0.00")),
            sum((t.cash_out for t in approved), Decimal("0.00")),
            len(approved),
        )

    def decide(self, *, transaction_id, status, verified_by, verification_notes, balance=None):
        t = self.items.get(int(transaction_id))
        if not t or t.verification_status != RequestStatus.PENDING:
            return False
        self.items[t.transaction_id] = replace(
            t,
            verification_status=status,
            verified_by=verified_by,
            verification_notes=verification_notes,
            balance=balance if balance is not None else t.balance,
        )
        return True

    def delete(self, transaction_id):
        return self.items.pop(int(transaction_id), None) is not None

    def count_by_status(self, status):
        return sum(1 for t in self.items.values() if t.verification_status == status)


class FakeOpening:
    def __init__(self):
        self.items: dict[str, OpeningBalance] = {}

    def get(self, branch):
        return self.items.get(branch)

    def list(self):
        return list(self.items.values())

    def save(self, *, branch, opening_balance, period_start, history):
        self.items[branch] = OpeningBalance(
            branch=branch, opening_balance=opening_balance, period_start=period_start, balance_history=tuple(history)
        )


@pytest.fixture()
def parts():
    txns, opening, fanout = FakeTransactions(), FakeOpening(), FakeFanout()
    return CashbookService(txns, opening, fanout), txns, opening, fanout


def _record(svc, *, branch="Kochi", cash_in=None, cash_out=None, on="2026-03-10", user_id=7):
    txn = svc.build_transaction(branch=branch, transaction_date=on, cash_in=cash_in, cash_out=cash_out)
    return svc.create(current_role=Role.STAFF, user_id=user_id, txn=txn)


def test_build_transaction_requires_exactly_one_side():
    with pytest.raises(ValidationError):
        CashbookService.build_transaction(branch="Kochi", transaction_date="2026-03-10", cash_in="10", cash_out="5")
    with pytest.raises(ValidationError):
        CashbookService.build_transaction(branch="Kochi", transaction_date="2026-03-10")
    with pytest.raises(ValidationError):
        CashbookService.build_transaction(branch="Kochi", transaction_date="2026-03-10", cash_out="-4")


def test_voucher_numbers_follow_highest_suffix_per_prefix(parts):
    svc, txns, _, _ = parts
    txns.extra_numbers = ["CO007", "CO002", "CI050", "junk"]

    assert svc.next_voucher_number(branch="Kochi", kind="cash_out", on=date(2026, 3, 1)) == "CO008"
    assert svc.next_voucher_number(branch="Kochi", kind="cash_in", on=date(2026, 3, 1)) == "CI051"
    with pytest.raises(ValidationError):
        svc.next_voucher_number(branch="Kochi", kind="transfer")


def test_voucher_numbering_restarts_each_year(parts):
    svc, _, _, _ = parts
    _record(svc, cash_out="100", on="2025-12-30")
    _record(svc, cash_out="100", on="2025-12-31")

    assert svc.next_voucher_number(branch="Kochi", kind="cash_out", on=date(2025, 12, 31)) == "CO003"
    assert svc.next_voucher_number(branch="Kochi", kind="cash_out", on=date(2026, 1, 2)) == "CO001"


def test_create_retries_when_voucher_is_taken(parts):
    svc, txns, _, fanout = parts
    txns.taken = {("Kochi", "CO001")}

    tid = _record(svc, cash_out="250")

    assert txns.items[tid].voucher_no == "CO002"
    assert fanout.admin_notes[0]["type"] == "cashbook_entry"
    assert fanout.emails[0][:2] == ("cash-transaction", "pending")


def test_create_gives_up_after_repeated_conflicts(parts):
    svc, txns, _, _ = parts
    txns.taken = {("Kochi", f"CO00{n}") for n in range(1, 10)}

    with pytest.raises(ConflictError, match="Unable to generate unique voucher number"):
        _record(svc, cash_out="250")


def test_first_approval_starts_from_opening_balance(parts):
    svc, txns, opening, fanout = parts
    opening.save(branch="Kochi", opening_balance=Decimal("1000.00"), period_start=None, history=[])
    tid = _record(svc, cash_out="250")

    approved = svc.approve(current_role=Role.ADMIN, admin_user_id=1, transaction_id=tid)

    assert approved.verification_status == RequestStatus.APPROVED
    assert approved.balance == Decimal("750.00")
    assert fanout.user_notes[0][0] == 7
    assert fanout.user_notes[0][1]["type"] == "cashbook_transaction_approved"


def test_approval_chains_from_latest_approved_balance(parts):
    svc, _, opening, _ = parts
    opening.save(branch="Kochi", opening_balance=Decimal("1000.00"), period_start=None, history=[])
    first = _record(svc, cash_out="250")
    second = _record(svc, cash_in="100")
    svc.approve(current_role=Role.ADMIN, admin_user_id=1, transaction_id=first)

    approved = svc.approve(current_role=Role.ADMIN, admin_user_id=1, transaction_id=second)

    assert approved.balance == Decimal("850.00")


def test_approval_without_opening_balance_starts_at_zero(parts):
    svc, _, _, _ = parts
    tid = _record(svc, cash_in="40.5")

    assert svc.approve(current_role=Role.ADMIN, admin_user_id=1, transaction_id=tid).balance == Decimal("40.50")


def test_approval_email_reaches_staff_and_admins(parts):
    svc, _, _, fanout = parts
    tid = _record(svc, cash_out="10", user_id=1)
    fanout.emails.clear()

    svc.approve(current_role=Role.ADMIN, admin_user_id=1, transaction_id=tid)

    domain, kind, recipients = fanout.emails[0]
    assert (domain, kind) == ("cash-transaction", "approved")
    assert sorted(set(recipients)) == ["boss@example.com", "ops@example.com"]


def test_low_balance_alert_fires_once_when_crossing_threshold(parts):
    svc, _, opening, fanout = parts
    opening.save(branch="Kochi", opening_balance=Decimal("1000.00"), period_start=None, history=[])
    big = _record(svc, cash_out="600")
    small = _record(svc, cash_out="50")
    fanout.emails.clear()

    svc.approve(current_role=Role.ADMIN, admin_user_id=1, transaction_id=big)
    assert fanout.emails[-1] == ("low-balance", "alert", ["boss@example.com", "ops@example.com"])

    fanout.emails.clear()
    svc.approve(current_role=Role.ADMIN, admin_user_id=1, transaction_id=small)
    assert [e[0] for e in fanout.emails] == ["cash-transaction"]


def test_only_admins_verify_and_only_once(parts):
    svc, _, _, _ = parts
    tid = _record(svc, cash_out="10")

    with pytest.raises(AuthorizationError):
        svc.approve(current_role=Role.STAFF, admin_user_id=7, transaction_id=tid)

    svc.reject(current_role=Role.ADMIN, admin_user_id=1, transaction_id=tid, verification_notes="No bill")
    with pytest.raises(ValidationError):
        svc.approve(current_role=Role.ADMIN, admin_user_id=1, transaction_id=tid)


def test_reject_requires_notes(parts):
    svc, _, _, _ = parts
    tid = _record(svc, cash_out="10")

    with pytest.raises(ValidationError):
        svc.reject(current_role=Role.ADMIN, admin_user_id=1, transaction_id=tid, verification_notes="  ")


def test_staff_cannot_delete_verified_transaction(parts):
    svc, _, _, _ = parts
    tid = _record(svc, cash_out="10")
    svc.approve(current_role=Role.ADMIN, admin_user_id=1, transaction_id=tid)

    with pytest.raises(ValidationError):
        svc.delete(current_role=Role.STAFF, user_id=7, transaction_id=tid)
    with pytest.raises(ValidationError):
        svc.delete(current_role=Role.ADMIN, user_id=1, transaction_id=tid)


def test_summary_uses_opening_balance_and_approved_totals(parts):
    svc, _, opening, _ = parts
    opening.save(branch="Kochi", opening_balance=Decimal("500.00"), period_start=None, history=[])
    a = _record(svc, cash_in="300")
    b = _record(svc, cash_out="120")
    _record(svc, cash_out="999")  # still pending
    svc.approve(current_role=Role.ADMIN, admin_user_id=1, transaction_id=a)
    svc.approve(current_role=Role.ADMIN, admin_user_id=1, transaction_id=b)

    s = svc.summary(branch="Kochi")

    assert s.total_cash_in == Decimal("300.00")
    assert s.total_cash_out == Decimal("120.00")
    assert s.closing_balance == Decimal("680.00")
    assert s.transaction_count == 2


def test_opening_balance_set_then_append(parts):
    svc, _, _, _ = parts
    svc.set_opening_balance(current_role=Role.ADMIN, branch="Kochi", amount="1000", period_start="2026-01-01")

    ob = svc.append_opening_entry(
        current_role=Role.ADMIN, branch="Kochi", amount="250.25", entry_date="2026-02-01", note="Top up", added_by="Asha"
    )

    assert ob.opening_balance == Decimal("1250.25")
    assert [e.amount for e in ob.balance_history] == [Decimal("1000.00"), Decimal("250.25")]
    assert ob.balance_history[-1].added_by == "Asha"


def test_append_to_unknown_branch_is_not_found(parts):
    svc, _, _, _ = parts
    with pytest.raises(NotFoundError):
        svc.append_opening_entry(current_role=Role.ADMIN, branch="Nowhere", amount="1", entry_date="2026-02-01")


def test_export_rows_are_scoped_to_staff(parts):
    svc, _, _, _ = parts
    _record(svc, cash_out="10", user_id=7)
    _record(svc, cash_out="20", user_id=8)

    data = svc.export(current_role=Role.STAFF, user_id=7)

    assert len(data.rows) == 1
    assert data.rows[0]["cash_out"] == "10.00"
    assert "voucher_no" in data.fieldnames
