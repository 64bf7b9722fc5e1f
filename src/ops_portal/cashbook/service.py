from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import now_utc, parse_iso_date, parse_optional_date
from ..common.logger import get_logger
from ..common.sequences import next_number
from ..common.validators import optional_text, require_amount, require_enum, require_non_empty
from ..core.constants import (
    DEFAULT_ADMIN_LIST_LIMIT,
    LOW_BALANCE_THRESHOLD,
    NUMBER_MAX_ATTEMPTS,
    VOUCHER_DIGITS,
    VOUCHER_PREFIX_CASH_IN,
    VOUCHER_PREFIX_CASH_OUT,
)
from ..core.enums import ChangeEvent, RequestStatus, Role
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..email.templates import STAFF
from ..notifications.fanout import Fanout
from .model import BalanceEntry, CashbookSummary, CashTransaction, NewCashTransaction, OpeningBalance
from .repository import CashTransactionRepository, OpeningBalanceRepository

log = get_logger(__name__)

TABLE = "cash_transactions"
OPENING_TABLE = "branch_opening_balances"
EMAIL_DOMAIN = "cash-transaction"
LOW_BALANCE_EMAIL_DOMAIN = "low-balance"

CASH_OUT = "cash_out"
CASH_IN = "cash_in"

EXPORT_FIELDS = [
    "voucher_no",
    "transaction_date",
    "branch",
    "staff_name",
    "bill_status",
    "primary_list",
    "nature_of_expense",
    "cash_in",
    "cash_out",
    "balance",
    "verification_status",
    "notes",
]


@dataclass(frozen=True)
class ExportData:
    rows: list[dict]
    fieldnames: list[str]


def voucher_prefix(kind: str) -> str:
    if kind == CASH_OUT:
        return VOUCHER_PREFIX_CASH_OUT
    if kind == CASH_IN:
        return VOUCHER_PREFIX_CASH_IN
    raise ValidationError("Type must be cash_out or cash_in")


def email_data(txn: CashTransaction) -> dict:
    return {
        "transaction_id": txn.transaction_id,
        "voucher_no": txn.voucher_no,
        "branch": txn.branch,
        "transaction_date": txn.transaction_date.isoformat(),
        "nature_of_expense": txn.nature_of_expense,
        "cash_in": float(txn.cash_in),
        "cash_out": float(txn.cash_out),
        "balance": float(txn.balance) if txn.balance is not None else None,
        "verification_status": txn.verification_status.value,
        "staff_name": txn.staff_name,
    }


class CashbookService:
    """Branch cash book: vouchers, verification and running balance.

    A transaction only moves the branch balance once an admin approves it.
    The stored balance of an approved transaction is the previous approved
    balance of the branch (or the opening balance when there is none) plus
    cash in minus cash out.
    """

    def __init__(
        self,
        transactions: CashTransactionRepository,
        opening_balances: OpeningBalanceRepository,
        fanout: Fanout,
    ):
        self._transactions = transactions
        self._opening = opening_balances
        self._fanout = fanout

    @staticmethod
    def build_transaction(
        *,
        branch: str,
        transaction_date: str,
        cash_in=None,
        cash_out=None,
        bill_status: str = "",
        primary_list: str = "",
        nature_of_expense: str = "",
        notes: str = "",
    ) -> NewCashTransaction:
        cash_in_v = require_amount(cash_in, "Cash in")
        cash_out_v = require_amount(cash_out, "Cash out")
        if cash_in_v and cash_out_v:
            raise ValidationError("Enter either cash in or cash out, not both")
        if not cash_in_v and not cash_out_v:
            raise ValidationError("Enter a cash in or cash out amount")
        return NewCashTransaction(
            branch=require_non_empty(branch, "Branch"),
            transaction_date=parse_iso_date(transaction_date),
            cash_in=cash_in_v,
            cash_out=cash_out_v,
            bill_status=optional_text(bill_status),
            primary_list=optional_text(primary_list),
            nature_of_expense=optional_text(nature_of_expense),
            notes=optional_text(notes),
        )

    def get(self, transaction_id: int) -> CashTransaction:
        txn = self._transactions.get(int(transaction_id))
        if not txn:
            raise NotFoundError("Cash transaction not found")
        return txn

    def next_voucher_number(
        self, *, branch: str, kind: str, on: Optional[date] = None, bump: int = 0
    ) -> str:
        """``CO``/``CI`` + highest suffix used by the branch this year + 1."""
        branch = require_non_empty(branch, "Branch")
        prefix = voucher_prefix(kind)
        year = (on or now_utc().date()).year
        existing = self._transactions.list_voucher_numbers(branch=branch, prefix=prefix, year=year)
        return next_number(prefix, existing, digits=VOUCHER_DIGITS, bump=bump)

    def create(self, *, current_role: Role, user_id: int, txn: NewCashTransaction) -> int:
        if current_role not in {Role.STAFF, Role.ADMIN}:
            raise AuthorizationError("You are not allowed to record cash transactions")

        kind = CASH_OUT if txn.is_cash_out else CASH_IN
        for attempt in range(NUMBER_MAX_ATTEMPTS):
            voucher_no = self.next_voucher_number(
                branch=txn.branch, kind=kind, on=txn.transaction_date, bump=attempt
            )
            try:
                transaction_id = self._transactions.create(voucher_no=voucher_no, staff_id=int(user_id), txn=txn)
            except ConflictError:
                log.info("voucher %s taken for %s, retrying", voucher_no, txn.branch)
                continue
            break
        else:
            raise ConflictError("Unable to generate unique voucher number")

        created = self.get(transaction_id)
        self._fanout.changed(
            TABLE, ChangeEvent.INSERT, transaction_id, {"verification_status": created.verification_status.value}
        )

        amount = created.cash_out if txn.is_cash_out else created.cash_in
        self._fanout.notify_admins(
            type="cashbook_entry",
            title="Cash transaction awaiting verification",
            message=f"{created.voucher_no} ({kind.replace('_', ' ')} {amount}) at {created.branch}",
            reference_id=transaction_id,
            reference_table=TABLE,
            metadata={"status": created.verification_status.value, "voucher_no": created.voucher_no},
        )
        self._fanout.email_admins(EMAIL_DOMAIN, "pending", email_data(created))
        return transaction_id

    def delete(self, *, current_role: Role, user_id: int, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        if current_role != Role.ADMIN:
            if txn.staff_id != int(user_id):
                raise AuthorizationError("You can only delete your own transactions")
            if txn.verification_status != RequestStatus.PENDING:
                raise ValidationError("Only pending transactions can be deleted")
        elif txn.verification_status == RequestStatus.APPROVED:
            raise ValidationError("Approved transactions cannot be deleted")
        if not self._transactions.delete(txn.transaction_id):
            raise ValidationError("Failed to delete transaction")
        self._fanout.changed(TABLE, ChangeEvent.DELETE, txn.transaction_id)

    def list(
        self,
        *,
        current_role: Role,
        user_id: int,
        branch: Optional[str] = None,
        status: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        limit: int = DEFAULT_ADMIN_LIST_LIMIT,
    ) -> Sequence[CashTransaction]:
        status_v = require_enum(RequestStatus, status, "Status") if status else None
        staff_id = None if current_role == Role.ADMIN else int(user_id)
        return self._transactions.list(
            branch=optional_text(branch),
            status=status_v,
            staff_id=staff_id,
            start=parse_optional_date(start),
            end=parse_optional_date(end),
            limit=int(limit),
        )

    def badge_rows(self, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return self._transactions.badge_rows(statuses=statuses, owner_id=owner_id)

    def pending_count(self) -> int:
        return self._transactions.count_by_status(RequestStatus.PENDING)

    def previous_balance(self, branch: str) -> Decimal:
        latest = self._transactions.latest_approved_balance(branch)
        if latest is not None:
            return latest
        opening = self._opening.get(branch)
        return opening.opening_balance if opening else Decimal("0.00")

    def approve(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        transaction_id: int,
        verification_notes: str = "",
    ) -> CashTransaction:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can verify cash transactions")

        txn = self.get(transaction_id)
        if txn.verification_status != RequestStatus.PENDING:
            raise ValidationError("This transaction has already been verified")

        previous = self.previous_balance(txn.branch)
        balance = previous + txn.cash_in - txn.cash_out
        notes = optional_text(verification_notes)
        if not self._transactions.decide(
            transaction_id=txn.transaction_id,
            status=RequestStatus.APPROVED,
            verified_by=int(admin_user_id),
            verification_notes=notes,
            balance=balance,
        ):
            raise ValidationError("This transaction has already been verified")

        approved = self.get(txn.transaction_id)
        self._fanout.changed(
            TABLE,
            ChangeEvent.UPDATE,
            txn.transaction_id,
            {"verification_status": RequestStatus.APPROVED.value, "balance": balance},
        )
        self._fanout.notify_user(
            txn.staff_id,
            type="cashbook_transaction_approved",
            title="Cash transaction approved",
            message=f"Voucher {txn.voucher_no} was approved. Branch balance is now {balance}.",
            reference_id=txn.transaction_id,
            reference_table=TABLE,
            metadata={"status": RequestStatus.APPROVED.value, "balance": str(balance)},
        )
        self._fanout.notify_admins(
            type="cashbook_transaction_approved",
            title="Cash transaction approved",
            message=f"Voucher {txn.voucher_no} at {txn.branch} was approved.",
            reference_id=txn.transaction_id,
            reference_table=TABLE,
            metadata={"status": RequestStatus.APPROVED.value, "balance": str(balance)},
        )

        recipients = [e for e in [self._fanout.user_email(txn.staff_id)] + self._fanout.admin_emails() if e]
        self._fanout.email_each(
            EMAIL_DOMAIN, "approved", email_data(approved), recipients, field=STAFF, verificationNotes=notes
        )
        self._alert_low_balance(approved, previous, balance)
        return approved

    def _alert_low_balance(self, txn: CashTransaction, previous: Decimal, balance: Decimal) -> None:
        """Email admins when an approval takes the branch below the threshold."""
        if not (balance < LOW_BALANCE_THRESHOLD <= previous):
            return
        log.warning("branch %s balance fell to %s", txn.branch, balance)
        self._fanout.email_admins(
            LOW_BALANCE_EMAIL_DOMAIN,
            "alert",
            {
                "branch": txn.branch,
                "balance": balance,
                "threshold": LOW_BALANCE_THRESHOLD,
                "voucher_no": txn.voucher_no,
            },
        )

    def reject(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        transaction_id: int,
        verification_notes: str = "",
    ) -> CashTransaction:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can verify cash transactions")

        notes = require_non_empty(verification_notes, "Rejection reason")
        txn = self.get(transaction_id)
        if not self._transactions.decide(
            transaction_id=txn.transaction_id,
            status=RequestStatus.REJECTED,
            verified_by=int(admin_user_id),
            verification_notes=notes,
        ):
            raise ValidationError("This transaction has already been verified")

        rejected = self.get(txn.transaction_id)
        self._fanout.changed(
            TABLE, ChangeEvent.UPDATE, txn.transaction_id, {"verification_status": RequestStatus.REJECTED.value}
        )
        self._fanout.notify_user(
            txn.staff_id,
            type="cashbook_transaction_rejected",
            title="Cash transaction rejected",
            message=f"Voucher {txn.voucher_no} was rejected: {notes}",
            reference_id=txn.transaction_id,
            reference_table=TABLE,
            metadata={"status": RequestStatus.REJECTED.value, "verification_notes": notes},
        )
        self._fanout.email_user(EMAIL_DOMAIN, "rejected", email_data(rejected), txn.staff_id, verificationNotes=notes)
        return rejected

    # --- branch balances ---

    def summary(self, *, branch: str, start: Optional[str] = None, end: Optional[str] = None) -> CashbookSummary:
        branch = require_non_empty(branch, "Branch")
        opening = self._opening.get(branch)
        opening_v = opening.opening_balance if opening else Decimal("0.00")
        total_in, total_out, count = self._transactions.approved_totals(
            branch=branch, start=parse_optional_date(start), end=parse_optional_date(end)
        )
        return CashbookSummary(
            branch=branch,
            opening_balance=opening_v,
            total_cash_in=total_in,
            total_cash_out=total_out,
            closing_balance=opening_v + total_in - total_out,
            transaction_count=count,
        )

    def opening_balances(self) -> Sequence[OpeningBalance]:
        return self._opening.list()

    def get_opening_balance(self, branch: str) -> OpeningBalance:
        ob = self._opening.get(require_non_empty(branch, "Branch"))
        if not ob:
            raise NotFoundError("No opening balance recorded for this branch")
        return ob

    def set_opening_balance(
        self,
        *,
        current_role: Role,
        branch: str,
        amount,
        period_start: str = "",
        note: str = "",
        added_by: str = "",
    ) -> OpeningBalance:
        """Replace the branch opening balance, keeping the history."""
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can set opening balances")

        branch = require_non_empty(branch, "Branch")
        value = require_amount(amount, "Opening balance")
        start = parse_optional_date(period_start)
        existing = self._opening.get(branch)
        history = list(existing.balance_history) if existing else []
        history.append(
            BalanceEntry(
                date=(start or now_utc().date()).isoformat(),
                amount=value,
                note=optional_text(note) or "Opening balance set",
                added_by=optional_text(added_by),
            )
        )
        self._opening.save(
            branch=branch,
            opening_balance=value,
            period_start=start or (existing.period_start if existing else None),
            history=history,
        )
        self._fanout.changed(OPENING_TABLE, ChangeEvent.UPDATE if existing else ChangeEvent.INSERT, None)
        return self.get_opening_balance(branch)

    def append_opening_entry(
        self,
        *,
        current_role: Role,
        branch: str,
        amount,
        entry_date: str,
        note: str = "",
        added_by: str = "",
    ) -> OpeningBalance:
        """Add ``amount`` to the opening balance and record it in the history."""
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can change opening balances")

        existing = self.get_opening_balance(branch)
        try:
            value = Decimal(str(amount)).quantize(Decimal("0.01"))
        except ArithmeticError:
            raise ValidationError("Amount is not a valid amount")
        when = parse_iso_date(entry_date)

        history = list(existing.balance_history)
        history.append(
            BalanceEntry(date=when.isoformat(), amount=value, note=optional_text(note), added_by=optional_text(added_by))
        )
        self._opening.save(
            branch=existing.branch,
            opening_balance=existing.opening_balance + value,
            period_start=existing.period_start,
            history=history,
        )
        self._fanout.changed(OPENING_TABLE, ChangeEvent.UPDATE, None)
        return self.get_opening_balance(existing.branch)

    def export(
        self,
        *,
        current_role: Role,
        user_id: int,
        branch: Optional[str] = None,
        status: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> ExportData:
        rows = []
        for t in self.list(current_role=current_role, user_id=user_id, branch=branch, status=status, start=start, end=end):
            rows.append(
                {
                    "voucher_no": t.voucher_no,
                    "transaction_date": t.transaction_date.strftime("%Y-%m-%d"),
                    "branch": t.branch,
                    "staff_name": t.staff_name or "-",
                    "bill_status": t.bill_status or "",
                    "primary_list": t.primary_list or "",
                    "nature_of_expense": t.nature_of_expense or "",
                    "cash_in": f"{t.cash_in:.2f}",
                    "cash_out": f"{t.cash_out:.2f}",
                    "balance": f"{t.balance:.2f}" if t.balance is not None else "",
                    "verification_status": t.verification_status.value,
                    "notes": t.notes or "",
                }
            )
        return ExportData(rows=rows, fieldnames=list(EXPORT_FIELDS))
