from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

from ..core.enums import RequestStatus


@dataclass(frozen=True)
class NewCashTransaction:
    branch: str
    transaction_date: date
    cash_in: Decimal = Decimal("0.00")
    cash_out: Decimal = Decimal("0.00")
    bill_status: Optional[str] = None
    primary_list: Optional[str] = None
    nature_of_expense: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_cash_out(self) -> bool:
        return self.cash_out > 0


@dataclass(frozen=True)
class CashTransaction:
    transaction_id: int
    voucher_no: str
    staff_id: int
    branch: str
    transaction_date: date
    cash_in: Decimal = Decimal("0.00")
    cash_out: Decimal = Decimal("0.00")
    balance: Optional[Decimal] = None
    bill_status: Optional[str] = None
    primary_list: Optional[str] = None
    nature_of_expense: Optional[str] = None
    notes: Optional[str] = None
    verification_status: RequestStatus = RequestStatus.PENDING
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    verification_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    staff_name: Optional[str] = None


@dataclass(frozen=True)
class BalanceEntry:
    date: str
    amount: Decimal
    note: Optional[str] = None
    added_by: Optional[str] = None


@dataclass(frozen=True)
class OpeningBalance:
    branch: str
    opening_balance: Decimal = Decimal("0.00")
    period_start: Optional[date] = None
    balance_history: Tuple[BalanceEntry, ...] = field(default_factory=tuple)
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class CashbookSummary:
    branch: str
    opening_balance: Decimal
    total_cash_in: Decimal
    total_cash_out: Decimal
    closing_balance: Decimal
    transaction_count: int
