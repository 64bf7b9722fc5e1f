from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Protocol, Sequence, Tuple

from ..core.enums import RequestStatus
from .model import BalanceEntry, CashTransaction, NewCashTransaction, OpeningBalance


class CashTransactionRepository(Protocol):
    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        raise NotImplementedError

    def list_voucher_numbers(self, *, branch: str, prefix: str, year: int) -> Sequence[str]:
        raise NotImplementedError

    def create(self, *, voucher_no: str, staff_id: int, txn: NewCashTransaction) -> int:
        """Raises ConflictError when the voucher number is taken for the branch."""
        raise NotImplementedError

    def get(self, transaction_id: int) -> Optional[CashTransaction]:
        raise NotImplementedError

    def list(
        self,
        *,
        branch: Optional[str] = None,
        status: Optional[RequestStatus] = None,
        staff_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: int = 500,
    ) -> Sequence[CashTransaction]:
        raise NotImplementedError

    def latest_approved_balance(self, branch: str) -> Optional[Decimal]:
        raise NotImplementedError

    def approved_totals(
        self, *, branch: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> Tuple[Decimal, Decimal, int]:
        """(sum cash_in, sum cash_out, count) over approved transactions."""
        raise NotImplementedError

    def decide(
        self,
        *,
        transaction_id: int,
        status: RequestStatus,
        verified_by: int,
        verification_notes: Optional[str],
        balance: Optional[Decimal] = None,
    ) -> bool:
        raise NotImplementedError

    def delete(self, transaction_id: int) -> bool:
        raise NotImplementedError

    def count_by_status(self, status: RequestStatus) -> int:
        raise NotImplementedError


class OpeningBalanceRepository(Protocol):
    def get(self, branch: str) -> Optional[OpeningBalance]:
        raise NotImplementedError

    def list(self) -> Sequence[OpeningBalance]:
        raise NotImplementedError

    def save(
        self,
        *,
        branch: str,
        opening_balance: Decimal,
        period_start: Optional[date],
        history: Sequence[BalanceEntry],
    ) -> None:
        raise NotImplementedError
