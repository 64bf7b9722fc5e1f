from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Tuple

import mysql.connector

from ..core.enums import RequestStatus
from ..core.exceptions import ConflictError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import (
    as_decimal,
    build_where,
    db_cursor,
    dump_json,
    fetchall,
    fetchone,
    load_json,
    select_badge_rows,
)
from .model import BalanceEntry, CashTransaction, NewCashTransaction, OpeningBalance
from .repository import CashTransactionRepository, OpeningBalanceRepository

_SELECT = """
    SELECT c.*, u.full_name AS staff_name
    FROM cash_transactions c
    LEFT JOIN users u ON u.user_id = c.staff_id
"""


def _to_transaction(r: dict) -> CashTransaction:
    return CashTransaction(
        transaction_id=int(r["transaction_id"]),
        voucher_no=r["voucher_no"],
        staff_id=int(r["staff_id"]),
        staff_name=r.get("staff_name"),
        branch=r["branch"],
        transaction_date=r["transaction_date"],
        cash_in=as_decimal(r.get("cash_in")),
        cash_out=as_decimal(r.get("cash_out")),
        balance=as_decimal(r["balance"]) if r.get("balance") is not None else None,
        bill_status=r.get("bill_status"),
        primary_list=r.get("primary_list"),
        nature_of_expense=r.get("nature_of_expense"),
        notes=r.get("notes"),
        verification_status=RequestStatus(r["verification_status"]),
        verified_by=r.get("verified_by"),
        verified_at=r.get("verified_at"),
        verification_notes=r.get("verification_notes"),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


def _to_entry(e: dict) -> BalanceEntry:
    return BalanceEntry(
        date=str(e.get("date") or ""),
        amount=as_decimal(e.get("amount")),
        note=e.get("note"),
        added_by=e.get("added_by"),
    )


def _to_opening(r: dict) -> OpeningBalance:
    history = load_json(r.get("balance_history"), default=[]) or []
    return OpeningBalance(
        branch=r["branch"],
        opening_balance=as_decimal(r.get("opening_balance")),
        period_start=r.get("period_start"),
        balance_history=tuple(_to_entry(e) for e in history if isinstance(e, dict)),
        updated_at=r.get("updated_at"),
    )


class MySQLCashTransactionRepository(CashTransactionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return select_badge_rows(
            self._conn_factory,
            table="cash_transactions",
            statuses=statuses,
            status_column="verification_status",
            owner_column="staff_id",
            owner_id=owner_id,
        )

    def list_voucher_numbers(self, *, branch: str, prefix: str, year: int) -> Sequence[str]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT voucher_no FROM cash_transactions
                WHERE branch=%s AND voucher_no LIKE %s AND voucher_year=%s
                """,
                (branch, f"{prefix}%", int(year)),
            )
            return [r["voucher_no"] for r in fetchall(cur)]

    def create(self, *, voucher_no: str, staff_id: int, txn: NewCashTransaction) -> int:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO cash_transactions(
                        voucher_no, staff_id, branch, transaction_date, bill_status, primary_list,
                        nature_of_expense, cash_in, cash_out, notes, verification_status
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        voucher_no,
                        int(staff_id),
                        txn.branch,
                        txn.transaction_date,
                        txn.bill_status,
                        txn.primary_list,
                        txn.nature_of_expense,
                        txn.cash_in,
                        txn.cash_out,
                        txn.notes,
                        RequestStatus.PENDING.value,
                    ),
                )
                return int(cur.lastrowid)
        except mysql.connector.IntegrityError as e:
            raise ConflictError(f"Voucher {voucher_no} already exists for {txn.branch}") from e

    def get(self, transaction_id: int) -> Optional[CashTransaction]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT + " WHERE c.transaction_id=%s", (int(transaction_id),))
            row = fetchone(cur)
            return _to_transaction(row) if row else None

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
        where, params = build_where(
            [
                ("c.branch=%s", branch),
                ("c.verification_status=%s", status),
                ("c.staff_id=%s", staff_id),
                ("c.transaction_date >= %s", start),
                ("c.transaction_date <= %s", end),
            ]
        )
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SELECT + f" WHERE {where} ORDER BY c.transaction_date DESC, c.transaction_id DESC LIMIT %s",
                tuple(params + [int(limit)]),
            )
            return [_to_transaction(r) for r in fetchall(cur)]

    def latest_approved_balance(self, branch: str) -> Optional[Decimal]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT balance FROM cash_transactions
                WHERE branch=%s AND verification_status=%s AND balance IS NOT NULL
                ORDER BY verified_at DESC, transaction_id DESC
                LIMIT 1
                """,
                (branch, RequestStatus.APPROVED.value),
            )
            row = fetchone(cur)
            return as_decimal(row["balance"]) if row else None

    def approved_totals(
        self, *, branch: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> Tuple[Decimal, Decimal, int]:
        where, params = build_where(
            [
                ("branch=%s", branch),
                ("verification_status=%s", RequestStatus.APPROVED),
                ("transaction_date >= %s", start),
                ("transaction_date <= %s", end),
            ]
        )
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT COALESCE(SUM(cash_in), 0) AS total_in, COALESCE(SUM(cash_out), 0) AS total_out,
                       COUNT(*) AS n
                FROM cash_transactions WHERE {where}
                """,
                tuple(params),
            )
            row = fetchone(cur) or {}
            return as_decimal(row.get("total_in")), as_decimal(row.get("total_out")), int(row.get("n") or 0)

    def decide(
        self,
        *,
        transaction_id: int,
        status: RequestStatus,
        verified_by: int,
        verification_notes: Optional[str],
        balance: Optional[Decimal] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE cash_transactions
                SET verification_status=%s, verified_by=%s, verified_at=NOW(), verification_notes=%s,
                    balance=COALESCE(%s, balance)
                WHERE transaction_id=%s AND verification_status=%s
                """,
                (
                    status.value,
                    int(verified_by),
                    verification_notes,
                    balance,
                    int(transaction_id),
                    RequestStatus.PENDING.value,
                ),
            )
            return cur.rowcount > 0

    def delete(self, transaction_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM cash_transactions WHERE transaction_id=%s", (int(transaction_id),))
            return cur.rowcount > 0

    def count_by_status(self, status: RequestStatus) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM cash_transactions WHERE verification_status=%s", (status.value,))
            row = fetchone(cur)
            return int(row["n"]) if row else 0


class MySQLOpeningBalanceRepository(OpeningBalanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, branch: str) -> Optional[OpeningBalance]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT * FROM branch_opening_balances WHERE branch=%s", (branch,))
            row = fetchone(cur)
            return _to_opening(row) if row else None

    def list(self) -> Sequence[OpeningBalance]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT * FROM branch_opening_balances ORDER BY branch")
            return [_to_opening(r) for r in fetchall(cur)]

    def save(
        self,
        *,
        branch: str,
        opening_balance: Decimal,
        period_start: Optional[date],
        history: Sequence[BalanceEntry],
    ) -> None:
        history_json = dump_json(
            [{"date": e.date, "amount": e.amount, "note": e.note, "added_by": e.added_by} for e in history]
        )
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO branch_opening_balances(branch, opening_balance, period_start, balance_history)
                VALUES(%s,%s,%s,%s)
                ON DUPLICATE KEY UPDATE
                    opening_balance=VALUES(opening_balance),
                    period_start=VALUES(period_start),
                    balance_history=VALUES(balance_history)
                """,
                (branch, opening_balance, period_start, history_json),
            )
