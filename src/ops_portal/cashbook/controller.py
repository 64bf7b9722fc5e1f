from __future__ import annotations

from flask import Flask, request, session

from ..common.datetime_utils import now_utc
from ..common.web import (
    admin_required,
    csv_response,
    current_role,
    current_user_id,
    json_action,
    login_required,
    ok,
    payload,
)
from ..container import Container


def register(app: Flask, container: Container) -> None:
    service = container.cashbook_service

    def _filters() -> dict:
        return {
            "branch": request.args.get("branch") or None,
            "status": request.args.get("status") or None,
            "start": request.args.get("start") or None,
            "end": request.args.get("end") or None,
        }

    @app.route("/api/cashbook/voucher-number", methods=["POST"], endpoint="voucher_number")
    @login_required
    @json_action("Failed to generate voucher number")
    def voucher_number():
        data = payload()
        kind = data.get("type", "")
        voucher_no = service.next_voucher_number(branch=data.get("branch", ""), kind=kind)
        return ok({"voucher_no": voucher_no, "type": kind})

    @app.route("/api/cashbook/transactions", methods=["GET"], endpoint="list_cash_transactions")
    @login_required
    @json_action("Failed to load transactions")
    def list_cash_transactions():
        role, user_id = current_role(), current_user_id()
        f = _filters()
        items = container.cache.get_or_load(
            ("cash-transactions", role.value, user_id, f["branch"], f["status"], f["start"], f["end"]),
            lambda: list(service.list(current_role=role, user_id=user_id, **f)),
        )
        return ok(items)

    @app.route("/api/cashbook/transactions", methods=["POST"], endpoint="create_cash_transaction")
    @login_required
    @json_action("System error while recording transaction")
    def create_cash_transaction():
        data = payload()
        txn = service.build_transaction(
            branch=data.get("branch") or session.get("branch") or "",
            transaction_date=data.get("transaction_date") or now_utc().date().isoformat(),
            cash_in=data.get("cash_in"),
            cash_out=data.get("cash_out"),
            bill_status=data.get("bill_status", ""),
            primary_list=data.get("primary_list", ""),
            nature_of_expense=data.get("nature_of_expense", ""),
            notes=data.get("notes", ""),
        )
        transaction_id = service.create(current_role=current_role(), user_id=current_user_id(), txn=txn)
        return ok(service.get(transaction_id), "Transaction recorded, awaiting verification", 201)

    @app.route("/api/cashbook/transactions/<int:transaction_id>", methods=["DELETE"], endpoint="delete_cash_transaction")
    @login_required
    @json_action("System error while deleting transaction")
    def delete_cash_transaction(transaction_id: int):
        service.delete(current_role=current_role(), user_id=current_user_id(), transaction_id=transaction_id)
        return ok(message="Transaction deleted")

    @app.route("/api/cashbook/transactions/pending-count", methods=["GET"], endpoint="cash_pending_count")
    @admin_required
    @json_action("Failed to load pending count")
    def cash_pending_count():
        n = container.cache.get_or_load(("cash-transactions", "pending-count"), service.pending_count)
        return ok({"count": n})

    @app.route(
        "/api/cashbook/transactions/<int:transaction_id>/approve", methods=["POST"], endpoint="approve_cash_transaction"
    )
    @admin_required
    @json_action("System error while approving transaction")
    def approve_cash_transaction(transaction_id: int):
        txn = service.approve(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            transaction_id=transaction_id,
            verification_notes=payload().get("verification_notes", ""),
        )
        return ok(txn, "Transaction approved")

    @app.route(
        "/api/cashbook/transactions/<int:transaction_id>/reject", methods=["POST"], endpoint="reject_cash_transaction"
    )
    @admin_required
    @json_action("System error while rejecting transaction")
    def reject_cash_transaction(transaction_id: int):
        txn = service.reject(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            transaction_id=transaction_id,
            verification_notes=payload().get("verification_notes", ""),
        )
        return ok(txn, "Transaction rejected")

    @app.route("/api/cashbook/summary", methods=["GET"], endpoint="cashbook_summary")
    @login_required
    @json_action("Failed to load cashbook summary")
    def cashbook_summary():
        branch = request.args.get("branch") or session.get("branch") or ""
        start, end = request.args.get("start") or None, request.args.get("end") or None
        summary = container.cache.get_or_load(
            ("cashbook-summary", branch, start, end),
            lambda: service.summary(branch=branch, start=start, end=end),
        )
        return ok(summary)

    @app.route("/api/cashbook/transactions.csv", methods=["GET"], endpoint="cash_transactions_csv")
    @login_required
    @json_action("Failed to export transactions")
    def cash_transactions_csv():
        f = _filters()
        data = service.export(current_role=current_role(), user_id=current_user_id(), **f)
        stamp = now_utc().strftime("%Y%m%d")
        filename = f"cashbook_{(f['branch'] or 'all').replace(' ', '_')}_{stamp}.csv"
        return csv_response(data.rows, fieldnames=data.fieldnames, filename=filename)

    @app.route("/api/cashbook/opening-balances", methods=["GET"], endpoint="list_opening_balances")
    @admin_required
    @json_action("Failed to load opening balances")
    def list_opening_balances():
        items = container.cache.get_or_load(("branch-opening-balances", "all"), lambda: list(service.opening_balances()))
        return ok(items)

    @app.route("/api/cashbook/opening-balances", methods=["PUT"], endpoint="set_opening_balance")
    @admin_required
    @json_action("System error while saving opening balance")
    def set_opening_balance():
        data = payload()
        ob = service.set_opening_balance(
            current_role=current_role(),
            branch=data.get("branch", ""),
            amount=data.get("opening_balance"),
            period_start=data.get("period_start", ""),
            note=data.get("note", ""),
            added_by=session.get("name") or "",
        )
        return ok(ob, "Opening balance saved")

    @app.route("/api/cashbook/opening-balances/append", methods=["POST"], endpoint="append_opening_balance")
    @admin_required
    @json_action("System error while adding opening balance entry")
    def append_opening_balance():
        data = payload()
        ob = service.append_opening_entry(
            current_role=current_role(),
            branch=data.get("branch", ""),
            amount=data.get("amount"),
            entry_date=data.get("date", ""),
            note=data.get("note", ""),
            added_by=data.get("added_by") or session.get("name") or "",
        )
        return ok(ob, "Opening balance entry added")
