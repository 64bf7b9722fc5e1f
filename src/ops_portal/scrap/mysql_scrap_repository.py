from __future__ import annotations

from typing import Iterable, Optional, Sequence

from ..core.enums import RequestStatus, ScrapCondition, SubmitterType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import build_where, db_cursor, fetchall, fetchone, select_badge_rows
from .model import ScrapDetails, ScrapRequest
from .repository import ScrapRepository


def _to_scrap(r: dict) -> ScrapRequest:
    return ScrapRequest(
        scrap_id=int(r["scrap_id"]),
        submitter_type=SubmitterType(r["submitter_type"]),
        submitter_id=int(r["submitter_id"]),
        submitter_name=r["submitter_name"],
        details=ScrapDetails(
            branch=r["branch"],
            brand_name=r["brand_name"],
            scrap_status=ScrapCondition(r["scrap_status"]),
            workstation_number=r.get("workstation_number"),
            users_name=r.get("users_name"),
            serial_number=r.get("serial_number"),
            other_issue=r.get("other_issue"),
        ),
        source_asset_id=r.get("source_asset_id"),
        status=RequestStatus(r["status"]),
        admin_response=r.get("admin_response"),
        admin_approver_id=r.get("admin_approver_id"),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


def _details_params(d: ScrapDetails) -> tuple:
    return (
        d.brand_name,
        d.workstation_number,
        d.users_name,
        d.serial_number,
        d.scrap_status.value,
        d.other_issue,
        d.branch,
    )


class MySQLScrapRepository(ScrapRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return select_badge_rows(
            self._conn_factory,
            table="scrap_requests",
            statuses=statuses,
            status_column="status",
            owner_column="submitter_id",
            owner_id=owner_id,
        )

    def create(
        self,
        *,
        submitter_type: SubmitterType,
        submitter_id: int,
        submitter_name: str,
        details: ScrapDetails,
        source_asset_id: Optional[int] = None,
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO scrap_requests(
                    submitter_type, submitter_id, submitter_name, brand_name, workstation_number,
                    users_name, serial_number, scrap_status, other_issue, branch, source_asset_id, status
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (submitter_type.value, int(submitter_id), submitter_name)
                + _details_params(details)
                + (source_asset_id, RequestStatus.PENDING.value),
            )
            return int(cur.lastrowid)

    def get(self, scrap_id: int) -> Optional[ScrapRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT * FROM scrap_requests WHERE scrap_id=%s", (int(scrap_id),))
            row = fetchone(cur)
            return _to_scrap(row) if row else None

    def list(
        self,
        *,
        status: Optional[RequestStatus] = None,
        submitter_id: Optional[int] = None,
        branch: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[ScrapRequest]:
        where, params = build_where([("status=%s", status), ("submitter_id=%s", submitter_id), ("branch=%s", branch)])
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT * FROM scrap_requests WHERE {where} ORDER BY created_at DESC LIMIT %s",
                tuple(params + [int(limit)]),
            )
            return [_to_scrap(r) for r in fetchall(cur)]

    def update_pending(self, *, scrap_id: int, details: ScrapDetails) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE scrap_requests
                SET brand_name=%s, workstation_number=%s, users_name=%s, serial_number=%s,
                    scrap_status=%s, other_issue=%s, branch=%s
                WHERE scrap_id=%s AND status=%s
                """,
                _details_params(details) + (int(scrap_id), RequestStatus.PENDING.value),
            )
            return cur.rowcount > 0

    def delete(self, scrap_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM scrap_requests WHERE scrap_id=%s", (int(scrap_id),))
            return cur.rowcount > 0

    def decide(
        self,
        *,
        scrap_id: int,
        status: RequestStatus,
        decided_by: int,
        admin_response: Optional[str],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE scrap_requests
                SET status=%s, admin_approver_id=%s, admin_response=%s
                WHERE scrap_id=%s AND status=%s
                """,
                (status.value, int(decided_by), admin_response, int(scrap_id), RequestStatus.PENDING.value),
            )
            return cur.rowcount > 0

    def count_by_status(self, status: RequestStatus) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM scrap_requests WHERE status=%s", (status.value,))
            row = fetchone(cur)
            return int(row["n"]) if row else 0
