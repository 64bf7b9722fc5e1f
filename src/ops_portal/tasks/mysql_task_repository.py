from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Sequence

import mysql.connector

from ..core.enums import RequestStatus, TaskPriority, TaskStatus
from ..core.exceptions import ConflictError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import build_where, db_cursor, fetchall, fetchone, select_badge_rows
from .model import Task, TaskDelegation, TaskProof, TaskReschedule
from .repository import RescheduleRepository, TaskProofRepository, TaskRepository

_TASK_SELECT = """
    SELECT t.*, u.full_name AS assignee_name
    FROM tasks t
    LEFT JOIN users u ON u.user_id = t.assigned_to
"""

_DELEGATION_SELECT = """
    SELECT d.*, f.full_name AS from_name, t.full_name AS to_name
    FROM task_delegations d
    LEFT JOIN users f ON f.user_id = d.from_staff_id
    LEFT JOIN users t ON t.user_id = d.to_staff_id
"""

_RESCHEDULE_SELECT = """
    SELECT r.*, t.task_no, t.title, u.full_name AS staff_name
    FROM task_reschedules r
    JOIN tasks t ON t.task_id = r.task_id
    LEFT JOIN users u ON u.user_id = r.staff_id
"""


def _to_delegation(r: dict) -> TaskDelegation:
    return TaskDelegation(
        delegation_id=int(r["delegation_id"]),
        task_id=int(r["task_id"]),
        from_staff_id=int(r["from_staff_id"]),
        to_staff_id=int(r["to_staff_id"]),
        notes=r.get("notes"),
        created_at=r.get("created_at"),
        from_name=r.get("from_name"),
        to_name=r.get("to_name"),
    )


def _to_task(r: dict, delegations=()) -> Task:
    return Task(
        task_id=int(r["task_id"]),
        task_no=r["task_no"],
        title=r["title"],
        description=r.get("description"),
        assigned_to=int(r["assigned_to"]),
        created_by=int(r["created_by"]),
        priority=TaskPriority(r["priority"]),
        status=TaskStatus(r["status"]),
        due_date=r.get("due_date"),
        delegation_count=int(r.get("delegation_count") or 0),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
        assignee_name=r.get("assignee_name"),
        delegations=tuple(delegations),
    )


def _to_reschedule(r: dict) -> TaskReschedule:
    return TaskReschedule(
        reschedule_id=int(r["reschedule_id"]),
        task_id=int(r["task_id"]),
        staff_id=int(r["staff_id"]),
        current_due_date=r.get("current_due_date"),
        requested_new_date=r["requested_new_date"],
        reason=r["reason"],
        status=RequestStatus(r["status"]),
        admin_id=r.get("admin_id"),
        admin_response=r.get("admin_response"),
        responded_at=r.get("responded_at"),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
        task_no=r.get("task_no"),
        title=r.get("title"),
        staff_name=r.get("staff_name"),
    )


_PROOF_SELECT = """
    SELECT p.*, t.task_no, t.title, u.full_name AS staff_name
    FROM task_update_proofs p
    JOIN tasks t ON t.task_id = p.task_id
    LEFT JOIN users u ON u.user_id = p.staff_id
"""


def _to_proof(r: dict) -> TaskProof:
    return TaskProof(
        proof_id=int(r["proof_id"]),
        task_id=int(r["task_id"]),
        staff_id=int(r["staff_id"]),
        status=TaskStatus(r["status"]),
        proof_url=r["proof_url"],
        notes=r.get("notes"),
        verification_status=RequestStatus(r["verification_status"]),
        verified_by=r.get("verified_by"),
        verified_at=r.get("verified_at"),
        verification_notes=r.get("verification_notes"),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
        task_no=r.get("task_no"),
        title=r.get("title"),
        staff_name=r.get("staff_name"),
    )


class MySQLTaskRepository(TaskRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return select_badge_rows(
            self._conn_factory,
            table="tasks",
            statuses=statuses,
            status_column="status",
            owner_column="assigned_to",
            owner_id=owner_id,
        )

    def list_task_numbers(self) -> Sequence[str]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT task_no FROM tasks")
            return [r["task_no"] for r in fetchall(cur)]

    def create(
        self,
        *,
        task_no: str,
        title: str,
        description: Optional[str],
        assigned_to: int,
        created_by: int,
        priority: TaskPriority,
        due_date: Optional[date],
    ) -> int:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO tasks(task_no, title, description, assigned_to, created_by, priority, status, due_date)
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        task_no,
                        title,
                        description,
                        int(assigned_to),
                        int(created_by),
                        priority.value,
                        TaskStatus.PENDING.value,
                        due_date,
                    ),
                )
                return int(cur.lastrowid)
        except mysql.connector.IntegrityError as e:
            raise ConflictError(f"Task number {task_no} already exists") from e

    def get(self, task_id: int) -> Optional[Task]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_TASK_SELECT + " WHERE t.task_id=%s", (int(task_id),))
            row = fetchone(cur)
            if not row:
                return None
            cur.execute(_DELEGATION_SELECT + " WHERE d.task_id=%s ORDER BY d.delegation_id", (int(task_id),))
            delegations = [_to_delegation(d) for d in fetchall(cur)]
            return _to_task(row, delegations)

    def list(
        self,
        *,
        assigned_to: Optional[int] = None,
        status: Optional[TaskStatus] = None,
        limit: int = 200,
    ) -> Sequence[Task]:
        where, params = build_where([("t.assigned_to=%s", assigned_to), ("t.status=%s", status)])
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _TASK_SELECT + f" WHERE {where} ORDER BY t.created_at DESC LIMIT %s",
                tuple(params + [int(limit)]),
            )
            rows = fetchall(cur)
            ids = [int(r["task_id"]) for r in rows if int(r.get("delegation_count") or 0) > 0]

            by_task: dict[int, list[TaskDelegation]] = {}
            if ids:
                marks = ",".join(["%s"] * len(ids))
                cur.execute(
                    _DELEGATION_SELECT + f" WHERE d.task_id IN ({marks}) ORDER BY d.delegation_id",
                    tuple(ids),
                )
                for d in fetchall(cur):
                    deleg = _to_delegation(d)
                    by_task.setdefault(deleg.task_id, []).append(deleg)

            return [_to_task(r, by_task.get(int(r["task_id"]), ())) for r in rows]

    def update_status(self, *, task_id: int, status: TaskStatus) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("UPDATE tasks SET status=%s WHERE task_id=%s", (status.value, int(task_id)))
            return cur.rowcount > 0

    def delegate(self, *, task_id: int, from_staff_id: int, to_staff_id: int, notes: Optional[str]) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE tasks
                SET assigned_to=%s, delegation_count=delegation_count+1
                WHERE task_id=%s AND assigned_to=%s
                """,
                (int(to_staff_id), int(task_id), int(from_staff_id)),
            )
            if cur.rowcount == 0:
                return False
            cur.execute(
                "INSERT INTO task_delegations(task_id, from_staff_id, to_staff_id, notes) VALUES(%s,%s,%s,%s)",
                (int(task_id), int(from_staff_id), int(to_staff_id), notes),
            )
            return True

    def set_due_date(self, *, task_id: int, due_date: date) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("UPDATE tasks SET due_date=%s WHERE task_id=%s", (due_date, int(task_id)))
            return cur.rowcount > 0

    def delete(self, task_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM tasks WHERE task_id=%s", (int(task_id),))
            return cur.rowcount > 0


class MySQLRescheduleRepository(RescheduleRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return select_badge_rows(
            self._conn_factory,
            table="task_reschedules",
            statuses=statuses,
            status_column="status",
            owner_column="staff_id",
            owner_id=owner_id,
        )

    def create(
        self,
        *,
        task_id: int,
        staff_id: int,
        current_due_date: Optional[date],
        requested_new_date: date,
        reason: str,
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO task_reschedules(task_id, staff_id, current_due_date, requested_new_date, reason, status)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(task_id),
                    int(staff_id),
                    current_due_date,
                    requested_new_date,
                    reason,
                    RequestStatus.PENDING.value,
                ),
            )
            return int(cur.lastrowid)

    def get(self, reschedule_id: int) -> Optional[TaskReschedule]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_RESCHEDULE_SELECT + " WHERE r.reschedule_id=%s", (int(reschedule_id),))
            row = fetchone(cur)
            return _to_reschedule(row) if row else None

    def list(
        self,
        *,
        status: Optional[RequestStatus] = None,
        staff_id: Optional[int] = None,
        task_id: Optional[int] = None,
        limit: int = 200,
    ) -> Sequence[TaskReschedule]:
        where, params = build_where([("r.status=%s", status), ("r.staff_id=%s", staff_id), ("r.task_id=%s", task_id)])
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _RESCHEDULE_SELECT + f" WHERE {where} ORDER BY r.created_at DESC LIMIT %s",
                tuple(params + [int(limit)]),
            )
            return [_to_reschedule(r) for r in fetchall(cur)]

    def decide(
        self,
        *,
        reschedule_id: int,
        status: RequestStatus,
        admin_id: int,
        admin_response: Optional[str],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE task_reschedules
                SET status=%s, admin_id=%s, admin_response=%s, responded_at=NOW()
                WHERE reschedule_id=%s AND status=%s
                """,
                (status.value, int(admin_id), admin_response, int(reschedule_id), RequestStatus.PENDING.value),
            )
            return cur.rowcount > 0

    def count_by_status(self, status: RequestStatus) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM task_reschedules WHERE status=%s", (status.value,))
            row = fetchone(cur)
            return int(row["n"]) if row else 0


class MySQLTaskProofRepository(TaskProofRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return select_badge_rows(
            self._conn_factory,
            table="task_update_proofs",
            statuses=statuses,
            status_column="verification_status",
            owner_column="staff_id",
            owner_id=owner_id,
        )

    def create(
        self,
        *,
        task_id: int,
        staff_id: int,
        status: TaskStatus,
        proof_url: str,
        notes: Optional[str],
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO task_update_proofs(task_id, staff_id, status, proof_url, notes, verification_status)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (int(task_id), int(staff_id), status.value, proof_url, notes, RequestStatus.PENDING.value),
            )
            return int(cur.lastrowid)

    def get(self, proof_id: int) -> Optional[TaskProof]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_PROOF_SELECT + " WHERE p.proof_id=%s", (int(proof_id),))
            row = fetchone(cur)
            return _to_proof(row) if row else None

    def list(
        self,
        *,
        verification_status: Optional[RequestStatus] = None,
        staff_id: Optional[int] = None,
        task_id: Optional[int] = None,
        limit: int = 200,
    ) -> Sequence[TaskProof]:
        where, params = build_where(
            [("p.verification_status=%s", verification_status), ("p.staff_id=%s", staff_id), ("p.task_id=%s", task_id)]
        )
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _PROOF_SELECT + f" WHERE {where} ORDER BY p.created_at DESC LIMIT %s",
                tuple(params + [int(limit)]),
            )
            return [_to_proof(r) for r in fetchall(cur)]

    def verify(
        self,
        *,
        proof_id: int,
        verification_status: RequestStatus,
        verified_by: int,
        verification_notes: Optional[str],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE task_update_proofs
                SET verification_status=%s, verified_by=%s, verified_at=NOW(), verification_notes=%s
                WHERE proof_id=%s AND verification_status=%s
                """,
                (
                    verification_status.value,
                    int(verified_by),
                    verification_notes,
                    int(proof_id),
                    RequestStatus.PENDING.value,
                ),
            )
            return cur.rowcount > 0

    def count_by_status(self, verification_status: RequestStatus) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT COUNT(*) AS n FROM task_update_proofs WHERE verification_status=%s",
                (verification_status.value,),
            )
            row = fetchone(cur)
            return int(row["n"]) if row else 0
