from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .connection import DatabaseConnection


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def build_where(filters: Sequence[Tuple[str, Any]]) -> Tuple[str, list]:
    """Turn ``[("r.status=%s", value), ...]`` into a WHERE body, skipping None values."""
    clauses = ["1=1"]
    params: list = []
    for clause, value in filters:
        if value is None:
            continue
        clauses.append(clause)
        params.append(value.value if hasattr(value, "value") else value)
    return " AND ".join(clauses), params


def select_badge_rows(
    conn_factory: DatabaseConnection,
    *,
    table: str,
    statuses: Iterable[Any],
    status_column: str = "status",
    owner_column: Optional[str] = None,
    owner_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Status and timestamps of every row in ``statuses``, with no row cap.

    ``table`` and the column names come from repository code, never from input.
    """
    wanted = sorted({s.value if hasattr(s, "value") else str(s) for s in statuses})
    if not wanted:
        return []

    marks = ",".join(["%s"] * len(wanted))
    sql = f"SELECT {status_column} AS status, created_at, updated_at FROM {table} WHERE {status_column} IN ({marks})"
    params: list = list(wanted)
    if owner_id is not None and owner_column:
        sql += f" AND {owner_column}=%s"
        params.append(int(owner_id))

    with db_cursor(conn_factory) as (_, cur):
        cur.execute(sql, tuple(params))
        return fetchall(cur)


def _json_default(value: Any):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Unsupported JSON value: {type(value)!r}")


def dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=_json_default)


def load_json(value: Any, default: Any = None) -> Any:
    """Decode a MySQL JSON column (driver returns str or bytes)."""
    if value is None or value == "":
        return default
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value)
    return value


def as_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))
