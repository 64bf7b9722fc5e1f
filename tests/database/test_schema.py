from __future__ import annotations

import re

from ops_portal.database.bootstrap import iter_sql_statements, read_bundled_schema

_TIMESTAMP_COLUMN = re.compile(r"^\s*(created_at|updated_at|last_viewed_at)\s+(\w+(?:\(\d+\))?)", re.M)


def test_badge_timestamps_share_microsecond_precision():
    # last-viewed and record timestamps are compared directly when counting new rows
    columns = _TIMESTAMP_COLUMN.findall(read_bundled_schema())

    assert ("last_viewed_at", "DATETIME(6)") in columns
    assert len(columns) > 20
    assert {kind for _, kind in columns} == {"DATETIME(6)"}


def test_schema_creates_stationary_and_proof_tables():
    statements = list(iter_sql_statements(read_bundled_schema()))
    created = {m.group(1) for s in statements for m in [re.search(r"CREATE TABLE IF NOT EXISTS (\w+)", s)] if m}

    assert {"grocery_requests", "grocery_request_items", "task_update_proofs"} <= created
