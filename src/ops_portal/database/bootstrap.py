from __future__ import annotations

import re
from importlib import resources
from pathlib import Path
from typing import Iterable, Optional

from werkzeug.security import generate_password_hash

from ..common.logger import get_logger
from .connection import DatabaseConnection, DBConfig

log = get_logger(__name__)

DEMO_USERS = (
    # full_name, username, email, password, role, branch
    ("Admin Demo", "admin", "admin@example.com", "admin123", "admin", "Head Office"),
    ("Staff Demo", "staff", "staff@example.com", "staff123", "staff", "Head Office"),
)


def _strip_create_db_and_use(sql: str) -> str:
    # Keep schema.sql compatible regardless of DB name.
    sql = re.sub(r"(?im)^\s*CREATE\s+DATABASE\b.*?;\s*$", "", sql)
    sql = re.sub(r"(?im)^\s*USE\b.*?;\s*$", "", sql)
    return sql


def _strip_line_comments(sql: str) -> str:
    return re.sub(r"(?m)^\s*--.*$", "", sql)


def iter_sql_statements(sql: str) -> Iterable[str]:
    # Minimal SQL splitter (handles ';' inside quotes).
    buf: list[str] = []
    in_single = False
    in_double = False
    escape = False

    for ch in sql:
        if escape:
            buf.append(ch)
            escape = False
            continue

        if ch == "\\":
            buf.append(ch)
            escape = True
            continue

        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == ";" and not in_single and not in_double:
            stmt = "".join(buf).strip()
            buf.clear()
            if stmt:
                yield stmt
            continue

        buf.append(ch)

    tail = "".join(buf).strip()
    if tail:
        yield tail


def read_bundled_schema() -> str:
    return resources.files("ops_portal").joinpath("database", "schema.sql").read_text(encoding="utf-8")


def ensure_database_exists(db_config: dict) -> None:
    target = DBConfig.from_dict(db_config)
    conn = DatabaseConnection(target).connect(with_database=False)
    try:
        cur = conn.cursor()
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS `{target.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        conn.commit()
    finally:
        conn.close()


def apply_schema(db_config: dict, *, schema_path: Optional[str | Path] = None) -> int:
    """Create the database and every table that does not exist yet.

    Returns the number of statements executed.
    """
    ensure_database_exists(db_config)

    if schema_path is None:
        sql = read_bundled_schema()
    else:
        sql = Path(schema_path).read_text(encoding="utf-8")
    sql = _strip_line_comments(_strip_create_db_and_use(sql))

    conn = DatabaseConnection(DBConfig.from_dict(db_config)).connect()
    executed = 0
    try:
        cur = conn.cursor()
        for stmt in iter_sql_statements(sql):
            cur.execute(stmt)
            executed += 1
        conn.commit()
    finally:
        conn.close()
    log.info("schema applied (%d statements)", executed)
    return executed


def ensure_demo_users(db_config: dict) -> None:
    conn = DatabaseConnection(DBConfig.from_dict(db_config)).connect()
    try:
        cur = conn.cursor(dictionary=True)

        for full_name, username, email, password, role, branch in DEMO_USERS:
            password_hash = generate_password_hash(password)
            cur.execute("SELECT user_id FROM users WHERE username=%s", (username,))
            existing = cur.fetchone()
            if existing:
                cur.execute(
                    """
                    UPDATE users
                    SET full_name=%s, email=%s, password_hash=%s, role=%s, branch=%s, is_active=1
                    WHERE username=%s
                    """,
                    (full_name, email, password_hash, role, branch, username),
                )
            else:
                cur.execute(
                    """
                    INSERT INTO users (full_name, username, email, password_hash, role, branch)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (full_name, username, email, password_hash, role, branch),
                )

        conn.commit()
    finally:
        conn.close()
    log.info("demo users ready")


def list_tables(db_config: dict) -> list[str]:
    conn = DatabaseConnection(DBConfig.from_dict(db_config)).connect()
    try:
        cur = conn.cursor()
        cur.execute("SHOW TABLES")
        return [row[0] for row in cur.fetchall()]
    finally:
        conn.close()
