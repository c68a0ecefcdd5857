from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Union

import streamlit as st

from freshops.errors import StoreError
from freshops.schema import SCHEMA_SQL

logger = logging.getLogger(__name__)

# Collections reachable through the get/upsert/delete capability functions.
TABLES = {
    "products",
    "clients",
    "client_pricing",
    "client_pricing_history",
    "orders",
    "order_items",
    "payments",
    "inventory_batches",
}


def connect(db_path: Union[Path, str]) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@st.cache_resource
def get_conn(db_path: Path) -> sqlite3.Connection:
    return connect(db_path)


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    rows = conn.execute(f"PRAGMA table_info({table});").fetchall()
    cols = [r["name"] for r in rows]
    return column in cols


def ensure_schema(conn: sqlite3.Connection) -> None:
    # Create base schema (for new installs)
    conn.executescript(SCHEMA_SQL)

    # ---- migrations for existing installs ----
    # Batches created before packaging cost was stored per batch
    if not _column_exists(conn, "inventory_batches", "packaging_cost_per_unit"):
        conn.execute(
            "ALTER TABLE inventory_batches ADD COLUMN packaging_cost_per_unit REAL NOT NULL DEFAULT 0;"
        )

    conn.commit()


def q(conn, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
    try:
        cur = conn.execute(sql, tuple(params))
        rows = cur.fetchall()
        cur.close()
    except sqlite3.Error as e:
        logger.error("Read failed: %s", e)
        raise StoreError(f"Store read failed: {e}") from e
    return rows


def x(conn, sql: str, params: Iterable[Any] = ()) -> int:
    try:
        cur = conn.execute(sql, tuple(params))
        conn.commit()
        last = cur.lastrowid
        cur.close()
    except sqlite3.Error as e:
        logger.error("Write failed: %s", e)
        raise StoreError(f"Store write failed: {e}") from e
    return int(last or 0)


# -------------------------
# Capability interface
# -------------------------

def _check_table(table: str) -> str:
    if table not in TABLES:
        raise StoreError(f"Unknown collection: {table}")
    return table


def _where(filters: dict) -> tuple[str, tuple]:
    if not filters:
        return "", tuple()
    clause = " AND ".join(f"{k}=?" for k in filters)
    return f" WHERE {clause}", tuple(filters.values())


def get(conn, table: str, order_by: str | None = None, **filters) -> list[dict]:
    where, params = _where(filters)
    order = f" ORDER BY {order_by}" if order_by else ""
    rows = q(conn, f"SELECT * FROM {_check_table(table)}{where}{order}", params)
    return [dict(r) for r in rows]


def get_one(conn, table: str, **filters) -> dict | None:
    rows = get(conn, table, **filters)
    return rows[0] if rows else None


def upsert(conn, table: str, row: dict) -> int:
    """
    Insert ``row`` when it has no ``id``, otherwise update the existing record.
    Returns the row id.
    """
    _check_table(table)
    data = dict(row)
    row_id = data.pop("id", None)
    if row_id is None:
        cols = ", ".join(data)
        marks = ", ".join("?" for _ in data)
        return x(conn, f"INSERT INTO {table} ({cols}) VALUES ({marks})", tuple(data.values()))

    if data:
        assigns = ", ".join(f"{k}=?" for k in data)
        x(conn, f"UPDATE {table} SET {assigns} WHERE id=?", tuple(data.values()) + (int(row_id),))
    return int(row_id)


def delete(conn, table: str, **filters) -> int:
    if not filters:
        raise StoreError("Refusing to delete without a filter.")
    where, params = _where(filters)
    try:
        cur = conn.execute(f"DELETE FROM {_check_table(table)}{where}", params)
        conn.commit()
        n = cur.rowcount
        cur.close()
    except sqlite3.Error as e:
        logger.error("Delete from %s failed: %s", table, e)
        raise StoreError(f"Store delete failed: {e}") from e
    return int(n)
