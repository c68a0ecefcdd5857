from __future__ import annotations

import re
import sqlite3
from types import SimpleNamespace

import pytest

from freshops.db import connect, ensure_schema
from freshops.models import CLIENT_RESTAURANT, CLIENT_SUPERMARKET, UNIT_KG, UNIT_PC
from freshops.services.catalog import save_client, save_product


@pytest.fixture
def conn():
    c = connect(":memory:")
    ensure_schema(c)
    yield c
    c.close()


@pytest.fixture
def seeded(conn):
    basil = save_product(conn, name="Basil", unit=UNIT_KG, cost_per_unit=100)
    lettuce = save_product(conn, name="Lettuce", unit=UNIT_PC, cost_per_unit=10)
    bistro = save_client(conn, name="Bistro", client_type=CLIENT_RESTAURANT, phone="+20 (100) 555-0101", credit_days=15)
    market = save_client(conn, name="Market", client_type=CLIENT_SUPERMARKET, phone="0100 555 0102", credit_days=None)
    return SimpleNamespace(conn=conn, basil=basil, lettuce=lettuce, bistro=bistro, market=market)


class FailingConn:
    """
    Wraps a sqlite connection and raises OperationalError for statements whose
    SQL matches ``pattern``. Everything else passes through.
    """

    def __init__(self, conn, pattern: str):
        self._conn = conn
        self._pattern = re.compile(pattern, re.IGNORECASE | re.DOTALL)

    def execute(self, sql, params=()):
        if self._pattern.search(sql):
            raise sqlite3.OperationalError(f"simulated failure: {sql.split()[0]}")
        return self._conn.execute(sql, params)

    def __getattr__(self, name):
        return getattr(self._conn, name)


@pytest.fixture
def failing():
    def _wrap(conn, pattern):
        return FailingConn(conn, pattern)

    return _wrap
