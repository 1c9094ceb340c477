"""Tests for reading index catalogs from live databases."""

from __future__ import annotations

import sqlite3

import pytest

from idxprobe.exit_codes import EXIT_INPUT_MISSING, InputMissingError
from idxprobe.migrations.live import (
    catalog_from_rows,
    fetch_index_rows,
    open_sqlite_catalog,
)

SCHEMA = """
CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT UNIQUE, status TEXT);
CREATE INDEX idx_users_status ON users (status);
CREATE INDEX idx_users_lower_email ON users (lower(email));
CREATE TABLE memberships (user_id INTEGER, team_id INTEGER, role TEXT,
                          PRIMARY KEY (user_id, team_id));
CREATE INDEX idx_m_role_team ON memberships (role, team_id);
"""


@pytest.fixture
def sqlite_db(tmp_path):
    path = tmp_path / "app.db"
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return path


def _summary(catalog):
    return {(i.table, i.columns, i.is_unique, i.is_primary) for i in catalog.entries if i.is_active}


class TestSqlite:
    def test_rows_cover_every_index_kind(self, sqlite_db):
        conn = sqlite3.connect(str(sqlite_db))
        try:
            rows = fetch_index_rows(conn, "sqlite")
        finally:
            conn.close()
        names = {r["index_name"] for r in rows}
        assert {"idx_users_status", "idx_users_lower_email", "idx_m_role_team", "users_pkey"} <= names
        expr = [r for r in rows if r["index_name"] == "idx_users_lower_email"]
        assert [r["column"] for r in expr] == ["<expression>"]

    def test_catalog_from_file(self, sqlite_db):
        catalog = open_sqlite_catalog(sqlite_db)
        assert _summary(catalog) == {
            ("users", ("id",), True, True),
            ("users", ("email",), True, False),
            ("users", ("status",), False, False),
            ("users", ("<expression>",), False, False),
            ("memberships", ("user_id", "team_id"), True, True),
            ("memberships", ("role", "team_id"), False, False),
        }
        assert {i.source for i in catalog.entries} == {"app.db"}

    def test_rowid_primary_key_is_synthesised(self, sqlite_db):
        catalog = open_sqlite_catalog(sqlite_db)
        (pk,) = [i for i in catalog.indexes_for("users") if i.is_primary]
        assert pk.name == "users_pkey"
        assert pk.columns == ("id",)

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputMissingError) as excinfo:
            open_sqlite_catalog(tmp_path / "nope.db")
        assert excinfo.value.exit_code == EXIT_INPUT_MISSING

    def test_database_is_not_modified(self, sqlite_db):
        before = sqlite_db.read_bytes()
        open_sqlite_catalog(sqlite_db)
        assert sqlite_db.read_bytes() == before


class _FakeCursor:
    def __init__(self, rows):
        self.rows = rows
        self.executed = []
        self.closed = False

    def execute(self, sql):
        self.executed.append(sql)

    def fetchall(self):
        return self.rows

    def close(self):
        self.closed = True


class _FakeConnection:
    def __init__(self, rows):
        self.cur = _FakeCursor(rows)

    def cursor(self):
        return self.cur


class TestPostgres:
    def test_rows_are_normalised(self):
        conn = _FakeConnection([
            ("Orders", "orders_pkey", "id", True, True),
            ("Orders", "idx_orders_status_created", "status", False, False),
            ("Orders", "idx_orders_status_created", "created_at", False, False),
        ])
        rows = fetch_index_rows(conn, "postgresql")
        assert conn.cur.closed
        assert "pg_index" in conn.cur.executed[0]
        catalog = catalog_from_rows(rows)
        by_name = {i.name: i for i in catalog.entries}
        assert by_name["idx_orders_status_created"].columns == ("status", "created_at")
        assert by_name["idx_orders_status_created"].table == "orders"
        assert by_name["orders_pkey"].is_primary
        assert by_name["orders_pkey"].source == "live"


class TestRows:
    def test_unknown_dialect(self):
        with pytest.raises(ValueError, match="unsupported dialect"):
            fetch_index_rows(None, "oracle")

    def test_primary_implies_unique(self):
        catalog = catalog_from_rows([
            {"table": "t", "index_name": "t_pk", "column": "a", "is_primary": True},
        ])
        (idx,) = catalog.entries
        assert idx.is_unique and idx.is_primary

