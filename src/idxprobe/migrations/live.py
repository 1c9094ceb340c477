"""Read the index catalog of a live database instead of replaying migrations.

Two dialects are supported: ``sqlite`` (PRAGMA based) and ``postgresql``
(a pg_catalog query over any DB-API connection).  Rows are normalised to
``{table, index_name, column, is_unique, is_primary}`` dicts, one per index
column, in index column order.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Iterable

from idxprobe.exit_codes import InputMissingError
from idxprobe.migrations.catalog import CreateIndex, IndexCatalog
from idxprobe.schema.model import Index

log = logging.getLogger(__name__)

DIALECTS = ("sqlite", "postgresql")

_PG_INDEX_SQL = """
SELECT t.relname AS table_name,
       i.relname AS index_name,
       COALESCE(a.attname, pg_get_indexdef(ix.indexrelid, k.ord::int, true)) AS column_name,
       ix.indisunique AS is_unique,
       ix.indisprimary AS is_primary
FROM pg_index ix
JOIN pg_class t ON t.oid = ix.indrelid
JOIN pg_class i ON i.oid = ix.indexrelid
JOIN pg_namespace n ON n.oid = t.relnamespace
CROSS JOIN LATERAL unnest(ix.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord)
LEFT JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum AND k.attnum > 0
WHERE n.nspname NOT IN ('pg_catalog', 'information_schema')
  AND n.nspname NOT LIKE 'pg_toast%%'
ORDER BY t.relname, i.relname, k.ord
"""


def fetch_index_rows(conn, dialect: str = "sqlite") -> list[dict]:
    """Return one row per (index, column) from a live connection."""
    if dialect == "sqlite":
        return _sqlite_rows(conn)
    if dialect == "postgresql":
        return _postgres_rows(conn)
    raise ValueError(f"unsupported dialect {dialect!r} (expected one of {', '.join(DIALECTS)})")


def _quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _sqlite_rows(conn: sqlite3.Connection) -> list[dict]:
    rows: list[dict] = []
    tables = [
        r[0]
        for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ).fetchall()
    ]
    for table in tables:
        has_pk_index = False
        for idx in conn.execute(f"PRAGMA index_list({_quote(table)})").fetchall():
            # seq, name, unique, origin, partial
            name, unique, origin = idx[1], bool(idx[2]), idx[3]
            is_primary = origin == "pk"
            has_pk_index = has_pk_index or is_primary
            info = conn.execute(f"PRAGMA index_info({_quote(name)})").fetchall()
            for col in sorted(info, key=lambda c: c[0]):
                rows.append({
                    "table": table.lower(),
                    "index_name": name.lower(),
                    "column": (col[2] or "<expression>").lower(),
                    "is_unique": unique,
                    "is_primary": is_primary,
                })
        if not has_pk_index:
            # INTEGER PRIMARY KEY aliases the rowid and has no index entry.
            pk_cols = [
                c for c in conn.execute(f"PRAGMA table_info({_quote(table)})").fetchall()
                if c[5]
            ]
            for col in sorted(pk_cols, key=lambda c: c[5]):
                rows.append({
                    "table": table.lower(),
                    "index_name": f"{table.lower()}_pkey",
                    "column": col[1].lower(),
                    "is_unique": True,
                    "is_primary": True,
                })
    return rows


def _postgres_rows(conn) -> list[dict]:
    cur = conn.cursor()
    try:
        cur.execute(_PG_INDEX_SQL)
        fetched = cur.fetchall()
    finally:
        cur.close()
    return [
        {
            "table": r[0].lower(),
            "index_name": r[1].lower(),
            "column": r[2].lower(),
            "is_unique": bool(r[3]),
            "is_primary": bool(r[4]),
        }
        for r in fetched
    ]


def catalog_from_rows(rows: Iterable[dict], source: str = "live") -> IndexCatalog:
    """Group per-column rows into ``Index`` records, keeping column order."""
    grouped: dict[tuple[str, str], dict] = {}
    for row in rows:
        key = (row["table"], row["index_name"])
        entry = grouped.setdefault(key, {
            "columns": [],
            "is_unique": bool(row.get("is_unique")),
            "is_primary": bool(row.get("is_primary")),
        })
        entry["columns"].append(row["column"])

    catalog = IndexCatalog()
    for (table, name), entry in grouped.items():
        catalog.apply(CreateIndex(Index(
            name=name,
            table=table,
            columns=tuple(entry["columns"]),
            is_unique=entry["is_unique"] or entry["is_primary"],
            is_primary=entry["is_primary"],
            source=source,
        ), table_scoped=True))
    return catalog


def open_sqlite_catalog(path: str | Path) -> IndexCatalog:
    """Build a catalog from a SQLite database file, opened read-only."""
    db_path = Path(path)
    if not db_path.is_file():
        raise InputMissingError(f"database file not found: {db_path}")
    try:
        conn = sqlite3.connect(db_path.resolve().as_uri() + "?mode=ro", uri=True, timeout=30)
    except (sqlite3.OperationalError, ValueError):
        conn = sqlite3.connect(str(db_path), timeout=30)
    try:
        rows = fetch_index_rows(conn, "sqlite")
    finally:
        conn.close()
    log.debug("read %d index columns from %s", len(rows), db_path)
    return catalog_from_rows(rows, source=db_path.name)
