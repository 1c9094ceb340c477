"""Replay SQL migrations into the set of currently active indexes.

Each migration file is parsed on its own (``parse_migration`` is pure) into
a list of index events; ``IndexCatalog`` then applies the events strictly in
file order.  Statements that create or retire indexes:

  CREATE [UNIQUE] [CONCURRENTLY] INDEX [CONCURRENTLY] [IF NOT EXISTS] [name] ON t (cols)
  CREATE TABLE t (... PRIMARY KEY / UNIQUE / INDEX name (cols) ...)
  ALTER TABLE t ADD [CONSTRAINT n] PRIMARY KEY | UNIQUE | INDEX (cols)
  DROP INDEX [CONCURRENTLY] [IF EXISTS] n[, ...] [ON t]
  ALTER TABLE t DROP CONSTRAINT | INDEX | KEY n, DROP PRIMARY KEY,
                DROP COLUMN c
  DROP TABLE t[, ...]
  ALTER INDEX a RENAME TO b, ALTER TABLE a RENAME TO b,
  ALTER TABLE t RENAME [COLUMN] a TO b, RENAME TABLE a TO b

Everything else is ignored.  Creating an index whose name already exists
replaces the earlier entry; dropping an unknown name does nothing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Iterable, Union

from idxprobe.migrations.statements import split_statements
from idxprobe.schema.model import Index
from idxprobe.schema.naming import normalize_table, unquote_identifier
from idxprobe.sqltext import IDENT, QNAME, mask_literals, paren_body, split_top_level

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateIndex:
    """``table_scoped`` marks MySQL forms whose name is only unique per table."""

    index: Index
    table_scoped: bool = False


@dataclass(frozen=True)
class DropIndex:
    name: str
    source: str
    table: str | None = None


@dataclass(frozen=True)
class DropPrimaryKey:
    table: str
    source: str


@dataclass(frozen=True)
class DropTable:
    table: str
    source: str


@dataclass(frozen=True)
class DropColumn:
    table: str
    column: str
    source: str


@dataclass(frozen=True)
class RenameIndex:
    old: str
    new: str
    table: str | None = None


@dataclass(frozen=True)
class RenameTable:
    old: str
    new: str


@dataclass(frozen=True)
class RenameColumn:
    table: str
    old: str
    new: str


IndexEvent = Union[
    CreateIndex, DropIndex, DropPrimaryKey, DropTable, DropColumn,
    RenameIndex, RenameTable, RenameColumn,
]

# ---------------------------------------------------------------------------
# Statement patterns
# ---------------------------------------------------------------------------

_FLAGS = re.IGNORECASE | re.DOTALL

_RE_CREATE_INDEX = re.compile(
    r"^CREATE\s+(UNIQUE\s+)?(?:(?:CLUSTERED|NONCLUSTERED|FULLTEXT|SPATIAL)\s+)?(?:CONCURRENTLY\s+)?INDEX\s+"
    r"(?:CONCURRENTLY\s+)?(?:IF\s+NOT\s+EXISTS\s+)?"
    r"(?:(" + QNAME + r")\s+)?ON\s+(?:ONLY\s+)?(" + QNAME + r")\s*"
    r"(?:USING\s+\w+\s*)?(?=\()",
    _FLAGS,
)
_RE_CREATE_TABLE = re.compile(
    r"^CREATE\s+(?:OR\s+REPLACE\s+)?(?:(?:GLOBAL|LOCAL)\s+)?(?:(?:TEMP|TEMPORARY|UNLOGGED)\s+)?"
    r"TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?(" + QNAME + r")\s*(?=\()",
    _FLAGS,
)
_RE_ALTER_TABLE = re.compile(
    r"^ALTER\s+TABLE\s+(?:IF\s+EXISTS\s+)?(?:ONLY\s+)?(" + QNAME + r")\s+(.*)$",
    _FLAGS,
)
_RE_DROP_INDEX = re.compile(
    r"^DROP\s+INDEX\s+(?:CONCURRENTLY\s+)?(?:IF\s+EXISTS\s+)?(.+?)"
    r"(?:\s+ON\s+(" + QNAME + r"))?(?:\s+(?:CASCADE|RESTRICT))?\s*$",
    _FLAGS,
)
_RE_DROP_TABLE = re.compile(
    r"^DROP\s+TABLE\s+(?:IF\s+EXISTS\s+)?(.+?)(?:\s+(?:CASCADE|RESTRICT))?\s*$",
    _FLAGS,
)
_RE_ALTER_INDEX_RENAME = re.compile(
    r"^ALTER\s+INDEX\s+(?:IF\s+EXISTS\s+)?(" + QNAME + r")\s+RENAME\s+TO\s+(" + QNAME + r")\s*$",
    _FLAGS,
)
_RE_RENAME_TABLE = re.compile(
    r"^RENAME\s+TABLE\s+(" + QNAME + r")\s+TO\s+(" + QNAME + r")\s*$",
    _FLAGS,
)

# Table elements / ALTER TABLE actions
_CONSTRAINT = r"(?:CONSTRAINT\s+(" + IDENT + r")\s+)?"
_RE_PRIMARY_KEY = re.compile(
    r"^" + _CONSTRAINT + r"PRIMARY\s+KEY\s*(?:(?:CLUSTERED|NONCLUSTERED|USING\s+\w+)\s*)?(?=\()",
    _FLAGS,
)
_RE_UNIQUE = re.compile(
    r"^" + _CONSTRAINT + r"UNIQUE\s*(?:(?:INDEX|KEY)\s+)?(?:(" + IDENT + r")\s*)?(?=\()",
    _FLAGS,
)
_RE_PLAIN_INDEX = re.compile(
    r"^(?:INDEX|KEY)\s+(?:(" + IDENT + r")\s*)?(?:USING\s+\w+\s*)?(?=\()",
    _FLAGS,
)
_RE_COLUMN_DEF = re.compile(r"^(" + IDENT + r")\s+(.+)$", _FLAGS)
_RE_INLINE_PK = re.compile(r"(?:CONSTRAINT\s+(" + IDENT + r")\s+)?PRIMARY\s+KEY\b", _FLAGS)
_RE_INLINE_UNIQUE = re.compile(r"(?:CONSTRAINT\s+(" + IDENT + r")\s+)?\bUNIQUE\b", _FLAGS)

_RE_ADD = re.compile(r"^ADD\s+(?!COLUMN\b)(.*)$", _FLAGS)
_RE_ADD_COLUMN = re.compile(r"^ADD\s+(?:COLUMN\s+)?(?:IF\s+NOT\s+EXISTS\s+)?(.*)$", _FLAGS)
_RE_DROP_CONSTRAINT = re.compile(
    r"^DROP\s+(?:CONSTRAINT|INDEX|KEY)\s+(?:IF\s+EXISTS\s+)?(" + IDENT + r")", _FLAGS,
)
_RE_DROP_PRIMARY_KEY = re.compile(r"^DROP\s+PRIMARY\s+KEY\b", _FLAGS)
_RE_DROP_COLUMN = re.compile(
    r"^DROP\s+(?:COLUMN\s+)?(?:IF\s+EXISTS\s+)?(" + IDENT + r")", _FLAGS,
)
_RE_RENAME_TO = re.compile(r"^RENAME\s+TO\s+(" + QNAME + r")\s*$", _FLAGS)
_RE_RENAME_CONSTRAINT = re.compile(
    r"^RENAME\s+(?:CONSTRAINT|INDEX|KEY)\s+(" + IDENT + r")\s+TO\s+(" + IDENT + r")", _FLAGS,
)
_RE_RENAME_COLUMN = re.compile(
    r"^RENAME\s+(?:COLUMN\s+)?(" + IDENT + r")\s+TO\s+(" + IDENT + r")", _FLAGS,
)

# Words that start a table element / action but are not column names.
# ``index`` and ``key`` are absent: once the inline index form is ruled out
# they are ordinary column names.
_CONSTRAINT_KEYWORDS = frozenset({
    "constraint", "primary", "unique", "foreign", "check",
    "exclude", "like", "fulltext", "spatial", "period",
})

# Options that may follow a MySQL inline index column list.
_RE_INDEX_OPTION = re.compile(
    r"^(?:USING|COMMENT|KEY_BLOCK_SIZE|VISIBLE|INVISIBLE|WITH\s+PARSER|"
    r"ENGINE_ATTRIBUTE|SECONDARY_ENGINE_ATTRIBUTE)\b",
    _FLAGS,
)
# Column types that take a parenthesised argument.
_TYPE_NAMES = frozenset({
    "char", "character", "varchar", "nchar", "nvarchar", "varchar2", "nvarchar2",
    "binary", "varbinary", "bit", "varbit", "decimal", "numeric", "number", "dec",
    "float", "double", "real", "int", "integer", "bigint", "smallint", "tinyint",
    "mediumint", "time", "timestamp", "datetime", "datetime2", "interval",
    "enum", "set", "raw", "vector",
})

# Trailing decorations of an index column entry.
_RE_COLUMN_SUFFIXES = [
    re.compile(r"\s+NULLS\s+(?:FIRST|LAST)\s*$", re.IGNORECASE),
    re.compile(r"\s+(?:ASC|DESC)\s*$", re.IGNORECASE),
    re.compile(r"\s+[\w.]+_ops\s*$", re.IGNORECASE),
    re.compile(r"\s+COLLATE\s+\S+\s*$", re.IGNORECASE),
]
_RE_PREFIX_LENGTH = re.compile(r"^(" + IDENT + r")\s*\(\s*\d+\s*\)$")
_RE_PLAIN_IDENT = re.compile(r"^" + IDENT + r"$")


# ---------------------------------------------------------------------------
# Parsing (pure, per file)
# ---------------------------------------------------------------------------


def parse_migration(sql: str, source: str = "") -> list[IndexEvent]:
    """Parse one migration script into index events, in statement order."""
    events: list[IndexEvent] = []
    for stmt in split_statements(sql):
        where = f"{source}:{stmt.line}" if source else f"line {stmt.line}"
        try:
            events.extend(parse_statement(stmt.text, source))
        except ValueError as exc:
            log.debug("%s: skipping unparseable statement (%s)", where, exc)
    return events


def parse_statement(text: str, source: str = "") -> list[IndexEvent]:
    """Index events produced by a single SQL statement (often none)."""
    masked = mask_literals(" ".join(text.split()))

    m = _RE_CREATE_INDEX.match(masked)
    if m is not None:
        table = normalize_table(m.group(3))
        body, _ = paren_body(masked, m.end())
        columns = _index_columns(body)
        if not columns:
            raise ValueError("CREATE INDEX without columns")
        name = normalize_table(m.group(2)) if m.group(2) else _default_name(table, columns, "idx")
        return [CreateIndex(Index(name, table, columns, is_unique=bool(m.group(1)), source=source))]

    m = _RE_CREATE_TABLE.match(masked)
    if m is not None:
        table = normalize_table(m.group(1))
        body, _ = paren_body(masked, m.end())
        events: list[IndexEvent] = []
        for element in split_top_level(body):
            events.extend(_table_element(table, element, source, allow_column=True))
        return events

    m = _RE_ALTER_TABLE.match(masked)
    if m is not None:
        table = normalize_table(m.group(1))
        events = []
        for action in split_top_level(m.group(2)):
            events.extend(_alter_action(table, action, source))
        return events

    m = _RE_DROP_INDEX.match(masked)
    if m is not None:
        table = normalize_table(m.group(2)) if m.group(2) else None
        return [DropIndex(normalize_table(n), source, table) for n in split_top_level(m.group(1))]

    m = _RE_DROP_TABLE.match(masked)
    if m is not None:
        return [DropTable(normalize_table(t), source) for t in split_top_level(m.group(1))]

    m = _RE_ALTER_INDEX_RENAME.match(masked)
    if m is not None:
        return [RenameIndex(normalize_table(m.group(1)), normalize_table(m.group(2)))]

    m = _RE_RENAME_TABLE.match(masked)
    if m is not None:
        return [RenameTable(normalize_table(m.group(1)), normalize_table(m.group(2)))]

    return []


def _table_element(table: str, element: str, source: str, *, allow_column: bool) -> list[IndexEvent]:
    m = _RE_PRIMARY_KEY.match(element)
    if m is not None:
        columns = _index_columns(paren_body(element, m.end())[0])
        name = _ident(m.group(1)) if m.group(1) else f"{table}_pkey"
        return [CreateIndex(Index(name, table, columns, True, True, source))]

    m = _RE_UNIQUE.match(element)
    if m is not None:
        columns = _index_columns(paren_body(element, m.end())[0])
        explicit = m.group(1) or m.group(2)
        name = _ident(explicit) if explicit else _default_name(table, columns, "key")
        return [CreateIndex(Index(name, table, columns, True, False, source),
                            table_scoped=m.group(2) is not None)]

    m = _RE_PLAIN_INDEX.match(element)
    if m is not None and _is_plain_index(element, m):
        columns = _index_columns(paren_body(element, m.end())[0])
        name = _ident(m.group(1)) if m.group(1) else _default_name(table, columns, "idx")
        return [CreateIndex(Index(name, table, columns, False, False, source), table_scoped=True)]

    if not allow_column:
        return []
    m = _RE_COLUMN_DEF.match(element)
    if m is None or unquote_identifier(m.group(1)).lower() in _CONSTRAINT_KEYWORDS:
        return []
    column = _ident(m.group(1))
    rest = m.group(2)
    pk = _RE_INLINE_PK.search(rest)
    if pk is not None:
        name = _ident(pk.group(1)) if pk.group(1) else f"{table}_pkey"
        return [CreateIndex(Index(name, table, (column,), True, True, source))]
    uq = _RE_INLINE_UNIQUE.search(rest)
    if uq is not None:
        name = _ident(uq.group(1)) if uq.group(1) else _default_name(table, (column,), "key")
        return [CreateIndex(Index(name, table, (column,), True, False, source))]
    return []


def _is_plain_index(element: str, m: re.Match) -> bool:
    """Tell ``KEY idx_status (status)`` from a column named ``key``.

    ``key VARCHAR(255) NOT NULL UNIQUE`` has the same prefix shape; a type
    name, a numeric argument or column attributes after the parenthesis
    mean it is a column definition.
    """
    if m.group(1) and unquote_identifier(m.group(1)).lower() in _TYPE_NAMES:
        return False
    body, end = paren_body(element, m.end())
    if any(item.strip()[:1].isdigit() for item in split_top_level(body)):
        return False
    tail = element[end:].strip()
    return not tail or _RE_INDEX_OPTION.match(tail) is not None


def _alter_action(table: str, action: str, source: str) -> list[IndexEvent]:
    m = _RE_ADD.match(action)
    if m is not None:
        found = _table_element(table, m.group(1), source, allow_column=False)
        if found:
            return found
    m = _RE_ADD_COLUMN.match(action)
    if m is not None:
        return _table_element(table, m.group(1), source, allow_column=True)

    if _RE_DROP_PRIMARY_KEY.match(action):
        return [DropPrimaryKey(table, source)]
    m = _RE_DROP_CONSTRAINT.match(action)
    if m is not None:
        return [DropIndex(_ident(m.group(1)), source, table)]
    m = _RE_DROP_COLUMN.match(action)
    if m is not None and unquote_identifier(m.group(1)).lower() not in _CONSTRAINT_KEYWORDS:
        return [DropColumn(table, _ident(m.group(1)), source)]

    m = _RE_RENAME_TO.match(action)
    if m is not None:
        return [RenameTable(table, normalize_table(m.group(1)))]
    m = _RE_RENAME_CONSTRAINT.match(action)
    if m is not None:
        return [RenameIndex(_ident(m.group(1)), _ident(m.group(2)), table)]
    m = _RE_RENAME_COLUMN.match(action)
    if m is not None:
        return [RenameColumn(table, _ident(m.group(1)), _ident(m.group(2)))]
    return []


def _ident(raw: str) -> str:
    return unquote_identifier(raw).lower()


def _index_columns(body: str) -> tuple[str, ...]:
    """Normalise the column list of an index definition, keeping order."""
    columns: list[str] = []
    for item in split_top_level(body):
        for pattern in _RE_COLUMN_SUFFIXES:
            item = pattern.sub("", item)
        item = item.strip()
        m = _RE_PREFIX_LENGTH.match(item)
        if m is not None:
            item = m.group(1)
        if _RE_PLAIN_IDENT.match(item):
            columns.append(_ident(item))
        elif item:
            # Expression entry: kept verbatim so it never matches a column.
            columns.append(" ".join(item.lower().split()))
    return tuple(columns)


def _default_name(table: str, columns: tuple[str, ...], suffix: str) -> str:
    parts = [table] + [re.sub(r"\W+", "_", c).strip("_") for c in columns] + [suffix]
    return "_".join(p for p in parts if p)


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


class IndexCatalog:
    """Index state after replaying events in order.

    ``history`` keeps every index ever created; ``entries`` holds the latest
    entry per index name, dropped ones included (``dropped_in`` set).
    Names from table-scoped (MySQL) forms are keyed per table, so two tables
    may each own an ``idx_status``.
    """

    def __init__(self) -> None:
        # (table, name) for table-scoped names, ("", name) otherwise.
        self._entries: dict[tuple[str, str], Index] = {}
        self.history: list[Index] = []

    def __len__(self) -> int:
        return sum(1 for idx in self._entries.values() if idx.is_active)

    @property
    def entries(self) -> list[Index]:
        return list(self._entries.values())

    def _find(self, name: str, table: str | None) -> tuple[str, str] | None:
        """Key of the active entry a drop or rename of *name* refers to."""
        if table is not None:
            for key in ((table, name), ("", name)):
                idx = self._entries.get(key)
                if idx is not None and idx.is_active and idx.table == table:
                    return key
            return None
        idx = self._entries.get(("", name))
        if idx is not None and idx.is_active:
            return ("", name)
        scoped = [key for key, idx in self._entries.items()
                  if key[0] and key[1] == name and idx.is_active]
        return scoped[0] if len(scoped) == 1 else None

    def apply(self, event: IndexEvent) -> None:
        if isinstance(event, CreateIndex):
            idx = event.index
            key = (idx.table, idx.name) if event.table_scoped else ("", idx.name)
            other = ("", idx.name) if event.table_scoped else (idx.table, idx.name)
            if other in self._entries and self._entries[other].table == idx.table:
                del self._entries[other]
            self._entries[key] = idx
            self.history.append(idx)
        elif isinstance(event, DropIndex):
            key = self._find(event.name, event.table)
            if key is None:
                log.debug("drop of unknown index %s ignored", event.name)
                return
            self._entries[key] = replace(self._entries[key], dropped_in=event.source)
        elif isinstance(event, DropPrimaryKey):
            self._retire(lambda idx: idx.table == event.table and idx.is_primary, event.source)
        elif isinstance(event, DropTable):
            self._retire(lambda idx: idx.table == event.table, event.source)
        elif isinstance(event, DropColumn):
            self._retire(
                lambda idx: idx.table == event.table and event.column in idx.columns,
                event.source,
            )
        elif isinstance(event, RenameIndex):
            key = self._find(event.old, event.table)
            if key is None:
                return
            current = self._entries.pop(key)
            self._entries[(key[0], event.new)] = replace(current, name=event.new)
        elif isinstance(event, RenameTable):
            moved: dict[tuple[str, str], Index] = {}
            for key, idx in self._entries.items():
                if idx.is_active and idx.table == event.old:
                    idx = replace(idx, table=event.new)
                    if key[0]:
                        key = (event.new, key[1])
                moved[key] = idx
            self._entries = moved
        elif isinstance(event, RenameColumn):
            for key, idx in list(self._entries.items()):
                if idx.is_active and idx.table == event.table and event.old in idx.columns:
                    columns = tuple(event.new if c == event.old else c for c in idx.columns)
                    self._entries[key] = replace(idx, columns=columns)
        else:
            raise TypeError(f"unknown index event: {event!r}")

    def _retire(self, match, source: str) -> None:
        for key, idx in list(self._entries.items()):
            if idx.is_active and match(idx):
                self._entries[key] = replace(idx, dropped_in=source)

    def replay(self, events: Iterable[IndexEvent]) -> "IndexCatalog":
        for event in events:
            self.apply(event)
        return self

    def replay_sql(self, migrations: Iterable[tuple[str, str]]) -> "IndexCatalog":
        """Parse and apply ``(source, sql)`` pairs in the given order."""
        for source, sql in migrations:
            self.replay(parse_migration(sql, source))
        return self

    def active(self) -> dict[str, list[Index]]:
        """Active indexes grouped by (lower-case) table name."""
        out: dict[str, list[Index]] = {}
        for idx in self._entries.values():
            if idx.is_active:
                out.setdefault(idx.table, []).append(idx)
        return out

    def indexes_for(self, table: str) -> list[Index]:
        table = table.lower()
        return [idx for idx in self._entries.values() if idx.is_active and idx.table == table]


def build_catalog(migrations: Iterable[tuple[str, str]]) -> IndexCatalog:
    """Replay ``(source, sql)`` migrations, in order, into a new catalog."""
    return IndexCatalog().replay_sql(migrations)
