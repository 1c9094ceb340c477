"""Scan JPQL / native SQL query strings for filtered and joined columns.

Lexical, best-effort extraction (no SQL grammar):

  1. Blank out string literals so nothing inside quotes is matched.
  2. Build an alias map from ``FROM`` lists, ``JOIN`` and ``UPDATE`` clauses.
  3. Take the ``WHERE`` clause (first ``WHERE`` up to the next clause keyword
     at the same parenthesis depth) and every ``JOIN ... ON`` condition.
  4. Match ``alias.path <op>`` and ``<op> alias.path`` tokens, resolve the
     alias to a table and the path to a column.

When a query declares no aliases at all, ``x.column`` references are
attributed to the repository's own entity.  In multi-join queries that
heuristic can mis-attribute a predicate; it is kept deliberately.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from idxprobe.schema.model import (
    Entity,
    ExtractionResult,
    Predicate,
    QueryCondition,
    QueryLocation,
    UnresolvedReference,
)
from idxprobe.schema.naming import normalize_table
from idxprobe.schema.registry import ColumnRef, SchemaRegistry
from idxprobe.sqltext import clause_span, mask_literals, split_top_level

log = logging.getLogger(__name__)

_RE_WHERE = re.compile(r"\bWHERE\b", re.IGNORECASE)
_RE_ON = re.compile(r"\bON\b", re.IGNORECASE)
_RE_JOIN_KEYWORD = re.compile(r"\bJOIN\b", re.IGNORECASE)

_RE_WHERE_END = re.compile(
    r"(?:GROUP\s+BY|ORDER\s+BY|HAVING|LIMIT|OFFSET|FETCH|UNION|INTERSECT|EXCEPT"
    r"|FOR\s+UPDATE|RETURNING|WINDOW)\b",
    re.IGNORECASE,
)
_RE_ON_END = re.compile(
    r"(?:(?:LEFT|RIGHT|FULL|INNER|OUTER|CROSS|NATURAL)\b|JOIN\b|WHERE\b|GROUP\s+BY"
    r"|ORDER\s+BY|HAVING\b|LIMIT\b|OFFSET\b|FETCH\b|UNION\b|RETURNING\b)",
    re.IGNORECASE,
)
_RE_FROM_END = re.compile(
    r"(?:WHERE|(?:LEFT|RIGHT|FULL|INNER|OUTER|CROSS|NATURAL)\b|JOIN|GROUP\s+BY"
    r"|ORDER\s+BY|HAVING|LIMIT|OFFSET|FETCH|UNION|SET|ON|USING|RETURNING)\b",
    re.IGNORECASE,
)

_SOURCE = r"([A-Za-z_$#\"`\[][\w.$#{}\"`\]]*)"
_ALIAS = r"(?:\s+(?:AS\s+)?([A-Za-z_]\w*))?"
_RE_FROM = re.compile(r"\bFROM\b", re.IGNORECASE)
_RE_JOIN = re.compile(r"\bJOIN\s+(?:FETCH\s+)?" + _SOURCE + _ALIAS, re.IGNORECASE)
_RE_UPDATE = re.compile(r"^\s*UPDATE\s+" + _SOURCE + _ALIAS, re.IGNORECASE)
_RE_SOURCE_ITEM = re.compile(r"^\s*" + _SOURCE + _ALIAS + r"\s*$", re.IGNORECASE)

_OPERATOR = (
    r"(NOT\s+LIKE\b|NOT\s+ILIKE\b|NOT\s+IN\b|NOT\s+BETWEEN\b|IS\s+NOT\s+NULL\b|IS\s+NULL\b"
    r"|LIKE\b|ILIKE\b|IN\b|BETWEEN\b|<>|!=|<=|>=|=|<|>)"
)
_RE_FORWARD = re.compile(
    r"(?<![\w.:])([A-Za-z_]\w*)\.([A-Za-z_][\w.]*)\s*" + _OPERATOR,
    re.IGNORECASE,
)
_RE_MIRRORED = re.compile(
    r"(<>|!=|<=|>=|=|<|>)\s*([A-Za-z_]\w*)\.([A-Za-z_][\w.]*)(?![\w.(])",
)

_NOT_AN_ALIAS = frozenset({
    "where", "join", "left", "right", "inner", "outer", "full", "cross", "natural",
    "on", "set", "group", "order", "having", "limit", "offset", "fetch", "union",
    "using", "returning", "values", "select", "as", "with",
})

_MIRROR = {"<": ">", ">": "<", "<=": ">=", ">=": "<="}


@dataclass(frozen=True)
class _Source:
    entity: Entity | None
    table: str | None
    name: str


def normalize_operator(op: str) -> str:
    op = " ".join(op.upper().split())
    if op == "!=":
        return "<>"
    if op == "ILIKE":
        return "LIKE"
    if op == "NOT ILIKE":
        return "NOT LIKE"
    if op == "NOT BETWEEN":
        return "BETWEEN"
    return op


def where_clause(text: str) -> str:
    """The WHERE clause body of *text* ('' when there is none)."""
    masked = mask_literals(text)
    m = _RE_WHERE.search(masked)
    if m is None:
        return ""
    start, end = clause_span(masked, m.end(), _RE_WHERE_END)
    return masked[start:end]


def _on_clauses(masked: str) -> list[str]:
    if not _RE_JOIN_KEYWORD.search(masked):
        return []
    clauses = []
    for m in _RE_ON.finditer(masked):
        start, end = clause_span(masked, m.end(), _RE_ON_END)
        clauses.append(masked[start:end])
    return clauses


def build_alias_map(masked: str, *, native: bool, schema: SchemaRegistry,
                    entity: Entity | None) -> dict[str, _Source]:
    """Map lower-cased alias -> source for every FROM / JOIN / UPDATE item."""
    aliases: dict[str, _Source] = {}

    def _register(source: str, alias: str | None) -> None:
        if alias and alias.lower() in _NOT_AN_ALIAS:
            alias = None
        resolved = _resolve_source(source, aliases, native=native, schema=schema, entity=entity)
        key = (alias or source.rsplit(".", 1)[-1]).lower()
        if key not in aliases:
            aliases[key] = resolved

    m = _RE_UPDATE.match(masked)
    if m is not None:
        _register(m.group(1), m.group(2))

    for fm in _RE_FROM.finditer(masked):
        start, end = clause_span(masked, fm.end(), _RE_FROM_END)
        for item in split_top_level(masked[start:end]):
            im = _RE_SOURCE_ITEM.match(item)
            if im is not None:
                _register(im.group(1), im.group(2))

    for jm in _RE_JOIN.finditer(masked):
        _register(jm.group(1), jm.group(2))
    return aliases


def _resolve_source(source: str, aliases: dict[str, _Source], *, native: bool,
                    schema: SchemaRegistry, entity: Entity | None) -> _Source:
    if not native and "." in source:
        # JPQL path join: ``JOIN o.customer c``
        head, _, prop = source.partition(".")
        owner = aliases.get(head.lower())
        if owner is not None and owner.entity is not None:
            rel = owner.entity.relationship(prop)
            if rel is not None:
                target = schema.entity(rel.target_entity)
                if target is not None:
                    return _Source(target, target.table, source)
        return _Source(None, None, source)

    if not native:
        found = schema.entity(source)
        if found is not None:
            return _Source(found, found.table, source)
    table = normalize_table(source)
    return _Source(schema.entity_for_table(table), table, source)


def scan_query(
    text: str,
    *,
    native: bool,
    entity: Entity | None,
    schema: SchemaRegistry,
    location: QueryLocation,
) -> ExtractionResult:
    """Extract predicates from one query string."""
    masked = mask_literals(text)
    aliases = build_alias_map(masked, native=native, schema=schema, entity=entity)

    conditions: list[QueryCondition] = []
    unresolved: list[UnresolvedReference] = []
    seen: set[Predicate] = set()
    reported: set[str] = set()

    def _emit(alias: str, path: str, op: str) -> None:
        ref, problem = _resolve_column(alias, path, aliases, native=native,
                                       schema=schema, entity=entity)
        if ref is None:
            key = f"{alias}.{path}"
            if key not in reported:
                reported.add(key)
                owner = entity.name if entity is not None else ""
                unresolved.append(UnresolvedReference(owner, key, problem, location))
            return
        if schema.is_identifier(ref.table, ref.column):
            return
        pred = Predicate(ref.table, ref.column, normalize_operator(op))
        if pred not in seen:
            seen.add(pred)
            conditions.append(QueryCondition(pred, location))

    clauses = [where_clause(text)] + _on_clauses(masked)
    for clause in clauses:
        if not clause:
            continue
        for m in _RE_FORWARD.finditer(clause):
            _emit(m.group(1), m.group(2), m.group(3))
        for m in _RE_MIRRORED.finditer(clause):
            op = normalize_operator(m.group(1))
            _emit(m.group(2), m.group(3), _MIRROR.get(op, op))

    for miss in unresolved:
        log.warning("%s", miss.describe())
    return ExtractionResult(tuple(conditions), tuple(unresolved))


def _resolve_column(alias: str, path: str, aliases: dict[str, _Source], *,
                    native: bool, schema: SchemaRegistry,
                    entity: Entity | None) -> tuple[ColumnRef | None, str]:
    source = aliases.get(alias.lower())
    if source is None:
        if aliases:
            return None, f"alias {alias!r} is not declared in the query"
        if entity is None:
            return None, "repository entity is unknown"
        source = _Source(entity, entity.table, entity.name)

    parts = [p for p in path.split(".") if p]
    if native or source.entity is None:
        if source.table is None:
            return None, f"cannot resolve {source.name!r} to a table"
        if native:
            return ColumnRef(source.table, parts[-1].lower()), ""
        return None, f"{source.name!r} is not a known entity"

    ref = schema.resolve_path(source.entity, parts)
    if ref is None:
        return None, f"no property {path!r} on {source.entity.name}"
    return ref, ""
