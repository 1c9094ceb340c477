"""Join predicates against the active index catalog.

A predicate is satisfied by an active index on its table when:

  - range operators (``<``, ``<=``, ``>``, ``>=``, ``BETWEEN``, ``AFTER``,
    ``BEFORE``): the column is the index's leading column
  - any other operator: the column appears anywhere in the index

Identifier columns are always considered indexed.  Findings are sorted by
table, then column, then operator.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from idxprobe.migrations.catalog import IndexCatalog
from idxprobe.schema.model import Finding, Index, Predicate, QueryLocation

_NULL_CHECKS = frozenset({"IS NULL", "IS NOT NULL"})


def is_satisfied(predicate: Predicate, indexes: Iterable[Index]) -> bool:
    for idx in indexes:
        if not idx.is_active:
            continue
        if predicate.is_range:
            if idx.leading_column == predicate.column:
                return True
        elif predicate.column in idx.columns:
            return True
    return False


def _is_identifier(predicate: Predicate, identifier_columns: Mapping[str, Iterable[str]]) -> bool:
    return predicate.column in identifier_columns.get(predicate.table, ())


def _sort_key(predicate: Predicate) -> tuple[str, str, str]:
    return (predicate.table, predicate.column, predicate.operator)


def find_missing(
    predicates: Iterable[Predicate],
    catalog: IndexCatalog,
    identifier_columns: Mapping[str, Iterable[str]] | None = None,
) -> list[Predicate]:
    """Predicates with no satisfying active index, deduplicated and sorted."""
    identifier_columns = identifier_columns or {}
    missing = {
        p for p in predicates
        if not _is_identifier(p, identifier_columns)
        and not is_satisfied(p, catalog.indexes_for(p.table))
    }
    return sorted(missing, key=_sort_key)


def recommend_ddl(predicate: Predicate) -> str:
    return (
        f"CREATE INDEX idx_{predicate.table}_{predicate.column} "
        f"ON {predicate.table}({predicate.column});"
    )


def index_hint(predicate: Predicate, catalog: IndexCatalog | None = None) -> str:
    """Short advice shown next to a finding."""
    if predicate.is_range:
        if catalog is not None:
            trailing = [
                idx.name for idx in catalog.indexes_for(predicate.table)
                if predicate.column in idx.columns[1:]
            ]
            if trailing:
                return (f"range scan: {predicate.column} is not the leading column of "
                        f"{', '.join(sorted(trailing))}")
        return "range scan: column must lead a composite index"
    if predicate.operator in ("LIKE", "NOT LIKE"):
        return "only prefix patterns (LIKE 'abc%') use a B-tree index"
    if predicate.operator in _NULL_CHECKS:
        return "consider a partial index"
    return ""


def build_findings(
    usages: Mapping[Predicate, Sequence[QueryLocation]],
    catalog: IndexCatalog,
    identifier_columns: Mapping[str, Iterable[str]] | None = None,
) -> list[Finding]:
    """``Finding`` records for every missing predicate in *usages*."""
    return [
        Finding(
            predicate=p,
            ddl=recommend_ddl(p),
            hint=index_hint(p, catalog),
            locations=tuple(usages.get(p, ())),
        )
        for p in find_missing(usages, catalog, identifier_columns)
    ]
