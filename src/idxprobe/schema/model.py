"""Plain records shared by every stage of the analysis.

Everything here is immutable once built.  Extractors return these records
from pure per-file functions; aggregation happens in ``idxprobe.analysis``.
"""

from __future__ import annotations

from dataclasses import dataclass

# Comparison operators a predicate may carry.
OPERATORS = frozenset({
    "=", "<", "<=", ">", ">=", "<>",
    "LIKE", "NOT LIKE", "IN", "NOT IN", "BETWEEN",
    "IS NULL", "IS NOT NULL",
})

# Operators that only benefit from an index whose leading column matches.
RANGE_OPERATORS = frozenset({"<", "<=", ">", ">=", "BETWEEN", "AFTER", "BEFORE"})

MANY_TO_ONE = "many-to-one"
ONE_TO_ONE = "one-to-one"


@dataclass(frozen=True)
class Field:
    """One persistent attribute of an entity."""

    name: str
    column: str
    is_identifier: bool = False
    is_relationship: bool = False


@dataclass(frozen=True)
class Relationship:
    """An owning association: the entity's table holds ``join_column``."""

    field_name: str
    target_entity: str
    join_column: str
    kind: str = MANY_TO_ONE


@dataclass(frozen=True)
class NamedQuery:
    name: str
    query: str
    native: bool = False


@dataclass(frozen=True)
class Entity:
    """A mapped type and the table it lives in.

    ``is_mapped_superclass`` entities have no table of their own; their
    fields are inherited by subclasses (see ``SchemaRegistry``).
    """

    name: str
    table: str
    fields: tuple[Field, ...] = ()
    relationships: tuple[Relationship, ...] = ()
    named_queries: tuple[NamedQuery, ...] = ()
    superclass: str | None = None
    is_mapped_superclass: bool = False
    path: str = ""

    def field(self, name: str) -> Field | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def field_by_column(self, column: str) -> Field | None:
        for f in self.fields:
            if f.column == column:
                return f
        return None

    def relationship(self, field_name: str) -> Relationship | None:
        for rel in self.relationships:
            if rel.field_name == field_name:
                return rel
        return None

    @property
    def identifier_columns(self) -> frozenset[str]:
        return frozenset(f.column for f in self.fields if f.is_identifier)


@dataclass(frozen=True)
class Index:
    """An index as declared by a migration (or read from a live catalog).

    ``columns`` keeps declaration order; ``columns[0]`` is the leading column.
    """

    name: str
    table: str
    columns: tuple[str, ...]
    is_unique: bool = False
    is_primary: bool = False
    source: str = ""
    dropped_in: str | None = None

    @property
    def is_active(self) -> bool:
        return self.dropped_in is None

    @property
    def leading_column(self) -> str | None:
        return self.columns[0] if self.columns else None


@dataclass(frozen=True)
class Predicate:
    """One (table, column, operator) filter fact.

    Two predicates with the same triple are the same fact.
    """

    table: str
    column: str
    operator: str

    @property
    def is_range(self) -> bool:
        return self.operator in RANGE_OPERATORS

    def __str__(self) -> str:
        return f"{self.table}.{self.column} {self.operator}"


@dataclass(frozen=True)
class QueryLocation:
    """Where a predicate was found."""

    path: str
    line: int | None = None
    repository: str = ""
    method: str = ""


@dataclass(frozen=True)
class QueryCondition:
    """A predicate together with the place it was extracted from."""

    predicate: Predicate
    location: QueryLocation


@dataclass(frozen=True)
class UnresolvedReference:
    """A property or column that could not be mapped ("unknown field")."""

    entity: str
    reference: str
    reason: str
    location: QueryLocation

    def describe(self) -> str:
        where = self.location.method or self.location.path
        return f"unknown field {self.entity}.{self.reference} in {where}: {self.reason}"


@dataclass(frozen=True)
class Finding:
    """A predicate no active index satisfies."""

    predicate: Predicate
    ddl: str
    hint: str = ""
    locations: tuple[QueryLocation, ...] = ()

    def to_dict(self) -> dict:
        return {
            "table": self.predicate.table,
            "column": self.predicate.column,
            "operator": self.predicate.operator,
            "ddl": self.ddl,
            "hint": self.hint,
            "locations": [
                {
                    "path": loc.path,
                    "line": loc.line,
                    "repository": loc.repository,
                    "method": loc.method,
                }
                for loc in self.locations
            ],
        }


@dataclass(frozen=True)
class ExtractionResult:
    """Conditions and unknown-field warnings from one query method."""

    conditions: tuple[QueryCondition, ...] = ()
    unresolved: tuple[UnresolvedReference, ...] = ()

    @property
    def predicates(self) -> set[Predicate]:
        return {c.predicate for c in self.conditions}
