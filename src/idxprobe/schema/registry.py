"""The populated entity map: lookups by name and table, property resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable

from idxprobe.schema.model import Entity, Field
from idxprobe.schema.naming import camel_to_snake, decapitalize

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnRef:
    """A property resolved to a concrete table column."""

    table: str
    column: str


class SchemaRegistry:
    """Entities keyed by declared type name, with inheritance flattened.

    Fields declared on a superclass (``@MappedSuperclass`` or another
    entity) are copied into each subclass; a subclass field of the same name
    wins.  Mapped superclasses themselves are not queryable entities.
    """

    def __init__(self, entities: Iterable[Entity] = ()):
        declared: dict[str, Entity] = {}
        for entity in entities:
            if entity.name in declared:
                log.warning(
                    "duplicate entity %s in %s (keeping %s)",
                    entity.name, entity.path, declared[entity.name].path,
                )
                continue
            declared[entity.name] = entity

        self._entities: dict[str, Entity] = {}
        for name, entity in declared.items():
            if entity.is_mapped_superclass:
                continue
            self._entities[name] = _flatten(entity, declared)

        self._by_table: dict[str, list[Entity]] = {}
        for entity in self._entities.values():
            self._by_table.setdefault(entity.table, []).append(entity)

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, name: str) -> bool:
        return name in self._entities

    @property
    def entities(self) -> list[Entity]:
        return sorted(self._entities.values(), key=lambda e: (e.table, e.name))

    def entity(self, name: str | None) -> Entity | None:
        if not name:
            return None
        return self._entities.get(name)

    def entity_for_table(self, table: str) -> Entity | None:
        found = self._by_table.get(table.lower())
        return found[0] if found else None

    def identifier_columns(self) -> dict[str, frozenset[str]]:
        """Map table -> identifier (primary key) columns of its entities."""
        out: dict[str, set[str]] = {}
        for entity in self._entities.values():
            out.setdefault(entity.table, set()).update(entity.identifier_columns)
        return {table: frozenset(cols) for table, cols in out.items()}

    def is_identifier(self, table: str, column: str) -> bool:
        for entity in self._by_table.get(table, ()):
            if column in entity.identifier_columns:
                return True
        return False

    # ------------------------------------------------------------------
    # Property resolution
    # ------------------------------------------------------------------

    def resolve_property(self, entity: Entity, prop: str) -> ColumnRef | None:
        """Map a property name used in a query to a column.

        Tries, in order: the exact field name; a field whose column is the
        snake-case form of *prop*; traversal through a relationship
        (``userId`` -> ``user.id`` -> join column, ``user_email`` ->
        ``user.email``); and finally ``<snake>_id``.  Returns None for an
        unknown field.
        """
        if not prop:
            return None
        f = entity.field(prop)
        if f is not None:
            return ColumnRef(entity.table, f.column)

        snake = camel_to_snake(prop)
        f = entity.field_by_column(snake)
        if f is not None:
            return ColumnRef(entity.table, f.column)

        if "_" in prop.strip("_"):
            parts = [decapitalize(p) for p in prop.split("_") if p]
            ref = self.resolve_path(entity, parts)
            if ref is not None:
                return ref

        for rel in entity.relationships:
            head = rel.field_name
            if len(prop) > len(head) and prop.startswith(head) and prop[len(head)].isupper():
                ref = self.resolve_path(entity, [head, decapitalize(prop[len(head):])])
                if ref is not None:
                    return ref

        f = entity.field_by_column(f"{snake}_id")
        if f is not None:
            return ColumnRef(entity.table, f.column)
        return None

    def resolve_path(self, entity: Entity, parts: list[str]) -> ColumnRef | None:
        """Resolve a dotted property path (``["customer", "email"]``)."""
        if not parts:
            return None
        head, rest = parts[0], parts[1:]
        if not rest:
            return self.resolve_property(entity, head)
        rel = entity.relationship(head)
        if rel is None:
            return None
        target = self.entity(rel.target_entity)
        if len(rest) == 1 and _is_identifier_of(target, rest[0]):
            return ColumnRef(entity.table, rel.join_column)
        if target is None:
            return None
        return self.resolve_path(target, rest)


def _is_identifier_of(target: Entity | None, name: str) -> bool:
    if target is None:
        return name == "id"
    f = target.field(name)
    if f is None:
        return False
    return f.is_identifier


def _flatten(entity: Entity, declared: dict[str, Entity]) -> Entity:
    """Return *entity* with every superclass field and relationship merged in."""
    chain: list[Entity] = []
    seen = {entity.name}
    parent_name = entity.superclass
    while parent_name and parent_name in declared and parent_name not in seen:
        seen.add(parent_name)
        parent = declared[parent_name]
        chain.append(parent)
        parent_name = parent.superclass
    if not chain:
        return entity

    own = {f.name for f in entity.fields}
    fields: list[Field] = []
    relationships = []
    own_rels = {r.field_name for r in entity.relationships}
    for parent in reversed(chain):
        fields.extend(f for f in parent.fields if f.name not in own)
        relationships.extend(r for r in parent.relationships if r.field_name not in own_rels)
    fields = _dedupe_fields(fields) + list(entity.fields)
    return replace(
        entity,
        fields=tuple(fields),
        relationships=tuple(relationships) + entity.relationships,
    )


def _dedupe_fields(fields: list[Field]) -> list[Field]:
    # Nearest superclass wins on a name clash.
    by_name: dict[str, Field] = {}
    for f in fields:
        by_name[f.name] = f
    return list(by_name.values())
