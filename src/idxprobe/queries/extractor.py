"""Single entry point turning a repository method into predicates.

Lookup order mirrors Spring Data: an explicit ``@Query`` wins, then a named
query ``<Entity>.<method>`` declared on the entity, then the method name.
"""

from __future__ import annotations

import logging

from idxprobe.extract.repositories import AnnotatedQuery, DerivedQuery, QueryMethod
from idxprobe.queries.annotated import scan_query
from idxprobe.queries.derived import decode_method_name
from idxprobe.schema.model import (
    Entity,
    ExtractionResult,
    NamedQuery,
    Predicate,
    QueryCondition,
    QueryLocation,
    UnresolvedReference,
)
from idxprobe.schema.registry import SchemaRegistry

log = logging.getLogger(__name__)


def extract_predicates(method: QueryMethod, schema: SchemaRegistry) -> ExtractionResult:
    entity = schema.entity(method.entity)
    source = method.source

    if isinstance(source, AnnotatedQuery):
        return scan_query(
            source.text,
            native=source.native,
            entity=entity,
            schema=schema,
            location=method.location,
        )

    if isinstance(source, DerivedQuery):
        named = _named_query(entity, source.name)
        if named is not None:
            return scan_query(
                named.query,
                native=named.native,
                entity=entity,
                schema=schema,
                location=method.location,
            )
        return decode_derived(source.name, entity, schema, method.location,
                              entity_name=method.entity or "")

    raise TypeError(f"unsupported query source: {source!r}")


def decode_derived(
    method_name: str,
    entity: Entity | None,
    schema: SchemaRegistry,
    location: QueryLocation,
    entity_name: str = "",
) -> ExtractionResult:
    """Predicates of a derived query method on *entity*."""
    known = [f.name for f in entity.fields] if entity is not None else []
    decoded = decode_method_name(method_name, known)
    if not decoded:
        return ExtractionResult()

    conditions: list[QueryCondition] = []
    unresolved: list[UnresolvedReference] = []
    for cond in decoded:
        if entity is None:
            unresolved.append(UnresolvedReference(
                entity_name, cond.prop, "repository entity is unknown", location,
            ))
            continue
        ref = schema.resolve_property(entity, cond.prop)
        if ref is None:
            unresolved.append(UnresolvedReference(
                entity.name, cond.prop, f"no property matches {cond.segment!r}", location,
            ))
            continue
        if schema.is_identifier(ref.table, ref.column):
            continue
        conditions.append(QueryCondition(Predicate(ref.table, ref.column, cond.operator), location))

    for miss in unresolved:
        log.warning("%s", miss.describe())
    return ExtractionResult(tuple(conditions), tuple(unresolved))


def _named_query(entity: Entity | None, method_name: str) -> NamedQuery | None:
    if entity is None:
        return None
    wanted = f"{entity.name}.{method_name}"
    for named in entity.named_queries:
        if named.name == wanted:
            return named
    return None
