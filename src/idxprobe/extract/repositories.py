"""Find repository query methods in Spring Data style Java interfaces.

A repository is an interface that extends a generic ``*Repository<Entity, ID>``
type (or carries ``@RepositoryDefinition(domainClass = Entity.class)``).
Each abstract method becomes a ``QueryMethod`` whose source is either an
``AnnotatedQuery`` (``@Query`` / ``@NativeQuery``) or a ``DerivedQuery``
(SQL derived from the method name).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from idxprobe.languages.java_source import (
    annotation_bool,
    annotation_class,
    annotation_string,
    annotations,
    has_modifier,
    iter_type_declarations,
    line_of,
    node_text,
    parse_java,
    simple_name,
    string_constants,
)
from idxprobe.schema.model import QueryLocation

log = logging.getLogger(__name__)

_ENTITY_NAME_PLACEHOLDER = "#{#entityName}"


@dataclass(frozen=True)
class DerivedQuery:
    """The query is synthesised from the method name."""

    name: str


@dataclass(frozen=True)
class AnnotatedQuery:
    """An explicit JPQL (or native SQL) query string."""

    text: str
    native: bool = False


QuerySource = Union[DerivedQuery, AnnotatedQuery]


@dataclass(frozen=True)
class QueryMethod:
    repository: str
    entity: str | None
    name: str
    source: QuerySource
    path: str = ""
    line: int | None = None

    @property
    def location(self) -> QueryLocation:
        return QueryLocation(self.path, self.line, self.repository, self.name)


def extract_query_methods(source: str | bytes, path: str = "") -> list[QueryMethod]:
    """Return every query method declared by repositories in *source*."""
    data = source.encode("utf-8") if isinstance(source, str) else source
    if b"Repository" not in data:
        return []

    tree = parse_java(data)
    methods: list[QueryMethod] = []
    for decl in iter_type_declarations(tree.root_node):
        if decl.type != "interface_declaration":
            continue
        entity = _domain_type(decl, data)
        if entity is None:
            continue
        repository = node_text(decl.child_by_field_name("name"), data)
        constants = string_constants(decl, data)
        body = decl.child_by_field_name("body")
        if body is None:
            continue
        for child in body.named_children:
            if child.type != "method_declaration":
                continue
            method = _query_method(child, data, repository, entity, constants, path)
            if method is not None:
                methods.append(method)
    return methods


def _query_method(node, source: bytes, repository: str, entity: str,
                  constants: dict[str, str], path: str) -> QueryMethod | None:
    # Default and static methods carry their own implementation.
    if node.child_by_field_name("body") is not None:
        return None
    if has_modifier(node, source, "default") or has_modifier(node, source, "static"):
        return None

    name = node_text(node.child_by_field_name("name"), source)
    anns = annotations(node, source)
    query_ann = anns.get("Query") or anns.get("NativeQuery")
    if query_ann is None:
        return QueryMethod(repository, entity, name, DerivedQuery(name), path, line_of(node))

    text = annotation_string(query_ann, source, "value", constants)
    if text is None:
        log.warning("%s: %s.%s has a non-constant query string, skipping",
                    path, repository, name)
        return None
    native = "NativeQuery" in anns or annotation_bool(query_ann, source, "nativeQuery")
    text = text.replace(_ENTITY_NAME_PLACEHOLDER, entity)
    return QueryMethod(repository, entity, name, AnnotatedQuery(text, native), path, line_of(node))


def _domain_type(decl, source: bytes) -> str | None:
    """Entity type managed by a repository interface, or None."""
    definition = annotations(decl, source).get("RepositoryDefinition")
    if definition is not None:
        domain = annotation_class(definition, source, "domainClass")
        if domain:
            return domain

    for child in decl.children:
        if child.type == "extends_interfaces":
            return _first_repository_argument(child, source)
    return None


def _first_repository_argument(node, source: bytes) -> str | None:
    for child in node.named_children:
        if child.type == "generic_type":
            base = None
            args = None
            for part in child.named_children:
                if part.type == "type_arguments":
                    args = part
                elif base is None:
                    base = part
            if base is not None and args is not None:
                if simple_name(node_text(base, source)).endswith("Repository"):
                    type_args = [a for a in args.named_children if a.type != "wildcard"]
                    if type_args:
                        return simple_name(node_text(type_args[0], source))
        found = _first_repository_argument(child, source)
        if found:
            return found
    return None
