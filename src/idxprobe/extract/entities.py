"""Extract entity -> table/column mappings from JPA-annotated Java sources.

Detection algorithm (per file, pure):

  1. Find the first class declaration carrying ``@Entity`` (or
     ``@MappedSuperclass``); files without one yield no entity.
  2. Table name: ``@Table(name = ...)`` lower-cased, else the snake_case form
     of the class name.
  3. For each field declaration:
       - skip static / transient / ``@Transient`` fields and the inverse or
         collection side of associations (``@OneToMany``, ``@ManyToMany``,
         ``@OneToOne(mappedBy = ...)``): none of them own a column
       - ``@Id`` / ``@EmbeddedId`` marks an identifier
       - column: ``@Column(name)`` -> ``@JoinColumn(name)`` (associations) ->
         convention (``snake(field)``, or ``snake(field)_id`` for an
         owning association)
  4. ``@NamedQuery`` / ``@NamedNativeQuery`` declarations are kept so
     repository methods can be matched against them.

A file with syntax errors still yields whatever could be read.
"""

from __future__ import annotations

import logging

from idxprobe.languages.java_source import (
    annotation_argument,
    annotation_string,
    annotations,
    has_modifier,
    iter_type_declarations,
    nested_annotations,
    node_text,
    parse_java,
    simple_name,
    string_constants,
)
from idxprobe.schema.model import (
    MANY_TO_ONE,
    ONE_TO_ONE,
    Entity,
    Field,
    NamedQuery,
    Relationship,
)
from idxprobe.schema.naming import camel_to_snake, normalize_table, unquote_identifier

log = logging.getLogger(__name__)

_ID_MARKERS = ("Id", "EmbeddedId")
_COLLECTION_ASSOCIATIONS = ("OneToMany", "ManyToMany", "ElementCollection")


def extract_entity(source: str | bytes, path: str = "") -> Entity | None:
    """Return the entity declared in *source*, or None."""
    data = source.encode("utf-8") if isinstance(source, str) else source
    if b"Entity" not in data and b"MappedSuperclass" not in data:
        return None

    tree = parse_java(data)
    for decl in iter_type_declarations(tree.root_node):
        if decl.type != "class_declaration":
            continue
        anns = annotations(decl, data)
        if "Entity" not in anns and "MappedSuperclass" not in anns:
            continue
        if tree.root_node.has_error:
            log.warning("%s: syntax errors, extracting entity on a best-effort basis", path)
        return _build_entity(decl, anns, data, path)
    return None


def _build_entity(decl, anns: dict, source: bytes, path: str) -> Entity:
    name = node_text(decl.child_by_field_name("name"), source)
    is_mapped_superclass = "Entity" not in anns

    table = ""
    if not is_mapped_superclass:
        explicit = annotation_string(anns.get("Table"), source, "name")
        table = normalize_table(explicit) if explicit else camel_to_snake(name)

    superclass = None
    super_node = decl.child_by_field_name("superclass")
    if super_node is not None:
        text = node_text(super_node, source).strip()
        if text.startswith("extends"):
            text = text[len("extends"):]
        superclass = simple_name(text.strip()) or None

    fields: list[Field] = []
    relationships: list[Relationship] = []
    body = decl.child_by_field_name("body")
    if body is not None:
        for child in body.named_children:
            if child.type != "field_declaration":
                continue
            for f, rel in _fields_of(child, source):
                fields.append(f)
                if rel is not None:
                    relationships.append(rel)

    return Entity(
        name=name,
        table=table,
        fields=tuple(fields),
        relationships=tuple(relationships),
        named_queries=tuple(_named_queries(decl, anns, source)),
        superclass=superclass,
        is_mapped_superclass=is_mapped_superclass,
        path=path,
    )


def _fields_of(node, source: bytes):
    """Yield ``(Field, Relationship | None)`` for each declarator of a field."""
    if has_modifier(node, source, "static") or has_modifier(node, source, "transient"):
        return
    anns = annotations(node, source)
    if "Transient" in anns:
        return
    if any(a in anns for a in _COLLECTION_ASSOCIATIONS):
        return
    one_to_one = anns.get("OneToOne")
    if one_to_one is not None and annotation_argument(one_to_one, source, "mappedBy") is not None:
        return

    is_identifier = any(a in anns for a in _ID_MARKERS)
    kind = None
    if "ManyToOne" in anns:
        kind = MANY_TO_ONE
    elif one_to_one is not None:
        kind = ONE_TO_ONE

    explicit_column = _column_name(anns.get("Column"), source)
    explicit_join = _join_column_name(anns, source)
    target = simple_name(node_text(node.child_by_field_name("type"), source))

    for decl in node.children:
        if decl.type != "variable_declarator":
            continue
        field_name = node_text(decl.child_by_field_name("name"), source)
        if not field_name:
            continue
        rel = None
        if kind is not None:
            join_column = explicit_join or f"{camel_to_snake(field_name)}_id"
            rel = Relationship(field_name, target, join_column, kind)
            column = explicit_column or join_column
        else:
            column = explicit_column or camel_to_snake(field_name)
        yield Field(
            name=field_name,
            column=column,
            is_identifier=is_identifier,
            is_relationship=kind is not None,
        ), rel


def _column_name(annotation, source: bytes) -> str | None:
    value = annotation_string(annotation, source, "name")
    if not value:
        return None
    return unquote_identifier(value).lower()


def _join_column_name(anns: dict, source: bytes) -> str | None:
    if "JoinColumn" in anns:
        return _column_name(anns["JoinColumn"], source)
    if "JoinColumns" in anns:
        # Composite keys: the first join column is the leading one.
        for inner in nested_annotations(annotation_argument(anns["JoinColumns"], source)):
            name = _column_name(inner, source)
            if name:
                return name
    return None


def _named_queries(decl, anns: dict, source: bytes) -> list[NamedQuery]:
    constants = string_constants(decl, source)
    found: list[NamedQuery] = []

    def _add(annotation, native: bool) -> None:
        name = annotation_string(annotation, source, "name", constants)
        query = annotation_string(annotation, source, "query", constants)
        if name and query:
            found.append(NamedQuery(name=name, query=query, native=native))
        else:
            log.debug("skipping named query without a constant name/query: %s",
                      node_text(annotation, source)[:80])

    for single, plural, native in (
        ("NamedQuery", "NamedQueries", False),
        ("NamedNativeQuery", "NamedNativeQueries", True),
    ):
        if single in anns:
            _add(anns[single], native)
        if plural in anns:
            for inner in nested_annotations(annotation_argument(anns[plural], source)):
                _add(inner, native)
    return found
