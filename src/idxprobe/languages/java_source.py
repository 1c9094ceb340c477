"""Tree-sitter helpers for reading annotated Java sources.

Only the small slice of the Java grammar the extractors need: type
declarations, their modifiers/annotations, fields, methods and constant
string expressions (literals, text blocks and ``+`` concatenation).
"""

from __future__ import annotations

import re
import threading
import textwrap

from tree_sitter_language_pack import get_parser

_TYPE_DECLARATIONS = frozenset({
    "class_declaration",
    "interface_declaration",
    "enum_declaration",
    "record_declaration",
})

_COMMENT_NODES = frozenset({"comment", "line_comment", "block_comment"})

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "s": " ",
            '"': '"', "'": "'", "\\": "\\"}
_RE_ESCAPE = re.compile(r"\\(.)", re.DOTALL)

# Parser objects are not safe to share between threads.
_local = threading.local()


def _java_parser():
    parser = getattr(_local, "parser", None)
    if parser is None:
        parser = get_parser("java")
        _local.parser = parser
    return parser


def parse_java(source: bytes):
    """Parse Java source bytes into a tree-sitter tree."""
    return _java_parser().parse(source)


def node_text(node, source: bytes) -> str:
    if node is None:
        return ""
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def line_of(node) -> int:
    return node.start_point[0] + 1


def iter_type_declarations(node):
    """Yield every class/interface/enum/record declaration, outermost first."""
    for child in node.children:
        if child.type in _TYPE_DECLARATIONS:
            yield child
            body = child.child_by_field_name("body")
            if body is not None:
                yield from iter_type_declarations(body)
        elif child.type in ("program", "class_body", "interface_body"):
            yield from iter_type_declarations(child)


def _modifiers(node):
    for child in node.children:
        if child.type == "modifiers":
            return child
    return None


def simple_name(name: str) -> str:
    """``jakarta.persistence.Entity`` -> ``Entity``; strips generics too."""
    name = name.split("<", 1)[0].strip()
    return name.rsplit(".", 1)[-1]


def annotations(node, source: bytes) -> dict:
    """Return ``{simple annotation name: annotation node}`` for *node*.

    The first occurrence wins when an annotation repeats.
    """
    found: dict = {}
    mods = _modifiers(node)
    if mods is None:
        return found
    for child in mods.children:
        if child.type in ("annotation", "marker_annotation"):
            name = simple_name(node_text(child.child_by_field_name("name"), source))
            found.setdefault(name, child)
    return found


def has_modifier(node, source: bytes, keyword: str) -> bool:
    mods = _modifiers(node)
    if mods is None:
        return False
    for child in mods.children:
        if child.type in ("annotation", "marker_annotation"):
            continue
        if node_text(child, source) == keyword:
            return True
    return False


def annotation_argument(annotation, source: bytes, key: str = "value"):
    """Return the value node for *key* of an annotation, or None.

    A single un-named argument (``@Query("...")``) answers for ``value``.
    """
    if annotation is None or annotation.type == "marker_annotation":
        return None
    args = annotation.child_by_field_name("arguments")
    if args is None:
        return None
    named = [c for c in args.named_children if c.type not in _COMMENT_NODES]
    for child in named:
        if child.type == "element_value_pair":
            if node_text(child.child_by_field_name("key"), source) == key:
                return child.child_by_field_name("value")
    if key == "value" and len(named) == 1 and named[0].type != "element_value_pair":
        return named[0]
    return None


def annotation_string(annotation, source: bytes, key: str = "value",
                      constants: dict[str, str] | None = None) -> str | None:
    return string_value(annotation_argument(annotation, source, key), source, constants)


def annotation_bool(annotation, source: bytes, key: str) -> bool:
    node = annotation_argument(annotation, source, key)
    return node is not None and node_text(node, source).strip() == "true"


def annotation_class(annotation, source: bytes, key: str) -> str | None:
    """Simple type name of a ``X.class`` annotation argument."""
    node = annotation_argument(annotation, source, key)
    if node is None:
        return None
    text = node_text(node, source).strip()
    if text.endswith(".class"):
        text = text[: -len(".class")]
    return simple_name(text) or None


def nested_annotations(node):
    """Annotation nodes inside an array initializer (``{@A(..), @A(..)}``)."""
    if node is None:
        return []
    if node.type in ("annotation", "marker_annotation"):
        return [node]
    return [c for c in node.named_children if c.type in ("annotation", "marker_annotation")]


def string_value(node, source: bytes, constants: dict[str, str] | None = None) -> str | None:
    """Evaluate a constant string expression, or None when it is not one.

    Handles literals, text blocks, parentheses, ``+`` concatenation and
    references to ``static final String`` constants passed in *constants*.
    """
    if node is None:
        return None
    kind = node.type
    if kind == "string_literal":
        return _decode_literal(node_text(node, source))
    if kind == "parenthesized_expression":
        inner = [c for c in node.named_children if c.type not in _COMMENT_NODES]
        return string_value(inner[0], source, constants) if inner else None
    if kind == "binary_expression":
        op = node.child_by_field_name("operator")
        if op is not None and node_text(op, source) != "+":
            return None
        left = string_value(node.child_by_field_name("left"), source, constants)
        right = string_value(node.child_by_field_name("right"), source, constants)
        if left is None or right is None:
            return None
        return left + right
    if kind in ("identifier", "field_access") and constants:
        return constants.get(simple_name(node_text(node, source)))
    return None


def string_constants(class_node, source: bytes) -> dict[str, str]:
    """Collect ``static final String NAME = "..."`` constants of a type body."""
    out: dict[str, str] = {}
    body = class_node.child_by_field_name("body")
    if body is None:
        return out
    for child in body.named_children:
        if child.type not in ("field_declaration", "constant_declaration"):
            continue
        type_node = child.child_by_field_name("type")
        if node_text(type_node, source) != "String":
            continue
        for decl in child.children:
            if decl.type != "variable_declarator":
                continue
            name = node_text(decl.child_by_field_name("name"), source)
            value = string_value(decl.child_by_field_name("value"), source, out)
            if name and value is not None:
                out[name] = value
    return out


def _decode_literal(text: str) -> str:
    if text.startswith('"""'):
        body = text[3:-3] if text.endswith('"""') and len(text) >= 6 else text[3:]
        if "\n" in body:
            body = body.split("\n", 1)[1]
        body = textwrap.dedent(body)
        # A trailing backslash joins lines inside a text block.
        body = body.replace("\\\n", "")
    else:
        body = text[1:-1] if len(text) >= 2 else ""
    return _RE_ESCAPE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)
