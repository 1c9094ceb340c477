"""Identifier naming conventions shared by the extractors."""

from __future__ import annotations

import re

_RE_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_RE_WORD_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")


def camel_to_snake(name: str) -> str:
    """Convert a camelCase / StudlyCase identifier to snake_case.

    Examples:
      email        -> email
      createdAt    -> created_at
      userID       -> user_id
      HTTPCode     -> http_code
      OrderItem    -> order_item

    Idempotent: already snake-cased input comes back unchanged.
    """
    s1 = _RE_ACRONYM_BOUNDARY.sub(r"\1_\2", name)
    return _RE_WORD_BOUNDARY.sub(r"\1_\2", s1).lower()


def decapitalize(name: str) -> str:
    """Lower-case the first letter: ``EmailAddress`` -> ``emailAddress``."""
    if not name:
        return name
    return name[0].lower() + name[1:]


def unquote_identifier(name: str) -> str:
    """Strip SQL identifier quoting (``"x"``, `` `x` ``, ``[x]``)."""
    name = name.strip()
    if len(name) >= 2 and (
        (name[0] == name[-1] and name[0] in "\"`'")
        or (name[0] == "[" and name[-1] == "]")
    ):
        return name[1:-1]
    return name


def normalize_table(name: str) -> str:
    """Normalise a possibly quoted, schema-qualified table name.

    ``public."Users"`` -> ``users``
    """
    name = name.strip()
    last = _split_qualified(name)[-1]
    return unquote_identifier(last).lower()


def _split_qualified(name: str) -> list[str]:
    """Split ``a.b.c`` on dots that are not inside identifier quotes."""
    parts: list[str] = []
    buf: list[str] = []
    quote: str | None = None
    for ch in name:
        if quote:
            buf.append(ch)
            if ch == quote:
                quote = None
        elif ch in "\"`":
            quote = ch
            buf.append(ch)
        elif ch == "[":
            quote = "]"
            buf.append(ch)
        elif ch == ".":
            parts.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
    parts.append("".join(buf))
    return parts
