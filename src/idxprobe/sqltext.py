"""Lexical helpers shared by the SQL scanners (no grammar, just text)."""

from __future__ import annotations

import re

# A possibly quoted identifier and a possibly schema-qualified name.
IDENT = r'(?:"[^"]+"|`[^`]+`|\[[^\]]+\]|[A-Za-z_$][\w$]*)'
QNAME = IDENT + r"(?:\s*\.\s*" + IDENT + r")*"


def mask_literals(text: str) -> str:
    """Replace the contents of ``'...'`` string literals with spaces.

    Offsets are preserved, so positions found in the masked text are valid
    in the original.
    """
    out = list(text)
    i = 0
    n = len(text)
    while i < n:
        if text[i] != "'":
            i += 1
            continue
        j = i + 1
        while j < n:
            if text[j] == "'":
                if j + 1 < n and text[j + 1] == "'":
                    j += 2
                    continue
                break
            j += 1
        for k in range(i + 1, min(j, n)):
            out[k] = " "
        i = j + 1
    return "".join(out)


def split_top_level(text: str, sep: str = ",") -> list[str]:
    """Split on *sep* outside parentheses; empty parts are dropped."""
    parts: list[str] = []
    depth = 0
    buf: list[str] = []
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == sep and depth == 0:
            parts.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
    parts.append("".join(buf))
    return [p.strip() for p in parts if p.strip()]


def paren_body(text: str, open_pos: int) -> tuple[str, int]:
    """Text between the parenthesis at *open_pos* and its partner.

    Returns ``(body, index after the closing paren)``.  Raises ValueError
    when the parenthesis is never closed.
    """
    if open_pos >= len(text) or text[open_pos] != "(":
        raise ValueError(f"expected '(' at offset {open_pos}")
    depth = 0
    for i in range(open_pos, len(text)):
        ch = text[i]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return text[open_pos + 1 : i], i + 1
    raise ValueError("unbalanced parentheses")


def clause_span(text: str, start: int, stop: re.Pattern) -> tuple[int, int]:
    """Span from *start* to the first *stop* keyword at the same paren depth.

    A closing parenthesis that leaves the starting depth also ends the clause.
    """
    depth = 0
    i = start
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                return start, i
        elif depth == 0 and (i == 0 or not (text[i - 1].isalnum() or text[i - 1] == "_")):
            if stop.match(text, i):
                return start, i
        i += 1
    return start, n
