"""Split SQL migration scripts into statements.

Statement terminators (``;``) only count at top level: not inside
``'...'`` / ``"..."`` / backtick quotes, dollar-quoted bodies
(``$$ ... $$``, ``$fn$ ... $fn$``), ``--`` line comments or ``/* */``
block comments.  Comments are blanked out of the returned text; string
literals are kept verbatim.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_RE_DOLLAR_TAG = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")


@dataclass(frozen=True)
class Statement:
    text: str
    line: int


def split_statements(sql: str) -> list[Statement]:
    statements: list[Statement] = []
    buf: list[str] = []
    start_line: int | None = None
    line = 1
    i = 0
    n = len(sql)

    def _flush() -> None:
        nonlocal buf, start_line
        text = "".join(buf).strip()
        if text:
            statements.append(Statement(text, start_line or line))
        buf = []
        start_line = None

    while i < n:
        ch = sql[i]

        if ch == "-" and sql.startswith("--", i):
            end = sql.find("\n", i)
            end = n if end == -1 else end
            buf.append(" ")
            i = end
            continue

        if ch == "/" and sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = n if end == -1 else end + 2
            chunk = sql[i:end]
            line += chunk.count("\n")
            buf.append("\n" * chunk.count("\n") or " ")
            i = end
            continue

        if ch in ("'", '"', "`"):
            end = _quoted_end(sql, i, ch)
            chunk = sql[i:end]
            if start_line is None:
                start_line = line
            line += chunk.count("\n")
            buf.append(chunk)
            i = end
            continue

        if ch == "$":
            m = _RE_DOLLAR_TAG.match(sql, i)
            if m is not None:
                tag = m.group(0)
                end = sql.find(tag, m.end())
                end = n if end == -1 else end + len(tag)
                chunk = sql[i:end]
                if start_line is None:
                    start_line = line
                line += chunk.count("\n")
                buf.append(chunk)
                i = end
                continue

        if ch == ";":
            _flush()
            i += 1
            continue

        if ch == "\n":
            line += 1
        elif start_line is None and not ch.isspace():
            start_line = line
        buf.append(ch)
        i += 1

    _flush()
    return statements


def _quoted_end(sql: str, start: int, quote: str) -> int:
    """Index just past the closing *quote*; doubled quotes are escapes."""
    i = start + 1
    n = len(sql)
    while i < n:
        ch = sql[i]
        if ch == quote:
            if i + 1 < n and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return n
