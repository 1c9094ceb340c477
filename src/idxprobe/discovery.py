"""File discovery using git ls-files with fallback to os.walk."""

from __future__ import annotations

import os
import posixpath
import re
import subprocess
from pathlib import Path
from typing import Iterable

# Directories to skip during os.walk fallback
SKIP_DIRS = frozenset({
    ".git", ".hg", ".svn", "node_modules", "__pycache__",
    ".tox", ".mypy_cache", ".pytest_cache", ".ruff_cache",
    "venv", ".venv", "env", ".env",
    "dist", "build", ".eggs",
    ".gradle", ".idea", "out",
    "target", "bin", "obj",
    ".idxprobe",
})

MAX_FILE_SIZE = 1_000_000  # 1MB

MIGRATION_ORDERS = ("lexical", "natural")

_RE_DIGITS = re.compile(r"(\d+)")


def _is_skippable(rel_path: str) -> bool:
    parts = rel_path.split("/")
    return any(part in SKIP_DIRS for part in parts[:-1])


def _git_ls_files(root: Path) -> list[str] | None:
    """Try to list files using git ls-files. Returns None if git unavailable."""
    try:
        result = subprocess.run(
            ["git", "ls-files", "--cached", "--others", "--exclude-standard"],
            cwd=str(root),
            capture_output=True,
            text=True,
            timeout=30,
        )
        if result.returncode != 0:
            return None
        return [p.strip() for p in result.stdout.splitlines() if p.strip()]
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None


def _walk_files(root: Path) -> list[str]:
    """Fallback file discovery using os.walk, respecting common ignore dirs."""
    result = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [
            d for d in dirnames
            if d not in SKIP_DIRS and not d.startswith(".")
        ]
        for fname in filenames:
            full = os.path.join(dirpath, fname)
            try:
                rel = os.path.relpath(full, root).replace("\\", "/")
            except (ValueError, OSError):
                continue
            result.append(rel)
    return result


def _filter_files(paths: list[str], root: Path, suffixes: tuple[str, ...]) -> list[str]:
    """Keep files with a wanted suffix that exist and are not oversized."""
    kept = []
    for rel_path in paths:
        if _is_skippable(rel_path):
            continue
        if suffixes and not rel_path.lower().endswith(suffixes):
            continue
        try:
            if (root / rel_path).stat().st_size > MAX_FILE_SIZE:
                continue
        except OSError:
            continue
        kept.append(rel_path)
    return kept


def discover_files(root: Path, suffixes: Iterable[str] = ()) -> list[str]:
    """Discover files below *root* ending in one of *suffixes*.

    Uses git ls-files when *root* is inside a work tree, falls back to
    os.walk.  Returns a sorted list of relative paths using forward slashes.
    """
    root = Path(root).resolve()
    raw = _git_ls_files(root)
    if raw is None:
        raw = _walk_files(root)
    raw = [p.replace("\\", "/") for p in raw]

    wanted = tuple(s.lower() for s in suffixes)
    filtered = _filter_files(raw, root, wanted)
    filtered.sort()
    return filtered


def _natural_key(text: str) -> list:
    return [(0, int(tok), "") if tok.isdigit() else (1, 0, tok.lower())
            for tok in _RE_DIGITS.split(text) if tok]


def migration_sort_key(mode: str = "lexical"):
    """Sort key for migration paths: file name first, then the full path.

    ``lexical`` compares plain strings; ``natural`` compares digit runs
    numerically so ``V2__a.sql`` precedes ``V10__b.sql``.
    """
    if mode == "lexical":
        return lambda path: (posixpath.basename(path), path)
    if mode == "natural":
        return lambda path: (_natural_key(posixpath.basename(path)), path)
    raise ValueError(f"unknown migration order {mode!r} (expected one of {', '.join(MIGRATION_ORDERS)})")

