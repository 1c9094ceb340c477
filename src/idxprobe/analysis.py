"""Run the whole analysis: discover, parse in parallel, aggregate, resolve.

Per-file parsing (Java sources and migration scripts) is pure and runs on a
thread pool.  Results are consumed in submission order by the calling
thread, which is the only writer of the aggregated state, so a run is
deterministic whatever the worker count.  Migration events are replayed
after parsing, one file at a time, in migration order.
"""

from __future__ import annotations

import logging
import os
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, TypeVar

from idxprobe.config import resolve_dir
from idxprobe.discovery import discover_files, migration_sort_key
from idxprobe.exit_codes import InputMissingError
from idxprobe.extract.entities import extract_entity
from idxprobe.extract.repositories import QueryMethod, extract_query_methods
from idxprobe.migrations.catalog import IndexCatalog, IndexEvent, parse_migration
from idxprobe.migrations.live import open_sqlite_catalog
from idxprobe.queries.extractor import extract_predicates
from idxprobe.resolver import build_findings
from idxprobe.schema.model import (
    Entity,
    Finding,
    Predicate,
    QueryCondition,
    QueryLocation,
    UnresolvedReference,
)
from idxprobe.schema.registry import SchemaRegistry

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class ScanSummary:
    source_files_scanned: int = 0
    source_files_skipped: int = 0
    migration_files_scanned: int = 0
    migration_files_skipped: int = 0
    entities: int = 0
    repositories: int = 0
    query_methods: int = 0
    predicates: int = 0
    active_indexes: int = 0
    unknown_fields: int = 0
    findings: int = 0
    cancelled: bool = False
    index_source: str = "migrations"
    skipped: list[tuple[str, str]] = field(default_factory=list)

    @property
    def files_scanned(self) -> int:
        return self.source_files_scanned + self.migration_files_scanned

    @property
    def files_skipped(self) -> int:
        return self.source_files_skipped + self.migration_files_skipped

    def to_dict(self) -> dict:
        return {
            "files_scanned": self.files_scanned,
            "files_skipped": self.files_skipped,
            "source_files_scanned": self.source_files_scanned,
            "source_files_skipped": self.source_files_skipped,
            "migration_files_scanned": self.migration_files_scanned,
            "migration_files_skipped": self.migration_files_skipped,
            "entities": self.entities,
            "repositories": self.repositories,
            "query_methods": self.query_methods,
            "predicates": self.predicates,
            "active_indexes": self.active_indexes,
            "unknown_fields": self.unknown_fields,
            "findings": self.findings,
            "cancelled": self.cancelled,
            "index_source": self.index_source,
            "skipped": [{"path": p, "reason": r} for p, r in self.skipped],
        }


@dataclass
class AnalysisResult:
    schema: SchemaRegistry
    catalog: IndexCatalog
    methods: list[QueryMethod]
    usages: dict[Predicate, list[QueryLocation]]
    unresolved: list[UnresolvedReference]
    findings: list[Finding]
    summary: ScanSummary

    @property
    def predicates(self) -> list[Predicate]:
        return list(self.usages)


@dataclass(frozen=True)
class SourceParse:
    """What one Java file contributed."""

    entity: Entity | None
    methods: tuple[QueryMethod, ...]


class SkippedFile(Exception):
    """A file that could not be read or parsed; counted, never fatal."""


# ---------------------------------------------------------------------------
# Pure per-file parsers
# ---------------------------------------------------------------------------


def _read_bytes(full_path: Path) -> bytes:
    try:
        with open(full_path, "rb") as f:
            return f.read()
    except OSError as exc:
        raise SkippedFile(f"unreadable: {exc.strerror or exc}") from exc


def parse_source_file(full_path: Path, display_path: str) -> SourceParse:
    data = _read_bytes(full_path)
    try:
        data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise SkippedFile(f"not UTF-8 ({exc.reason})") from exc
    try:
        entity = extract_entity(data, display_path)
        methods = extract_query_methods(data, display_path)
    except (ValueError, RecursionError) as exc:
        raise SkippedFile(f"parse failure: {exc}") from exc
    return SourceParse(entity, tuple(methods))


def parse_migration_file(full_path: Path, display_path: str) -> list[IndexEvent]:
    data = _read_bytes(full_path)
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise SkippedFile(f"not UTF-8 ({exc.reason})") from exc
    return parse_migration(text, display_path)


# ---------------------------------------------------------------------------
# Parallel map with ordered, single-writer consumption
# ---------------------------------------------------------------------------


def parallel_map(
    func: Callable[[T], R],
    items: Iterable[T],
    workers: int = 4,
    cancel: threading.Event | None = None,
) -> Iterator[tuple[T, R | None, Exception | None]]:
    """Yield ``(item, result, error)`` in submission order.

    At most ``2 * workers`` items are in flight.  Once *cancel* is set no new
    item is submitted; items already in flight are still yielded.
    """
    workers = max(1, int(workers))
    pending: deque = deque()
    source = iter(items)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="idxprobe-parse") as pool:
        exhausted = False
        while True:
            while not exhausted and len(pending) < 2 * workers:
                if cancel is not None and cancel.is_set():
                    exhausted = True
                    break
                try:
                    item = next(source)
                except StopIteration:
                    exhausted = True
                    break
                pending.append((item, pool.submit(func, item)))
            if not pending:
                break
            item, future = pending.popleft()
            try:
                result = future.result()
            except SkippedFile as exc:
                yield item, None, exc
                continue
            yield item, result, None


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def _display_path(full: Path, project_root: Path) -> str:
    try:
        return os.path.relpath(full, project_root).replace("\\", "/")
    except ValueError:
        return full.as_posix()


def collect_files(project_root: Path, dirs: Iterable[str], suffixes: Iterable[str],
                  what: str) -> list[tuple[Path, str]]:
    """``(full path, display path)`` for every matching file under *dirs*.

    Raises InputMissingError when a directory does not exist.
    """
    out: list[tuple[Path, str]] = []
    seen: set[str] = set()
    for d in dirs:
        base = resolve_dir(project_root, d)
        if not base.is_dir():
            raise InputMissingError(f"{what} directory not found: {base}")
        for rel in discover_files(base, suffixes):
            full = base / rel
            display = _display_path(full, project_root)
            if display in seen:
                continue
            seen.add(display)
            out.append((full, display))
    return out


def _record_skip(summary: ScanSummary | None, display: str, error: Exception, kind: str) -> None:
    log.warning("%s: skipped (%s)", display, error)
    if summary is None:
        return
    if kind == "migration":
        summary.migration_files_skipped += 1
    else:
        summary.source_files_skipped += 1
    summary.skipped.append((display, str(error)))


def load_index_catalog(
    project_root: Path,
    migration_dirs: Iterable[str] = (),
    *,
    migration_suffixes: Iterable[str] = (".sql",),
    migration_order: str = "lexical",
    database: str | Path | None = None,
    workers: int = 4,
    cancel: threading.Event | None = None,
    summary: ScanSummary | None = None,
) -> IndexCatalog:
    """Active indexes from a SQLite database, or from migrations replayed in order.

    Migration files are parsed in parallel; their events are applied one
    file at a time in migration order.
    """
    if database is not None:
        catalog = open_sqlite_catalog(database)
        if summary is not None:
            summary.index_source = f"sqlite:{Path(database).name}"
        return catalog

    migration_dirs = list(migration_dirs)
    if not migration_dirs:
        raise InputMissingError("no migrations directory found; pass --migrations-dir or --database")
    files = collect_files(Path(project_root), migration_dirs, tuple(migration_suffixes), "migrations")
    key = migration_sort_key(migration_order)
    files.sort(key=lambda pair: key(pair[1]))

    catalog = IndexCatalog()
    for (_full, display), events, error in parallel_map(
        lambda pair: parse_migration_file(*pair), files, workers, cancel,
    ):
        if error is not None:
            _record_skip(summary, display, error, "migration")
            continue
        if summary is not None:
            summary.migration_files_scanned += 1
        catalog.replay(events)
    return catalog


def analyze(
    project_root: Path,
    source_dirs: Iterable[str] = (".",),
    migration_dirs: Iterable[str] = (),
    *,
    source_suffixes: Iterable[str] = (".java",),
    migration_suffixes: Iterable[str] = (".sql",),
    migration_order: str = "lexical",
    database: str | Path | None = None,
    workers: int = 4,
    cancel: threading.Event | None = None,
    with_indexes: bool = True,
) -> AnalysisResult:
    """Analyse a project and return findings plus the run summary.

    Missing directories (and a missing ``database`` file) raise
    ``InputMissingError``.  Unreadable or unparseable files are skipped and
    counted; unknown fields are collected, never raised.  With
    ``with_indexes=False`` no index source is read and the catalog is empty.
    """
    project_root = Path(project_root).resolve()
    summary = ScanSummary()
    sources = collect_files(project_root, source_dirs, tuple(source_suffixes), "source")

    if with_indexes:
        catalog = load_index_catalog(
            project_root,
            migration_dirs,
            migration_suffixes=migration_suffixes,
            migration_order=migration_order,
            database=database,
            workers=workers,
            cancel=cancel,
            summary=summary,
        )
    else:
        catalog = IndexCatalog()
        summary.index_source = "none"

    # Java sources: entities and repository methods.
    entities: list[Entity] = []
    methods: list[QueryMethod] = []
    repositories: set[tuple[str, str]] = set()
    for (_full, display), parsed, error in parallel_map(
        lambda pair: parse_source_file(*pair), sources, workers, cancel,
    ):
        if error is not None:
            _record_skip(summary, display, error, "source")
            continue
        summary.source_files_scanned += 1
        if parsed.entity is not None:
            entities.append(parsed.entity)
        for method in parsed.methods:
            methods.append(method)
            repositories.add((method.path, method.repository))

    if cancel is not None and cancel.is_set():
        summary.cancelled = True
        log.warning("analysis cancelled; reporting partial results")

    schema = SchemaRegistry(entities)
    usages: dict[Predicate, list[QueryLocation]] = {}
    unresolved: list[UnresolvedReference] = []
    for method in methods:
        result = extract_predicates(method, schema)
        for cond in result.conditions:
            _add_usage(usages, cond)
        unresolved.extend(result.unresolved)

    findings = build_findings(usages, catalog, schema.identifier_columns())

    summary.entities = len(schema)
    summary.repositories = len(repositories)
    summary.query_methods = len(methods)
    summary.predicates = len(usages)
    summary.active_indexes = len(catalog)
    summary.unknown_fields = len(unresolved)
    summary.findings = len(findings)
    log.debug(
        "scanned %d files (%d skipped), %d predicates, %d findings",
        summary.files_scanned, summary.files_skipped, summary.predicates, summary.findings,
    )
    return AnalysisResult(schema, catalog, methods, usages, unresolved, findings, summary)


def _add_usage(usages: dict[Predicate, list[QueryLocation]], cond: QueryCondition) -> None:
    locations = usages.setdefault(cond.predicate, [])
    if cond.location not in locations:
        locations.append(cond.location)
