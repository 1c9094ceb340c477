"""Shared option handling for the analysis commands."""

from __future__ import annotations

from pathlib import Path

import click

from idxprobe.analysis import AnalysisResult, analyze
from idxprobe.config import find_project_root, load_settings


def analysis_options(func):
    """Attach the directory / worker options every analysis command takes."""
    options = [
        click.option("--source-dir", "source_dirs", multiple=True,
                     help="Java source directory (repeatable; default from config or '.')"),
        click.option("--migrations-dir", "migration_dirs", multiple=True,
                     help="SQL migrations directory (repeatable; auto-detected when omitted)"),
        click.option("--database", type=click.Path(dir_okay=False), default=None,
                     help="Read indexes from this SQLite database instead of migrations"),
        click.option("--workers", type=int, default=None,
                     help="Parallel file parsers (default 4)"),
        click.option("--migration-order", type=click.Choice(["lexical", "natural"]), default=None,
                     help="How migration file names are ordered for replay"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def project_settings(source_dirs=(), migration_dirs=(), workers=None,
                     migration_order=None, fail_threshold=None) -> dict:
    """Effective settings for the current directory's project."""
    return load_settings(find_project_root(), {
        "source_dirs": list(source_dirs) or None,
        "migration_dirs": list(migration_dirs) or None,
        "workers": workers,
        "migration_order": migration_order,
        "fail_threshold": fail_threshold,
    })


def run_analysis(settings: dict, database: str | None = None) -> AnalysisResult:
    return analyze(
        Path(settings["project_root"]),
        settings["source_dirs"],
        settings["migration_dirs"],
        source_suffixes=settings["source_suffixes"],
        migration_suffixes=settings["migration_suffixes"],
        migration_order=settings["migration_order"],
        database=database,
        workers=settings["workers"],
    )


def run_analysis_sources(settings: dict) -> AnalysisResult:
    """Java sources only: no migrations are read."""
    return analyze(
        Path(settings["project_root"]),
        settings["source_dirs"],
        source_suffixes=settings["source_suffixes"],
        workers=settings["workers"],
        with_indexes=False,
    )


def scanned_line(result: AnalysisResult) -> str:
    s = result.summary
    return (
        f"Files scanned: {s.files_scanned} | skipped: {s.files_skipped} "
        f"(sources {s.source_files_scanned}/{s.source_files_skipped}, "
        f"migrations {s.migration_files_scanned}/{s.migration_files_skipped})"
    )
