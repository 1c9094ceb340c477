"""Show the index catalog after replaying migrations (or from a database)."""

from __future__ import annotations

from pathlib import Path

import click

from idxprobe.analysis import ScanSummary, load_index_catalog
from idxprobe.commands.run_helpers import project_settings
from idxprobe.output.formatter import format_table, json_envelope, to_json


def _index_dict(idx) -> dict:
    return {
        "name": idx.name,
        "table": idx.table,
        "columns": list(idx.columns),
        "unique": idx.is_unique,
        "primary": idx.is_primary,
        "source": idx.source,
        "dropped_in": idx.dropped_in,
    }


@click.command("indexes")
@click.option("--migrations-dir", "migration_dirs", multiple=True,
              help="SQL migrations directory (repeatable; auto-detected when omitted)")
@click.option("--database", type=click.Path(dir_okay=False), default=None,
              help="Read indexes from this SQLite database instead of migrations")
@click.option("--migration-order", type=click.Choice(["lexical", "natural"]), default=None,
              help="How migration file names are ordered for replay")
@click.option("--table", "table_filter", default=None, help="Only show this table")
@click.option("--all", "show_all", is_flag=True, help="Include dropped indexes")
@click.pass_context
def indexes(ctx, migration_dirs, database, migration_order, table_filter, show_all):
    """List the indexes that are active after replaying every migration."""
    json_mode = ctx.obj.get("json") if ctx.obj else False
    settings = project_settings(migration_dirs=migration_dirs, migration_order=migration_order)
    root = Path(settings["project_root"])

    summary = ScanSummary()
    catalog = load_index_catalog(
        root,
        settings["migration_dirs"],
        migration_suffixes=settings["migration_suffixes"],
        migration_order=settings["migration_order"],
        database=database,
        workers=settings["workers"],
        summary=summary,
    )
    scanned, skipped = summary.migration_files_scanned, summary.migration_files_skipped

    listed = catalog.entries if show_all else [i for i in catalog.entries if i.is_active]
    if table_filter:
        listed = [i for i in listed if i.table == table_filter.lower()]
    listed.sort(key=lambda i: (i.table, i.name))
    active = sum(1 for i in listed if i.is_active)
    tables = len({i.table for i in listed if i.is_active})
    verdict = f"{active} active indexes on {tables} tables"

    if json_mode:
        click.echo(to_json(json_envelope(
            "indexes",
            summary={
                "verdict": verdict,
                "active": active,
                "tables": tables,
                "migration_files_scanned": scanned,
                "migration_files_skipped": skipped,
                "table_filter": table_filter,
            },
            indexes=[_index_dict(i) for i in listed],
        )))
        return

    click.echo(f"VERDICT: {verdict}")
    if database is None:
        click.echo(f"Migrations scanned: {scanned} | skipped: {skipped}")
    click.echo()
    rows = []
    for i in listed:
        kind = "primary" if i.is_primary else ("unique" if i.is_unique else "")
        state = f"dropped in {i.dropped_in}" if not i.is_active else i.source
        rows.append([i.table, i.name, ", ".join(i.columns), kind, state])
    click.echo(format_table(["table", "index", "columns", "kind", "source"], rows))
