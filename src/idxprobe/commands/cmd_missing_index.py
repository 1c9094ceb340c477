"""Detect query columns that no active index covers.

Extracts entity mappings from JPA-annotated Java sources, replays the SQL
migration history (or reads a SQLite database) to learn which indexes
exist, then checks every column that a repository query filters or joins
on.  Range comparisons (``<``, ``>``, ``BETWEEN`` ...) only count as
covered when the column leads an index.
"""

from __future__ import annotations

from collections import defaultdict

import click

from idxprobe.commands.run_helpers import (
    analysis_options,
    project_settings,
    run_analysis,
    scanned_line,
)
from idxprobe.exit_codes import GateFailureError
from idxprobe.output.formatter import json_envelope, loc, to_json


def _verdict(total: int, tables: int) -> str:
    if total == 0:
        return "No missing indexes detected"
    return (
        f"{total} missing index{'es' if total != 1 else ''} "
        f"on {tables} table{'s' if tables != 1 else ''}"
    )


@click.command("missing-index")
@analysis_options
@click.option("--fail-threshold", type=int, default=None,
              help="Exit 5 when more than this many findings are reported")
@click.option("--table", "table_filter", default=None,
              help="Limit results to a specific table name")
@click.option("--limit", "-n", default=50, show_default=True, help="Max findings to show")
@click.pass_context
def missing_index(ctx, source_dirs, migration_dirs, database, workers, migration_order,
                  fail_threshold, table_filter, limit):
    """Detect query filters and joins on columns without an index.

    \b
    Examples:
        idxprobe missing-index
        idxprobe missing-index --migrations-dir db/migration
        idxprobe missing-index --database app.sqlite3
        idxprobe missing-index --table orders -n 100
        idxprobe --json missing-index --fail-threshold 0
    """
    json_mode = ctx.obj.get("json") if ctx.obj else False
    settings = project_settings(source_dirs, migration_dirs, workers, migration_order, fail_threshold)
    result = run_analysis(settings, database)

    findings = result.findings
    if table_filter:
        findings = [f for f in findings if f.predicate.table == table_filter.lower()]
    total = len(findings)
    tables = len({f.predicate.table for f in findings})
    truncated = total > limit
    shown = findings[:limit]
    verdict = _verdict(total, tables)

    threshold = settings.get("fail_threshold")
    gate_failed = threshold is not None and total > threshold

    if json_mode:
        summary = result.summary.to_dict()
        summary.update({
            "verdict": verdict,
            "findings": total,
            "tables": tables,
            "truncated": truncated,
            "table_filter": table_filter,
            "fail_threshold": threshold,
            "gate_passed": not gate_failed,
        })
        click.echo(to_json(json_envelope(
            "missing-index",
            summary=summary,
            findings=[f.to_dict() for f in shown],
            unknown_fields=[
                {
                    "entity": u.entity,
                    "reference": u.reference,
                    "reason": u.reason,
                    "path": u.location.path,
                    "line": u.location.line,
                    "method": u.location.method,
                }
                for u in result.unresolved
            ],
        )))
    else:
        s = result.summary
        click.echo(f"VERDICT: {verdict}")
        click.echo()
        click.echo(scanned_line(result))
        click.echo(
            f"Entities: {s.entities} | Query methods: {s.query_methods} | "
            f"Predicates: {s.predicates} | Active indexes: {s.active_indexes} ({s.index_source})"
        )
        if result.unresolved:
            click.echo(f"Unknown fields: {len(result.unresolved)} (run with -v for details)")
        if s.cancelled:
            click.echo("Run was cancelled: results are partial")

        if shown:
            click.echo()
            by_table: dict[str, list] = defaultdict(list)
            for f in shown:
                by_table[f.predicate.table].append(f)
            for table_name in sorted(by_table):
                click.echo(f"Table: {table_name}")
                for f in by_table[table_name]:
                    click.echo(f"  {f.predicate.column} {f.predicate.operator}")
                    if f.hint:
                        click.echo(f"          Note: {f.hint}")
                    for location in f.locations[:3]:
                        where = loc(location.path, location.line)
                        who = f"{location.repository}.{location.method}" if location.method else ""
                        click.echo(f"          Query: {who}  {where}".rstrip())
                    if len(f.locations) > 3:
                        click.echo(f"          (+{len(f.locations) - 3} more queries)")
                    click.echo(f"          Fix: {f.ddl}")
                click.echo()
            if truncated:
                click.echo(f"  (showing {limit} of {total} findings, use --limit to see more)")

    if gate_failed:
        raise GateFailureError(f"{total} missing indexes exceed fail threshold {threshold}")
