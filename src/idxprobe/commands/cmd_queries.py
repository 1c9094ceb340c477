"""Show the predicates extracted from repository query methods."""

from __future__ import annotations

import click

from idxprobe.commands.run_helpers import project_settings, run_analysis_sources, scanned_line
from idxprobe.extract.repositories import AnnotatedQuery
from idxprobe.output.formatter import format_table, json_envelope, loc, to_json


@click.command("queries")
@click.option("--source-dir", "source_dirs", multiple=True,
              help="Java source directory (repeatable; default from config or '.')")
@click.option("--workers", type=int, default=None, help="Parallel file parsers (default 4)")
@click.option("--table", "table_filter", default=None, help="Only show predicates on this table")
@click.pass_context
def queries(ctx, source_dirs, workers, table_filter):
    """List filtered/joined columns per repository method, plus unknown fields."""
    json_mode = ctx.obj.get("json") if ctx.obj else False
    settings = project_settings(source_dirs, workers=workers)
    result = run_analysis_sources(settings)

    usages = result.usages
    predicates = sorted(usages, key=lambda p: (p.table, p.column, p.operator))
    if table_filter:
        predicates = [p for p in predicates if p.table == table_filter.lower()]
    verdict = (
        f"{len(predicates)} predicates from {result.summary.query_methods} query methods, "
        f"{len(result.unresolved)} unknown fields"
    )

    if json_mode:
        summary = result.summary.to_dict()
        summary["verdict"] = verdict
        click.echo(to_json(json_envelope(
            "queries",
            summary=summary,
            methods=[
                {
                    "repository": m.repository,
                    "entity": m.entity,
                    "method": m.name,
                    "kind": (
                        ("native" if m.source.native else "jpql")
                        if isinstance(m.source, AnnotatedQuery) else "derived"
                    ),
                    "path": m.path,
                    "line": m.line,
                }
                for m in result.methods
            ],
            predicates=[
                {
                    "table": p.table,
                    "column": p.column,
                    "operator": p.operator,
                    "locations": [loc(l.path, l.line) for l in usages[p]],
                }
                for p in predicates
            ],
            unknown_fields=[
                {"entity": u.entity, "reference": u.reference, "reason": u.reason,
                 "location": loc(u.location.path, u.location.line)}
                for u in result.unresolved
            ],
        )))
        return

    click.echo(f"VERDICT: {verdict}")
    click.echo(scanned_line(result))
    click.echo()
    rows = []
    for p in predicates:
        first = usages[p][0]
        more = f" (+{len(usages[p]) - 1})" if len(usages[p]) > 1 else ""
        rows.append([p.table, p.column, p.operator,
                     f"{first.repository}.{first.method}{more}", loc(first.path, first.line)])
    click.echo(format_table(["table", "column", "op", "method", "location"], rows))
    if result.unresolved:
        click.echo()
        click.echo("Unknown fields:")
        for u in result.unresolved:
            click.echo(f"  {u.entity}.{u.reference}  {loc(u.location.path, u.location.line)}  {u.reason}")
