"""Show the entity -> table/column map extracted from Java sources."""

from __future__ import annotations

import click

from idxprobe.commands.run_helpers import project_settings, run_analysis_sources, scanned_line
from idxprobe.output.formatter import format_table, json_envelope, to_json


@click.command("entities")
@click.option("--source-dir", "source_dirs", multiple=True,
              help="Java source directory (repeatable; default from config or '.')")
@click.option("--workers", type=int, default=None, help="Parallel file parsers (default 4)")
@click.pass_context
def entities(ctx, source_dirs, workers):
    """List mapped entities with their tables, columns and relationships."""
    json_mode = ctx.obj.get("json") if ctx.obj else False
    settings = project_settings(source_dirs, workers=workers)
    result = run_analysis_sources(settings)
    found = result.schema.entities

    if json_mode:
        summary = result.summary.to_dict()
        summary["verdict"] = f"{len(found)} entities"
        click.echo(to_json(json_envelope(
            "entities",
            summary=summary,
            entities=[
                {
                    "name": e.name,
                    "table": e.table,
                    "path": e.path,
                    "fields": [
                        {
                            "name": f.name,
                            "column": f.column,
                            "identifier": f.is_identifier,
                            "relationship": f.is_relationship,
                        }
                        for f in e.fields
                    ],
                    "relationships": [
                        {
                            "field": r.field_name,
                            "target": r.target_entity,
                            "join_column": r.join_column,
                            "kind": r.kind,
                        }
                        for r in e.relationships
                    ],
                    "named_queries": [q.name for q in e.named_queries],
                }
                for e in found
            ],
        )))
        return

    click.echo(f"VERDICT: {len(found)} entities")
    click.echo(scanned_line(result))
    for e in found:
        click.echo()
        click.echo(f"{e.name} -> {e.table}  ({e.path})")
        rows = []
        for f in e.fields:
            flags = []
            if f.is_identifier:
                flags.append("id")
            rel = e.relationship(f.name)
            if rel is not None:
                flags.append(f"{rel.kind} {rel.target_entity}")
            rows.append([f.name, f.column, ", ".join(flags)])
        click.echo(format_table(["field", "column", "notes"], rows))
