"""Manage per-project idxprobe configuration (.idxprobe/config.json)."""

from __future__ import annotations

import click

from idxprobe.config import (
    find_project_root,
    load_project_config,
    load_settings,
    write_project_config,
)
from idxprobe.output.formatter import json_envelope, to_json


@click.command("config")
@click.option("--source-dir", "source_dirs", multiple=True, help="Save Java source directories.")
@click.option("--migrations-dir", "migration_dirs", multiple=True, help="Save migration directories.")
@click.option("--migration-order", type=click.Choice(["lexical", "natural"]), default=None,
              help="Save the migration ordering mode.")
@click.option("--workers", type=int, default=None, help="Save the parser worker count.")
@click.option("--fail-threshold", type=int, default=None,
              help="Save the finding count above which missing-index exits 5.")
@click.option("--show", is_flag=True, help="Print the effective configuration.")
@click.pass_context
def config(ctx, source_dirs, migration_dirs, migration_order, workers, fail_threshold, show):
    """Show or update .idxprobe/config.json.

    \b
      idxprobe config --migrations-dir src/main/resources/db/migration
      idxprobe config --fail-threshold 0 --workers 8
      idxprobe config --show

    Environment variables IDXPROBE_WORKERS and IDXPROBE_FAIL_THRESHOLD
    override the file; command-line options override both.
    """
    json_mode = ctx.obj.get("json") if ctx.obj else False
    root = find_project_root()

    updates = {}
    if source_dirs:
        updates["source_dirs"] = list(source_dirs)
    if migration_dirs:
        updates["migration_dirs"] = list(migration_dirs)
    if migration_order is not None:
        updates["migration_order"] = migration_order
    if workers is not None:
        updates["workers"] = workers
    if fail_threshold is not None:
        updates["fail_threshold"] = fail_threshold

    if updates:
        config_path = write_project_config(updates, root)
        if json_mode:
            click.echo(to_json(json_envelope(
                "config",
                summary={"verdict": "saved", "keys": sorted(updates)},
                config_path=str(config_path),
                **updates,
            )))
            return
        click.echo("Saved settings:")
        for k, v in updates.items():
            click.echo(f"  {k} = {v!r}")
        click.echo(f"Config written to {config_path}")
        if not show:
            return

    effective = load_settings(root)
    if json_mode:
        click.echo(to_json(json_envelope(
            "config",
            summary={"verdict": "effective configuration"},
            project_root=str(root),
            file=load_project_config(root),
            effective=effective,
        )))
        return
    click.echo(f"Project root: {root}")
    for key in sorted(effective):
        if key == "project_root":
            continue
        click.echo(f"  {key} = {effective[key]!r}")
