"""Click CLI entry point with lazy-loaded subcommands."""

import logging
import os
import sys

# Fix Unicode output on Windows consoles (cp1253, cp1252, etc.)
if sys.platform == "win32" and not os.environ.get("PYTHONIOENCODING"):
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

import click

from idxprobe.exit_codes import DESCRIPTIONS


# Lazy-loading command group: imports command modules only when invoked.
# This keeps tree-sitter out of `idxprobe --help` and `idxprobe config`.
_COMMANDS = {
    "missing-index": ("idxprobe.commands.cmd_missing_index", "missing_index"),
    "entities":      ("idxprobe.commands.cmd_entities",      "entities"),
    "indexes":       ("idxprobe.commands.cmd_indexes",       "indexes"),
    "queries":       ("idxprobe.commands.cmd_queries",       "queries"),
    "config":        ("idxprobe.commands.cmd_config",        "config"),
}


class LazyGroup(click.Group):
    """A Click group that lazy-loads command modules on first access."""

    def list_commands(self, ctx):
        return sorted(_COMMANDS.keys())

    def get_command(self, ctx, cmd_name):
        if cmd_name not in _COMMANDS:
            return None
        module_path, attr_name = _COMMANDS[cmd_name]
        import importlib
        mod = importlib.import_module(module_path)
        return getattr(mod, attr_name)


class _StderrHandler(logging.StreamHandler):
    """Writes to whatever sys.stderr is at emit time."""

    @property
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, value):
        pass


def _configure_logging(verbose: bool) -> None:
    log = logging.getLogger("idxprobe")
    if not any(isinstance(h, _StderrHandler) for h in log.handlers):
        handler = _StderrHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        log.addHandler(handler)
    log.setLevel(logging.DEBUG if verbose else logging.WARNING)


_EPILOG = "\b\nExit codes:\n" + "\n".join(
    f"  {code}  {text}" for code, text in sorted(DESCRIPTIONS.items())
)


@click.group(cls=LazyGroup, epilog=_EPILOG)
@click.version_option(package_name="idxprobe")
@click.option('--json', 'json_mode', is_flag=True, help='Output in JSON format')
@click.option('-v', '--verbose', is_flag=True, help='Log parse skips and resolution details to stderr')
@click.pass_context
def cli(ctx, json_mode, verbose):
    """idxprobe: find query columns that no index covers."""
    ctx.ensure_object(dict)
    ctx.obj['json'] = json_mode
    ctx.obj['verbose'] = verbose
    _configure_logging(verbose)
