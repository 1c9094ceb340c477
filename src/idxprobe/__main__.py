from idxprobe.cli import cli

cli()
