from frigo.cli import cli

cli()
