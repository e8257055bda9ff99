from filetrack.cli import cli

cli()
