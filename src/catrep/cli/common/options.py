"""Common CLI options for the CLI."""

import typer

ProfileOpt = typer.Option(
    None,
    "--profile",
    "-p",
    help="AWS profile (from ~/.aws/config)",
)

RegionOpt = typer.Option(
    None,
    "--region",
    "-r",
    help="AWS region (overrides the `region` environment variable)",
)

VerboseOpt = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Log at DEBUG level",
)

PrefixOpt = typer.Option(
    [],
    "--prefix",
    help="Database name prefix to export. This is reusable.",
    show_default=False,
)

DryRunOpt = typer.Option(
    False,
    "--dry-run",
    help="Show which databases would be exported, but don't publish anything",
)
