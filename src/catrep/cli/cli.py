"""CLI application for catalog metadata replication."""

import typer

from catrep.cli.commands.replication import config, invoke, plan
from catrep.cli.common.context import build_app_context
from catrep.cli.common.options import ProfileOpt, RegionOpt, VerboseOpt
from catrep.cli.common.output import setup_logging

app = typer.Typer(
    help="catrep - replicate catalog databases, tables and partitions",
    no_args_is_help=True,
)


@app.callback()
def _init(
    ctx: typer.Context,
    profile: str | None = ProfileOpt,
    region: str | None = RegionOpt,
    verbose: bool = VerboseOpt,
):
    """Initialize logging and the shared context once per invocation."""
    ctx.obj = build_app_context(profile, region)
    setup_logging(verbose, ctx.obj.config.log_level)


app.command(help="Publish one export message per source database.")(plan)
app.command(help="Run one stage against a saved Lambda event.")(invoke)
app.command(help="Show the effective configuration.")(config)


if __name__ == "__main__":
    app()
