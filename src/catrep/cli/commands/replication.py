"""Commands for running replication stages locally."""

import json
from pathlib import Path

import typer

from catrep.cli.common.context import AppContext
from catrep.cli.common.exits import die, exit_from_exc, warn_exit
from catrep.cli.common.options import DryRunOpt, PrefixOpt
from catrep.cli.common.output import out
from catrep.core.errors import ReplicationError
from catrep.core.exporter import DatabaseExportResult
from catrep.core.models import DatabaseReplicationStatus, TableReplicationStatus
from catrep.core.offload import OffloadResult
from catrep.core.planner import filter_databases, plan_export, tokenize_prefixes
from catrep.handlers import STAGES

StageArg = typer.Argument(..., help=f"Stage to run: {', '.join(STAGES)}")
EventFileArg = typer.Argument(
    ..., exists=True, dir_okay=False, readable=True, help="Lambda event JSON file"
)


def _result_row(result) -> tuple[str, str, bool, str]:
    """Describe one stage result as a (kind, entity, ok, detail) row."""
    if isinstance(result, TableReplicationStatus):
        if result.created:
            detail = "created"
        elif result.updated:
            detail = "updated"
        else:
            detail = "db missing" if result.db_not_found_error else "not replicated"
        ok = result.replicated and result.partitions_replicated
        return "table", f"{result.database_name}.{result.table_name}", ok, detail
    if isinstance(result, DatabaseReplicationStatus):
        detail = "created" if result.created else "exists"
        return "database", result.database_name, not result.error, detail
    if isinstance(result, DatabaseExportResult):
        detail = (
            f"{result.tables_found} tables, {result.tables_published} published, "
            f"{result.large_tables_queued} queued as large"
        )
        return "database", result.database, result.exported, detail
    if isinstance(result, OffloadResult):
        detail = "skipped" if result.skipped else f"s3://{result.bucket_name}/{result.object_key}"
        return (
            "large table",
            f"{result.database}.{result.table}",
            result.offloaded or result.skipped,
            detail,
        )
    return type(result).__name__, str(result), True, ""


def plan(
    ctx: typer.Context,
    prefix: list[str] = PrefixOpt,
    dry_run: bool = DryRunOpt,
):
    """
    Publish one export message per source database.
    """
    appctx: AppContext = ctx.obj
    replication = appctx.replication()
    config = replication.config
    prefixes = prefix or tokenize_prefixes(config.database_prefixes, config.prefix_separator)

    if dry_run:
        try:
            with out.status("Loading databases..."):
                databases = filter_databases(
                    replication.catalog.iter_databases(config.source_catalog_id), prefixes
                )
        except ReplicationError as exc:
            exit_from_exc(exc, message=f"Could not list databases: {exc}")
        if not databases:
            warn_exit("No databases match", code=0)
        out.databases_table(databases, title="Databases to export")
        warn_exit("Dry-run enabled: nothing was published", code=0)

    if not config.export_topic_arn:
        die("No export topic configured (set sns_topic_arn_export_dbs_tables).", code=2)

    try:
        with out.status("Publishing databases..."):
            result = plan_export(replication, prefixes)
    except ReplicationError as exc:
        exit_from_exc(exc, message=f"Planning failed: {exc}")

    out.kv(
        {
            "export batch id": result.export_batch_id,
            "databases found": result.total_found,
            "databases selected": result.selected,
            "databases published": result.total_published,
        }
    )
    if result.total_published < result.selected:
        warn_exit(
            f"{result.selected - result.total_published} database(s) could not be published",
            code=1,
        )
    out.success(f"Published {result.total_published} database(s)")


def invoke(
    ctx: typer.Context,
    stage: str = StageArg,
    event_file: Path = EventFileArg,
):
    """
    Run one stage against a saved Lambda event (SNS or SQS).
    """
    appctx: AppContext = ctx.obj
    if stage not in STAGES:
        die(f"Unknown stage '{stage}'. Choose one of: {', '.join(STAGES)}", code=2)

    try:
        event = json.loads(event_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        exit_from_exc(exc, message=f"Could not read event file: {exc}", code=2)
    if not isinstance(event, dict):
        die("Event file must contain a JSON object.", code=2)

    replication = appctx.replication()
    try:
        with out.status(f"Running stage '{stage}'..."):
            results = STAGES[stage](replication, event)
    except ReplicationError as exc:
        exit_from_exc(exc, message=f"Stage '{stage}' failed: {exc}")

    if not results:
        warn_exit("Nothing was processed", code=0)

    rows = [_result_row(r) for r in results]
    out.results_table(rows, title=f"Stage '{stage}'")
    if not all(ok for _, _, ok, _ in rows):
        raise typer.Exit(1)


def config(ctx: typer.Context):
    """
    Show the effective configuration.
    """
    appctx: AppContext = ctx.obj
    out.header("Configuration")
    out.kv(appctx.config.as_dict())
