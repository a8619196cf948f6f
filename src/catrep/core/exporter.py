"""Export processing: turn one database message into table messages.

For every inbound `database` message the exporter re-checks the database in
the source catalog, republishes it, and then walks its tables. Tables with at
most `partition_threshold` partitions travel inline on the export topic;
larger ones are described by a `LargeTable` and queued for offload so the
topic never carries an oversized payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping

from catrep.core.catalog import find_database
from catrep.core.errors import ParseError, ReplicationError, UnrecoverableError
from catrep.core.messaging import (
    InboundMessage,
    MessageType,
    message_attributes,
    messages_from_event,
    publish_message,
    send_message,
)
from catrep.core.models import Database, LargeTable, Table, TableWithPartitions
from catrep.core.status import (
    database_export_record,
    table_export_record,
    write_status,
    write_statuses,
)

if TYPE_CHECKING:
    from catrep.core.context import ReplicationContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseExportResult:
    """Outcome of exporting one database and its tables."""

    database: str
    exported: bool
    tables_found: int = 0
    tables_published: int = 0
    large_tables_queued: int = 0


def is_small_table(partition_count: int, threshold: int) -> bool:
    """Tables at or under the threshold travel inline."""
    return partition_count <= threshold


def _export_table(
    ctx: ReplicationContext,
    table: Table,
    *,
    source: str,
    run_id: int,
    batch_id: str,
    records: list[dict[str, Any]],
) -> str:
    """Export one table; return "published", "queued" or "failed"."""
    config = ctx.config
    partitions = tuple(
        ctx.catalog.iter_partitions(source, table.database_name, table.name)
    )
    logger.info(
        "Database: %s, Table: %s, num_partitions: %d",
        table.database_name,
        table.name,
        len(partitions),
    )

    if is_small_table(len(partitions), config.partition_threshold):
        body = TableWithPartitions(table=table, partitions=partitions).to_json()
        message_id = publish_message(
            ctx.messaging,
            config.export_topic_arn,
            body,
            message_attributes(
                MessageType.TABLE, source_catalog_id=source, export_batch_id=batch_id
            ),
            entity=f"table '{table.name}' of database '{table.database_name}'",
        )
        records.append(
            table_export_record(
                table,
                schema=body,
                message_id=message_id,
                source_catalog_id=source,
                run_id=run_id,
                batch_id=batch_id,
            )
        )
        return "published" if message_id else "failed"

    large_table = LargeTable(
        table=table, number_of_partitions=len(partitions), catalog_id=source
    )
    sent = send_message(
        ctx.messaging,
        config.large_table_queue_url,
        large_table.to_json(),
        message_attributes(
            MessageType.LARGE_TABLE, source_catalog_id=source, export_batch_id=batch_id
        ),
        entity=f"large table '{table.name}' of database '{table.database_name}'",
    )
    if sent:
        return "queued"
    records.append(
        table_export_record(
            table,
            schema=large_table.to_json(),
            message_id=None,
            source_catalog_id=source,
            run_id=run_id,
            batch_id=batch_id,
            is_large_table=True,
        )
    )
    return "failed"


def export_database(
    ctx: ReplicationContext, message: InboundMessage, *, run_id: int
) -> DatabaseExportResult | None:
    """
    Export one database message.

    Returns None when the message is skipped: its payload cannot be parsed, or
    the database no longer exists in the source catalog. Neither case writes a
    status record.
    """
    config = ctx.config
    try:
        if message.message_type is not MessageType.DATABASE:
            raise ParseError(f"Expected a database message, got {message.message_type.value!r}.")
        requested = Database.from_json(message.body)
    except ParseError as exc:
        logger.warning("Message could not be parsed to a database, skipped: %s", exc)
        return None

    source = config.source_catalog_id or message.source_catalog_id
    batch_id = message.export_batch_id
    database = find_database(ctx.catalog, source, requested.name)
    if database is None:
        logger.warning(
            "There is no database '%s' in catalog '%s' (batch %s). Tables cannot be retrieved.",
            requested.name,
            source,
            batch_id,
        )
        return None

    body = database.to_json()
    message_id = publish_message(
        ctx.messaging,
        config.export_topic_arn,
        body,
        message_attributes(
            MessageType.DATABASE, source_catalog_id=source, export_batch_id=batch_id
        ),
        entity=f"database '{database.name}'",
    )
    write_status(
        ctx.status,
        config.db_export_status_table,
        database_export_record(
            database.name,
            schema=body,
            message_id=message_id,
            source_catalog_id=source,
            run_id=run_id,
            batch_id=batch_id,
        ),
    )

    records: list[dict[str, Any]] = []
    outcomes = {"published": 0, "queued": 0, "failed": 0}
    tables_found = 0
    try:
        for table in ctx.catalog.iter_tables(source, database.name):
            tables_found += 1
            outcome = _export_table(
                ctx, table, source=source, run_id=run_id, batch_id=batch_id, records=records
            )
            outcomes[outcome] += 1
    finally:
        # tables exported before a catalog failure keep their records
        write_statuses(ctx.status, config.table_export_status_table, records)
    logger.info(
        "Table export statistics for database '%s': tables = %d, published = %d, "
        "queued as large = %d, failed = %d.",
        database.name,
        tables_found,
        outcomes["published"],
        outcomes["queued"],
        outcomes["failed"],
    )
    return DatabaseExportResult(
        database=database.name,
        exported=bool(message_id),
        tables_found=tables_found,
        tables_published=outcomes["published"],
        large_tables_queued=outcomes["queued"],
    )


def handle_export_event(
    ctx: ReplicationContext, event: Mapping[str, Any]
) -> list[DatabaseExportResult]:
    """
    Process every database message of a trigger batch.

    A catalog failure on one message does not stop its siblings. Once the
    whole batch has been attempted, any such failure is raised so the trigger
    redelivers the batch.
    """
    messages = messages_from_event(event)
    logger.info("Number of messages in event: %d", len(messages))
    run_id = ctx.new_run_id()

    results: list[DatabaseExportResult] = []
    failures: list[str] = []
    for message in messages:
        try:
            result = export_database(ctx, message, run_id=run_id)
        except ReplicationError as exc:
            logger.exception(
                "Export of message %s failed (batch %s).",
                message.message_id,
                message.export_batch_id,
            )
            failures.append(str(exc))
            continue
        if result is not None:
            results.append(result)

    if failures:
        raise UnrecoverableError(
            f"{len(failures)} database message(s) could not be exported: {failures}"
        )
    return results
