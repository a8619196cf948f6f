"""Import reconciliation on the target catalog.

Consumes database, table and large-table messages and makes the target
catalog match them:

- databases are created if absent (an existing database is left alone);
- tables are upserted through a small state machine (`upsert_table`); a
  table whose database is missing gets the database created and is retried
  once;
- partitions are fully replaced (`reconcile_partitions`): whatever the target
  holds is deleted and the exported set is added.

Database and small-table failures go to the dead-letter queue. Large-table
failures raise so the trigger redelivers the message.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

from catrep.core.catalog import (
    CatalogAdapter,
    PartitionBatchResult,
    add_partitions,
    delete_partitions,
    find_database,
    find_table,
)
from catrep.core.errors import (
    AlreadyExistsError,
    ParentMissingError,
    ParseError,
    PartialBatchError,
    ReplicationError,
    UnrecoverableError,
)
from catrep.core.messaging import (
    InboundMessage,
    MessageType,
    decode_payload,
    message_attributes,
    messages_from_event,
    send_message,
)
from catrep.core.models import (
    Database,
    DatabaseReplicationStatus,
    LargeTable,
    Partition,
    Table,
    TableReplicationStatus,
    TableWithPartitions,
    matches_partition_keys,
)
from catrep.core.offload import decode_partitions
from catrep.core.status import database_import_record, table_import_record, write_status

if TYPE_CHECKING:
    from catrep.core.context import ReplicationContext

logger = logging.getLogger(__name__)

SELF_HEAL_DESCRIPTION = "Database imported from catalog {source_catalog_id}"


class UpsertState(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    FAILED_DB_MISSING = "failed_db_missing"
    FAILED = "failed"


@dataclass(frozen=True)
class UpsertOutcome:
    """Terminal state of one table upsert."""

    state: UpsertState
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state in (UpsertState.CREATED, UpsertState.UPDATED)


@dataclass(frozen=True)
class ReconcileResult:
    """What a partition full-replace did on the target."""

    exported: int
    existing: int
    deleted: PartitionBatchResult | None = None
    added: PartitionBatchResult | None = None
    dropped: int = 0

    @property
    def ok(self) -> bool:
        return all(r.ok for r in (self.deleted, self.added) if r is not None)

    def failed_values(self) -> list[list[str]]:
        return [
            list(err.values)
            for r in (self.deleted, self.added)
            if r is not None
            for err in r.errors
        ]


def upsert_table(
    catalog: CatalogAdapter, catalog_id: str, table: Table, *, skip_archive: bool
) -> UpsertOutcome:
    """
    Create the table if it is missing, update it otherwise.

    A create that loses a race with another writer falls through to an update.
    Missing-database failures are reported as FAILED_DB_MISSING so the caller
    can create the database and retry.
    """
    try:
        existing = find_table(catalog, catalog_id, table.database_name, table.name)
        if existing is None:
            try:
                catalog.create_table(catalog_id, table)
                logger.info(
                    "Table '%s' created in database '%s'.", table.name, table.database_name
                )
                return UpsertOutcome(UpsertState.CREATED)
            except AlreadyExistsError:
                logger.info(
                    "Table '%s' of database '%s' appeared concurrently, updating it.",
                    table.name,
                    table.database_name,
                )
        catalog.update_table(catalog_id, table, skip_archive=skip_archive)
        logger.info("Table '%s' updated in database '%s'.", table.name, table.database_name)
        return UpsertOutcome(UpsertState.UPDATED)
    except ParentMissingError as exc:
        logger.warning(
            "Table '%s' cannot be replicated, database '%s' does not exist in catalog '%s'.",
            table.name,
            table.database_name,
            catalog_id,
        )
        return UpsertOutcome(UpsertState.FAILED_DB_MISSING, str(exc))
    except ReplicationError as exc:
        logger.error(
            "Table '%s' of database '%s' could not be created or updated: %s",
            table.name,
            table.database_name,
            exc,
        )
        return UpsertOutcome(UpsertState.FAILED, str(exc))


def _valid_partitions(table: Table, partitions: Iterable[Partition]) -> tuple[list[Partition], int]:
    valid: list[Partition] = []
    dropped = 0
    for partition in partitions:
        if matches_partition_keys(table, partition):
            valid.append(partition)
            continue
        dropped += 1
        logger.warning(
            "Dropping partition %s of table '%s' of database '%s': %d values for %d partition keys.",
            list(partition.values),
            table.name,
            table.database_name,
            len(partition.values),
            len(table.partition_keys),
        )
    return valid, dropped


def reconcile_partitions(
    catalog: CatalogAdapter,
    catalog_id: str,
    table: Table,
    partitions: Sequence[Partition],
) -> ReconcileResult:
    """
    Replace the target's partitions of `table` with `partitions`.

    Existing partitions are deleted first, then the exported ones are added.
    If the delete fails the add is not attempted; the caller retries the whole
    replace, which converges on the exported set. Nothing is rolled back.
    """
    exported, dropped = _valid_partitions(table, partitions)
    existing = list(catalog.iter_partitions(catalog_id, table.database_name, table.name))
    logger.info(
        "Table '%s' of database '%s': %d exported partitions, %d in target before replication.",
        table.name,
        table.database_name,
        len(exported),
        len(existing),
    )

    deleted = added = None
    if existing:
        deleted = delete_partitions(
            catalog, catalog_id, table.database_name, table.name, existing
        )
        if not deleted.ok:
            logger.error(
                "Existing partitions of table '%s' of database '%s' could not all be deleted; "
                "exported partitions were not added.",
                table.name,
                table.database_name,
            )
            return ReconcileResult(len(exported), len(existing), deleted=deleted, dropped=dropped)
    if exported:
        added = add_partitions(catalog, catalog_id, table.database_name, table.name, exported)
    return ReconcileResult(
        len(exported), len(existing), deleted=deleted, added=added, dropped=dropped
    )


def _create_missing_database(ctx: ReplicationContext, name: str, source: str) -> bool:
    database = Database(
        name=name, description=SELF_HEAL_DESCRIPTION.format(source_catalog_id=source)
    )
    try:
        ctx.catalog.create_database(ctx.config.target_catalog_id, database)
    except AlreadyExistsError:
        logger.info("Database '%s' was created concurrently.", name)
    except ReplicationError as exc:
        logger.error("Database '%s' could not be created: %s", name, exc)
        return False
    else:
        logger.info("Database '%s' created in target catalog.", name)
    return True


def _replicate_table(
    ctx: ReplicationContext,
    table: Table,
    partitions: Sequence[Partition],
    *,
    schema: str,
    source: str,
) -> tuple[TableReplicationStatus, ReconcileResult | None]:
    config = ctx.config
    target = config.target_catalog_id
    status = TableReplicationStatus(
        database_name=table.database_name,
        table_name=table.name,
        table_schema=schema,
        export_has_partitions=bool(partitions),
    )

    outcome = upsert_table(ctx.catalog, target, table, skip_archive=config.skip_archive)
    if outcome.state is UpsertState.FAILED_DB_MISSING:
        logger.info("Creating database '%s' and retrying table '%s'.", table.database_name, table.name)
        if _create_missing_database(ctx, table.database_name, source):
            outcome = upsert_table(ctx.catalog, target, table, skip_archive=config.skip_archive)

    status.created = outcome.state is UpsertState.CREATED
    status.updated = outcome.state is UpsertState.UPDATED
    status.replicated = outcome.succeeded
    status.error = not outcome.succeeded
    status.db_not_found_error = outcome.state is UpsertState.FAILED_DB_MISSING

    result = None
    if outcome.succeeded:
        try:
            result = reconcile_partitions(ctx.catalog, target, table, partitions)
        except ReplicationError as exc:
            logger.error(
                "Partitions of table '%s' of database '%s' could not be listed in target: %s",
                table.name,
                table.database_name,
                exc,
            )
        else:
            status.partitions_replicated = result.ok and result.dropped == 0

    status.replication_time = ctx.now_ms()
    logger.info(
        "Processing of table '%s' of database '%s' completed. Table replicated: %s, "
        "export has partitions: %s, partitions replicated: %s, error: %s.",
        table.name,
        table.database_name,
        status.replicated,
        status.export_has_partitions,
        status.partitions_replicated,
        status.error,
    )
    return status, result


def _write_table_status(
    ctx: ReplicationContext,
    status: TableReplicationStatus,
    *,
    source: str,
    run_id: int,
    batch_id: str,
) -> None:
    write_status(
        ctx.status,
        ctx.config.table_import_status_table,
        table_import_record(
            status,
            source_catalog_id=source,
            target_catalog_id=ctx.config.target_catalog_id,
            run_id=run_id,
            batch_id=batch_id,
        ),
    )


def _dead_letter(
    ctx: ReplicationContext,
    message_type: MessageType,
    body: str,
    *,
    source: str,
    batch_id: str,
    entity: str,
) -> bool:
    logger.warning("Sending %s to the dead-letter queue (batch %s).", entity, batch_id)
    return send_message(
        ctx.messaging,
        ctx.config.dead_letter_queue_url,
        body,
        message_attributes(message_type, source_catalog_id=source, export_batch_id=batch_id),
        entity=entity,
    )


def import_database(
    ctx: ReplicationContext,
    database: Database,
    *,
    body: str,
    source: str,
    run_id: int,
    batch_id: str,
) -> DatabaseReplicationStatus:
    """Create the database in the target unless it already exists."""
    target = ctx.config.target_catalog_id
    status = DatabaseReplicationStatus(database_name=database.name)
    try:
        existing = find_database(ctx.catalog, target, database.name)
        if existing is not None:
            logger.info(
                "Database '%s' exists already in target catalog. No action will be taken.",
                database.name,
            )
        else:
            ctx.catalog.create_database(target, database)
            status.created = True
            logger.info("Database '%s' created in target catalog.", database.name)
    except AlreadyExistsError:
        logger.info("Database '%s' was created concurrently.", database.name)
    except ReplicationError as exc:
        logger.error(
            "Database '%s' could not be created in catalog '%s' (batch %s): %s",
            database.name,
            target,
            batch_id,
            exc,
        )
        status.error = True
        _dead_letter(
            ctx,
            MessageType.DATABASE,
            body,
            source=source,
            batch_id=batch_id,
            entity=f"database '{database.name}'",
        )

    status.replication_time = ctx.now_ms()
    write_status(
        ctx.status,
        ctx.config.db_import_status_table,
        database_import_record(
            status,
            source_catalog_id=source,
            target_catalog_id=target,
            run_id=run_id,
            batch_id=batch_id,
        ),
    )
    return status


def import_table(
    ctx: ReplicationContext,
    payload: TableWithPartitions,
    *,
    body: str,
    source: str,
    run_id: int,
    batch_id: str,
) -> TableReplicationStatus:
    """
    Replicate a small table and its inline partitions.

    A failed upsert or partition replace sends the original payload to the
    dead-letter queue. Exactly one status record is written either way.
    """
    table = payload.table
    status, _ = _replicate_table(
        ctx, table, payload.partitions, schema=body, source=source
    )
    if status.error or not status.partitions_replicated:
        _dead_letter(
            ctx,
            MessageType.TABLE,
            body,
            source=source,
            batch_id=batch_id,
            entity=f"table '{table.name}' of database '{table.database_name}'",
        )
    _write_table_status(ctx, status, source=source, run_id=run_id, batch_id=batch_id)
    return status


def import_large_table(
    ctx: ReplicationContext,
    large_table: LargeTable,
    *,
    body: str,
    source: str,
    run_id: int,
    batch_id: str,
) -> TableReplicationStatus:
    """
    Replicate a large table whose partitions live in the object store.

    The status record is written before any failure is raised.

    Raises:
        UnrecoverableError: the descriptor has no blob pointer, the blob
            cannot be read, or the table upsert failed.
        PartialBatchError: the partition replace did not fully succeed.
    """
    table = large_table.table
    if not large_table.is_offloaded:
        raise UnrecoverableError(
            f"Large table '{table.name}' of database '{table.database_name}' has no blob pointer."
        )
    try:
        data = ctx.objects.get(large_table.bucket_name, large_table.object_key)
    except ReplicationError as exc:
        raise UnrecoverableError(
            f"Partitions of table '{table.name}' of database '{table.database_name}' could not "
            f"be read from s3://{large_table.bucket_name}/{large_table.object_key}: {exc}"
        ) from exc
    partitions = decode_partitions(data)
    logger.info(
        "Read %d partitions of table '%s' (%d exported) from s3://%s/%s.",
        len(partitions),
        table.name,
        large_table.number_of_partitions,
        large_table.bucket_name,
        large_table.object_key,
    )

    status, result = _replicate_table(ctx, table, partitions, schema=body, source=source)
    _write_table_status(ctx, status, source=source, run_id=run_id, batch_id=batch_id)

    if status.error:
        raise UnrecoverableError(
            f"Table '{table.name}' of database '{table.database_name}' could not be created or updated."
        )
    if not status.partitions_replicated:
        raise PartialBatchError(
            f"Partitions of table '{table.name}' of database '{table.database_name}' "
            "were not fully replicated.",
            failed_values=result.failed_values() if result is not None else None,
        )
    return status


def _forward_large_table(ctx: ReplicationContext, message: InboundMessage) -> bool:
    attributes = {
        name: value for name, value in message.attributes.items() if value
    }
    return send_message(
        ctx.messaging,
        ctx.config.large_table_import_queue_url,
        message.body,
        attributes,
        entity=f"large table message {message.message_id}",
    )


def _import_message(
    ctx: ReplicationContext,
    message: InboundMessage,
    *,
    run_id: int,
    forward_large_tables: bool,
) -> DatabaseReplicationStatus | TableReplicationStatus | None:
    """Dispatch one message on its `message_type`."""
    kind = message.message_type
    try:
        payload: Any = decode_payload(message)
    except ParseError as exc:
        logger.warning("Message %s could not be parsed, skipped: %s", message.message_id, exc)
        return None

    source = message.source_catalog_id or ctx.config.source_catalog_id
    batch_id = message.export_batch_id
    common = dict(body=message.body, source=source, run_id=run_id, batch_id=batch_id)

    if kind is MessageType.DATABASE:
        return import_database(ctx, payload, **common)
    if kind is MessageType.TABLE:
        return import_table(ctx, payload, **common)
    if forward_large_tables and ctx.config.large_table_import_queue_url:
        if not _forward_large_table(ctx, message):
            raise UnrecoverableError(
                f"Large table message {message.message_id} could not be forwarded."
            )
        return None
    return import_large_table(ctx, payload, **common)


def _import_messages(
    ctx: ReplicationContext,
    messages: Sequence[InboundMessage],
    *,
    forward_large_tables: bool,
) -> list[DatabaseReplicationStatus | TableReplicationStatus]:
    logger.info("Number of messages in event: %d", len(messages))
    run_id = ctx.new_run_id()
    statuses: list[DatabaseReplicationStatus | TableReplicationStatus] = []
    failures: list[str] = []
    for message in messages:
        try:
            status = _import_message(
                ctx, message, run_id=run_id, forward_large_tables=forward_large_tables
            )
        except ReplicationError as exc:
            logger.error(
                "Import of message %s failed (batch %s): %s",
                message.message_id,
                message.export_batch_id,
                exc,
            )
            failures.append(str(exc))
            continue
        if status is not None:
            statuses.append(status)

    if failures:
        raise UnrecoverableError(
            f"{len(failures)} message(s) could not be imported, will be retried: {failures}"
        )
    return statuses


def handle_import_event(
    ctx: ReplicationContext, event: Mapping[str, Any]
) -> list[DatabaseReplicationStatus | TableReplicationStatus]:
    """
    Import every message of a topic batch.

    Large-table messages are forwarded to the large-table import queue when
    one is configured, and reconciled inline otherwise.
    """
    return _import_messages(ctx, messages_from_event(event), forward_large_tables=True)


def handle_large_table_import_event(
    ctx: ReplicationContext, event: Mapping[str, Any]
) -> list[DatabaseReplicationStatus | TableReplicationStatus]:
    """Reconcile every message of a large-table import queue batch inline."""
    return _import_messages(ctx, messages_from_event(event), forward_large_tables=False)


def handle_dead_letter_event(
    ctx: ReplicationContext, event: Mapping[str, Any]
) -> list[DatabaseReplicationStatus | TableReplicationStatus]:
    """
    Redrive messages from the dead-letter queue.

    The same import logic runs again; a message that fails again is sent back
    to the dead-letter queue.
    """
    return _import_messages(ctx, messages_from_event(event), forward_large_tables=False)
