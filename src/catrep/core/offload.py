"""Large-table offload: move partition lists out of the message body.

A `LargeTable` descriptor arrives from the export stage without partitions.
The offload stage lists the table's partitions in the source catalog, writes
them as newline-delimited JSON to the object store, and republishes the
descriptor with a pointer to that blob. Import reads the blob back with
`decode_partitions`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Protocol

from catrep.core.catalog import find_table
from catrep.core.errors import ParseError, ReplicationError, UnrecoverableError
from catrep.core.messaging import (
    ATTR_BUCKET_NAME,
    ATTR_REGION_NAME,
    InboundMessage,
    MessageType,
    message_attributes,
    messages_from_event,
    publish_message,
)
from catrep.core.models import LargeTable, Partition
from catrep.core.status import table_export_record, write_status

if TYPE_CHECKING:
    from catrep.core.context import ReplicationContext

logger = logging.getLogger(__name__)

BLOB_CONTENT_TYPE = "text/plain"


class ObjectStoreAdapter(Protocol):
    """Interface for the blob store holding offloaded partition lists."""

    def put(
        self, bucket: str, key: str, data: bytes, content_type: str = BLOB_CONTENT_TYPE
    ) -> None:
        """Write a whole object."""
        ...

    def get(self, bucket: str, key: str) -> bytes:
        """Read a whole object; raise NotFoundError if it does not exist."""
        ...


@dataclass(frozen=True)
class OffloadResult:
    """Outcome of one large-table message."""

    table: str
    database: str
    offloaded: bool
    skipped: bool = False
    bucket_name: str | None = None
    object_key: str | None = None
    partitions: int = 0


def build_object_key(large_table: LargeTable, catalog_id: str, now_ms: int) -> str:
    """Return `{yyyy-mm-dd}_{epoch ms}_{catalog}_{database}_{table}.txt`."""
    day = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
    table = large_table.table
    return f"{day}_{now_ms}_{catalog_id}_{table.database_name}_{table.name}.txt"


def encode_partitions(partitions: Iterable[Partition]) -> bytes:
    """Serialize partitions as one JSON object per line."""
    lines = [json.dumps(p.to_dict()) + "\n" for p in partitions]
    return "".join(lines).encode("utf-8")


def decode_partitions(data: bytes | str) -> list[Partition]:
    """
    Read partitions back from a newline-delimited JSON blob.

    Blank lines are ignored. A line that is not a valid partition record is
    skipped with a warning; the rest of the blob is still used.
    """
    text = data.decode("utf-8") if isinstance(data, bytes) else data
    partitions: list[Partition] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
            if not isinstance(record, dict):
                raise ParseError("Partition record must be a JSON object.")
            partitions.append(Partition.from_dict(record))
        except (ValueError, ParseError) as exc:
            logger.warning("Skipping corrupt partition record on line %d: %s", lineno, exc)
    return partitions


def offload_large_table(
    ctx: ReplicationContext, message: InboundMessage, *, run_id: int
) -> OffloadResult | None:
    """
    Offload one large-table descriptor.

    Returns None for messages that cannot be parsed. A table that no longer
    exists in the source is recorded as not exported and skipped. Otherwise
    the result's `offloaded` flag is True only if the blob was written and the
    pointer message published.
    """
    config = ctx.config
    try:
        large_table = LargeTable.from_json(message.body)
    except ParseError as exc:
        logger.warning("Message could not be parsed to a large table, skipped: %s", exc)
        return None

    table = large_table.table
    if not large_table.is_large_table:
        logger.warning(
            "Table '%s' of database '%s' is not flagged as large, skipped.",
            table.name,
            table.database_name,
        )
        return OffloadResult(table.name, table.database_name, offloaded=False, skipped=True)

    source = large_table.catalog_id or message.source_catalog_id or config.source_catalog_id
    batch_id = message.export_batch_id

    current = find_table(ctx.catalog, source, table.database_name, table.name)
    if current is None:
        logger.warning(
            "Table '%s' of database '%s' no longer exists in catalog '%s' (batch %s), not exported.",
            table.name,
            table.database_name,
            source,
            batch_id,
        )
        write_status(
            ctx.status,
            config.table_export_status_table,
            table_export_record(
                table,
                schema=large_table.to_json(),
                message_id=None,
                source_catalog_id=source,
                run_id=run_id,
                batch_id=batch_id,
                is_large_table=True,
            ),
        )
        return OffloadResult(table.name, table.database_name, offloaded=False, skipped=True)

    partitions = list(ctx.catalog.iter_partitions(source, table.database_name, table.name))
    logger.info(
        "Database: %s, Table: %s, num_partitions: %d",
        table.database_name,
        table.name,
        len(partitions),
    )

    key = build_object_key(large_table, source, ctx.now_ms())
    descriptor = LargeTable(
        table=current,
        number_of_partitions=len(partitions),
        catalog_id=source,
    )
    message_id = None
    try:
        ctx.objects.put(config.bucket_name, key, encode_partitions(partitions), BLOB_CONTENT_TYPE)
    except ReplicationError as exc:
        logger.error(
            "Could not write partitions of table '%s' of database '%s' to s3://%s/%s: %s",
            table.name,
            table.database_name,
            config.bucket_name,
            key,
            exc,
        )
    else:
        logger.info("Partition object uploaded. Object key: %s", key)
        descriptor = descriptor.with_pointer(config.bucket_name, key)
        message_id = publish_message(
            ctx.messaging,
            config.export_topic_arn,
            descriptor.to_json(),
            message_attributes(
                MessageType.LARGE_TABLE,
                source_catalog_id=source,
                export_batch_id=batch_id,
                **{ATTR_BUCKET_NAME: config.bucket_name, ATTR_REGION_NAME: config.region},
            ),
            entity=f"large table '{table.name}' of database '{table.database_name}'",
        )

    write_status(
        ctx.status,
        config.table_export_status_table,
        table_export_record(
            current,
            schema=descriptor.to_json(),
            message_id=message_id,
            source_catalog_id=source,
            run_id=run_id,
            batch_id=batch_id,
            is_large_table=True,
            bucket_name=descriptor.bucket_name if message_id else None,
            object_key=descriptor.object_key if message_id else None,
        ),
    )
    return OffloadResult(
        table=table.name,
        database=table.database_name,
        offloaded=bool(message_id),
        bucket_name=descriptor.bucket_name,
        object_key=descriptor.object_key,
        partitions=len(partitions),
    )


def handle_large_table_export_event(
    ctx: ReplicationContext, event: Mapping[str, Any]
) -> list[OffloadResult]:
    """
    Offload every large-table message of a queue batch.

    All messages are attempted first. If any table could not be offloaded the
    handler then raises, naming every failed table, so the queue redelivers.
    """
    messages = messages_from_event(event)
    logger.info("Number of messages in event: %d", len(messages))
    run_id = ctx.new_run_id()

    results: list[OffloadResult] = []
    failed: list[str] = []
    for message in messages:
        try:
            result = offload_large_table(ctx, message, run_id=run_id)
        except ReplicationError as exc:
            logger.exception("Offload of message %s failed.", message.message_id)
            failed.append(f"message {message.message_id}: {exc}")
            continue
        if result is None:
            continue
        results.append(result)
        if not result.offloaded and not result.skipped:
            failed.append(f"{result.database}.{result.table}")

    if failed:
        raise UnrecoverableError(
            f"Large table schema could not be exported, will be retried: {', '.join(failed)}"
        )
    return results
