"""Audit records for every processed message.

Each record is keyed by entity identity plus the run id of the invocation
that wrote it, so a redelivered message produces a new record next to the
old one instead of overwriting it. Records are never updated or deleted here.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Protocol, Sequence

from catrep.core.batching import chunked
from catrep.core.errors import ReplicationError
from catrep.core.models import DatabaseReplicationStatus, Table, TableReplicationStatus

logger = logging.getLogger(__name__)

MAX_RECORDS_PER_BATCH = 25
_BACKOFF_SECONDS = 0.05
_MAX_BACKOFF_SECONDS = 1.0

Record = Mapping[str, Any]


class StatusStoreAdapter(Protocol):
    """Interface for the status table store."""

    def put_record(self, table_name: str, record: Record) -> None:
        """Write a single record."""
        ...

    def batch_put(self, table_name: str, records: Sequence[Record]) -> list[Record]:
        """Write up to MAX_RECORDS_PER_BATCH records; return the unprocessed ones."""
        ...


def write_status(store: StatusStoreAdapter, table_name: str, record: Record) -> bool:
    """Write one status record. Failures are logged, never raised."""
    try:
        store.put_record(table_name, record)
    except ReplicationError as exc:
        logger.error("Could not write status record to '%s': %s", table_name, exc)
        return False
    return True


def write_statuses(
    store: StatusStoreAdapter,
    table_name: str,
    records: Sequence[Record],
    *,
    sleep=time.sleep,
) -> int:
    """
    Bulk-write records in chunks of MAX_RECORDS_PER_BATCH.

    Each chunk is resubmitted with whatever the store reports as unprocessed
    until nothing is left. Returns the number of records written.
    """
    if not records:
        return 0

    logger.info("Writing %d status records to '%s'.", len(records), table_name)
    written = 0
    for chunk in chunked(records, MAX_RECORDS_PER_BATCH):
        pending: Sequence[Record] = chunk
        attempt = 0
        while pending:
            try:
                unprocessed = store.batch_put(table_name, pending)
            except ReplicationError as exc:
                logger.error(
                    "Batch write of %d status records to '%s' failed: %s",
                    len(pending),
                    table_name,
                    exc,
                )
                break
            written += len(pending) - len(unprocessed)
            pending = unprocessed
            if pending:
                attempt += 1
                logger.debug(
                    "%d status records unprocessed, retrying (attempt %d).",
                    len(pending),
                    attempt,
                )
                sleep(min(_BACKOFF_SECONDS * 2 ** (attempt - 1), _MAX_BACKOFF_SECONDS))
    return written


def database_export_record(
    database_name: str,
    *,
    schema: str,
    message_id: str | None,
    source_catalog_id: str,
    run_id: int,
    batch_id: str,
) -> dict[str, Any]:
    return {
        "db_id": database_name,
        "export_run_id": run_id,
        "export_batch_id": batch_id,
        "source_catalog_id": source_catalog_id,
        "database_schema": schema,
        "message_id": message_id or "",
        "is_exported": bool(message_id),
    }


def table_export_record(
    table: Table,
    *,
    schema: str,
    message_id: str | None,
    source_catalog_id: str,
    run_id: int,
    batch_id: str,
    is_large_table: bool = False,
    bucket_name: str | None = None,
    object_key: str | None = None,
) -> dict[str, Any]:
    record: dict[str, Any] = {
        "table_id": table.table_id,
        "export_run_id": run_id,
        "export_batch_id": batch_id,
        "source_catalog_id": source_catalog_id,
        "table_schema": schema,
        "message_id": message_id or "",
        "is_exported": bool(message_id),
        "is_large_table": is_large_table,
    }
    if bucket_name and object_key:
        record["bucket_name"] = bucket_name
        record["object_key"] = object_key
    return record


def database_import_record(
    status: DatabaseReplicationStatus,
    *,
    source_catalog_id: str,
    target_catalog_id: str,
    run_id: int,
    batch_id: str,
) -> dict[str, Any]:
    return {
        "db_id": status.database_name,
        "import_run_id": run_id,
        "export_batch_id": batch_id,
        "source_catalog_id": source_catalog_id,
        "target_catalog_id": target_catalog_id,
        "is_created": status.created,
        "error": status.error,
        "replication_time": status.replication_time,
    }


def table_import_record(
    status: TableReplicationStatus,
    *,
    source_catalog_id: str,
    target_catalog_id: str,
    run_id: int,
    batch_id: str,
) -> dict[str, Any]:
    return {
        "table_id": f"{status.table_name}|{status.database_name}",
        "import_run_id": run_id,
        "export_batch_id": batch_id,
        "table_name": status.table_name,
        "database_name": status.database_name,
        "table_schema": status.table_schema,
        "source_catalog_id": source_catalog_id,
        "target_catalog_id": target_catalog_id,
        "table_created": status.created,
        "table_updated": status.updated,
        "table_replicated": status.replicated,
        "export_has_partitions": status.export_has_partitions,
        "partitions_replicated": status.partitions_replicated,
        "error": status.error,
        "db_not_found_error": status.db_not_found_error,
        "replication_time": status.replication_time,
    }
