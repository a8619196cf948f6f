"""Catalog access used by the replication stages.

`CatalogAdapter` is the port every stage talks to; the Glue implementation
lives in `catrep.core.adapters.glue`. This module adds the logic that sits on
top of single provider calls: optional lookups and partition batch writes
chunked to the provider's limits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Protocol, Sequence

from catrep.core.batching import chunked
from catrep.core.errors import NotFoundError, UnrecoverableError
from catrep.core.models import Database, Partition, Table

logger = logging.getLogger(__name__)

MAX_PARTITIONS_PER_CREATE = 100
MAX_PARTITIONS_PER_DELETE = 25


@dataclass(frozen=True)
class PartitionError:
    """Per-item failure reported by a batch partition call."""

    values: tuple[str, ...]
    message: str


class CatalogAdapter(Protocol):
    """Interface for the metadata catalog operations used by the engine."""

    def iter_databases(self, catalog_id: str) -> Iterator[Database]:
        """Yield every database in the catalog, following pagination."""
        ...

    def get_database(self, catalog_id: str, name: str) -> Database:
        """Return a database or raise NotFoundError."""
        ...

    def create_database(self, catalog_id: str, database: Database) -> None:
        """Create a database; raise AlreadyExistsError if it is already there."""
        ...

    def iter_tables(self, catalog_id: str, database_name: str) -> Iterator[Table]:
        """Yield every table in a database, following pagination."""
        ...

    def get_table(self, catalog_id: str, database_name: str, name: str) -> Table:
        """Return a table or raise NotFoundError."""
        ...

    def create_table(self, catalog_id: str, table: Table) -> None:
        """Create a table; raise ParentMissingError if its database is missing."""
        ...

    def update_table(self, catalog_id: str, table: Table, *, skip_archive: bool) -> None:
        """Update a table; raise ParentMissingError if its database is missing."""
        ...

    def iter_partitions(
        self, catalog_id: str, database_name: str, table_name: str
    ) -> Iterator[Partition]:
        """Yield every partition of a table, following pagination."""
        ...

    def batch_create_partitions(
        self,
        catalog_id: str,
        database_name: str,
        table_name: str,
        partitions: Sequence[Partition],
    ) -> list[PartitionError]:
        """Create up to MAX_PARTITIONS_PER_CREATE partitions; return per-item errors."""
        ...

    def batch_delete_partitions(
        self,
        catalog_id: str,
        database_name: str,
        table_name: str,
        values: Sequence[tuple[str, ...]],
    ) -> list[PartitionError]:
        """Delete up to MAX_PARTITIONS_PER_DELETE partitions; return per-item errors."""
        ...


@dataclass(frozen=True)
class PartitionBatchResult:
    """Aggregate result of a chunked partition create or delete."""

    requested: int
    chunks: int
    succeeded: int
    failed_chunks: int = 0
    errors: tuple[PartitionError, ...] = ()

    @property
    def ok(self) -> bool:
        """True only if every chunk succeeded without per-item errors."""
        return self.failed_chunks == 0


def find_database(adapter: CatalogAdapter, catalog_id: str, name: str) -> Database | None:
    """Return the database, or None if it does not exist."""
    try:
        return adapter.get_database(catalog_id, name)
    except NotFoundError:
        logger.info("Database '%s' not found in catalog '%s'.", name, catalog_id)
        return None


def find_table(
    adapter: CatalogAdapter, catalog_id: str, database_name: str, name: str
) -> Table | None:
    """Return the table, or None if it does not exist."""
    try:
        return adapter.get_table(catalog_id, database_name, name)
    except NotFoundError:
        logger.info(
            "Table '%s' not found in database '%s' of catalog '%s'.",
            name,
            database_name,
            catalog_id,
        )
        return None


def _run_chunks(
    items: Iterable,
    size: int,
    call,
    *,
    action: str,
    database_name: str,
    table_name: str,
    values_of,
) -> PartitionBatchResult:
    requested = chunks = succeeded = failed_chunks = 0
    errors: list[PartitionError] = []

    for chunk in chunked(items, size):
        chunks += 1
        requested += len(chunk)
        try:
            chunk_errors = call(chunk)
        except UnrecoverableError as exc:
            logger.error(
                "Batch %s of %d partitions failed for table '%s' of database '%s': %s",
                action,
                len(chunk),
                table_name,
                database_name,
                exc,
            )
            failed_chunks += 1
            errors.extend(PartitionError(values_of(item), str(exc)) for item in chunk)
            continue

        if chunk_errors:
            failed_chunks += 1
            errors.extend(chunk_errors)
            for err in chunk_errors:
                logger.warning(
                    "Partition %s of table '%s' of database '%s' not %s: %s",
                    list(err.values),
                    table_name,
                    database_name,
                    action,
                    err.message,
                )
        succeeded += len(chunk) - len(chunk_errors)

    logger.info(
        "%d of %d partitions %s for table '%s' of database '%s' in %d chunk(s).",
        succeeded,
        requested,
        action,
        table_name,
        database_name,
        chunks,
    )
    return PartitionBatchResult(
        requested=requested,
        chunks=chunks,
        succeeded=succeeded,
        failed_chunks=failed_chunks,
        errors=tuple(errors),
    )


def add_partitions(
    adapter: CatalogAdapter,
    catalog_id: str,
    database_name: str,
    table_name: str,
    partitions: Iterable[Partition],
) -> PartitionBatchResult:
    """
    Create partitions in chunks of at most MAX_PARTITIONS_PER_CREATE.

    Every chunk is attempted even if an earlier one failed. Items that were
    created stay created; the result is marked failed if any item failed.
    """
    return _run_chunks(
        partitions,
        MAX_PARTITIONS_PER_CREATE,
        lambda chunk: adapter.batch_create_partitions(
            catalog_id, database_name, table_name, chunk
        ),
        action="added",
        database_name=database_name,
        table_name=table_name,
        values_of=lambda p: p.values,
    )


def delete_partitions(
    adapter: CatalogAdapter,
    catalog_id: str,
    database_name: str,
    table_name: str,
    partitions: Iterable[Partition],
) -> PartitionBatchResult:
    """Delete partitions in chunks of at most MAX_PARTITIONS_PER_DELETE."""
    return _run_chunks(
        (p.values for p in partitions),
        MAX_PARTITIONS_PER_DELETE,
        lambda chunk: adapter.batch_delete_partitions(
            catalog_id, database_name, table_name, chunk
        ),
        action="deleted",
        database_name=database_name,
        table_name=table_name,
        values_of=lambda v: v,
    )
