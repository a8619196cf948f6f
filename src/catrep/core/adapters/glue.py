from __future__ import annotations

from typing import Any, Iterator, Mapping, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from catrep.core.adapters.errors import error_code, translate
from catrep.core.catalog import PartitionError
from catrep.core.errors import ParentMissingError
from catrep.core.models import Database, Partition, Table


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def _to_database(raw: Mapping[str, Any]) -> Database:
    return Database(
        name=raw["Name"],
        description=raw.get("Description"),
        location_uri=raw.get("LocationUri"),
        parameters=dict(raw.get("Parameters") or {}),
    )


def _database_input(database: Database) -> dict[str, Any]:
    return _drop_none(
        {
            "Name": database.name,
            "Description": database.description,
            "LocationUri": database.location_uri,
            "Parameters": dict(database.parameters) or None,
        }
    )


def _to_table(raw: Mapping[str, Any]) -> Table:
    return Table(
        name=raw["Name"],
        database_name=raw["DatabaseName"],
        description=raw.get("Description"),
        owner=raw.get("Owner"),
        storage_descriptor=raw.get("StorageDescriptor"),
        partition_keys=tuple(raw.get("PartitionKeys") or ()),
        parameters=dict(raw.get("Parameters") or {}),
        table_type=raw.get("TableType"),
        view_original_text=raw.get("ViewOriginalText"),
        view_expanded_text=raw.get("ViewExpandedText"),
    )


def _table_input(table: Table) -> dict[str, Any]:
    return _drop_none(
        {
            "Name": table.name,
            "Description": table.description,
            "Owner": table.owner,
            "StorageDescriptor": (
                dict(table.storage_descriptor) if table.storage_descriptor else None
            ),
            "PartitionKeys": [dict(k) for k in table.partition_keys],
            "TableType": table.table_type,
            "ViewOriginalText": table.view_original_text,
            "ViewExpandedText": table.view_expanded_text,
            "Parameters": dict(table.parameters) or None,
        }
    )


def _to_partition(raw: Mapping[str, Any]) -> Partition:
    return Partition(
        values=tuple(raw.get("Values") or ()),
        database_name=raw.get("DatabaseName"),
        table_name=raw.get("TableName"),
        storage_descriptor=raw.get("StorageDescriptor"),
        parameters=dict(raw.get("Parameters") or {}),
    )


def _partition_input(partition: Partition) -> dict[str, Any]:
    return _drop_none(
        {
            "Values": list(partition.values),
            "StorageDescriptor": (
                dict(partition.storage_descriptor)
                if partition.storage_descriptor
                else None
            ),
            "Parameters": dict(partition.parameters) or None,
        }
    )


def _partition_errors(response: Mapping[str, Any]) -> list[PartitionError]:
    out: list[PartitionError] = []
    for err in response.get("Errors") or []:
        detail = err.get("ErrorDetail") or {}
        out.append(
            PartitionError(
                values=tuple(err.get("PartitionValues") or ()),
                message=detail.get("ErrorMessage") or detail.get("ErrorCode") or "",
            )
        )
    return out


class GlueCatalogAdapter:
    """Adapter around the boto3 Glue client (databases/tables/partitions)."""

    def __init__(self, client) -> None:
        self.client = client

    @staticmethod
    def _catalog(catalog_id: str) -> dict[str, str]:
        # An empty id targets the caller's own catalog.
        return {"CatalogId": catalog_id} if catalog_id else {}

    def _paginate(self, operation: str, key: str, what: str, **kwargs) -> Iterator[dict]:
        try:
            for page in self.client.get_paginator(operation).paginate(**kwargs):
                yield from page.get(key) or []
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, what) from exc

    def iter_databases(self, catalog_id: str) -> Iterator[Database]:
        """Yield all databases of a catalog."""
        for raw in self._paginate(
            "get_databases",
            "DatabaseList",
            f"List databases in catalog '{catalog_id}'",
            **self._catalog(catalog_id),
        ):
            yield _to_database(raw)

    def get_database(self, catalog_id: str, name: str) -> Database:
        """Return a database by name."""
        try:
            response = self.client.get_database(Name=name, **self._catalog(catalog_id))
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, f"Get database '{name}'") from exc
        return _to_database(response["Database"])

    def create_database(self, catalog_id: str, database: Database) -> None:
        """Create a database."""
        try:
            self.client.create_database(
                DatabaseInput=_database_input(database), **self._catalog(catalog_id)
            )
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, f"Create database '{database.name}'") from exc

    def iter_tables(self, catalog_id: str, database_name: str) -> Iterator[Table]:
        """Yield all tables of a database."""
        for raw in self._paginate(
            "get_tables",
            "TableList",
            f"List tables in database '{database_name}'",
            DatabaseName=database_name,
            **self._catalog(catalog_id),
        ):
            yield _to_table(raw)

    def get_table(self, catalog_id: str, database_name: str, name: str) -> Table:
        """Return a table by database and name."""
        try:
            response = self.client.get_table(
                DatabaseName=database_name, Name=name, **self._catalog(catalog_id)
            )
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, f"Get table '{name}' of database '{database_name}'") from exc
        return _to_table(response["Table"])

    def _write_table(self, operation: str, table: Table, **kwargs) -> None:
        try:
            getattr(self.client, operation)(
                DatabaseName=table.database_name,
                TableInput=_table_input(table),
                **kwargs,
            )
        except ClientError as exc:
            # Glue reports a missing database as EntityNotFoundException.
            if error_code(exc) == "EntityNotFoundException":
                raise ParentMissingError(table.database_name, str(exc)) from exc
            raise translate(
                exc, f"{operation} '{table.name}' of database '{table.database_name}'"
            ) from exc
        except BotoCoreError as exc:
            raise translate(
                exc, f"{operation} '{table.name}' of database '{table.database_name}'"
            ) from exc

    def create_table(self, catalog_id: str, table: Table) -> None:
        """Create a table."""
        self._write_table("create_table", table, **self._catalog(catalog_id))

    def update_table(self, catalog_id: str, table: Table, *, skip_archive: bool) -> None:
        """Update a table; `skip_archive` stops Glue from keeping the prior version."""
        self._write_table(
            "update_table",
            table,
            SkipArchive=skip_archive,
            **self._catalog(catalog_id),
        )

    def iter_partitions(
        self, catalog_id: str, database_name: str, table_name: str
    ) -> Iterator[Partition]:
        """Yield all partitions of a table."""
        for raw in self._paginate(
            "get_partitions",
            "Partitions",
            f"List partitions of table '{table_name}' of database '{database_name}'",
            DatabaseName=database_name,
            TableName=table_name,
            **self._catalog(catalog_id),
        ):
            yield _to_partition(raw)

    def batch_create_partitions(
        self,
        catalog_id: str,
        database_name: str,
        table_name: str,
        partitions: Sequence[Partition],
    ) -> list[PartitionError]:
        """Create one batch of partitions and return per-item errors."""
        try:
            response = self.client.batch_create_partition(
                DatabaseName=database_name,
                TableName=table_name,
                PartitionInputList=[_partition_input(p) for p in partitions],
                **self._catalog(catalog_id),
            )
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, f"Batch create partitions of table '{table_name}'") from exc
        return _partition_errors(response)

    def batch_delete_partitions(
        self,
        catalog_id: str,
        database_name: str,
        table_name: str,
        values: Sequence[tuple[str, ...]],
    ) -> list[PartitionError]:
        """Delete one batch of partitions and return per-item errors."""
        try:
            response = self.client.batch_delete_partition(
                DatabaseName=database_name,
                TableName=table_name,
                PartitionsToDelete=[{"Values": list(v)} for v in values],
                **self._catalog(catalog_id),
            )
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, f"Batch delete partitions of table '{table_name}'") from exc
        return _partition_errors(response)
