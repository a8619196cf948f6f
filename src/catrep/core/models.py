"""Core domain models for catalog replication.

These models represent catalog entities (databases, tables, partitions) and
the transfer units that travel between pipeline stages. They are free of
boto3 types: adapters convert provider shapes into these dataclasses, and the
messaging layer serializes them with `to_json` / `from_json`.

The JSON field names are camelCase (`databaseName`, `partitionList`,
`s3ObjectKey`, ...) so payloads stay readable by older deployments of the
pipeline that share the same topics and queues.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from catrep.core.errors import ParseError


def _load_object(payload: str | bytes) -> dict[str, Any]:
    """Decode a JSON payload that must be an object."""
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise ParseError(f"Payload is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError("Payload must be a JSON object.")
    return data


def _require_str(data: Mapping[str, Any], key: str, kind: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ParseError(f"{kind} payload is missing '{key}'.")
    return value


def _object(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ParseError(f"{what} must be a JSON object.")
    return value


def _optional_object(
    data: Mapping[str, Any], key: str, kind: str
) -> Mapping[str, Any] | None:
    value = data.get(key)
    if value is None:
        return None
    return _object(value, f"{kind} payload '{key}'")


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class Database:
    """A named namespace grouping tables. Identity is `name`."""

    name: str
    description: str | None = None
    location_uri: str | None = None
    parameters: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "name": self.name,
                "description": self.description,
                "locationUri": self.location_uri,
                "parameters": dict(self.parameters),
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Database:
        return cls(
            name=_require_str(data, "name", "Database"),
            description=data.get("description"),
            location_uri=data.get("locationUri"),
            parameters=dict(_optional_object(data, "parameters", "Database") or {}),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, payload: str | bytes) -> Database:
        return cls.from_dict(_load_object(payload))


@dataclass(frozen=True)
class Table:
    """
    A schema definition within a database.

    Identity is `(database_name, name)`. `storage_descriptor` and
    `partition_keys` are kept in the catalog's own shape (column dicts with
    `Name`/`Type`/`Comment`) and passed through untouched.
    """

    name: str
    database_name: str
    description: str | None = None
    owner: str | None = None
    storage_descriptor: Mapping[str, Any] | None = None
    partition_keys: tuple[Mapping[str, Any], ...] = ()
    parameters: Mapping[str, str] = field(default_factory=dict)
    table_type: str | None = None
    view_original_text: str | None = None
    view_expanded_text: str | None = None

    @property
    def table_id(self) -> str:
        """Status-store key for this table."""
        return f"{self.name}|{self.database_name}"

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "name": self.name,
                "databaseName": self.database_name,
                "description": self.description,
                "owner": self.owner,
                "storageDescriptor": (
                    dict(self.storage_descriptor)
                    if self.storage_descriptor is not None
                    else None
                ),
                "partitionKeys": [dict(k) for k in self.partition_keys],
                "parameters": dict(self.parameters),
                "tableType": self.table_type,
                "viewOriginalText": self.view_original_text,
                "viewExpandedText": self.view_expanded_text,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Table:
        keys = data.get("partitionKeys") or []
        if not isinstance(keys, list):
            raise ParseError("Table payload has a malformed 'partitionKeys'.")
        return cls(
            name=_require_str(data, "name", "Table"),
            database_name=_require_str(data, "databaseName", "Table"),
            description=data.get("description"),
            owner=data.get("owner"),
            storage_descriptor=_optional_object(data, "storageDescriptor", "Table"),
            partition_keys=tuple(
                dict(_object(k, "Table payload 'partitionKeys' item")) for k in keys
            ),
            parameters=dict(_optional_object(data, "parameters", "Table") or {}),
            table_type=data.get("tableType"),
            view_original_text=data.get("viewOriginalText"),
            view_expanded_text=data.get("viewExpandedText"),
        )


@dataclass(frozen=True)
class Partition:
    """One value-tuple-addressed storage location of a partitioned table."""

    values: tuple[str, ...]
    database_name: str | None = None
    table_name: str | None = None
    storage_descriptor: Mapping[str, Any] | None = None
    parameters: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "values": list(self.values),
                "databaseName": self.database_name,
                "tableName": self.table_name,
                "storageDescriptor": (
                    dict(self.storage_descriptor)
                    if self.storage_descriptor is not None
                    else None
                ),
                "parameters": dict(self.parameters),
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Partition:
        values = data.get("values")
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise ParseError("Partition payload is missing 'values'.")
        return cls(
            values=tuple(values),
            database_name=data.get("databaseName"),
            table_name=data.get("tableName"),
            storage_descriptor=_optional_object(data, "storageDescriptor", "Partition"),
            parameters=dict(_optional_object(data, "parameters", "Partition") or {}),
        )


def matches_partition_keys(table: Table, partition: Partition) -> bool:
    """Return True if the partition's value tuple lines up with the table's keys."""
    return len(partition.values) == len(table.partition_keys)


@dataclass(frozen=True)
class TableWithPartitions:
    """A table plus its full partition list: the transfer unit for small tables."""

    table: Table
    partitions: tuple[Partition, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table.to_dict(),
            "partitionList": [p.to_dict() for p in self.partitions],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TableWithPartitions:
        table = data.get("table")
        if not isinstance(table, Mapping):
            raise ParseError("Table payload is missing 'table'.")
        raw_partitions = data.get("partitionList") or []
        if not isinstance(raw_partitions, list):
            raise ParseError("Table payload has a malformed 'partitionList'.")
        return cls(
            table=Table.from_dict(table),
            partitions=tuple(
                Partition.from_dict(_object(p, "Table payload 'partitionList' item"))
                for p in raw_partitions
            ),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, payload: str | bytes) -> TableWithPartitions:
        return cls.from_dict(_load_object(payload))


@dataclass(frozen=True)
class LargeTable:
    """
    Transfer unit for tables whose partition count exceeds the threshold.

    Partitions never travel inline. Once offloaded, `bucket_name` and
    `object_key` point at a newline-delimited JSON blob holding them.
    """

    table: Table
    number_of_partitions: int
    catalog_id: str
    is_large_table: bool = True
    bucket_name: str | None = None
    object_key: str | None = None

    @property
    def is_offloaded(self) -> bool:
        return bool(self.bucket_name) and bool(self.object_key)

    def with_pointer(self, bucket_name: str, object_key: str) -> LargeTable:
        """Return a copy pointing at the blob that holds the partitions."""
        if not bucket_name or not object_key:
            raise ValueError("A blob pointer needs both a bucket and a key.")
        return replace(self, bucket_name=bucket_name, object_key=object_key)

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "catalogId": self.catalog_id,
                "largeTable": self.is_large_table,
                "numberOfPartitions": self.number_of_partitions,
                "table": self.table.to_dict(),
                "s3BucketName": self.bucket_name,
                "s3ObjectKey": self.object_key,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LargeTable:
        table = data.get("table")
        if not isinstance(table, Mapping):
            raise ParseError("Large table payload is missing 'table'.")
        try:
            number_of_partitions = int(data.get("numberOfPartitions") or 0)
        except (TypeError, ValueError) as exc:
            raise ParseError("Large table payload has a malformed partition count.") from exc
        return cls(
            table=Table.from_dict(table),
            number_of_partitions=number_of_partitions,
            catalog_id=str(data.get("catalogId") or ""),
            is_large_table=bool(data.get("largeTable", False)),
            bucket_name=data.get("s3BucketName") or None,
            object_key=data.get("s3ObjectKey") or None,
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, payload: str | bytes) -> LargeTable:
        return cls.from_dict(_load_object(payload))


@dataclass
class DatabaseReplicationStatus:
    """Outcome of importing one database into the target catalog."""

    database_name: str
    created: bool = False
    error: bool = False
    replication_time: int = 0


@dataclass
class TableReplicationStatus:
    """
    Outcome of importing one table (and its partitions) into the target catalog.

    Attributes:
        created / updated: Which upsert branch succeeded.
        replicated: The table definition is now present in the target.
        export_has_partitions: The exported payload carried partitions.
        partitions_replicated: The target partition set now equals the export.
        error: The upsert failed (or the self-heal retry failed).
        db_not_found_error: The upsert failed because the database was missing.
    """

    database_name: str
    table_name: str
    table_schema: str = ""
    created: bool = False
    updated: bool = False
    replicated: bool = False
    export_has_partitions: bool = False
    partitions_replicated: bool = False
    error: bool = False
    db_not_found_error: bool = False
    replication_time: int = 0
