"""In-memory stand-ins for the catalog, messaging, object and status ports."""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

from catrep.core.catalog import PartitionError
from catrep.core.config import ReplicationConfig
from catrep.core.context import ReplicationContext
from catrep.core.errors import (
    AlreadyExistsError,
    NotFoundError,
    ParentMissingError,
    UnrecoverableError,
)
from catrep.core.models import Database, Partition, Table

SOURCE = "111111111111"
TARGET = "222222222222"
NOW = 1_700_000_000.0


class FakeCatalog:
    """Catalog keyed by catalog id; records batch sizes and update flags."""

    def __init__(self):
        self.databases: dict[tuple[str, str], Database] = {}
        self.tables: dict[tuple[str, str, str], Table] = {}
        self.partitions: dict[tuple[str, str, str], dict[tuple[str, ...], Partition]] = {}
        self.create_batches: list[int] = []
        self.delete_batches: list[int] = []
        self.skip_archive_flags: list[bool] = []
        self.table_write_errors: dict[str, Exception] = {}
        self.database_create_error: Exception | None = None
        self.failing_partition_values: set[tuple[str, ...]] = set()
        self.failing_delete_values: set[tuple[str, ...]] = set()

    # seeding helpers

    def add_database(self, catalog_id: str, name: str, description: str | None = None) -> Database:
        db = Database(name=name, description=description)
        self.databases[(catalog_id, name)] = db
        return db

    def add_table(
        self,
        catalog_id: str,
        database_name: str,
        name: str,
        *,
        partitions: int = 0,
        keys: Sequence[str] = ("dt",),
    ) -> Table:
        table = make_table(database_name, name, keys=keys)
        self.tables[(catalog_id, database_name, name)] = table
        store = self.partitions.setdefault((catalog_id, database_name, name), {})
        for p in make_partitions(table, partitions):
            store[p.values] = p
        return table

    def partition_values(self, catalog_id: str, database_name: str, name: str) -> set:
        return set(self.partitions.get((catalog_id, database_name, name), {}))

    # CatalogAdapter

    def iter_databases(self, catalog_id: str):
        for (cid, _), db in sorted(self.databases.items()):
            if cid == catalog_id:
                yield db

    def get_database(self, catalog_id: str, name: str) -> Database:
        try:
            return self.databases[(catalog_id, name)]
        except KeyError:
            raise NotFoundError(f"database {name}") from None

    def create_database(self, catalog_id: str, database: Database) -> None:
        if self.database_create_error is not None:
            raise self.database_create_error
        if (catalog_id, database.name) in self.databases:
            raise AlreadyExistsError(database.name)
        self.databases[(catalog_id, database.name)] = database

    def iter_tables(self, catalog_id: str, database_name: str):
        for (cid, db, _), table in sorted(self.tables.items()):
            if cid == catalog_id and db == database_name:
                yield table

    def get_table(self, catalog_id: str, database_name: str, name: str) -> Table:
        try:
            return self.tables[(catalog_id, database_name, name)]
        except KeyError:
            raise NotFoundError(f"table {database_name}.{name}") from None

    def _check_write(self, catalog_id: str, table: Table) -> None:
        if table.name in self.table_write_errors:
            raise self.table_write_errors[table.name]
        if (catalog_id, table.database_name) not in self.databases:
            raise ParentMissingError(table.database_name)

    def create_table(self, catalog_id: str, table: Table) -> None:
        self._check_write(catalog_id, table)
        key = (catalog_id, table.database_name, table.name)
        if key in self.tables:
            raise AlreadyExistsError(table.name)
        self.tables[key] = table

    def update_table(self, catalog_id: str, table: Table, *, skip_archive: bool) -> None:
        self._check_write(catalog_id, table)
        self.skip_archive_flags.append(skip_archive)
        self.tables[(catalog_id, table.database_name, table.name)] = table

    def iter_partitions(self, catalog_id: str, database_name: str, table_name: str):
        store = self.partitions.get((catalog_id, database_name, table_name), {})
        for values in sorted(store):
            yield store[values]

    def batch_create_partitions(
        self, catalog_id: str, database_name: str, table_name: str, partitions
    ) -> list[PartitionError]:
        assert len(partitions) <= 100
        self.create_batches.append(len(partitions))
        store = self.partitions.setdefault((catalog_id, database_name, table_name), {})
        errors = []
        for p in partitions:
            if p.values in self.failing_partition_values:
                errors.append(PartitionError(p.values, "InternalServiceException"))
                continue
            store[p.values] = p
        return errors

    def batch_delete_partitions(
        self, catalog_id: str, database_name: str, table_name: str, values
    ) -> list[PartitionError]:
        assert len(values) <= 25
        self.delete_batches.append(len(values))
        store = self.partitions.setdefault((catalog_id, database_name, table_name), {})
        errors = []
        for v in values:
            if tuple(v) in self.failing_delete_values:
                errors.append(PartitionError(tuple(v), "InternalServiceException"))
                continue
            store.pop(tuple(v), None)
        return errors


class FakeMessaging:
    """Records every publish and send; can be told to fail."""

    def __init__(self):
        self.published: list[tuple[str, str, dict[str, str]]] = []
        self.sent: list[tuple[str, str, dict[str, str]]] = []
        self.fail_publish_containing: str | None = None
        self.fail_send = False
        self._ids = 0

    def _next_id(self) -> str:
        self._ids += 1
        return f"msg-{self._ids}"

    def publish(self, topic_arn: str, body: str, attributes: Mapping[str, str]) -> str:
        if self.fail_publish_containing and self.fail_publish_containing in body:
            raise UnrecoverableError("publish failed")
        self.published.append((topic_arn, body, dict(attributes)))
        return self._next_id()

    def send(self, queue_url: str, body: str, attributes: Mapping[str, str]) -> str:
        if self.fail_send:
            raise UnrecoverableError("send failed")
        self.sent.append((queue_url, body, dict(attributes)))
        return self._next_id()

    def sent_to(self, queue_url: str) -> list[tuple[str, str, dict[str, str]]]:
        return [m for m in self.sent if m[0] == queue_url]


class FakeObjectStore:
    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.fail_put = False

    def put(self, bucket: str, key: str, data: bytes, content_type: str = "text/plain") -> None:
        if self.fail_put:
            raise UnrecoverableError("put failed")
        self.objects[(bucket, key)] = data

    def get(self, bucket: str, key: str) -> bytes:
        try:
            return self.objects[(bucket, key)]
        except KeyError:
            raise NotFoundError(f"s3://{bucket}/{key}") from None


class FakeStatusStore:
    """Status store that can hold back records on the first batch writes."""

    def __init__(self, unprocessed_rounds: int = 0):
        self.records: dict[str, list[dict[str, Any]]] = {}
        self.batch_sizes: list[int] = []
        self.unprocessed_rounds = unprocessed_rounds
        self.fail = False

    def put_record(self, table_name: str, record) -> None:
        if self.fail:
            raise UnrecoverableError("put_item failed")
        self.records.setdefault(table_name, []).append(dict(record))

    def batch_put(self, table_name: str, records) -> list:
        if self.fail:
            raise UnrecoverableError("batch_write_item failed")
        self.batch_sizes.append(len(records))
        if self.unprocessed_rounds and len(records) > 1:
            self.unprocessed_rounds -= 1
            keep, rest = list(records[:1]), list(records[1:])
        else:
            keep, rest = list(records), []
        self.records.setdefault(table_name, []).extend(dict(r) for r in keep)
        return rest

    def of(self, table_name: str) -> list[dict[str, Any]]:
        return self.records.get(table_name, [])


def make_table(database_name: str, name: str, *, keys: Sequence[str] = ("dt",)) -> Table:
    return Table(
        name=name,
        database_name=database_name,
        storage_descriptor={"Location": f"s3://data/{database_name}/{name}/"},
        partition_keys=tuple({"Name": k, "Type": "string"} for k in keys),
        table_type="EXTERNAL_TABLE",
    )


def make_partitions(table: Table, count: int, *, start: int = 0) -> list[Partition]:
    width = len(table.partition_keys) or 1
    return [
        Partition(
            values=tuple(f"v{i:04d}-{k}" for k in range(width)),
            database_name=table.database_name,
            table_name=table.name,
        )
        for i in range(start, start + count)
    ]


def make_config(**overrides) -> ReplicationConfig:
    base = ReplicationConfig(
        region="eu-west-1",
        source_catalog_id=SOURCE,
        target_catalog_id=TARGET,
        export_topic_arn="arn:aws:sns:eu-west-1:111111111111:export",
        large_table_queue_url="https://sqs.eu-west-1.amazonaws.com/111111111111/large",
        dead_letter_queue_url="https://sqs.eu-west-1.amazonaws.com/222222222222/dlq",
        bucket_name="catrep-large-tables",
    )
    return base.with_overrides(**overrides)


def make_context(**overrides) -> ReplicationContext:
    return ReplicationContext(
        config=make_config(**overrides),
        catalog=FakeCatalog(),
        messaging=FakeMessaging(),
        objects=FakeObjectStore(),
        status=FakeStatusStore(),
        clock=lambda: NOW,
    )


def _attrs(message_type: str, batch_id: str, extra: Mapping[str, str] | None) -> dict[str, str]:
    attrs = {
        "message_type": message_type,
        "source_catalog_id": SOURCE,
        "export_batch_id": batch_id,
    }
    attrs.update(extra or {})
    return attrs


def sns_event(*messages: tuple[str, str], batch_id: str = "42", extra=None) -> dict:
    """Build an SNS event from (message_type, body) pairs."""
    return {
        "Records": [
            {
                "Sns": {
                    "MessageId": f"sns-{i}",
                    "Message": body,
                    "MessageAttributes": {
                        name: {"Type": "String", "Value": value}
                        for name, value in _attrs(kind, batch_id, extra).items()
                    },
                }
            }
            for i, (kind, body) in enumerate(messages)
        ]
    }


def sqs_event(*messages: tuple[str, str], batch_id: str = "42", extra=None) -> dict:
    """Build an SQS event from (message_type, body) pairs."""
    return {
        "Records": [
            {
                "messageId": f"sqs-{i}",
                "body": body,
                "messageAttributes": {
                    name: {"dataType": "String", "stringValue": value}
                    for name, value in _attrs(kind, batch_id, extra).items()
                },
            }
            for i, (kind, body) in enumerate(messages)
        ]
    }


def body_of(message: tuple[str, str, dict[str, str]]) -> dict:
    return json.loads(message[1])
