import io
from types import SimpleNamespace

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from catrep.core.adapters.dynamodb import DynamoStatusStore
from catrep.core.adapters.errors import translate
from catrep.core.adapters.glue import GlueCatalogAdapter
from catrep.core.adapters.messaging import AwsMessagingAdapter
from catrep.core.adapters.s3 import S3ObjectStore
from catrep.core.errors import (
    AlreadyExistsError,
    NotFoundError,
    ParentMissingError,
    UnrecoverableError,
)
from catrep.core.models import Partition
from fakes import make_table


def _client_error(code: str, operation: str = "Op") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.mark.parametrize(
    "code,expected",
    [
        ("EntityNotFoundException", NotFoundError),
        ("NoSuchKey", NotFoundError),
        ("AlreadyExistsException", AlreadyExistsError),
        ("AccessDeniedException", UnrecoverableError),
    ],
)
def test_translate_maps_error_codes(code, expected):
    assert type(translate(_client_error(code), "op")) is expected


def test_translate_maps_transport_errors_to_unrecoverable():
    exc = EndpointConnectionError(endpoint_url="https://glue")

    assert isinstance(translate(exc, "op"), UnrecoverableError)


class _Paginator:
    def __init__(self, pages):
        self.pages = pages
        self.kwargs = None

    def paginate(self, **kwargs):
        self.kwargs = kwargs
        return iter(self.pages)


class _GlueClient:
    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.paginators: dict[str, _Paginator] = {}
        self.raise_on: dict[str, Exception] = {}

    def get_paginator(self, operation):
        return self.paginators[operation]

    def _record(self, name, kwargs, response=None):
        self.calls.append((name, kwargs))
        if name in self.raise_on:
            raise self.raise_on[name]
        return response or {}

    def get_table(self, **kwargs):
        return self._record("get_table", kwargs)

    def create_table(self, **kwargs):
        return self._record("create_table", kwargs)

    def update_table(self, **kwargs):
        return self._record("update_table", kwargs)

    def batch_create_partition(self, **kwargs):
        return self._record(
            "batch_create_partition",
            kwargs,
            {
                "Errors": [
                    {
                        "PartitionValues": ["2024"],
                        "ErrorDetail": {"ErrorCode": "AlreadyExistsException", "ErrorMessage": "exists"},
                    }
                ]
            },
        )

    def batch_delete_partition(self, **kwargs):
        return self._record("batch_delete_partition", kwargs)


def test_glue_iter_databases_follows_pages_and_omits_empty_catalog_id():
    client = _GlueClient()
    client.paginators["get_databases"] = _Paginator(
        [{"DatabaseList": [{"Name": "a"}]}, {"DatabaseList": [{"Name": "b", "Description": "d"}]}]
    )

    names = [db.name for db in GlueCatalogAdapter(client).iter_databases("")]

    assert names == ["a", "b"]
    assert client.paginators["get_databases"].kwargs == {}


def test_glue_iter_partitions_passes_catalog_id():
    client = _GlueClient()
    client.paginators["get_partitions"] = _Paginator(
        [{"Partitions": [{"Values": ["2024"], "StorageDescriptor": {"Location": "s3://x"}}]}]
    )

    [partition] = GlueCatalogAdapter(client).iter_partitions("111", "sales", "orders")

    assert partition.values == ("2024",)
    assert client.paginators["get_partitions"].kwargs == {
        "DatabaseName": "sales",
        "TableName": "orders",
        "CatalogId": "111",
    }


def test_glue_get_table_not_found():
    client = _GlueClient()
    client.raise_on["get_table"] = _client_error("EntityNotFoundException")

    with pytest.raises(NotFoundError):
        GlueCatalogAdapter(client).get_table("111", "sales", "orders")


def test_glue_create_table_missing_database_is_parent_missing():
    client = _GlueClient()
    client.raise_on["create_table"] = _client_error("EntityNotFoundException")

    with pytest.raises(ParentMissingError) as info:
        GlueCatalogAdapter(client).create_table("222", make_table("sales", "orders"))

    assert info.value.database_name == "sales"


def test_glue_update_table_passes_skip_archive():
    client = _GlueClient()

    GlueCatalogAdapter(client).update_table("222", make_table("sales", "orders"), skip_archive=True)

    [(name, kwargs)] = client.calls
    assert name == "update_table"
    assert kwargs["SkipArchive"] is True
    assert kwargs["CatalogId"] == "222"
    assert kwargs["TableInput"]["Name"] == "orders"
    assert kwargs["TableInput"]["PartitionKeys"] == [{"Name": "dt", "Type": "string"}]


def test_glue_batch_create_returns_per_item_errors():
    client = _GlueClient()

    errors = GlueCatalogAdapter(client).batch_create_partitions(
        "222", "sales", "orders", [Partition(values=("2024",), database_name="src_db")]
    )

    assert [(e.values, e.message) for e in errors] == [(("2024",), "exists")]
    _, kwargs = client.calls[0]
    assert kwargs["PartitionInputList"] == [{"Values": ["2024"]}]


def test_glue_batch_delete_sends_value_lists():
    client = _GlueClient()

    assert GlueCatalogAdapter(client).batch_delete_partitions("", "sales", "orders", [("a", "b")]) == []
    _, kwargs = client.calls[0]
    assert kwargs["PartitionsToDelete"] == [{"Values": ["a", "b"]}]
    assert "CatalogId" not in kwargs


def test_messaging_adapter_renders_string_attributes():
    sns = SimpleNamespace(calls=[])
    sns.publish = lambda **kw: sns.calls.append(kw) or {"MessageId": "m-1"}
    sqs = SimpleNamespace(calls=[])
    sqs.send_message = lambda **kw: sqs.calls.append(kw) or {"MessageId": "m-2"}
    adapter = AwsMessagingAdapter(sns=sns, sqs=sqs)

    assert adapter.publish("arn:topic", "{}", {"message_type": "table", "bucket_name": ""}) == "m-1"
    assert adapter.send("https://queue", "{}", {"message_type": "largeTable"}) == "m-2"

    assert sns.calls[0]["MessageAttributes"] == {
        "message_type": {"DataType": "String", "StringValue": "table"}
    }
    assert sqs.calls[0]["QueueUrl"] == "https://queue"


def test_messaging_adapter_translates_errors():
    def _fail(**kw):
        raise _client_error("AuthorizationError")

    adapter = AwsMessagingAdapter(sns=SimpleNamespace(publish=_fail), sqs=None)

    with pytest.raises(UnrecoverableError):
        adapter.publish("arn:topic", "{}", {})


def test_s3_store_reads_body():
    client = SimpleNamespace(get_object=lambda **kw: {"Body": io.BytesIO(b"line\n")})

    assert S3ObjectStore(client).get("bucket", "key") == b"line\n"


def test_s3_store_missing_key_is_not_found():
    def _missing(**kw):
        raise _client_error("NoSuchKey")

    with pytest.raises(NotFoundError):
        S3ObjectStore(SimpleNamespace(get_object=_missing)).get("bucket", "key")


def test_dynamodb_batch_put_returns_unprocessed_records():
    seen = {}

    def _batch_write_item(**kw):
        seen.update(kw)
        items = kw["RequestItems"]["status"]
        return {"UnprocessedItems": {"status": items[1:]}}

    store = DynamoStatusStore(SimpleNamespace(batch_write_item=_batch_write_item))

    unprocessed = store.batch_put(
        "status",
        [{"table_id": "a|db", "is_exported": True}, {"table_id": "b|db", "export_run_id": 5}],
    )

    assert unprocessed == [{"table_id": "b|db", "export_run_id": 5}]
    first = seen["RequestItems"]["status"][0]["PutRequest"]["Item"]
    assert first == {"table_id": {"S": "a|db"}, "is_exported": {"BOOL": True}}


def test_dynamodb_put_record_drops_none_values():
    calls = []
    store = DynamoStatusStore(SimpleNamespace(put_item=lambda **kw: calls.append(kw)))

    store.put_record("status", {"db_id": "sales", "message_id": None})

    assert calls == [{"TableName": "status", "Item": {"db_id": {"S": "sales"}}}]
