from __future__ import annotations

from typing import Any, Mapping, Sequence

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from catrep.core.adapters.errors import translate

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _to_item(record: Mapping[str, Any]) -> dict[str, Any]:
    return {k: _serializer.serialize(v) for k, v in record.items() if v is not None}


def _from_item(item: Mapping[str, Any]) -> dict[str, Any]:
    return {k: _deserializer.deserialize(v) for k, v in item.items()}


class DynamoStatusStore:
    """Adapter around the boto3 DynamoDB client for status records."""

    def __init__(self, client) -> None:
        self.client = client

    def put_record(self, table_name: str, record: Mapping[str, Any]) -> None:
        """Write one record with PutItem."""
        try:
            self.client.put_item(TableName=table_name, Item=_to_item(record))
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, f"Put status record into '{table_name}'") from exc

    def batch_put(
        self, table_name: str, records: Sequence[Mapping[str, Any]]
    ) -> list[dict[str, Any]]:
        """Write one BatchWriteItem request and return the unprocessed records."""
        try:
            response = self.client.batch_write_item(
                RequestItems={
                    table_name: [{"PutRequest": {"Item": _to_item(r)}} for r in records]
                }
            )
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, f"Batch write status records into '{table_name}'") from exc

        unprocessed = (response.get("UnprocessedItems") or {}).get(table_name) or []
        return [
            _from_item(req["PutRequest"]["Item"])
            for req in unprocessed
            if "PutRequest" in req
        ]
