"""Message envelopes, attributes and the messaging port.

All three payload kinds (database, table, large table) share the same topic,
so every message carries a `message_type` attribute and consumers dispatch on
it through `decode_payload`. Inbound Lambda events from SNS and SQS are
normalized into `InboundMessage` by `messages_from_event`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol

from catrep.core.errors import ParseError, ReplicationError
from catrep.core.models import Database, LargeTable, TableWithPartitions

logger = logging.getLogger(__name__)

ATTR_MESSAGE_TYPE = "message_type"
ATTR_SOURCE_CATALOG_ID = "source_catalog_id"
ATTR_EXPORT_BATCH_ID = "export_batch_id"
ATTR_BUCKET_NAME = "bucket_name"
ATTR_REGION_NAME = "region_name"


class MessageType(str, Enum):
    """Payload kinds carried on the replication channels."""

    DATABASE = "database"
    TABLE = "table"
    LARGE_TABLE = "largeTable"

    @classmethod
    def parse(cls, value: str | None) -> MessageType:
        """Resolve an attribute value case-insensitively."""
        wanted = (value or "").strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        raise ParseError(f"Unknown message type: {value!r}")


@dataclass(frozen=True)
class InboundMessage:
    """One message of a trigger batch: a string body plus string attributes."""

    body: str
    attributes: Mapping[str, str] = field(default_factory=dict)
    message_id: str | None = None

    def attribute(self, name: str, default: str = "") -> str:
        """Look up an attribute by name, ignoring case."""
        if name in self.attributes:
            return self.attributes[name]
        lowered = name.lower()
        for key, value in self.attributes.items():
            if key.lower() == lowered:
                return value
        return default

    @property
    def message_type(self) -> MessageType:
        return MessageType.parse(self.attribute(ATTR_MESSAGE_TYPE))

    @property
    def source_catalog_id(self) -> str:
        return self.attribute(ATTR_SOURCE_CATALOG_ID)

    @property
    def export_batch_id(self) -> str:
        return self.attribute(ATTR_EXPORT_BATCH_ID)


Payload = Database | TableWithPartitions | LargeTable


def decode_payload(message: InboundMessage) -> Payload:
    """Decode the body according to the message's `message_type` attribute."""
    kind = message.message_type
    if kind is MessageType.DATABASE:
        return Database.from_json(message.body)
    if kind is MessageType.TABLE:
        return TableWithPartitions.from_json(message.body)
    return LargeTable.from_json(message.body)


def _sns_attributes(raw: Mapping[str, Any]) -> dict[str, str]:
    return {
        name: str(value.get("Value", ""))
        for name, value in (raw or {}).items()
        if isinstance(value, Mapping)
    }


def _sqs_attributes(raw: Mapping[str, Any]) -> dict[str, str]:
    return {
        name: str(value.get("stringValue", value.get("StringValue", "")))
        for name, value in (raw or {}).items()
        if isinstance(value, Mapping)
    }


def messages_from_event(event: Mapping[str, Any]) -> list[InboundMessage]:
    """
    Normalize a Lambda SNS or SQS event into inbound messages.

    SNS records carry `Sns.Message` and `Sns.MessageAttributes[name].Value`;
    SQS records carry `body` and `messageAttributes[name].stringValue`.
    Records of any other shape are skipped with a warning.
    """
    messages: list[InboundMessage] = []
    for record in event.get("Records") or []:
        sns = record.get("Sns")
        if isinstance(sns, Mapping):
            messages.append(
                InboundMessage(
                    body=sns.get("Message") or "",
                    attributes=_sns_attributes(sns.get("MessageAttributes")),
                    message_id=sns.get("MessageId"),
                )
            )
        elif "body" in record:
            messages.append(
                InboundMessage(
                    body=record.get("body") or "",
                    attributes=_sqs_attributes(record.get("messageAttributes")),
                    message_id=record.get("messageId"),
                )
            )
        else:
            logger.warning("Skipping event record with unknown shape: %s", sorted(record))
    return messages


def message_attributes(
    message_type: MessageType,
    *,
    source_catalog_id: str,
    export_batch_id: str,
    **extra: str,
) -> dict[str, str]:
    """Build the attribute map every outbound replication message carries."""
    attributes = {
        ATTR_MESSAGE_TYPE: message_type.value,
        ATTR_SOURCE_CATALOG_ID: source_catalog_id,
        ATTR_EXPORT_BATCH_ID: export_batch_id,
    }
    attributes.update({k: v for k, v in extra.items() if v})
    return attributes


class MessagingAdapter(Protocol):
    """Interface for topic publishing and queue sending."""

    def publish(self, topic_arn: str, body: str, attributes: Mapping[str, str]) -> str:
        """Publish to a topic and return the provider's message id."""
        ...

    def send(self, queue_url: str, body: str, attributes: Mapping[str, str]) -> str:
        """Send to a queue and return the provider's message id."""
        ...


def publish_message(
    adapter: MessagingAdapter,
    topic_arn: str,
    body: str,
    attributes: Mapping[str, str],
    *,
    entity: str,
) -> str | None:
    """Publish a message; return its id, or None if the publish failed."""
    try:
        message_id = adapter.publish(topic_arn, body, attributes)
    except ReplicationError as exc:
        logger.error(
            "Could not publish %s to topic '%s' (batch %s): %s",
            entity,
            topic_arn,
            attributes.get(ATTR_EXPORT_BATCH_ID, ""),
            exc,
        )
        return None
    logger.info("Published %s to topic. Message id: %s", entity, message_id)
    return message_id or None


def send_message(
    adapter: MessagingAdapter,
    queue_url: str,
    body: str,
    attributes: Mapping[str, str],
    *,
    entity: str,
) -> bool:
    """Send a message to a queue; return False if the send failed."""
    try:
        adapter.send(queue_url, body, attributes)
    except ReplicationError as exc:
        logger.error(
            "Could not send %s to queue '%s' (batch %s): %s",
            entity,
            queue_url,
            attributes.get(ATTR_EXPORT_BATCH_ID, ""),
            exc,
        )
        return False
    logger.info("Sent %s to queue '%s'.", entity, queue_url)
    return True
