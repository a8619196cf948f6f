from __future__ import annotations

from typing import Mapping

from botocore.exceptions import BotoCoreError, ClientError

from catrep.core.adapters.errors import translate


def _string_attributes(attributes: Mapping[str, str]) -> dict[str, dict[str, str]]:
    """Render attributes in the SNS/SQS `MessageAttributes` shape."""
    return {
        name: {"DataType": "String", "StringValue": value}
        for name, value in attributes.items()
        if value
    }


class AwsMessagingAdapter:
    """Adapter around boto3 SNS (topic publish) and SQS (queue send) clients."""

    def __init__(self, sns, sqs) -> None:
        self.sns = sns
        self.sqs = sqs

    def publish(self, topic_arn: str, body: str, attributes: Mapping[str, str]) -> str:
        """Publish a message to an SNS topic and return its message id."""
        try:
            response = self.sns.publish(
                TopicArn=topic_arn,
                Message=body,
                MessageAttributes=_string_attributes(attributes),
            )
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, f"Publish to '{topic_arn}'") from exc
        return response.get("MessageId", "")

    def send(self, queue_url: str, body: str, attributes: Mapping[str, str]) -> str:
        """Send a message to an SQS queue and return its message id."""
        try:
            response = self.sqs.send_message(
                QueueUrl=queue_url,
                MessageBody=body,
                MessageAttributes=_string_attributes(attributes),
            )
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, f"Send to '{queue_url}'") from exc
        return response.get("MessageId", "")
