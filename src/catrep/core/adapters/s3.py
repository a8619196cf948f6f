from __future__ import annotations

from botocore.exceptions import BotoCoreError, ClientError

from catrep.core.adapters.errors import translate


class S3ObjectStore:
    """Adapter around the boto3 S3 client for whole-object put/get."""

    def __init__(self, client) -> None:
        self.client = client

    def put(self, bucket: str, key: str, data: bytes, content_type: str = "text/plain") -> None:
        """Write an object."""
        try:
            self.client.put_object(
                Bucket=bucket, Key=key, Body=data, ContentType=content_type
            )
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, f"Put s3://{bucket}/{key}") from exc

    def get(self, bucket: str, key: str) -> bytes:
        """Read an object fully into memory."""
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, f"Get s3://{bucket}/{key}") from exc
