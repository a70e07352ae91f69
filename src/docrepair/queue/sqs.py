"""
Amazon SQS Queue Provider.

Blocking boto3 calls run in worker threads so a 20 second long-poll never
stalls the event loop. Works against LocalStack when an endpoint is set.
"""

import asyncio
import math
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from docrepair.config.settings import QueueSettings
from docrepair.errors import TransportError
from docrepair.queue.base import QueuePort
from docrepair.state import CorrectionJob, QueueStats, RawMessage

logger = structlog.get_logger(__name__)

# SQS hard limits
MAX_VISIBILITY_TIMEOUT = 43200
MAX_DELAY_SECONDS = 900
MAX_WAIT_TIME_SECONDS = 20
MAX_BATCH_SIZE = 10

_STATS_ATTRIBUTES = [
    "ApproximateNumberOfMessages",
    "ApproximateNumberOfMessagesNotVisible",
    "ApproximateNumberOfMessagesDelayed",
]


def _visibility_seconds(timeout: float) -> int:
    return min(max(math.floor(timeout), 0), MAX_VISIBILITY_TIMEOUT)


def create_sqs_client(settings: QueueSettings) -> Any:
    """Create a boto3 SQS client, pointing at LocalStack when configured."""
    kwargs: dict[str, Any] = {"region_name": settings.region}
    if settings.endpoint:
        kwargs["endpoint_url"] = settings.endpoint
        # LocalStack accepts any credentials
        kwargs["aws_access_key_id"] = "test"
        kwargs["aws_secret_access_key"] = "test"
    return boto3.client("sqs", **kwargs)


class SQSQueue(QueuePort):
    """
    SQS-backed queue.

    ``delivery_count`` is read from ``ApproximateReceiveCount``, the counter
    SQS increments on every redelivery.
    """

    def __init__(self, client: Any, queue_url: str, visibility_timeout: float | None = None) -> None:
        super().__init__()
        self._client = client
        self.queue_url = queue_url
        # None leaves the window at the queue's configured default
        self.visibility_timeout = visibility_timeout

    @classmethod
    def from_settings(cls, settings: QueueSettings) -> "SQSQueue":
        return cls(create_sqs_client(settings), settings.queue_url, settings.visibility_timeout)

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        method = getattr(self._client, operation)
        try:
            return await asyncio.to_thread(method, QueueUrl=self.queue_url, **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"SQS {operation} failed: {e}", operation=operation) from e

    async def send(self, job: CorrectionJob, delay_seconds: float = 0) -> str:
        delay = min(max(int(delay_seconds), 0), MAX_DELAY_SECONDS)
        response = await self._call(
            "send_message",
            MessageBody=job.to_body(),
            DelaySeconds=delay,
            MessageAttributes={
                "documentId": {"DataType": "String", "StringValue": job.document_id},
            },
        )
        message_id = response["MessageId"]
        logger.info(
            "Message sent to queue",
            message_id=message_id,
            document_id=job.document_id,
            delay_seconds=delay,
        )
        return message_id

    async def _receive(self, max_messages: int, wait_time: float) -> list[RawMessage]:
        kwargs: dict[str, Any] = {}
        if self.visibility_timeout is not None:
            kwargs["VisibilityTimeout"] = _visibility_seconds(self.visibility_timeout)
        response = await self._call(
            "receive_message",
            MaxNumberOfMessages=min(max(max_messages, 1), MAX_BATCH_SIZE),
            WaitTimeSeconds=min(max(int(wait_time), 0), MAX_WAIT_TIME_SECONDS),
            AttributeNames=["ApproximateReceiveCount"],
            MessageAttributeNames=["All"],
            **kwargs,
        )

        messages = []
        for raw in response.get("Messages", []):
            attributes = raw.get("Attributes", {})
            messages.append(
                RawMessage(
                    receipt_handle=raw["ReceiptHandle"],
                    body=raw.get("Body"),
                    delivery_count=int(attributes.get("ApproximateReceiveCount", "1")),
                    message_id=raw.get("MessageId", ""),
                )
            )
        return messages

    async def acknowledge(self, receipt_handle: str) -> None:
        try:
            await self._call("delete_message", ReceiptHandle=receipt_handle)
        except TransportError as e:
            # Expired or already-deleted handles land here too
            logger.warning("Failed to delete message", error=str(e))

    async def extend_invisibility(self, receipt_handle: str, timeout: float) -> None:
        seconds = _visibility_seconds(timeout)
        try:
            await self._call(
                "change_message_visibility",
                ReceiptHandle=receipt_handle,
                VisibilityTimeout=seconds,
            )
        except TransportError as e:
            logger.warning(
                "Failed to change message visibility",
                visibility_timeout=seconds,
                error=str(e),
            )

    async def stats(self) -> QueueStats:
        response = await self._call("get_queue_attributes", AttributeNames=_STATS_ATTRIBUTES)
        attributes = response.get("Attributes", {})
        return QueueStats(
            visible=int(attributes.get("ApproximateNumberOfMessages", 0)),
            in_flight=int(attributes.get("ApproximateNumberOfMessagesNotVisible", 0)),
            delayed=int(attributes.get("ApproximateNumberOfMessagesDelayed", 0)),
        )

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await asyncio.to_thread(close)
