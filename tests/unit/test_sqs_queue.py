"""
Unit Tests for SQSQueue.

The boto3 client is a MagicMock; calls run through asyncio.to_thread as
they do in production.
"""

from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from docrepair.config.settings import QueueSettings
from docrepair.errors import TransportError
from docrepair.queue.sqs import SQSQueue, create_sqs_client
from docrepair.state import CorrectionJob, QueueStats

QUEUE_URL = "http://localhost:4566/000000000000/corrections"


def client_error(operation: str, code: str = "ReceiptHandleIsInvalid") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, operation)


@pytest.fixture
def sqs_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def sqs_queue(sqs_client: MagicMock) -> SQSQueue:
    return SQSQueue(sqs_client, QUEUE_URL)


def sqs_message(handle: str, body: Any, receive_count: str | None = "1") -> dict[str, Any]:
    message = {"ReceiptHandle": handle, "Body": body, "MessageId": f"id-{handle}"}
    if receive_count is not None:
        message["Attributes"] = {"ApproximateReceiveCount": receive_count}
    return message


class TestSend:
    """Test cases for send."""

    @pytest.mark.asyncio
    async def test_send(self, sqs_queue: SQSQueue, sqs_client: MagicMock, sample_job: CorrectionJob) -> None:
        sqs_client.send_message.return_value = {"MessageId": "m-1"}

        message_id = await sqs_queue.send(sample_job)

        assert message_id == "m-1"
        kwargs = sqs_client.send_message.call_args.kwargs
        assert kwargs["QueueUrl"] == QUEUE_URL
        assert kwargs["DelaySeconds"] == 0
        assert CorrectionJob.from_body(kwargs["MessageBody"]) == sample_job
        assert kwargs["MessageAttributes"]["documentId"]["StringValue"] == "q-42"

    @pytest.mark.asyncio
    async def test_delay_clamped(self, sqs_queue: SQSQueue, sqs_client: MagicMock, sample_job: CorrectionJob) -> None:
        sqs_client.send_message.return_value = {"MessageId": "m-1"}

        await sqs_queue.send(sample_job, delay_seconds=5000)

        assert sqs_client.send_message.call_args.kwargs["DelaySeconds"] == 900

    @pytest.mark.asyncio
    async def test_send_failure_surfaces(
        self, sqs_queue: SQSQueue, sqs_client: MagicMock, sample_job: CorrectionJob
    ) -> None:
        sqs_client.send_message.side_effect = EndpointConnectionError(endpoint_url=QUEUE_URL)

        with pytest.raises(TransportError) as exc_info:
            await sqs_queue.send(sample_job)

        assert exc_info.value.operation == "send_message"


class TestReceive:
    """Test cases for receive_batch."""

    @pytest.mark.asyncio
    async def test_receive_reads_provider_count(
        self, sqs_queue: SQSQueue, sqs_client: MagicMock, sample_job: CorrectionJob
    ) -> None:
        sqs_client.receive_message.return_value = {"Messages": [sqs_message("h-1", sample_job.to_body(), "2")]}

        messages = await sqs_queue.receive_batch(max_messages=5, wait_time=20)

        assert len(messages) == 1
        assert messages[0].delivery_count == 2
        assert messages[0].receipt_handle == "h-1"
        assert messages[0].job == sample_job

        kwargs = sqs_client.receive_message.call_args.kwargs
        assert kwargs["MaxNumberOfMessages"] == 5
        assert kwargs["WaitTimeSeconds"] == 20
        assert "ApproximateReceiveCount" in kwargs["AttributeNames"]

    @pytest.mark.asyncio
    async def test_receive_uses_configured_visibility_timeout(self, sqs_client: MagicMock) -> None:
        settings = QueueSettings(backend="sqs", queue_url=QUEUE_URL, visibility_timeout=120)
        sqs_client.receive_message.return_value = {}

        with patch("docrepair.queue.sqs.boto3") as mock_boto3:
            mock_boto3.client.return_value = sqs_client
            queue = SQSQueue.from_settings(settings)
        await queue.receive_batch(1, 0)

        assert sqs_client.receive_message.call_args.kwargs["VisibilityTimeout"] == 120

    @pytest.mark.asyncio
    async def test_visibility_timeout_clamped(self, sqs_client: MagicMock) -> None:
        sqs_client.receive_message.return_value = {}

        await SQSQueue(sqs_client, QUEUE_URL, visibility_timeout=99_999.5).receive_batch(1, 0)

        assert sqs_client.receive_message.call_args.kwargs["VisibilityTimeout"] == 43_200

    @pytest.mark.asyncio
    async def test_queue_default_visibility_when_unset(self, sqs_queue: SQSQueue, sqs_client: MagicMock) -> None:
        sqs_client.receive_message.return_value = {}

        await sqs_queue.receive_batch(1, 0)

        assert "VisibilityTimeout" not in sqs_client.receive_message.call_args.kwargs

    @pytest.mark.asyncio
    async def test_receive_limits_clamped(self, sqs_queue: SQSQueue, sqs_client: MagicMock) -> None:
        sqs_client.receive_message.return_value = {}

        await sqs_queue.receive_batch(max_messages=50, wait_time=60)

        kwargs = sqs_client.receive_message.call_args.kwargs
        assert kwargs["MaxNumberOfMessages"] == 10
        assert kwargs["WaitTimeSeconds"] == 20

    @pytest.mark.asyncio
    async def test_empty_receive(self, sqs_queue: SQSQueue, sqs_client: MagicMock) -> None:
        sqs_client.receive_message.return_value = {}
        assert await sqs_queue.receive_batch(1, 0) == []

    @pytest.mark.asyncio
    async def test_missing_count_defaults_to_one(
        self, sqs_queue: SQSQueue, sqs_client: MagicMock, sample_job: CorrectionJob
    ) -> None:
        sqs_client.receive_message.return_value = {"Messages": [sqs_message("h-1", sample_job.to_body(), None)]}

        messages = await sqs_queue.receive_batch(1, 0)

        assert messages[0].delivery_count == 1

    @pytest.mark.asyncio
    async def test_malformed_body_deleted(
        self, sqs_queue: SQSQueue, sqs_client: MagicMock, sample_job: CorrectionJob
    ) -> None:
        sqs_client.receive_message.return_value = {
            "Messages": [
                sqs_message("h-good", sample_job.to_body()),
                sqs_message("h-bad", "not json"),
            ]
        }

        messages = await sqs_queue.receive_batch(10, 0)

        assert [m.receipt_handle for m in messages] == ["h-good"]
        sqs_client.delete_message.assert_called_once_with(QueueUrl=QUEUE_URL, ReceiptHandle="h-bad")
        assert sqs_queue.malformed_count == 1

    @pytest.mark.asyncio
    async def test_receive_failure_is_transport_error(self, sqs_queue: SQSQueue, sqs_client: MagicMock) -> None:
        sqs_client.receive_message.side_effect = client_error("ReceiveMessage", "AWS.SimpleQueueService.NonExistentQueue")

        with pytest.raises(TransportError):
            await sqs_queue.receive_batch(1, 0)


class TestSettle:
    """Test cases for acknowledge and extend_invisibility."""

    @pytest.mark.asyncio
    async def test_acknowledge(self, sqs_queue: SQSQueue, sqs_client: MagicMock) -> None:
        await sqs_queue.acknowledge("h-1")
        sqs_client.delete_message.assert_called_once_with(QueueUrl=QUEUE_URL, ReceiptHandle="h-1")

    @pytest.mark.asyncio
    async def test_acknowledge_stale_handle_does_not_raise(self, sqs_queue: SQSQueue, sqs_client: MagicMock) -> None:
        sqs_client.delete_message.side_effect = client_error("DeleteMessage")
        await sqs_queue.acknowledge("expired")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("timeout", "expected"),
        [(5.0, 5), (7.9, 7), (0, 0), (-3, 0), (50_000, 43_200)],
    )
    async def test_extend_invisibility_whole_seconds(
        self, sqs_queue: SQSQueue, sqs_client: MagicMock, timeout: float, expected: int
    ) -> None:
        await sqs_queue.extend_invisibility("h-1", timeout)

        sqs_client.change_message_visibility.assert_called_once_with(
            QueueUrl=QUEUE_URL, ReceiptHandle="h-1", VisibilityTimeout=expected
        )

    @pytest.mark.asyncio
    async def test_extend_failure_does_not_raise(self, sqs_queue: SQSQueue, sqs_client: MagicMock) -> None:
        sqs_client.change_message_visibility.side_effect = client_error("ChangeMessageVisibility")
        await sqs_queue.extend_invisibility("h-1", 10)


class TestStats:
    """Test cases for stats and client creation."""

    @pytest.mark.asyncio
    async def test_stats(self, sqs_queue: SQSQueue, sqs_client: MagicMock) -> None:
        sqs_client.get_queue_attributes.return_value = {
            "Attributes": {
                "ApproximateNumberOfMessages": "4",
                "ApproximateNumberOfMessagesNotVisible": "2",
                "ApproximateNumberOfMessagesDelayed": "1",
            }
        }

        assert await sqs_queue.stats() == QueueStats(visible=4, in_flight=2, delayed=1)

    def test_client_for_localstack(self) -> None:
        settings = QueueSettings(backend="sqs", queue_url=QUEUE_URL, endpoint="http://localhost:4566")

        with patch("docrepair.queue.sqs.boto3") as mock_boto3:
            create_sqs_client(settings)

        mock_boto3.client.assert_called_once_with(
            "sqs",
            region_name="us-east-1",
            endpoint_url="http://localhost:4566",
            aws_access_key_id="test",
            aws_secret_access_key="test",
        )

    def test_client_for_aws(self) -> None:
        settings = QueueSettings(backend="sqs", queue_url=QUEUE_URL, region="eu-west-1", endpoint=None)

        with patch("docrepair.queue.sqs.boto3") as mock_boto3:
            create_sqs_client(settings)

        mock_boto3.client.assert_called_once_with("sqs", region_name="eu-west-1")
