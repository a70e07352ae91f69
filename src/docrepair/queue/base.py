"""
Queue Port.

Abstraction over an at-least-once message queue. Providers implement the
raw operations; the port itself only decodes bodies into correction jobs.

Delivery contract:
- A received message is invisible to other receivers for a visibility
  window. If it is not acknowledged before the window lapses it becomes
  visible again and the provider increments its delivery count.
- The delivery count reported here is the provider's, never a counter
  kept by the application.
"""

from abc import ABC, abstractmethod

import structlog

from docrepair.errors import MalformedMessageError
from docrepair.state import CorrectionJob, QueueStats, RawMessage, ReceivedMessage

logger = structlog.get_logger(__name__)


class QueuePort(ABC):
    """Abstract base class for queue providers."""

    def __init__(self) -> None:
        self.malformed_count = 0

    @abstractmethod
    async def send(self, job: CorrectionJob, delay_seconds: float = 0) -> str:
        """
        Enqueue a correction job.

        Returns:
            Provider message id

        Raises:
            TransportError: provider unavailable
        """
        pass

    @abstractmethod
    async def _receive(self, max_messages: int, wait_time: float) -> list[RawMessage]:
        """Receive undecoded messages, waiting at most ``wait_time`` seconds."""
        pass

    @abstractmethod
    async def acknowledge(self, receipt_handle: str) -> None:
        """
        Permanently remove a message.

        Acknowledging a stale or already-acknowledged handle is a no-op;
        implementations log and return instead of raising.
        """
        pass

    @abstractmethod
    async def extend_invisibility(self, receipt_handle: str, timeout: float) -> None:
        """
        Hide a received message for ``timeout`` more seconds.

        Best-effort: failures are logged, not raised. The original
        visibility window still expires and redelivers the message.
        """
        pass

    @abstractmethod
    async def stats(self) -> QueueStats:
        pass

    async def close(self) -> None:
        """Release provider resources."""
        return None

    async def receive_batch(self, max_messages: int, wait_time: float) -> list[ReceivedMessage]:
        """
        Receive and decode up to ``max_messages`` jobs.

        Returns an empty list when nothing arrives within ``wait_time``.
        Malformed bodies are acknowledged on the spot and left out of the
        result: no amount of redelivery fixes a parse error.
        """
        raw_messages = await self._receive(max_messages, wait_time)

        received: list[ReceivedMessage] = []
        for raw in raw_messages:
            try:
                job = CorrectionJob.from_body(raw.body)
            except MalformedMessageError as e:
                self.malformed_count += 1
                logger.error(
                    "Failed to parse message body, removing message",
                    message_id=raw.message_id,
                    delivery_count=raw.delivery_count,
                    error=str(e),
                )
                await self.acknowledge(raw.receipt_handle)
                continue

            received.append(
                ReceivedMessage(
                    receipt_handle=raw.receipt_handle,
                    job=job,
                    delivery_count=raw.delivery_count,
                    message_id=raw.message_id,
                )
            )

        return received
