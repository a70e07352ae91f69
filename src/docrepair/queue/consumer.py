"""
Queue Consumer Loop.

Polls the queue port and runs every received message through the
registered handlers. Per delivered message:

    Received -> Processing -> Acknowledged | Retrying | DeadLettered

- Acknowledged: every handler returned
- Retrying: a handler raised and delivery_count < max_attempts; the
  message is hidden for min(backoff.delay(delivery_count), ceiling)
- DeadLettered: a handler raised and delivery_count >= max_attempts, or
  the error was an identity violation; the message is recorded and removed

Messages of one batch are handled concurrently and independently. The loop
waits for the whole batch before polling again, so in-flight work never
exceeds one batch.
"""

import asyncio
from typing import Any, Awaitable, Callable, Sequence

import structlog

from docrepair.errors import IdentityViolationError, TransportError
from docrepair.observability.logging import LogContext
from docrepair.observability.metrics import ConsumerMetrics
from docrepair.queue.base import QueuePort
from docrepair.reliability.backoff import BackoffPolicy
from docrepair.reliability.dead_letter_queue import DeadLetterRecord, DeadLetterSink
from docrepair.state import CorrectionJob, MessageOutcome, MessageState, ReceivedMessage

logger = structlog.get_logger(__name__)

MessageHandler = Callable[[CorrectionJob], Awaitable[Any]]


class QueueConsumer:
    """
    Long-running consumer for correction jobs.

    Usage:
        consumer = QueueConsumer(queue, [pipeline.handle_job], max_attempts=3)
        task = asyncio.create_task(consumer.run())
        ...
        consumer.stop()
        await task
    """

    def __init__(
        self,
        queue: QueuePort,
        handlers: Sequence[MessageHandler],
        max_attempts: int = 3,
        backoff: BackoffPolicy | None = None,
        visibility_ceiling: float = 300.0,
        batch_size: int = 1,
        wait_time: float = 20.0,
        dead_letters: DeadLetterSink | None = None,
        metrics: ConsumerMetrics | None = None,
        poll_error_pause: float = 1.0,
    ):
        if not handlers:
            raise ValueError("At least one handler is required")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")

        self.queue = queue
        self.handlers = list(handlers)
        self.max_attempts = max_attempts
        self.backoff = backoff or BackoffPolicy()
        self.visibility_ceiling = visibility_ceiling
        self.batch_size = batch_size
        self.wait_time = wait_time
        self.dead_letters = dead_letters
        self.metrics = metrics or ConsumerMetrics()
        self.poll_error_pause = poll_error_pause

        self._stop_event = asyncio.Event()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Stop after the in-flight batch drains. A pending long-poll is abandoned."""
        if not self._stop_event.is_set():
            logger.info("Stop requested, draining in-flight batch")
        self._stop_event.set()

    async def run(self) -> None:
        """Poll until stop() is called."""
        self._running = True
        logger.info(
            "Queue consumer started",
            batch_size=self.batch_size,
            max_attempts=self.max_attempts,
            handlers=len(self.handlers),
        )
        try:
            while not self._stop_event.is_set():
                await self.poll_once()
        finally:
            self._running = False
            logger.info("Queue consumer stopped", **self.metrics.to_dict())

    async def poll_once(self) -> list[MessageOutcome]:
        """Receive one batch and settle every message in it."""
        if self._stop_event.is_set():
            return []
        malformed_before = self.queue.malformed_count
        try:
            messages = await self._receive_until_stopped()
        except TransportError as e:
            self.metrics.record_poll_error()
            logger.error("Error polling queue", error=str(e))
            await self._pause()
            return []

        if messages is None:
            return []

        for _ in range(self.queue.malformed_count - malformed_before):
            self.metrics.record_outcome(MessageState.MALFORMED)
        self.metrics.record_poll(len(messages))

        if not messages:
            return []

        logger.debug("Received batch", size=len(messages))
        results = await asyncio.gather(
            *(self._process(message) for message in messages),
            return_exceptions=True,
        )

        outcomes = []
        for message, result in zip(messages, results):
            if isinstance(result, BaseException):
                # Settling itself failed; the visibility timeout redelivers it
                logger.error(
                    "Unexpected error settling message",
                    document_id=message.document_id,
                    message_id=message.message_id,
                    error=str(result),
                )
                continue
            outcomes.append(result)
        return outcomes

    async def _receive_until_stopped(self) -> list[ReceivedMessage] | None:
        """Long-poll for a batch; None if stop() was called before it arrived."""
        receive = asyncio.ensure_future(self.queue.receive_batch(self.batch_size, self.wait_time))
        stopped = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({receive, stopped}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            receive.cancel()
            raise
        finally:
            stopped.cancel()
        if receive.done():
            return receive.result()

        # Anything the abandoned receive fetched is redelivered after its visibility window
        receive.cancel()
        await asyncio.wait({receive})
        logger.info("Stop requested during poll, receive abandoned")
        return None

    async def _pause(self) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_error_pause)
        except asyncio.TimeoutError:
            pass

    async def _process(self, message: ReceivedMessage) -> MessageOutcome:
        with LogContext(
            document_id=message.document_id,
            message_id=message.message_id,
            delivery_count=message.delivery_count,
        ):
            try:
                with self.metrics.time_handler():
                    for handler in self.handlers:
                        await handler(message.job)
            except Exception as e:
                return await self._handle_failure(message, e)

            await self.queue.acknowledge(message.receipt_handle)
            self.metrics.record_outcome(MessageState.ACKNOWLEDGED)
            logger.info("Message processed successfully")
            return MessageOutcome(
                message_id=message.message_id,
                document_id=message.document_id,
                state=MessageState.ACKNOWLEDGED,
                delivery_count=message.delivery_count,
            )

    async def _handle_failure(self, message: ReceivedMessage, error: Exception) -> MessageOutcome:
        count = message.delivery_count

        if isinstance(error, IdentityViolationError) or count >= self.max_attempts:
            await self._dead_letter(message, error)
            return MessageOutcome(
                message_id=message.message_id,
                document_id=message.document_id,
                state=MessageState.DEAD_LETTERED,
                delivery_count=count,
                error=str(error),
            )

        delay = min(self.backoff.delay(max(count, 1)), self.visibility_ceiling)
        logger.warning(
            "Message processing failed, scheduling retry",
            attempt=count,
            max_attempts=self.max_attempts,
            delay_seconds=delay,
            error_type=type(error).__name__,
            error=str(error),
        )
        await self.queue.extend_invisibility(message.receipt_handle, delay)
        self.metrics.record_outcome(MessageState.RETRYING)

        return MessageOutcome(
            message_id=message.message_id,
            document_id=message.document_id,
            state=MessageState.RETRYING,
            delivery_count=count,
            delay_seconds=delay,
            error=str(error),
        )

    async def _dead_letter(self, message: ReceivedMessage, error: Exception) -> None:
        record = DeadLetterRecord.from_failure(message, error)

        logger.error(
            "Message dead-lettered, no further automatic recovery",
            attempt=message.delivery_count,
            max_attempts=self.max_attempts,
            error_type=record.error_type,
            error=record.error_message,
            validation_errors=[
                f"{e.get('field')}: {e.get('message')}" for e in record.validation_errors
            ],
        )

        if self.dead_letters is not None:
            try:
                await self.dead_letters.push(record)
            except Exception as e:
                logger.error(
                    "Failed to store dead-letter record",
                    record_id=record.record_id,
                    error=str(e),
                )

        await self.queue.acknowledge(message.receipt_handle)
        self.metrics.record_outcome(MessageState.DEAD_LETTERED)
