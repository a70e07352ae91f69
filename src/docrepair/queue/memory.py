"""
In-Process Queue Provider.

Implements the full delivery contract without external infrastructure:
- Visibility window per received message
- Provider-maintained receive count
- Receipt handles invalidated on redelivery
- Delayed sends
- Long-poll wait that wakes up when a message is sent

Suitable for tests and single-process runs. State is lost on exit.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Callable

import structlog

from docrepair.queue.base import QueuePort
from docrepair.state import CorrectionJob, QueueStats, RawMessage

logger = structlog.get_logger(__name__)


@dataclass
class _Entry:
    message_id: str
    body: str | None
    visible_at: float
    receive_count: int = 0
    receipt_handle: str | None = None


class InMemoryQueue(QueuePort):
    """
    In-memory queue with SQS-like visibility semantics.

    Args:
        visibility_timeout: Seconds a received message stays hidden
        clock: Monotonic time source for visibility bookkeeping
        poll_interval: Seconds between visibility re-checks while long-polling
    """

    def __init__(
        self,
        visibility_timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 0.05,
    ) -> None:
        super().__init__()
        self.visibility_timeout = visibility_timeout
        self._clock = clock
        self._poll_interval = poll_interval
        self._entries: dict[str, _Entry] = {}
        self._handles: dict[str, str] = {}
        self._arrival = asyncio.Event()

    def __len__(self) -> int:
        return len(self._entries)

    async def send(self, job: CorrectionJob, delay_seconds: float = 0) -> str:
        message_id = self.send_raw(job.to_body(), delay_seconds)
        logger.info(
            "Message sent to queue",
            message_id=message_id,
            document_id=job.document_id,
            delay_seconds=delay_seconds,
        )
        return message_id

    def send_raw(self, body: str | None, delay_seconds: float = 0) -> str:
        """Enqueue an undecoded body."""
        message_id = str(uuid.uuid4())
        self._entries[message_id] = _Entry(
            message_id=message_id,
            body=body,
            visible_at=self._clock() + max(delay_seconds, 0),
        )
        self._arrival.set()
        return message_id

    def _take_visible(self, max_messages: int) -> list[RawMessage]:
        now = self._clock()
        taken: list[RawMessage] = []

        for entry in self._entries.values():
            if len(taken) >= max_messages:
                break
            if entry.visible_at > now:
                continue

            # Redelivery invalidates the previous handle
            if entry.receipt_handle is not None:
                self._handles.pop(entry.receipt_handle, None)

            entry.receive_count += 1
            entry.receipt_handle = uuid.uuid4().hex
            entry.visible_at = now + self.visibility_timeout
            self._handles[entry.receipt_handle] = entry.message_id

            taken.append(
                RawMessage(
                    receipt_handle=entry.receipt_handle,
                    body=entry.body,
                    delivery_count=entry.receive_count,
                    message_id=entry.message_id,
                )
            )

        return taken

    async def _receive(self, max_messages: int, wait_time: float) -> list[RawMessage]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(wait_time, 0)

        # Always yield once so a zero-wait poll loop cannot starve the event loop
        await asyncio.sleep(0)

        while True:
            batch = self._take_visible(max_messages)
            if batch:
                return batch

            remaining = deadline - loop.time()
            if remaining <= 0:
                return []

            self._arrival.clear()
            try:
                await asyncio.wait_for(
                    self._arrival.wait(),
                    timeout=min(remaining, self._poll_interval),
                )
            except asyncio.TimeoutError:
                pass

    async def acknowledge(self, receipt_handle: str) -> None:
        message_id = self._handles.pop(receipt_handle, None)
        if message_id is None:
            logger.debug("Acknowledge ignored for unknown receipt handle")
            return
        self._entries.pop(message_id, None)

    async def extend_invisibility(self, receipt_handle: str, timeout: float) -> None:
        message_id = self._handles.get(receipt_handle)
        entry = self._entries.get(message_id) if message_id else None
        if entry is None:
            logger.warning("Failed to change message visibility: unknown receipt handle")
            return
        entry.visible_at = self._clock() + max(timeout, 0)

    async def stats(self) -> QueueStats:
        now = self._clock()
        visible = in_flight = delayed = 0

        for entry in self._entries.values():
            if entry.visible_at <= now:
                visible += 1
            elif entry.receive_count > 0:
                in_flight += 1
            else:
                delayed += 1

        return QueueStats(visible=visible, in_flight=in_flight, delayed=delayed)
