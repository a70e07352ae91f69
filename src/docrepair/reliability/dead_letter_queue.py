"""
Dead-Letter Records for Abandoned Correction Jobs.

A job that exhausts its delivery attempts is removed from the queue for
good. Before that happens the consumer writes a record here so an
operator can follow up by hand:
- Preserves the failed document and its remaining validation errors
- Keeps the last error and the delivery count
- Supports in-memory and file backends
"""

import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from docrepair.state import ReceivedMessage

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DeadLetterRecord:
    """Terminal failure record for one correction job."""

    record_id: str
    document_id: str
    message_id: str
    delivery_count: int

    # Error information
    error_type: str
    error_message: str
    validation_errors: list[dict[str, Any]] = field(default_factory=list)

    # Original payload for manual replay
    failed_document: dict[str, Any] = field(default_factory=dict)

    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "document_id": self.document_id,
            "message_id": self.message_id,
            "delivery_count": self.delivery_count,
            "error_type": self.error_type,
            "error_message": self.error_message,
            "validation_errors": self.validation_errors,
            "failed_document": self.failed_document,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeadLetterRecord":
        return cls(
            record_id=data["record_id"],
            document_id=data["document_id"],
            message_id=data.get("message_id", ""),
            delivery_count=data.get("delivery_count", 0),
            error_type=data["error_type"],
            error_message=data["error_message"],
            validation_errors=data.get("validation_errors", []),
            failed_document=data.get("failed_document", {}),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else _utcnow(),
        )

    @classmethod
    def from_failure(cls, message: ReceivedMessage, error: BaseException) -> "DeadLetterRecord":
        """Build a record from a delivered message and the error that ended it."""
        # Re-validation failures carry a fresher error list than the job itself
        remaining = getattr(error, "errors", None)
        if not isinstance(remaining, list):
            remaining = message.job.errors

        return cls(
            record_id=str(uuid.uuid4()),
            document_id=message.job.document_id,
            message_id=message.message_id,
            delivery_count=message.delivery_count,
            error_type=type(error).__name__,
            error_message=str(error),
            validation_errors=[
                e.model_dump() if hasattr(e, "model_dump") else dict(e)
                for e in remaining
            ],
            failed_document=message.job.failed_document.model_dump(),
        )


class DeadLetterSink(ABC):
    """Abstract base class for dead-letter record storage."""

    @abstractmethod
    async def push(self, record: DeadLetterRecord) -> str:
        """Store a record. Returns record_id."""
        pass

    @abstractmethod
    async def peek(self, count: int = 10) -> list[DeadLetterRecord]:
        """View records, oldest first, without removing them."""
        pass

    @abstractmethod
    async def get(self, record_id: str) -> DeadLetterRecord | None:
        pass

    @abstractmethod
    async def remove(self, record_id: str) -> bool:
        pass

    @abstractmethod
    async def size(self) -> int:
        pass

    async def get_stats(self) -> dict[str, Any]:
        """Summarize records by error type."""
        records = await self.peek(count=10000)

        by_error_type: dict[str, int] = {}
        for record in records:
            by_error_type[record.error_type] = by_error_type.get(record.error_type, 0) + 1

        return {
            "total": len(records),
            "by_error_type": by_error_type,
            "oldest_record": min((r.created_at for r in records), default=None),
        }


class InMemoryDeadLetterSink(DeadLetterSink):
    """In-memory dead-letter storage."""

    def __init__(self):
        self._records: dict[str, DeadLetterRecord] = {}

    async def push(self, record: DeadLetterRecord) -> str:
        self._records[record.record_id] = record
        return record.record_id

    async def peek(self, count: int = 10) -> list[DeadLetterRecord]:
        records = sorted(self._records.values(), key=lambda r: r.created_at)
        return records[:count]

    async def get(self, record_id: str) -> DeadLetterRecord | None:
        return self._records.get(record_id)

    async def remove(self, record_id: str) -> bool:
        return self._records.pop(record_id, None) is not None

    async def size(self) -> int:
        return len(self._records)


class FileDeadLetterSink(DeadLetterSink):
    """
    File-based dead-letter storage.

    Stores one JSON file per record in a directory so records survive
    restarts of the consumer.
    """

    def __init__(self, directory: str | Path):
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _record_path(self, record_id: str) -> Path:
        return self._dir / f"{record_id}.json"

    async def push(self, record: DeadLetterRecord) -> str:
        path = self._record_path(record.record_id)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(record.to_dict(), f, ensure_ascii=False, indent=2, default=str)
        return record.record_id

    async def peek(self, count: int = 10) -> list[DeadLetterRecord]:
        records = []
        for path in self._dir.glob("*.json"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    records.append(DeadLetterRecord.from_dict(json.load(f)))
            except (OSError, ValueError, KeyError) as e:
                logger.warning("Skipping unreadable dead-letter record", path=str(path), error=str(e))
        records.sort(key=lambda r: r.created_at)
        return records[:count]

    async def get(self, record_id: str) -> DeadLetterRecord | None:
        path = self._record_path(record_id)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return DeadLetterRecord.from_dict(json.load(f))

    async def remove(self, record_id: str) -> bool:
        path = self._record_path(record_id)
        if path.exists():
            path.unlink()
            return True
        return False

    async def size(self) -> int:
        return len(list(self._dir.glob("*.json")))
