"""
Correction Pipeline State and Models.

Defines the values that travel through the pipeline:
- Document: identity plus schema-defined payload
- ValidationIssue / ValidationResult: output of the pluggable validator
- CorrectionJob: queue message body for a failed document
- ReceivedMessage / QueueStats: queue port results
- CorrectionAttempt: one rung of the budget escalation ladder
- MessageOutcome: consumer decision for one delivered message
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from docrepair.errors import MalformedMessageError

DEFAULT_ID_FIELD = "_id"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(BaseModel):
    """
    Unit of work.

    The identifier is kept outside ``fields`` so no payload edit can
    touch it; ``to_record`` merges it back under the store's id key.
    """

    document_id: str = Field(..., min_length=1, description="Stable document identifier")
    fields: dict[str, Any] = Field(default_factory=dict, description="Schema-defined payload")

    @classmethod
    def from_record(
        cls,
        record: dict[str, Any],
        id_field: str = DEFAULT_ID_FIELD,
        document_id: str | None = None,
    ) -> "Document":
        """Build a document from a flat record, lifting out the id field."""
        fields = {k: v for k, v in record.items() if k != id_field}
        if document_id is None:
            raw_id = record.get(id_field)
            if raw_id is None or str(raw_id) == "":
                raise ValueError(f"Record has no {id_field!r} value")
            document_id = str(raw_id)
        return cls(document_id=document_id, fields=fields)

    def to_record(self, id_field: str = DEFAULT_ID_FIELD) -> dict[str, Any]:
        return {id_field: self.document_id, **self.fields}

    def with_id(self, document_id: str) -> "Document":
        return self.model_copy(update={"document_id": document_id})


class ValidationIssue(BaseModel):
    """Single field-level validation error."""

    field: str = Field(..., description="Dotted path of the offending field")
    message: str = Field(..., description="Human readable reason")

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ValidationResult(BaseModel):
    """Result of validating one document."""

    is_valid: bool = True
    errors: list[ValidationIssue] = Field(default_factory=list)

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True, errors=[])

    @classmethod
    def failed(cls, errors: list[ValidationIssue]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=errors)


class CorrectionJob(BaseModel):
    """Queue message body: a document that failed validation."""

    document_id: str = Field(..., min_length=1)
    failed_document: Document
    errors: list[ValidationIssue] = Field(default_factory=list)
    enqueued_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _ids_agree(self) -> "CorrectionJob":
        if self.failed_document.document_id != self.document_id:
            raise ValueError(
                f"document_id {self.document_id!r} does not match "
                f"failed_document.document_id {self.failed_document.document_id!r}"
            )
        return self

    @classmethod
    def for_document(
        cls,
        document: Document,
        errors: list[ValidationIssue],
    ) -> "CorrectionJob":
        return cls(
            document_id=document.document_id,
            failed_document=document,
            errors=list(errors),
        )

    def to_body(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_body(cls, body: str | bytes | None) -> "CorrectionJob":
        """Decode a queue body, raising MalformedMessageError on any defect."""
        if not body:
            raise MalformedMessageError("Empty message body")
        try:
            data = json.loads(body)
        except (TypeError, ValueError) as e:
            raise MalformedMessageError(f"Message body is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedMessageError("Message body is not a JSON object")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise MalformedMessageError(
                f"Message body does not describe a correction job: {e.error_count()} errors"
            ) from e


@dataclass(frozen=True)
class RawMessage:
    """Undecoded message as returned by a queue provider."""

    receipt_handle: str
    body: str | None
    delivery_count: int
    message_id: str


@dataclass(frozen=True)
class ReceivedMessage:
    """Decoded message handed to the consumer."""

    receipt_handle: str
    job: CorrectionJob
    delivery_count: int
    message_id: str

    @property
    def document_id(self) -> str:
        return self.job.document_id


@dataclass(frozen=True)
class QueueStats:
    visible: int = 0
    in_flight: int = 0
    delayed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "visible": self.visible,
            "in_flight": self.in_flight,
            "delayed": self.delayed,
        }


class AttemptOutcome(str, Enum):
    """Outcome of one correction call."""

    SUCCESS = "success"
    TRUNCATED = "truncated"
    FAILED = "failed"


@dataclass
class CorrectionAttempt:
    """One rung of the escalation ladder. Never persisted."""

    attempt_index: int
    token_budget: int
    outcome: AttemptOutcome
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_index": self.attempt_index,
            "token_budget": self.token_budget,
            "outcome": self.outcome.value,
            "detail": self.detail,
        }


class MessageState(str, Enum):
    """Terminal state of one delivery in the consumer state machine."""

    ACKNOWLEDGED = "acknowledged"
    RETRYING = "retrying"
    DEAD_LETTERED = "dead_lettered"
    MALFORMED = "malformed"


@dataclass
class MessageOutcome:
    message_id: str
    document_id: str | None
    state: MessageState
    delivery_count: int
    delay_seconds: float | None = None
    error: str | None = None
