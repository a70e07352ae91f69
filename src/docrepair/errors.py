"""
Error Taxonomy for the Correction Pipeline.

Every failure the pipeline can surface derives from DocRepairError:
- TransportError: queue or store unreachable
- MalformedMessageError: queue body that no redelivery can fix
- TruncationExhaustedError / UpstreamError: correction engine failures
- DocumentValidationError: corrected document still invalid
- IdentityViolationError: document id lost or changed on a hop
"""

from typing import Any


class DocRepairError(Exception):
    """Base class for all pipeline errors."""

    pass


class ConfigurationError(DocRepairError):
    """Invalid or incomplete startup configuration."""

    pass


class TransportError(DocRepairError):
    """Queue provider or persistence store unavailable."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class MalformedMessageError(DocRepairError):
    """Queue message body could not be decoded into a correction job."""

    pass


class CorrectionError(DocRepairError):
    """Base class for correction engine failures."""

    def __init__(self, message: str, document_id: str | None = None):
        super().__init__(message)
        self.document_id = document_id


class TruncationExhaustedError(CorrectionError):
    """Corrector truncated its output on every rung of the budget ladder."""

    def __init__(
        self,
        message: str,
        document_id: str | None = None,
        attempts: list[Any] | None = None,
    ):
        super().__init__(message, document_id=document_id)
        self.attempts = attempts or []


class UpstreamError(CorrectionError):
    """Corrector refused, errored, or returned unusable content."""

    def __init__(
        self,
        message: str,
        document_id: str | None = None,
        token_budget: int | None = None,
        attempt_index: int | None = None,
    ):
        super().__init__(message, document_id=document_id)
        self.token_budget = token_budget
        self.attempt_index = attempt_index


class ResponseParseError(UpstreamError):
    """Corrector response was not a single JSON object."""

    pass


class DocumentValidationError(DocRepairError):
    """Document failed schema validation after correction."""

    def __init__(self, document_id: str, errors: list[Any]):
        self.document_id = document_id
        self.errors = list(errors)
        super().__init__(
            f"Document {document_id} still invalid after correction "
            f"({len(self.errors)} errors)"
        )


class IdentityViolationError(DocRepairError):
    """Document id changed between two hops of the pipeline."""

    def __init__(self, expected: str, actual: str | None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Document identity violated: expected {expected!r}, got {actual!r}"
        )


class ImportFailedError(DocRepairError):
    """Bulk import workflow aborted."""

    pass
