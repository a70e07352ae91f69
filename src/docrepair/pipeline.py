"""
Correction Pipeline Orchestrator.

Producer side: validate a document, persist it when valid, enqueue a
correction job when not.

Consumer side (``handle_job``, registered as a queue consumer handler):
correct -> check identity -> re-validate -> upsert by id. Any failure is
raised so the consumer's retry and dead-letter policy applies. This class
holds no retry logic of its own.
"""

import structlog

from docrepair.correction.engine import CorrectionEngine
from docrepair.errors import ConfigurationError, DocumentValidationError, IdentityViolationError
from docrepair.queue.base import QueuePort
from docrepair.queue.consumer import MessageHandler
from docrepair.state import CorrectionJob, Document, ValidationIssue
from docrepair.store.base import DocumentStore
from docrepair.validation.schema_validator import Validator

logger = structlog.get_logger(__name__)


class CorrectionPipeline:
    def __init__(
        self,
        queue: QueuePort,
        engine: CorrectionEngine | None,
        validator: Validator,
        store: DocumentStore,
    ):
        # A producer-only pipeline (import, enqueue) runs without an engine
        self.queue = queue
        self.engine = engine
        self.validator = validator
        self.store = store

    @property
    def handlers(self) -> list[MessageHandler]:
        return [self.handle_job]

    async def submit(self, document: Document, persist_valid: bool = True) -> str | None:
        """
        Validate a document and route it.

        Returns:
            Queue message id when a correction job was enqueued, else None
        """
        result = self.validator.validate(document)
        if result.is_valid:
            if persist_valid:
                await self.store.upsert_by_id(document)
            return None
        return await self.enqueue(document, result.errors)

    async def enqueue(self, document: Document, errors: list[ValidationIssue]) -> str:
        job = CorrectionJob.for_document(document, errors)
        message_id = await self.queue.send(job)
        logger.info(
            "Correction job enqueued",
            document_id=document.document_id,
            message_id=message_id,
            error_count=len(errors),
        )
        return message_id

    async def handle_job(self, job: CorrectionJob) -> Document:
        if self.engine is None:
            raise ConfigurationError("Correction engine is not configured")

        corrected = await self.engine.correct(job.failed_document, job.errors)

        if corrected.document_id != job.document_id:
            raise IdentityViolationError(job.document_id, corrected.document_id)

        result = self.validator.validate(corrected)
        if not result.is_valid:
            logger.warning(
                "Corrected document still invalid",
                error_count=len(result.errors),
                errors=[str(e) for e in result.errors[:5]],
            )
            raise DocumentValidationError(job.document_id, result.errors)

        await self.store.upsert_by_id(corrected)
        logger.info("Corrected document stored", document_id=corrected.document_id)
        return corrected
