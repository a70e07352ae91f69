"""
Correction Engine.

Runs one correction of a failed document against the external corrector,
escalating the output token budget when the answer is truncated:

    for budget in ladder:
        Truncated -> next rung (last rung: TruncationExhaustedError)
        Failed    -> UpstreamError, no escalation
        Success   -> parse, restore identity, return

This loop is synchronous with respect to the message being handled and is
independent of queue redelivery: a bigger budget is tried right away,
while a later delivery is the consumer's business.
"""

from typing import Sequence

import structlog

from docrepair.config.settings import DEFAULT_TOKEN_LADDER
from docrepair.errors import ResponseParseError, TruncationExhaustedError, UpstreamError
from docrepair.llm.parsing import parse_json_object
from docrepair.llm.provider import Corrector
from docrepair.reliability.backoff import BackoffPolicy
from docrepair.state import (
    DEFAULT_ID_FIELD,
    AttemptOutcome,
    CorrectionAttempt,
    Document,
    ValidationIssue,
)

logger = structlog.get_logger(__name__)


class CorrectionEngine:
    """
    Budget-escalating corrector driver.

    Args:
        corrector: External corrector boundary
        ladder: Strictly ascending token budgets
        id_field: Key under which the corrector sees the document id
        pacing: Optional backoff between rungs; None escalates immediately
    """

    def __init__(
        self,
        corrector: Corrector,
        ladder: Sequence[int] = DEFAULT_TOKEN_LADDER,
        id_field: str = DEFAULT_ID_FIELD,
        pacing: BackoffPolicy | None = None,
    ):
        ladder = list(ladder)
        if not ladder:
            raise ValueError("Escalation ladder must not be empty")
        if any(later <= earlier for earlier, later in zip(ladder, ladder[1:])):
            raise ValueError("Escalation ladder must be strictly ascending")

        self.corrector = corrector
        self.ladder = ladder
        self.id_field = id_field
        self.pacing = pacing

    def ladder_for(self, initial_budget: int | None = None) -> list[int]:
        """Rungs to try, starting at ``initial_budget`` when given."""
        if initial_budget is None:
            return list(self.ladder)
        return [initial_budget] + [b for b in self.ladder if b > initial_budget]

    async def correct(
        self,
        document: Document,
        errors: list[ValidationIssue],
        initial_budget: int | None = None,
    ) -> Document:
        """
        Correct a document.

        Returns:
            Corrected document carrying the input's document_id

        Raises:
            TruncationExhaustedError: truncated on every rung
            UpstreamError: corrector failed or answered with unparseable text
        """
        ladder = self.ladder_for(initial_budget)
        attempts: list[CorrectionAttempt] = []

        for attempt_index, budget in enumerate(ladder, 1):
            if attempt_index > 1 and self.pacing is not None:
                await self.pacing.sleep(attempt_index - 1)

            logger.info(
                "Processing document with corrector",
                document_id=document.document_id,
                error_count=len(errors),
                attempt=attempt_index,
                max_tokens=budget,
            )

            response = await self.corrector.correct(document, errors, budget)

            if response.outcome == AttemptOutcome.TRUNCATED:
                attempts.append(
                    CorrectionAttempt(attempt_index, budget, AttemptOutcome.TRUNCATED, response.detail)
                )
                logger.warning(
                    "Corrector response truncated",
                    document_id=document.document_id,
                    attempt=attempt_index,
                    max_tokens=budget,
                    will_escalate=attempt_index < len(ladder),
                )
                continue

            if response.outcome == AttemptOutcome.FAILED:
                attempts.append(
                    CorrectionAttempt(attempt_index, budget, AttemptOutcome.FAILED, response.detail)
                )
                raise UpstreamError(
                    f"Corrector failed: {response.detail}",
                    document_id=document.document_id,
                    token_budget=budget,
                    attempt_index=attempt_index,
                )

            try:
                data = parse_json_object(response.raw_text or "")
            except ResponseParseError as e:
                attempts.append(CorrectionAttempt(attempt_index, budget, AttemptOutcome.FAILED, str(e)))
                raise ResponseParseError(
                    str(e),
                    document_id=document.document_id,
                    token_budget=budget,
                    attempt_index=attempt_index,
                ) from e

            attempts.append(CorrectionAttempt(attempt_index, budget, AttemptOutcome.SUCCESS))
            corrected = self._restore_identity(document, data)

            logger.info(
                "Document corrected by corrector",
                document_id=corrected.document_id,
                attempt=attempt_index,
                attempts=[a.to_dict() for a in attempts],
            )
            return corrected

        raise TruncationExhaustedError(
            f"Response truncated after {len(ladder)} attempts with max tokens: {ladder[-1]}",
            document_id=document.document_id,
            attempts=attempts,
        )

    def _restore_identity(self, original: Document, data: dict) -> Document:
        """Rebuild the document under the original id, whatever the corrector returned."""
        returned_id = data.get(self.id_field)
        if returned_id is None or str(returned_id) != original.document_id:
            logger.warning(
                "Corrector dropped or changed the document id, restoring it",
                document_id=original.document_id,
                returned_id=returned_id,
            )
        return Document.from_record(data, self.id_field, document_id=original.document_id)
