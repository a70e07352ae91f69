"""
Correction Prompts.

Default prompt for the generative corrector. The prompt content is a
policy: pass a different ``PromptBuilder`` to ChatModelCorrector to change
it without touching the engine.
"""

import json
from typing import Callable

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from docrepair.state import DEFAULT_ID_FIELD, Document, ValidationIssue

PromptBuilder = Callable[[Document, list[ValidationIssue]], list[BaseMessage]]

CORRECTION_SYSTEM_PROMPT = """You are a data correction specialist.
You repair structured JSON documents so that they satisfy a strict schema.
You answer with the corrected document as a single JSON object and nothing else."""

CORRECTION_USER_TEMPLATE = """Fix the document below so that every listed validation error is resolved.

## RULES
1. Return ONLY the corrected JSON object: no markdown, no explanations
2. Keep the "{id_field}" field EXACTLY as provided: "{document_id}"
3. Do not remove fields that are not mentioned in the errors
4. Change only what is needed to resolve the errors

## VALIDATION ERRORS
{errors}

## DOCUMENT
{document}"""


def format_errors(errors: list[ValidationIssue]) -> str:
    if not errors:
        return "(none reported; check the document against the schema)"
    return "\n".join(
        f'{i}. Field: "{error.field}" - {error.message}'
        for i, error in enumerate(errors, 1)
    )


def build_correction_messages(
    document: Document,
    errors: list[ValidationIssue],
    id_field: str = DEFAULT_ID_FIELD,
) -> list[BaseMessage]:
    """Build the system and user messages for one correction call."""
    user_prompt = CORRECTION_USER_TEMPLATE.format(
        id_field=id_field,
        document_id=document.document_id,
        errors=format_errors(errors),
        document=json.dumps(document.to_record(id_field), ensure_ascii=False, indent=2, default=str),
    )
    return [
        SystemMessage(content=CORRECTION_SYSTEM_PROMPT),
        HumanMessage(content=user_prompt),
    ]


CONNECTION_TEST_PROMPT = "Reply with 'OK' only."
