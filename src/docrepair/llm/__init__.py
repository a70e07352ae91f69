"""
LLM Module.

Generative corrector: provider factory, prompts, and response parsing.
"""

from docrepair.llm.parsing import parse_json_object, strip_code_fences
from docrepair.llm.prompts import build_correction_messages
from docrepair.llm.provider import (
    ChatModelCorrector,
    Corrector,
    CorrectorResponse,
    create_chat_model,
    ping,
)

__all__ = [
    "ChatModelCorrector",
    "Corrector",
    "CorrectorResponse",
    "create_chat_model",
    "ping",
    "build_correction_messages",
    "parse_json_object",
    "strip_code_fences",
]
