"""
Corrector Response Parsing.

Models often wrap JSON answers in markdown fences even when told not to.
Fences are stripped before the text is decoded as one JSON object.
"""

import json
import re
from typing import Any

from docrepair.errors import ResponseParseError

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Remove a single surrounding ``` or ```json fence, if present."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


def parse_json_object(text: str) -> dict[str, Any]:
    """
    Parse corrector output into a dict.

    Raises:
        ResponseParseError: text is empty, not JSON, or not a JSON object
    """
    cleaned = strip_code_fences(text or "")
    if not cleaned:
        raise ResponseParseError("Corrector response is empty")

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Corrector response is not valid JSON: {e.msg} at position {e.pos}") from e

    if not isinstance(data, dict):
        raise ResponseParseError(
            f"Corrector response must be a JSON object, got {type(data).__name__}"
        )
    return data
