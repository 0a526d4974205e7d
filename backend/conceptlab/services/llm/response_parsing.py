"""
Tolerant JSON parsing for LLM responses.

Models asked for JSON-only output still occasionally wrap it in markdown
fences, add prose around it, leave trailing commas, or stop mid-structure
when they hit the token limit. parse_json_response tries, in order:

1. A direct json.loads of the response
2. Stripping ```json ... ``` (or bare ```) fences, then slicing to the
   outermost object, or to a list of objects when one opens first
3. json_repair on everything from that point on, which closes truncated
   strings and brackets and drops trailing commas

Brackets in leading prose ("Here are [3] concepts: {...}") never win over
the payload object.

Usage:
    from conceptlab.services.llm.response_parsing import parse_json_response

    data = parse_json_response(raw_text, operation="concept_extraction")
"""

import json
import logging
import re
from typing import Any, Optional

from json_repair import repair_json

from conceptlab.errors import LLMServiceError

logger = logging.getLogger(__name__)

_FENCE_PATTERNS = [
    r"```json\s*([\s\S]*?)\s*```",  # ```json ... ```
    r"```\s*([\s\S]*?)\s*```",  # ``` ... ```
]
_OBJECT_LIST_START = re.compile(r"\[\s*[{\]]")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, closed or not."""
    for pattern in _FENCE_PATTERNS:
        match = re.search(pattern, text)
        if match:
            return match.group(1).strip()

    # Unclosed fence from a truncated response
    text = re.sub(r"^```(?:json)?\s*", "", text.strip())
    return text.rstrip("`").strip()


def find_json_start(text: str) -> Optional[int]:
    """
    Index where the JSON payload starts, or None.

    The first '{' is preferred. A '[' only wins when it opens a list of
    objects (or an empty list) before that, or when there is no object.
    """
    object_start = text.find("{")
    list_match = _OBJECT_LIST_START.search(text)

    if list_match and (object_start < 0 or list_match.start() < object_start):
        return list_match.start()
    if object_start >= 0:
        return object_start

    array_start = text.find("[")
    return array_start if array_start >= 0 else None


def extract_json_block(text: str) -> Optional[str]:
    """Slice text from the payload start to its last matching closer."""
    start = find_json_start(text)
    if start is None:
        return None

    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    return text[start:end + 1] if end > start else text[start:]


def parse_json_response(text: Optional[str], operation: Optional[str] = None) -> Any:
    """
    Parse a model response as JSON, repairing common damage if needed.

    Args:
        text: Raw response text
        operation: Operation name attached to the error for diagnostics

    Returns:
        The parsed JSON object or array

    Raises:
        LLMServiceError: If the text is empty or holds no recoverable JSON
    """
    if text is None or not text.strip():
        raise LLMServiceError("Empty LLM response", operation=operation)

    raw = text.strip()
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass

    body = strip_code_fences(raw)
    start = find_json_start(body)
    if start is not None:
        try:
            return json.loads(extract_json_block(body))
        except json.JSONDecodeError:
            pass

        repaired = repair_json(body[start:], return_objects=True)
        if isinstance(repaired, (dict, list)) and repaired:
            logger.warning(f"Repaired malformed JSON in LLM response ({len(raw)} chars)")
            return repaired

    logger.warning(f"Failed to parse JSON response: {raw[:200]}")
    raise LLMServiceError(
        f"Failed to parse LLM response as JSON: {raw[:100]}...",
        operation=operation,
    )
