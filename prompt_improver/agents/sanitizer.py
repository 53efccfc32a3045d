"""
Response sanitizer for raw LLM text.

Models wrap JSON in code fences, leak control characters and occasionally
produce byte sequences that are not valid UTF-8. ``sanitize`` removes that
noise without touching the payload itself; ``parse_json_object`` turns the
cleaned text into a dictionary or raises ResponseParseError. Neither does
any I/O.
"""

import json
import re
import unicodedata
from typing import Any, Dict, Union

from ..errors import ResponseParseError


_ALLOWED_CONTROLS = {"\t", "\n", "\r"}

# ```json / ```python / bare ``` at the very start, language tag optional
_OPENING_FENCE = re.compile(r"\A\s*```[A-Za-z0-9_+.-]*[ \t]*(?:\r?\n)?")
_CLOSING_FENCE = re.compile(r"(?:\r?\n)?[ \t]*```\s*\Z")


def _decode(raw: Union[str, bytes, None]) -> str:
    if raw is None:
        return ""
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).decode("utf-8", errors="ignore")
    # Drops lone surrogates and anything else that cannot be encoded
    return str(raw).encode("utf-8", errors="ignore").decode("utf-8", errors="ignore")


def strip_control_characters(text: str) -> str:
    """Remove control characters except tab, newline and carriage return."""
    return "".join(
        ch for ch in text
        if ch in _ALLOWED_CONTROLS or unicodedata.category(ch) != "Cc"
    )


def strip_code_fence(text: str) -> str:
    """
    Strip a single leading and a single trailing code fence.

    A fence opened but never closed (truncated output) loses its opening
    marker, and a dangling closing fence is dropped on its own. Text
    without fences is returned unchanged.
    """
    body = text
    opening = _OPENING_FENCE.match(body)
    if opening:
        body = body[opening.end():]
    closing = _CLOSING_FENCE.search(body)
    if closing:
        body = body[:closing.start()]
    if not opening and not closing:
        return text
    return body.strip()


def sanitize(raw: Union[str, bytes, None]) -> str:
    """
    Clean raw LLM output.

    Args:
        raw: Provider text (str) or undecoded payload (bytes)

    Returns:
        Text with invalid byte sequences, control characters, a leading
        BOM and an enclosing code fence removed
    """
    text = _decode(raw)
    text = text.lstrip("\ufeff")
    text = strip_control_characters(text)
    return strip_code_fence(text)


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Parse sanitized text as a JSON object.

    No repair is attempted: truncated or unbalanced JSON is an error.

    Raises:
        ResponseParseError: If text is empty, not JSON, or not an object
    """
    if not text or not text.strip():
        raise ResponseParseError("Agent response is empty")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Agent response is not valid JSON: {e.msg} at position {e.pos}") from e
    if not isinstance(parsed, dict):
        raise ResponseParseError(f"Agent response must be a JSON object, got {type(parsed).__name__}")
    return parsed
