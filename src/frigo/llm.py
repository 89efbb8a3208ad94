from __future__ import annotations
import json
import re
from typing import Any

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def response_text(response: Any) -> str:
    """Concatenate the text blocks of a Messages API response."""
    parts = [
        block.text for block in response.content
        if isinstance(getattr(block, "text", None), str)
    ]
    if not parts:
        raise ValueError("Model response contained no text")
    return "".join(parts)


def strip_code_fences(text: str) -> str:
    return _FENCE.sub("", text.strip()).strip()


def _extract_json(text: str) -> str:
    """Extract the outermost JSON object from text that may contain extra prose."""
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if match:
        return match.group(0)
    return text


def load_json_object(text: str) -> dict[str, Any]:
    data = json.loads(_extract_json(strip_code_fences(text)))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data
