"""Utilities for normalising LLM payloads that should contain JSON."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

from bouchenator.core.exceptions import ResponseParseError

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def _try_load(candidate: str) -> Optional[Any]:
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return None


def extract_json(text: Optional[str]) -> Any:
    """
    Extract and parse JSON from an LLM response.

    Tries, in order: the whole text, the first code fence, the outermost
    ``{...}`` span, then the outermost ``[...]`` span. Raises
    ``ResponseParseError`` when none parses.
    """
    if not text or not text.strip():
        raise ResponseParseError("Empty payload")

    candidate = text.strip()
    parsed = _try_load(candidate)
    if parsed is not None:
        return parsed

    fence = _FENCE_RE.search(candidate)
    if fence:
        parsed = _try_load(fence.group(1).strip())
        if parsed is not None:
            return parsed

    for pattern in (r"\{[\s\S]*\}", r"\[[\s\S]*\]"):
        match = re.search(pattern, candidate)
        if match:
            parsed = _try_load(match.group(0))
            if parsed is not None:
                return parsed

    raise ResponseParseError("Could not extract JSON from payload",
                             details={"preview": candidate[:120]})


def coerce_json_payload(text: Optional[str]) -> Dict[str, Any]:
    """Like ``extract_json`` but requires an object."""
    parsed = extract_json(text)
    if not isinstance(parsed, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed
