"""
JSON parsing for model responses, with code-fence cleanup and json_repair fallback.
"""

from __future__ import annotations

import json
import re
from typing import Any

from json_repair import repair_json

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


class JSONParseError(ValueError):
    """Raised when a response cannot be turned into JSON."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


def strip_code_fences(text: str) -> str:
    """
    Remove Markdown code-fence wrapping around a JSON payload.

    ``"```json\\n{...}\\n```"`` becomes ``"{...}"``. Text without fences is
    returned trimmed. When several fenced blocks are present the first one
    that looks like JSON wins.
    """
    cleaned = (text or "").strip()
    if "```" not in cleaned:
        return cleaned
    blocks = _FENCE_RE.findall(cleaned)
    for block in blocks:
        block = block.strip()
        if block.startswith(("{", "[")):
            return block
    if blocks:
        return blocks[0].strip()
    return cleaned.strip("`").strip()


def parse_json(text: str, allow_repair: bool = True) -> Any:
    """
    Parse a JSON document produced by a model.

    Args:
        text: raw response text
        allow_repair: try ``json_repair`` when strict parsing fails

    Returns:
        The decoded Python object.

    Raises:
        JSONParseError: the text is empty or cannot be decoded.
    """
    if not text or not isinstance(text, str):
        raise JSONParseError("Failed to parse JSON: empty response", raw=text or "")
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        if allow_repair:
            fixed = repair_json(cleaned)
            if fixed and fixed not in ('""', "null"):
                try:
                    return json.loads(fixed)
                except json.JSONDecodeError:
                    pass
    raise JSONParseError("Failed to parse JSON response", raw=text)
