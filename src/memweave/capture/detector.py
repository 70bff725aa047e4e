"""
Structural format detection for untyped export data.

``detect_with_confidence`` combines the registry's first-match answer with an
independent structural pattern check. The pattern check only grades the
answer (high/low); it never picks a different provider.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

from .registry import ParserRegistry

Confidence = Literal["high", "low"]


@dataclass(frozen=True)
class StructuralPattern:
    provider: str
    required_fields: List[str]
    nested_field: str
    nested_sub_fields: List[str]


PROVIDER_PATTERNS: List[StructuralPattern] = [
    StructuralPattern(
        provider="openai",
        required_fields=["mapping"],
        nested_field="mapping",
        nested_sub_fields=["message", "parent", "children"],
    ),
    StructuralPattern(
        provider="anthropic",
        required_fields=["uuid", "chat_messages"],
        nested_field="chat_messages",
        nested_sub_fields=["text", "sender"],
    ),
]


@dataclass
class DetectionResult:
    provider: str
    confidence: Confidence
    matched_patterns: List[str] = field(default_factory=list)


def _sample(raw: Any) -> Any:
    """First conversation of an envelope or list, else the value itself."""
    if isinstance(raw, list):
        return raw[0] if raw else None
    if isinstance(raw, dict) and isinstance(raw.get("conversations"), list) and raw["conversations"]:
        return raw["conversations"][0]
    return raw


def _nested_values(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value[:1]
    if isinstance(value, dict):
        return list(value.values())
    return []


def _missing_for(obj: Any, pattern: StructuralPattern) -> List[str]:
    if not isinstance(obj, dict):
        return list(pattern.required_fields)
    missing = [f for f in pattern.required_fields if f not in obj]
    if missing:
        return missing
    values = [v for v in _nested_values(obj.get(pattern.nested_field)) if isinstance(v, dict)]
    if values and not any(sub in v for v in values for sub in pattern.nested_sub_fields):
        return [f"{pattern.nested_field}.{{{','.join(pattern.nested_sub_fields)}}}"]
    return []


def detect_by_structure(raw: Any) -> Optional[str]:
    obj = _sample(raw)
    for pattern in PROVIDER_PATTERNS:
        if not _missing_for(obj, pattern):
            return pattern.provider
    return None


def detect_with_confidence(raw: Any, registry: ParserRegistry) -> Optional[DetectionResult]:
    provider = registry.detect(raw)
    if provider is None:
        return None
    matched: List[str] = []
    structural = detect_by_structure(raw)
    if structural:
        matched.append(f"structural:{structural}")
    matched.append(f"parser:{provider}")
    confidence: Confidence = "high" if structural == provider else "low"
    return DetectionResult(provider=provider, confidence=confidence, matched_patterns=matched)


def decode_json(data: Union[bytes, str]) -> Any:
    """Decode UTF-8 JSON; raises ValueError (incl. JSONDecodeError) on bad input."""
    text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
    return json.loads(text)


def detection_failure_reason(raw: Any) -> str:
    """Explain why no known structural pattern matched ``raw``."""
    if raw is None:
        return "Data is null"
    if not isinstance(raw, (dict, list)):
        return f"Data is not an object (type: {type(raw).__name__})"
    if isinstance(raw, list) and not raw:
        return "Data is an empty list"

    obj = _sample(raw)
    reasons: Dict[str, List[str]] = {}
    for pattern in PROVIDER_PATTERNS:
        missing = _missing_for(obj, pattern)
        if missing:
            reasons[pattern.provider] = missing
    if not reasons:
        return "Data matches a known pattern but no registered parser accepted it"
    return "; ".join(f"{provider}: missing {', '.join(fields)}" for provider, fields in reasons.items())
