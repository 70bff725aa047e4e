"""
Parser interface and helpers shared by the provider-specific parsers.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..schema import NormalizedConversation, NormalizedMessage, Role, new_conversation_id
from ...utils.timeutils import now_iso

logger = logging.getLogger(__name__)


class ParserKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    CUSTOM = "custom"


_USER_ROLES = {"user", "human"}
_ASSISTANT_ROLES = {"assistant", "ai", "bot", "model", "claude", "tool"}


def normalize_role(raw: Any) -> Role:
    """Map a provider sender tag onto user/assistant/system; unknown -> assistant."""
    tag = str(raw or "").strip().lower()
    if tag in _USER_ROLES:
        return "user"
    if tag == "system":
        return "system"
    return "assistant"


class ConversationParser(ABC):
    """
    Converts one provider's raw export into canonical conversations.

    ``can_parse`` must stay cheap (structural checks only); ``parse`` raises
    ``FormatError`` when the value turns out not to have the expected shape.
    """

    provider_name: str = "custom"
    kind: ParserKind = ParserKind.CUSTOM

    @abstractmethod
    def can_parse(self, raw: Any) -> bool:
        ...

    @abstractmethod
    def parse(self, raw: Any) -> List[NormalizedConversation]:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider={self.provider_name}, kind={self.kind.value})"


def split_envelope(raw: Any) -> Tuple[List[Any], bool]:
    """
    Return ``(items, enveloped)`` for the three accepted file shapes.

    A single conversation object, ``{"conversations": [...]}`` or a bare list.
    """
    if isinstance(raw, list):
        return list(raw), True
    if isinstance(raw, dict) and isinstance(raw.get("conversations"), list):
        return list(raw["conversations"]), True
    return [raw], False


def build_conversation(
    *,
    provider: str,
    messages: List[NormalizedMessage],
    conversation_id: Optional[str] = None,
    external_id: Optional[str] = None,
    title: Optional[str] = None,
    created_at: Optional[str] = None,
    updated_at: Optional[str] = None,
    raw_metadata: Optional[Dict[str, Any]] = None,
) -> NormalizedConversation:
    """Assemble a conversation, deriving missing timestamps from its messages."""
    if created_at is None:
        created_at = messages[0].created_at if messages else now_iso()
    if updated_at is None:
        updated_at = messages[-1].created_at if messages else created_at
    return NormalizedConversation(
        id=conversation_id or new_conversation_id(),
        provider=provider,
        external_id=external_id,
        title=title,
        created_at=created_at,
        updated_at=updated_at,
        messages=messages,
        raw_metadata=dict(raw_metadata or {}),
    )


def extra_fields(obj: Dict[str, Any], excluded: Iterable[str]) -> Dict[str, Any]:
    skip = set(excluded)
    return {k: v for k, v in obj.items() if k not in skip}
