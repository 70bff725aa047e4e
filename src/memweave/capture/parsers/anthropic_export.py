from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ...core.errors import FormatError
from ..schema import NormalizedConversation, NormalizedMessage, Role, new_message_id
from ...utils.timeutils import normalize_timestamp
from .base import ConversationParser, ParserKind, build_conversation, extra_fields, split_envelope

logger = logging.getLogger(__name__)

_CONVERSATION_KEYS = ("uuid", "name", "created_at", "updated_at", "chat_messages")
_MESSAGE_KEYS = ("uuid", "text", "content", "sender", "created_at", "updated_at")


def _is_claude_conversation(obj: Any) -> bool:
    return isinstance(obj, dict) and "uuid" in obj and "chat_messages" in obj


def _sender_role(sender: Any) -> Role:
    tag = str(sender or "").strip().lower()
    if tag in ("human", "user"):
        return "user"
    # claude, assistant and anything unknown
    return "assistant"


def _message_text(message: Dict[str, Any]) -> str:
    text = message.get("text")
    if isinstance(text, str) and text.strip():
        return text
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        blocks = [
            b.get("text")
            for b in content
            if isinstance(b, dict) and b.get("type", "text") == "text" and isinstance(b.get("text"), str)
        ]
        return "\n".join(blocks)
    return text if isinstance(text, str) else ""


class AnthropicExportParser(ConversationParser):
    """Claude.ai export parser: flat, already ordered ``chat_messages``."""

    provider_name = "anthropic"
    kind = ParserKind.ANTHROPIC

    def can_parse(self, raw: Any) -> bool:
        if _is_claude_conversation(raw):
            return True
        if isinstance(raw, dict):
            conversations = raw.get("conversations")
            return isinstance(conversations, list) and bool(conversations) and _is_claude_conversation(conversations[0])
        if isinstance(raw, list) and raw:
            return _is_claude_conversation(raw[0])
        return False

    def parse(self, raw: Any) -> List[NormalizedConversation]:
        items, enveloped = split_envelope(raw)
        if not enveloped:
            if not isinstance(raw, dict) or not isinstance(raw.get("chat_messages"), list):
                raise FormatError(
                    message='Invalid Anthropic export: missing "chat_messages" array',
                    provider=self.provider_name,
                )

        conversations: List[NormalizedConversation] = []
        for index, item in enumerate(items):
            if not isinstance(item, dict) or not isinstance(item.get("chat_messages"), list):
                logger.warning(f"Skipping Anthropic conversation at index {index}: missing chat_messages")
                continue
            conversation = self._parse_conversation(item)
            if conversation is None:
                logger.debug(f"Dropping Anthropic conversation at index {index}: no usable messages")
                continue
            conversations.append(conversation)
        return conversations

    def _parse_conversation(self, conv: Dict[str, Any]) -> Optional[NormalizedConversation]:
        messages: List[NormalizedMessage] = []
        for message in conv["chat_messages"]:
            if not isinstance(message, dict):
                continue
            normalized = self._normalize_message(message)
            if normalized is not None:
                messages.append(normalized)
        if not messages:
            return None

        return build_conversation(
            provider=self.provider_name,
            messages=messages,
            external_id=conv.get("uuid"),
            title=conv.get("name") or None,
            created_at=normalize_timestamp(conv["created_at"]) if conv.get("created_at") else None,
            updated_at=normalize_timestamp(conv["updated_at"]) if conv.get("updated_at") else None,
            raw_metadata=extra_fields(conv, _CONVERSATION_KEYS),
        )

    def _normalize_message(self, message: Dict[str, Any]) -> Optional[NormalizedMessage]:
        content = _message_text(message)
        if not content.strip():
            return None
        raw_metadata = extra_fields(message, _MESSAGE_KEYS)
        raw_metadata["original_sender"] = message.get("sender")
        return NormalizedMessage(
            id=str(message.get("uuid") or new_message_id()),
            role=_sender_role(message.get("sender")),
            content=content,
            created_at=normalize_timestamp(message.get("created_at")),
            raw_metadata=raw_metadata,
        )
