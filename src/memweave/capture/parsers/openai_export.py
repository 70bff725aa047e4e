from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ...core.errors import FormatError
from ..schema import NormalizedConversation, NormalizedMessage, new_message_id
from ...utils.timeutils import normalize_timestamp
from .base import (
    ConversationParser,
    ParserKind,
    build_conversation,
    extra_fields,
    normalize_role,
    split_envelope,
)

logger = logging.getLogger(__name__)

_CONVERSATION_KEYS = ("title", "create_time", "update_time", "mapping", "conversation_id")
_MESSAGE_KEYS = ("id", "author", "content", "create_time", "update_time")


def _message_text(message: Dict[str, Any]) -> str:
    content = message.get("content")
    if not isinstance(content, dict):
        return ""
    parts = content.get("parts")
    if not isinstance(parts, list):
        return ""
    return "\n".join(p for p in parts if isinstance(p, str))


def _root_ids(mapping: Dict[str, Any]) -> List[str]:
    roots = []
    for node_id, node in mapping.items():
        parent = node.get("parent") if isinstance(node, dict) else None
        if not parent or parent not in mapping:
            roots.append(node_id)
    return roots


class OpenAIExportParser(ConversationParser):
    """
    ChatGPT export parser.

    A conversation is a ``mapping`` tree keyed by node id. Messages are read in
    depth-first, left-to-right order starting at every root, so the first
    branch of a fork comes before the second.
    """

    provider_name = "openai"
    kind = ParserKind.OPENAI

    def can_parse(self, raw: Any) -> bool:
        if isinstance(raw, dict):
            if isinstance(raw.get("mapping"), dict):
                return True
            conversations = raw.get("conversations")
            return (
                isinstance(conversations, list)
                and len(conversations) > 0
                and isinstance(conversations[0], dict)
                and isinstance(conversations[0].get("mapping"), dict)
            )
        if isinstance(raw, list) and raw:
            first = raw[0]
            return isinstance(first, dict) and isinstance(first.get("mapping"), dict)
        return False

    def parse(self, raw: Any) -> List[NormalizedConversation]:
        items, enveloped = split_envelope(raw)
        if not enveloped and not (isinstance(raw, dict) and isinstance(raw.get("mapping"), dict)):
            raise FormatError(
                message='Invalid OpenAI export: missing "mapping" or "conversations" field',
                provider=self.provider_name,
            )

        conversations: List[NormalizedConversation] = []
        for index, item in enumerate(items):
            if not isinstance(item, dict) or not isinstance(item.get("mapping"), dict):
                logger.warning(f"Skipping OpenAI conversation at index {index}: no mapping")
                continue
            conversation = self._parse_conversation(item)
            if conversation is None:
                logger.debug(f"Dropping OpenAI conversation at index {index}: no usable messages")
                continue
            conversations.append(conversation)
        return conversations

    def _parse_conversation(self, conv: Dict[str, Any]) -> Optional[NormalizedConversation]:
        messages = self._extract_messages(conv["mapping"])
        if not messages:
            return None

        create_time = conv.get("create_time")
        update_time = conv.get("update_time")
        return build_conversation(
            provider=self.provider_name,
            messages=messages,
            external_id=conv.get("conversation_id") or conv.get("id"),
            title=conv.get("title") or None,
            created_at=normalize_timestamp(create_time) if create_time else None,
            updated_at=normalize_timestamp(update_time) if update_time else None,
            raw_metadata=extra_fields(conv, _CONVERSATION_KEYS),
        )

    def _extract_messages(self, mapping: Dict[str, Any]) -> List[NormalizedMessage]:
        messages: List[NormalizedMessage] = []
        visited = set()
        roots = _root_ids(mapping) or list(mapping.keys())[:1]

        # Iterative DFS; children pushed in reverse so the first child pops first.
        stack = list(reversed(roots))
        while stack:
            node_id = stack.pop()
            if node_id in visited:
                continue
            node = mapping.get(node_id)
            if not isinstance(node, dict):
                continue
            visited.add(node_id)

            message = node.get("message")
            if isinstance(message, dict):
                normalized = self._normalize_message(message, node_id)
                if normalized is not None:
                    messages.append(normalized)

            children = node.get("children")
            if isinstance(children, list):
                stack.extend(reversed([c for c in children if isinstance(c, str)]))
        return messages

    def _normalize_message(self, message: Dict[str, Any], node_id: str) -> Optional[NormalizedMessage]:
        content = _message_text(message)
        if not content.strip():
            return None

        author = message.get("author")
        role_tag = author.get("role") if isinstance(author, dict) else author

        raw_metadata = extra_fields(message, _MESSAGE_KEYS)
        raw_metadata["node_id"] = node_id
        if isinstance(author, dict) and author.get("name"):
            raw_metadata["author_name"] = author["name"]
        body = message.get("content")
        if isinstance(body, dict):
            raw_metadata["content_type"] = body.get("content_type")
            for key, value in body.items():
                if key not in ("content_type", "parts"):
                    raw_metadata[f"content_{key}"] = value

        return NormalizedMessage(
            id=str(message.get("id") or new_message_id()),
            role=normalize_role(role_tag or "assistant"),
            content=content,
            created_at=normalize_timestamp(message.get("create_time")),
            raw_metadata=raw_metadata,
        )
