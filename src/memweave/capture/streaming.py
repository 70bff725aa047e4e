"""
Incremental assembly of a normalized conversation from live capture data.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional

from ..core.errors import AlreadyFinalizedError
from .schema import (
    NormalizedConversation,
    NormalizedMessage,
    Role,
    StreamingBuilderState,
    StreamingChunk,
    new_conversation_id,
    new_message_id,
)
from ..utils.timeutils import now_iso

logger = logging.getLogger(__name__)


class StreamingConversationBuilder:
    """
    Per-conversation state machine fed by streamed chunks or complete messages.

    The builder owns its message list and the in-progress message. After
    ``finalize()`` every mutating call raises ``AlreadyFinalizedError``.

    Example::

        builder = StreamingConversationBuilder("openai")
        builder.add_chunk(StreamingChunk(role="assistant", content_delta="Hello"))
        builder.add_chunk(StreamingChunk(content_delta=", world"))
        builder.add_chunk(StreamingChunk(content_delta="!", is_complete=True))
        conversation = builder.finalize()
    """

    def __init__(
        self,
        provider: str,
        conversation_id: Optional[str] = None,
        title: Optional[str] = None,
        external_id: Optional[str] = None,
    ):
        self.provider = provider
        self.conversation_id = conversation_id or new_conversation_id()
        self._title = title
        self._external_id = external_id
        self._messages: List[NormalizedMessage] = []
        self._current: Optional[NormalizedMessage] = None
        self._finalized = False

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    def _ensure_open(self, operation: str) -> None:
        if self._finalized:
            raise AlreadyFinalizedError(
                message=(
                    f"Cannot {operation}: conversation already finalized "
                    f"(provider: {self.provider}, conversation_id: {self.conversation_id})"
                ),
                conversation_id=self.conversation_id,
            )

    def _finalize_current(self) -> None:
        if self._current is None:
            return
        self._messages.append(self._current)
        self._current = None

    def add_chunk(self, chunk: StreamingChunk) -> None:
        self._ensure_open("add chunk")

        if (
            self._current is not None
            and chunk.message_id
            and chunk.message_id != self._current.id
        ):
            # A chunk for a different message closes the open one.
            self._finalize_current()

        if self._current is None:
            self._current = NormalizedMessage(
                id=chunk.message_id or new_message_id(),
                role=chunk.role or "assistant",
                content="",
                created_at=now_iso(),
            )
        elif chunk.role:
            self._current.role = chunk.role

        if chunk.content_delta:
            self._current.content += chunk.content_delta

        if chunk.is_complete:
            self._finalize_current()

    def add_message(
        self,
        content: str,
        role: Optional[Role] = None,
        id: Optional[str] = None,
        created_at: Optional[str] = None,
        raw_metadata: Optional[Dict[str, Any]] = None,
    ) -> NormalizedMessage:
        """Append a complete message, closing any streaming message first."""
        self._ensure_open("add message")
        self._finalize_current()
        message = NormalizedMessage(
            id=id or new_message_id(),
            role=role or "assistant",
            content=content or "",
            created_at=created_at or now_iso(),
            raw_metadata=dict(raw_metadata or {}),
        )
        self._messages.append(message)
        return copy.deepcopy(message)

    def finalize(self, extra_metadata: Optional[Dict[str, Any]] = None) -> NormalizedConversation:
        self._ensure_open("finalize")
        self._finalize_current()

        metadata: Dict[str, Any] = dict(extra_metadata or {})
        now = now_iso()
        created_at = self._messages[0].created_at if self._messages else now
        updated_at = self._messages[-1].created_at if self._messages else now

        conversation = NormalizedConversation(
            id=self.conversation_id,
            provider=self.provider,
            external_id=self._external_id,
            title=self._title or metadata.get("title"),
            created_at=created_at,
            updated_at=updated_at,
            messages=copy.deepcopy(self._messages),
            raw_metadata=metadata,
        )
        self._finalized = True
        logger.debug(f"Finalized streaming conversation {self.conversation_id} with {len(self._messages)} messages")
        return conversation

    def get_state(self) -> StreamingBuilderState:
        return StreamingBuilderState(
            conversation_id=self.conversation_id,
            message_count=len(self._messages),
            is_finalized=self._finalized,
            current_message=copy.deepcopy(self._current),
        )
