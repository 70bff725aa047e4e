from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from ....capture.schema import NormalizedConversation, NormalizedMessage
from ....config.settings import ChunkingSettings
from ....utils.timeutils import now_iso
from ..token_counter import TokenCounter
from ..types import ConversationChunk, chunk_id_for

Segment = Tuple[int, int]


class ChunkingStrategy(ABC):
    """Splits a conversation into ``ConversationChunk`` objects."""

    name: str = "base"

    def __init__(self, token_counter: Optional[TokenCounter] = None):
        self.token_counter = token_counter or TokenCounter()

    @abstractmethod
    def chunk(self, conversation: NormalizedConversation, config: ChunkingSettings) -> List[ConversationChunk]:
        ...

    def can_handle(self, conversation: NormalizedConversation, config: ChunkingSettings) -> bool:
        return bool(conversation.messages)

    # ---- token helpers ----

    def _tokens(self, message: NormalizedMessage, config: ChunkingSettings) -> int:
        return self.token_counter.count_message(message, config.token_count_method)

    def _tokens_of(self, messages: Sequence[NormalizedMessage], config: ChunkingSettings) -> int:
        return sum(self._tokens(m, config) for m in messages)

    def _overlap_tail(
        self, messages: Sequence[NormalizedMessage], budget: int, config: ChunkingSettings
    ) -> List[NormalizedMessage]:
        """Trailing messages that fit within ``budget`` tokens, in order."""
        if budget <= 0:
            return []
        tail: List[NormalizedMessage] = []
        used = 0
        for message in reversed(messages):
            tokens = self._tokens(message, config)
            if used + tokens > budget:
                break
            tail.insert(0, message)
            used += tokens
        return tail

    def _pack(self, messages: Sequence[NormalizedMessage], start: int, end: int, config: ChunkingSettings) -> List[Segment]:
        """Greedily pack ``messages[start:end]`` into segments within the token limit."""
        segments: List[Segment] = []
        cursor = start
        while cursor < end:
            used = 0
            stop = cursor
            while stop < end:
                tokens = self._tokens(messages[stop], config)
                if stop > cursor and used + tokens > config.max_tokens_per_chunk:
                    break
                used += tokens
                stop += 1
            segments.append((cursor, stop))
            cursor = stop
        return segments

    # ---- chunk assembly ----

    def _from_segments(
        self,
        conversation: NormalizedConversation,
        segments: Sequence[Segment],
        config: ChunkingSettings,
        reasons: Optional[Sequence[str]] = None,
    ) -> List[ConversationChunk]:
        """Build disjoint chunks from ``(start, end)`` message index ranges."""
        messages = conversation.messages
        total = len(segments)
        created_at = now_iso()
        chunks = []
        for sequence, (start, end) in enumerate(segments, start=1):
            selected = list(messages[start:end])
            metadata = {
                "start_message_index": start,
                "end_message_index": end - 1,
                "chunking_strategy": self.name,
                "created_at": created_at,
            }
            if reasons is not None and sequence - 1 < len(reasons) and reasons[sequence - 1]:
                metadata["boundary_reason"] = reasons[sequence - 1]
            chunks.append(
                ConversationChunk(
                    id=chunk_id_for(conversation.id, sequence),
                    conversation_id=conversation.id,
                    sequence=sequence,
                    total_chunks=total,
                    messages=selected,
                    token_count=self._tokens_of(selected, config),
                    metadata=metadata,
                )
            )
        return chunks
