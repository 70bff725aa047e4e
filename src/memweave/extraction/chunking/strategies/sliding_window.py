from __future__ import annotations

from typing import List

from ....capture.schema import NormalizedConversation, NormalizedMessage
from ....config.settings import ChunkingSettings
from ....utils.timeutils import now_iso
from ..types import ConversationChunk, chunk_id_for
from .base import ChunkingStrategy


class SlidingWindowStrategy(ChunkingStrategy):
    """
    Fixed-size windows with a token-budgeted overlap.

    Each chunk is filled greedily up to ``max_tokens_per_chunk``; the trailing
    messages that fit in the overlap budget are repeated at the head of the
    next chunk. Every chunk takes at least one message the previous chunk did
    not have, so the window always advances.
    """

    name = "sliding-window"

    def chunk(self, conversation: NormalizedConversation, config: ChunkingSettings) -> List[ConversationChunk]:
        messages = conversation.messages
        if not messages:
            return []

        limit = config.max_tokens_per_chunk
        overlap_budget = config.overlap_token_count
        min_tokens = config.min_chunk_tokens

        drafts = []
        carry: List[NormalizedMessage] = []
        index = 0
        while index < len(messages):
            first_tokens = self._tokens(messages[index], config)
            while carry and self._tokens_of(carry, config) + first_tokens > limit:
                carry = carry[1:]

            selected = list(carry)
            used = self._tokens_of(carry, config)
            start = index
            while index < len(messages):
                tokens = self._tokens(messages[index], config)
                if index > start and used + tokens > limit:
                    break
                selected.append(messages[index])
                used += tokens
                index += 1

            # Top up undersized chunks when the next message still fits.
            while index < len(messages) and used < min_tokens:
                tokens = self._tokens(messages[index], config)
                if used + tokens > limit:
                    break
                selected.append(messages[index])
                used += tokens
                index += 1

            next_carry = self._overlap_tail(selected, overlap_budget, config) if index < len(messages) else []
            drafts.append(
                {
                    "messages": selected,
                    "tokens": used,
                    "start": start,
                    "end": index - 1,
                    "overlap_prev": len(carry),
                    "overlap_prev_tokens": self._tokens_of(carry, config),
                }
            )
            carry = next_carry

        total = len(drafts)
        created_at = now_iso()
        chunks = []
        for position, draft in enumerate(drafts):
            following = drafts[position + 1] if position + 1 < total else None
            chunks.append(
                ConversationChunk(
                    id=chunk_id_for(conversation.id, position + 1),
                    conversation_id=conversation.id,
                    sequence=position + 1,
                    total_chunks=total,
                    messages=draft["messages"],
                    token_count=draft["tokens"],
                    overlap_with_previous=draft["overlap_prev"],
                    overlap_with_next=following["overlap_prev"] if following else 0,
                    overlap_tokens_with_previous=draft["overlap_prev_tokens"],
                    overlap_tokens_with_next=following["overlap_prev_tokens"] if following else 0,
                    metadata={
                        "start_message_index": draft["start"],
                        "end_message_index": draft["end"],
                        "chunking_strategy": self.name,
                        "created_at": created_at,
                    },
                )
            )
        return chunks
