from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from ...capture.schema import NormalizedMessage


def chunk_id_for(conversation_id: str, sequence: int) -> str:
    return f"{conversation_id}-chunk-{sequence}"


@dataclass
class ConversationChunk:
    """
    A contiguous slice of a conversation sized for one extraction call.

    ``sequence`` starts at 1. ``overlap_with_previous`` / ``overlap_with_next``
    count messages shared with the neighbouring chunks.
    """

    id: str
    conversation_id: str
    sequence: int
    total_chunks: int
    messages: List[NormalizedMessage]
    token_count: int
    overlap_with_previous: int = 0
    overlap_with_next: int = 0
    overlap_tokens_with_previous: int = 0
    overlap_tokens_with_next: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def message_ids(self) -> List[str]:
        return [m.id for m in self.messages]


@dataclass
class TokenCount:
    tokens: int
    method: str
    accuracy: str
