from __future__ import annotations

import logging
from typing import List, Optional

from ....capture.schema import NormalizedConversation, NormalizedMessage
from ....config.settings import ChunkingSettings
from ....utils.timeutils import parse_iso
from ..token_counter import TokenCounter
from ..types import ConversationChunk
from .base import ChunkingStrategy
from .sliding_window import SlidingWindowStrategy

logger = logging.getLogger(__name__)

USER_TURN_SCORE = 50
LONG_GAP_SCORE = 30
SHORT_GAP_SCORE = 15
LONG_GAP_SECONDS = 5 * 60
SHORT_GAP_SECONDS = 60


class ConversationBoundaryStrategy(ChunkingStrategy):
    """
    Cuts at natural breaks: a new user turn or a pause between messages.

    The conversation is walked front to back. Whenever the running segment
    would overflow, the segment is closed at its best-scoring boundary
    (preferring cuts that leave at least ``min_chunk_tokens``). Falls back to
    the sliding window when the conversation has no boundaries at all.
    """

    name = "conversation-boundary"

    def __init__(self, token_counter: Optional[TokenCounter] = None):
        super().__init__(token_counter)
        self._fallback = SlidingWindowStrategy(self.token_counter)

    def chunk(self, conversation: NormalizedConversation, config: ChunkingSettings) -> List[ConversationChunk]:
        messages = conversation.messages
        if not messages:
            return []
        if len(messages) < 3:
            return self._fallback.chunk(conversation, config)

        scores = [0] + [self.score_boundary(messages, i) for i in range(1, len(messages))]
        if not any(score > 0 for score in scores):
            logger.debug(f"No boundaries in {conversation.id}, using sliding window")
            return self._fallback.chunk(conversation, config)

        limit = config.max_tokens_per_chunk
        min_tokens = config.min_chunk_tokens
        segments = []
        reasons: List[str] = []
        start = 0
        while start < len(messages):
            used = 0
            end = start
            prefix = [0]
            while end < len(messages):
                tokens = self._tokens(messages[end], config)
                if end > start and used + tokens > limit:
                    break
                used += tokens
                end += 1
                prefix.append(used)
            if end >= len(messages):
                segments.append((start, len(messages)))
                reasons.append("end of conversation")
                break

            # A cut at ``c`` closes the segment [start, c); the next one starts at c.
            candidates = [c for c in range(start + 1, end + 1) if scores[c] > 0]
            sized = [c for c in candidates if prefix[c - start] >= min_tokens]
            pool = sized or candidates
            if pool:
                cut = max(pool, key=lambda c: (scores[c], c))
                reasons.append(self.describe_boundary(messages, cut))
            else:
                cut = end
                reasons.append("size limit")
            segments.append((start, cut))
            start = cut

        return self._from_segments(conversation, segments, config, reasons)

    def score_boundary(self, messages: List[NormalizedMessage], index: int) -> int:
        current, previous = messages[index], messages[index - 1]
        score = 0
        if current.role == "user":
            score += USER_TURN_SCORE
        gap = _gap_seconds(previous, current)
        if gap is not None:
            if gap > LONG_GAP_SECONDS:
                score += LONG_GAP_SCORE
            elif gap > SHORT_GAP_SECONDS:
                score += SHORT_GAP_SCORE

        edge = min(3, int(len(messages) * 0.1))
        if index < edge or len(messages) - index < edge:
            score = int(score * 0.5)
        return score

    def describe_boundary(self, messages: List[NormalizedMessage], index: int) -> str:
        reasons = []
        if messages[index].role == "user":
            reasons.append("user message")
        gap = _gap_seconds(messages[index - 1], messages[index])
        if gap is not None and gap > LONG_GAP_SECONDS:
            reasons.append("large time gap")
        elif gap is not None and gap > SHORT_GAP_SECONDS:
            reasons.append("time gap")
        return ", ".join(reasons) or "natural break"


def _gap_seconds(previous: NormalizedMessage, current: NormalizedMessage) -> Optional[float]:
    if not previous.created_at or not current.created_at:
        return None
    before, after = parse_iso(previous.created_at), parse_iso(current.created_at)
    if before is None or after is None:
        return None
    return abs((after - before).total_seconds())
