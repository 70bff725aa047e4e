from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Dict, List, Optional

from ....capture.schema import NormalizedConversation, NormalizedMessage
from ....config.settings import ChunkingSettings
from ..token_counter import TokenCounter
from ..types import ConversationChunk
from .base import ChunkingStrategy
from .sliding_window import SlidingWindowStrategy

logger = logging.getLogger(__name__)

WINDOW_SIZE = 3
STRONG_SHIFT = 0.3
MODERATE_SHIFT = 0.5
MIN_MESSAGES = 5

STOP_WORDS = frozenset(
    """
    a an and are as at be by for from has he in is it its of on that the to
    was will with i you we they this can could would should do does did have
    had but or if then so what when where who which how there their them these
    those
    """.split()
)

_WORD_RE = re.compile(r"\W+")


def keywords(message: NormalizedMessage) -> Counter:
    words = _WORD_RE.split((message.content or "").lower())
    return Counter(w for w in words if len(w) > 2 and w not in STOP_WORDS)


def keyword_similarity(left: Counter, right: Counter) -> float:
    """Weighted Jaccard: sum of min counts over sum of max counts."""
    if not left or not right:
        return 0.0
    keys = set(left) | set(right)
    intersection = sum(min(left[k], right[k]) for k in keys)
    union = sum(max(left[k], right[k]) for k in keys)
    return intersection / union if union else 0.0


class SemanticStrategy(ChunkingStrategy):
    """
    Splits where the vocabulary of the conversation changes.

    Keyword bags of the three messages before and after each position are
    compared. Similarity below 0.3 marks a strong topic shift and below 0.5 a
    moderate one. Strong shifts cut once the segment holds ``min_chunk_tokens``;
    moderate shifts additionally need half of ``max_tokens_per_chunk``. Any
    segment still above the limit is packed by size.
    """

    name = "semantic"

    def __init__(self, token_counter: Optional[TokenCounter] = None):
        super().__init__(token_counter)
        self._fallback = SlidingWindowStrategy(self.token_counter)

    def find_shifts(self, messages: List[NormalizedMessage]) -> Dict[int, float]:
        bags = [keywords(m) for m in messages]
        shifts: Dict[int, float] = {}
        for index in range(WINDOW_SIZE, len(messages)):
            before = sum(bags[index - WINDOW_SIZE:index], Counter())
            after = sum(bags[index:index + WINDOW_SIZE], Counter())
            similarity = keyword_similarity(before, after)
            if similarity < MODERATE_SHIFT:
                shifts[index] = similarity
        return shifts

    def chunk(self, conversation: NormalizedConversation, config: ChunkingSettings) -> List[ConversationChunk]:
        messages = conversation.messages
        if not messages:
            return []
        if len(messages) < MIN_MESSAGES:
            return self._fallback.chunk(conversation, config)

        shifts = self.find_shifts(messages)
        if not shifts:
            logger.debug(f"No topic shifts in {conversation.id}, using sliding window")
            return self._fallback.chunk(conversation, config)

        min_tokens = config.min_chunk_tokens
        moderate_floor = max(min_tokens, config.max_tokens_per_chunk // 2)
        cuts = []
        start = 0
        for index in sorted(shifts):
            segment_tokens = self._tokens_of(messages[start:index], config)
            floor = min_tokens if shifts[index] < STRONG_SHIFT else moderate_floor
            if segment_tokens >= floor:
                cuts.append((start, index))
                start = index
        cuts.append((start, len(messages)))

        segments = []
        reasons = []
        for start, end in cuts:
            if self._tokens_of(messages[start:end], config) > config.max_tokens_per_chunk:
                packed = self._pack(messages, start, end, config)
                segments.extend(packed)
                reasons.extend(["size limit"] * len(packed))
            else:
                segments.append((start, end))
                reasons.append(_shift_reason(shifts.get(end)))
        return self._from_segments(conversation, segments, config, reasons)


def _shift_reason(similarity: Optional[float]) -> str:
    if similarity is None:
        return "end of conversation"
    kind = "strong" if similarity < STRONG_SHIFT else "moderate"
    return f"{kind} topic shift (similarity {similarity:.2f})"
