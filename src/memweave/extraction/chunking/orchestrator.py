from __future__ import annotations

import logging
import time
from typing import Dict, Iterable, List, Optional

from ...capture.schema import NormalizedConversation
from ...config.settings import ChunkingSettings
from .strategies import (
    ChunkingStrategy,
    ConversationBoundaryStrategy,
    SemanticStrategy,
    SlidingWindowStrategy,
)
from .token_counter import TokenCounter
from .types import ConversationChunk

logger = logging.getLogger(__name__)


class ChunkingOrchestrator:
    """Decides whether a conversation needs chunking and runs the chosen strategy."""

    def __init__(
        self,
        token_counter: Optional[TokenCounter] = None,
        strategies: Optional[Iterable[ChunkingStrategy]] = None,
    ):
        self.token_counter = token_counter or TokenCounter()
        self._strategies: Dict[str, ChunkingStrategy] = {}
        if strategies is None:
            strategies = [
                SlidingWindowStrategy(self.token_counter),
                ConversationBoundaryStrategy(self.token_counter),
                SemanticStrategy(self.token_counter),
            ]
        for strategy in strategies:
            self._strategies[strategy.name] = strategy

    def register_strategy(self, strategy: ChunkingStrategy) -> None:
        if strategy.name in self._strategies:
            logger.warning(f"Overwriting existing chunking strategy '{strategy.name}'")
        self._strategies[strategy.name] = strategy

    def get_strategy(self, name: str) -> Optional[ChunkingStrategy]:
        return self._strategies.get(name)

    def available_strategies(self) -> List[str]:
        return list(self._strategies)

    def count_tokens(self, conversation: NormalizedConversation, config: ChunkingSettings) -> int:
        return self.token_counter.count_conversation(conversation, config.token_count_method)

    def needs_chunking(self, conversation: NormalizedConversation, config: ChunkingSettings) -> bool:
        tokens = self.count_tokens(conversation, config)
        needed = tokens > config.max_tokens_per_chunk
        if needed:
            logger.info(
                f"Conversation {conversation.id} needs chunking: {tokens} tokens exceeds limit of "
                f"{config.max_tokens_per_chunk}"
            )
        else:
            logger.debug(f"Conversation {conversation.id} fits in one chunk ({tokens} tokens)")
        return needed

    def select_strategy(self, conversation: NormalizedConversation, config: ChunkingSettings) -> ChunkingStrategy:
        name = config.custom_strategy_name if config.strategy == "custom" else config.strategy
        strategy = self._strategies.get(name)
        if strategy is None:
            available = ", ".join(self._strategies)
            raise ValueError(f"Chunking strategy '{name}' not found. Available strategies: {available}")
        if not strategy.can_handle(conversation, config):
            raise ValueError(f"Strategy '{name}' cannot handle conversation {conversation.id}")
        return strategy

    def chunk(self, conversation: NormalizedConversation, config: ChunkingSettings) -> List[ConversationChunk]:
        started = time.perf_counter()
        strategy = self.select_strategy(conversation, config)
        chunks = strategy.chunk(conversation, config)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Chunked conversation {conversation.id} into {len(chunks)} chunks "
            f"with '{strategy.name}' in {elapsed_ms:.1f}ms"
        )
        return chunks
