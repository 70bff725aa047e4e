"""
Chunking for conversations that exceed the model's context budget.
"""

from .deduplicator import MemoryDeduplicator, normalize_content
from .orchestrator import ChunkingOrchestrator
from .strategies import (
    ChunkingStrategy,
    ConversationBoundaryStrategy,
    SemanticStrategy,
    SlidingWindowStrategy,
)
from .token_counter import TokenCounter
from .types import ConversationChunk, TokenCount, chunk_id_for

__all__ = [
    "ChunkingOrchestrator",
    "ChunkingStrategy",
    "ConversationBoundaryStrategy",
    "ConversationChunk",
    "MemoryDeduplicator",
    "SemanticStrategy",
    "SlidingWindowStrategy",
    "TokenCount",
    "TokenCounter",
    "chunk_id_for",
    "normalize_content",
]
