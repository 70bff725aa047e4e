from .base import ChunkingStrategy
from .conversation_boundary import ConversationBoundaryStrategy
from .semantic import SemanticStrategy, keyword_similarity
from .sliding_window import SlidingWindowStrategy

__all__ = [
    "ChunkingStrategy",
    "ConversationBoundaryStrategy",
    "SemanticStrategy",
    "SlidingWindowStrategy",
    "keyword_similarity",
]
