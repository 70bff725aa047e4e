from .base import ChunkContext, ExtractionStrategy
from .structured import StructuredOutputStrategy, create_chunk_summary, format_messages

__all__ = [
    "ChunkContext",
    "ExtractionStrategy",
    "StructuredOutputStrategy",
    "create_chunk_summary",
    "format_messages",
]
