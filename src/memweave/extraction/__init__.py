"""
Memory extraction from normalized conversations.
"""

from .extractor import ExtractorConfig, MemoryExtractor, memory_key
from .incremental import IncrementalExtractor, IncrementalState
from .memory_types import BUILTIN_MEMORY_TYPES, CORE_MEMORY_TYPES, check_custom_type
from .schema import (
    RELATIONSHIP_TYPES,
    BatchExtractionResult,
    ChunkingMetadata,
    ConversationExtractionStatus,
    ExtractedMemory,
    ExtractedRelationship,
    ExtractionOptions,
    ExtractionProfile,
    ExtractionResult,
    IncrementalContext,
    MemoryTypeConfig,
    RawExtractionResult,
    StrategyConfig,
)
from .strategies import ChunkContext, ExtractionStrategy, StructuredOutputStrategy

__all__ = [
    "BUILTIN_MEMORY_TYPES",
    "BatchExtractionResult",
    "CORE_MEMORY_TYPES",
    "ChunkContext",
    "ChunkingMetadata",
    "ConversationExtractionStatus",
    "ExtractedMemory",
    "ExtractedRelationship",
    "ExtractionOptions",
    "ExtractionProfile",
    "ExtractionResult",
    "ExtractionStrategy",
    "ExtractorConfig",
    "IncrementalContext",
    "IncrementalExtractor",
    "IncrementalState",
    "MemoryExtractor",
    "MemoryTypeConfig",
    "RELATIONSHIP_TYPES",
    "RawExtractionResult",
    "StrategyConfig",
    "StructuredOutputStrategy",
    "check_custom_type",
    "memory_key",
]
