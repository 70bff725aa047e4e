from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Literal, Optional

from ..capture.schema import NormalizedMessage

if TYPE_CHECKING:
    from ..infrastructure.llm.providers.base import LLMProvider, ModelParams
    from .strategies.base import ExtractionStrategy

RelationshipType = Literal["works_at", "related_to", "depends_on", "mentions", "part_of", "created_by"]
RELATIONSHIP_TYPES = ("works_at", "related_to", "depends_on", "mentions", "part_of", "created_by")


@dataclass
class ExtractedMemory:
    id: str
    type: str
    content: str
    confidence: float
    workspace_id: str
    conversation_id: Optional[str]
    source_message_ids: List[str] = field(default_factory=list)
    created_at: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    # Populated when the memory came out of a chunked extraction.
    source_chunks: Optional[List[str]] = None
    chunk_confidence: Optional[List[float]] = None
    merged_from: Optional[List[str]] = None


@dataclass
class ExtractedRelationship:
    id: str
    from_memory_id: str
    to_memory_id: str
    relationship_type: str
    confidence: float
    created_at: str = ""


MemoryValidator = Callable[[ExtractedMemory], bool]


@dataclass(frozen=True)
class MemoryTypeConfig:
    """
    Describes one memory type the extractor may produce.

    ``extraction_prompt`` is merged into the LLM prompt and ``schema`` (a
    JSON-Schema-like dict with ``properties``) describes the metadata shape.
    """

    type: str
    extraction_prompt: str
    schema: Optional[Dict[str, Any]] = None
    validator: Optional[MemoryValidator] = None


@dataclass
class RawExtractionResult:
    memories: List[ExtractedMemory] = field(default_factory=list)
    relationships: List[ExtractedRelationship] = field(default_factory=list)


@dataclass
class StrategyConfig:
    provider: "LLMProvider"
    memory_types: List[str]
    memory_type_configs: Dict[str, MemoryTypeConfig] = field(default_factory=dict)
    model_params: Optional["ModelParams"] = None


@dataclass
class IncrementalContext:
    conversation_id: str
    workspace_id: str
    existing_memories: List[ExtractedMemory] = field(default_factory=list)
    message_history: List[NormalizedMessage] = field(default_factory=list)


@dataclass
class ExtractionProfile:
    """Named overrides selectable per ``extract`` call."""

    strategy: Optional["ExtractionStrategy"] = None
    provider: Optional["LLMProvider"] = None
    model_params: Optional["ModelParams"] = None
    memory_types: Optional[List[str]] = None
    min_confidence: Optional[float] = None


@dataclass
class ExtractionOptions:
    profile: Optional[str] = None
    memory_types: Optional[List[str]] = None
    min_confidence: Optional[float] = None
    include_relationships: bool = True


@dataclass
class ChunkingMetadata:
    enabled: bool
    strategy: str
    total_chunks: int
    failed_chunks: List[str] = field(default_factory=list)
    total_tokens: int = 0
    processing_time: float = 0.0


@dataclass
class ExtractionResult:
    conversation_id: str
    memories: List[ExtractedMemory] = field(default_factory=list)
    relationships: List[ExtractedRelationship] = field(default_factory=list)
    chunking_metadata: Optional[ChunkingMetadata] = None


ExtractionStatus = Literal["success", "failed"]


@dataclass
class ConversationExtractionStatus:
    conversation_id: str
    status: ExtractionStatus
    memory_count: int = 0
    error: Optional[Any] = None


@dataclass
class BatchExtractionResult:
    results: List[ConversationExtractionStatus] = field(default_factory=list)
    memories: List[ExtractedMemory] = field(default_factory=list)
    relationships: List[ExtractedRelationship] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0

    @property
    def total_memories(self) -> int:
        return len(self.memories)
