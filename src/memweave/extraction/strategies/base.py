from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from ...capture.schema import NormalizedConversation, NormalizedMessage
from ..schema import IncrementalContext, RawExtractionResult, StrategyConfig


@dataclass
class ChunkContext:
    """What the previous chunk produced, handed to the next chunk's prompt."""

    chunk_id: str
    sequence: int
    summary: str
    extracted_memories: List[dict] = field(default_factory=list)


class ExtractionStrategy(ABC):
    """Turns messages plus memory-type configuration into model calls."""

    name: str = "base"

    @abstractmethod
    async def extract(
        self,
        conversation: NormalizedConversation,
        workspace_id: str,
        config: StrategyConfig,
    ) -> RawExtractionResult:
        ...

    @abstractmethod
    async def extract_from_chunk(
        self,
        messages: List[NormalizedMessage],
        conversation_id: str,
        workspace_id: str,
        chunk_id: str,
        config: StrategyConfig,
        previous_chunk_context: Optional[ChunkContext] = None,
    ) -> RawExtractionResult:
        ...

    @abstractmethod
    async def extract_incremental(
        self,
        messages: List[NormalizedMessage],
        context: IncrementalContext,
        config: StrategyConfig,
    ) -> RawExtractionResult:
        ...
