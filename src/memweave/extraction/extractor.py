"""
MemoryExtractor: turns normalized conversations into typed memories.

Public methods return ``Result`` values; provider, parsing and chunking
failures are mapped onto ``ExtractionError`` kinds instead of propagating.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..capture.schema import NormalizedConversation
from ..config.settings import ChunkingSettings, ExtractionSettings
from ..core.errors import ExtractionError, ExtractionErrorKind, Result
from ..infrastructure.llm.providers.base import LLMProvider, ModelParams
from ..infrastructure.llm.retry import DEFAULT_RETRY_AFTER, retry_after_of, status_code_of
from ..utils.timeutils import now_iso
from .chunking import ChunkingOrchestrator, ConversationChunk, MemoryDeduplicator, TokenCounter
from .memory_types import BUILTIN_MEMORY_TYPES, check_custom_type
from .schema import (
    BatchExtractionResult,
    ChunkingMetadata,
    ConversationExtractionStatus,
    ExtractedMemory,
    ExtractedRelationship,
    ExtractionOptions,
    ExtractionProfile,
    ExtractionResult,
    MemoryTypeConfig,
    RawExtractionResult,
    StrategyConfig,
)
from .strategies import ChunkContext, ExtractionStrategy, StructuredOutputStrategy, create_chunk_summary

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_TYPES = ["entity", "fact", "decision", "task"]


def normalize_text(s: str) -> str:
    return re.sub(r"\s+", " ", (s or "").strip()).lower()


def memory_key(memory_type: str, content: str) -> str:
    return hashlib.sha256(f"{memory_type.lower()}:{normalize_text(content)}".encode("utf-8")).hexdigest()


@dataclass
class ExtractorConfig:
    provider: LLMProvider
    strategy: Optional[ExtractionStrategy] = None
    memory_types: List[str] = field(default_factory=lambda: list(DEFAULT_MEMORY_TYPES))
    memory_type_configs: Dict[str, MemoryTypeConfig] = field(default_factory=dict)
    min_confidence: float = 0.5
    batch_size: int = 10
    model_params: Optional[ModelParams] = None
    # None disables chunking.
    chunking: Optional[ChunkingSettings] = None
    profiles: Dict[str, ExtractionProfile] = field(default_factory=dict)

    @classmethod
    def from_settings(
        cls,
        settings: ExtractionSettings,
        provider: LLMProvider,
        strategy: Optional[ExtractionStrategy] = None,
    ) -> "ExtractorConfig":
        return cls(
            provider=provider,
            strategy=strategy,
            memory_types=list(settings.memory_types),
            min_confidence=settings.min_confidence,
            batch_size=settings.batch_size,
            chunking=settings.chunking if settings.chunking.enabled else None,
        )


@dataclass
class _Plan:
    strategy: ExtractionStrategy
    provider: LLMProvider
    memory_types: List[str]
    min_confidence: float
    model_params: Optional[ModelParams]

    def strategy_config(self, memory_type_configs: Dict[str, MemoryTypeConfig]) -> StrategyConfig:
        return StrategyConfig(
            provider=self.provider,
            memory_types=list(self.memory_types),
            memory_type_configs=dict(memory_type_configs),
            model_params=self.model_params,
        )


class MemoryExtractor:
    def __init__(self, config: ExtractorConfig):
        self.config = config
        self.strategy = config.strategy or StructuredOutputStrategy()
        self._memory_type_configs: Dict[str, MemoryTypeConfig] = {}
        for name, type_config in config.memory_type_configs.items():
            self.register_memory_type(name, type_config)
        self._profiles: Dict[str, ExtractionProfile] = dict(config.profiles)
        self._token_counter = TokenCounter()
        self._chunker = ChunkingOrchestrator(self._token_counter)
        self._deduplicator = MemoryDeduplicator()

    # ==================== registration ====================

    def register_memory_type(self, name: str, config: MemoryTypeConfig) -> None:
        key = check_custom_type(name, config)
        if key in self._memory_type_configs:
            logger.info(f"Replacing custom memory type '{key}'")
        self._memory_type_configs[key] = config

    def register_profile(self, name: str, profile: ExtractionProfile) -> None:
        if not name:
            raise ValueError("Profile name must be a non-empty string")
        self._profiles[name] = profile

    def get_registered_types(self) -> List[str]:
        types = list(BUILTIN_MEMORY_TYPES)
        types.extend(k for k in self._memory_type_configs if k not in types)
        return types

    def strategy_config(self, options: Optional[ExtractionOptions] = None) -> StrategyConfig:
        return self._plan(options or ExtractionOptions()).strategy_config(self._memory_type_configs)

    def filter_memories(
        self, memories: List[ExtractedMemory], options: Optional[ExtractionOptions] = None
    ) -> List[ExtractedMemory]:
        """Apply the confidence floor, requested types and registered validators."""
        return self._accept(memories, self._plan(options or ExtractionOptions()))

    @property
    def memory_type_configs(self) -> Dict[str, MemoryTypeConfig]:
        return dict(self._memory_type_configs)

    @property
    def chunker(self) -> ChunkingOrchestrator:
        return self._chunker

    # ==================== extraction ====================

    async def extract(
        self,
        conversation: NormalizedConversation,
        workspace_id: str,
        options: Optional[ExtractionOptions] = None,
    ) -> Result[ExtractionResult, ExtractionError]:
        options = options or ExtractionOptions()
        try:
            plan = self._plan(options)
        except ValueError as e:
            return Result.err(ExtractionError.validation_error(str(e)))

        chunking = self.config.chunking
        chunks: Optional[List[ConversationChunk]] = None
        if chunking is not None and chunking.enabled and self._chunker.needs_chunking(conversation, chunking):
            try:
                chunks = self._chunker.chunk(conversation, chunking)
            except ValueError as e:
                message = f"Chunking failed for conversation {conversation.id}: {e}"
                logger.error(message)
                return Result.err(ExtractionError.validation_error(message))

        try:
            if chunks is not None:
                result = await self._extract_chunked(conversation, workspace_id, plan, chunking, chunks)
            else:
                raw = await plan.strategy.extract(
                    conversation, workspace_id, plan.strategy_config(self._memory_type_configs)
                )
                result = ExtractionResult(
                    conversation_id=conversation.id, memories=raw.memories, relationships=raw.relationships
                )
        except Exception as e:
            error = self.map_error(e, conversation.id, plan.provider)
            logger.error(f"Extraction failed for conversation {conversation.id}: [{error.type}] {error.message}")
            return Result.err(error)

        memories = self._accept(result.memories, plan)
        self._stamp(memories, conversation, workspace_id)
        result.memories = memories
        if options.include_relationships:
            alive = {m.id for m in memories}
            result.relationships = [
                r for r in result.relationships if r.from_memory_id in alive and r.to_memory_id in alive
            ]
        else:
            result.relationships = []
        logger.debug(f"Extracted {len(memories)} memories from conversation {conversation.id}")
        return Result.ok(result)

    async def extract_batch(
        self,
        conversations: Sequence[NormalizedConversation],
        workspace_id: str,
        options: Optional[ExtractionOptions] = None,
    ) -> Result[BatchExtractionResult, ExtractionError]:
        semaphore = asyncio.Semaphore(max(1, self.config.batch_size))

        async def run(conversation: NormalizedConversation) -> Result[ExtractionResult, ExtractionError]:
            async with semaphore:
                return await self.extract(conversation, workspace_id, options)

        outcomes = await asyncio.gather(*(run(c) for c in conversations))

        batch = BatchExtractionResult()
        best: Dict[str, ExtractedMemory] = {}
        order: List[str] = []
        remap: Dict[str, str] = {}
        relationships: List[ExtractedRelationship] = []
        for conversation, outcome in zip(conversations, outcomes):
            if outcome.is_err():
                batch.failure_count += 1
                batch.results.append(
                    ConversationExtractionStatus(conversation_id=conversation.id, status="failed", error=outcome.error)
                )
                continue
            result = outcome.value
            batch.success_count += 1
            batch.results.append(
                ConversationExtractionStatus(
                    conversation_id=conversation.id, status="success", memory_count=len(result.memories)
                )
            )
            relationships.extend(result.relationships)
            for memory in result.memories:
                key = memory_key(memory.type, memory.content)
                current = best.get(key)
                if current is None:
                    best[key] = memory
                    order.append(key)
                elif memory.confidence > current.confidence:
                    remap[current.id] = memory.id
                    best[key] = memory
                else:
                    remap[memory.id] = current.id

        batch.memories = [best[k] for k in order]
        batch.relationships = _remap_relationships(relationships, remap, {m.id for m in batch.memories})
        logger.info(
            f"Batch extraction finished: {batch.success_count} succeeded, {batch.failure_count} failed, "
            f"{batch.total_memories} unique memories"
        )
        return Result.ok(batch)

    def create_incremental_extractor(self, conversation_id: str, workspace_id: str) -> "IncrementalExtractor":
        from .incremental import IncrementalExtractor

        return IncrementalExtractor(self, conversation_id, workspace_id)

    # ==================== internals ====================

    def _plan(self, options: ExtractionOptions) -> _Plan:
        profile = ExtractionProfile()
        if options.profile:
            if options.profile not in self._profiles:
                raise ValueError(f"Unknown extraction profile '{options.profile}'")
            profile = self._profiles[options.profile]

        memory_types = options.memory_types or profile.memory_types or self.config.memory_types
        min_confidence = options.min_confidence
        if min_confidence is None:
            min_confidence = profile.min_confidence
        if min_confidence is None:
            min_confidence = self.config.min_confidence
        return _Plan(
            strategy=profile.strategy or self.strategy,
            provider=profile.provider or self.config.provider,
            memory_types=[t.lower() for t in memory_types],
            min_confidence=min_confidence,
            model_params=profile.model_params or self.config.model_params,
        )

    async def _extract_chunked(
        self,
        conversation: NormalizedConversation,
        workspace_id: str,
        plan: _Plan,
        chunking: ChunkingSettings,
        chunks: List[ConversationChunk],
    ) -> ExtractionResult:
        started = time.perf_counter()
        strategy_config = plan.strategy_config(self._memory_type_configs)

        memories: List[ExtractedMemory] = []
        relationships: List[ExtractedRelationship] = []
        failed: List[str] = []
        last_error: Optional[BaseException] = None
        previous: Optional[ChunkContext] = None
        for chunk in chunks:
            try:
                raw: RawExtractionResult = await plan.strategy.extract_from_chunk(
                    chunk.messages, conversation.id, workspace_id, chunk.id, strategy_config, previous
                )
            except Exception as e:
                if chunking.failure_mode == "fail-fast":
                    logger.error(f"Chunk {chunk.id} failed, stopping (fail-fast): {e}")
                    raise
                logger.warning(f"Chunk {chunk.id} failed, continuing: {e}")
                failed.append(chunk.id)
                last_error = e
                continue
            memories.extend(raw.memories)
            relationships.extend(raw.relationships)
            previous = ChunkContext(
                chunk_id=chunk.id,
                sequence=chunk.sequence,
                summary=create_chunk_summary(chunk.messages, raw.memories),
                extracted_memories=[{"type": m.type, "content": m.content} for m in raw.memories],
            )

        if chunks and len(failed) == len(chunks) and last_error is not None:
            raise last_error

        unique = self._deduplicator.deduplicate(memories)
        merged_relationships = self._deduplicator.merge_relationships(unique, relationships)
        return ExtractionResult(
            conversation_id=conversation.id,
            memories=unique,
            relationships=merged_relationships,
            chunking_metadata=ChunkingMetadata(
                enabled=True,
                strategy=chunks[0].metadata.get("chunking_strategy", chunking.strategy) if chunks else chunking.strategy,
                total_chunks=len(chunks),
                failed_chunks=failed,
                total_tokens=self._chunker.count_tokens(conversation, chunking),
                processing_time=time.perf_counter() - started,
            ),
        )

    def _accept(self, memories: List[ExtractedMemory], plan: _Plan) -> List[ExtractedMemory]:
        accepted = []
        for memory in memories:
            if memory.confidence < plan.min_confidence:
                continue
            if memory.type not in plan.memory_types:
                logger.debug(f"Dropping memory of unrequested type '{memory.type}'")
                continue
            type_config = self._memory_type_configs.get(memory.type) or BUILTIN_MEMORY_TYPES.get(memory.type)
            if type_config is not None and type_config.validator is not None:
                try:
                    valid = bool(type_config.validator(memory))
                except Exception as e:
                    logger.warning(f"Validator for '{memory.type}' raised, rejecting memory: {e}")
                    valid = False
                if not valid:
                    continue
            accepted.append(memory)
        return accepted

    @staticmethod
    def _stamp(memories: List[ExtractedMemory], conversation: NormalizedConversation, workspace_id: str) -> None:
        created_at = now_iso()
        for memory in memories:
            memory.workspace_id = workspace_id
            memory.conversation_id = conversation.id
            if not memory.source_message_ids:
                memory.source_message_ids = conversation.message_ids
            if not memory.created_at:
                memory.created_at = created_at

    @staticmethod
    def map_error(error: BaseException, conversation_id: str, provider: Optional[LLMProvider] = None) -> ExtractionError:
        provider_name = getattr(provider, "name", None)
        message = getattr(error, "message", None) or str(error)
        status = status_code_of(error)
        kind = error.kind if isinstance(error, ExtractionError) else None

        if kind == ExtractionErrorKind.RATE_LIMIT or status == 429 or "rate limit" in message.lower():
            retry_after = retry_after_of(error) or DEFAULT_RETRY_AFTER
            return ExtractionError.rate_limit(
                retry_after,
                provider=provider_name,
                message=f"Rate limit exceeded while extracting conversation {conversation_id}: {message}",
            )
        if kind == ExtractionErrorKind.PARSE_ERROR or "Failed to parse JSON" in message:
            raw = getattr(error, "raw_response", None) or getattr(error, "raw", None) or message
            return ExtractionError.parse_error(
                f"Failed to parse JSON for conversation {conversation_id}: {message}", raw_response=raw
            )
        return ExtractionError.llm_error(
            f"LLM error while extracting conversation {conversation_id}: {message}",
            provider=provider_name,
            cause=error,
            status_code=status,
        )


def _remap_relationships(
    relationships: List[ExtractedRelationship], remap: Dict[str, str], alive: set
) -> List[ExtractedRelationship]:
    def resolve(memory_id: str) -> str:
        while memory_id in remap:
            memory_id = remap[memory_id]
        return memory_id

    seen = set()
    out = []
    for rel in relationships:
        source, target = resolve(rel.from_memory_id), resolve(rel.to_memory_id)
        key = (source, target, rel.relationship_type)
        if source not in alive or target not in alive or key in seen:
            continue
        seen.add(key)
        rel.from_memory_id, rel.to_memory_id = source, target
        out.append(rel)
    return out
