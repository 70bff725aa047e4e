"""
Incremental extraction over a conversation that is still growing.

Callers push message batches as they arrive; new memories are reported
through ``on("memory", callback)`` listeners. A memory whose normalized
content is already known keeps its original id and is not reported again.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from ..capture.schema import NormalizedMessage
from ..core.errors import ExtractionError, ExtractionErrorKind, Result
from ..utils.timeutils import now_iso
from .extractor import MemoryExtractor, memory_key
from .schema import ExtractedMemory, ExtractedRelationship, IncrementalContext

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 3
EVENTS = ("memory", "finalized")


@dataclass
class IncrementalState:
    conversation_id: str
    workspace_id: str
    message_count: int
    memory_count: int
    is_finalized: bool


class IncrementalExtractor:
    def __init__(self, extractor: MemoryExtractor, conversation_id: str, workspace_id: str):
        self.extractor = extractor
        self.conversation_id = conversation_id
        self.workspace_id = workspace_id
        self._messages: List[NormalizedMessage] = []
        self._extracted_upto = 0
        self._memories: List[ExtractedMemory] = []
        self._relationships: List[ExtractedRelationship] = []
        self._ids_by_key: Dict[str, str] = {}
        self._listeners: Dict[str, List[Callable[..., Any]]] = {event: [] for event in EVENTS}
        self._finalized = False

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown event '{event}', expected one of {', '.join(EVENTS)}")
        self._listeners[event].append(callback)

    async def add_messages(self, messages: List[NormalizedMessage]) -> Result[List[ExtractedMemory], ExtractionError]:
        if self._finalized:
            return Result.err(self._already_finalized())
        self._messages.extend(messages)
        return await self._extract_pending()

    async def finalize(self) -> Result[List[ExtractedMemory], ExtractionError]:
        if self._finalized:
            return Result.err(self._already_finalized())
        result = await self._extract_pending()
        if result.is_err():
            return result
        self._finalized = True
        await self._emit("finalized", list(self._memories))
        logger.info(
            f"Incremental extraction for {self.conversation_id} finalized with {len(self._memories)} memories"
        )
        return Result.ok(list(self._memories))

    def get_state(self) -> IncrementalState:
        return IncrementalState(
            conversation_id=self.conversation_id,
            workspace_id=self.workspace_id,
            message_count=len(self._messages),
            memory_count=len(self._memories),
            is_finalized=self._finalized,
        )

    @property
    def memories(self) -> List[ExtractedMemory]:
        return list(self._memories)

    @property
    def relationships(self) -> List[ExtractedRelationship]:
        return list(self._relationships)

    async def _extract_pending(self) -> Result[List[ExtractedMemory], ExtractionError]:
        pending = self._messages[self._extracted_upto:]
        if not pending:
            return Result.ok([])

        history = self._messages[max(0, self._extracted_upto - HISTORY_WINDOW):self._extracted_upto]
        context = IncrementalContext(
            conversation_id=self.conversation_id,
            workspace_id=self.workspace_id,
            existing_memories=list(self._memories),
            message_history=history,
        )
        config = self.extractor.strategy_config()
        try:
            raw = await self.extractor.strategy.extract_incremental(pending, context, config)
        except Exception as e:
            error = self.extractor.map_error(e, self.conversation_id, config.provider)
            logger.error(f"Incremental extraction failed for {self.conversation_id}: [{error.type}] {error.message}")
            return Result.err(error)
        self._extracted_upto = len(self._messages)

        accepted = self.extractor.filter_memories(raw.memories)
        id_map: Dict[str, str] = {}
        fresh: List[ExtractedMemory] = []
        created_at = now_iso()
        for memory in accepted:
            key = memory_key(memory.type, memory.content)
            known = self._ids_by_key.get(key)
            if known is not None:
                id_map[memory.id] = known
                continue
            memory.workspace_id = self.workspace_id
            memory.conversation_id = self.conversation_id
            if not memory.source_message_ids:
                memory.source_message_ids = [m.id for m in pending]
            memory.created_at = memory.created_at or created_at
            self._ids_by_key[key] = memory.id
            id_map[memory.id] = memory.id
            fresh.append(memory)

        self._memories.extend(fresh)
        alive = {m.id for m in self._memories}
        for rel in raw.relationships:
            source = id_map.get(rel.from_memory_id, rel.from_memory_id)
            target = id_map.get(rel.to_memory_id, rel.to_memory_id)
            if source in alive and target in alive:
                rel.from_memory_id, rel.to_memory_id = source, target
                self._relationships.append(rel)

        for memory in fresh:
            await self._emit("memory", memory)
        return Result.ok(fresh)

    async def _emit(self, event: str, payload: Any) -> None:
        for callback in self._listeners[event]:
            try:
                outcome = callback(payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(f"'{event}' listener raised for {self.conversation_id}: {e}")

    def _already_finalized(self) -> ExtractionError:
        return ExtractionError(
            message=f"Incremental extractor for conversation {self.conversation_id} is already finalized",
            kind=ExtractionErrorKind.ALREADY_FINALIZED,
            code="ALREADY_FINALIZED",
        )
