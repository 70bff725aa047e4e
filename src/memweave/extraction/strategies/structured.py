"""
Structured-output extraction strategy.

The model is asked for JSON of the form::

    {"memories": [{"type", "content", "confidence", "metadata"}],
     "relationships": [{"from_memory_index", "to_memory_index",
                        "relationship_type", "confidence"}]}

and the answer is turned into ``ExtractedMemory`` / ``ExtractedRelationship``
records with fresh ids.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from ...capture.schema import NormalizedConversation, NormalizedMessage
from ...core.errors import ExtractionError
from ...utils.timeutils import generate_id, now_iso
from ..memory_types import BUILTIN_MEMORY_TYPES
from ..schema import (
    RELATIONSHIP_TYPES,
    ExtractedMemory,
    ExtractedRelationship,
    IncrementalContext,
    MemoryTypeConfig,
    RawExtractionResult,
    StrategyConfig,
)
from .base import ChunkContext, ExtractionStrategy

logger = logging.getLogger(__name__)

_RELATIONSHIP_GUIDE = """Also identify relationships between memories:
- works_at: person works at organization
- related_to: general relationship between memories
- depends_on: one memory depends on another
- mentions: one memory mentions another entity"""

_CONFIDENCE_GUIDE = """For each memory:
- Assign a confidence score between 0 and 1 (1 = very confident, 0 = uncertain)
- Extract relevant metadata based on the memory type
- Only extract memories that are clearly stated or strongly implied"""

INCREMENTAL_MEMORY_TYPES = ["entity", "fact", "decision"]


def format_messages(messages: List[NormalizedMessage]) -> str:
    return "\n\n".join(f"{m.role.upper()}: {m.content}" for m in messages)


def create_chunk_summary(messages: List[NormalizedMessage], memories: List[ExtractedMemory]) -> str:
    types = list(dict.fromkeys(m.type for m in memories))
    key_topics = "; ".join(m.content for m in memories[:3])
    return (
        f"Processed {len(messages)} messages. Extracted {len(memories)} memories "
        f"({', '.join(types)}). Key topics: {key_topics}"
    )


class StructuredOutputStrategy(ExtractionStrategy):
    name = "structured-output"

    # ==================== extraction ====================

    async def extract(
        self,
        conversation: NormalizedConversation,
        workspace_id: str,
        config: StrategyConfig,
    ) -> RawExtractionResult:
        prompt = self.build_prompt(conversation.messages, config.memory_types, config.memory_type_configs)
        schema = self.build_schema(config.memory_types, config.memory_type_configs)
        result = await config.provider.complete_structured(prompt, schema, config.model_params)
        return self.transform_result(result, conversation.id, workspace_id, conversation.message_ids)

    async def extract_from_chunk(
        self,
        messages: List[NormalizedMessage],
        conversation_id: str,
        workspace_id: str,
        chunk_id: str,
        config: StrategyConfig,
        previous_chunk_context: Optional[ChunkContext] = None,
    ) -> RawExtractionResult:
        prompt = self.build_chunk_prompt(
            messages, config.memory_types, config.memory_type_configs, previous_chunk_context
        )
        schema = self.build_schema(config.memory_types, config.memory_type_configs)
        result = await config.provider.complete_structured(prompt, schema, config.model_params)
        return self.transform_result(
            result, conversation_id, workspace_id, [m.id for m in messages], chunk_id=chunk_id
        )

    async def extract_incremental(
        self,
        messages: List[NormalizedMessage],
        context: IncrementalContext,
        config: StrategyConfig,
    ) -> RawExtractionResult:
        memory_types = config.memory_types or INCREMENTAL_MEMORY_TYPES
        prompt = self.build_incremental_prompt(messages, context.existing_memories, context.message_history)
        schema = self.build_schema(memory_types, config.memory_type_configs)
        result = await config.provider.complete_structured(prompt, schema, config.model_params)
        return self.transform_result(result, context.conversation_id, context.workspace_id, [m.id for m in messages])

    # ==================== prompts ====================

    def build_prompt(
        self,
        messages: List[NormalizedMessage],
        memory_types: List[str],
        memory_type_configs: Optional[Dict[str, MemoryTypeConfig]] = None,
    ) -> str:
        instructions = self.get_type_instructions(memory_types, memory_type_configs)
        return (
            "Analyze the following conversation and extract structured memories.\n\n"
            f"CONVERSATION:\n{format_messages(messages)}\n\n"
            "INSTRUCTIONS:\nExtract the following types of memories from the conversation:\n\n"
            f"{instructions}\n\n{_CONFIDENCE_GUIDE}\n\n{_RELATIONSHIP_GUIDE}\n\n"
            "Return your analysis in the structured format."
        )

    def build_chunk_prompt(
        self,
        messages: List[NormalizedMessage],
        memory_types: List[str],
        memory_type_configs: Optional[Dict[str, MemoryTypeConfig]] = None,
        previous_chunk_context: Optional[ChunkContext] = None,
    ) -> str:
        instructions = self.get_type_instructions(memory_types, memory_type_configs)
        context_section = ""
        if previous_chunk_context is not None:
            previous = "\n".join(
                f"{i + 1}. [{m['type']}] {m['content']}"
                for i, m in enumerate(previous_chunk_context.extracted_memories)
            )
            context_section = (
                "\nPREVIOUS CHUNK CONTEXT:\n"
                f"This is chunk {previous_chunk_context.sequence + 1} of a larger conversation. "
                "The previous chunk contained:\n\n"
                f"Summary: {previous_chunk_context.summary}\n\n"
                f"Previously extracted memories:\n{previous}\n\n"
                "When extracting memories from this chunk:\n"
                "- Consider the context from the previous chunk\n"
                "- Avoid duplicating memories already extracted\n"
                "- Focus on NEW information in this chunk\n"
            )
        return (
            "Analyze the following conversation chunk and extract structured memories.\n"
            f"{context_section}\n"
            f"CURRENT CHUNK:\n{format_messages(messages)}\n\n"
            "INSTRUCTIONS:\nExtract the following types of memories from this chunk:\n\n"
            f"{instructions}\n\n{_CONFIDENCE_GUIDE}\n"
            "- Avoid duplicating memories from the previous chunk context\n\n"
            f"{_RELATIONSHIP_GUIDE}\n\n"
            "Return your analysis in the structured format."
        )

    def build_incremental_prompt(
        self,
        new_messages: List[NormalizedMessage],
        existing_memories: List[ExtractedMemory],
        message_history: List[NormalizedMessage],
    ) -> str:
        context = ""
        if message_history:
            context = f"\n\nPREVIOUS CONTEXT:\n{format_messages(message_history[-3:])}"
        existing = ""
        if existing_memories:
            listing = "\n".join(f"{i}. [{m.type}] {m.content}" for i, m in enumerate(existing_memories))
            existing = f"\n\nEXISTING MEMORIES:\n{listing}"
        return (
            "Analyze the following new messages and extract any NEW memories or relationships.\n\n"
            f"NEW MESSAGES:\n{format_messages(new_messages)}{context}{existing}\n\n"
            "INSTRUCTIONS:\nExtract NEW memories from the new messages. Focus on:\n"
            "- Entities (people, organizations, places, concepts)\n"
            "- Facts (statements, knowledge, information)\n"
            "- Decisions (choices, conclusions, action items)\n\n"
            "Only extract memories that are:\n"
            "1. Clearly stated in the NEW messages\n"
            "2. Not already captured in existing memories\n"
            "3. Have sufficient confidence (> 0.5)\n\n"
            "Also identify relationships between memories (both new and existing).\n\n"
            "Return your analysis in the structured format."
        )

    def get_type_instructions(
        self,
        memory_types: List[str],
        memory_type_configs: Optional[Dict[str, MemoryTypeConfig]] = None,
    ) -> str:
        configs = memory_type_configs or {}
        blocks = []
        for memory_type in memory_types:
            key = memory_type.lower()
            custom = configs.get(key)
            if custom is not None and custom.extraction_prompt:
                blocks.append(f"{memory_type.upper()}: {custom.extraction_prompt}")
            elif key in BUILTIN_MEMORY_TYPES:
                blocks.append(BUILTIN_MEMORY_TYPES[key].extraction_prompt)
            else:
                blocks.append(f"{memory_type.upper()}: Extract {memory_type} memories")
        return "\n\n".join(blocks)

    # ==================== schema ====================

    def build_schema(
        self,
        memory_types: List[str],
        memory_type_configs: Optional[Dict[str, MemoryTypeConfig]] = None,
    ) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "memories": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "type": {"type": "string", "enum": list(memory_types)},
                            "content": {"type": "string", "description": "The main content of the memory"},
                            "confidence": {
                                "type": "number",
                                "minimum": 0,
                                "maximum": 1,
                                "description": "Confidence score between 0 and 1",
                            },
                            "metadata": {
                                "type": "object",
                                "description": "Type-specific metadata",
                                "properties": self.get_metadata_schema(memory_types, memory_type_configs),
                            },
                        },
                        "required": ["type", "content", "confidence", "metadata"],
                    },
                },
                "relationships": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "from_memory_index": {"type": "number"},
                            "to_memory_index": {"type": "number"},
                            "relationship_type": {"type": "string", "enum": list(RELATIONSHIP_TYPES)},
                            "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                        },
                        "required": ["from_memory_index", "to_memory_index", "relationship_type", "confidence"],
                    },
                },
            },
            "required": ["memories", "relationships"],
        }

    def get_metadata_schema(
        self,
        memory_types: List[str],
        memory_type_configs: Optional[Dict[str, MemoryTypeConfig]] = None,
    ) -> Dict[str, Any]:
        configs = memory_type_configs or {}
        properties: Dict[str, Any] = {}
        for memory_type in memory_types:
            key = memory_type.lower()
            config = configs.get(key) or BUILTIN_MEMORY_TYPES.get(key)
            if config is not None and config.schema and isinstance(config.schema.get("properties"), dict):
                properties.update(config.schema["properties"])
        return properties

    # ==================== result handling ====================

    def transform_result(
        self,
        result: Any,
        conversation_id: str,
        workspace_id: str,
        source_message_ids: List[str],
        chunk_id: Optional[str] = None,
    ) -> RawExtractionResult:
        if not isinstance(result, dict) or not isinstance(result.get("memories", []), list):
            raise ExtractionError.parse_error(
                "Failed to parse JSON extraction result: expected an object with a 'memories' array",
                raw_response=json.dumps(result, default=str)[:2000],
            )

        now = now_iso()
        memories: List[ExtractedMemory] = []
        index_to_id: Dict[int, str] = {}
        for index, item in enumerate(result.get("memories") or []):
            if not isinstance(item, dict) or not item.get("type") or not item.get("content"):
                logger.debug(f"Skipping malformed memory at index {index} for {conversation_id}")
                continue
            confidence = _clamp(item.get("confidence", 0.0))
            memory = ExtractedMemory(
                id=generate_id("mem"),
                type=str(item["type"]).lower(),
                content=str(item["content"]).strip(),
                confidence=confidence,
                workspace_id=workspace_id,
                conversation_id=conversation_id,
                source_message_ids=list(source_message_ids),
                created_at=now,
                metadata=item.get("metadata") if isinstance(item.get("metadata"), dict) else {},
            )
            if chunk_id is not None:
                memory.source_chunks = [chunk_id]
                memory.chunk_confidence = [confidence]
            index_to_id[index] = memory.id
            memories.append(memory)

        relationships: List[ExtractedRelationship] = []
        for item in result.get("relationships") or []:
            if not isinstance(item, dict):
                continue
            from_id = index_to_id.get(_as_index(item.get("from_memory_index")))
            to_id = index_to_id.get(_as_index(item.get("to_memory_index")))
            rel_type = item.get("relationship_type")
            if from_id is None or to_id is None or rel_type not in RELATIONSHIP_TYPES:
                continue
            relationships.append(
                ExtractedRelationship(
                    id=generate_id("rel"),
                    from_memory_id=from_id,
                    to_memory_id=to_id,
                    relationship_type=rel_type,
                    confidence=_clamp(item.get("confidence", 0.0)),
                    created_at=now,
                )
            )
        return RawExtractionResult(memories=memories, relationships=relationships)


def _clamp(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, number))


def _as_index(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return -1
