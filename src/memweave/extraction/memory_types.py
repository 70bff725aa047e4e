"""
Built-in memory types and registration checks for custom ones.
"""

from __future__ import annotations

from typing import Dict

from .schema import ExtractedMemory, MemoryTypeConfig


def _has_content(memory: ExtractedMemory) -> bool:
    return bool(memory.content and memory.content.strip())


def _valid_entity(memory: ExtractedMemory) -> bool:
    entity_type = memory.metadata.get("entityType")
    return _has_content(memory) and (entity_type is None or entity_type in ("person", "organization", "place", "concept"))


BUILTIN_MEMORY_TYPES: Dict[str, MemoryTypeConfig] = {
    "entity": MemoryTypeConfig(
        type="entity",
        extraction_prompt=(
            "ENTITIES: Extract people, organizations, places, and concepts mentioned.\n"
            "  - name: The entity name\n"
            "  - entityType: 'person', 'organization', 'place', or 'concept'\n"
            "  - description: Brief description of the entity"
        ),
        schema={
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "entityType": {"type": "string", "enum": ["person", "organization", "place", "concept"]},
                "description": {"type": "string"},
            },
        },
        validator=_valid_entity,
    ),
    "fact": MemoryTypeConfig(
        type="fact",
        extraction_prompt=(
            "FACTS: Extract factual statements and knowledge shared.\n"
            "  - statement: The factual statement\n"
            "  - category: Category of the fact (e.g., 'technical', 'personal', 'business')"
        ),
        schema={
            "type": "object",
            "properties": {"statement": {"type": "string"}, "category": {"type": "string"}},
        },
        validator=_has_content,
    ),
    "decision": MemoryTypeConfig(
        type="decision",
        extraction_prompt=(
            "DECISIONS: Extract decisions, choices, and conclusions made.\n"
            "  - decision: The decision made\n"
            "  - rationale: Why the decision was made\n"
            "  - alternatives: Other options that were considered"
        ),
        schema={
            "type": "object",
            "properties": {
                "decision": {"type": "string"},
                "rationale": {"type": "string"},
                "alternatives": {"type": "array", "items": {"type": "string"}},
            },
        },
        validator=_has_content,
    ),
    "task": MemoryTypeConfig(
        type="task",
        extraction_prompt=(
            "TASKS: Extract action items and follow-ups someone committed to.\n"
            "  - task: What needs to be done\n"
            "  - assignee: Who is responsible, if stated\n"
            "  - dueDate: Deadline, if stated"
        ),
        schema={
            "type": "object",
            "properties": {
                "task": {"type": "string"},
                "assignee": {"type": "string"},
                "dueDate": {"type": "string"},
            },
        },
        validator=_has_content,
    ),
}


# Built-ins that custom registrations may not replace; ``task`` may be redefined.
CORE_MEMORY_TYPES = ("entity", "fact", "decision")


def check_custom_type(name: str, config: MemoryTypeConfig) -> str:
    """
    Validate a custom memory type registration and return its normalized key.

    Raises:
        ValueError: empty name, clash with a built-in type, mismatched
            ``config.type``, empty prompt, or a malformed schema.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Memory type name must be a non-empty string")
    key = name.strip().lower()
    if key in CORE_MEMORY_TYPES:
        raise ValueError(f"Memory type '{name}' conflicts with default type '{key}'")
    if (config.type or "").strip().lower() != key:
        raise ValueError(f"Config type '{config.type}' must match the registered type name '{name}'")
    if not config.extraction_prompt or not config.extraction_prompt.strip():
        raise ValueError(f"Memory type '{name}' must have a non-empty extraction_prompt")
    if config.schema is not None:
        if "type" not in config.schema:
            raise ValueError(f"Memory type '{name}' schema must have a 'type' field")
        if config.schema["type"] == "object" and not isinstance(config.schema.get("properties"), dict):
            raise ValueError(f"Memory type '{name}' object schema must have a 'properties' field")
    return key
