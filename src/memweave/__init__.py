# memweave/__init__.py
"""
memweave - chat export capture and LLM memory extraction

- Parse ChatGPT / Claude exports into normalized conversations
- Assemble streamed conversations chunk by chunk
- Extract entities, facts, decisions and tasks through an LLM
- Chunk long conversations and deduplicate across chunks
- MAKER: redundant microagent calls reconciled by voting
"""

from __future__ import annotations

__version__ = "0.3.0"


_LAZY = {
    "ChatCapture": "memweave.capture",
    "ParseOptions": "memweave.capture",
    "NormalizedConversation": "memweave.capture",
    "NormalizedMessage": "memweave.capture",
    "StreamingConversationBuilder": "memweave.capture",
    "MemoryExtractor": "memweave.extraction",
    "ExtractorConfig": "memweave.extraction",
    "ExtractionOptions": "memweave.extraction",
    "ExtractedMemory": "memweave.extraction",
    "MemoryTypeConfig": "memweave.extraction",
    "StructuredOutputStrategy": "memweave.extraction",
    "LLMProvider": "memweave.infrastructure.llm",
    "ModelParams": "memweave.infrastructure.llm",
    "ModelRouter": "memweave.infrastructure.llm",
    "create_provider": "memweave.infrastructure.llm",
    "MakerConfig": "memweave.maker",
    "MakerResult": "memweave.maker",
    "maker_reliable_extract": "memweave.maker",
    "maker_result_to_memories": "memweave.maker",
    "MemweaveSettings": "memweave.config",
    "CaptureError": "memweave.core.errors",
    "ExtractionError": "memweave.core.errors",
    "Result": "memweave.core.errors",
}


# Deferred so that importing memweave does not pull in the LLM SDKs.
def __getattr__(name: str):
    module_name = _LAZY.get(name)
    if module_name is None:
        raise AttributeError(f"module 'memweave' has no attribute '{name}'")
    import importlib

    return getattr(importlib.import_module(module_name), name)


__all__ = ["__version__", *_LAZY]
