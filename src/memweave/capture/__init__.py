"""
Chat export capture: provider detection, parsing, validation and streaming
assembly into normalized conversations.
"""

from .capture import ChatCapture, ParseOptions
from .detector import DetectionResult, detect_by_structure, detect_with_confidence, detection_failure_reason
from .parsers import AnthropicExportParser, ConversationParser, OpenAIExportParser, ParserKind
from .registry import ParserRegistry, create_default_registry
from .schema import (
    NormalizedConversation,
    NormalizedMessage,
    StreamingBuilderState,
    StreamingChunk,
    ValidationResult,
)
from .streaming import StreamingConversationBuilder
from .validator import validate_conversation, validate_conversations

__all__ = [
    "AnthropicExportParser",
    "ChatCapture",
    "ConversationParser",
    "DetectionResult",
    "NormalizedConversation",
    "NormalizedMessage",
    "OpenAIExportParser",
    "ParseOptions",
    "ParserKind",
    "ParserRegistry",
    "StreamingBuilderState",
    "StreamingChunk",
    "StreamingConversationBuilder",
    "ValidationResult",
    "create_default_registry",
    "detect_by_structure",
    "detect_with_confidence",
    "detection_failure_reason",
    "validate_conversation",
    "validate_conversations",
]
