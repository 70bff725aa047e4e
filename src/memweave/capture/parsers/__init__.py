from .anthropic_export import AnthropicExportParser
from .base import ConversationParser, ParserKind, normalize_role
from .openai_export import OpenAIExportParser

__all__ = [
    "AnthropicExportParser",
    "ConversationParser",
    "OpenAIExportParser",
    "ParserKind",
    "normalize_role",
]
