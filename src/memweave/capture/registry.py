"""
Ordered registry of conversation parsers.

Detection is first-match in registration order: the earliest registered
parser whose ``can_parse`` accepts the value wins.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set

from .parsers.anthropic_export import AnthropicExportParser
from .parsers.base import ConversationParser
from .parsers.openai_export import OpenAIExportParser

logger = logging.getLogger(__name__)


class ParserRegistry:
    def __init__(self) -> None:
        self._parsers: Dict[str, ConversationParser] = {}

    def register(self, provider_name: str, parser: ConversationParser) -> None:
        """Register a parser; an existing name keeps its position and is replaced."""
        if not provider_name:
            raise ValueError("provider_name must not be empty")
        if provider_name in self._parsers:
            logger.info(f"Replacing parser for provider '{provider_name}'")
        self._parsers[provider_name] = parser

    def unregister(self, provider_name: str) -> bool:
        return self._parsers.pop(provider_name, None) is not None

    def get(self, provider_name: str) -> Optional[ConversationParser]:
        return self._parsers.get(provider_name)

    def has(self, provider_name: str) -> bool:
        return provider_name in self._parsers

    def list_providers(self) -> Set[str]:
        return set(self._parsers)

    def ordered_providers(self) -> List[str]:
        return list(self._parsers)

    def detect(self, raw: Any) -> Optional[str]:
        """Return the first registered provider whose parser accepts ``raw``."""
        for name, parser in self._parsers.items():
            try:
                if parser.can_parse(raw):
                    return name
            except Exception as e:
                logger.warning(f"Parser '{name}' can_parse raised, skipping: {e}")
        return None

    def __len__(self) -> int:
        return len(self._parsers)

    def __contains__(self, provider_name: object) -> bool:
        return provider_name in self._parsers


def create_default_registry() -> ParserRegistry:
    """Registry with the built-in OpenAI and Anthropic parsers, in that order."""
    registry = ParserRegistry()
    registry.register("openai", OpenAIExportParser())
    registry.register("anthropic", AnthropicExportParser())
    return registry
