"""
Token counting for chunking decisions.

Estimates are character based; ``openai-tiktoken`` uses the ``cl100k_base``
encoding and falls back to the approximate method if the encoder cannot be
loaded.
"""

from __future__ import annotations

import logging
import math
from collections import OrderedDict
from typing import Iterable, Optional, Tuple

import tiktoken

from ...capture.schema import NormalizedConversation, NormalizedMessage
from .types import TokenCount

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = {
    "approximate": 4.0,
    "anthropic-estimate": 3.5,
    "gemini-estimate": 3.8,
}

_ACCURACY = {
    "approximate": "low",
    "anthropic-estimate": "medium",
    "gemini-estimate": "medium",
    "openai-tiktoken": "high",
}


class TokenCounter:
    def __init__(self, cache_size: int = 1000, default_method: str = "approximate"):
        self.cache_size = cache_size
        self.default_method = default_method
        self._cache: "OrderedDict[Tuple[str, str], int]" = OrderedDict()
        self._encoder = None
        self._encoder_failed = False

    def count(self, text: str, method: Optional[str] = None) -> int:
        method = method or self.default_method
        if not text:
            return 0
        key = (method, text)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        tokens = self._count_uncached(text, method)
        self._cache[key] = tokens
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return tokens

    def count_detailed(self, text: str, method: Optional[str] = None) -> TokenCount:
        method = method or self.default_method
        tokens = self.count(text, method)
        used = method
        if method == "openai-tiktoken" and self._encoder_failed:
            used = "approximate"
        return TokenCount(tokens=tokens, method=used, accuracy=_ACCURACY.get(used, "low"))

    def count_message(self, message: NormalizedMessage, method: Optional[str] = None) -> int:
        return self.count(f"{message.role}: {message.content}", method)

    def count_messages(self, messages: Iterable[NormalizedMessage], method: Optional[str] = None) -> int:
        return sum(self.count_message(m, method) for m in messages)

    def count_conversation(self, conversation: NormalizedConversation, method: Optional[str] = None) -> int:
        return self.count_messages(conversation.messages, method)

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_info(self) -> dict:
        return {"size": len(self._cache), "max_size": self.cache_size}

    def _count_uncached(self, text: str, method: str) -> int:
        if method == "openai-tiktoken":
            encoder = self._get_encoder()
            if encoder is not None:
                return len(encoder.encode(text))
            method = "approximate"
        ratio = CHARS_PER_TOKEN.get(method)
        if ratio is None:
            logger.warning(f"Unknown token count method '{method}', using approximate")
            ratio = CHARS_PER_TOKEN["approximate"]
        return math.ceil(len(text) / ratio)

    def _get_encoder(self):
        if self._encoder is None and not self._encoder_failed:
            try:
                self._encoder = tiktoken.get_encoding("cl100k_base")
            except Exception as e:
                logger.warning(f"tiktoken encoder unavailable, falling back to approximate counting: {e}")
                self._encoder_failed = True
        return self._encoder
