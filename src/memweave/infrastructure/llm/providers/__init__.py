from .anthropic_provider import AnthropicProvider
from .base import (
    FunctionCallResult,
    FunctionDefinition,
    LLMProvider,
    ModelParams,
    ProviderInfo,
)
from .openai_provider import OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "FunctionCallResult",
    "FunctionDefinition",
    "LLMProvider",
    "ModelParams",
    "OpenAIProvider",
    "ProviderInfo",
]
