"""
LLM provider adapter layer.

- ``LLMProvider``: retry, rate-limit queueing, JSON mode, function calling
- OpenAI and Anthropic implementations
- ``ModelRouter`` / ``create_provider`` for building providers from settings
"""

from .providers.base import (
    FunctionCallResult,
    FunctionDefinition,
    LLMProvider,
    ModelParams,
    ProviderInfo,
)
from .rate_limit import RateLimitGate
from .retry import RetryConfig, is_rate_limit_error, is_retryable_error, retry_after_of
from .router import ModelRouter, TaskType, create_provider

__all__ = [
    "FunctionCallResult",
    "FunctionDefinition",
    "LLMProvider",
    "ModelParams",
    "ModelRouter",
    "ProviderInfo",
    "RateLimitGate",
    "RetryConfig",
    "TaskType",
    "create_provider",
    "is_rate_limit_error",
    "is_retryable_error",
    "retry_after_of",
]
