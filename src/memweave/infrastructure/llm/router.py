"""
Model router: picks the provider configuration for a task.

Regular extraction and MAKER consensus calls can run on different models;
MAKER issues several short calls per conversation so a cheaper model usually
fits it better.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Optional

from ...config import LLMSettings, MemweaveSettings
from .providers.base import LLMProvider
from .retry import RetryConfig

logger = logging.getLogger(__name__)


class TaskType(str, Enum):
    DEFAULT = "default"
    EXTRACTION = "extraction"
    CONSENSUS = "consensus"


def create_provider(settings: LLMSettings) -> LLMProvider:
    """Instantiate the provider described by ``settings``."""
    retry = RetryConfig.from_settings(settings.retry)
    common = dict(
        retry_config=retry,
        timeout=settings.timeout,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        default_retry_after=settings.rate_limit_default_retry_after,
        drain_interval=settings.rate_limit_drain_interval,
    )
    if settings.provider == "openai":
        from .providers.openai_provider import OpenAIProvider

        return OpenAIProvider(api_key=settings.api_key, model_name=settings.model, base_url=settings.base_url, **common)
    if settings.provider == "anthropic":
        from .providers.anthropic_provider import AnthropicProvider

        return AnthropicProvider(
            api_key=settings.api_key,
            model_name=settings.model,
            **common,
        )
    raise ValueError(f"Unknown provider type: {settings.provider}")


class ModelRouter:
    """
    Caches one provider per configuration name and maps task types onto names.

    Example::

        router = ModelRouter.from_settings(MemweaveSettings.from_env())
        provider = router.get_provider(TaskType.EXTRACTION)
    """

    DEFAULT_ROUTING: Dict[str, str] = {
        TaskType.DEFAULT.value: "default",
        TaskType.EXTRACTION.value: "default",
        TaskType.CONSENSUS.value: "default",
    }

    def __init__(self, models: Dict[str, LLMSettings], fallback: str = "default"):
        self.models = dict(models)
        self.fallback = fallback
        self._providers: Dict[str, LLMProvider] = {}
        self._routing: Dict[str, str] = dict(self.DEFAULT_ROUTING)
        logger.info(f"ModelRouter initialized with {len(self.models)} model configs")

    def get_provider(self, task_type: str = TaskType.DEFAULT.value) -> LLMProvider:
        key = task_type.value if isinstance(task_type, TaskType) else task_type
        name = self._routing.get(key, self.fallback)
        if name in self._providers:
            return self._providers[name]

        settings = self.models.get(name) or self.models.get(self.fallback)
        if settings is None:
            raise ValueError(f"No model config found for '{name}'")
        provider = create_provider(settings)
        self._providers[name] = provider
        return provider

    def register_provider(self, name: str, provider: LLMProvider) -> None:
        """Use an already built provider for ``name`` (e.g. a test double)."""
        self._providers[name] = provider

    def set_task_routing(self, task_type: str, config_name: str) -> None:
        key = task_type.value if isinstance(task_type, TaskType) else task_type
        self._routing[key] = config_name

    def list_models(self) -> Dict[str, str]:
        return {name: f"{cfg.provider}:{cfg.model}" for name, cfg in self.models.items()}

    @classmethod
    def from_settings(cls, settings: MemweaveSettings, consensus: Optional[LLMSettings] = None) -> "ModelRouter":
        models = {"default": settings.llm}
        router = cls(models)
        if consensus is not None:
            router.models["consensus"] = consensus
            router.set_task_routing(TaskType.CONSENSUS, "consensus")
        return router
