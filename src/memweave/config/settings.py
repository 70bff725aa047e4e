"""
pydantic settings models with YAML and environment loading.

Every model ignores unknown keys so a shared YAML file can carry settings for
other components.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

ChunkingStrategyName = Literal["sliding-window", "conversation-boundary", "semantic", "custom"]
FailureMode = Literal["fail-fast", "continue-on-error"]
TokenCountMethod = Literal["approximate", "openai-tiktoken", "anthropic-estimate", "gemini-estimate"]

DEFAULT_MAX_FILE_SIZE = 50 * 1024 * 1024
DEFAULT_MEMORY_TYPES = ["entity", "fact", "decision", "task"]


class _Settings(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CaptureSettings(_Settings):
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, gt=0)
    max_conversations_per_file: int = Field(default=1000, gt=0)
    enable_auto_detection: bool = True


class ChunkingSettings(_Settings):
    enabled: bool = True
    max_tokens_per_chunk: int = Field(default=100_000, gt=0)
    strategy: ChunkingStrategyName = "sliding-window"
    custom_strategy_name: Optional[str] = None
    overlap_tokens: Optional[int] = Field(default=None, ge=0)
    overlap_percentage: float = Field(default=0.1, ge=0.0, lt=1.0)
    min_chunk_size: Optional[int] = Field(default=None, ge=0)
    failure_mode: FailureMode = "continue-on-error"
    token_count_method: TokenCountMethod = "approximate"

    @property
    def overlap_token_count(self) -> int:
        if self.overlap_tokens:
            return self.overlap_tokens
        if self.overlap_percentage > 0:
            return int(self.max_tokens_per_chunk * self.overlap_percentage)
        return 0

    @property
    def min_chunk_tokens(self) -> int:
        if self.min_chunk_size:
            return self.min_chunk_size
        return int(self.max_tokens_per_chunk * 0.2)

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingSettings":
        overlap = self.overlap_token_count
        if overlap >= self.max_tokens_per_chunk:
            raise ValueError(
                f"Overlap ({overlap} tokens) must be less than max_tokens_per_chunk ({self.max_tokens_per_chunk})"
            )
        ceiling = int(self.max_tokens_per_chunk * 0.9)
        if overlap > ceiling:
            raise ValueError(f"Overlap ({overlap} tokens) should not exceed 90% of max_tokens_per_chunk ({ceiling} tokens)")
        if self.strategy == "custom" and not self.custom_strategy_name:
            raise ValueError("custom_strategy_name is required when strategy is 'custom'")
        return self


class RetrySettings(_Settings):
    max_retries: int = Field(default=3, ge=0)
    initial_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=10.0, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)


class LLMSettings(_Settings):
    provider: Literal["openai", "anthropic"] = "openai"
    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"
    base_url: Optional[str] = None
    timeout: float = Field(default=60.0, gt=0)
    temperature: float = 0.3
    max_tokens: int = 4096
    retry: RetrySettings = Field(default_factory=RetrySettings)
    rate_limit_default_retry_after: float = 60.0
    rate_limit_drain_interval: float = 0.1

    @property
    def api_key(self) -> str:
        return os.getenv(self.api_key_env, "")

    @classmethod
    def from_env(cls) -> "LLMSettings":
        return MemweaveSettings.from_env().llm


class ExtractionSettings(_Settings):
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    batch_size: int = Field(default=10, gt=0)
    memory_types: List[str] = Field(default_factory=lambda: list(DEFAULT_MEMORY_TYPES))
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)


class MakerSettings(_Settings):
    replicas: int = Field(default=3, gt=0)
    timeout: float = Field(default=10.0, gt=0)
    temperature: float = 0.4
    confirm_threshold: int = Field(default=2, ge=1)
    keep_unconfirmed: bool = True
    min_summary_length: int = Field(default=20, ge=0)
    max_summary_length: int = Field(default=1500, gt=0)
    confidence: float = Field(default=0.95, ge=0.0, le=1.0)


class MemweaveSettings(_Settings):
    capture: CaptureSettings = Field(default_factory=CaptureSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    maker: MakerSettings = Field(default_factory=MakerSettings)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemweaveSettings":
        return cls.model_validate(data or {})

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "MemweaveSettings":
        """Load settings from a YAML file; a missing file yields defaults."""
        p = Path(path)
        if not p.exists():
            logger.warning(f"Config file {p} not found, using defaults")
            return cls()
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {p} must contain a mapping at the top level")
        return cls.from_dict(data.get("memweave", data))

    @classmethod
    def from_env(cls, base: Optional["MemweaveSettings"] = None) -> "MemweaveSettings":
        """
        Overlay environment variables on ``base`` (or defaults).

        Recognized: MEMWEAVE_LLM_PROVIDER, MEMWEAVE_LLM_MODEL, MEMWEAVE_LLM_BASE_URL,
        LLM_REQUEST_TIMEOUT, MEMWEAVE_MIN_CONFIDENCE, MEMWEAVE_BATCH_SIZE,
        MEMWEAVE_MAX_FILE_SIZE, MEMWEAVE_MAX_CONVERSATIONS, MEMWEAVE_MAKER_REPLICAS,
        MEMWEAVE_LOG_LEVEL.
        """
        data = (base or cls()).model_dump()
        provider = os.getenv("MEMWEAVE_LLM_PROVIDER")
        if provider:
            data["llm"]["provider"] = provider
            if provider == "anthropic" and data["llm"]["api_key_env"] == "OPENAI_API_KEY":
                data["llm"]["api_key_env"] = "ANTHROPIC_API_KEY"
                if data["llm"]["model"] == "gpt-4o-mini":
                    data["llm"]["model"] = "claude-3-5-sonnet-20241022"
        _env_into(data["llm"], "model", "MEMWEAVE_LLM_MODEL", str)
        _env_into(data["llm"], "base_url", "MEMWEAVE_LLM_BASE_URL", str)
        _env_into(data["llm"], "timeout", "LLM_REQUEST_TIMEOUT", float)
        _env_into(data["extraction"], "min_confidence", "MEMWEAVE_MIN_CONFIDENCE", float)
        _env_into(data["extraction"], "batch_size", "MEMWEAVE_BATCH_SIZE", int)
        _env_into(data["capture"], "max_file_size", "MEMWEAVE_MAX_FILE_SIZE", int)
        _env_into(data["capture"], "max_conversations_per_file", "MEMWEAVE_MAX_CONVERSATIONS", int)
        _env_into(data["maker"], "replicas", "MEMWEAVE_MAKER_REPLICAS", int)
        _env_into(data, "log_level", "MEMWEAVE_LOG_LEVEL", str)
        return cls.from_dict(data)


def _env_into(target: Dict[str, Any], key: str, env_name: str, cast) -> None:
    raw = os.getenv(env_name)
    if raw is None or raw == "":
        return
    try:
        target[key] = cast(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {env_name}: {raw!r}")


def setup_logging(level: Union[str, int] = "INFO") -> None:
    """Configure root logging for applications embedding memweave."""
    logging.basicConfig(
        level=level if isinstance(level, int) else level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
