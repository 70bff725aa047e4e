"""
LLM provider adapter base class.

Concrete providers only implement the raw backend calls (``_send`` and
``_send_with_functions``). This base class layers on top:

- exponential backoff for retryable errors (5xx, rate limits)
- one shared rate-limit gate per adapter instance
- per-call timeouts
- JSON-mode parsing with code-fence cleanup
- conversion of every failure into ``ExtractionError``
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from ....core.errors import ExtractionError
from ....utils.json_parser import JSONParseError, parse_json
from ..rate_limit import RateLimitGate
from ..retry import (
    DEFAULT_RETRY_AFTER,
    RetryConfig,
    is_rate_limit_error,
    is_retryable_error,
    retry_after_of,
    status_code_of,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ProviderInfo:
    """Provider metadata."""
    provider_name: str
    model_name: str
    api_base: Optional[str] = None
    max_tokens: int = 4096
    supports_functions: bool = True


@dataclass
class ModelParams:
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    timeout: Optional[float] = None
    system_prompt: Optional[str] = None
    # Per-call override of RetryConfig.max_retries.
    max_retries: Optional[int] = None


@dataclass
class FunctionDefinition:
    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


@dataclass
class FunctionCallResult:
    function_name: str
    arguments: Dict[str, Any]


class LLMProvider(ABC):
    """
    Uniform async interface over a backing model.

    Args:
        retry_config: backoff policy, defaults to 3 retries, 1s..10s, x2
        default_params: values used when a call leaves a ModelParams field unset
        default_retry_after: rate-limit pause when the backend gives none
        drain_interval: pause between replayed requests after a rate limit
    """

    name: str = "base"

    def __init__(
        self,
        retry_config: Optional[RetryConfig] = None,
        default_params: Optional[ModelParams] = None,
        default_retry_after: float = DEFAULT_RETRY_AFTER,
        drain_interval: float = 0.1,
    ):
        self.retry_config = retry_config or RetryConfig()
        self.default_params = default_params or ModelParams()
        self.default_retry_after = default_retry_after
        self.rate_limit_gate = RateLimitGate(
            probe=self._rate_limit_probe,
            drain_interval=drain_interval,
            max_requeues=self.retry_config.max_retries,
        )

    # ==================== backend hooks ====================

    @abstractmethod
    async def _send(self, prompt: str, params: ModelParams, json_mode: bool = False) -> str:
        """Send one prompt and return the response text."""
        ...

    async def _send_with_functions(
        self,
        prompt: str,
        functions: List[FunctionDefinition],
        params: ModelParams,
    ) -> FunctionCallResult:
        raise NotImplementedError(f"{self.__class__.__name__} does not support function calling")

    @property
    def info(self) -> ProviderInfo:
        return ProviderInfo(provider_name=self.name, model_name=self.default_params.model or "unknown")

    # ==================== public API ====================

    async def complete(self, prompt: str, params: Optional[ModelParams] = None) -> str:
        merged = self._merge(params)
        return await self._execute(lambda: self._timed(self._send(prompt, merged), merged), "complete", merged)

    async def complete_structured(
        self,
        prompt: str,
        schema: Dict[str, Any],
        params: Optional[ModelParams] = None,
    ) -> Any:
        """
        JSON-mode completion.

        The schema is appended to the prompt; the response has Markdown code
        fences removed before parsing. A response that is not valid JSON
        raises a ``parse_error`` carrying the raw text.
        """
        merged = self._merge(params)
        full_prompt = f"{prompt}\n\nRespond with a single JSON object matching this JSON schema:\n{_dump_schema(schema)}"

        async def call() -> Any:
            text = await self._timed(self._send(full_prompt, merged, json_mode=True), merged)
            try:
                return parse_json(text)
            except JSONParseError as e:
                raise ExtractionError.parse_error(
                    f"Failed to parse JSON response from {self.name}", raw_response=e.raw or text
                ) from e

        return await self._execute(call, "complete_structured", merged)

    async def complete_with_functions(
        self,
        prompt: str,
        functions: List[FunctionDefinition],
        params: Optional[ModelParams] = None,
    ) -> FunctionCallResult:
        merged = self._merge(params)
        return await self._execute(
            lambda: self._timed(self._send_with_functions(prompt, functions, merged), merged),
            "complete_with_functions",
            merged,
        )

    # ==================== retry / rate limiting ====================

    def _merge(self, params: Optional[ModelParams]) -> ModelParams:
        if params is None:
            return replace(self.default_params)
        overrides = {k: v for k, v in vars(params).items() if v is not None}
        return replace(self.default_params, **overrides)

    async def _timed(self, awaitable: Awaitable[T], params: ModelParams) -> T:
        if params.timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=params.timeout)

    def _rate_limit_probe(self, error: BaseException) -> Optional[float]:
        if is_rate_limit_error(error):
            return retry_after_of(error, self.default_retry_after)
        return None

    async def _execute(self, call: Callable[[], Awaitable[T]], operation: str, params: ModelParams) -> T:
        try:
            return await self._execute_raw(call, operation, params)
        except Exception as e:
            converted = self._to_extraction_error(e, operation)
            if converted is e:
                raise
            raise converted from e

    async def _execute_raw(self, call: Callable[[], Awaitable[T]], operation: str, params: ModelParams) -> T:
        queued = await self.rate_limit_gate.enqueue_if_limited(call, operation)
        if queued is not None:
            return await queued

        max_retries = self.retry_config.max_retries if params.max_retries is None else params.max_retries
        attempt = 0
        while True:
            try:
                return await call()
            except Exception as e:
                if is_rate_limit_error(e):
                    retry_after = retry_after_of(e, self.default_retry_after)
                    if attempt >= max_retries:
                        await self.rate_limit_gate.arm(retry_after)
                        raise
                    logger.warning(f"{self.name} {operation} rate limited, queued for {retry_after:.1f}s")
                    future = await self.rate_limit_gate.trip(retry_after, call, operation)
                    return await future
                if attempt < max_retries and is_retryable_error(e):
                    delay = self.retry_config.delay_for(attempt)
                    attempt += 1
                    logger.warning(
                        f"{self.name} {operation} failed (attempt {attempt}/{max_retries + 1}): {e}; "
                        f"retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise

    def _to_extraction_error(self, error: BaseException, operation: str) -> ExtractionError:
        if isinstance(error, ExtractionError):
            if error.provider is None:
                error.provider = self.name
            return error
        if isinstance(error, JSONParseError):
            return ExtractionError.parse_error(f"Failed to parse JSON during {operation}: {error}", raw_response=error.raw)
        if is_rate_limit_error(error):
            return ExtractionError.rate_limit(
                retry_after_of(error, self.default_retry_after),
                provider=self.name,
                message=f"{self.name} rate limit during {operation}: {error}",
            )
        if isinstance(error, asyncio.TimeoutError):
            return ExtractionError.llm_error(f"{self.name} {operation} timed out", provider=self.name, cause=error)

        status = status_code_of(error)
        suffix = f" (status: {status})" if status is not None else ""
        return ExtractionError.llm_error(
            f"{self.name} error during {operation}: {error}{suffix}",
            provider=self.name,
            cause=error,
            status_code=status,
        )

    def __repr__(self) -> str:
        info = self.info
        return f"{self.__class__.__name__}(model={info.model_name}, provider={info.provider_name})"


def _dump_schema(schema: Dict[str, Any]) -> str:
    return json.dumps(schema, indent=2, ensure_ascii=False)


def build_messages(prompt: str, system_prompt: Optional[str] = None) -> List[Dict[str, str]]:
    """OpenAI-style message list for a single-turn prompt."""
    messages: List[Dict[str, str]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages
