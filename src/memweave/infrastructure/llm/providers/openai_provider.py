"""
OpenAI / OpenAI-compatible provider (DeepSeek, OpenRouter, local gateways).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from ....core.errors import ExtractionError
from ..retry import RetryConfig
from .base import (
    FunctionCallResult,
    FunctionDefinition,
    LLMProvider,
    ModelParams,
    ProviderInfo,
    build_messages,
)

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """
    Chat Completions backed provider.

    The SDK's own retries are disabled (``max_retries=0``); retry and rate
    limiting are handled by ``LLMProvider``.
    """

    name = "openai"
    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: str,
        model_name: str = DEFAULT_MODEL,
        base_url: Optional[str] = None,
        organization: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        timeout: Optional[float] = None,
        retry_config: Optional[RetryConfig] = None,
        client: Optional[AsyncOpenAI] = None,
        **kwargs: Any,
    ):
        if not api_key and client is None:
            raise ValueError("API key must not be empty")
        super().__init__(
            retry_config=retry_config,
            default_params=ModelParams(model=model_name, temperature=temperature, max_tokens=max_tokens, timeout=timeout),
            **kwargs,
        )
        self.model_name = model_name
        self.base_url = base_url
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            organization=organization,
            max_retries=0,
        )
        logger.info(f"OpenAIProvider initialized: {self}")

    async def _send(self, prompt: str, params: ModelParams, json_mode: bool = False) -> str:
        request: Dict[str, Any] = {
            "model": params.model or self.model_name,
            "messages": build_messages(prompt, params.system_prompt),
        }
        if params.temperature is not None:
            request["temperature"] = params.temperature
        if params.max_tokens is not None:
            request["max_tokens"] = params.max_tokens
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(**request)
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ExtractionError.parse_error("No content in OpenAI response")
        return content

    async def _send_with_functions(
        self,
        prompt: str,
        functions: List[FunctionDefinition],
        params: ModelParams,
    ) -> FunctionCallResult:
        request: Dict[str, Any] = {
            "model": params.model or self.model_name,
            "messages": build_messages(prompt, params.system_prompt),
            "tools": [
                {
                    "type": "function",
                    "function": {"name": fn.name, "description": fn.description, "parameters": fn.parameters},
                }
                for fn in functions
            ],
            "tool_choice": "auto",
        }
        if params.temperature is not None:
            request["temperature"] = params.temperature
        if params.max_tokens is not None:
            request["max_tokens"] = params.max_tokens

        response = await self.client.chat.completions.create(**request)
        message = response.choices[0].message if response.choices else None
        tool_calls = getattr(message, "tool_calls", None) or []
        if not tool_calls:
            raise ExtractionError.parse_error("No function call in OpenAI response")

        call = tool_calls[0]
        try:
            arguments = json.loads(call.function.arguments or "{}")
        except json.JSONDecodeError as e:
            raise ExtractionError.parse_error(
                "Failed to parse JSON function arguments from OpenAI", raw_response=call.function.arguments
            ) from e
        return FunctionCallResult(function_name=call.function.name, arguments=arguments)

    @property
    def info(self) -> ProviderInfo:
        return ProviderInfo(
            provider_name=self.name,
            model_name=self.model_name,
            api_base=self.base_url or "https://api.openai.com",
            max_tokens=self.default_params.max_tokens or 4096,
        )
