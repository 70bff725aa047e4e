"""
Anthropic Claude provider (native SDK).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import anthropic

from ....core.errors import ExtractionError
from ..retry import RetryConfig
from .base import FunctionCallResult, FunctionDefinition, LLMProvider, ModelParams, ProviderInfo

logger = logging.getLogger(__name__)

_JSON_SYSTEM_HINT = "Respond with valid JSON only. Do not wrap it in Markdown."


class AnthropicProvider(LLMProvider):
    """
    Messages API backed provider.

    The system prompt is passed separately from the messages; function
    calling maps onto Claude tool use.
    """

    name = "anthropic"
    DEFAULT_MODEL = "claude-3-5-sonnet-20241022"

    def __init__(
        self,
        api_key: str,
        model_name: str = DEFAULT_MODEL,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        timeout: Optional[float] = None,
        retry_config: Optional[RetryConfig] = None,
        client: Optional[anthropic.AsyncAnthropic] = None,
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
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
        logger.info(f"AnthropicProvider initialized: {self}")

    def _request(self, prompt: str, params: ModelParams, system: Optional[str]) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": params.model or self.model_name,
            "max_tokens": params.max_tokens or 4096,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system
        if params.temperature is not None:
            request["temperature"] = params.temperature
        return request

    async def _send(self, prompt: str, params: ModelParams, json_mode: bool = False) -> str:
        system = params.system_prompt
        if json_mode:
            system = f"{system}\n\n{_JSON_SYSTEM_HINT}" if system else _JSON_SYSTEM_HINT

        response = await self.client.messages.create(**self._request(prompt, params, system))
        texts = [block.text for block in response.content if getattr(block, "type", "") == "text"]
        if not texts:
            raise ExtractionError.parse_error("No text content in Anthropic response")
        return "".join(texts)

    async def _send_with_functions(
        self,
        prompt: str,
        functions: List[FunctionDefinition],
        params: ModelParams,
    ) -> FunctionCallResult:
        request = self._request(prompt, params, params.system_prompt)
        request["tools"] = [
            {"name": fn.name, "description": fn.description, "input_schema": fn.parameters}
            for fn in functions
        ]
        response = await self.client.messages.create(**request)
        for block in response.content:
            if getattr(block, "type", "") == "tool_use":
                arguments = block.input if isinstance(block.input, dict) else {}
                return FunctionCallResult(function_name=block.name, arguments=arguments)
        raise ExtractionError.parse_error("No tool use in Anthropic response")

    @property
    def info(self) -> ProviderInfo:
        return ProviderInfo(
            provider_name=self.name,
            model_name=self.model_name,
            api_base="https://api.anthropic.com",
            max_tokens=self.default_params.max_tokens or 4096,
        )
