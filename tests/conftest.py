# tests/conftest.py
"""
Pytest configuration and fixtures.
Adds src to sys.path so `import memweave` works without installing.
"""

import asyncio
import inspect
import json
import sys
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
src_root = project_root / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

from memweave.capture.schema import NormalizedConversation, NormalizedMessage  # noqa: E402
from memweave.infrastructure.llm.providers.base import LLMProvider, ModelParams  # noqa: E402
from memweave.infrastructure.llm.retry import RetryConfig  # noqa: E402


class ScriptedProvider(LLMProvider):
    """
    In-process provider driven by a handler ``(call_number, prompt) -> response``.

    The response may be a string, a dict/list (sent as JSON), an exception
    instance (raised) or an awaitable resolving to one of those.
    """

    name = "scripted"

    def __init__(self, handler=None, retry_config=None, default_retry_after=0.05, drain_interval=0.0):
        super().__init__(
            retry_config=retry_config or RetryConfig(max_retries=3, initial_delay=0.0, max_delay=0.0),
            default_params=ModelParams(model="scripted-1"),
            default_retry_after=default_retry_after,
            drain_interval=drain_interval,
        )
        self.handler = handler or (lambda n, prompt: {"memories": [], "relationships": []})
        self.prompts = []
        self.params = []

    @property
    def call_count(self):
        return len(self.prompts)

    async def _send(self, prompt, params, json_mode=False):
        self.prompts.append(prompt)
        self.params.append(params)
        response = self.handler(len(self.prompts), prompt)
        if inspect.isawaitable(response):
            response = await response
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, (dict, list)):
            return json.dumps(response)
        return response


class StatusError(Exception):
    """Mimics an SDK error carrying an HTTP status."""

    def __init__(self, message, status_code, headers=None):
        super().__init__(message)
        self.status_code = status_code
        self.headers = headers or {}


def make_conversation(texts, conversation_id="conv_test", roles=None, timestamps=None):
    messages = []
    for i, text in enumerate(texts):
        role = roles[i] if roles else ("user" if i % 2 == 0 else "assistant")
        created_at = timestamps[i] if timestamps else f"2024-01-01T00:{i // 60:02d}:{i % 60:02d}+00:00"
        messages.append(NormalizedMessage(id=f"m{i}", role=role, content=text, created_at=created_at))
    return NormalizedConversation(id=conversation_id, provider="openai", messages=messages, title="Test")


async def sleep_then(delay, value):
    await asyncio.sleep(delay)
    return value


@pytest.fixture
def scripted_provider():
    return ScriptedProvider


@pytest.fixture
def status_error():
    return StatusError


@pytest.fixture
def conversation_factory():
    return make_conversation
