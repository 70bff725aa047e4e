"""
A single MAKER microagent: one independent summarize-and-list call.

Output is accepted only if it is strict JSON matching ``MicroagentOutput``
and passes the red-flag checks. Anything else counts as a failed replica.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..infrastructure.llm.providers.base import LLMProvider, ModelParams
from ..utils.json_parser import parse_json

logger = logging.getLogger(__name__)

MICROAGENT_PROMPT = """You are a careful note-taker. Read the conversation below and return ONLY a JSON object:

{{
  "summary": "2-4 sentence summary of what was discussed",
  "decisions": ["each decision that was made, one short sentence each"],
  "todos": ["each follow-up action someone committed to"]
}}

Rules:
- Use empty arrays when there are no decisions or todos.
- Do not invent details that are not in the conversation.
- No markdown, no commentary outside the JSON.

CONVERSATION:
{text}
"""


class MicroagentOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    summary: str
    decisions: List[str] = Field(default_factory=list)
    todos: List[str] = Field(default_factory=list)


class RedFlagError(ValueError):
    """Structurally valid output that is still not trustworthy."""


def build_prompt(text: str) -> str:
    return MICROAGENT_PROMPT.format(text=text)


def parse_output(raw: str) -> MicroagentOutput:
    """Strict parse: no JSON repair, schema must match."""
    return MicroagentOutput.model_validate(parse_json(raw, allow_repair=False))


def red_flag(output: MicroagentOutput, min_summary_length: int, max_summary_length: int) -> Optional[str]:
    summary = output.summary.strip()
    if len(summary) < min_summary_length:
        return f"summary too short ({len(summary)} < {min_summary_length} chars)"
    if len(summary) > max_summary_length:
        return f"summary too long ({len(summary)} > {max_summary_length} chars)"
    return None


async def run_microagent(
    text: str,
    provider: LLMProvider,
    temperature: float,
    timeout: float,
    min_summary_length: int,
    max_summary_length: int,
) -> MicroagentOutput:
    """
    Run one replica.

    Raises:
        asyncio.TimeoutError: the call exceeded ``timeout``
        ExtractionError: the provider call failed
        JSONParseError / pydantic.ValidationError: malformed output
        RedFlagError: output failed the red-flag checks
    """
    params = ModelParams(temperature=temperature, timeout=timeout, max_retries=0)
    raw = await asyncio.wait_for(provider.complete(build_prompt(text), params), timeout=timeout)
    output = parse_output(raw)
    reason = red_flag(output, min_summary_length, max_summary_length)
    if reason is not None:
        raise RedFlagError(reason)
    return output
