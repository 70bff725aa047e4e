"""
MAKER: redundant microagent calls reconciled by voting.

``maker_reliable_extract`` fires ``replicas`` independent calls at once,
discards failed or red-flagged replicas and merges the survivors. It returns
None only when every replica failed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..config.settings import MakerSettings
from ..extraction.schema import ExtractedMemory
from ..infrastructure.llm.providers.base import LLMProvider
from ..utils.timeutils import generate_id, now_iso
from .consensus import normalize_item, pick_summary, tally
from .microagent import MicroagentOutput, run_microagent

logger = logging.getLogger(__name__)


@dataclass
class MakerConfig:
    replicas: int = 3
    timeout: float = 10.0
    temperature: float = 0.4
    confirm_threshold: int = 2
    keep_unconfirmed: bool = True
    min_summary_length: int = 20
    max_summary_length: int = 1500
    confidence: float = 0.95

    @classmethod
    def from_settings(cls, settings: MakerSettings) -> "MakerConfig":
        return cls(**settings.model_dump())


@dataclass
class MakerResult:
    summary: str
    decisions: List[str] = field(default_factory=list)
    todos: List[str] = field(default_factory=list)
    confirmed_decisions: List[str] = field(default_factory=list)
    confirmed_todos: List[str] = field(default_factory=list)
    successful_replicas: int = 0
    total_replicas: int = 0


async def maker_reliable_extract(
    text: str,
    provider: LLMProvider,
    config: Optional[MakerConfig] = None,
) -> Optional[MakerResult]:
    config = config or MakerConfig()
    replicas = max(1, config.replicas)

    outcomes = await asyncio.gather(
        *(
            run_microagent(
                text,
                provider,
                temperature=config.temperature,
                timeout=config.timeout,
                min_summary_length=config.min_summary_length,
                max_summary_length=config.max_summary_length,
            )
            for _ in range(replicas)
        ),
        return_exceptions=True,
    )

    outputs: List[MicroagentOutput] = []
    for index, outcome in enumerate(outcomes):
        if isinstance(outcome, MicroagentOutput):
            outputs.append(outcome)
        elif isinstance(outcome, asyncio.TimeoutError):
            logger.warning(f"MAKER replica {index + 1}/{replicas} timed out after {config.timeout}s")
        elif isinstance(outcome, Exception):
            logger.warning(f"MAKER replica {index + 1}/{replicas} failed: {type(outcome).__name__}: {outcome}")
        else:
            raise outcome

    if not outputs:
        logger.error(f"MAKER: all {replicas} replicas failed")
        return None

    decisions = tally([o.decisions for o in outputs], config.confirm_threshold, config.keep_unconfirmed)
    todos = tally([o.todos for o in outputs], config.confirm_threshold, config.keep_unconfirmed)
    result = MakerResult(
        summary=pick_summary(outputs, decisions, todos),
        decisions=decisions.items,
        todos=todos.items,
        confirmed_decisions=decisions.confirmed,
        confirmed_todos=todos.confirmed,
        successful_replicas=len(outputs),
        total_replicas=replicas,
    )
    logger.info(
        f"MAKER consensus from {len(outputs)}/{replicas} replicas: "
        f"{len(result.decisions)} decisions, {len(result.todos)} todos"
    )
    return result


def maker_result_to_memories(
    result: MakerResult,
    workspace_id: str,
    conversation_id: Optional[str] = None,
    config: Optional[MakerConfig] = None,
) -> List[ExtractedMemory]:
    confidence = (config or MakerConfig()).confidence
    created_at = now_iso()
    confirmed = {normalize_item(i) for i in result.confirmed_decisions + result.confirmed_todos}
    replicas = f"{result.successful_replicas}/{result.total_replicas}"

    def memory(memory_type: str, content: str, metadata: dict) -> ExtractedMemory:
        return ExtractedMemory(
            id=generate_id("mem"),
            type=memory_type,
            content=content,
            confidence=confidence,
            workspace_id=workspace_id,
            conversation_id=conversation_id,
            created_at=created_at,
            metadata={"source": "maker", "replicas": replicas, **metadata},
        )

    memories = [memory("fact", result.summary, {"kind": "summary"})] if result.summary else []
    for decision in result.decisions:
        memories.append(memory("decision", decision, {"decision": decision, "confirmed": normalize_item(decision) in confirmed}))
    for todo in result.todos:
        memories.append(memory("task", todo, {"task": todo, "confirmed": normalize_item(todo) in confirmed}))
    return memories
