from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from ..utils.timeutils import generate_id, now_iso

Role = Literal["user", "assistant", "system"]

VALID_ROLES = ("user", "assistant", "system")


@dataclass
class NormalizedMessage:
    id: str
    role: Role
    content: str
    created_at: str
    raw_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NormalizedConversation:
    id: str
    provider: str
    messages: List[NormalizedMessage] = field(default_factory=list)
    external_id: Optional[str] = None
    title: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    raw_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def message_ids(self) -> List[str]:
        return [m.id for m in self.messages]


@dataclass
class StreamingChunk:
    """One fragment of a message arriving from a live capture."""

    content_delta: Optional[str] = None
    role: Optional[Role] = None
    message_id: Optional[str] = None
    is_complete: bool = False


@dataclass
class StreamingBuilderState:
    conversation_id: str
    message_count: int
    is_finalized: bool
    current_message: Optional[NormalizedMessage] = None


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def new_message_id() -> str:
    return generate_id("msg")


def new_conversation_id() -> str:
    return generate_id("conv")
