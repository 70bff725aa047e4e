from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

from .schema import VALID_ROLES, NormalizedConversation, NormalizedMessage, ValidationResult
from ..utils.timeutils import parse_iso

logger = logging.getLogger(__name__)


@dataclass
class BatchValidationResult:
    valid: List[NormalizedConversation] = field(default_factory=list)
    invalid: List[Tuple[NormalizedConversation, List[str]]] = field(default_factory=list)


def _check_timestamp(value: str, label: str, errors: List[str]) -> None:
    if not value:
        errors.append(f"{label} is required")
    elif parse_iso(value) is None:
        errors.append(f"{label} must be a valid ISO 8601 date, got: {value}")


def _validate_message(message: NormalizedMessage, conv_id: str, errors: List[str]) -> None:
    where = f"conversation {conv_id} message {message.id or '?'}"
    if not message.id:
        errors.append(f"{where}: message id is required")
    if message.role not in VALID_ROLES:
        errors.append(f"{where}: invalid role '{message.role}', must be one of {', '.join(VALID_ROLES)}")
    if message.content is None or not str(message.content).strip():
        errors.append(f"{where}: content must not be empty")
    if message.created_at:
        _check_timestamp(message.created_at, f"{where}: created_at", errors)


def validate_conversation(conversation: NormalizedConversation, strict: bool = False) -> ValidationResult:
    """
    Check a normalized conversation's structural invariants.

    Non-strict mode only reports hard errors. With ``strict=True`` warnings
    (missing title, updated_at earlier than created_at) are promoted to errors.
    """
    errors: List[str] = []
    warnings: List[str] = []
    conv_id = conversation.id or "?"

    if not conversation.id:
        errors.append("conversation id is required")
    if not conversation.provider:
        errors.append(f"conversation {conv_id}: provider is required")
    if not conversation.messages:
        errors.append(f"conversation {conv_id}: must have at least one message")
    for message in conversation.messages:
        _validate_message(message, conv_id, errors)
    _check_timestamp(conversation.created_at, f"conversation {conv_id}: created_at", errors)
    _check_timestamp(conversation.updated_at, f"conversation {conv_id}: updated_at", errors)

    if not conversation.title:
        warnings.append(f"conversation {conv_id}: title is missing")
    created, updated = parse_iso(conversation.created_at), parse_iso(conversation.updated_at)
    if created and updated and updated < created:
        warnings.append(f"conversation {conv_id}: updated_at is earlier than created_at")

    if strict:
        errors.extend(warnings)
        warnings = []
    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def validate_conversations(conversations: List[NormalizedConversation], strict: bool = False) -> BatchValidationResult:
    result = BatchValidationResult()
    for conversation in conversations:
        check = validate_conversation(conversation, strict=strict)
        if check.valid:
            result.valid.append(conversation)
        else:
            logger.debug(f"Conversation {conversation.id} failed validation: {check.errors}")
            result.invalid.append((conversation, check.errors))
    return result
