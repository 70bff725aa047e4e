"""
Retry policy and error classification for provider calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ...config import RetrySettings
from ...core.errors import ExtractionError, ExtractionErrorKind

DEFAULT_RETRY_AFTER = 60.0

_RATE_LIMIT_SIGNATURES = ("rate limit", "rate_limit", "ratelimit", "too many requests")


@dataclass
class RetryConfig:
    """
    Exponential backoff parameters.

    Args:
        max_retries: retries after the first attempt
        initial_delay: first backoff delay in seconds
        max_delay: upper bound for a single delay
        backoff_multiplier: factor applied to the delay after every retry
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryConfig":
        return cls(**settings.model_dump())

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        return min(self.initial_delay * (self.backoff_multiplier ** attempt), self.max_delay)


DEFAULT_RETRY_CONFIG = RetryConfig()


def status_code_of(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_rate_limit_error(error: BaseException) -> bool:
    if isinstance(error, ExtractionError):
        return error.kind == ExtractionErrorKind.RATE_LIMIT
    if status_code_of(error) == 429:
        return True
    message = str(error).lower()
    return any(sig in message for sig in _RATE_LIMIT_SIGNATURES)


def is_retryable_error(error: BaseException) -> bool:
    """5xx responses and rate limits are retryable; everything else is not."""
    if is_rate_limit_error(error):
        return True
    status = status_code_of(error)
    return status is not None and status >= 500


def _header_value(headers: Any, name: str) -> Optional[str]:
    if headers is None:
        return None
    try:
        return headers.get(name)
    except AttributeError:
        return None


def retry_after_of(error: BaseException, default: float = DEFAULT_RETRY_AFTER) -> float:
    """Seconds to wait before the backend accepts requests again."""
    if isinstance(error, ExtractionError) and error.retry_after:
        return float(error.retry_after)
    value = getattr(error, "retry_after", None)
    if isinstance(value, (int, float)) and value > 0:
        return float(value)

    headers = getattr(error, "headers", None)
    response = getattr(error, "response", None)
    if headers is None and response is not None:
        headers = getattr(response, "headers", None)
    raw = _header_value(headers, "retry-after")
    if raw:
        try:
            seconds = float(raw)
            if seconds > 0:
                return seconds
        except ValueError:
            pass
    return default
