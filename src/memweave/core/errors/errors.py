"""
Error taxonomy and Result wrapper shared by capture and extraction.

Public capture/extraction entry points return ``Result`` values so callers can
branch on ``error.kind`` instead of catching exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union, cast


class ErrorSeverity(Enum):
    WARNING = "warning"      # item skipped, operation continues
    ERROR = "error"          # operation failed
    CRITICAL = "critical"    # caller must stop


@dataclass(eq=False)
class MemweaveError(Exception):
    message: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    code: str = "UNKNOWN"
    context: Dict[str, Any] | None = None

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class CaptureErrorKind(str, Enum):
    PARSE_ERROR = "parse_error"
    VALIDATION_ERROR = "validation_error"
    PROVIDER_NOT_FOUND = "provider_not_found"
    FILE_TOO_LARGE = "file_too_large"
    TOO_MANY_CONVERSATIONS = "too_many_conversations"
    DETECTION_FAILED = "detection_failed"


@dataclass(eq=False)
class CaptureError(MemweaveError):
    """Failure while turning raw export data into normalized conversations."""

    code: str = "CAPTURE_ERROR"
    kind: CaptureErrorKind = CaptureErrorKind.PARSE_ERROR
    provider: Optional[str] = None
    size: Optional[int] = None
    limit: Optional[int] = None
    count: Optional[int] = None
    errors: List[str] = field(default_factory=list)
    cause: Optional[BaseException] = None

    @property
    def type(self) -> str:
        return self.kind.value

    @classmethod
    def parse_error(cls, message: str, cause: Optional[BaseException] = None, provider: Optional[str] = None) -> "CaptureError":
        return cls(message=message, kind=CaptureErrorKind.PARSE_ERROR, cause=cause, provider=provider)

    @classmethod
    def validation_error(cls, message: str, errors: Optional[List[str]] = None) -> "CaptureError":
        return cls(message=message, kind=CaptureErrorKind.VALIDATION_ERROR, errors=list(errors or []))

    @classmethod
    def provider_not_found(cls, provider: str) -> "CaptureError":
        return cls(
            message=f"No parser registered for provider '{provider}'",
            kind=CaptureErrorKind.PROVIDER_NOT_FOUND,
            provider=provider,
        )

    @classmethod
    def file_too_large(cls, size: int, limit: int) -> "CaptureError":
        return cls(
            message=f"File size {size} bytes exceeds limit of {limit} bytes",
            kind=CaptureErrorKind.FILE_TOO_LARGE,
            size=size,
            limit=limit,
        )

    @classmethod
    def too_many_conversations(cls, count: int, limit: int) -> "CaptureError":
        return cls(
            message=f"File contains {count} conversations, limit is {limit}",
            kind=CaptureErrorKind.TOO_MANY_CONVERSATIONS,
            count=count,
            limit=limit,
        )

    @classmethod
    def detection_failed(cls, reason: str) -> "CaptureError":
        return cls(
            message=f"Could not detect provider format: {reason}",
            kind=CaptureErrorKind.DETECTION_FAILED,
        )


@dataclass(eq=False)
class FormatError(MemweaveError):
    """Raised by a parser when the raw value does not have the expected shape."""

    code: str = "FORMAT_ERROR"
    provider: Optional[str] = None


class ExtractionErrorKind(str, Enum):
    LLM_ERROR = "llm_error"
    RATE_LIMIT = "rate_limit"
    PARSE_ERROR = "parse_error"
    VALIDATION_ERROR = "validation_error"
    ALREADY_FINALIZED = "already_finalized"


@dataclass(eq=False)
class ExtractionError(MemweaveError):
    """Failure talking to the model or interpreting its answer."""

    code: str = "EXTRACTION_ERROR"
    kind: ExtractionErrorKind = ExtractionErrorKind.LLM_ERROR
    provider: Optional[str] = None
    retry_after: Optional[float] = None  # seconds
    raw_response: Optional[str] = None
    status_code: Optional[int] = None
    cause: Optional[BaseException] = None

    @property
    def type(self) -> str:
        return self.kind.value

    @classmethod
    def llm_error(
        cls,
        message: str,
        provider: Optional[str] = None,
        cause: Optional[BaseException] = None,
        status_code: Optional[int] = None,
    ) -> "ExtractionError":
        return cls(
            message=message,
            kind=ExtractionErrorKind.LLM_ERROR,
            provider=provider,
            cause=cause,
            status_code=status_code,
        )

    @classmethod
    def rate_limit(cls, retry_after: float, provider: Optional[str] = None, message: str = "") -> "ExtractionError":
        return cls(
            message=message or f"Rate limited, retry after {retry_after:.1f}s",
            kind=ExtractionErrorKind.RATE_LIMIT,
            severity=ErrorSeverity.WARNING,
            provider=provider,
            retry_after=retry_after,
            status_code=429,
        )

    @classmethod
    def parse_error(cls, message: str, raw_response: Optional[str] = None) -> "ExtractionError":
        return cls(message=message, kind=ExtractionErrorKind.PARSE_ERROR, raw_response=raw_response)

    @classmethod
    def validation_error(cls, message: str) -> "ExtractionError":
        return cls(message=message, kind=ExtractionErrorKind.VALIDATION_ERROR)


@dataclass(eq=False)
class AlreadyFinalizedError(MemweaveError):
    """A builder or incremental extractor was used after ``finalize()``."""

    code: str = "ALREADY_FINALIZED"
    conversation_id: Optional[str] = None

    @property
    def type(self) -> str:
        return ExtractionErrorKind.ALREADY_FINALIZED.value


T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E", bound=MemweaveError)


@dataclass
class Result(Generic[T, E]):
    """Either a value or a typed error, never both."""

    _value: Union[T, E]
    _is_ok: bool

    @classmethod
    def ok(cls, value: T) -> "Result[T, E]":
        return cls(_value=value, _is_ok=True)

    @classmethod
    def err(cls, error: E) -> "Result[T, E]":
        return cls(_value=error, _is_ok=False)

    def is_ok(self) -> bool:
        return self._is_ok

    def is_err(self) -> bool:
        return not self._is_ok

    @property
    def value(self) -> T:
        return self.unwrap()

    @property
    def error(self) -> Optional[E]:
        return None if self._is_ok else cast(E, self._value)

    def unwrap(self) -> T:
        if not self._is_ok:
            raise cast(E, self._value)
        return cast(T, self._value)

    def unwrap_or(self, default: T) -> T:
        return cast(T, self._value) if self._is_ok else default

    def map(self, fn: Callable[[T], U]) -> "Result[U, E]":
        if self._is_ok:
            return Result.ok(fn(cast(T, self._value)))
        return cast("Result[U, E]", self)
