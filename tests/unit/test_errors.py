"""
Error taxonomy and Result tests
"""

import pytest

from memweave.core.errors import (
    AlreadyFinalizedError,
    CaptureError,
    CaptureErrorKind,
    ErrorSeverity,
    ExtractionError,
    ExtractionErrorKind,
    MemweaveError,
    Result,
)


class TestErrorSeverity:
    def test_severity_values(self):
        assert ErrorSeverity.WARNING.value == "warning"
        assert ErrorSeverity.ERROR.value == "error"
        assert ErrorSeverity.CRITICAL.value == "critical"


class TestMemweaveError:
    def test_error_str(self):
        err = MemweaveError(message="Test error", code="TEST")
        assert "[TEST] Test error" in str(err)

    def test_error_with_context(self):
        err = MemweaveError(message="Failed", context={"key": "value"})
        assert err.context == {"key": "value"}

    def test_is_raisable(self):
        with pytest.raises(MemweaveError):
            raise MemweaveError(message="boom")


class TestCaptureError:
    def test_file_too_large_carries_size_and_limit(self):
        err = CaptureError.file_too_large(200, 100)
        assert err.kind == CaptureErrorKind.FILE_TOO_LARGE
        assert err.type == "file_too_large"
        assert err.size == 200
        assert err.limit == 100

    def test_too_many_conversations(self):
        err = CaptureError.too_many_conversations(5, 2)
        assert err.type == "too_many_conversations"
        assert err.count == 5

    def test_provider_not_found_names_provider(self):
        err = CaptureError.provider_not_found("gemini")
        assert err.provider == "gemini"
        assert "gemini" in err.message

    def test_code(self):
        assert CaptureError.parse_error("bad").code == "CAPTURE_ERROR"


class TestExtractionError:
    def test_rate_limit_is_warning_with_retry_after(self):
        err = ExtractionError.rate_limit(12.5, provider="openai")
        assert err.kind == ExtractionErrorKind.RATE_LIMIT
        assert err.severity == ErrorSeverity.WARNING
        assert err.retry_after == 12.5
        assert err.status_code == 429

    def test_parse_error_keeps_raw_response(self):
        err = ExtractionError.parse_error("Failed to parse JSON", raw_response="{oops")
        assert err.type == "parse_error"
        assert err.raw_response == "{oops"

    def test_already_finalized_type(self):
        err = AlreadyFinalizedError(message="done", conversation_id="c1")
        assert err.type == "already_finalized"
        assert err.code == "ALREADY_FINALIZED"


class TestResult:
    def test_ok_result(self):
        result = Result.ok(42)
        assert result.is_ok() is True
        assert result.is_err() is False
        assert result.unwrap() == 42
        assert result.value == 42
        assert result.error is None

    def test_err_result(self):
        err = MemweaveError(message="Failed")
        result = Result.err(err)
        assert result.is_ok() is False
        assert result.error is err
        with pytest.raises(MemweaveError):
            result.unwrap()

    def test_unwrap_or(self):
        assert Result.err(MemweaveError(message="x")).unwrap_or(7) == 7
        assert Result.ok(1).unwrap_or(7) == 1

    def test_map(self):
        assert Result.ok(2).map(lambda v: v * 3).unwrap() == 6
        err = MemweaveError(message="x")
        assert Result.err(err).map(lambda v: v * 3).error is err
