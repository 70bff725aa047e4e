"""
ChatCapture facade and validator tests
"""

import json

from memweave.capture import ChatCapture, ParseOptions, validate_conversation
from memweave.capture.parsers import ConversationParser
from memweave.capture.schema import NormalizedConversation, NormalizedMessage
from memweave.config import CaptureSettings
from memweave.core.errors import CaptureErrorKind

from .test_capture_parsers import anthropic_conversation, openai_conversation


def _bytes(value):
    return json.dumps(value).encode("utf-8")


class _FixtureParser(ConversationParser):
    """Yields one well-formed conversation and one without messages."""

    provider_name = "fixture"

    def can_parse(self, raw):
        return False

    def parse(self, raw):
        message = NormalizedMessage(id="m1", role="user", content="hi", created_at="2024-01-01T00:00:00+00:00")
        return [
            NormalizedConversation(id="good", provider="fixture", messages=[message], title="Good"),
            NormalizedConversation(id="empty", provider="fixture", messages=[], title="Empty"),
        ]


class TestParseFile:
    def test_parse_with_explicit_provider(self):
        result = ChatCapture().parse_file(_bytes(openai_conversation()), "openai")
        assert result.is_ok()
        assert len(result.value) == 1

    def test_accepts_already_decoded_values(self):
        result = ChatCapture().parse_file([anthropic_conversation()], "anthropic")
        assert result.is_ok()

    def test_unknown_provider(self):
        result = ChatCapture().parse_file(_bytes(openai_conversation()), "gemini")
        assert result.is_err()
        assert result.error.kind == CaptureErrorKind.PROVIDER_NOT_FOUND

    def test_file_too_large(self):
        capture = ChatCapture(CaptureSettings(max_file_size=100))
        payload = _bytes(openai_conversation())
        assert len(payload) > 100
        result = capture.parse_file(payload, "openai")
        assert result.is_err()
        assert result.error.type == "file_too_large"
        assert result.error.limit == 100

    def test_invalid_json(self):
        result = ChatCapture().parse_file(b"{not json", "openai")
        assert result.error.kind == CaptureErrorKind.PARSE_ERROR

    def test_wrong_shape_is_parse_error(self):
        result = ChatCapture().parse_file(_bytes({"uuid": "x"}), "anthropic")
        assert result.is_err()
        assert result.error.kind == CaptureErrorKind.PARSE_ERROR
        assert result.error.provider == "anthropic"

    def test_too_many_conversations(self):
        capture = ChatCapture(CaptureSettings(max_conversations_per_file=1))
        payload = [openai_conversation("a"), openai_conversation("b")]
        result = capture.parse_file(_bytes(payload), "openai")
        assert result.error.kind == CaptureErrorKind.TOO_MANY_CONVERSATIONS
        assert result.error.count == 2


class TestParseFileAuto:
    def test_detects_openai(self):
        result = ChatCapture().parse_file_auto(_bytes([openai_conversation()]))
        assert result.is_ok()
        assert result.value[0].provider == "openai"

    def test_detects_anthropic(self):
        result = ChatCapture().parse_file_auto(_bytes({"conversations": [anthropic_conversation()]}))
        assert result.value[0].provider == "anthropic"

    def test_detection_failure_has_reason(self):
        result = ChatCapture().parse_file_auto(_bytes({"something": "else"}))
        assert result.error.kind == CaptureErrorKind.DETECTION_FAILED
        assert "missing" in result.error.message

    def test_disabled_auto_detection(self):
        capture = ChatCapture(CaptureSettings(enable_auto_detection=False))
        result = capture.parse_file_auto(_bytes(openai_conversation()))
        assert result.error.kind == CaptureErrorKind.DETECTION_FAILED

    def test_detect_provider_confidence(self):
        detection = ChatCapture().detect_provider(_bytes(anthropic_conversation()))
        assert detection.provider == "anthropic"
        assert detection.confidence == "high"


class TestValidation:
    def _conversation(self, **overrides):
        values = dict(
            id="c1",
            provider="openai",
            title="t",
            created_at="2024-01-01T00:00:00Z",
            updated_at="2024-01-01T01:00:00Z",
            messages=[NormalizedMessage(id="m1", role="user", content="hi", created_at="2024-01-01T00:00:00Z")],
        )
        values.update(overrides)
        return NormalizedConversation(**values)

    def test_valid_conversation(self):
        assert validate_conversation(self._conversation()).valid

    def test_missing_messages_is_error(self):
        result = validate_conversation(self._conversation(messages=[]))
        assert not result.valid

    def test_missing_title_is_warning_unless_strict(self):
        conv = self._conversation(title=None)
        assert validate_conversation(conv).valid
        assert validate_conversation(conv).warnings
        assert not validate_conversation(conv, strict=True).valid

    def test_bad_timestamp(self):
        result = validate_conversation(self._conversation(created_at="yesterday"))
        assert any("ISO 8601" in e for e in result.errors)

    def test_strict_option_rejects_untitled_export(self):
        conv = openai_conversation()
        del conv["title"]
        result = ChatCapture().parse_file(_bytes(conv), "openai", ParseOptions(strict=True))
        assert result.error.kind == CaptureErrorKind.VALIDATION_ERROR

    def test_skip_invalid_keeps_valid_ones(self):
        capture = ChatCapture()
        capture.register_parser("fixture", _FixtureParser())
        result = capture.parse_file(_bytes({}), "fixture", ParseOptions(skip_invalid=True))
        assert result.is_ok()
        assert [c.id for c in result.value] == ["good"]

        rejected = capture.parse_file(_bytes({}), "fixture")
        assert rejected.error.kind == CaptureErrorKind.VALIDATION_ERROR

    def test_strict_fails_even_when_skipping_invalid(self):
        titled = openai_conversation("a")
        untitled = openai_conversation("b")
        del untitled["title"]
        options = ParseOptions(strict=True, skip_invalid=True)
        result = ChatCapture().parse_file(_bytes([titled, untitled]), "openai", options)
        assert result.error.kind == CaptureErrorKind.VALIDATION_ERROR
        assert "Strict validation" in result.error.message
