"""
ChatCapture: raw export bytes in, validated normalized conversations out.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Set, Union

from ..config import CaptureSettings
from ..core.errors import CaptureError, FormatError, Result
from .detector import DetectionResult, decode_json, detect_with_confidence, detection_failure_reason
from .parsers.base import ConversationParser
from .registry import ParserRegistry, create_default_registry
from .schema import NormalizedConversation
from .streaming import StreamingConversationBuilder
from .validator import validate_conversations

logger = logging.getLogger(__name__)

RawInput = Union[bytes, bytearray, str, dict, list]
CaptureResult = Result[List[NormalizedConversation], CaptureError]


@dataclass
class ParseOptions:
    skip_invalid: bool = False
    strict: bool = False
    validate: bool = True


class ChatCapture:
    """
    Facade over the parser registry, detector and validator.

    All public parsing methods return ``Result`` values; no capture error is
    raised to the caller.
    """

    def __init__(self, config: Optional[CaptureSettings] = None, registry: Optional[ParserRegistry] = None):
        self.config = config or CaptureSettings()
        self.registry = registry or create_default_registry()

    # ==================== registry passthrough ====================

    def register_parser(self, provider_name: str, parser: ConversationParser) -> None:
        self.registry.register(provider_name, parser)

    def list_providers(self) -> Set[str]:
        return self.registry.list_providers()

    # ==================== parsing ====================

    def parse_file(self, data: RawInput, provider: str, options: Optional[ParseOptions] = None) -> CaptureResult:
        """Parse ``data`` with the parser registered under ``provider``."""
        decoded = self._decode(data)
        if decoded.is_err():
            return Result.err(decoded.error)

        parser = self.registry.get(provider)
        if parser is None:
            return Result.err(CaptureError.provider_not_found(provider))
        return self._run_parser(provider, parser, decoded.unwrap(), options or ParseOptions())

    def parse_file_auto(self, data: RawInput, options: Optional[ParseOptions] = None) -> CaptureResult:
        """Parse ``data`` with whichever registered parser accepts it first."""
        decoded = self._decode(data)
        if decoded.is_err():
            return Result.err(decoded.error)
        raw = decoded.unwrap()

        if not self.config.enable_auto_detection:
            return Result.err(CaptureError.detection_failed("auto-detection is disabled"))

        provider = self.registry.detect(raw)
        if provider is None:
            reason = detection_failure_reason(raw)
            logger.warning(f"Format detection failed: {reason}")
            return Result.err(CaptureError.detection_failed(reason))

        logger.info(f"Detected provider '{provider}'")
        return self._run_parser(provider, self.registry.get(provider), raw, options or ParseOptions())

    def detect_provider(self, data: RawInput) -> Optional[DetectionResult]:
        decoded = self._decode(data)
        if decoded.is_err():
            return None
        return detect_with_confidence(decoded.unwrap(), self.registry)

    def create_streaming_builder(
        self,
        provider: str,
        conversation_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> StreamingConversationBuilder:
        return StreamingConversationBuilder(provider, conversation_id=conversation_id, title=title)

    # ==================== internals ====================

    def _decode(self, data: RawInput) -> Result[Any, CaptureError]:
        if isinstance(data, (dict, list)):
            return Result.ok(data)

        raw_bytes = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        size = len(raw_bytes)
        if size > self.config.max_file_size:
            return Result.err(CaptureError.file_too_large(size, self.config.max_file_size))
        try:
            return Result.ok(decode_json(raw_bytes))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            return Result.err(CaptureError.parse_error(f"Invalid JSON: {e}", cause=e))

    def _run_parser(
        self,
        provider: str,
        parser: ConversationParser,
        raw: Any,
        options: ParseOptions,
    ) -> CaptureResult:
        try:
            conversations = parser.parse(raw)
        except FormatError as e:
            return Result.err(CaptureError.parse_error(e.message, cause=e, provider=provider))
        except Exception as e:
            logger.error(f"Parser '{provider}' failed: {e}")
            return Result.err(CaptureError.parse_error(f"Parser '{provider}' failed: {e}", cause=e, provider=provider))

        limit = self.config.max_conversations_per_file
        if len(conversations) > limit:
            return Result.err(CaptureError.too_many_conversations(len(conversations), limit))

        if not options.validate:
            return Result.ok(conversations)
        return self._validate(conversations, options)

    def _validate(self, conversations: List[NormalizedConversation], options: ParseOptions) -> CaptureResult:
        batch = validate_conversations(conversations, strict=options.strict)
        if not batch.invalid:
            return Result.ok(batch.valid)

        errors = [err for _, errs in batch.invalid for err in errs]
        if options.strict:
            return Result.err(
                CaptureError.validation_error(
                    f"Strict validation failed for {len(batch.invalid)} of {len(conversations)} conversations",
                    errors=errors,
                )
            )
        if not batch.valid:
            return Result.err(
                CaptureError.validation_error(
                    f"All {len(conversations)} conversations failed validation",
                    errors=errors,
                )
            )
        if options.skip_invalid:
            logger.warning(f"Skipping {len(batch.invalid)} invalid conversations out of {len(conversations)}")
            return Result.ok(batch.valid)
        return Result.err(
            CaptureError.validation_error(
                f"{len(batch.invalid)} of {len(conversations)} conversations failed validation",
                errors=errors,
            )
        )
