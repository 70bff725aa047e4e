from .settings import (
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_MEMORY_TYPES,
    CaptureSettings,
    ChunkingSettings,
    ExtractionSettings,
    LLMSettings,
    MakerSettings,
    MemweaveSettings,
    RetrySettings,
    setup_logging,
)

__all__ = [
    "DEFAULT_MAX_FILE_SIZE",
    "DEFAULT_MEMORY_TYPES",
    "CaptureSettings",
    "ChunkingSettings",
    "ExtractionSettings",
    "LLMSettings",
    "MakerSettings",
    "MemweaveSettings",
    "RetrySettings",
    "setup_logging",
]
