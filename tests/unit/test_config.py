"""
Settings loading and validation tests
"""

import pytest
from pydantic import ValidationError

from memweave.config import ChunkingSettings, LLMSettings, MemweaveSettings


class TestDefaults:
    def test_defaults(self):
        settings = MemweaveSettings()
        assert settings.capture.max_file_size == 50 * 1024 * 1024
        assert settings.capture.max_conversations_per_file == 1000
        assert settings.extraction.min_confidence == 0.5
        assert settings.extraction.memory_types == ["entity", "fact", "decision", "task"]
        assert settings.llm.provider == "openai"
        assert settings.llm.retry.max_retries == 3
        assert settings.maker.replicas == 3

    def test_unknown_keys_are_ignored(self):
        settings = MemweaveSettings.from_dict({"capture": {"max_file_size": 10, "color": "blue"}, "other_tool": {}})
        assert settings.capture.max_file_size == 10


class TestChunkingSettings:
    def test_overlap_from_percentage(self):
        config = ChunkingSettings(max_tokens_per_chunk=1000, overlap_percentage=0.2)
        assert config.overlap_token_count == 200
        assert config.min_chunk_tokens == 200

    def test_explicit_overlap_wins(self):
        assert ChunkingSettings(max_tokens_per_chunk=1000, overlap_tokens=50).overlap_token_count == 50

    def test_overlap_must_be_below_limit(self):
        with pytest.raises(ValidationError, match="must be less than"):
            ChunkingSettings(max_tokens_per_chunk=100, overlap_tokens=100)

    def test_overlap_ceiling(self):
        with pytest.raises(ValidationError, match="90%"):
            ChunkingSettings(max_tokens_per_chunk=100, overlap_tokens=95)

    def test_custom_strategy_needs_name(self):
        with pytest.raises(ValidationError, match="custom_strategy_name"):
            ChunkingSettings(strategy="custom")

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValidationError):
            ChunkingSettings(strategy="random")


class TestLoading:
    def test_from_yaml_with_namespace(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "memweave:\n"
            "  extraction:\n"
            "    min_confidence: 0.7\n"
            "    chunking:\n"
            "      strategy: semantic\n"
            "  maker:\n"
            "    replicas: 5\n",
            encoding="utf-8",
        )
        settings = MemweaveSettings.from_yaml(path)
        assert settings.extraction.min_confidence == 0.7
        assert settings.extraction.chunking.strategy == "semantic"
        assert settings.maker.replicas == 5

    def test_missing_yaml_gives_defaults(self, tmp_path):
        assert MemweaveSettings.from_yaml(tmp_path / "absent.yaml") == MemweaveSettings()

    def test_non_mapping_yaml_is_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ValueError):
            MemweaveSettings.from_yaml(path)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MEMWEAVE_LLM_PROVIDER", "anthropic")
        monkeypatch.setenv("MEMWEAVE_MIN_CONFIDENCE", "0.8")
        monkeypatch.setenv("MEMWEAVE_MAKER_REPLICAS", "not-a-number")
        settings = MemweaveSettings.from_env()
        assert settings.llm.provider == "anthropic"
        assert settings.llm.api_key_env == "ANTHROPIC_API_KEY"
        assert settings.llm.model.startswith("claude")
        assert settings.extraction.min_confidence == 0.8
        assert settings.maker.replicas == 3

    def test_llm_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("MEMWEAVE_LLM_MODEL", "gpt-4o")
        monkeypatch.setenv("LLM_REQUEST_TIMEOUT", "12.5")
        llm = LLMSettings.from_env()
        assert llm.model == "gpt-4o"
        assert llm.timeout == 12.5

    def test_api_key_read_from_named_variable(self, monkeypatch):
        monkeypatch.setenv("CUSTOM_KEY", "secret")
        settings = MemweaveSettings.from_dict({"llm": {"api_key_env": "CUSTOM_KEY"}})
        assert settings.llm.api_key == "secret"
