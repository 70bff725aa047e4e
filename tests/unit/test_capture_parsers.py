"""
Provider export parser, registry and detection tests
"""

import pytest

from memweave.capture import (
    AnthropicExportParser,
    OpenAIExportParser,
    ParserRegistry,
    create_default_registry,
    detect_by_structure,
    detect_with_confidence,
    detection_failure_reason,
)
from memweave.capture.parsers.base import normalize_role
from memweave.core.errors import FormatError


def _node(node_id, role, text, parent, children, create_time=1700000000):
    return {
        "id": node_id,
        "message": {
            "id": f"msg-{node_id}",
            "author": {"role": role},
            "content": {"content_type": "text", "parts": [text]},
            "create_time": create_time,
        },
        "parent": parent,
        "children": children,
    }


def openai_conversation(conv_id="c1"):
    return {
        "id": conv_id,
        "title": "Trip planning",
        "create_time": 1700000000,
        "update_time": 1700000100,
        "mapping": {
            "root": {"id": "root", "message": None, "parent": None, "children": ["a"]},
            "a": _node("a", "user", "Where should we go?", "root", ["b"]),
            "b": _node("b", "assistant", "Lisbon is nice.", "a", []),
        },
    }


def anthropic_conversation(conv_id="u1"):
    return {
        "uuid": conv_id,
        "name": "Refactor",
        "created_at": "2024-03-01T10:00:00Z",
        "updated_at": "2024-03-01T10:05:00Z",
        "chat_messages": [
            {"uuid": "m1", "text": "Can you help me refactor?", "sender": "human", "created_at": "2024-03-01T10:00:00Z"},
            {"uuid": "m2", "text": "Sure, show me the code.", "sender": "claude", "created_at": "2024-03-01T10:01:00Z"},
        ],
    }


class TestRoleNormalization:
    @pytest.mark.parametrize(
        "tag, expected",
        [("user", "user"), ("Human", "user"), ("system", "system"), ("assistant", "assistant"), ("mystery", "assistant")],
    )
    def test_normalize_role(self, tag, expected):
        assert normalize_role(tag) == expected


class TestOpenAIExportParser:
    def test_single_conversation(self):
        conversations = OpenAIExportParser().parse(openai_conversation())
        assert len(conversations) == 1
        conv = conversations[0]
        assert conv.provider == "openai"
        assert conv.external_id == "c1"
        assert conv.title == "Trip planning"
        assert [m.role for m in conv.messages] == ["user", "assistant"]
        assert conv.messages[0].content == "Where should we go?"
        assert conv.messages[0].id == "msg-a"
        assert conv.messages[0].raw_metadata["node_id"] == "a"

    def test_single_and_enveloped_give_same_messages(self):
        parser = OpenAIExportParser()
        single = parser.parse(openai_conversation())[0]
        enveloped = parser.parse({"conversations": [openai_conversation()]})[0]
        listed = parser.parse([openai_conversation()])[0]
        for other in (enveloped, listed):
            assert [(m.role, m.content) for m in other.messages] == [(m.role, m.content) for m in single.messages]

    def test_branches_are_read_depth_first_in_child_order(self):
        conv = {
            "id": "branchy",
            "mapping": {
                "root": {"id": "root", "message": None, "parent": None, "children": ["q"]},
                "q": _node("q", "user", "question", "root", ["a1", "a2"]),
                "a1": _node("a1", "assistant", "first answer", "q", ["f1"]),
                "f1": _node("f1", "user", "follow up", "a1", []),
                "a2": _node("a2", "assistant", "second answer", "q", []),
            },
        }
        messages = OpenAIExportParser().parse(conv)[0].messages
        assert [m.content for m in messages] == ["question", "first answer", "follow up", "second answer"]

    def test_non_string_parts_are_ignored(self):
        conv = openai_conversation()
        conv["mapping"]["a"]["message"]["content"]["parts"] = ["hello", {"image": "x"}, "world"]
        messages = OpenAIExportParser().parse(conv)[0].messages
        assert messages[0].content == "hello\nworld"

    def test_empty_conversations_are_dropped(self):
        empty = {"id": "empty", "mapping": {"root": {"id": "root", "message": None, "parent": None, "children": []}}}
        conversations = OpenAIExportParser().parse([empty, openai_conversation()])
        assert [c.external_id for c in conversations] == ["c1"]

    def test_missing_mapping_on_single_document_raises(self):
        with pytest.raises(FormatError):
            OpenAIExportParser().parse({"id": "nope"})

    def test_defective_item_in_envelope_is_skipped(self):
        conversations = OpenAIExportParser().parse([openai_conversation(), {"id": "broken"}])
        assert len(conversations) == 1

    def test_timestamps_come_from_export(self):
        conv = OpenAIExportParser().parse(openai_conversation())[0]
        assert conv.created_at.startswith("2023-11-14")


class TestAnthropicExportParser:
    def test_sender_mapping(self):
        conv = AnthropicExportParser().parse(anthropic_conversation())[0]
        assert [m.role for m in conv.messages] == ["user", "assistant"]
        assert conv.messages[0].raw_metadata["original_sender"] == "human"
        assert conv.external_id == "u1"
        assert conv.title == "Refactor"

    def test_content_blocks(self):
        conv = anthropic_conversation()
        conv["chat_messages"][1] = {
            "uuid": "m2",
            "sender": "assistant",
            "content": [{"type": "text", "text": "part one"}, {"type": "tool_use"}, {"type": "text", "text": "part two"}],
        }
        messages = AnthropicExportParser().parse(conv)[0].messages
        assert messages[1].content == "part one\npart two"

    def test_blank_messages_dropped(self):
        conv = anthropic_conversation()
        conv["chat_messages"].append({"uuid": "m3", "text": "   ", "sender": "human"})
        assert len(AnthropicExportParser().parse(conv)[0].messages) == 2

    def test_missing_chat_messages_raises_for_single_document(self):
        with pytest.raises(FormatError):
            AnthropicExportParser().parse({"uuid": "x", "name": "no messages"})

    def test_defective_envelope_item_skipped(self):
        conversations = AnthropicExportParser().parse([anthropic_conversation(), {"uuid": "bad"}])
        assert len(conversations) == 1


class TestRegistryAndDetection:
    def test_default_registry_order(self):
        registry = create_default_registry()
        assert registry.ordered_providers() == ["openai", "anthropic"]
        assert "openai" in registry
        assert len(registry) == 2

    def test_detect_picks_matching_parser(self):
        registry = create_default_registry()
        assert registry.detect(openai_conversation()) == "openai"
        assert registry.detect([anthropic_conversation()]) == "anthropic"
        assert registry.detect({"foo": "bar"}) is None

    def test_first_registered_wins(self):
        class Greedy(OpenAIExportParser):
            def can_parse(self, raw):
                return True

        registry = ParserRegistry()
        registry.register("greedy", Greedy())
        registry.register("anthropic", AnthropicExportParser())
        assert registry.detect(anthropic_conversation()) == "greedy"

    def test_raising_can_parse_is_skipped(self):
        class Broken(OpenAIExportParser):
            def can_parse(self, raw):
                raise RuntimeError("boom")

        registry = ParserRegistry()
        registry.register("broken", Broken())
        registry.register("anthropic", AnthropicExportParser())
        assert registry.detect(anthropic_conversation()) == "anthropic"

    def test_register_replaces_in_place(self):
        registry = create_default_registry()
        replacement = OpenAIExportParser()
        registry.register("openai", replacement)
        assert registry.get("openai") is replacement
        assert registry.ordered_providers() == ["openai", "anthropic"]
        assert registry.unregister("openai") is True
        assert registry.unregister("openai") is False

    def test_structural_detection(self):
        assert detect_by_structure(openai_conversation()) == "openai"
        assert detect_by_structure({"conversations": [anthropic_conversation()]}) == "anthropic"
        assert detect_by_structure({"hello": 1}) is None

    def test_confidence_high_when_structure_agrees(self):
        result = detect_with_confidence(openai_conversation(), create_default_registry())
        assert result.provider == "openai"
        assert result.confidence == "high"
        assert "parser:openai" in result.matched_patterns

    def test_failure_reason(self):
        assert "null" in detection_failure_reason(None)
        assert "not an object" in detection_failure_reason(42)
        assert detection_failure_reason({"foo": 1})
