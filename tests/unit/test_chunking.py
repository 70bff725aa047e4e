"""
Token counting, chunking strategies, orchestrator and cross-chunk deduplication.
"""

import pytest

from memweave.config import ChunkingSettings
from memweave.extraction.chunking import (
    ChunkingOrchestrator,
    ConversationBoundaryStrategy,
    MemoryDeduplicator,
    SemanticStrategy,
    SlidingWindowStrategy,
    TokenCounter,
    normalize_content,
)
from memweave.extraction.chunking.strategies.base import ChunkingStrategy
from memweave.extraction.chunking.strategies.semantic import keyword_similarity, keywords
from memweave.extraction.schema import ExtractedMemory, ExtractedRelationship

from ..conftest import make_conversation

# "user: " + 34 chars and "assistant: " + 29 chars are both 40 characters, i.e. 10 approximate tokens.
USER_TEXT = "u" * 34
ASSISTANT_TEXT = "a" * 29


def _memory(mem_id, content, confidence=0.8, mem_type="fact", **kwargs):
    values = dict(
        id=mem_id,
        type=mem_type,
        content=content,
        confidence=confidence,
        workspace_id="ws",
        conversation_id="conv",
        created_at="2024-01-01T00:00:00+00:00",
    )
    values.update(kwargs)
    return ExtractedMemory(**values)


def _covered(chunks):
    seen = []
    for chunk in chunks:
        for mid in chunk.message_ids:
            if mid not in seen:
                seen.append(mid)
    return seen


class TestTokenCounter:
    def test_approximate_rounds_up(self):
        counter = TokenCounter()
        assert counter.count("") == 0
        assert counter.count("abcd") == 1
        assert counter.count("abcde") == 2

    def test_provider_estimates(self):
        counter = TokenCounter()
        assert counter.count("a" * 7, "anthropic-estimate") == 2
        assert counter.count("a" * 38, "gemini-estimate") == 10

    def test_message_includes_role(self):
        conversation = make_conversation([USER_TEXT, ASSISTANT_TEXT])
        counter = TokenCounter()
        assert counter.count_message(conversation.messages[0]) == 10
        assert counter.count_conversation(conversation) == 20

    def test_cache_is_bounded(self):
        counter = TokenCounter(cache_size=2)
        for text in ("one", "two", "three", "three"):
            counter.count(text)
        assert counter.cache_info == {"size": 2, "max_size": 2}
        counter.clear_cache()
        assert counter.cache_info["size"] == 0

    def test_detailed_count_reports_method(self):
        detail = TokenCounter().count_detailed("hello world", "anthropic-estimate")
        assert detail.method == "anthropic-estimate"
        assert detail.accuracy == "medium"

    def test_tiktoken_count_is_positive(self):
        detail = TokenCounter().count_detailed("hello world", "openai-tiktoken")
        assert detail.tokens > 0
        assert detail.method in ("openai-tiktoken", "approximate")


class TestSlidingWindow:
    def _config(self, **overrides):
        values = dict(max_tokens_per_chunk=30, overlap_tokens=10, min_chunk_size=1)
        values.update(overrides)
        return ChunkingSettings(**values)

    def test_windows_overlap_and_advance(self):
        conversation = make_conversation([USER_TEXT] * 10, conversation_id="conv", roles=["user"] * 10)
        chunks = SlidingWindowStrategy().chunk(conversation, self._config())

        assert [c.id for c in chunks] == [f"conv-chunk-{i}" for i in range(1, 6)]
        assert chunks[0].message_ids == ["m0", "m1", "m2"]
        assert chunks[1].message_ids == ["m2", "m3", "m4"]
        assert chunks[-1].message_ids == ["m8", "m9"]
        assert all(c.token_count <= 30 for c in chunks)
        assert all(c.total_chunks == 5 for c in chunks)
        assert _covered(chunks) == [f"m{i}" for i in range(10)]

    def test_overlap_counts(self):
        conversation = make_conversation([USER_TEXT] * 10, roles=["user"] * 10)
        chunks = SlidingWindowStrategy().chunk(conversation, self._config())
        assert chunks[0].overlap_with_previous == 0
        assert chunks[0].overlap_with_next == 1
        assert chunks[1].overlap_with_previous == 1
        assert chunks[1].overlap_tokens_with_previous == 10
        assert chunks[-1].overlap_with_next == 0

    def test_short_conversation_is_one_chunk(self):
        conversation = make_conversation([USER_TEXT, ASSISTANT_TEXT])
        chunks = SlidingWindowStrategy().chunk(conversation, self._config())
        assert len(chunks) == 1
        assert chunks[0].sequence == 1
        assert chunks[0].metadata["chunking_strategy"] == "sliding-window"

    def test_oversized_message_gets_its_own_chunk(self):
        conversation = make_conversation([USER_TEXT, "x" * 400, ASSISTANT_TEXT])
        chunks = SlidingWindowStrategy().chunk(conversation, self._config())
        assert any(c.message_ids == ["m1"] for c in chunks)
        assert _covered(chunks) == ["m0", "m1", "m2"]


class TestConversationBoundary:
    def test_cuts_before_user_turns(self):
        texts = [USER_TEXT if i % 2 == 0 else ASSISTANT_TEXT for i in range(8)]
        conversation = make_conversation(texts)
        chunks = ConversationBoundaryStrategy().chunk(conversation, ChunkingSettings(max_tokens_per_chunk=30))

        assert [c.message_ids for c in chunks] == [["m0", "m1"], ["m2", "m3"], ["m4", "m5"], ["m6", "m7"]]
        assert chunks[0].metadata["boundary_reason"] == "user message"
        assert chunks[-1].metadata["boundary_reason"] == "end of conversation"

    def test_cuts_at_time_gap(self):
        timestamps = [
            "2024-01-01T00:00:00+00:00",
            "2024-01-01T00:00:01+00:00",
            "2024-01-01T00:00:02+00:00",
            "2024-01-01T00:10:03+00:00",
            "2024-01-01T00:10:04+00:00",
            "2024-01-01T00:10:05+00:00",
        ]
        conversation = make_conversation([ASSISTANT_TEXT] * 6, roles=["assistant"] * 6, timestamps=timestamps)
        chunks = ConversationBoundaryStrategy().chunk(conversation, ChunkingSettings(max_tokens_per_chunk=40))

        assert [c.message_ids for c in chunks] == [["m0", "m1", "m2"], ["m3", "m4", "m5"]]
        assert chunks[0].metadata["boundary_reason"] == "large time gap"

    def test_falls_back_without_boundaries(self):
        conversation = make_conversation([ASSISTANT_TEXT] * 6, roles=["assistant"] * 6)
        chunks = ConversationBoundaryStrategy().chunk(conversation, ChunkingSettings(max_tokens_per_chunk=30))
        assert chunks[0].metadata["chunking_strategy"] == "sliding-window"


class TestSemantic:
    def test_keywords_drop_stop_words(self):
        bag = keywords(make_conversation(["The database and the database migrations"]).messages[0])
        assert bag["database"] == 2
        assert "the" not in bag and "and" not in bag

    def test_keyword_similarity(self):
        bag = keywords(make_conversation(["python django database"]).messages[0])
        other = keywords(make_conversation(["tomato pasta garlic"]).messages[0])
        assert keyword_similarity(bag, bag) == 1.0
        assert keyword_similarity(bag, other) == 0.0

    def test_splits_on_topic_shift(self):
        texts = ["Python django database migrations keep failing"] * 3 + ["Tomato pasta recipe with garlic basil"] * 3
        conversation = make_conversation(texts)
        config = ChunkingSettings(max_tokens_per_chunk=1000, min_chunk_size=30)
        chunks = SemanticStrategy().chunk(conversation, config)

        assert [c.message_ids for c in chunks] == [["m0", "m1", "m2"], ["m3", "m4", "m5"]]
        assert chunks[0].metadata["boundary_reason"].startswith("strong topic shift")

    def test_short_conversation_falls_back(self):
        conversation = make_conversation(["one topic here", "and more of it"])
        chunks = SemanticStrategy().chunk(conversation, ChunkingSettings(max_tokens_per_chunk=1000))
        assert chunks[0].metadata["chunking_strategy"] == "sliding-window"


class TestOrchestrator:
    def test_needs_chunking(self):
        orchestrator = ChunkingOrchestrator()
        conversation = make_conversation([USER_TEXT, ASSISTANT_TEXT])
        assert not orchestrator.needs_chunking(conversation, ChunkingSettings(max_tokens_per_chunk=20))
        assert orchestrator.needs_chunking(conversation, ChunkingSettings(max_tokens_per_chunk=19))

    def test_default_strategies(self):
        names = ChunkingOrchestrator().available_strategies()
        assert names == ["sliding-window", "conversation-boundary", "semantic"]

    def test_unknown_custom_strategy(self):
        config = ChunkingSettings(strategy="custom", custom_strategy_name="nope")
        with pytest.raises(ValueError, match="not found"):
            ChunkingOrchestrator().chunk(make_conversation([USER_TEXT]), config)

    def test_custom_strategy_is_used(self):
        class OnePerMessage(ChunkingStrategy):
            name = "one-per-message"

            def chunk(self, conversation, config):
                segments = [(i, i + 1) for i in range(len(conversation.messages))]
                return self._from_segments(conversation, segments, config)

        orchestrator = ChunkingOrchestrator()
        orchestrator.register_strategy(OnePerMessage())
        config = ChunkingSettings(strategy="custom", custom_strategy_name="one-per-message")
        chunks = orchestrator.chunk(make_conversation([USER_TEXT, ASSISTANT_TEXT, USER_TEXT]), config)
        assert [c.message_ids for c in chunks] == [["m0"], ["m1"], ["m2"]]

    def test_strategy_that_cannot_handle(self):
        conversation = make_conversation([])
        with pytest.raises(ValueError, match="cannot handle"):
            ChunkingOrchestrator().select_strategy(conversation, ChunkingSettings())


class TestDeduplicator:
    def test_normalize_content(self):
        assert normalize_content("  The API,   uses REST! ") == "the api uses rest"

    def test_exact_duplicates_merge_into_highest_confidence(self):
        first = _memory("mem_1", "The API uses REST.", 0.7, source_message_ids=["m1"],
                        source_chunks=["c-chunk-1"], chunk_confidence=[0.7])
        second = _memory("mem_2", "the api uses rest", 0.9, source_message_ids=["m3"],
                         source_chunks=["c-chunk-2"], chunk_confidence=[0.9],
                         created_at="2023-12-31T00:00:00+00:00")

        merged = MemoryDeduplicator().deduplicate([first, second])
        assert len(merged) == 1
        memory = merged[0]
        assert memory.id == "mem_2"
        assert memory.confidence == 0.9
        assert memory.merged_from == ["mem_1", "mem_2"]
        assert memory.source_chunks == ["c-chunk-1", "c-chunk-2"]
        assert memory.chunk_confidence == [0.7, 0.9]
        assert memory.source_message_ids == ["m1", "m3"]
        assert memory.created_at == "2023-12-31T00:00:00+00:00"

    def test_near_duplicates_merge(self):
        memories = [
            _memory("a", "User prefers dark mode in the editor"),
            _memory("b", "User prefers dark mode in the editors"),
            _memory("c", "Deploy on Friday afternoons"),
        ]
        result = MemoryDeduplicator().deduplicate(memories)
        assert len(result) == 2

    def test_types_never_merge(self):
        memories = [_memory("a", "Ship the release", mem_type="decision"), _memory("b", "Ship the release", mem_type="task")]
        assert len(MemoryDeduplicator().deduplicate(memories)) == 2

    def test_entities_need_matching_kind(self):
        person = _memory("a", "Jordan", mem_type="entity", metadata={"entityType": "person", "name": "Jordan"})
        place = _memory("b", "Jordan", mem_type="entity", metadata={"entityType": "place", "name": "Jordan"})
        dedup = MemoryDeduplicator()
        assert dedup.similarity(person, place) == 0.7
        assert len(dedup.deduplicate([person, place])) == 2

    def test_missing_metadata_is_filled_from_duplicates(self):
        first = _memory("a", "Use Postgres", 0.9, mem_type="decision", metadata={"decision": "Use Postgres"})
        second = _memory("b", "Use Postgres", 0.6, mem_type="decision", metadata={"rationale": "JSON support"})
        merged = MemoryDeduplicator().merge([first, second])
        assert merged.metadata == {"decision": "Use Postgres", "rationale": "JSON support"}

    def test_relationships_follow_merged_memories(self):
        dedup = MemoryDeduplicator()
        memories = dedup.deduplicate([
            _memory("a", "Alice works at Acme", 0.6),
            _memory("b", "Alice works at Acme.", 0.9),
            _memory("c", "Acme is in Berlin", 0.8),
        ])
        relationships = [
            ExtractedRelationship(id="r1", from_memory_id="a", to_memory_id="c", relationship_type="related_to", confidence=0.5),
            ExtractedRelationship(id="r2", from_memory_id="b", to_memory_id="c", relationship_type="related_to", confidence=0.8),
            ExtractedRelationship(id="r3", from_memory_id="b", to_memory_id="gone", relationship_type="mentions", confidence=0.9),
        ]
        merged = dedup.merge_relationships(memories, relationships)
        assert len(merged) == 1
        assert merged[0].id == "r2"
        assert (merged[0].from_memory_id, merged[0].to_memory_id) == ("b", "c")
