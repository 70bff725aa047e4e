"""
IncrementalExtractor tests
"""

import pytest

from memweave.core.errors import ExtractionErrorKind
from memweave.extraction import ExtractorConfig, MemoryExtractor

from ..conftest import ScriptedProvider, make_conversation


def _payload(*contents):
    return {
        "memories": [{"type": "fact", "content": c, "confidence": 0.9, "metadata": {}} for c in contents],
        "relationships": [],
    }


def _messages(texts, offset=0):
    conversation = make_conversation(texts, conversation_id="live")
    for i, message in enumerate(conversation.messages):
        message.id = f"m{offset + i}"
    return conversation.messages


def _incremental(handler):
    provider = ScriptedProvider(handler)
    extractor = MemoryExtractor(ExtractorConfig(provider=provider))
    return extractor.create_incremental_extractor("live", "ws"), provider


class TestIncrementalExtractor:
    @pytest.mark.asyncio
    async def test_new_memories_are_emitted_once(self):
        responses = {
            1: _payload("Alice leads the team"),
            2: _payload("alice leads the   team", "Launch is in May"),
        }
        incremental, provider = _incremental(lambda n, p: responses[n])
        seen = []
        incremental.on("memory", seen.append)

        first = await incremental.add_messages(_messages(["Alice leads the team."]))
        second = await incremental.add_messages(_messages(["We launch in May."], offset=1))

        assert [m.content for m in first.value] == ["Alice leads the team"]
        assert [m.content for m in second.value] == ["Launch is in May"]
        assert [m.content for m in seen] == ["Alice leads the team", "Launch is in May"]
        assert len(incremental.memories) == 2
        assert incremental.memories[0].id == first.value[0].id

    @pytest.mark.asyncio
    async def test_later_prompts_carry_history_and_existing_memories(self):
        incremental, provider = _incremental(lambda n, p: _payload(f"memory {n}"))
        await incremental.add_messages(_messages(["first message"]))
        await incremental.add_messages(_messages(["second message"], offset=1))

        assert "EXISTING MEMORIES" not in provider.prompts[0]
        assert "PREVIOUS CONTEXT:\nUSER: first message" in provider.prompts[1]
        assert "[fact] memory 1" in provider.prompts[1]
        assert "NEW MESSAGES:\nUSER: second message" in provider.prompts[1]

    @pytest.mark.asyncio
    async def test_source_messages_are_the_new_batch(self):
        incremental, _ = _incremental(lambda n, p: _payload(f"memory {n}"))
        await incremental.add_messages(_messages(["one"]))
        result = await incremental.add_messages(_messages(["two", "three"], offset=1))
        assert result.value[0].source_message_ids == ["m1", "m2"]
        assert result.value[0].workspace_id == "ws"
        assert result.value[0].conversation_id == "live"

    @pytest.mark.asyncio
    async def test_finalize(self):
        incremental, provider = _incremental(lambda n, p: _payload("Alice leads the team"))
        finalized = []
        incremental.on("finalized", finalized.append)

        await incremental.add_messages(_messages(["Alice leads the team."]))
        result = await incremental.finalize()

        assert provider.call_count == 1
        assert [m.content for m in result.value] == ["Alice leads the team"]
        assert len(finalized) == 1 and len(finalized[0]) == 1
        state = incremental.get_state()
        assert state.is_finalized and state.message_count == 1 and state.memory_count == 1

    @pytest.mark.asyncio
    async def test_use_after_finalize(self):
        incremental, _ = _incremental(lambda n, p: _payload())
        await incremental.finalize()

        late = await incremental.add_messages(_messages(["too late"]))
        assert late.is_err()
        assert late.error.kind == ExtractionErrorKind.ALREADY_FINALIZED
        assert late.error.type == "already_finalized"
        assert (await incremental.finalize()).error.code == "ALREADY_FINALIZED"

    @pytest.mark.asyncio
    async def test_failed_batch_is_retried_with_next_call(self):
        def handler(n, prompt):
            return ValueError("temporary") if n == 1 else _payload("recovered")

        incremental, provider = _incremental(handler)
        failed = await incremental.add_messages(_messages(["one"]))
        assert failed.error.kind == ExtractionErrorKind.LLM_ERROR

        recovered = await incremental.add_messages(_messages(["two"], offset=1))
        assert [m.content for m in recovered.value] == ["recovered"]
        assert "USER: one" in provider.prompts[1] and "two" in provider.prompts[1]

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_break_extraction(self):
        incremental, _ = _incremental(lambda n, p: _payload("fine"))
        received = []

        def broken(memory):
            raise RuntimeError("listener bug")

        async def async_listener(memory):
            received.append(memory.content)

        incremental.on("memory", broken)
        incremental.on("memory", async_listener)
        result = await incremental.add_messages(_messages(["hello"]))
        assert result.is_ok()
        assert received == ["fine"]

    def test_unknown_event(self):
        incremental, _ = _incremental(None)
        with pytest.raises(ValueError):
            incremental.on("chunk", print)
