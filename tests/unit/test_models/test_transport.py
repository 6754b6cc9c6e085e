"""Unit tests for the LLM transport."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage, SystemMessage

from deep_research.models.transport import LLMTransport, to_langchain_messages
from deep_research.utils.exceptions import AuthenticationMissingError, ModelTimeoutError, TransportError


@pytest.fixture
def model():
    llm = MagicMock()
    llm.bind.return_value = llm
    llm.ainvoke = AsyncMock(return_value=AIMessage(content="ok"))
    return llm


@pytest.fixture
def registry(model):
    reg = MagicMock()
    reg.get_model.return_value = model
    reg.has_credentials.return_value = True
    return reg


@pytest.fixture
def transport(registry, settings):
    return LLMTransport(registry, settings)


def test_to_langchain_messages():
    messages = to_langchain_messages([
        {"role": "system", "content": "rules"},
        {"role": "user", "content": "question"},
    ])
    assert isinstance(messages[0], SystemMessage)
    assert isinstance(messages[1], HumanMessage)

    with pytest.raises(ValueError):
        to_langchain_messages([{"role": "tool", "content": "x"}])


class TestChat:
    @pytest.mark.asyncio
    async def test_returns_content_reasoning_and_usage(self, transport, model, registry):
        model.ainvoke.return_value = AIMessage(
            content="Steel prices rose 12%.",
            additional_kwargs={"reasoning_content": "Checked two sources."},
            usage_metadata={"input_tokens": 10, "output_tokens": 5, "total_tokens": 15},
        )

        result = await transport.chat([{"role": "user", "content": "prices?"}], model="reasoner")

        assert result.content == "Steel prices rose 12%."
        assert result.reasoning == "Checked two sources."
        assert result.usage["total_tokens"] == 15
        registry.record_usage.assert_called_once_with("reasoner", 15)

    @pytest.mark.asyncio
    async def test_deadline_raises_model_timeout(self, transport, model, registry):
        async def slow(_messages):
            await asyncio.sleep(1)

        model.ainvoke.side_effect = slow

        with pytest.raises(ModelTimeoutError):
            await transport.chat([{"role": "user", "content": "x"}], model="chat", timeout_s=0.01)
        registry.record_usage.assert_called_once_with("chat", 0, failed=True)

    @pytest.mark.asyncio
    async def test_provider_error_wrapped(self, transport, model):
        model.ainvoke.side_effect = RuntimeError("502 bad gateway")

        with pytest.raises(TransportError, match="502"):
            await transport.chat([{"role": "user", "content": "x"}], model="chat")

    @pytest.mark.asyncio
    async def test_missing_key_propagates(self, transport, registry):
        registry.get_model.side_effect = AuthenticationMissingError("no key")

        with pytest.raises(AuthenticationMissingError):
            await transport.chat([{"role": "user", "content": "x"}])

    @pytest.mark.asyncio
    async def test_stream_reports_deltas(self, transport, model):
        async def chunks(_messages):
            yield AIMessageChunk(content="", additional_kwargs={"reasoning_content": "thinking"})
            yield AIMessageChunk(content="Steel ")
            yield AIMessageChunk(content="rose.")

        model.astream = chunks
        deltas = []

        result = await transport.chat([{"role": "user", "content": "x"}], stream=True, on_delta=deltas.append)

        assert result.content == "Steel rose."
        assert result.reasoning == "thinking"
        assert [d.kind for d in deltas] == ["reasoning", "content", "content"]

    @pytest.mark.asyncio
    async def test_quick_reason_uses_reasoner(self, transport, registry, model):
        model.ainvoke.return_value = AIMessage(content="Short answer")

        assert await transport.quick_reason("why?", context="prior turn") == "Short answer"
        assert registry.get_model.call_args.args[0] == "reasoner"
        sent = model.ainvoke.await_args.args[0]
        assert len(sent) == 3


class TestJson:
    @pytest.mark.asyncio
    async def test_schema_bound_and_repaired(self, transport, model):
        model.ainvoke.return_value = AIMessage(content='{"agents": [{"name": "a", "query": "q"},],}')

        result = await transport.json("decompose", {"type": "object"}, name="decomposition")

        assert result == {"agents": [{"name": "a", "query": "q"}]}
        response_format = model.bind.call_args.kwargs["response_format"]
        assert response_format["json_schema"]["name"] == "decomposition"

    @pytest.mark.asyncio
    async def test_no_credentials_returns_none(self, transport, registry, model):
        registry.has_credentials.return_value = False

        assert await transport.json("x", {}) is None
        model.ainvoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self, transport, model):
        async def slow(_messages):
            await asyncio.sleep(1)

        model.ainvoke.side_effect = slow

        assert await transport.json("x", {}, timeout_s=0.01) is None

    @pytest.mark.asyncio
    async def test_unparsable_returns_none(self, transport, model):
        model.ainvoke.return_value = AIMessage(content="I cannot help with that.")

        assert await transport.json("x", {}) is None

    @pytest.mark.asyncio
    async def test_chat_json_failure_returns_none(self, transport, model):
        model.ainvoke.side_effect = RuntimeError("down")

        assert await transport.chat_json("x") is None

    @pytest.mark.asyncio
    async def test_chat_json_parses_fenced_output(self, transport, model):
        model.ainvoke.return_value = AIMessage(content='```json\n{"slots": []}\n```')

        assert await transport.chat_json("x") == {"slots": []}
