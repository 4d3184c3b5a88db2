"""Unit tests for the OpenAI chat model adapter.

WHAT: Message conversion, chunk parsing and stream error mapping.
WHY: The orchestrator only sees StreamChunks; everything provider specific
     must be translated (or rejected) here.
REFERENCES:
    - app/agent/llm.py
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError

from app.agent.exceptions import ModelStreamError
from app.agent.llm import OpenAIChatModel, parse_openai_chunk, to_openai_messages
from app.agent.state import ConversationTurn, ToolCallRequest, ToolResult


def raw_chunk(content=None, tool_calls=None):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content, tool_calls=tool_calls))])


def raw_tool_call(index, id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))


class FakeResponse:
    """Async-iterable, async-context-managed stand-in for an OpenAI stream."""

    def __init__(self, chunks, error=None):
        self.chunks = chunks
        self.error = error
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


def fake_openai(response=None, error=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=error)
    return client


def drain(model, conversation=None, catalog=None):
    async def run():
        return [c async for c in model.stream(conversation or [ConversationTurn.user("hi")], catalog or [])]
    return asyncio.run(run())


class TestToOpenAIMessages:

    def test_converts_every_role(self):
        call = ToolCallRequest(id="call_1", name="ga_total_revenue", arguments={}, raw_arguments="{}")
        messages = to_openai_messages([
            ConversationTurn.system("sys"),
            ConversationTurn.user("q"),
            ConversationTurn.assistant(" ", tool_calls=[call]),
            ConversationTurn.tool(ToolResult(tool_call_id="call_1", payload='{"rows": []}')),
            ConversationTurn.assistant("answer"),
        ])

        assert messages == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "q"},
            {
                "role": "assistant",
                "content": " ",
                "tool_calls": [{
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "ga_total_revenue", "arguments": "{}"},
                }],
            },
            {"role": "tool", "tool_call_id": "call_1", "content": '{"rows": []}'},
            {"role": "assistant", "content": "answer"},
        ]


class TestParseOpenAIChunk:

    def test_text(self):
        assert parse_openai_chunk(raw_chunk(content="Hi")).text == "Hi"

    def test_tool_call_fragment(self):
        chunk = parse_openai_chunk(raw_chunk(tool_calls=[raw_tool_call(0, id="call_1", name="ga_run_report")]))
        [delta] = chunk.tool_call_deltas
        assert (delta.index, delta.id, delta.name, delta.arguments) == (0, "call_1", "ga_run_report", None)

    @pytest.mark.parametrize("raw", [
        SimpleNamespace(choices=[]),
        SimpleNamespace(choices=None),
        raw_chunk(content=""),
        raw_chunk(content=None, tool_calls=[]),
    ])
    def test_empty_chunks_are_skipped(self, raw):
        assert parse_openai_chunk(raw) is None

    def test_non_string_content_rejected(self):
        with pytest.raises(TypeError):
            parse_openai_chunk(raw_chunk(content=["not", "text"]))


class TestOpenAIChatModel:

    def test_streams_parsed_chunks_and_skips_malformed(self):
        response = FakeResponse([
            raw_chunk(content="Hel"),
            SimpleNamespace(),  # no choices attribute at all
            raw_chunk(content=123),
            raw_chunk(content="lo"),
        ])
        model = OpenAIChatModel(fake_openai(response))

        chunks = drain(model)

        assert [c.text for c in chunks] == ["Hel", "lo"]
        assert response.closed

    def test_request_parameters(self):
        client = fake_openai(FakeResponse([]))
        model = OpenAIChatModel(client, model="gpt-test", temperature=0.2, max_tokens=100)
        catalog = [{"type": "function", "function": {"name": "ga_total_revenue"}}]

        drain(model, catalog=catalog)

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 100
        assert kwargs["stream"] is True
        assert kwargs["tools"] == catalog
        assert kwargs["tool_choice"] == "auto"

    def test_no_tools_without_catalog(self):
        client = fake_openai(FakeResponse([]))
        drain(OpenAIChatModel(client))

        kwargs = client.chat.completions.create.call_args.kwargs
        assert "tools" not in kwargs
        assert "tool_choice" not in kwargs

    def test_open_failure_becomes_model_stream_error(self):
        model = OpenAIChatModel(fake_openai(error=OpenAIError("invalid api key")))

        with pytest.raises(ModelStreamError) as exc_info:
            drain(model)
        assert exc_info.value.provider == "openai"

    def test_mid_stream_failure_becomes_model_stream_error(self):
        response = FakeResponse([raw_chunk(content="Par")], error=OpenAIError("connection reset"))
        model = OpenAIChatModel(fake_openai(response))

        with pytest.raises(ModelStreamError):
            drain(model)
        assert response.closed
