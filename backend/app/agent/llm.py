"""
LLM Streaming Client
====================

**Version**: 1.0.0
**Status**: Active

Adapter between the orchestrator's provider-neutral types and the OpenAI
chat completions streaming API.

WHY THIS FILE EXISTS
--------------------
The orchestrator only knows "a stream of chunks, each with optional text
and optional tool call fragments". This module owns everything
provider-specific:

    - ConversationTurn -> OpenAI message dicts (assistant tool_calls, tool ids)
    - OpenAI ChatCompletionChunk -> StreamChunk
    - malformed chunks -> skipped (logged)
    - provider/transport failures -> ModelStreamError

STREAM LIFECYCLE
----------------
The OpenAI AsyncStream is used as an async context manager, so closing this
generator (the caller stopped consuming) closes the HTTP response.

RELATED FILES
-------------
- app/agent/orchestrator.py: Consumes ChatModel.stream()
- app/agent/state.py: StreamChunk, ToolCallDelta, ConversationTurn
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence

import httpx
from openai import AsyncOpenAI, OpenAIError

from app.agent.exceptions import ModelStreamError
from app.agent.state import ConversationTurn, MessageRole, StreamChunk, ToolCallDelta
from app.utils.env import require_env

logger = logging.getLogger(__name__)

# Model configuration - easy to switch models
LLM_MODEL = "gpt-4o-mini"


class ChatModel(Protocol):
    """Streaming language model bound to a tool catalog."""

    def stream(
        self,
        conversation: Sequence[ConversationTurn],
        tool_catalog: List[Dict[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        ...


def get_async_openai_client(api_key: Optional[str] = None) -> AsyncOpenAI:
    """Get async OpenAI client for non-blocking streaming calls."""
    return AsyncOpenAI(api_key=api_key or require_env("OPENAI_API_KEY"))


def to_openai_messages(conversation: Sequence[ConversationTurn]) -> List[Dict[str, Any]]:
    """Convert working conversation turns into OpenAI chat message dicts."""
    messages: List[Dict[str, Any]] = []
    for turn in conversation:
        if turn.role is MessageRole.TOOL:
            messages.append({
                "role": "tool",
                "tool_call_id": turn.tool_call_id,
                "content": turn.content,
            })
        elif turn.role is MessageRole.ASSISTANT and turn.tool_calls:
            messages.append({
                "role": "assistant",
                "content": turn.content,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.arguments_json()},
                    }
                    for call in turn.tool_calls
                ],
            })
        else:
            messages.append({"role": turn.role.value, "content": turn.content})
    return messages


def parse_openai_chunk(chunk: Any) -> Optional[StreamChunk]:
    """
    Convert one ChatCompletionChunk. Returns None for chunks with nothing
    to forward (usage-only chunks, empty deltas).
    """
    choices = getattr(chunk, "choices", None)
    if not choices:
        return None
    delta = choices[0].delta
    if delta is None:
        return None

    text = delta.content
    if text is not None and not isinstance(text, str):
        raise TypeError(f"unexpected content type {type(text).__name__}")

    deltas: List[ToolCallDelta] = []
    for tc in delta.tool_calls or []:
        function = tc.function
        deltas.append(ToolCallDelta(
            index=tc.index,
            id=tc.id,
            name=function.name if function else None,
            arguments=function.arguments if function else None,
        ))

    if not text and not deltas:
        return None
    return StreamChunk(text=text or None, tool_call_deltas=deltas)


class OpenAIChatModel:
    """
    ChatModel backed by OpenAI chat completions with stream=True.

    USAGE:
        model = OpenAIChatModel(get_async_openai_client())
        async for chunk in model.stream(conversation, registry.catalog()):
            ...

    PARAMETERS:
        client: Shared AsyncOpenAI client
        model: Model name
        temperature: Sampling temperature (low: this is an analyst)
        max_tokens: Completion token cap per round
    """

    provider = "openai"

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = LLM_MODEL,
        temperature: float = 0.1,
        max_tokens: int = 2048,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def stream(
        self,
        conversation: Sequence[ConversationTurn],
        tool_catalog: List[Dict[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": to_openai_messages(conversation),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": True,
        }
        if tool_catalog:
            params["tools"] = tool_catalog
            params["tool_choice"] = "auto"

        try:
            response = await self.client.chat.completions.create(**params)
        except (OpenAIError, httpx.HTTPError) as e:
            logger.exception(f"[LLM] Failed to open stream: {e}")
            raise ModelStreamError(f"Model stream failed to start: {e}", provider=self.provider) from e

        async with response:
            try:
                async for raw in response:
                    try:
                        chunk = parse_openai_chunk(raw)
                    except (AttributeError, IndexError, TypeError) as e:
                        logger.warning(f"[LLM] Skipping malformed chunk: {e}")
                        continue
                    if chunk is not None:
                        yield chunk
            except (OpenAIError, httpx.HTTPError) as e:
                logger.exception(f"[LLM] Stream failed mid-response: {e}")
                raise ModelStreamError(f"Model stream failed: {e}", provider=self.provider) from e
