"""
Agent Orchestrator
==================

**Version**: 1.0.0
**Status**: Active

Bounded model <-> tool loop: stream model output, collect tool calls,
dispatch them, feed results back, repeat.

WHY THIS FILE EXISTS
--------------------
One user question often needs several tool calls ("which channel drove
purchases last month, and what did those users buy?"). The orchestrator
lets the model chain them while keeping three guarantees:

    1. Text reaches the caller as soon as the model produces it
    2. A tool failure never ends the run (the model gets an error result)
    3. The run always terminates (hard cap on tool rounds)

STATE MACHINE
-------------
```
Streaming --(no tool calls)--> Done
    |
 (tool calls)
    v
Dispatching --(round < max)--> Streaming
    |
 (round == max)
    v
Exhausted (advisory message)
```

CANCELLATION
------------
run() is an async generator the caller pulls from. If the caller stops
(client disconnected, aclose()), the model stream is closed at the next
chunk boundary. A tool call that already started is shielded and allowed
to finish.

RELATED FILES
-------------
- app/agent/llm.py: ChatModel implementation (OpenAI)
- app/agent/tools.py: ToolRegistry and ToolContext
- app/agent/stream.py: SSE framing of the fragments yielded here
- app/routers/chat.py: HTTP endpoint driving a run
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import aclosing
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

from app.agent.exceptions import AgentError, ModelStreamError, ToolExecutionError, UnknownToolError
from app.agent.llm import ChatModel
from app.agent.state import ConversationTurn, StreamChunk, ToolCallDelta, ToolCallRequest, ToolResult
from app.agent.tools import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 5
ROUND_SEPARATOR = "\n\n"
TOOL_ONLY_PLACEHOLDER = " "
DEFAULT_EXHAUSTED_MESSAGE = "I'm having trouble completing your request. Please try again."


# =============================================================================
# TOOL CALL ACCUMULATION
# =============================================================================

class ToolCallAccumulator:
    """
    Merges streamed tool call fragments into complete ToolCallRequests.

    WHAT:
        Providers spread one call across chunks: id + name first, then the
        arguments JSON in pieces. merge() folds each fragment into the
        in-flight call it belongs to; finalize() is called once the stream
        has ended.

    KEYING:
        By the fragment's stream index when present, else by its id. Later
        fragments usually carry only the index.

    USAGE:
        acc = ToolCallAccumulator()
        for delta in chunk.tool_call_deltas:
            acc.merge(delta)
        calls = acc.finalize()
    """

    def __init__(self):
        self._calls: Dict[Union[int, str], Dict[str, Optional[str]]] = {}

    def __bool__(self) -> bool:
        return bool(self._calls)

    def __len__(self) -> int:
        return len(self._calls)

    def merge(self, delta: ToolCallDelta) -> None:
        key = self._key_for(delta)
        if key is None:
            logger.warning("[AGENT] Dropping tool call fragment with neither index nor id")
            return

        entry = self._calls.setdefault(key, {"id": None, "name": "", "arguments": ""})
        if delta.id and not entry["id"]:
            entry["id"] = delta.id
        if delta.name:
            entry["name"] += delta.name
        if delta.arguments:
            entry["arguments"] += delta.arguments

    def _key_for(self, delta: ToolCallDelta) -> Optional[Union[int, str]]:
        if delta.index is not None:
            return delta.index
        if delta.id:
            # An id-only fragment continuing a call that was opened by index.
            for key, entry in self._calls.items():
                if entry["id"] == delta.id:
                    return key
            return delta.id
        if len(self._calls) == 1:
            return next(iter(self._calls))
        return None

    def finalize(self) -> List[ToolCallRequest]:
        """Complete calls in first-seen order. Unparseable arguments become None."""
        requests: List[ToolCallRequest] = []
        for key, entry in self._calls.items():
            raw = entry["arguments"] or ""
            requests.append(ToolCallRequest(
                id=entry["id"] or f"call_{key}",
                name=entry["name"] or "",
                arguments=_parse_arguments(raw),
                raw_arguments=raw,
            ))
        return requests


def _parse_arguments(raw: str) -> Optional[dict]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class AgentOrchestrator:
    """
    Drives one orchestration run.

    USAGE:
        orchestrator = AgentOrchestrator(model, registry, context)
        async for fragment in orchestrator.run(system_prompt, turns, max_rounds=5):
            send(fragment)

    PARAMETERS:
        model: Streaming ChatModel
        registry: Shared, read-only ToolRegistry
        context: ToolContext for this caller (compiler, client, property, user)
        round_exhausted_message: Advisory emitted when the round cap is hit
    """

    def __init__(
        self,
        model: ChatModel,
        registry: ToolRegistry,
        context: ToolContext,
        round_exhausted_message: str = DEFAULT_EXHAUSTED_MESSAGE,
    ):
        self.model = model
        self.registry = registry
        self.context = context
        self.round_exhausted_message = round_exhausted_message
        self._conversation: List[ConversationTurn] = []
        self.rounds_dispatched = 0

    @property
    def conversation(self) -> Tuple[ConversationTurn, ...]:
        """Working conversation of the latest run (read-only view)."""
        return tuple(self._conversation)

    async def run(
        self,
        system_prompt: str,
        initial_turns: Sequence[ConversationTurn],
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ) -> AsyncIterator[str]:
        """
        Run the loop, yielding text fragments as they arrive.

        RAISES:
            ModelStreamError: The model stream failed (fatal, not retried)
        """
        self._conversation = [ConversationTurn.system(system_prompt), *initial_turns]
        self.rounds_dispatched = 0
        catalog = self.registry.catalog()

        for round_index in range(max_rounds):
            text_parts: List[str] = []
            accumulator = ToolCallAccumulator()

            async with aclosing(self._open_stream(catalog)) as chunks:
                async for chunk in chunks:
                    if chunk.text:
                        text_parts.append(chunk.text)
                        yield chunk.text
                    for delta in chunk.tool_call_deltas:
                        accumulator.merge(delta)

            if not accumulator:
                logger.info(f"[AGENT] Run complete after {round_index} tool round(s)")
                return

            calls = accumulator.finalize()
            content = "".join(text_parts) or TOOL_ONLY_PLACEHOLDER
            self._conversation.append(ConversationTurn.assistant(content, tool_calls=calls))
            logger.info(
                f"[AGENT] Round {round_index + 1}/{max_rounds}: "
                f"dispatching {[c.name for c in calls]}"
            )

            for call in calls:
                result = await asyncio.shield(self._dispatch(call))
                self._conversation.append(ConversationTurn.tool(result))

            self.rounds_dispatched += 1
            yield ROUND_SEPARATOR

        logger.warning(f"[AGENT] Round budget of {max_rounds} exhausted")
        yield self.round_exhausted_message

    async def _open_stream(self, catalog: List[dict]) -> AsyncIterator[StreamChunk]:
        """Model stream with every failure surfaced as ModelStreamError."""
        stream = self.model.stream(list(self._conversation), catalog)
        try:
            async with aclosing(stream):
                async for chunk in stream:
                    yield chunk
        except ModelStreamError:
            raise
        except Exception as e:
            logger.exception(f"[AGENT] Model stream failed: {e}")
            raise ModelStreamError(f"Model stream failed: {e}") from e

    async def _dispatch(self, call: ToolCallRequest) -> ToolResult:
        """Run one tool call. Always returns a result; never raises for tool failures."""
        tool = self.registry.get(call.name)
        if tool is None:
            logger.warning(f"[AGENT] Unknown tool requested: {call.name!r}")
            return ToolResult(tool_call_id=call.id, payload=UnknownToolError(call.name).to_payload())

        try:
            payload = await tool.run(call.arguments, self.context)
        except ToolExecutionError as e:
            logger.warning(f"[AGENT] Tool {call.name} failed: {e.message}")
            return ToolResult(tool_call_id=call.id, payload=e.to_payload())
        except AgentError as e:
            return ToolResult(
                tool_call_id=call.id,
                payload=ToolExecutionError(call.name, e.message).to_payload(),
            )
        except Exception as e:
            logger.exception(f"[AGENT] Tool {call.name} raised: {e}")
            return ToolResult(
                tool_call_id=call.id,
                payload=ToolExecutionError(call.name, str(e) or type(e).__name__).to_payload(),
            )

        return ToolResult(tool_call_id=call.id, payload=payload)
