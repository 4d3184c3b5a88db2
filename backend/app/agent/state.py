"""
Agent Conversation State
========================

**Version**: 1.0.0
**Status**: Active

Types for one orchestration run: conversation turns, tool calls, tool
results and the provider-neutral stream chunk shape.

WHY THIS FILE EXISTS
--------------------
The orchestrator keeps a working conversation that grows by appending
turns (assistant turn with tool calls, then one tool turn per call). These
types are that conversation. They live only for the duration of a run;
persisting chat history is the caller's job.

RELATED FILES
-------------
- app/agent/orchestrator.py: Builds and appends to the conversation
- app/agent/llm.py: Converts turns to provider messages and chunks back
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class MessageRole(str, Enum):
    """Message role in conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCallRequest:
    """
    A model-issued request to run a tool.

    FIELDS:
        id: Opaque id correlating the eventual ToolResult
        name: Tool name as the model wrote it (may not exist)
        arguments: Parsed JSON object, None if the model sent invalid JSON
        raw_arguments: Argument text exactly as streamed
    """
    id: str
    name: str
    arguments: Optional[Dict[str, Any]] = None
    raw_arguments: str = ""

    def arguments_json(self) -> str:
        """Argument text to echo back to the provider in the assistant turn."""
        if self.raw_arguments:
            return self.raw_arguments
        return json.dumps(self.arguments or {})


@dataclass(frozen=True)
class ToolResult:
    """Exactly one per ToolCallRequest, success or failure."""
    tool_call_id: str
    payload: str


@dataclass
class ConversationTurn:
    """
    Single turn in the working conversation.

    tool_calls appears only on assistant turns; tool_call_id only on tool turns.
    """
    role: MessageRole
    content: str = ""
    tool_calls: Optional[List[ToolCallRequest]] = None
    tool_call_id: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> "ConversationTurn":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "ConversationTurn":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: Optional[List[ToolCallRequest]] = None) -> "ConversationTurn":
        return cls(role=MessageRole.ASSISTANT, content=content, tool_calls=tool_calls)

    @classmethod
    def tool(cls, result: ToolResult) -> "ConversationTurn":
        return cls(role=MessageRole.TOOL, content=result.payload, tool_call_id=result.tool_call_id)


@dataclass(frozen=True)
class ToolCallDelta:
    """
    A fragment of a tool call as streamed by the provider.

    Providers split one call over many chunks: the id and name usually come
    first, the arguments JSON arrives in pieces. index identifies the call
    within the response; id may only be present on the first fragment.
    """
    index: Optional[int] = None
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


@dataclass(frozen=True)
class StreamChunk:
    """One provider chunk: optional text delta and/or tool call fragments."""
    text: Optional[str] = None
    tool_call_deltas: List[ToolCallDelta] = field(default_factory=list)
