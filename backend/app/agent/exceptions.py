"""
Agent Exceptions
================

**Version**: 1.0.0
**Status**: Active

Error taxonomy for the orchestration loop.

WHY THIS FILE EXISTS
--------------------
Errors split cleanly by where they happen:

    Inside a tool call      -> recovered, fed back to the model as a tool result
        UnknownToolError       model asked for a tool that does not exist
        ToolExecutionError     argument validation or runtime failure

    In the model transport  -> fatal to the run, surfaced to the caller
        ModelStreamError       provider connection/API failure

The model is the intended consumer of tool failures and can usually
self-correct (pick another metric, call another tool). Nothing in this
component can fix a broken provider connection.

Running out of rounds is NOT an error: the orchestrator ends the run with
an advisory message.

RELATED FILES
-------------
- app/agent/orchestrator.py: Raises and converts these errors
- app/agent/llm.py: Raises ModelStreamError
- app/agent/stream.py: Turns ModelStreamError into an SSE error event
- app/semantic/errors.py: Compiler errors that end up in ToolExecutionError payloads
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional


class AgentError(Exception):
    """
    Base exception for orchestration errors.

    USAGE:
        try:
            async for fragment in orchestrator.run(...):
                ...
        except AgentError as e:
            return {"error": e.to_user_message()}
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_user_message(self) -> str:
        return self.message


class UnknownToolError(AgentError):
    """The model requested a tool name that is not in the registry."""

    code = "UNKNOWN_TOOL"

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")

    def to_payload(self) -> str:
        return json.dumps({"error": self.code, "tool": self.tool_name})


class ToolExecutionError(AgentError):
    """
    A tool call failed validation or raised while running.

    ATTRIBUTES:
        tool_name: Tool that failed
        details: Optional structured extras (e.g. compiler error code)
    """

    def __init__(self, tool_name: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.tool_name = tool_name
        self.details = details or {}
        super().__init__(message)

    def to_payload(self) -> str:
        payload: Dict[str, Any] = {"error": self.message, "tool": self.tool_name}
        payload.update({k: v for k, v in self.details.items() if k not in payload})
        return json.dumps(payload)


class ModelStreamError(AgentError):
    """
    The language model stream failed (network, auth, provider error).

    Fatal to the run. Not retried here; retrying is the caller's decision.
    """

    def __init__(self, message: str, provider: Optional[str] = None):
        self.provider = provider
        super().__init__(message)

    def to_user_message(self) -> str:
        return "The assistant is temporarily unavailable. Please try again."
