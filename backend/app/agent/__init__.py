"""
GA4 Analytics Copilot Agent
===========================

**Version**: 1.0.0
**Status**: Active

Tool-augmented chat over GA4 data: the model streams text, asks for
reports through tools, reads the results and keeps going until it has an
answer (or runs out of tool rounds).

ARCHITECTURE
------------
```
User messages
    |
    v
AgentOrchestrator.run()  --stream-->  ChatModel (OpenAI)
    |                                     |
    |<-------- text deltas ---------------|
    |<-------- tool call fragments -------|
    v
ToolRegistry --> ReportCompiler --> GA4 Data API
    |
    v
tool results appended, next round
    |
    v
sse_events() --> text/event-stream
```

COMPONENTS
----------
- state.py: Conversation turns, tool calls, stream chunks
- llm.py: OpenAI streaming adapter
- tools.py: Tool catalog over the report compiler
- orchestrator.py: The bounded model/tool loop
- prompts.py: System prompt builder
- stream.py: SSE framing
- exceptions.py: Error taxonomy

USAGE
-----
```python
from app.agent import AgentOrchestrator, sse_events

orchestrator = AgentOrchestrator(model, registry, context)
async for event in sse_events(orchestrator.run(prompt, turns, max_rounds=5)):
    ...
```
"""

from app.agent.exceptions import AgentError, ModelStreamError, ToolExecutionError, UnknownToolError
from app.agent.llm import ChatModel, OpenAIChatModel
from app.agent.orchestrator import AgentOrchestrator, ToolCallAccumulator
from app.agent.prompts import PropertyContext, UserInfo, build_system_prompt
from app.agent.state import ConversationTurn, MessageRole, StreamChunk, ToolCallDelta, ToolCallRequest, ToolResult
from app.agent.stream import SSE_DONE, format_error_event, format_text_event, sse_events
from app.agent.tools import ReportTool, ToolContext, ToolRegistry, build_default_registry

__all__ = [
    "AgentError",
    "AgentOrchestrator",
    "ChatModel",
    "ConversationTurn",
    "MessageRole",
    "ModelStreamError",
    "OpenAIChatModel",
    "PropertyContext",
    "ReportTool",
    "SSE_DONE",
    "StreamChunk",
    "ToolCallAccumulator",
    "ToolCallDelta",
    "ToolCallRequest",
    "ToolContext",
    "ToolExecutionError",
    "ToolRegistry",
    "ToolResult",
    "UnknownToolError",
    "UserInfo",
    "build_default_registry",
    "build_system_prompt",
    "format_error_event",
    "format_text_event",
    "sse_events",
]
