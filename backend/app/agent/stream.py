"""
SSE Streaming
=============

**Version**: 1.0.0
**Status**: Active

Frames orchestrator text fragments as Server-Sent Events.

WIRE FORMAT
-----------
Existing chat clients depend on this exact framing:

    data: {"type": "text", "content": "Revenue last"}\n\n
    data: {"type": "text", "content": " week was..."}\n\n
    data: [DONE]\n\n

If the model stream fails, one error event ends the stream instead of
[DONE]:

    data: {"type": "error", "content": "The assistant is temporarily unavailable..."}\n\n

RELATED FILES
-------------
- app/agent/orchestrator.py: Produces the fragments
- app/routers/chat.py: Wraps sse_events() in a StreamingResponse
"""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import AsyncIterator

from app.agent.exceptions import ModelStreamError

logger = logging.getLogger(__name__)

SSE_DONE = "data: [DONE]\n\n"


def format_text_event(content: str) -> str:
    return f"data: {json.dumps({'type': 'text', 'content': content})}\n\n"


def format_error_event(message: str) -> str:
    return f"data: {json.dumps({'type': 'error', 'content': message})}\n\n"


async def sse_events(fragments: AsyncIterator[str]) -> AsyncIterator[str]:
    """
    Frame each fragment as a text event, then [DONE].

    The fragment generator is always closed when this generator ends, so a
    client disconnect propagates down to the model stream.
    """
    async with aclosing(fragments):
        try:
            async for fragment in fragments:
                yield format_text_event(fragment)
        except ModelStreamError as e:
            logger.error(f"[CHAT_SSE] Model stream failed: {e.message}")
            yield format_error_event(e.to_user_message())
            return
    yield SSE_DONE
