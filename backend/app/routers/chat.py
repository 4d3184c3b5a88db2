"""
Chat Router
===========

HTTP endpoint for the GA4 analytics copilot.

Related files:
- app/agent/orchestrator.py: The model/tool loop driven per request
- app/agent/stream.py: SSE framing
- app/state.py: Shared caches, registry and clients
- app/schemas.py: ChatRequest

Endpoints:
- POST /chat/sse: Stream an assistant reply as Server-Sent Events
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from app.agent.orchestrator import AgentOrchestrator
from app.agent.prompts import PropertyContext, UserInfo, build_system_prompt
from app.agent.state import ConversationTurn
from app.agent.stream import sse_events
from app.agent.tools import ToolContext
from app.deps import get_app_state, get_current_user, get_google_access_token
from app.schemas import ChatMessage, ChatRequest
from app.semantic.model import normalize_property_id
from app.state import AppState
from app.telemetry import set_user_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


def to_conversation_turns(messages: List[ChatMessage]) -> List[ConversationTurn]:
    """Client history -> working conversation turns (system turn added by the orchestrator)."""
    return [
        ConversationTurn.user(m.content) if m.role == "user" else ConversationTurn.assistant(m.content)
        for m in messages
    ]


@router.post("/sse")
async def chat_sse(
    req: ChatRequest,
    current_user: UserInfo = Depends(get_current_user),
    access_token: str = Depends(get_google_access_token),
    app_state: AppState = Depends(get_app_state),
):
    """
    POST /chat/sse

    WHAT:
        Streams the assistant's reply for the given conversation. Text is
        forwarded as the model produces it; GA4 tool calls happen between
        rounds and are not surfaced as separate events.

    EVENTS:
        data: {"type": "text", "content": "..."}   incremental text
        data: {"type": "error", "content": "..."}  model unavailable (ends stream)
        data: [DONE]                                normal end of stream
    """
    try:
        property_id = normalize_property_id(req.property_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    settings = app_state.settings
    set_user_context(user_id=current_user.id, email=current_user.email, property_id=property_id)
    logger.info(
        f"[CHAT_SSE] user={current_user.id} property={property_id} messages={len(req.messages)}"
    )

    data_client = app_state.build_data_client(access_token)
    context = ToolContext(
        compiler=app_state.build_compiler(data_client),
        client=data_client,
        property_id=property_id,
        user_id=current_user.id,
    )
    orchestrator = AgentOrchestrator(
        app_state.build_model(),
        app_state.registry,
        context,
        round_exhausted_message=settings.ROUND_EXHAUSTED_MESSAGE,
    )
    system_prompt = build_system_prompt(
        user=current_user,
        property_context=PropertyContext(
            property_id=property_id,
            property_display_name=req.property_display_name,
            account_display_name=req.account_display_name,
        ),
        max_tool_rounds=settings.MAX_TOOL_ROUNDS,
    )

    fragments = orchestrator.run(
        system_prompt,
        to_conversation_turns(req.messages),
        max_rounds=settings.MAX_TOOL_ROUNDS,
    )
    return StreamingResponse(sse_events(fragments), media_type="text/event-stream", headers=SSE_HEADERS)
