"""Pydantic schemas for request/response payloads."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One prior message of the conversation, as held by the client."""

    role: Literal["user", "assistant"] = Field(description="Who wrote the message")
    content: str = Field(description="Message text", examples=["What was revenue last week?"])


class ChatRequest(BaseModel):
    """Payload for a streamed chat turn.

    The client sends the whole visible history; this service keeps no chat
    state between requests.
    """

    messages: List[ChatMessage] = Field(
        min_length=1,
        description="Conversation so far, oldest first, ending with the new user message",
    )
    property_id: str = Field(
        min_length=1,
        description="Selected GA4 property id ('123456' or 'properties/123456')",
    )
    property_display_name: Optional[str] = Field(default=None, description="Property name shown in the UI")
    account_display_name: Optional[str] = Field(default=None, description="GA4 account name shown in the UI")

    model_config = {
        "json_schema_extra": {
            "example": {
                "messages": [{"role": "user", "content": "Top 5 products by revenue last month?"}],
                "property_id": "316678865",
                "property_display_name": "Shop - GA4",
                "account_display_name": "Acme",
            }
        }
    }


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status", examples=["ok"])
