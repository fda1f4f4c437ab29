"""
Chat domain models and schemas.

Request/response schemas for chat operations and the inference answer.

Dependencies: pydantic
System role: Chat API contracts
"""

from pydantic import BaseModel, Field

from chatsync.models.message import ChatMessage, SourceRef


class Answer(BaseModel):
    """Result of one inference call."""

    text: str
    sources: list[SourceRef] = Field(default_factory=list)
    processing_time_ms: float | None = None
    from_cache: bool = False


class ChatRequest(BaseModel):
    """Request schema for chat messages."""

    message: str = Field(description="User question or message")
    session_id: str | None = Field(
        default=None, description="Existing session, omit to start a new chat"
    )


class ChatTurnResponse(BaseModel):
    """Outcome of one user turn."""

    session_id: str
    user_message: ChatMessage
    assistant_message: ChatMessage | None = Field(
        default=None, description="None when the turn was stopped before a reply arrived"
    )
    from_cache: bool = False
    error_code: str | None = None


class StopResponse(BaseModel):
    """Response schema for a stop request."""

    session_id: str
    stopped: bool
