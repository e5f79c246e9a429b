"""Message Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from sage.models.message import MessageRole


class MessageCreate(BaseModel):
    """Schema for adding a message to a conversation."""

    model_config = ConfigDict(populate_by_name=True)

    role: MessageRole = Field(description="Message role")
    content: str = Field(min_length=1, description="Message content")
    phase: str | None = Field(default=None, description="Dialogue phase at time of writing")
    tokens_used: int = Field(default=0, ge=0, alias="tokensUsed")


class MessageResponse(BaseModel):
    """Schema for message API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    conversation_id: UUID
    role: MessageRole
    content: str
    phase: str | None = None
    tokens_used: int = 0
    created_at: datetime


class MessageListResponse(BaseModel):
    """Messages of one conversation, oldest first."""

    messages: list[MessageResponse]
