"""Conversation Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from sage.models.conversation import DialoguePhase
from sage.schemas.message import MessageResponse


class ConversationCreate(BaseModel):
    """Schema for creating a new conversation."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(default=None, max_length=255, description="Conversation title")
    problem_statement: str | None = Field(
        default=None,
        alias="problemStatement",
        description="Opening problem; its first 100 characters become the title when no title is given",
    )


class ConversationResponse(BaseModel):
    """Schema for conversation API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Conversation unique identifier")
    user_id: UUID = Field(description="Owner user ID")
    title: str = Field(description="Conversation title")
    summary: str | None = Field(default=None, description="Summary written by the lifecycle pipeline")
    phase: DialoguePhase = Field(description="Current dialogue phase")
    is_active: bool = Field(description="Whether this is the user's active conversation")
    message_count: int = Field(default=0, description="Number of messages in conversation")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last update timestamp")


class ConversationListResponse(BaseModel):
    """Schema for conversation list response."""

    conversations: list[ConversationResponse] = Field(description="List of conversations")


class ConversationDetailResponse(ConversationResponse):
    """A conversation together with its messages."""

    messages: list[MessageResponse] = Field(default_factory=list)


class RecentSummary(BaseModel):
    """A summarised past conversation, used as context for a new dialogue."""

    id: UUID
    title: str
    summary: str
    updated_at: datetime


class SessionContextResponse(BaseModel):
    """Context for opening a new dialogue."""

    recent_summaries: list[RecentSummary] = Field(default_factory=list)
    profile_summary: str | None = None
    active_conversation: ConversationDetailResponse | None = None
