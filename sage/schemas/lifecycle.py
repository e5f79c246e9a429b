"""Schemas for the conversation-ended trigger, its event and pipeline results."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from sage.models.conversation import ConversationType
from sage.models.insight import InsightType, UserInsightCategory
from sage.models.lifecycle import RunStatus
from sage.models.message import MessageRole


class TranscriptEntry(BaseModel):
    """One utterance of a client-buffered voice transcript."""

    role: MessageRole = Field(description="Speaker role")
    content: str = Field(description="Utterance text")


class ConversationEndRequest(BaseModel):
    """Body of POST /conversation/end.

    Fields are optional at the schema level so that missing values are
    reported with explicit messages by the route.
    """

    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str | None = Field(default=None, alias="conversationId")
    type: str | None = Field(default=None, description="'voice' or 'text'")
    transcript: list[TranscriptEntry] | None = Field(
        default=None,
        description="Buffered transcript; only used for voice conversations",
    )


class ConversationEndResponse(BaseModel):
    """Acknowledgement that a lifecycle run was queued."""

    model_config = ConfigDict(populate_by_name=True)

    queued: bool = Field(default=True)
    conversation_id: UUID = Field(alias="conversationId")
    type: ConversationType
    run_id: UUID = Field(alias="runId")


class ConversationEndedEvent(BaseModel):
    """The conversation-ended event delivered to the lifecycle pipeline."""

    model_config = ConfigDict(populate_by_name=True)

    conversation_id: UUID = Field(alias="conversationId")
    user_id: UUID = Field(alias="userId")
    type: ConversationType
    transcript: list[TranscriptEntry] | None = None


class InsightPayload(BaseModel):
    """A conversation-scoped insight as returned by the summarizer."""

    content: str
    type: InsightType = InsightType.REALIZATION


class UserPatternPayload(BaseModel):
    """A cross-conversation observation as returned by the summarizer."""

    content: str
    category: UserInsightCategory = UserInsightCategory.PATTERN
    confidence: float | None = None


class SummaryResult(BaseModel):
    """Output of the generate-summary step, cached in the run's step table."""

    model_config = ConfigDict(populate_by_name=True)

    skipped: bool = False
    reason: str | None = None
    summary: str | None = None
    insights: list[InsightPayload] = Field(default_factory=list)
    user_patterns: list[UserPatternPayload] = Field(default_factory=list, alias="userPatterns")
    credits_used: int | None = Field(default=None, alias="creditsUsed")
    tokens_used: int | None = Field(default=None, alias="tokensUsed")
    last_message_id: str | None = Field(
        default=None,
        alias="lastMessageId",
        description="Newest message covered by the summary",
    )

    @classmethod
    def skip(cls, reason: str) -> "SummaryResult":
        return cls(skipped=True, reason=reason)


class LifecycleRunResponse(BaseModel):
    """Status of one lifecycle run."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    conversation_id: UUID
    type: ConversationType
    status: RunStatus
    attempts: int = 0
    current_step: str | None = None
    completed_steps: list[str] = Field(default_factory=list)
    result: dict[str, Any] | None = None
    last_error: str | None = None
    failed_step: str | None = None
    created_at: datetime
    updated_at: datetime


class LifecycleRunListResponse(BaseModel):
    """Lifecycle runs recorded for one conversation."""

    runs: list[LifecycleRunResponse]
