"""Schemas for on-demand conversation summaries and session insights."""

from pydantic import BaseModel, ConfigDict, Field

from sage.schemas.lifecycle import InsightPayload, TranscriptEntry, UserPatternPayload


class ConversationSummaryResponse(BaseModel):
    """Summary, insights and user patterns written for a conversation."""

    model_config = ConfigDict(populate_by_name=True)

    summary: str | None = None
    insights: list[InsightPayload] = Field(default_factory=list)
    user_patterns: list[UserPatternPayload] = Field(default_factory=list, alias="userPatterns")


class SessionInsightsRequest(BaseModel):
    """Body of POST /insights.

    The transcript is optional at the schema level so that a missing or
    empty one is reported by the route.
    """

    transcript: list[TranscriptEntry] | None = Field(
        default=None,
        description="Transcript of the session to analyze",
    )


class SessionInsightsResponse(BaseModel):
    """What a session established, in the person's own terms."""

    model_config = ConfigDict(populate_by_name=True)

    summary: str = Field(description="What the person figured out or decided")
    key_points: list[str] = Field(default_factory=list, alias="keyPoints")
    reflections: list[str] = Field(
        default_factory=list,
        description="Open questions or natural next steps",
    )


class SessionInsightsResult(SessionInsightsResponse):
    """Session insights together with the cost of producing them."""

    credits_used: int = Field(alias="creditsUsed")
    tokens_used: int = Field(alias="tokensUsed")
