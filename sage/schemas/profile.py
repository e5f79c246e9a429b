"""Profile, insight and usage Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from sage.models.insight import UserInsightCategory
from sage.models.usage import UsageType


class ProfileResponse(BaseModel):
    """The current user's profile and credit balance."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str | None = None
    name: str | None = None
    credits: int
    profile_summary: str | None = None
    conversation_count: int = 0
    created_at: datetime


class ProfileUpdate(BaseModel):
    """Fields a user may change on their profile."""

    name: str | None = Field(default=None, max_length=255)


class UserInsightResponse(BaseModel):
    """One aggregated observation about the user."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    content: str
    category: UserInsightCategory
    confidence: float


class UserInsightListResponse(BaseModel):
    insights: list[UserInsightResponse]


class UsageRecordResponse(BaseModel):
    """One ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: UsageType
    tokens_used: int
    credits_used: int
    model_id: str | None = None
    created_at: datetime


class UsageHistoryResponse(BaseModel):
    credits: int
    records: list[UsageRecordResponse]
