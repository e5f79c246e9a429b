"""Usage ledger model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict
from uuid import UUID


class UsageType(str, Enum):
    """Billable operation kinds."""

    CHAT = "chat"
    VOICE = "voice"


class UsageRecord(TypedDict):
    """usage_records row.

    Immutable. Every row is written in the same transaction as the
    matching balance decrement (see the deduct_credits database function).
    """

    id: UUID
    user_id: UUID
    type: UsageType
    tokens_used: int
    credits_used: int
    model_id: str | None
    reference_id: str | None
    created_at: datetime
