"""Insight model type definitions for database operations."""

from enum import Enum
from typing import TypedDict
from uuid import UUID


class InsightType(str, Enum):
    """Kinds of conversation-scoped insight."""

    REALIZATION = "realization"
    ASSUMPTION = "assumption"
    PATTERN = "pattern"
    QUESTION = "question"


class UserInsightCategory(str, Enum):
    """Kinds of cross-conversation observation about a user."""

    PATTERN = "pattern"
    PREFERENCE = "preference"
    GOAL = "goal"
    BEHAVIOR = "behavior"


class ConversationInsight(TypedDict):
    """conversation_insights row; written once by the lifecycle pipeline."""

    id: UUID
    conversation_id: UUID
    content: str
    type: InsightType


class UserInsight(TypedDict):
    """user_insights row.

    confidence is a running estimate in [0, 1], averaged with each new
    near-duplicate observation.
    """

    id: UUID
    user_id: UUID
    content: str
    category: UserInsightCategory
    confidence: float
