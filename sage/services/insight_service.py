"""Conversation insight and user pattern persistence service."""

import logging
from typing import Any
from uuid import UUID

from sage.core.supabase import get_supabase_client
from sage.models.insight import InsightType, UserInsightCategory
from sage.schemas.lifecycle import InsightPayload, UserPatternPayload

logger = logging.getLogger(__name__)

# Leading characters of a new pattern that identify a near-duplicate
PATTERN_MATCH_PREFIX_LENGTH = 50
DEFAULT_CONFIDENCE = 0.5


def clamp_confidence(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def merge_confidence(existing: float, observed: float | None) -> float:
    """Average an existing confidence with a new observation."""
    observed = DEFAULT_CONFIDENCE if observed is None else observed
    return clamp_confidence((existing + observed) / 2)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so value matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class InsightService:
    """Service for conversation insights and aggregated user insights."""

    PROFILE_MIN_CONFIDENCE = 0.3
    PROFILE_MAX_INSIGHTS = 20

    def __init__(self) -> None:
        """Initialize insight service with Supabase client."""
        self.client = get_supabase_client()

    async def save_conversation_insights(
        self, conversation_id: UUID, insights: list[InsightPayload]
    ) -> int:
        """Insert a conversation's insights in one statement.

        Returns:
            int: Number of insights written.
        """
        if not insights:
            return 0

        rows = [
            {
                "conversation_id": str(conversation_id),
                "content": insight.content,
                "type": (insight.type or InsightType.REALIZATION).value,
            }
            for insight in insights
        ]
        self.client.table("conversation_insights").insert(rows).execute()
        logger.info("Saved %d insights for conversation %s", len(rows), conversation_id)
        return len(rows)

    async def find_similar_user_insight(
        self, user_id: UUID, content: str
    ) -> dict[str, Any] | None:
        """Find a user insight whose content contains the new content's prefix, case-sensitively."""
        prefix = content[:PATTERN_MATCH_PREFIX_LENGTH]
        response = (
            self.client.table("user_insights")
            .select("*")
            .eq("user_id", str(user_id))
            .like("content", f"%{escape_like(prefix)}%")
            .order("created_at", desc=False)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    async def merge_user_pattern(self, user_id: UUID, pattern: UserPatternPayload) -> str:
        """Merge one observed pattern into the user's insights.

        A near-duplicate has its confidence averaged with the observation;
        otherwise a new insight is created.

        Returns:
            str: "updated" or "created".
        """
        existing = await self.find_similar_user_insight(user_id, pattern.content)

        if existing:
            confidence = merge_confidence(float(existing["confidence"]), pattern.confidence)
            self.client.table("user_insights").update(
                {"confidence": confidence}
            ).eq("id", existing["id"]).execute()
            return "updated"

        self.client.table("user_insights").insert(
            {
                "user_id": str(user_id),
                "content": pattern.content,
                "category": (pattern.category or UserInsightCategory.PATTERN).value,
                "confidence": clamp_confidence(
                    DEFAULT_CONFIDENCE if pattern.confidence is None else pattern.confidence
                ),
            }
        ).execute()
        return "created"

    async def merge_user_patterns(
        self, user_id: UUID, patterns: list[UserPatternPayload]
    ) -> dict[str, int]:
        """Merge patterns in order, so later ones see earlier ones.

        Returns:
            dict: Counts of created and updated insights.
        """
        counts = {"created": 0, "updated": 0}
        for pattern in patterns:
            outcome = await self.merge_user_pattern(user_id, pattern)
            counts[outcome] += 1

        if patterns:
            logger.info(
                "Merged %d patterns for user %s (%d created, %d updated)",
                len(patterns),
                user_id,
                counts["created"],
                counts["updated"],
            )
        return counts

    async def list_profile_insights(
        self,
        user_id: UUID,
        min_confidence: float | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Get the user's confident insights, highest confidence first."""
        response = (
            self.client.table("user_insights")
            .select("*")
            .eq("user_id", str(user_id))
            .gte("confidence", self.PROFILE_MIN_CONFIDENCE if min_confidence is None else min_confidence)
            .order("confidence", desc=True)
            .limit(limit or self.PROFILE_MAX_INSIGHTS)
            .execute()
        )
        return response.data or []

    async def list_user_insights(self, user_id: UUID) -> list[dict[str, Any]]:
        """Get all of a user's insights, highest confidence first."""
        response = (
            self.client.table("user_insights")
            .select("*")
            .eq("user_id", str(user_id))
            .order("confidence", desc=True)
            .execute()
        )
        return response.data or []
