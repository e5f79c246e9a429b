"""Profile business logic service."""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sage.core.config import get_settings
from sage.core.supabase import get_supabase_client
from sage.schemas.profile import ProfileUpdate
from sage.services.insight_service import InsightService
from sage.services.summarization_service import SummarizationService

logger = logging.getLogger(__name__)


class ProfileService:
    """Service for user profiles and the aggregated profile summary."""

    def __init__(
        self,
        insight_service: InsightService | None = None,
        summarization_service: SummarizationService | None = None,
    ) -> None:
        """Initialize profile service.

        Args:
            insight_service: Optional insight service for testing.
            summarization_service: Optional summarization service for testing.
        """
        self.client = get_supabase_client()
        self.settings = get_settings()
        self._insight_service = insight_service
        self._summarization_service = summarization_service

    @property
    def insight_service(self) -> InsightService:
        if self._insight_service is None:
            self._insight_service = InsightService()
        return self._insight_service

    @property
    def summarization_service(self) -> SummarizationService:
        if self._summarization_service is None:
            self._summarization_service = SummarizationService()
        return self._summarization_service

    async def get_profile(self, user_id: UUID) -> dict[str, Any] | None:
        """Get a profile by user ID."""
        response = (
            self.client.table("profiles")
            .select("*")
            .eq("id", str(user_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_or_create_profile(
        self, user_id: UUID, email: str | None = None
    ) -> dict[str, Any]:
        """Get existing profile or create one holding the free starting credits.

        Args:
            user_id: The auth user ID.
            email: User's email address.

        Returns:
            dict: The profile data.
        """
        profile = await self.get_profile(user_id)
        if profile:
            return profile

        response = (
            self.client.table("profiles")
            .upsert(
                {
                    "id": str(user_id),
                    "email": email,
                    "credits": self.settings.free_credits,
                },
                on_conflict="id",
                ignore_duplicates=True,
            )
            .execute()
        )
        if response.data:
            logger.info("Created profile for user %s with %d credits", user_id, self.settings.free_credits)
            return response.data[0]

        # Lost a creation race; the other request's row is there now
        return await self.get_profile(user_id)

    async def update_profile(self, user_id: UUID, data: ProfileUpdate) -> dict[str, Any] | None:
        """Update editable profile fields."""
        update_data = data.model_dump(exclude_unset=True)
        if not update_data:
            return await self.get_profile(user_id)

        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
        response = (
            self.client.table("profiles")
            .update(update_data)
            .eq("id", str(user_id))
            .execute()
        )
        return response.data[0] if response.data else None

    async def count_conversations(self, user_id: UUID) -> int:
        response = (
            self.client.table("conversations")
            .select("id", count="exact")
            .eq("user_id", str(user_id))
            .execute()
        )
        return response.count or 0

    async def regenerate_profile_summary(self, user_id: UUID) -> dict[str, Any]:
        """Rewrite the user's profile paragraph from their confident insights.

        The paragraph is rebuilt from scratch each time and replaces the
        stored one. Provider failures propagate to the caller.

        Returns:
            dict: ``{"updated": bool}``, or ``{"skipped": True, "reason": ...}``
            when there is no credential or no qualifying insight.
        """
        if not self.settings.has_llm_credentials:
            return {"skipped": True, "reason": "missing_credentials"}

        insights = await self.insight_service.list_profile_insights(user_id)
        if not insights:
            return {"skipped": True, "reason": "no_insights"}

        paragraph = await self.summarization_service.generate_profile_paragraph(
            [insight["content"] for insight in insights]
        )
        if not paragraph:
            logger.warning("Profile summary for user %s came back empty", user_id)
            return {"updated": False}

        self.client.table("profiles").update(
            {
                "profile_summary": paragraph,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }
        ).eq("id", str(user_id)).execute()

        logger.info("Updated profile summary for user %s from %d insights", user_id, len(insights))
        return {"updated": True}
