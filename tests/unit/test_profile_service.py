"""Unit tests for ProfileService."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import pytest

from sage.schemas.profile import ProfileUpdate
from sage.services.lifecycle_errors import SummarizationError
from sage.services.profile_service import ProfileService
from tests.helpers import TEST_USER_ID, make_response

USER_ID = UUID(TEST_USER_ID)


def _build_service(
    mock_client: MagicMock,
    insights: list[dict] | None = None,
    paragraph: str | None = "You tend to aim high.",
) -> tuple[ProfileService, MagicMock, MagicMock]:
    insight_service = MagicMock()
    insight_service.list_profile_insights = AsyncMock(return_value=insights or [])
    summarization_service = MagicMock()
    summarization_service.generate_profile_paragraph = AsyncMock(return_value=paragraph)

    with patch("sage.services.profile_service.get_supabase_client", return_value=mock_client):
        service = ProfileService(
            insight_service=insight_service,
            summarization_service=summarization_service,
        )
    return service, insight_service, summarization_service


class TestGetOrCreateProfile:
    """Tests for get_or_create_profile."""

    @pytest.mark.asyncio
    async def test_returns_existing_profile(self) -> None:
        mock_client = MagicMock()
        profile = {"id": TEST_USER_ID, "credits": 12}
        mock_client.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = make_response(
            profile
        )
        service, _, _ = _build_service(mock_client)

        assert await service.get_or_create_profile(USER_ID, "a@b.c") == profile
        mock_client.table.return_value.upsert.assert_not_called()

    @pytest.mark.asyncio
    async def test_creates_profile_with_free_credits(self) -> None:
        mock_client = MagicMock()
        mock_client.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = None
        created = {"id": TEST_USER_ID, "credits": 1000}
        mock_client.table.return_value.upsert.return_value.execute.return_value = make_response([created])
        service, _, _ = _build_service(mock_client)

        assert await service.get_or_create_profile(USER_ID, "a@b.c") == created
        mock_client.table.return_value.upsert.assert_called_once_with(
            {"id": TEST_USER_ID, "email": "a@b.c", "credits": 1000},
            on_conflict="id",
            ignore_duplicates=True,
        )


class TestUpdateProfile:
    """Tests for update_profile."""

    @pytest.mark.asyncio
    async def test_updates_name(self) -> None:
        mock_client = MagicMock()
        updated = {"id": TEST_USER_ID, "name": "Ada"}
        mock_client.table.return_value.update.return_value.eq.return_value.execute.return_value = make_response(
            [updated]
        )
        service, _, _ = _build_service(mock_client)

        assert await service.update_profile(USER_ID, ProfileUpdate(name="Ada")) == updated
        assert mock_client.table.return_value.update.call_args.args[0]["name"] == "Ada"


class TestRegenerateProfileSummary:
    """Tests for regenerate_profile_summary."""

    @pytest.mark.asyncio
    async def test_writes_paragraph_from_insights(self) -> None:
        mock_client = MagicMock()
        insights = [{"content": "Aims high", "confidence": 0.9}, {"content": "Avoids starting", "confidence": 0.5}]
        service, _, summarization_service = _build_service(mock_client, insights=insights)

        result = await service.regenerate_profile_summary(USER_ID)

        assert result == {"updated": True}
        summarization_service.generate_profile_paragraph.assert_awaited_once_with(["Aims high", "Avoids starting"])
        update = mock_client.table.return_value.update
        assert update.call_args.args[0]["profile_summary"] == "You tend to aim high."
        update.return_value.eq.assert_called_once_with("id", TEST_USER_ID)

    @pytest.mark.asyncio
    async def test_no_insights_skips(self) -> None:
        mock_client = MagicMock()
        service, _, summarization_service = _build_service(mock_client, insights=[])

        assert await service.regenerate_profile_summary(USER_ID) == {"skipped": True, "reason": "no_insights"}
        summarization_service.generate_profile_paragraph.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_credentials_skips_silently(self) -> None:
        mock_client = MagicMock()
        with patch("sage.services.profile_service.get_settings") as mock_settings:
            mock_settings.return_value.has_llm_credentials = False
            service, insight_service, _ = _build_service(mock_client, insights=[{"content": "x"}])

        result = await service.regenerate_profile_summary(USER_ID)

        assert result == {"skipped": True, "reason": "missing_credentials"}
        insight_service.list_profile_insights.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_paragraph_leaves_profile_untouched(self) -> None:
        mock_client = MagicMock()
        service, _, _ = _build_service(mock_client, insights=[{"content": "x"}], paragraph=None)

        assert await service.regenerate_profile_summary(USER_ID) == {"updated": False}
        mock_client.table.return_value.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self) -> None:
        mock_client = MagicMock()
        service, _, summarization_service = _build_service(mock_client, insights=[{"content": "x"}])
        summarization_service.generate_profile_paragraph.side_effect = SummarizationError("boom")

        with pytest.raises(SummarizationError):
            await service.regenerate_profile_summary(USER_ID)
