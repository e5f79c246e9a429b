"""Unit tests for InsightService."""

from unittest.mock import MagicMock, patch
from uuid import UUID

import pytest

from sage.models.insight import InsightType, UserInsightCategory
from sage.schemas.lifecycle import InsightPayload, UserPatternPayload
from sage.services.insight_service import InsightService, escape_like, merge_confidence
from tests.helpers import TEST_CONVERSATION_ID, TEST_USER_ID, make_response

USER_ID = UUID(TEST_USER_ID)
CONVERSATION_ID = UUID(TEST_CONVERSATION_ID)


def _lookup_chain(mock_client: MagicMock) -> MagicMock:
    """The select(...).eq(...).like(...).order(...).limit(...) chain used for similarity lookups."""
    return (
        mock_client.table.return_value.select.return_value.eq.return_value.like.return_value
        .order.return_value.limit.return_value
    )


class TestHelpers:
    """Tests for the module-level helpers."""

    def test_merge_confidence_averages(self) -> None:
        assert merge_confidence(0.6, 0.8) == pytest.approx(0.7)

    def test_merge_confidence_defaults_missing_observation(self) -> None:
        assert merge_confidence(0.9, None) == pytest.approx(0.7)

    def test_merge_confidence_stays_in_range(self) -> None:
        assert merge_confidence(1.0, 1.0) == 1.0
        assert merge_confidence(0.0, 0.0) == 0.0

    def test_escape_like(self) -> None:
        assert escape_like("100% sure_really\\") == "100\\% sure\\_really\\\\"


class TestSaveConversationInsights:
    """Tests for save_conversation_insights."""

    @pytest.mark.asyncio
    @patch("sage.services.insight_service.get_supabase_client")
    async def test_bulk_inserts_insights(self, mock_get_client: MagicMock) -> None:
        mock_client = MagicMock()
        mock_get_client.return_value = mock_client

        service = InsightService()
        count = await service.save_conversation_insights(
            CONVERSATION_ID,
            [
                InsightPayload(content="Delay protects the idea", type=InsightType.REALIZATION),
                InsightPayload(content="Why must it be perfect?", type=InsightType.QUESTION),
            ],
        )

        assert count == 2
        mock_client.table.assert_called_with("conversation_insights")
        mock_client.table.return_value.insert.assert_called_once_with(
            [
                {"conversation_id": TEST_CONVERSATION_ID, "content": "Delay protects the idea", "type": "realization"},
                {"conversation_id": TEST_CONVERSATION_ID, "content": "Why must it be perfect?", "type": "question"},
            ]
        )

    @pytest.mark.asyncio
    @patch("sage.services.insight_service.get_supabase_client")
    async def test_no_insights_writes_nothing(self, mock_get_client: MagicMock) -> None:
        mock_client = MagicMock()
        mock_get_client.return_value = mock_client

        service = InsightService()

        assert await service.save_conversation_insights(CONVERSATION_ID, []) == 0
        mock_client.table.assert_not_called()


class TestMergeUserPattern:
    """Tests for merge_user_pattern and merge_user_patterns."""

    @pytest.mark.asyncio
    @patch("sage.services.insight_service.get_supabase_client")
    async def test_existing_pattern_confidence_is_averaged(self, mock_get_client: MagicMock) -> None:
        mock_client = MagicMock()
        mock_get_client.return_value = mock_client
        _lookup_chain(mock_client).execute.return_value = make_response(
            [{"id": "ins-1", "content": "Seeks external validation before deciding", "confidence": 0.6}]
        )

        service = InsightService()
        outcome = await service.merge_user_pattern(
            USER_ID,
            UserPatternPayload(content="Seeks external validation before deciding", confidence=0.8),
        )

        assert outcome == "updated"
        update = mock_client.table.return_value.update
        assert update.call_args.args[0]["confidence"] == pytest.approx(0.7)
        update.return_value.eq.assert_called_once_with("id", "ins-1")
        mock_client.table.return_value.insert.assert_not_called()

    @pytest.mark.asyncio
    @patch("sage.services.insight_service.get_supabase_client")
    async def test_lookup_is_case_sensitive_on_first_fifty_characters(self, mock_get_client: MagicMock) -> None:
        mock_client = MagicMock()
        mock_get_client.return_value = mock_client
        _lookup_chain(mock_client).execute.return_value = make_response([])
        content = "Tends to frame every decision as irreversible even when it clearly is not"

        service = InsightService()
        await service.merge_user_pattern(USER_ID, UserPatternPayload(content=content))

        like = mock_client.table.return_value.select.return_value.eq.return_value.like
        like.assert_called_once_with("content", f"%{content[:50]}%")
        mock_client.table.return_value.select.return_value.eq.return_value.ilike.assert_not_called()

    @pytest.mark.asyncio
    @patch("sage.services.insight_service.get_supabase_client")
    async def test_new_pattern_is_created_with_defaults(self, mock_get_client: MagicMock) -> None:
        mock_client = MagicMock()
        mock_get_client.return_value = mock_client
        _lookup_chain(mock_client).execute.return_value = make_response([])

        service = InsightService()
        outcome = await service.merge_user_pattern(
            USER_ID, UserPatternPayload(content="Prefers concrete examples")
        )

        assert outcome == "created"
        mock_client.table.return_value.insert.assert_called_once_with(
            {
                "user_id": TEST_USER_ID,
                "content": "Prefers concrete examples",
                "category": "pattern",
                "confidence": 0.5,
            }
        )

    @pytest.mark.asyncio
    @patch("sage.services.insight_service.get_supabase_client")
    async def test_new_pattern_keeps_category_and_confidence(self, mock_get_client: MagicMock) -> None:
        mock_client = MagicMock()
        mock_get_client.return_value = mock_client
        _lookup_chain(mock_client).execute.return_value = make_response([])

        service = InsightService()
        await service.merge_user_pattern(
            USER_ID,
            UserPatternPayload(
                content="Wants to publish by next year",
                category=UserInsightCategory.GOAL,
                confidence=0.8,
            ),
        )

        inserted = mock_client.table.return_value.insert.call_args.args[0]
        assert inserted["category"] == "goal"
        assert inserted["confidence"] == 0.8

    @pytest.mark.asyncio
    @patch("sage.services.insight_service.get_supabase_client")
    async def test_patterns_merged_in_order(self, mock_get_client: MagicMock) -> None:
        mock_client = MagicMock()
        mock_get_client.return_value = mock_client
        _lookup_chain(mock_client).execute.side_effect = [
            make_response([]),
            make_response([{"id": "ins-1", "confidence": 0.4}]),
        ]

        service = InsightService()
        counts = await service.merge_user_patterns(
            USER_ID,
            [
                UserPatternPayload(content="Avoids conflict"),
                UserPatternPayload(content="Avoids conflict at work", confidence=0.6),
            ],
        )

        assert counts == {"created": 1, "updated": 1}


class TestListInsights:
    """Tests for list_profile_insights and list_user_insights."""

    @pytest.mark.asyncio
    @patch("sage.services.insight_service.get_supabase_client")
    async def test_profile_insights_threshold_order_and_limit(self, mock_get_client: MagicMock) -> None:
        mock_client = MagicMock()
        mock_get_client.return_value = mock_client
        query = mock_client.table.return_value.select.return_value.eq.return_value
        rows = [{"content": "a", "confidence": 0.9}]
        query.gte.return_value.order.return_value.limit.return_value.execute.return_value = make_response(rows)

        service = InsightService()

        assert await service.list_profile_insights(USER_ID) == rows
        query.gte.assert_called_once_with("confidence", 0.3)
        query.gte.return_value.order.assert_called_once_with("confidence", desc=True)
        query.gte.return_value.order.return_value.limit.assert_called_once_with(20)

    @pytest.mark.asyncio
    @patch("sage.services.insight_service.get_supabase_client")
    async def test_user_insights(self, mock_get_client: MagicMock) -> None:
        mock_client = MagicMock()
        mock_get_client.return_value = mock_client
        query = mock_client.table.return_value.select.return_value.eq.return_value
        query.order.return_value.execute.return_value = make_response(None)

        service = InsightService()

        assert await service.list_user_insights(USER_ID) == []
