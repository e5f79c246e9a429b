"""Profile, insight and usage API routes."""

from uuid import UUID

from fastapi import APIRouter

from sage.api.deps import CurrentProfile, CurrentUser
from sage.api.middleware.error_handler import NotFoundError
from sage.schemas.profile import (
    ProfileResponse,
    ProfileUpdate,
    UsageHistoryResponse,
    UsageRecordResponse,
    UserInsightListResponse,
    UserInsightResponse,
)
from sage.services.credit_service import CreditService
from sage.services.insight_service import InsightService
from sage.services.profile_service import ProfileService

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get(
    "",
    response_model=ProfileResponse,
    summary="Get current profile",
    description="The caller's profile, credit balance and number of conversations.",
)
async def get_profile(profile: CurrentProfile) -> ProfileResponse:
    conversation_count = await ProfileService().count_conversations(UUID(profile["id"]))
    return ProfileResponse(**profile, conversation_count=conversation_count)


@router.patch(
    "",
    response_model=ProfileResponse,
    summary="Update current profile",
)
async def update_profile(data: ProfileUpdate, profile: CurrentProfile) -> ProfileResponse:
    service = ProfileService()
    updated = await service.update_profile(UUID(profile["id"]), data)
    if not updated:
        raise NotFoundError("Profile not found")
    conversation_count = await service.count_conversations(UUID(profile["id"]))
    return ProfileResponse(**updated, conversation_count=conversation_count)


@router.get(
    "/insights",
    response_model=UserInsightListResponse,
    summary="List insights about the current user",
)
async def list_insights(user: CurrentUser) -> UserInsightListResponse:
    rows = await InsightService().list_user_insights(user.user_id)
    return UserInsightListResponse(insights=[UserInsightResponse(**row) for row in rows])


@router.get(
    "/usage",
    response_model=UsageHistoryResponse,
    summary="Get credit usage history",
    description="The credit balance and the 50 most recent ledger entries.",
)
async def get_usage(profile: CurrentProfile) -> UsageHistoryResponse:
    records = await CreditService().get_usage_history(UUID(profile["id"]))
    return UsageHistoryResponse(
        credits=profile["credits"],
        records=[UsageRecordResponse(**r) for r in records],
    )
