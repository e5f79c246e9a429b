"""Session insights endpoint for voice sessions."""

import logging

from fastapi import APIRouter

from sage.api.deps import CurrentUser
from sage.api.middleware.error_handler import (
    BadRequestError,
    InsufficientCreditsError,
    ServiceUnavailableError,
)
from sage.core.config import get_settings
from sage.models.usage import UsageType
from sage.schemas.insights import SessionInsightsRequest, SessionInsightsResponse
from sage.services.credit_service import CreditService
from sage.services.lifecycle_errors import LifecycleError
from sage.services.summarization_service import SummarizationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/insights", tags=["insights"])


@router.post(
    "",
    response_model=SessionInsightsResponse,
    response_model_by_alias=True,
    summary="Extract session insights",
    description=(
        "Reads a session transcript and returns what the person worked out, "
        "the key points and open reflections. Charged as voice usage."
    ),
)
async def extract_insights(
    user: CurrentUser,
    body: SessionInsightsRequest | None = None,
) -> SessionInsightsResponse:
    settings = get_settings()
    credit_service = CreditService()

    if not await credit_service.has_enough_credits(user.user_id, settings.insights_min_credits):
        raise InsufficientCreditsError("Insufficient credits for generating insights")

    if not settings.has_llm_credentials:
        raise ServiceUnavailableError("OpenRouter API key not configured")

    if body is None or not body.transcript:
        raise BadRequestError("No transcript provided")

    try:
        result = await SummarizationService(credit_service=credit_service).extract_session_insights(
            body.transcript
        )
    except LifecycleError as e:
        logger.error("Extracting insights for user %s failed: %s", user.user_id, e.message)
        raise ServiceUnavailableError(f"Failed to generate insights: {e.message}") from e

    await credit_service.deduct_credits(
        user.user_id,
        result.credits_used,
        result.tokens_used,
        UsageType.VOICE,
        model_id=settings.summary_model,
    )

    return SessionInsightsResponse(
        summary=result.summary,
        key_points=result.key_points,
        reflections=result.reflections,
    )
