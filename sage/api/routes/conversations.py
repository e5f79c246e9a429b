"""Conversation and message API routes."""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, status

from sage.api.deps import CurrentProfile, CurrentUser
from sage.api.middleware.error_handler import (
    BadRequestError,
    InsufficientCreditsError,
    NotFoundError,
    ServiceUnavailableError,
)
from sage.core.config import get_settings
from sage.models.usage import UsageType
from sage.schemas.conversation import (
    ConversationCreate,
    ConversationDetailResponse,
    ConversationListResponse,
    ConversationResponse,
    RecentSummary,
    SessionContextResponse,
)
from sage.schemas.insights import ConversationSummaryResponse
from sage.schemas.message import MessageCreate, MessageListResponse, MessageResponse
from sage.services.conversation_service import ConversationService
from sage.services.credit_service import CreditService
from sage.services.insight_service import InsightService
from sage.services.lifecycle_errors import LifecycleError
from sage.services.summarization_service import MIN_MESSAGES_TO_SUMMARIZE, SummarizationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])

CONTEXT_MESSAGE_LIMIT = 50


async def _get_owned_conversation(
    service: ConversationService, conversation_id: UUID, user_id: UUID
) -> dict[str, Any]:
    conversation = await service.get_conversation(conversation_id, user_id)
    if not conversation:
        raise NotFoundError("Conversation not found")
    return conversation


@router.post(
    "",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a conversation",
    description="Creates a conversation and makes it the caller's only active one.",
)
async def create_conversation(
    profile: CurrentProfile,
    data: ConversationCreate | None = None,
) -> ConversationResponse:
    conversation = await ConversationService().create_conversation(UUID(profile["id"]), data)
    return ConversationResponse(**conversation, message_count=0)


@router.get(
    "",
    response_model=ConversationListResponse,
    summary="List conversations",
    description="The caller's 50 most recently updated conversations.",
)
async def list_conversations(user: CurrentUser) -> ConversationListResponse:
    rows = await ConversationService().list_conversations(user.user_id)
    return ConversationListResponse(conversations=[ConversationResponse(**row) for row in rows])


@router.get(
    "/context",
    response_model=SessionContextResponse,
    summary="Get session context",
    description=(
        "Recent conversation summaries, the profile summary and the active "
        "conversation, for opening a new dialogue."
    ),
)
async def get_context(profile: CurrentProfile) -> SessionContextResponse:
    service = ConversationService()
    user_id = UUID(profile["id"])

    summaries = await service.get_recent_summaries(user_id)

    active = None
    conversation = await service.get_active_conversation(user_id)
    if conversation:
        messages = await service.get_messages(conversation["id"], limit=CONTEXT_MESSAGE_LIMIT)
        active = ConversationDetailResponse(
            **conversation,
            message_count=len(messages),
            messages=[MessageResponse(**m) for m in messages],
        )

    return SessionContextResponse(
        recent_summaries=[RecentSummary(**s) for s in summaries],
        profile_summary=profile.get("profile_summary"),
        active_conversation=active,
    )


@router.get(
    "/{conversation_id}",
    response_model=ConversationDetailResponse,
    summary="Get a conversation",
)
async def get_conversation(conversation_id: UUID, user: CurrentUser) -> ConversationDetailResponse:
    service = ConversationService()
    conversation = await _get_owned_conversation(service, conversation_id, user.user_id)
    messages = await service.get_messages(conversation_id)
    return ConversationDetailResponse(
        **conversation,
        message_count=len(messages),
        messages=[MessageResponse(**m) for m in messages],
    )


@router.delete(
    "/{conversation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a conversation",
)
async def delete_conversation(conversation_id: UUID, user: CurrentUser) -> None:
    service = ConversationService()
    await _get_owned_conversation(service, conversation_id, user.user_id)
    await service.delete_conversation(conversation_id, user.user_id)
    logger.info("Deleted conversation %s for user %s", conversation_id, user.user_id)


@router.get(
    "/{conversation_id}/messages",
    response_model=MessageListResponse,
    summary="List messages",
    description="Messages of a conversation in the order they were written.",
)
async def list_messages(conversation_id: UUID, user: CurrentUser) -> MessageListResponse:
    service = ConversationService()
    await _get_owned_conversation(service, conversation_id, user.user_id)
    messages = await service.get_messages(conversation_id)
    return MessageListResponse(messages=[MessageResponse(**m) for m in messages])


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a message",
)
async def add_message(
    conversation_id: UUID,
    data: MessageCreate,
    user: CurrentUser,
) -> MessageResponse:
    service = ConversationService()
    conversation = await _get_owned_conversation(service, conversation_id, user.user_id)
    message = await service.add_message(conversation, data)
    return MessageResponse(**message)


@router.post(
    "/{conversation_id}/summarize",
    response_model=ConversationSummaryResponse,
    response_model_by_alias=True,
    summary="Summarize a conversation now",
    description=(
        "Summarizes the conversation, saves its insights, merges the observed "
        "user patterns and charges the caller, without ending the conversation."
    ),
)
async def summarize_conversation(conversation_id: UUID, user: CurrentUser) -> ConversationSummaryResponse:
    settings = get_settings()
    credit_service = CreditService()

    if not await credit_service.has_enough_credits(user.user_id, settings.summary_min_credits):
        raise InsufficientCreditsError("Insufficient credits for generating summary")

    if not settings.has_llm_credentials:
        raise ServiceUnavailableError("OpenRouter API key not configured")

    service = ConversationService()
    await _get_owned_conversation(service, conversation_id, user.user_id)
    messages = await service.get_messages(conversation_id)
    if len(messages) < MIN_MESSAGES_TO_SUMMARIZE:
        raise BadRequestError("Not enough messages to summarize")

    summarizer = SummarizationService(conversation_service=service, credit_service=credit_service)
    try:
        result = await summarizer.summarize_messages(conversation_id, messages)
    except LifecycleError as e:
        logger.error("Summarizing conversation %s failed: %s", conversation_id, e.message)
        raise ServiceUnavailableError(f"Failed to summarize: {e.message}") from e

    insight_service = InsightService()
    await service.update_summary(conversation_id, result.summary or "")
    await insight_service.save_conversation_insights(conversation_id, result.insights)
    await insight_service.merge_user_patterns(user.user_id, result.user_patterns)

    await credit_service.deduct_credits(
        user.user_id,
        result.credits_used or 0,
        result.tokens_used or 0,
        UsageType.CHAT,
        model_id=settings.summary_model,
    )

    return ConversationSummaryResponse(
        summary=result.summary,
        insights=result.insights,
        user_patterns=result.user_patterns,
    )
