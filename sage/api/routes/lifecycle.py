"""Conversation-ended trigger and lifecycle run status endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter

from sage.api.deps import CurrentUser, Dispatcher
from sage.api.middleware.error_handler import BadRequestError, NotFoundError, ServiceUnavailableError
from sage.models.conversation import ConversationType
from sage.models.lifecycle import LifecycleStep
from sage.schemas.lifecycle import (
    ConversationEndedEvent,
    ConversationEndRequest,
    ConversationEndResponse,
    LifecycleRunListResponse,
    LifecycleRunResponse,
)
from sage.services.conversation_service import ConversationService
from sage.services.lifecycle_errors import DispatchUnavailableError
from sage.services.lifecycle_store import LifecycleRunStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversation", tags=["lifecycle"])

_STEP_ORDER = [step.value for step in LifecycleStep]


@router.post(
    "/end",
    response_model=ConversationEndResponse,
    response_model_by_alias=True,
    summary="End a conversation",
    description=(
        "Queues background processing of a finished conversation: saving a voice "
        "transcript, summarizing, extracting insights, refreshing the profile "
        "summary and charging credits. Returns as soon as the run is queued."
    ),
)
async def end_conversation(
    body: ConversationEndRequest,
    user: CurrentUser,
    dispatcher: Dispatcher,
) -> ConversationEndResponse:
    """Queue exactly one lifecycle run for the ended conversation.

    Duplicate calls are not rejected here; each queues its own run.
    """
    if not body.conversation_id:
        raise BadRequestError("conversationId is required")

    if body.type not in (ConversationType.VOICE.value, ConversationType.TEXT.value):
        raise BadRequestError("type must be 'voice' or 'text'")

    try:
        conversation_id = UUID(body.conversation_id)
    except ValueError as e:
        raise BadRequestError("conversationId must be a valid UUID") from e

    conversation_type = ConversationType(body.type)
    event = ConversationEndedEvent(
        conversation_id=conversation_id,
        user_id=user.user_id,
        type=conversation_type,
        transcript=body.transcript if conversation_type == ConversationType.VOICE else None,
    )

    try:
        run = await dispatcher.enqueue(event)
    except DispatchUnavailableError as e:
        raise ServiceUnavailableError(f"Failed to queue conversation: {e.message}") from e

    logger.info(
        "Queued %s conversation %s for user %s (run %s)",
        conversation_type.value,
        conversation_id,
        user.user_id,
        run["id"],
    )

    return ConversationEndResponse(
        queued=True,
        conversation_id=conversation_id,
        type=conversation_type,
        run_id=run["id"],
    )


@router.get(
    "/{conversation_id}/runs",
    response_model=LifecycleRunListResponse,
    summary="List lifecycle runs",
    description="Lifecycle runs recorded for one of the caller's conversations, newest first.",
)
async def list_runs(conversation_id: UUID, user: CurrentUser) -> LifecycleRunListResponse:
    conversation = await ConversationService().get_conversation(conversation_id, user.user_id)
    if not conversation:
        raise NotFoundError("Conversation not found")

    rows = await LifecycleRunStore().list_runs_for_conversation(conversation_id, user.user_id)
    runs = []
    for row in rows:
        completed = [step for step in _STEP_ORDER if step in (row.get("steps") or {})]
        runs.append(
            LifecycleRunResponse(
                id=row["id"],
                conversation_id=row["conversation_id"],
                type=row["type"],
                status=row["status"],
                attempts=row.get("attempts") or 0,
                current_step=row.get("current_step"),
                completed_steps=completed,
                result=row.get("result"),
                last_error=row.get("last_error"),
                failed_step=row.get("failed_step"),
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )
        )
    return LifecycleRunListResponse(runs=runs)
