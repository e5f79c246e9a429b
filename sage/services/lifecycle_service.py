"""The conversation lifecycle pipeline.

Runs once per conversation-ended event:

    save-messages (voice with transcript only)
    generate-summary
        skipped (too short, or nothing new since the last summary)
            -> mark-inactive-early, done
    save-insights
    update-profile
    finalize

Every step's result is stored on the run before the next step starts. A
retried run replays the stored results instead of executing those steps
again, so messages are never saved twice and credits are never deducted
twice for one run.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sage.core.config import get_settings
from sage.models.conversation import ConversationType
from sage.models.lifecycle import LifecycleStep
from sage.models.usage import UsageType
from sage.schemas.lifecycle import ConversationEndedEvent, SummaryResult
from sage.services.conversation_service import ConversationService
from sage.services.credit_service import CreditService
from sage.services.insight_service import InsightService
from sage.services.lifecycle_errors import LifecycleStepError
from sage.services.lifecycle_store import LifecycleRunStore, event_from_run
from sage.services.profile_service import ProfileService
from sage.services.summarization_service import SummarizationService

logger = logging.getLogger(__name__)


def ledger_reference(event: ConversationEndedEvent, summary: SummaryResult) -> str:
    """Idempotency key of the ledger entry charged for one summary.

    The key names the newest message the summary covers, so a conversation
    that is resumed and ended again is charged for the new summary while a
    replayed end of the same content is not.
    """
    if summary.last_message_id:
        return f"conversation-end:{event.conversation_id}:{summary.last_message_id}"
    return f"conversation-end:{event.conversation_id}"


class ConversationLifecycle:
    """Executes the lifecycle pipeline for one run."""

    def __init__(
        self,
        conversation_service: ConversationService | None = None,
        summarization_service: SummarizationService | None = None,
        insight_service: InsightService | None = None,
        profile_service: ProfileService | None = None,
        credit_service: CreditService | None = None,
        run_store: LifecycleRunStore | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            conversation_service: Optional conversation service for testing.
            summarization_service: Optional summarization service for testing.
            insight_service: Optional insight service for testing.
            profile_service: Optional profile service for testing.
            credit_service: Optional credit service for testing.
            run_store: Optional run store for testing.
        """
        self.settings = get_settings()
        self.conversation_service = conversation_service or ConversationService()
        self.credit_service = credit_service or CreditService()
        self.insight_service = insight_service or InsightService()
        self.summarization_service = summarization_service or SummarizationService(
            conversation_service=self.conversation_service,
            credit_service=self.credit_service,
        )
        self.profile_service = profile_service or ProfileService(
            insight_service=self.insight_service,
            summarization_service=self.summarization_service,
        )
        self.run_store = run_store or LifecycleRunStore()

    async def execute(self, run: dict[str, Any]) -> dict[str, Any]:
        """Run (or resume) the pipeline for a lifecycle run.

        ``run["steps"]`` is updated in place as steps complete.

        Returns:
            dict: The run result, ``{"success": True, ...}``.

        Raises:
            LifecycleStepError: A step failed; carries the step name and cause.
        """
        event = event_from_run(run)
        conversation_id = event.conversation_id

        logger.info("Processing %s conversation %s (run %s)", event.type.value, conversation_id, run["id"])

        if event.type == ConversationType.VOICE and event.transcript:
            await self._step(run, LifecycleStep.SAVE_MESSAGES, lambda: self._save_messages(event))

        summary_data = await self._step(
            run, LifecycleStep.GENERATE_SUMMARY, lambda: self._generate_summary(event)
        )
        summary = SummaryResult.model_validate(summary_data)

        if summary.skipped:
            await self._step(
                run, LifecycleStep.MARK_INACTIVE_EARLY, lambda: self._mark_inactive(event)
            )
            logger.info("Conversation %s ended without summary: %s", conversation_id, summary.reason)
            return {"success": True, "skipped": True, "reason": summary.reason}

        await self._step(run, LifecycleStep.SAVE_INSIGHTS, lambda: self._save_insights(event, summary))
        await self._step(run, LifecycleStep.UPDATE_PROFILE, lambda: self._update_profile(event))
        await self._step(run, LifecycleStep.FINALIZE, lambda: self._finalize(event, summary))

        logger.info("Conversation processing complete: %s", conversation_id)
        return {"success": True, "conversationId": str(conversation_id)}

    async def finalize_without_summary(self, run: dict[str, Any]) -> None:
        """Deactivate a conversation whose run failed for good.

        No summary is written and nothing is charged.
        """
        event = event_from_run(run)
        await self.conversation_service.set_inactive(event.conversation_id, event.user_id)
        logger.warning(
            "Conversation %s marked inactive without summary after run %s failed",
            event.conversation_id,
            run["id"],
        )

    async def _step(
        self,
        run: dict[str, Any],
        step: LifecycleStep,
        action: Callable[[], Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        steps = run.setdefault("steps", {})
        if step.value in steps:
            logger.debug("Run %s: reusing stored result of step %s", run["id"], step.value)
            return steps[step.value]

        try:
            await self.run_store.set_current_step(run["id"], step.value)
            result = await action()
            steps[step.value] = result
            await self.run_store.save_steps(run["id"], steps)
        except Exception as e:
            raise LifecycleStepError(step.value, e) from e

        return result

    async def _save_messages(self, event: ConversationEndedEvent) -> dict[str, Any]:
        conversation = await self.conversation_service.get_conversation(
            event.conversation_id, event.user_id
        )
        if not conversation:
            logger.warning(
                "Conversation %s not found for user %s, transcript not saved",
                event.conversation_id,
                event.user_id,
            )
            return {"savedCount": 0, "reason": "conversation_not_found"}

        saved = await self.conversation_service.save_transcript(
            event.conversation_id, event.transcript or []
        )
        logger.info("Saved %d voice messages to conversation %s", saved, event.conversation_id)
        return {"savedCount": saved}

    async def _generate_summary(self, event: ConversationEndedEvent) -> dict[str, Any]:
        summarized = await self.run_store.get_last_summarized_message_id(event.conversation_id)
        if summarized:
            latest = await self.conversation_service.get_last_message_id(event.conversation_id)
            if latest == summarized:
                logger.info(
                    "Conversation %s has no messages since its last summary", event.conversation_id
                )
                return SummaryResult.skip("already_finalized").model_dump(mode="json", by_alias=True)

        result = await self.summarization_service.summarize(event.conversation_id, event.user_id)
        return result.model_dump(mode="json", by_alias=True)

    async def _mark_inactive(self, event: ConversationEndedEvent) -> dict[str, Any]:
        await self.conversation_service.set_inactive(event.conversation_id, event.user_id)
        return {"inactive": True}

    async def _save_insights(
        self, event: ConversationEndedEvent, summary: SummaryResult
    ) -> dict[str, Any]:
        await self.conversation_service.update_summary(event.conversation_id, summary.summary or "")
        saved = await self.insight_service.save_conversation_insights(
            event.conversation_id, summary.insights
        )
        merged = await self.insight_service.merge_user_patterns(event.user_id, summary.user_patterns)
        return {"saved": True, "insights": saved, "patterns": merged}

    async def _update_profile(self, event: ConversationEndedEvent) -> dict[str, Any]:
        return await self.profile_service.regenerate_profile_summary(event.user_id)

    async def _finalize(
        self, event: ConversationEndedEvent, summary: SummaryResult
    ) -> dict[str, Any]:
        await self.conversation_service.set_inactive(event.conversation_id, event.user_id)

        deduction = None
        if summary.credits_used and summary.tokens_used:
            usage_type = UsageType.VOICE if event.type == ConversationType.VOICE else UsageType.CHAT
            result = await self.credit_service.deduct_credits(
                event.user_id,
                summary.credits_used,
                summary.tokens_used,
                usage_type,
                model_id=self.settings.summary_model,
                reference_id=ledger_reference(event, summary),
            )
            deduction = result.to_dict()

        return {"finalized": True, "deduction": deduction}
