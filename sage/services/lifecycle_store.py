"""Persistence for lifecycle runs and their step checkpoints."""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sage.core.supabase import get_supabase_client
from sage.models.lifecycle import LifecycleStep, RunStatus
from sage.schemas.lifecycle import ConversationEndedEvent

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def event_from_run(run: dict[str, Any]) -> ConversationEndedEvent:
    """Rebuild the conversation-ended event a run was created from."""
    return ConversationEndedEvent(
        conversation_id=run["conversation_id"],
        user_id=run["user_id"],
        type=run["type"],
        transcript=run.get("transcript"),
    )


class LifecycleRunStore:
    """Reads and writes rows of the lifecycle_runs table."""

    TABLE = "lifecycle_runs"
    RESUME_BATCH_SIZE = 100

    def __init__(self) -> None:
        """Initialize run store with Supabase client."""
        self.client = get_supabase_client()

    async def create_run(self, event: ConversationEndedEvent) -> dict[str, Any]:
        """Record a new pending run for an event."""
        transcript = None
        if event.transcript is not None:
            transcript = [entry.model_dump(mode="json") for entry in event.transcript]

        response = (
            self.client.table(self.TABLE)
            .insert(
                {
                    "conversation_id": str(event.conversation_id),
                    "user_id": str(event.user_id),
                    "type": event.type.value,
                    "transcript": transcript,
                    "status": RunStatus.PENDING.value,
                    "attempts": 0,
                    "steps": {},
                }
            )
            .execute()
        )
        return response.data[0]

    async def get_run(self, run_id: UUID | str) -> dict[str, Any] | None:
        response = (
            self.client.table(self.TABLE)
            .select("*")
            .eq("id", str(run_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def list_runs_for_conversation(
        self, conversation_id: UUID, user_id: UUID
    ) -> list[dict[str, Any]]:
        """Get a user's runs for one conversation, newest first."""
        response = (
            self.client.table(self.TABLE)
            .select("*")
            .eq("conversation_id", str(conversation_id))
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []

    async def get_last_summarized_message_id(self, conversation_id: UUID) -> str | None:
        """Get the newest message covered by the conversation's last completed run.

        Returns None when no run of the conversation has completed.
        """
        response = (
            self.client.table(self.TABLE)
            .select("steps")
            .eq("conversation_id", str(conversation_id))
            .eq("status", RunStatus.COMPLETE.value)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        summary = (response.data[0].get("steps") or {}).get(LifecycleStep.GENERATE_SUMMARY.value) or {}
        return summary.get("lastMessageId")

    async def list_incomplete_runs(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Get runs that are pending or were interrupted while running, oldest first."""
        response = (
            self.client.table(self.TABLE)
            .select("*")
            .in_("status", [RunStatus.PENDING.value, RunStatus.RUNNING.value])
            .order("created_at", desc=False)
            .limit(limit or self.RESUME_BATCH_SIZE)
            .execute()
        )
        return response.data or []

    async def _update(self, run_id: UUID | str, data: dict[str, Any]) -> None:
        data["updated_at"] = _now()
        self.client.table(self.TABLE).update(data).eq("id", str(run_id)).execute()

    async def start_attempt(self, run_id: UUID | str, attempt: int) -> None:
        await self._update(
            run_id,
            {"status": RunStatus.RUNNING.value, "attempts": attempt, "last_error": None},
        )

    async def set_current_step(self, run_id: UUID | str, step: str) -> None:
        await self._update(run_id, {"current_step": step})

    async def save_steps(self, run_id: UUID | str, steps: dict[str, Any]) -> None:
        """Persist the step results collected so far."""
        await self._update(run_id, {"steps": steps, "current_step": None})

    async def record_attempt_error(self, run_id: UUID | str, error: str, step: str | None) -> None:
        await self._update(run_id, {"last_error": error, "failed_step": step})

    async def complete_run(
        self, run_id: UUID | str, status: RunStatus, result: dict[str, Any]
    ) -> None:
        await self._update(
            run_id,
            {"status": status.value, "result": result, "current_step": None, "last_error": None},
        )

    async def fail_run(self, run_id: UUID | str, error: str, step: str | None) -> None:
        await self._update(
            run_id,
            {
                "status": RunStatus.FAILED.value,
                "last_error": error,
                "failed_step": step,
                "current_step": None,
            },
        )
