"""Lifecycle run model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import Any, TypedDict
from uuid import UUID


class RunStatus(str, Enum):
    """States of one lifecycle run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETE, RunStatus.SKIPPED, RunStatus.FAILED)


class LifecycleStep(str, Enum):
    """Named, checkpointed steps in execution order."""

    SAVE_MESSAGES = "save-messages"
    GENERATE_SUMMARY = "generate-summary"
    MARK_INACTIVE_EARLY = "mark-inactive-early"
    SAVE_INSIGHTS = "save-insights"
    UPDATE_PROFILE = "update-profile"
    FINALIZE = "finalize"


class LifecycleRun(TypedDict):
    """lifecycle_runs row.

    steps maps a step name to the result it returned; a step present in
    the map is never executed again for this run.
    """

    id: UUID
    conversation_id: UUID
    user_id: UUID
    type: str
    transcript: list[dict[str, str]] | None
    status: RunStatus
    attempts: int
    current_step: str | None
    steps: dict[str, Any]
    result: dict[str, Any] | None
    last_error: str | None
    failed_step: str | None
    created_at: datetime
    updated_at: datetime
