"""In-process dispatcher that executes lifecycle runs in the background.

Runs are persisted in lifecycle_runs before they are queued, so a run
accepted by ``enqueue`` survives a restart: on startup every run still
pending or running is queued again and resumes from its last completed
step.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sage.core.config import get_settings
from sage.models.lifecycle import RunStatus
from sage.schemas.lifecycle import ConversationEndedEvent
from sage.services.lifecycle_errors import DispatchUnavailableError, LifecycleStepError
from sage.services.lifecycle_service import ConversationLifecycle
from sage.services.lifecycle_store import LifecycleRunStore

logger = logging.getLogger(__name__)


@dataclass
class DispatcherConfig:
    """Configuration for lifecycle run execution."""

    max_attempts: int = 3
    retry_backoff_seconds: float = 2.0
    worker_concurrency: int = 2
    finalize_on_failure: bool = True
    resume_on_startup: bool = True

    @classmethod
    def from_settings(cls) -> "DispatcherConfig":
        """Create config from application settings."""
        settings = get_settings()
        return cls(
            max_attempts=settings.lifecycle_max_attempts,
            retry_backoff_seconds=settings.lifecycle_retry_backoff_seconds,
            worker_concurrency=settings.lifecycle_worker_concurrency,
            finalize_on_failure=settings.lifecycle_finalize_on_failure,
            resume_on_startup=settings.lifecycle_resume_on_startup,
        )

    def backoff_for(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt``."""
        return self.retry_backoff_seconds * (2 ** (attempt - 1))


class LifecycleDispatcher:
    """Queue of lifecycle runs drained by a fixed pool of worker tasks."""

    def __init__(
        self,
        config: DispatcherConfig | None = None,
        lifecycle: ConversationLifecycle | None = None,
        run_store: LifecycleRunStore | None = None,
    ) -> None:
        self.config = config or DispatcherConfig()
        self._lifecycle = lifecycle
        self._run_store = run_store
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []
        self._conversation_locks: dict[str, asyncio.Lock] = {}
        self._lock_holders: dict[str, int] = defaultdict(int)
        self._stats: dict[str, int] = defaultdict(int)

    @property
    def lifecycle(self) -> ConversationLifecycle:
        if self._lifecycle is None:
            self._lifecycle = ConversationLifecycle(run_store=self.run_store)
        return self._lifecycle

    @property
    def run_store(self) -> LifecycleRunStore:
        if self._run_store is None:
            self._run_store = LifecycleRunStore()
        return self._run_store

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        """Start the worker pool and queue interrupted runs."""
        if self._workers:
            return

        self._workers = [
            asyncio.create_task(self._worker(index), name=f"lifecycle-worker-{index}")
            for index in range(self.config.worker_concurrency)
        ]
        logger.info("Lifecycle dispatcher started with %d workers", len(self._workers))

        if self.config.resume_on_startup:
            try:
                await self.resume_incomplete_runs()
            except Exception:
                logger.exception("Failed to resume incomplete lifecycle runs")

    async def stop(self) -> None:
        """Cancel the worker pool. Unfinished runs stay pending or running."""
        for worker in self._workers:
            worker.cancel()
        for worker in self._workers:
            try:
                await worker
            except asyncio.CancelledError:
                pass
        self._workers = []
        logger.info("Lifecycle dispatcher stopped (%d runs left queued)", self._queue.qsize())

    async def drain(self) -> None:
        """Wait until every queued run has been processed."""
        await self._queue.join()

    async def enqueue(self, event: ConversationEndedEvent) -> dict[str, Any]:
        """Persist a run for the event and queue it for execution.

        Returns:
            dict: The created lifecycle_runs row.

        Raises:
            DispatchUnavailableError: The dispatcher is not running or the run
                could not be recorded.
        """
        if not self.is_running:
            raise DispatchUnavailableError("lifecycle dispatcher is not running")

        try:
            run = await self.run_store.create_run(event)
        except Exception as e:
            logger.error("Failed to record lifecycle run for conversation %s: %s", event.conversation_id, e)
            raise DispatchUnavailableError(str(e)) from e

        self._queue.put_nowait(str(run["id"]))
        self._stats["enqueued"] += 1
        return run

    async def resume_incomplete_runs(self) -> int:
        """Queue runs left pending or running by a previous process.

        Returns:
            int: Number of runs queued.
        """
        runs = await self.run_store.list_incomplete_runs()
        for run in runs:
            self._queue.put_nowait(str(run["id"]))

        if runs:
            logger.info("Resuming %d incomplete lifecycle runs", len(runs))
        return len(runs)

    async def _worker(self, index: int) -> None:
        while True:
            run_id = await self._queue.get()
            try:
                await self.process_run(run_id)
            except Exception:
                logger.exception("Lifecycle worker %d failed processing run %s", index, run_id)
            finally:
                self._queue.task_done()

    @asynccontextmanager
    async def _conversation_guard(self, conversation_id: str) -> AsyncIterator[None]:
        """Serialize runs that target the same conversation."""
        lock = self._conversation_locks.setdefault(conversation_id, asyncio.Lock())
        self._lock_holders[conversation_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[conversation_id] -= 1
            if self._lock_holders[conversation_id] == 0:
                del self._lock_holders[conversation_id]
                del self._conversation_locks[conversation_id]

    async def process_run(self, run_id: UUID | str) -> RunStatus | None:
        """Execute a run with bounded retries.

        Returns:
            RunStatus | None: The run's final status, or None if the run
            does not exist.
        """
        run = await self.run_store.get_run(run_id)
        if run is None:
            logger.warning("Lifecycle run %s not found, dropping", run_id)
            return None

        if RunStatus(run["status"]).is_terminal:
            logger.info("Lifecycle run %s already %s, skipping", run_id, run["status"])
            return RunStatus(run["status"])

        async with self._conversation_guard(str(run["conversation_id"])):
            # Another worker may have finished this run while we waited
            run = await self.run_store.get_run(run_id) or run
            if RunStatus(run["status"]).is_terminal:
                return RunStatus(run["status"])

            attempts = run.get("attempts") or 0
            last_error: LifecycleStepError | None = None

            while attempts < self.config.max_attempts:
                attempts += 1
                await self.run_store.start_attempt(run_id, attempts)

                try:
                    outcome = await self.lifecycle.execute(run)
                except LifecycleStepError as e:
                    last_error = e
                    logger.warning(
                        "Lifecycle run %s (conversation %s) failed at step %s, attempt %d/%d: %s",
                        run_id,
                        run["conversation_id"],
                        e.step,
                        attempts,
                        self.config.max_attempts,
                        e.cause,
                    )
                    await self.run_store.record_attempt_error(run_id, str(e.cause), e.step)
                    if not e.retryable:
                        break
                    if attempts < self.config.max_attempts:
                        await asyncio.sleep(self.config.backoff_for(attempts))
                    continue

                status = RunStatus.SKIPPED if outcome.get("skipped") else RunStatus.COMPLETE
                await self.run_store.complete_run(run_id, status, outcome)
                self._stats[status.value] += 1
                return status

            await self._fail_run(run, last_error, attempts)
            return RunStatus.FAILED

    async def _fail_run(
        self, run: dict[str, Any], error: LifecycleStepError | None, attempts: int
    ) -> None:
        step = error.step if error else None
        message = str(error.cause) if error else "attempts exhausted before the run completed"

        logger.error(
            "Lifecycle run %s failed permanently: conversation_id=%s step=%s attempts=%d error=%s",
            run["id"],
            run["conversation_id"],
            step,
            attempts,
            message,
        )
        await self.run_store.fail_run(run["id"], message, step)
        self._stats[RunStatus.FAILED.value] += 1

        if not self.config.finalize_on_failure:
            return

        try:
            await self.lifecycle.finalize_without_summary(run)
        except Exception:
            logger.exception(
                "Could not deactivate conversation %s after run %s failed",
                run["conversation_id"],
                run["id"],
            )

    def get_stats(self) -> dict[str, Any]:
        """Get dispatcher statistics for monitoring."""
        return {
            "running": self.is_running,
            "workers": len(self._workers),
            "queued": self._queue.qsize(),
            "enqueued": self._stats["enqueued"],
            "complete": self._stats[RunStatus.COMPLETE.value],
            "skipped": self._stats[RunStatus.SKIPPED.value],
            "failed": self._stats[RunStatus.FAILED.value],
        }


# Global singleton instance
_dispatcher: LifecycleDispatcher | None = None


def get_lifecycle_dispatcher() -> LifecycleDispatcher:
    """Get or create the global lifecycle dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = LifecycleDispatcher(config=DispatcherConfig.from_settings())
    return _dispatcher


async def init_lifecycle_dispatcher() -> LifecycleDispatcher:
    """Start the lifecycle dispatcher. Call at app startup."""
    dispatcher = get_lifecycle_dispatcher()
    await dispatcher.start()
    return dispatcher


async def shutdown_lifecycle_dispatcher() -> None:
    """Stop the lifecycle dispatcher. Call at app shutdown."""
    global _dispatcher
    if _dispatcher:
        await _dispatcher.stop()
        _dispatcher = None
