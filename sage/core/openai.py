"""OpenAI-compatible LLM client with timing, retry logic, and performance monitoring.

Summaries and profile paragraphs are generated through OpenRouter, which
speaks the OpenAI chat-completions protocol, so the official ``openai`` SDK
is used with a custom base URL.
"""

import logging
import time
from collections import defaultdict
from functools import lru_cache
from typing import Any

from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from sage.core.config import get_settings

logger = logging.getLogger(__name__)

# Call-level retry configuration (independent of lifecycle run retries)
MAX_RETRIES = 3
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 10

RETRYABLE_ERRORS = (APIConnectionError, APITimeoutError, RateLimitError, InternalServerError)

# Latency thresholds for logging (milliseconds)
SLOW_CALL_THRESHOLD_MS = 5000
VERY_SLOW_CALL_THRESHOLD_MS = 15000


class LLMMetrics:
    """Tracks LLM API call metrics for monitoring."""

    def __init__(self, max_samples: int = 500):
        self._samples: list[dict] = []
        self._max_samples = max_samples
        self._total_calls = 0
        self._total_errors = 0

    def record_call(
        self,
        operation: str,
        latency_ms: float,
        model: str,
        tokens_used: int | None = None,
        error: str | None = None,
    ) -> None:
        """Record an API call."""
        self._total_calls += 1
        if error:
            self._total_errors += 1

        self._samples.append(
            {
                "operation": operation,
                "latency_ms": round(latency_ms, 2),
                "model": model,
                "tokens_used": tokens_used,
                "error": error,
                "timestamp": time.time(),
            }
        )
        if len(self._samples) > self._max_samples:
            self._samples = self._samples[-self._max_samples:]

    def get_stats(self) -> dict:
        """Get aggregated stats, grouped by operation."""
        by_op: dict[str, list[dict]] = defaultdict(list)
        for sample in self._samples:
            by_op[sample["operation"]].append(sample)

        operations = {}
        for op, samples in by_op.items():
            latencies = sorted(s["latency_ms"] for s in samples)
            total = len(latencies)
            operations[op] = {
                "count": total,
                "error_count": sum(1 for s in samples if s.get("error")),
                "avg_ms": round(sum(latencies) / total, 2),
                "p95_ms": round(latencies[min(int(total * 0.95), total - 1)], 2),
            }

        return {
            "total_calls": self._total_calls,
            "total_errors": self._total_errors,
            "recent_samples": len(self._samples),
            "operations": operations,
        }


_llm_metrics: LLMMetrics | None = None


def get_llm_metrics() -> LLMMetrics:
    """Get or create the global LLM metrics instance."""
    global _llm_metrics
    if _llm_metrics is None:
        _llm_metrics = LLMMetrics()
    return _llm_metrics


class TimedChatCompletions:
    """Chat completions with timing and retry logic.

    Calls go through the async SDK and tenacity waits with asyncio.sleep
    between attempts, so callers suspend rather than block the event loop.
    """

    def __init__(self, completions: Any, metrics: LLMMetrics, operation: str):
        self._completions = completions
        self._metrics = metrics
        self._operation = operation

    @retry(
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        reraise=True,
    )
    async def _create_with_retry(self, **kwargs: Any) -> Any:
        return await self._completions.create(**kwargs)

    async def create(self, **kwargs: Any) -> Any:
        """Create a chat completion with timing and retry.

        Args:
            **kwargs: Arguments to pass to the chat completions API.

        Returns:
            The chat completion response.
        """
        model = kwargs.get("model", "unknown")
        start_time = time.perf_counter()
        error_msg = None
        tokens_used = None

        try:
            response = await self._create_with_retry(**kwargs)
            if getattr(response, "usage", None):
                tokens_used = response.usage.total_tokens
            return response

        except RETRYABLE_ERRORS as e:
            error_msg = f"{type(e).__name__}: {e}"
            logger.error(
                "LLM call %s failed after %d attempts: %s",
                self._operation,
                MAX_RETRIES,
                error_msg,
            )
            raise

        except Exception as e:
            error_msg = f"{type(e).__name__}: {e}"
            logger.error("LLM call %s error: %s", self._operation, error_msg)
            raise

        finally:
            latency_ms = (time.perf_counter() - start_time) * 1000
            self._metrics.record_call(
                operation=self._operation,
                latency_ms=latency_ms,
                model=model,
                tokens_used=tokens_used,
                error=error_msg,
            )

            log_msg = (
                f"LLM {self._operation}: model={model}, "
                f"latency={latency_ms:.2f}ms, tokens={tokens_used or 'N/A'}"
            )
            if error_msg:
                logger.error(log_msg + f", error={error_msg}")
            elif latency_ms > VERY_SLOW_CALL_THRESHOLD_MS:
                logger.warning(f"VERY SLOW {log_msg}")
            elif latency_ms > SLOW_CALL_THRESHOLD_MS:
                logger.warning(f"SLOW {log_msg}")
            else:
                logger.info(log_msg)


class TimedLLMClient:
    """Chat-completions client wrapper with timing, retry logic, and metrics."""

    def __init__(self, client: AsyncOpenAI):
        self._client = client
        self._metrics = get_llm_metrics()

    def completions(self, operation: str) -> TimedChatCompletions:
        """Get a timed chat completions interface labelled with an operation name."""
        return TimedChatCompletions(self._client.chat.completions, self._metrics, operation)


@lru_cache
def get_llm_client() -> TimedLLMClient:
    """Get cached LLM client singleton pointed at OpenRouter.

    The SDK's own retries are disabled; retries are handled by tenacity so
    that every attempt is timed and logged.

    Returns:
        TimedLLMClient: Client instance with performance monitoring.
    """
    settings = get_settings()
    raw_client = AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        timeout=settings.llm_timeout_seconds,
        max_retries=0,
        default_headers={
            "HTTP-Referer": settings.site_url,
            "X-Title": "Sage",
        },
    )
    return TimedLLMClient(raw_client)
