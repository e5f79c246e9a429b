"""Health check endpoints for monitoring and deployment verification."""

import time
from typing import Any

from fastapi import APIRouter, Response, status

from sage.api.deps import Dispatcher
from sage.core.openai import get_llm_metrics
from sage.core.supabase import check_database_connection
from sage.schemas.common import CheckResult, HealthResponse, HealthStatus, ReadinessResponse

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Liveness check",
    description="Basic health check to verify the service is running. Used for liveness probes.",
)
async def health_check() -> HealthResponse:
    """Return basic health status without checking dependencies."""
    return HealthResponse(status=HealthStatus.HEALTHY)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "All dependencies healthy"},
        503: {"description": "One or more dependencies unhealthy"},
    },
    summary="Readiness check",
    description="Check database connectivity and that the lifecycle dispatcher is running.",
)
async def readiness_check(response: Response, dispatcher: Dispatcher) -> ReadinessResponse:
    """Check readiness of the database and the lifecycle dispatcher.

    Returns 503 if any check fails.
    """
    checks: list[CheckResult] = []

    start_time = time.perf_counter()
    db_result = await check_database_connection()
    latency_ms = (time.perf_counter() - start_time) * 1000
    checks.append(
        CheckResult(
            name="database",
            healthy=db_result["healthy"],
            latency_ms=round(latency_ms, 2),
            error=db_result.get("error"),
        )
    )

    dispatcher_running = dispatcher.is_running
    checks.append(
        CheckResult(
            name="lifecycle_dispatcher",
            healthy=dispatcher_running,
            error=None if dispatcher_running else "dispatcher not running",
        )
    )

    all_healthy = all(check.healthy for check in checks)
    if not all_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(
        status=HealthStatus.HEALTHY if all_healthy else HealthStatus.UNHEALTHY,
        checks=checks,
    )


@router.get(
    "/health/metrics",
    summary="Runtime metrics",
    description="LLM call statistics and lifecycle dispatcher counters.",
)
async def metrics(dispatcher: Dispatcher) -> dict[str, Any]:
    return {
        "llm": get_llm_metrics().get_stats(),
        "lifecycle": dispatcher.get_stats(),
    }
