"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from sage.api.middleware.error_handler import error_handler_middleware, register_exception_handlers
from sage.api.middleware.latency_logging import latency_logging_middleware
from sage.api.routes import conversations, health, insights, lifecycle, profile
from sage.core.config import get_settings
from sage.services.lifecycle_dispatcher import (
    init_lifecycle_dispatcher,
    shutdown_lifecycle_dispatcher,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the lifecycle dispatcher on startup and stop it on shutdown."""
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)

    if not settings.has_llm_credentials:
        logger.warning("OPENROUTER_API_KEY is not set; conversation summaries will fail")

    await init_lifecycle_dispatcher()
    logger.info("Lifecycle dispatcher initialized")

    yield

    await shutdown_lifecycle_dispatcher()
    logger.info("Lifecycle dispatcher shutdown")
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Sage API",
        description="Socratic dialogue backend: conversations, lifecycle processing and credits",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)
    app.add_middleware(BaseHTTPMiddleware, dispatch=latency_logging_middleware)

    register_exception_handlers(app)

    # Health routes at root level
    app.include_router(health.router)

    api_v1_router = APIRouter(prefix="/api/v1")
    api_v1_router.include_router(lifecycle.router)
    api_v1_router.include_router(conversations.router)
    api_v1_router.include_router(profile.router)
    api_v1_router.include_router(insights.router)
    app.include_router(api_v1_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sage.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
