"""FastAPI application entrypoint.

Configures CORS, Sentry and the shared app state, includes the chat router,
and exposes a healthcheck endpoint.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .utils.env import load_env_file

load_env_file()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from .deps import Settings, get_settings
from .routers import chat as chat_router
from .state import build_app_state
from .telemetry import init_sentry
from . import schemas


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    init_sentry(settings.SENTRY_DSN, settings.ENVIRONMENT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.copilot = build_app_state(settings)
        logger.info(
            f"[STARTUP] GA4 copilot ready: model={settings.LLM_MODEL} "
            f"max_tool_rounds={settings.MAX_TOOL_ROUNDS} report_cache={settings.REPORT_CACHE_BACKEND}"
        )
        try:
            yield
        finally:
            await app.state.copilot.aclose()
            app.state.copilot = None
            logger.info("[SHUTDOWN] Shared clients closed")

    app = FastAPI(
        title="GA4 Copilot API",
        description="""
        Conversational analytics over Google Analytics 4.

        The assistant answers questions by running GA4 reports through a
        fixed set of tools and streams its reply as Server-Sent Events.

        ## Authentication

        Requests arrive through the authenticating gateway, which forwards
        `X-User-Id` and the user's Google access token
        (`X-Google-Access-Token`).
        """,
        version="1.0.0",
        lifespan=lifespan,
    )

    # Trust X-Forwarded-Proto from the load balancer
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    allowed_origins = settings.cors_origins
    logger.info(f"[CORS] Allowed origins: {allowed_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
        description="Unauthenticated liveness probe for load balancers.",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    return app


app = create_app()
