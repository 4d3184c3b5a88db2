"""Dependency providers and settings management."""

from functools import lru_cache
from typing import List, Literal, Optional

from fastapi import Header, HTTPException, Request, status
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .agent.prompts import UserInfo
from .state import AppState


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    ENVIRONMENT: str = "development"
    SENTRY_DSN: Optional[str] = None

    # LLM
    OPENAI_API_KEY: str | None = None
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TEMPERATURE: float = 0.1
    LLM_MAX_TOKENS: int = 2048

    # Orchestration
    MAX_TOOL_ROUNDS: int = Field(default=5, ge=1)
    ROUND_EXHAUSTED_MESSAGE: str = "I'm having trouble completing your request. Please try again."

    # GA4 Data API
    GA4_API_BASE_URL: str = "https://analyticsdata.googleapis.com/v1beta"
    GA4_TIMEOUT_SECONDS: float = 30.0

    # Caches
    METADATA_TTL_SECONDS: int = 300  # 5 minutes
    METADATA_CACHE_MAX_ENTRIES: int = 256
    REPORT_CACHE_TTL_SECONDS: int = 60
    REPORT_CACHE_MAX_ENTRIES: int = 1024
    REPORT_CACHE_BACKEND: Literal["memory", "redis"] = "memory"

    # Redis Configuration (only used when REPORT_CACHE_BACKEND=redis)
    REDIS_URL: str = "redis://localhost:6379/0"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.BACKEND_CORS_ORIGINS.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
) -> UserInfo:
    """Resolve the caller from headers set by the authenticating gateway.

    Session handling lives in the gateway; this service trusts X-User-Id.
    """
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return UserInfo(id=x_user_id, name=x_user_name, email=x_user_email)


def get_google_access_token(
    x_google_access_token: Optional[str] = Header(default=None),
) -> str:
    """OAuth access token for the GA4 Data API, acquired and refreshed upstream."""
    if not x_google_access_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Google Analytics is not connected",
        )
    return x_google_access_token


def get_app_state(request: Request) -> AppState:
    """Shared process-wide state built in the app lifespan."""
    app_state = getattr(request.app.state, "copilot", None)
    if app_state is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return app_state
