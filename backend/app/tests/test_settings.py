"""Tests for application settings validation.

WHAT: Misconfigured limits fail when Settings is built.
WHY: A zero tool-round budget would answer every question with the
     exhausted advisory instead of failing at startup.
REFERENCES:
    - app/deps.py
"""

import pytest
from pydantic import ValidationError

from app.deps import Settings


class TestSettings:

    def test_defaults(self):
        settings = Settings(OPENAI_API_KEY="test-api-key")
        assert settings.MAX_TOOL_ROUNDS == 5
        assert settings.cors_origins == ["http://localhost:3000"]

    @pytest.mark.parametrize("rounds", [0, -1])
    def test_tool_round_budget_must_be_positive(self, rounds):
        with pytest.raises(ValidationError):
            Settings(OPENAI_API_KEY="test-api-key", MAX_TOOL_ROUNDS=rounds)

    def test_tool_round_budget_from_environment(self, monkeypatch):
        monkeypatch.setenv("MAX_TOOL_ROUNDS", "0")
        with pytest.raises(ValidationError):
            Settings()

    def test_cors_origins_split(self):
        settings = Settings(BACKEND_CORS_ORIGINS="https://a.test, https://b.test,")
        assert settings.cors_origins == ["https://a.test", "https://b.test"]
