"""Tests for system prompt assembly."""

from datetime import datetime, timezone

from app.agent.prompts import BASE_SYSTEM_PROMPT, PropertyContext, UserInfo, build_system_prompt


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestBuildSystemPrompt:

    def test_full_context(self):
        prompt = build_system_prompt(
            user=UserInfo(id="user-1", name="Ada", email="ada@example.com"),
            property_context=PropertyContext("123456", "Shop - GA4", "Acme"),
            max_tool_rounds=5,
            now=NOW,
        )

        assert prompt.startswith(BASE_SYSTEM_PROMPT)
        assert "limited to 5 rounds of tool calls" in prompt
        assert "assisting Ada (User ID: user-1, Email: ada@example.com)" in prompt
        assert "- Selected Property: Shop - GA4" in prompt
        assert "- Account: Acme" in prompt
        assert prompt.endswith("Current date: 2024-05-01T12:00:00+00:00")

    def test_fallback_labels(self):
        prompt = build_system_prompt(
            user=UserInfo(id="user-2"),
            property_context=PropertyContext("properties/987"),
            now=NOW,
        )

        assert "assisting a user (User ID: user-2)" in prompt
        assert "- Selected Property: properties/987" in prompt
        assert "- Account: Unknown account" in prompt

    def test_minimal(self):
        prompt = build_system_prompt(max_tool_rounds=0, now=NOW)

        assert "Google Analytics Context" not in prompt
        assert "rounds of tool calls" not in prompt
        assert "Current date:" in prompt
