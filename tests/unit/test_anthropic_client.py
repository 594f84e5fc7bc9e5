"""
Unit tests for the Claude client wrapper.

No request leaves the process: only configuration and message cleanup are
tested here.
"""

import pytest

from divecoach.infrastructure.anthropic.client import (
    AnthropicConfig,
    create_anthropic_client,
)


@pytest.fixture
def client():
    return create_anthropic_client(api_key="sk-test")


class TestAnthropicConfig:

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            AnthropicConfig(api_key="")

    def test_temperature_range(self):
        with pytest.raises(ValueError):
            AnthropicConfig(api_key="sk-test", temperature=1.5)

    def test_max_tokens_positive(self):
        with pytest.raises(ValueError):
            AnthropicConfig(api_key="sk-test", max_tokens=0)


class TestValidateMessages:

    def test_empty_messages_are_dropped(self, client):
        validated = client._validate_messages([
            {"role": "user", "content": ""},
            {"role": "user", "content": "Hello"},
        ])
        assert validated == [{"role": "user", "content": "Hello"}]

    def test_leading_assistant_turn_is_dropped(self, client):
        validated = client._validate_messages([
            {"role": "assistant", "content": "Welcome back"},
            {"role": "user", "content": "EQ was tight"},
        ])
        assert validated == [{"role": "user", "content": "EQ was tight"}]

    def test_consecutive_turns_are_merged(self, client):
        validated = client._validate_messages([
            {"role": "user", "content": "I dove to 40m"},
            {"role": "user", "content": "EQ was tight"},
            {"role": "assistant", "content": "At what depth?"},
        ])

        assert validated == [
            {"role": "user", "content": "I dove to 40m\n\nEQ was tight"},
            {"role": "assistant", "content": "At what depth?"},
        ]

    def test_unknown_role_is_rejected(self, client):
        with pytest.raises(ValueError, match="Invalid message role"):
            client._validate_messages([{"role": "system", "content": "x"}])
