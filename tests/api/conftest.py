"""
Fixtures for API tests.

The app runs in Snowflake mock mode with a fixed API key. The coach is
swapped for one backed by a fake language model, so no test calls Claude.
"""

import os

os.environ["SNOWFLAKE_MOCK_MODE"] = "true"
os.environ["API_KEYS"] = "test-key"
os.environ["ANTHROPIC_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient

from divecoach.api.dependencies import get_dive_coach, reset_mock_connection
from divecoach.config.settings import get_settings
from divecoach.core.coaching.coach import DiveCoach
from divecoach.main import create_app

API_KEY = "test-key"
USER_ID = "member-1234"


class FakeLanguageModel:
    def __init__(self) -> None:
        self.reply = "Slow down the descent and take the mouthfill at 30m."
        self.calls: list[dict] = []

    async def complete(self, messages, system_prompt):
        self.calls.append({"messages": messages, "system_prompt": system_prompt})
        return self.reply


@pytest.fixture
def fake_llm():
    return FakeLanguageModel()


@pytest.fixture
def app(fake_llm):
    get_settings.cache_clear()
    reset_mock_connection()

    application = create_app()
    application.dependency_overrides[get_dive_coach] = lambda: DiveCoach(fake_llm)

    yield application

    application.dependency_overrides.clear()
    reset_mock_connection()
    get_settings.cache_clear()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def headers():
    return {"X-API-Key": API_KEY, "X-User-Id": USER_ID}


@pytest.fixture
def create_log(client, headers):
    """Post a dive log and return the response body."""
    def _create(**fields):
        body = {
            "date": "2026-10-01",
            "discipline": "CWT",
            "location": "Dahab",
            "target_depth": 40,
            "reached_depth": 38,
            "total_time_seconds": 105,
        }
        body.update(fields)
        response = client.post("/api/v1/dive-logs", json=body, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _create
