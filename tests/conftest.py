"""
Pytest configuration and shared fixtures for TestFlow AI tests.

Nothing here talks to a real browser, Redis or the model API.
"""

import pytest
from fastapi.testclient import TestClient

import session_store
from models import FinishReason, ModelResponse
from redis_client import InMemoryClient
from session_store import TestSessionStore
from utils.rate_limiter import get_rate_limiter


class FakeModel:
    """Scripted stand-in for call_model; records every prompt and temperature."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def __call__(self, prompt, temperature, max_tokens=None):
        self.calls.append({"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens})
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, ModelResponse):
            return response
        return ModelResponse(text=response, finish_reason=FinishReason.STOP)


class SleepRecorder:
    """No-op replacement for asyncio.sleep that remembers requested waits."""

    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def memory_store(monkeypatch):
    """Global session store backed by InMemoryClient."""
    store = TestSessionStore(InMemoryClient())
    monkeypatch.setattr(session_store, "_session_store", store)
    return store


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    get_rate_limiter().reset()
    yield
    get_rate_limiter().reset()


@pytest.fixture
def client(memory_store):
    from main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_model():
    """Factory for FakeModel instances with a scripted response list."""
    return FakeModel
