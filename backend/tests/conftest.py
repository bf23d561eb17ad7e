"""Shared fakes for gateway and trip service tests."""

from datetime import datetime, timezone

import pytest

from app.errors import Unauthenticated
from app.services.llm_client import BackendError, GenerationClient
from app.services.rate_limiter import InMemoryWindowStore, RateLimiter
from app.services.trip_gateway import TripGateway

VALID_TOKEN = "valid-token"
SUBJECT_ID = "user-123"
FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeVerifier:
    def __init__(self, tokens: dict[str, str] | None = None):
        self.tokens = tokens if tokens is not None else {VALID_TOKEN: SUBJECT_ID}
        self.calls: list[str] = []

    async def verify(self, credential: str) -> str:
        self.calls.append(credential)
        if credential not in self.tokens:
            raise Unauthenticated("Unauthorized: Invalid authentication token")
        return self.tokens[credential]


class FakeBackend:
    """Returns ``text`` or raises ``error``; appends its name to ``log`` when called."""

    def __init__(self, name: str, text: str | None = None, error: str | None = None, log: list | None = None):
        self.name = name
        self.text = text
        self.error = error
        self.log = log if log is not None else []
        self.prompts: list[str] = []

    async def generate(self, prompt, params):
        self.log.append(self.name)
        self.prompts.append(prompt)
        if self.error is not None:
            raise BackendError(self.name, self.error)
        return self.text


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def call_log():
    return []


@pytest.fixture
def backends(call_log):
    return [
        FakeBackend("gemini-2.5-flash", error="API returned 503: overloaded", log=call_log),
        FakeBackend("gemini-1.5-flash", text="# 🌴 Your 5-Day Adventure\n\n## Day 1: Arrival", log=call_log),
    ]


@pytest.fixture
def rate_limiter(clock):
    return RateLimiter(InMemoryWindowStore(), limit=5, window_seconds=60, clock=clock)


@pytest.fixture
def gateway(verifier, rate_limiter, backends):
    return TripGateway(
        verifier=verifier,
        rate_limiter=rate_limiter,
        generation_client=GenerationClient(backends),
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def valid_body():
    return {"budget": 1500, "days": 5, "interests": "hiking, local food, museums", "uid": SUBJECT_ID}
