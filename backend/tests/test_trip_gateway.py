"""
Gateway tests: the full /generateTrip cycle through the FastAPI app.
"""

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from app.services.llm_client import GenerationClient
from app.services.rate_limiter import InMemoryWindowStore, RateLimiter
from app.services.trip_gateway import TripGateway
from tests.conftest import FIXED_NOW, SUBJECT_ID, VALID_TOKEN, FakeBackend

ALLOWED_ORIGIN = "http://localhost:4200"
AUTH = {"Authorization": f"Bearer {VALID_TOKEN}"}

SECURITY_HEADERS = {
    "x-content-type-options": "nosniff",
    "x-frame-options": "DENY",
    "x-xss-protection": "1; mode=block",
    "strict-transport-security": "max-age=31536000; includeSubDomains",
}


@pytest.fixture
def client(gateway):
    app = create_app(gateway=gateway, config=Settings(cors_origins=ALLOWED_ORIGIN))
    with TestClient(app) as test_client:
        yield test_client


def assert_security_headers(response):
    for name, value in SECURITY_HEADERS.items():
        assert response.headers[name] == value


def test_generate_trip_end_to_end(client, valid_body, call_log):
    response = client.post("/generateTrip", json=valid_body, headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["itinerary"].startswith("# 🌴 Your 5-Day Adventure")
    assert data["budget"] == 1500
    assert data["days"] == 5
    assert data["interests"] == "hiking, local food, museums"
    assert data["uid"] == SUBJECT_ID
    assert data["createdAt"].startswith(FIXED_NOW.isoformat()[:19])
    assert call_log == ["gemini-2.5-flash", "gemini-1.5-flash"]
    assert_security_headers(response)


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"budget": 99}, "budget"),
        ({"budget": "1500"}, "budget"),
        ({"budget": -(10 ** 400)}, "budget"),
        ({"days": 0}, "days"),
        ({"days": 31}, "days"),
        ({"interests": "museums"}, "interests"),
        ({"interests": None}, "interests"),
    ],
)
def test_invalid_fields_return_400_naming_field(client, valid_body, call_log, overrides, field):
    response = client.post("/generateTrip", json={**valid_body, **overrides}, headers=AUTH)

    assert response.status_code == 400
    assert response.json()["field"] == field
    assert field.lower() in response.json()["error"].lower()
    assert call_log == []


def test_huge_integer_budget_is_not_a_server_error(client, valid_body):
    response = client.post("/generateTrip", json={**valid_body, "budget": 10 ** 400}, headers=AUTH)

    assert response.status_code == 200
    assert response.json()["budget"] == 10 ** 400


def test_missing_uid_is_a_400(client, valid_body):
    body = {k: v for k, v in valid_body.items() if k != "uid"}
    response = client.post("/generateTrip", json=body, headers=AUTH)

    assert response.status_code == 400
    assert response.json()["field"] == "uid"


def test_malformed_json_is_a_400(client):
    response = client.post(
        "/generateTrip", content=b"{not json", headers={**AUTH, "Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["field"] == "body"


@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Token abc"}, {"Authorization": "Bearer"}, {"Authorization": "Bearer forged"}],
)
def test_bad_credentials_return_401(client, valid_body, call_log, headers):
    response = client.post("/generateTrip", json=valid_body, headers=headers)

    assert response.status_code == 401
    assert response.json()["error"].startswith("Unauthorized")
    assert call_log == []
    assert_security_headers(response)


def test_uid_mismatch_returns_403_without_backend_call(client, valid_body, call_log, rate_limiter):
    response = client.post("/generateTrip", json={**valid_body, "uid": "someone-else"}, headers=AUTH)

    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden: UID mismatch"}
    assert call_log == []
    # A rejected claim does not spend the caller's quota.
    assert rate_limiter.store.get(SUBJECT_ID) is None


def test_rate_limit_and_window_reset(client, valid_body, clock):
    for _ in range(5):
        assert client.post("/generateTrip", json=valid_body, headers=AUTH).status_code == 200

    limited = client.post("/generateTrip", json=valid_body, headers=AUTH)
    assert limited.status_code == 429
    assert "try again" in limited.json()["error"]
    assert int(limited.headers["retry-after"]) >= 1
    assert_security_headers(limited)

    clock.advance(61)
    response = client.post("/generateTrip", json=valid_body, headers=AUTH)
    assert response.status_code == 200


def test_counter_restarts_at_one_after_window(client, valid_body, clock, rate_limiter):
    for _ in range(6):
        client.post("/generateTrip", json=valid_body, headers=AUTH)
    clock.advance(61)

    client.post("/generateTrip", json=valid_body, headers=AUTH)

    assert rate_limiter.store.get(SUBJECT_ID).count == 1


def test_all_backends_failing_returns_generic_500(verifier, rate_limiter, valid_body):
    failing = [FakeBackend("a", error="API returned 500: boom"), FakeBackend("b", error="API returned 404: gone")]
    gateway = TripGateway(verifier, rate_limiter, GenerationClient(failing))
    app = create_app(gateway=gateway, config=Settings(cors_origins=ALLOWED_ORIGIN))

    with TestClient(app) as client:
        response = client.post("/generateTrip", json=valid_body, headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to generate trip. Please try again."}
    assert "gone" not in response.text
    assert_security_headers(response)


def test_missing_backend_configuration_returns_500(verifier, rate_limiter, valid_body):
    gateway = TripGateway(verifier, rate_limiter, GenerationClient([]))
    app = create_app(gateway=gateway, config=Settings(cors_origins=ALLOWED_ORIGIN))

    with TestClient(app) as client:
        response = client.post("/generateTrip", json=valid_body, headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {"error": "Server configuration error. Please contact support."}


def test_unexpected_error_still_carries_security_headers(verifier, rate_limiter, valid_body):
    class ExplodingClient(GenerationClient):
        async def generate(self, prompt):
            raise RuntimeError("unexpected")

    gateway = TripGateway(verifier, rate_limiter, ExplodingClient([]))
    app = create_app(gateway=gateway, config=Settings(cors_origins=ALLOWED_ORIGIN))

    with TestClient(app) as client:
        response = client.post("/generateTrip", json=valid_body, headers=AUTH)

    assert response.status_code == 500
    assert "unexpected" not in response.text
    assert_security_headers(response)


def test_options_preflight(client):
    response = client.options("/generateTrip", headers={"Origin": ALLOWED_ORIGIN})

    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN
    assert response.headers["access-control-allow-methods"] == "POST,OPTIONS"
    assert_security_headers(response)


def test_disallowed_origin_gets_no_cors_header(client, valid_body):
    response = client.post(
        "/generateTrip", json=valid_body, headers={**AUTH, "Origin": "https://evil.example"}
    )

    assert response.status_code == 200
    assert "access-control-allow-origin" not in response.headers


def test_wrong_method_returns_405(client):
    response = client.get("/generateTrip")

    assert response.status_code == 405
    assert response.json() == {"error": "Method not allowed"}
    assert_security_headers(response)


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


class ClosingStore(InMemoryWindowStore):
    def __init__(self, closed):
        super().__init__()
        self.closed = closed

    async def close(self):
        self.closed.append("rate limit store")


@pytest.mark.asyncio
async def test_aclose_releases_every_collaborator():
    closed = []

    class ClosingVerifier:
        async def verify(self, credential):
            return SUBJECT_ID

        async def close(self):
            closed.append("verifier")

    class ClosingBackend(FakeBackend):
        async def close(self):
            closed.append(self.name)

    gateway = TripGateway(
        ClosingVerifier(),
        RateLimiter(ClosingStore(closed)),
        GenerationClient([ClosingBackend("gemini-2.5-flash", text="# Plan"), FakeBackend("plain", text="# Plan")]),
    )

    await gateway.aclose()

    assert closed == ["verifier", "rate limit store", "gemini-2.5-flash"]
