"""Trip document storage. Trips live under ``users/{uid}/trips``.

``FirestoreTripStore`` talks to the Firestore REST API; ``InMemoryTripStore``
keeps the same contract in a dict for local runs and tests. Neither promises
any ordering for ``list``; callers sort.
"""

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol

import httpx

from app.errors import TripNotFound
from app.schemas.trip import Trip

logger = logging.getLogger(__name__)

TRIP_FIELDS = ("budget", "days", "interests", "itinerary", "createdAt", "uid")


class TripStore(Protocol):
    async def add(self, subject_id: str, trip: Trip) -> str:
        ...

    async def get(self, subject_id: str, trip_id: str) -> Trip:
        ...

    async def list(self, subject_id: str, limit: int) -> list[Trip]:
        ...


def trips_path(subject_id: str) -> str:
    return f"users/{subject_id}/trips"


class InMemoryTripStore:
    def __init__(self):
        self._docs: dict[str, dict[str, Trip]] = {}
        self.list_calls = 0

    async def add(self, subject_id: str, trip: Trip) -> str:
        trip_id = uuid.uuid4().hex
        self._docs.setdefault(subject_id, {})[trip_id] = trip.model_copy(update={"id": trip_id})
        return trip_id

    async def get(self, subject_id: str, trip_id: str) -> Trip:
        trip = self._docs.get(subject_id, {}).get(trip_id)
        if trip is None:
            raise TripNotFound()
        return trip

    async def list(self, subject_id: str, limit: int) -> list[Trip]:
        self.list_calls += 1
        return list(self._docs.get(subject_id, {}).values())[:limit]


# Firestore typed values

def encode_value(value: Any) -> dict:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {"timestampValue": value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")}
    return {"stringValue": str(value)}


_FRACTION = re.compile(r"\.(\d{6})\d+")


def parse_timestamp(raw: str) -> datetime:
    # Firestore sends nanoseconds; datetime holds microseconds.
    raw = _FRACTION.sub(r".\1", raw.replace("Z", "+00:00"))
    return datetime.fromisoformat(raw)


def decode_value(value: dict) -> Any:
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return parse_timestamp(value["timestampValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "booleanValue" in value:
        return value["booleanValue"]
    return None


def trip_to_fields(trip: Trip) -> dict:
    data = trip.model_dump(by_alias=True, exclude={"id"})
    return {name: encode_value(data[name]) for name in TRIP_FIELDS}


def trip_from_document(document: dict) -> Trip:
    fields = {name: decode_value(value) for name, value in document.get("fields", {}).items()}
    fields["id"] = document["name"].rsplit("/", 1)[-1]
    return Trip.model_validate(fields)


class FirestoreTripStore:
    """Firestore REST adapter. Requests carry the signed-in user's ID token."""

    def __init__(
        self,
        project_id: str,
        token_provider: Callable[[], Awaitable[str]] | None = None,
        base_url: str = "https://firestore.googleapis.com/v1",
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self._documents_url = f"{base_url.rstrip('/')}/projects/{project_id}/databases/(default)/documents"
        self._token_provider = token_provider
        self._client = client
        self._timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def _headers(self) -> dict:
        if self._token_provider is None:
            return {}
        return {"Authorization": f"Bearer {await self._token_provider()}"}

    async def add(self, subject_id: str, trip: Trip) -> str:
        client = await self._get_client()
        resp = await client.post(
            f"{self._documents_url}/{trips_path(subject_id)}",
            json={"fields": trip_to_fields(trip)},
            headers=await self._headers(),
        )
        resp.raise_for_status()
        trip_id = resp.json()["name"].rsplit("/", 1)[-1]
        logger.info(f"Saved trip {trip_id} for {subject_id}")
        return trip_id

    async def get(self, subject_id: str, trip_id: str) -> Trip:
        client = await self._get_client()
        resp = await client.get(
            f"{self._documents_url}/{trips_path(subject_id)}/{trip_id}",
            headers=await self._headers(),
        )
        if resp.status_code == 404:
            raise TripNotFound()
        resp.raise_for_status()
        return trip_from_document(resp.json())

    async def list(self, subject_id: str, limit: int) -> list[Trip]:
        client = await self._get_client()
        resp = await client.get(
            f"{self._documents_url}/{trips_path(subject_id)}",
            params={"pageSize": limit},
            headers=await self._headers(),
        )
        resp.raise_for_status()
        return [trip_from_document(doc) for doc in resp.json().get("documents", [])]

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None
