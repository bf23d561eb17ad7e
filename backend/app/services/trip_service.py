"""Client-side trip service: generate through the gateway, persist, and list with caching."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

import httpx

from app.config import Settings
from app.errors import TripServiceError, Unauthenticated
from app.schemas.trip import Trip
from app.services.trip_cache import TripCache
from app.services.trip_store import TripStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Session:
    """The signed-in user as the client sees it."""

    uid: str
    id_token: str


class TripService:
    def __init__(
        self,
        store: TripStore,
        cache: TripCache,
        gateway_url: str,
        list_limit: int = 10,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.cache = cache
        self.gateway_url = gateway_url
        self.list_limit = list_limit
        self._client = client
        self._timeout = timeout
        self._now = now

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def generate_trip(self, session: Session | None, budget: float, days: int, interests: str) -> Trip:
        """Ask the gateway for an itinerary, then store it as a new trip."""
        if session is None:
            raise Unauthenticated("User must be authenticated to generate a trip")

        client = await self._get_client()
        resp = await client.post(
            self.gateway_url,
            json={"budget": budget, "days": days, "interests": interests, "uid": session.uid},
            headers={"Authorization": f"Bearer {session.id_token}"},
        )
        if not resp.is_success:
            try:
                body = resp.json()
            except ValueError:
                body = None
            message = (body.get("error") if isinstance(body, dict) else None) or "Failed to generate trip"
            logger.warning(f"Trip generation failed ({resp.status_code}): {message}")
            raise TripServiceError(message, status_code=resp.status_code)

        trip = Trip.model_validate(resp.json())
        return await self.save_trip(session, trip)

    async def save_trip(self, session: Session | None, trip: Trip) -> Trip:
        if session is None:
            raise Unauthenticated("User must be authenticated to save a trip")

        # Stamped at write time, like a server timestamp.
        trip = trip.model_copy(update={"created_at": self._now()})
        trip_id = await self.store.add(session.uid, trip)
        # Confirmed write: the next list read must refetch.
        self.cache.invalidate(session.uid)
        return trip.model_copy(update={"id": trip_id})

    async def get_trip_by_id(self, session: Session | None, trip_id: str) -> Trip:
        if session is None:
            raise Unauthenticated("User must be authenticated")
        return await self.store.get(session.uid, trip_id)

    async def get_user_trips(self, session: Session | None, force_refresh: bool = False) -> list[Trip]:
        """The user's most recent trips, newest first."""
        if session is None:
            return []

        if not force_refresh:
            cached = self.cache.get(session.uid)
            if cached is not None:
                return cached

        trips = await self.store.list(session.uid, self.list_limit)
        trips.sort(key=lambda trip: trip.created_at, reverse=True)
        self.cache.put(session.uid, trips)
        return trips

    def clear_cache(self, session: Session | None = None):
        if session is None:
            self.cache.clear()
        else:
            self.cache.invalidate(session.uid)

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None


def build_trip_service(settings: Settings, store: TripStore) -> TripService:
    return TripService(
        store=store,
        cache=TripCache(ttl_seconds=settings.trip_cache_ttl_seconds),
        gateway_url=settings.gateway_url,
        list_limit=settings.trip_list_limit,
        timeout=settings.http_timeout_seconds,
    )
