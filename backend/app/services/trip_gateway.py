"""Trip generation gateway: one request/response cycle for /generateTrip.

Stages run in order and any failure goes straight to the error response:
authenticate, subject cross-check, rate limit, validate, build prompt,
generate. Nothing here retries; backend fallback lives in the generation
client.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from app.config import Settings
from app.errors import Forbidden
from app.schemas.trip import GenerationResult
from app.services.identity_verifier import IdentityVerifier, build_identity_verifier, extract_bearer_token
from app.services.llm_client import GenerationClient, build_generation_client
from app.services.prompt_builder import build_itinerary_prompt
from app.services.rate_limiter import RateLimiter, build_rate_limiter
from app.services.request_validator import validate_generation_request

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TripGateway:
    """Owns the collaborators (and their state) for a gateway process."""

    def __init__(
        self,
        verifier: IdentityVerifier,
        rate_limiter: RateLimiter,
        generation_client: GenerationClient,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.verifier = verifier
        self.rate_limiter = rate_limiter
        self.generation_client = generation_client
        self._clock = clock

    async def authenticate(self, authorization: str | None) -> str:
        credential = extract_bearer_token(authorization)
        return await self.verifier.verify(credential)

    async def generate_trip(self, authorization: str | None, payload: Any) -> GenerationResult:
        subject_id = await self.authenticate(authorization)

        # The body's uid is only a claim; the verified subject wins or the request dies.
        claimed = payload.get("uid") if isinstance(payload, dict) else None
        if claimed is not None and claimed != subject_id:
            logger.warning(f"UID mismatch: token subject {subject_id} claimed {claimed!r}")
            raise Forbidden()

        await self.rate_limiter.acquire(subject_id)

        request = validate_generation_request(payload)
        if request.subject_id != subject_id:
            raise Forbidden()

        prompt = build_itinerary_prompt(request)
        itinerary = await self.generation_client.generate(prompt)

        logger.info(f"Generated {request.days}-day itinerary for {subject_id}")
        return GenerationResult.from_request(request, itinerary, created_at=self._clock())

    async def aclose(self):
        for resource in [self.verifier, self.rate_limiter, *self.generation_client.backends]:
            close = getattr(resource, "close", None)
            if close is not None:
                await close()


def build_gateway(settings: Settings) -> TripGateway:
    return TripGateway(
        verifier=build_identity_verifier(settings),
        rate_limiter=build_rate_limiter(settings),
        generation_client=build_generation_client(settings),
    )
