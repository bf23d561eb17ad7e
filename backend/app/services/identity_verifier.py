"""Identity verification: exchanges a bearer credential for a verified subject id.

Two strategies share the ``IdentityVerifier`` protocol:

    IdentityToolkitVerifier   round trip to Google Identity Toolkit (accounts:lookup)
    JwtIdentityVerifier       local signature check of a Firebase ID token

Both fail closed: any problem reaching or parsing the authority is reported
as ``Unauthenticated``, never as a pass.
"""

import logging
import time
from typing import Awaitable, Callable, Protocol

import httpx
from jose import JWTError, jwt

from app.config import Settings
from app.errors import ConfigurationError, Unauthenticated

logger = logging.getLogger(__name__)

MISSING_TOKEN = "Unauthorized: Missing authentication token"
INVALID_TOKEN = "Unauthorized: Invalid authentication token"
VERIFICATION_FAILED = "Unauthorized: Token verification failed"


class IdentityVerifier(Protocol):
    async def verify(self, credential: str) -> str:
        ...


def extract_bearer_token(authorization: str | None) -> str:
    """Pull the credential out of an ``Authorization: Bearer <token>`` header."""
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthenticated(MISSING_TOKEN)
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise Unauthenticated(MISSING_TOKEN)
    return token


class IdentityToolkitVerifier:
    """Verifies ID tokens with the Identity Toolkit ``accounts:lookup`` endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://identitytoolkit.googleapis.com/v1",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def verify(self, credential: str) -> str:
        client = await self._get_client()
        try:
            resp = await client.post(
                f"{self._base_url}/accounts:lookup",
                params={"key": self._api_key},
                json={"idToken": credential},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Identity lookup failed: {type(e).__name__}")
            raise Unauthenticated(VERIFICATION_FAILED) from e

        if not resp.is_success:
            logger.info(f"Identity lookup rejected credential ({resp.status_code})")
            raise Unauthenticated(INVALID_TOKEN)

        try:
            subject_id = resp.json()["users"][0]["localId"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("Identity lookup returned an unexpected payload")
            raise Unauthenticated(VERIFICATION_FAILED) from e

        if not isinstance(subject_id, str) or not subject_id:
            raise Unauthenticated(VERIFICATION_FAILED)
        return subject_id

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None


KeyResolver = Callable[[], Awaitable[dict[str, str]]]


class GoogleCertResolver:
    """Fetches and caches the ``securetoken`` x509 certificates (kid -> PEM)."""

    def __init__(self, url: str, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        self._url = url
        self._timeout = timeout
        self._client = client
        self._certs: dict[str, str] = {}
        self._expires_at = 0.0

    async def __call__(self) -> dict[str, str]:
        if self._certs and time.time() < self._expires_at:
            return self._certs

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        resp = await self._client.get(self._url)
        resp.raise_for_status()
        self._certs = resp.json()
        self._expires_at = time.time() + _max_age(resp.headers.get("cache-control", ""))
        return self._certs

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None


def _max_age(cache_control: str) -> int:
    for part in cache_control.split(","):
        name, _, value = part.strip().partition("=")
        if name == "max-age" and value.isdigit():
            return int(value)
    return 3600


class JwtIdentityVerifier:
    """Verifies Firebase ID tokens locally with python-jose.

    The token's ``kid`` header selects the signing key from ``key_resolver``;
    audience and issuer must match the Firebase project.
    """

    def __init__(
        self,
        key_resolver: KeyResolver,
        audience: str,
        issuer: str,
        algorithms: list[str] | None = None,
    ):
        self._key_resolver = key_resolver
        self._audience = audience
        self._issuer = issuer
        self._algorithms = algorithms or ["RS256"]

    async def verify(self, credential: str) -> str:
        try:
            header = jwt.get_unverified_header(credential)
        except JWTError as e:
            raise Unauthenticated(INVALID_TOKEN) from e

        try:
            keys = await self._key_resolver()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Signing key fetch failed: {type(e).__name__}")
            raise Unauthenticated(VERIFICATION_FAILED) from e

        key = keys.get(header.get("kid", ""))
        if key is None:
            raise Unauthenticated(INVALID_TOKEN)

        try:
            claims = jwt.decode(
                credential,
                key,
                algorithms=self._algorithms,
                audience=self._audience,
                issuer=self._issuer,
            )
        except JWTError as e:
            logger.info(f"ID token rejected: {e}")
            raise Unauthenticated(INVALID_TOKEN) from e

        subject_id = claims.get("sub")
        if not isinstance(subject_id, str) or not subject_id:
            raise Unauthenticated(INVALID_TOKEN)
        return subject_id

    async def close(self):
        close = getattr(self._key_resolver, "close", None)
        if close is not None:
            await close()


def build_identity_verifier(settings: Settings) -> IdentityVerifier:
    """Pick the verification strategy named by ``settings.identity_strategy``."""
    if settings.identity_strategy == "jwt":
        if not settings.firebase_project_id:
            raise ConfigurationError("FIREBASE_PROJECT_ID is required for jwt identity strategy")
        return JwtIdentityVerifier(
            key_resolver=GoogleCertResolver(
                settings.securetoken_certs_url, timeout=settings.http_timeout_seconds
            ),
            audience=settings.firebase_project_id,
            issuer=f"https://securetoken.google.com/{settings.firebase_project_id}",
        )
    if settings.identity_strategy == "lookup":
        if not settings.firebase_api_key:
            logger.warning("FIREBASE_API_KEY not configured, every credential will be rejected")
        return IdentityToolkitVerifier(
            api_key=settings.firebase_api_key,
            base_url=settings.identity_toolkit_url,
            timeout=settings.http_timeout_seconds,
        )
    raise ConfigurationError(f"Unknown identity strategy: {settings.identity_strategy}")
