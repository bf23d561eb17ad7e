"""Generation client: ordered model fallback across text-generation backends.

Candidates are tried strictly in configured order, one at a time. The first
well-formed, non-empty response wins; a failing candidate is logged, recorded
and skipped without retry.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

import anthropic
import httpx
from openai import AsyncOpenAI, OpenAIError

from app.config import Settings
from app.errors import ConfigurationError, GenerationUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationParams:
    max_output_tokens: int = 4096
    temperature: float = 0.9
    top_p: float = 0.95
    top_k: int = 40


class BackendError(Exception):
    """A single candidate failed; the client moves on to the next one."""

    def __init__(self, backend: str, message: str):
        super().__init__(f"{backend}: {message}")
        self.backend = backend


class GenerationBackend(Protocol):
    name: str

    async def generate(self, prompt: str, params: GenerationParams) -> str:
        ...


class GeminiBackend:
    """Gemini ``generateContent`` over the REST v1 endpoint."""

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com",
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.name = model
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def generate(self, prompt: str, params: GenerationParams) -> str:
        client = await self._get_client()
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": params.max_output_tokens,
                "temperature": params.temperature,
                "topP": params.top_p,
                "topK": params.top_k,
            },
        }
        try:
            resp = await client.post(
                f"{self._base_url}/v1/models/{self.name}:generateContent",
                headers={"x-goog-api-key": self._api_key},
                json=payload,
            )
        except httpx.HTTPError as e:
            raise BackendError(self.name, f"request failed: {type(e).__name__}: {e}") from e

        if not resp.is_success:
            raise BackendError(self.name, f"API returned {resp.status_code}: {resp.text[:500]}")

        try:
            data = resp.json()
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            raise BackendError(self.name, "response had no extractable text") from e
        return text

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None


class OpenAIBackend:
    def __init__(self, model: str, client: AsyncOpenAI):
        self.name = f"openai:{model}"
        self._model = model
        self._client = client

    async def generate(self, prompt: str, params: GenerationParams) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                max_tokens=params.max_output_tokens,
                temperature=params.temperature,
                top_p=params.top_p,
                messages=[{"role": "user", "content": prompt}],
            )
            return response.choices[0].message.content or ""
        except OpenAIError as e:
            raise BackendError(self.name, str(e)) from e
        except (IndexError, AttributeError) as e:
            raise BackendError(self.name, "response had no extractable text") from e


class AnthropicBackend:
    def __init__(self, model: str, client: anthropic.AsyncAnthropic):
        self.name = f"anthropic:{model}"
        self._model = model
        self._client = client

    async def generate(self, prompt: str, params: GenerationParams) -> str:
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=params.max_output_tokens,
                temperature=params.temperature,
                top_k=params.top_k,
                messages=[{"role": "user", "content": prompt}],
            )
            return "".join(block.text for block in response.content if block.type == "text")
        except anthropic.AnthropicError as e:
            raise BackendError(self.name, str(e)) from e


class GenerationClient:
    """Tries each backend in order and returns the first non-empty text."""

    def __init__(self, backends: list[GenerationBackend], params: GenerationParams | None = None):
        self.backends = list(backends)
        self.params = params or GenerationParams()

    async def generate(self, prompt: str) -> str:
        """Generate text for ``prompt``.

        Raises:
            ConfigurationError if no backend is configured.
            GenerationUnavailable if every backend fails; carries the last error.
        """
        if not self.backends:
            raise ConfigurationError("No generation backend configured")

        errors: list[str] = []
        last_error: Exception | None = None

        for backend in self.backends:
            try:
                text = await backend.generate(prompt, self.params)
            except BackendError as e:
                errors.append(str(e))
                last_error = e
                logger.warning(f"Model {backend.name} failed, trying next: {e}")
                continue

            if not text or not text.strip():
                last_error = BackendError(backend.name, "empty response")
                errors.append(str(last_error))
                logger.warning(f"Model {backend.name} returned no text, trying next")
                continue

            logger.info(f"Successfully used model: {backend.name}")
            return text

        raise GenerationUnavailable(last_error, errors)


def build_backends(settings: Settings) -> list[GenerationBackend]:
    """Turn ``GENERATION_MODELS`` into backend handles, skipping providers without a key."""
    backends: list[GenerationBackend] = []
    openai_client = None
    anthropic_client = None

    for entry in settings.generation_model_list:
        provider, sep, model = entry.partition(":")
        if not sep:
            provider, model = "gemini", entry

        if provider == "gemini":
            if not settings.gemini_api_key:
                logger.warning(f"GEMINI_API_KEY not configured, skipping {model}")
                continue
            backends.append(
                GeminiBackend(
                    model,
                    settings.gemini_api_key,
                    base_url=settings.gemini_base_url,
                    timeout=settings.http_timeout_seconds,
                )
            )
        elif provider == "openai":
            if not settings.openai_api_key:
                logger.warning(f"OPENAI_API_KEY not configured, skipping {model}")
                continue
            if openai_client is None:
                openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
            backends.append(OpenAIBackend(model, openai_client))
        elif provider == "anthropic":
            if not settings.anthropic_api_key:
                logger.warning(f"ANTHROPIC_API_KEY not configured, skipping {model}")
                continue
            if anthropic_client is None:
                anthropic_client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
            backends.append(AnthropicBackend(model, anthropic_client))
        else:
            raise ConfigurationError(f"Unknown generation provider: {provider}")

    return backends


def build_generation_client(settings: Settings) -> GenerationClient:
    params = GenerationParams(
        max_output_tokens=settings.generation_max_output_tokens,
        temperature=settings.generation_temperature,
        top_p=settings.generation_top_p,
        top_k=settings.generation_top_k,
    )
    return GenerationClient(build_backends(settings), params)
