from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Generation backends
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Ordered, most preferred first. "openai:" / "anthropic:" prefixes pick other providers.
    generation_models: str = "gemini-2.5-flash,gemini-1.5-flash,gemini-pro"
    generation_max_output_tokens: int = 4096
    generation_temperature: float = 0.9
    generation_top_p: float = 0.95
    generation_top_k: int = 40

    # Identity
    identity_strategy: str = "lookup"  # lookup | jwt
    firebase_api_key: str = ""
    firebase_project_id: str = ""
    identity_toolkit_url: str = "https://identitytoolkit.googleapis.com/v1"
    securetoken_certs_url: str = (
        "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
    )

    # Rate limiting
    rate_limit_requests: int = 5
    rate_limit_window_seconds: int = 60
    rate_limit_backend: str = "memory"  # memory | redis

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Trip storage / client
    gateway_url: str = "http://localhost:8000/generateTrip"
    firestore_base_url: str = "https://firestore.googleapis.com/v1"
    trip_cache_ttl_seconds: int = 60
    trip_list_limit: int = 10

    http_timeout_seconds: float = 30.0

    # CORS
    cors_origins: str = "http://localhost:4200"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def generation_model_list(self) -> list[str]:
        return [model.strip() for model in self.generation_models.split(",") if model.strip()]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
