import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import Settings, settings

# ─── Logging setup (file + console) ───
_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_LOG_DIR.mkdir(exist_ok=True)

_log_level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)

logging.basicConfig(
    level=_log_level,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        RotatingFileHandler(
            _LOG_DIR / "gateway.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        ),
    ],
)

# Quiet noisy libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

from app.errors import ConfigurationError, GatewayError, GenerationUnavailable, RateLimited
from app.middleware import GatewayHeadersMiddleware
from app.routers import trips
from app.services.trip_gateway import TripGateway, build_gateway

logger = logging.getLogger(__name__)


def create_app(gateway: TripGateway | None = None, config: Settings = settings) -> FastAPI:
    """Build the gateway app. Tests pass their own ``gateway`` to isolate its state."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        models = [backend.name for backend in app.state.gateway.generation_client.backends]
        if models:
            logger.info(f"Trip gateway ready, generation candidates: {', '.join(models)}")
        else:
            logger.error("No generation backend configured, /generateTrip will fail")

        yield

        await app.state.gateway.aclose()
        logger.info("Trip gateway stopped")

    app = FastAPI(
        title="Vacation Planner Gateway",
        description="Budget-aware AI itinerary generation",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.gateway = gateway or build_gateway(config)

    app.add_middleware(GatewayHeadersMiddleware, allowed_origins=config.cors_origin_list)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        if isinstance(exc, GenerationUnavailable):
            logger.error(f"Error generating trip: {exc.message} (last error: {exc.last_error})")
        elif isinstance(exc, ConfigurationError):
            logger.error(f"Configuration error: {exc.message}")

        headers = {}
        if isinstance(exc, RateLimited):
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=exc.headers)

    app.include_router(trips.router, tags=["trips"])

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "vacation-planner-gateway"}

    return app


app = create_app()
