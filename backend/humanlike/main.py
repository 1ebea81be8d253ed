from __future__ import annotations

import logging
from contextlib import suppress
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from slowapi.util import get_remote_address
from starlette.types import ASGIApp, Receive, Scope, Send

from humanlike.models import DetectionResult, HumanizeResult, TextRequest, TextValidationError
from humanlike.orchestrator import TextOrchestrator
from humanlike.providers.base import MockResponder, ProviderError
from humanlike.providers.router_provider import DEFAULT_API_URL, RouterProvider
from humanlike.rate_limit import RATE_LIMIT_MESSAGE, RateLimited, RateLimiter
from humanlike.store import ResultStore, SessionResult
from humanlike.task_manager import RequestCancelled, RequestScope, provide_request_scope

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 1_048_576
CORS_ALLOW_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_ALLOW_HEADERS = ["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"]


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
    )

    router_api_key: str | None = Field(default=None, validation_alias="ROUTER_API_KEY")
    router_api_url: str = Field(default=DEFAULT_API_URL, validation_alias="ROUTER_API_URL")
    router_model: str = Field(default="deepseek-r3", validation_alias="ROUTER_MODEL")
    request_timeout_seconds: float = Field(default=120.0, gt=0, validation_alias="REQUEST_TIMEOUT_SECONDS")
    chunk_word_threshold: int = Field(default=2000, validation_alias="CHUNK_WORD_THRESHOLD")
    chunk_max_chars: int = Field(default=2000, validation_alias="CHUNK_MAX_CHARS")
    rate_limit_max_requests: int = Field(default=50, validation_alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_window_seconds: int = Field(default=900, validation_alias="RATE_LIMIT_WINDOW_SECONDS")
    result_history_size: int = Field(default=100, validation_alias="RESULT_HISTORY_SIZE")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @property
    def has_api_key(self) -> bool:
        return not (self.router_api_key is None or self.router_api_key.strip() == "")

    def validate_runtime(self) -> None:
        """Ensure our runtime configuration is coherent before use."""
        for name in (
            "chunk_word_threshold",
            "chunk_max_chars",
            "rate_limit_max_requests",
            "rate_limit_window_seconds",
            "result_history_size",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be a positive integer")


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process; FastAPI reuses this cached instance."""
    settings = Settings()
    settings.validate_runtime()
    return settings


@lru_cache
def get_mock_responder() -> MockResponder:
    return MockResponder()


@lru_cache
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


@lru_cache
def get_result_store() -> ResultStore:
    return ResultStore(capacity=get_settings().result_history_size)


def build_upstream_client(settings: Settings) -> Optional[RouterProvider]:
    """Return the Router client, or ``None`` to run every request through the mock path."""
    if not settings.has_api_key:
        return None
    return RouterProvider(
        api_key=settings.router_api_key,
        api_url=settings.router_api_url,
        model=settings.router_model,
        timeout=settings.request_timeout_seconds,
    )


def get_orchestrator(
    settings: Settings = Depends(get_settings),
    mock: MockResponder = Depends(get_mock_responder),
) -> TextOrchestrator:
    return TextOrchestrator(
        build_upstream_client(settings),
        mock,
        chunk_word_threshold=settings.chunk_word_threshold,
        chunk_max_chars=settings.chunk_max_chars,
        timeout=settings.request_timeout_seconds,
    )


async def enforce_rate_limit(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)) -> None:
    limiter.check(get_remote_address(request))


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def error_envelope(
    status_code: int, code: str, message: str, *, headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "error": {"code": code, "message": message}},
        headers=headers,
    )


class BodySizeLimitMiddleware:
    """Reject requests whose declared body exceeds the configured size."""

    def __init__(self, app: ASGIApp, *, max_body_size: int) -> None:
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            for name, value in scope.get("headers", []):
                if name != b"content-length":
                    continue
                with suppress(ValueError):
                    if int(value) > self.max_body_size:
                        response = error_envelope(400, "VALIDATION_ERROR", "Request body too large")
                        await response(scope, receive, send)
                        return
        await self.app(scope, receive, send)


class PreflightMiddleware:
    """Answer every OPTIONS request with an empty 200."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            response = Response(
                status_code=200,
                headers={
                    "Access-Control-Allow-Origin": "*",
                    "Access-Control-Allow-Methods": ", ".join(CORS_ALLOW_METHODS),
                    "Access-Control-Allow-Headers": ", ".join(CORS_ALLOW_HEADERS),
                },
            )
            await response(scope, receive, send)
            return
        await self.app(scope, receive, send)


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "ok"
    timestamp: datetime
    has_api_key: bool = Field(..., alias="hasApiKey")
    dev_mode: bool = Field(..., alias="devMode")


configure_logging(get_settings().log_level)

app = FastAPI(title="Humanlike API")
app.add_middleware(PreflightMiddleware)
app.add_middleware(BodySizeLimitMiddleware, max_body_size=MAX_BODY_BYTES)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected invalid request body: %s", exc.errors())
    return error_envelope(400, "VALIDATION_ERROR", "Invalid input provided")


@app.exception_handler(TextValidationError)
async def text_validation_handler(_: Request, exc: TextValidationError) -> JSONResponse:
    return error_envelope(400, "VALIDATION_ERROR", str(exc))


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    logger.error("Upstream failure on %s: %s", request.url.path, exc)
    return error_envelope(500, "SERVER_ERROR", str(exc) or "Upstream provider error")


@app.exception_handler(RateLimited)
async def rate_limited_handler(_: Request, exc: RateLimited) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"error": RATE_LIMIT_MESSAGE},
        headers={"Retry-After": str(exc.retry_after)},
    )


@app.exception_handler(RequestCancelled)
async def request_cancelled_handler(_: Request, exc: RequestCancelled) -> JSONResponse:
    return error_envelope(499, "CLIENT_CLOSED_REQUEST", str(exc))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    # Runs in ServerErrorMiddleware, outside CORSMiddleware, so CORS headers are set here.
    return error_envelope(
        500,
        "SERVER_ERROR",
        "Internal server error",
        headers={"Access-Control-Allow-Origin": "*"},
    )


api = APIRouter(prefix="/api", dependencies=[Depends(enforce_rate_limit)])


@api.post("/check", response_model=DetectionResult)
async def check(
    payload: TextRequest,
    orchestrator: TextOrchestrator = Depends(get_orchestrator),
    store: ResultStore = Depends(get_result_store),
    scope: RequestScope = Depends(provide_request_scope),
) -> DetectionResult:
    result = await scope.run(orchestrator.detect(payload.text))
    store.save("detector", payload.text, result.model_dump(mode="json"))
    return result


@api.post("/humanize", response_model=HumanizeResult, response_model_exclude_none=True)
async def humanize(
    payload: TextRequest,
    orchestrator: TextOrchestrator = Depends(get_orchestrator),
    store: ResultStore = Depends(get_result_store),
    scope: RequestScope = Depends(provide_request_scope),
) -> HumanizeResult:
    result = await scope.run(orchestrator.humanize(payload.text))
    store.save("humanizer", payload.text, result.model_dump(mode="json", by_alias=True, exclude_none=True))
    return result


@api.get("/health", response_model=HealthResponse)
async def health(settings: Settings = Depends(get_settings)) -> HealthResponse:
    return HealthResponse(
        timestamp=datetime.now(timezone.utc),
        has_api_key=settings.has_api_key,
        dev_mode=not settings.has_api_key,
    )


@api.get("/results", response_model=List[SessionResult])
async def recent_results(
    limit: int = Query(default=10, ge=1, le=100),
    store: ResultStore = Depends(get_result_store),
) -> List[SessionResult]:
    return store.recent(limit)


@api.get("/results/{result_id}", response_model=SessionResult)
async def result_by_id(result_id: str, store: ResultStore = Depends(get_result_store)) -> Any:
    result = store.get(result_id)
    if result is None:
        return error_envelope(404, "NOT_FOUND", f"No result with id {result_id}")
    return result


app.include_router(api)


__all__ = [
    "app",
    "get_mock_responder",
    "get_orchestrator",
    "get_rate_limiter",
    "get_result_store",
    "get_settings",
]
