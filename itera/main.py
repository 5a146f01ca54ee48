# Application factory, lifecycle and exception handlers for the Itera proxy.

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from contextlib import asynccontextmanager
from typing import Optional
import httpx
import os
import structlog
import uuid

# Local imports
from itera.core.config import Settings, settings as default_settings
from itera.core.errors import ProxyError, RateLimited
from itera.api.routes import router as api_router, rate_limit_headers
from itera.logging import configure_logging
from itera.middleware.logging import LoggingMiddleware
from itera.models.dto import ErrorResponse, HealthResponse
from itera.services.mapbox_client import MapboxClient, build_http_client
from itera.services.proxy_service import ProxyService
from itera.services.rate_limiter import FixedWindowRateLimiter, RateLimiter, RedisRateLimiter
from itera.services.suggestion_cache import SuggestionCache

logger = structlog.get_logger(__name__)

# Resolve static and templates directories relative to this file
static_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "static"))
templates_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "templates"))
templates = Jinja2Templates(directory=templates_dir)


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.ENABLE_REDIS and settings.REDIS_URL:
        logger.info("rate_limiter_backend", backend="redis")
        return RedisRateLimiter.from_url(
            settings.REDIS_URL,
            limit=settings.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        )
    if settings.ENABLE_REDIS:
        logger.warning("redis_url_missing", detail="ENABLE_REDIS is set without REDIS_URL; using memory")
    return FixedWindowRateLimiter(
        limit=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )


def check_configuration(settings: Settings) -> None:
    """Logs missing configuration without blocking startup."""
    if not settings.MAPBOX_API_KEY:
        logger.warning("mapbox_api_key_missing", detail="Upstream calls will be rejected until MAPBOX_API_KEY is set.")
    if not settings.MAPBOX_PUBLIC_TOKEN:
        logger.error("mapbox_public_token_missing", detail="The map page cannot render without MAPBOX_PUBLIC_TOKEN.")


def create_app(
    settings: Optional[Settings] = None,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
    cache: Optional[SuggestionCache] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    settings = settings or default_settings

    # --- Application Lifecycle Management ---
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        logger.info("application_startup", version=settings.VERSION, port=settings.PORT)
        check_configuration(settings)

        http_client = build_http_client(settings, transport=upstream_transport)
        limiter = rate_limiter or build_rate_limiter(settings)
        app.state.proxy_service = ProxyService(
            mapbox=MapboxClient(http_client, settings),
            cache=cache or SuggestionCache(
                ttl_seconds=settings.SUGGESTION_CACHE_TTL,
                max_entries=settings.SUGGESTION_CACHE_MAX_ENTRIES,
            ),
            rate_limiter=limiter,
            settings=settings,
        )

        yield

        logger.info("application_shutdown")
        await http_client.aclose()
        if isinstance(limiter, RedisRateLimiter):
            await limiter.close()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description=settings.BRIEF_DESCRIPTION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # --- Middleware ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["RateLimit-Limit", "RateLimit-Remaining", "RateLimit-Reset", "Retry-After", "X-Request-ID"],
    )
    app.add_middleware(LoggingMiddleware, trust_proxy_headers=settings.TRUST_PROXY_HEADERS)

    # --- Static Files ---
    app.mount("/static", StaticFiles(directory=static_dir), name="static")

    # --- API Routes ---
    app.include_router(api_router, prefix="/api")

    # --- Health Check Endpoint ---
    # Hosting platforms probe the root path to decide whether the service is alive.
    @app.get("/", response_model=HealthResponse, status_code=status.HTTP_200_OK)
    async def health_check():
        return HealthResponse(status="ok", message=settings.HEALTH_MESSAGE)

    # --- Map Page ---
    @app.get("/map", response_class=HTMLResponse)
    async def map_page(request: Request):
        context = {
            "request": request,
            "mapbox_token": settings.MAPBOX_PUBLIC_TOKEN or "",
            "api_base_url": settings.API_BASE_URL,
            "debounce_ms": settings.DEBOUNCE_MS,
            "default_center": settings.DEFAULT_PROXIMITY,
            "settings": settings,
        }
        return templates.TemplateResponse(request, "index.html", context)

    # --- Exception Handlers ---
    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError):
        body = ErrorResponse(error=exc.code, detail=exc.message)
        headers = None
        if isinstance(exc, RateLimited):
            body.retry_after_seconds = exc.retry_after
            headers = rate_limit_headers(exc.limit, 0, exc.retry_after)
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": body.model_dump()},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("request_validation_failed", errors=len(exc.errors()))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": ErrorResponse(
                    error="INVALID_INPUT",
                    detail="The request body is not valid JSON or has fields of the wrong type.",
                ).model_dump()
            },
        )

    # --- Global Exception Handler (for unhandled errors) ---
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        error_id = str(uuid.uuid4())
        logger.error("unhandled_exception", error_id=error_id, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": ErrorResponse(
                    error="INTERNAL_SERVER_ERROR",
                    detail="An unexpected error occurred. Please report this error ID.",
                    error_id=error_id,
                ).model_dump()
            },
        )

    return app


app = create_app()


def run():
    import uvicorn

    uvicorn.run("itera.main:app", host=default_settings.HOST, port=default_settings.PORT)


if __name__ == "__main__":
    run()
