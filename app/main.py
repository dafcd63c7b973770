"""
AI Flashcards Backend - Main FastAPI Application

Entry point for the API server.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.auth.clerk import ClerkTokenVerifier
from app.config import get_settings
from app.core.exceptions import FlashcardsError, RateLimitExceededError
from app.database import create_tables
from app.flashcards.router import cards_router, decks_router
from app.generation.client import GenerativeClient
from app.generation.router import router as generation_router
from app.quota.service import RateLimiter
from app.quota.store import QuotaStore
from app.rate_limit import limiter
from app.scheduler import create_scheduler
from app.subscriptions.router import router as subscriptions_router
from app.transcription.router import router as transcription_router
from app.webhooks.router import router as webhooks_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Builds the app-scoped clients on startup and closes them on shutdown.
    """
    # Startup
    logger.info(f"[Startup] Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"[Startup] Debug mode: {settings.debug}")

    try:
        await create_tables()
        logger.info("[Startup] Database tables created/verified")
    except Exception as e:
        logger.error(f"[Startup] Database initialization failed: {e}")
        # Don't fail startup - tables might already exist

    redis = Redis.from_url(settings.redis_url, decode_responses=True)
    http_client = httpx.AsyncClient()

    app.state.redis = redis
    app.state.rate_limiter = RateLimiter(QuotaStore(redis), fail_open=settings.quota_fail_open)
    app.state.token_verifier = ClerkTokenVerifier(
        jwks_url=settings.clerk_jwks_url,
        secret_key=settings.clerk_secret_key,
        issuer=settings.clerk_issuer,
        http_client=http_client,
    )
    app.state.generative_client = GenerativeClient(
        api_key=settings.ai_api_key,
        base_url=settings.ai_base_url,
        model=settings.ai_model,
    )
    logger.info(f"[Startup] Quota store: {settings.redis_url}, fail_open={settings.quota_fail_open}")
    logger.info(f"[Startup] Generative model: {settings.ai_model}")

    scheduler = create_scheduler()
    scheduler.start()
    logger.info("[Startup] Background scheduler started")

    yield

    # Shutdown
    logger.info("[Shutdown] Application shutting down...")
    scheduler.shutdown(wait=False)
    await app.state.generative_client.close()
    await http_client.aclose()
    await redis.aclose()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    AI Flashcards Backend API - Decks, study tracking and AI card generation.

    ## Features

    * **Decks & Cards** - CRUD, study answers and per-deck statistics
    * **AI Generation** - Cards from text, images or audio, with preview sessions
    * **Transcription** - Audio to text through the same model
    * **Plans** - Hourly and monthly quotas per Stripe subscription plan

    ## Architecture

    Built with FastAPI, SQLAlchemy 2.0 (async), PostgreSQL and Redis.
    Uses a 3-layer architecture: Router → Service → Repository.
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Rate limiter (per-IP, webhooks)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "X-RateLimit-Hourly-Limit",
        "X-RateLimit-Hourly-Remaining",
        "X-RateLimit-Hourly-Reset",
        "X-RateLimit-Monthly-Limit",
        "X-RateLimit-Monthly-Remaining",
        "X-RateLimit-Monthly-Reset",
        "Retry-After",
    ],
)


# ═══════════════════════════════════════════════════════════════════════════
# EXCEPTION HANDLERS
# ═══════════════════════════════════════════════════════════════════════════


def _error_response(request: Request, status_code: int, content: dict, headers: dict | None = None) -> JSONResponse:
    """Render an error body, carrying any quota headers computed for this request."""
    merged = dict(getattr(request.state, "rate_limit_headers", None) or {})
    merged.update(headers or {})
    return JSONResponse(status_code=status_code, content=content, headers=merged)


@app.exception_handler(FlashcardsError)
async def flashcards_exception_handler(request: Request, exc: FlashcardsError):
    """Map domain errors to {"error", "code"} with their HTTP status."""
    content = {"error": exc.message, "code": exc.code}
    headers: dict = {}

    if isinstance(exc, RateLimitExceededError):
        content.update({
            "message": exc.message,
            "retryAfter": exc.retry_after,
            "currentPlan": exc.current_plan,
            "upgradeMessage": exc.upgrade_message,
        })
        headers.update(exc.headers)
        logger.warning(f"[ErrorHandler] Rate limited on {request.url.path}: {exc.message}")
    elif exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"
    elif exc.status_code >= 500:
        logger.error(f"[ErrorHandler] {exc.code} on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"[ErrorHandler] {exc.code} on {request.url.path}: {exc.message}")

    return _error_response(request, exc.status_code, content, headers)


@app.exception_handler(PermissionError)
async def permission_exception_handler(request: Request, exc: PermissionError):
    """Ownership mismatches raised by repositories."""
    logger.warning(f"[ErrorHandler] Forbidden on {request.url.path}: {exc}")
    return _error_response(
        request,
        status.HTTP_403_FORBIDDEN,
        {"error": str(exc) or "Access denied", "code": "FORBIDDEN"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies, forms and query parameters are client errors (400)."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return _error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        {"error": message, "code": "INVALID_INPUT"},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


# ═══════════════════════════════════════════════════════════════════════════
# HEALTH
# ═══════════════════════════════════════════════════════════════════════════


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - API info."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "running",
    }


@app.get(f"{API_PREFIX}/health", tags=["Health"])
async def api_health():
    """API health check with version."""
    return {
        "status": "ok",
        "service": settings.app_name,
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# Include routers
# The AI routes share the /cards prefix, so they go first to win over /cards/{card_id}
app.include_router(generation_router, prefix=API_PREFIX)
app.include_router(decks_router, prefix=API_PREFIX)
app.include_router(cards_router, prefix=API_PREFIX)
app.include_router(transcription_router, prefix=API_PREFIX)
app.include_router(subscriptions_router, prefix=API_PREFIX)
app.include_router(webhooks_router, prefix=API_PREFIX)
