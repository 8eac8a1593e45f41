import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Import all models so every table is registered on Base before create_all
from . import (
    models,  # noqa: F401
    models_invoice,  # noqa: F401
)
from .database import Base, engine
from .domain.billing.router import router as billing_router
from .domain.queue.router import router as queue_router
from .domain.shops.router import router as shops_router
from .rate_limiter import get_redis_client
from .routes.analytics import router as analytics_router
from .routes.notifications import router as notifications_router
from .routes.webhooks import router as webhooks_router
from .security_headers import SecurityHeadersMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 WaitWise API starting")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("✅ Tables ready")
    except Exception as e:
        # Concurrent workers race on CREATE TABLE; the loser sees "already exists"
        if "already exists" in str(e):
            logger.info("ℹ️ Tables were created by another worker")
        else:
            logger.error(f"❌ Could not create tables: {e}")

    try:
        get_redis_client()
    except Exception as e:
        logger.warning(f"⚠️ Redis unavailable, rate limited endpoints will answer 503: {e}")

    yield
    logger.info("👋 WaitWise API stopped")


app = FastAPI(title="WaitWise API", version="1.0.0", lifespan=lifespan)


def _format_validation_errors(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        messages.append(f"{field}: {message}" if field else message)
    return "; ".join(messages) or "Invalid request"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Validation failures are client errors: 400 with the house error envelope"""
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"error": _format_validation_errors(exc)})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc) or "Internal Server Error"})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(
        SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"]
    )
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")

# CORS Configuration (answers OPTIONS preflight for the dashboard and booking pages)
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "https://waitwise.com.au,https://www.waitwise.com.au,http://localhost:3000",
).split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
)

# Routes
app.include_router(shops_router)
app.include_router(queue_router)
app.include_router(notifications_router)
app.include_router(analytics_router)
app.include_router(billing_router)
app.include_router(webhooks_router)


@app.get("/")
def root():
    return {"message": "WaitWise API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
