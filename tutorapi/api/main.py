"""
Math Tutor API - FastAPI application.

Wires the handler routers together with:
- security headers and request audit logging middleware
- TutorException subclasses mapped to JSON error payloads
- 422 request validation errors reported as 400 validation_error
- table creation on startup and pool shutdown on exit

Run with: uvicorn tutorapi.api.main:app --reload
"""
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tutorapi.core.config import get_settings
from tutorapi.core.logging_config import setup_logging, get_logger
from tutorapi.core.exceptions import TutorException, RateLimitExceeded
from tutorapi.core.audit import AuditMiddleware, SecurityHeadersMiddleware
from tutorapi.api.routes import (
    admin_router,
    analytics_router,
    chat_router,
    health_router,
    learning_router,
    referrals_router,
    rewards_router,
    subscription_router,
)


# Initialize logging before anything else
settings = get_settings()
setup_logging(settings.log_level, to_file=settings.app_env != "test")
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the configuration and create missing tables; dispose the pool on exit."""
    # Startup
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")
    logger.info(f"LLM Models: {settings.llm_model_smart} / {settings.llm_model_fallback} / {settings.llm_model_fast}")
    logger.info(f"Rate Limit: {settings.rate_limit_per_minute} req/min")
    logger.info(f"Audit Logging: {settings.enable_audit_logging}")

    from tutorapi.database.init_db import init_tables
    try:
        if init_tables():
            logger.info("Checked/Initialized database tables.")
    except Exception as e:
        logger.error(f"Failed to auto-init tables: {e}")

    yield  # Application runs here

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}")

    from tutorapi.database.connection import get_database
    try:
        get_database().close()
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")


# Create FastAPI application
app = FastAPI(
    title="Math Tutor API",
    description="""
    Backend of a Polish-language math learning platform.

    ## Features

    - **AI Tutor**: Socratic math chat with learning insights
    - **Token Limits**: Plan-based monthly and trial allowances
    - **Referrals**: Staged referral program with fraud-risk scoring
    - **Rewards**: Convertible rewards and a points catalog
    - **Unified Learning**: Adaptive sessions and learner profiles
    - **Admin Panels**: Analytics, referral review, migrations
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ============================================================
# Middleware Configuration (Order matters!)
# ============================================================

app.add_middleware(SecurityHeadersMiddleware)

if settings.enable_audit_logging:
    app.add_middleware(AuditMiddleware)
    logger.info("Audit logging middleware enabled")

if settings.is_development():
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.warning("CORS configured for development (all origins allowed)")


# ============================================================
# Exception Handlers
# ============================================================

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"Retry-After": str(exc.retry_after)}
    )


@app.exception_handler(TutorException)
async def tutor_exception_handler(request: Request, exc: TutorException):
    """Handle all custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are client errors with the same payload shape as ours."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")

    return JSONResponse(
        status_code=400,
        content={
            "error": "validation_error",
            "message": first.get("msg", "Invalid request"),
            "details": f"field={field}" if field else None,
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Handle uncaught exceptions globally.

    Detailed error information is only included in development mode.
    """
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
            "details": str(exc) if settings.is_development() else None,
            "timestamp": datetime.utcnow().isoformat()
        }
    )


# ============================================================
# Routers
# ============================================================

app.include_router(health_router)
app.include_router(chat_router)
app.include_router(subscription_router)
app.include_router(referrals_router)
app.include_router(rewards_router)
app.include_router(learning_router)
app.include_router(analytics_router)
app.include_router(admin_router)


# ============================================================
# Root Endpoint
# ============================================================

@app.get("/", include_in_schema=False)
async def root():
    return {
        "message": "Math Tutor API",
        "version": "1.0.0",
        "documentation": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tutorapi.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development()
    )
