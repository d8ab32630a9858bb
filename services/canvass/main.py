import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict

from fastapi import FastAPI
from sqlmodel import text

from services.canvass.database import close_db, get_async_session
from services.canvass.routers import audit, contacts, search
from services.canvass.settings import get_settings
from services.common.http_errors import register_canvass_exception_handlers
from services.common.logging_config import (
    create_request_logging_middleware,
    get_logger,
    log_service_shutdown,
    log_service_startup,
    setup_service_logging,
)

# Set up centralized logging - will be initialized in lifespan
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    # Startup event logic
    settings = get_settings()

    setup_service_logging(
        service_name="canvass",
        log_level=settings.LOG_LEVEL,
        log_format=settings.LOG_FORMAT,
    )

    log_service_startup(
        "canvass",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        debug=settings.DEBUG,
        search_page_size=settings.SEARCH_PAGE_SIZE,
    )
    yield
    # Shutdown event logic
    await close_db()
    log_service_shutdown("canvass")


app = FastAPI(
    title="Canvass Contact Directory Service",
    description="Contact search, edits and change audit for canvassing volunteers",
    version="0.1.0",
    openapi_tags=[
        {"name": "search", "description": "Ranked contact search"},
        {
            "name": "contacts",
            "description": "Contact details and audited edits to contacts, phones, emails and aliases",
        },
        {"name": "audit", "description": "Audit feed and undo"},
    ],
    debug=False,
    lifespan=lifespan,
)

# Add centralized request logging middleware
app.middleware("http")(create_request_logging_middleware())

register_canvass_exception_handlers(app)

# Search is registered first so /contacts/search is not taken for a contact id
app.include_router(search.router)
app.include_router(contacts.router)
app.include_router(audit.router)


@app.get("/")
async def read_root() -> Dict[str, str]:
    """Hello World root endpoint"""
    logger.info("Root endpoint accessed")
    settings = get_settings()
    return {"message": "Hello World", "service": settings.APP_NAME}


@app.get("/health")
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint for load balancers and monitoring.
    Checks database connectivity and basic configuration.
    """
    start_time = time.time()

    # Database health check
    db_status = "ok"
    db_error = None
    db_response_time = None

    try:
        async for session in get_async_session():
            db_start = time.time()
            await session.execute(text("SELECT 1"))
            db_response_time = round((time.time() - db_start) * 1000, 2)
            break  # We only need one session for the health check
    except Exception as e:
        logger.warning("Database health check failed", error=str(e))
        db_status = "error"
        db_error = str(e) if get_settings().DEBUG else "Database unavailable"

    # Configuration check
    settings = get_settings()
    config_issues = []
    if not settings.api_frontend_canvass_key:
        config_issues.append("API_FRONTEND_CANVASS_KEY not configured")
    if settings.FILTER_TOKEN_SECRET == "change-me-filter-token-secret":
        if settings.ENVIRONMENT == "production":
            config_issues.append("FILTER_TOKEN_SECRET uses the default value")

    config_status = "ok" if not config_issues else "error"
    overall_status = "ok" if db_status == "ok" and config_status == "ok" else "error"
    total_duration = round((time.time() - start_time) * 1000, 2)

    return {
        "status": overall_status,
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": {
                "status": db_status,
                "response_time_ms": db_response_time,
                "error": db_error,
            },
            "configuration": {"status": config_status, "issues": config_issues},
        },
        "performance": {"total_check_time_ms": total_duration},
    }


@app.get("/ready")
async def ready_check() -> Dict[str, str]:
    """
    Simple readiness check.
    """
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
