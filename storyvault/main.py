import socket
from contextlib import asynccontextmanager
from typing import Final

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .domain.exceptions import DomainError
from .infrastructure.database.database import get_main_engine, init_db
from .logging_config import get_logger, setup_logging
from .logging_utils import log_system_info
from .middleware import log_requests_middleware
from .presentation.api_routes import api_router
from .presentation.error_handlers import (
    DATABASE_ERROR_MESSAGE,
    GENERIC_ERROR_MESSAGE,
    error_response,
    handle_domain_error,
    handle_request_validation_error,
)
from .telemetry import setup_telemetry


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Setup logging first
    setup_logging()
    logger = get_logger(__name__)

    # Initialize database schema once at startup
    init_db(get_main_engine())
    logger.info("Database initialized successfully")

    hostname = socket.gethostname()
    try:
        ip_addr = socket.gethostbyname(hostname)
    except OSError:
        ip_addr = "unknown"
    log_system_info(hostname, ip_addr, settings.debug)

    yield

    logger.info("Application shutdown completed")


app: Final = FastAPI(
    title=settings.app_name,
    version=settings.version,
    debug=settings.debug,
    lifespan=lifespan,
    description="""
**StoryVault** - anonymous message board without accounts.

## How it works

- Anyone can publish a post with a display name and an email address
- The email address is never shown; it receives two private links
- The **edit link** works for 12 hours after publishing
- The **delete link** works for 14 days after publishing
- Each author can publish one post every 3 minutes

## Privacy

Listings show display names and messages only. Emails, IP addresses and
management tokens are never returned by the API.
    """.strip(),
    openapi_tags=[
        {
            "name": "posts",
            "description": "Publish, list, edit and delete posts",
        },
    ],
)

# Setup OpenTelemetry tracing
setup_telemetry(app)

app.middleware("http")(log_requests_middleware)


# Add global exception handlers
@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Global handler for domain-specific errors."""
    logger = get_logger(__name__)
    logger.warning(
        "Domain error occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
    )
    return handle_domain_error(exc, request)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Global handler for Pydantic validation errors."""
    logger = get_logger(__name__)
    # Field names only; submitted values may hold emails
    logger.warning(
        "Request validation error occurred",
        fields=[".".join(str(loc) for loc in err["loc"]) for err in exc.errors()],
        path=request.url.path,
        method=request.method,
    )
    return handle_request_validation_error(exc, request)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    """Global handler for database errors."""
    logger = get_logger(__name__)
    logger.error(
        "Database error occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return error_response(500, DATABASE_ERROR_MESSAGE)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Global handler for unexpected errors."""
    logger = get_logger(__name__)
    logger.error(
        "Unexpected error occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return error_response(500, GENERIC_ERROR_MESSAGE)


# Include routers
app.include_router(api_router)


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    uvicorn.run(
        "storyvault.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
