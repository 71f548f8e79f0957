"""
FastAPI application entry point with health endpoint and service routing.

This module provides the main FastAPI application instance with CORS
configuration, request correlation, rate limiting, the mapping of order engine
errors to HTTP responses, and startup/shutdown lifecycle handling.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from ruzio.api.v1 import (
    delivery_router,
    notifications_router,
    orders_router,
    restaurant_orders_router,
    settlement_router,
)
from ruzio.core.config import get_settings
from ruzio.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from ruzio.core.rate_limit import limiter
from ruzio.database.connection import (
    check_database_health,
    close_database_connections,
    initialize_database,
)
from ruzio.services.orders.exceptions import OrderServiceError

# Configure logging before application initialization
configure_logging()
logger = get_logger(__name__)

_RESERVED_LOG_KEYS = {"method", "path", "kind", "status_code", "error"}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan context manager for startup and shutdown events.

    Args:
        app: FastAPI application instance

    Yields:
        None during application runtime
    """
    settings = get_settings()

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
    )

    with log_performance(logger, "application_startup"):
        await initialize_database()

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        await close_database_connections()


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Food delivery order lifecycle and settlement API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

# Configure rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Middleware for request logging and correlation ID management.

    Args:
        request: Incoming HTTP request
        call_next: Next middleware or route handler

    Returns:
        HTTP response with X-Request-ID header
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))

    logger.info(
        "Request received",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
    )

    try:
        with log_performance(
            logger,
            "request_processing",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )
        return response
    finally:
        clear_context()


@app.exception_handler(OrderServiceError)
async def order_service_exception_handler(
    request: Request, exc: OrderServiceError
) -> JSONResponse:
    """
    Map order engine errors to their HTTP status and a stable error body.

    Returns:
        JSON response with ``kind`` and ``message``
    """
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Order request refused",
        method=request.method,
        path=request.url.path,
        kind=exc.kind,
        status_code=exc.status_code,
        error=exc.message,
        **{k: v for k, v in exc.context.items() if k not in _RESERVED_LOG_KEYS},
    )

    content = exc.to_dict()
    content["request_id"] = get_request_id()
    return JSONResponse(status_code=exc.status_code, content=content)


_HTTP_ERROR_KINDS = {
    status.HTTP_401_UNAUTHORIZED: "unauthenticated",
    status.HTTP_403_FORBIDDEN: "unauthorized",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """
    Give errors raised by the HTTP layer the same body as domain errors.

    Returns:
        JSON response with ``kind`` and ``message``, keeping any headers
    """
    kind = _HTTP_ERROR_KINDS.get(exc.status_code, "http_error")
    logger.info(
        "HTTP request refused",
        method=request.method,
        path=request.url.path,
        kind=kind,
        status_code=exc.status_code,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "kind": kind,
            "message": str(exc.detail),
            "request_id": get_request_id(),
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Report malformed requests as validation errors.

    Returns:
        JSON response with the validation error details
    """
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=str(exc.errors()),
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "kind": "validation_error",
            "message": "Request validation failed",
            "details": jsonable_errors(exc),
            "request_id": get_request_id(),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions without exposing internal details.
    """
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "kind": "internal_error",
            "message": "An unexpected error occurred",
            "request_id": get_request_id(),
        },
    )


@app.get(
    "/health",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Health check endpoint",
)
async def health_check() -> JSONResponse:
    """
    Report application and database health.

    Returns 503 when the database cannot be reached.
    """
    database_ok = await check_database_health(max_retries=1)
    body = {
        "status": "healthy" if database_ok else "unhealthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "database": "healthy" if database_ok else "unhealthy",
    }
    return JSONResponse(
        status_code=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body,
    )


app.include_router(orders_router, prefix=settings.api_v1_prefix)
app.include_router(restaurant_orders_router, prefix=settings.api_v1_prefix)
app.include_router(delivery_router, prefix=settings.api_v1_prefix)
app.include_router(settlement_router, prefix=settings.api_v1_prefix)
app.include_router(notifications_router, prefix=settings.api_v1_prefix)
