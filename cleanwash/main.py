"""
FastAPI application entry point with health endpoint and service routing.

This module provides the CleanWash API application with CORS configuration,
request logging, rate limiting, domain exception handling and the v1
routers. The lifespan wires the data gateway, the Redis change feed and the
order state machine onto the application state and releases them on
shutdown.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import ConnectionError as RedisConnectionError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from cleanwash.api.rate_limit import limiter
from cleanwash.api.v1 import catalog_router, live_router, orders_router
from cleanwash.core.config import get_settings
from cleanwash.core.exceptions import (
    CleanWashError,
    GatewayError,
    IdentityResolutionError,
    OrderNotFoundError,
    OrderPermissionError,
    OrderValidationError,
)
from cleanwash.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from cleanwash.database.connection import dispose_engine, get_session_factory
from cleanwash.database.gateway import DataGateway
from cleanwash.realtime.change_feed import ChangeFeed
from cleanwash.realtime.redis_client import close_redis_client, get_redis_client
from cleanwash.services.notifications.service import NotificationService
from cleanwash.services.orders.state_machine import (
    OrderStateMachine,
    StateTransitionError,
)

# Configure logging before application initialization
configure_logging()
logger = get_logger(__name__)

# Most specific first
ERROR_STATUS_CODES: list[tuple[type[CleanWashError], int]] = [
    (GatewayError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (StateTransitionError, status.HTTP_409_CONFLICT),
    (OrderValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (IdentityResolutionError, status.HTTP_401_UNAUTHORIZED),
    (OrderPermissionError, status.HTTP_403_FORBIDDEN),
    (OrderNotFoundError, status.HTTP_404_NOT_FOUND),
]


def status_code_for(exc: CleanWashError) -> int:
    for error_type, code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan context manager for startup and shutdown events.

    Without Redis the API still serves requests; live views fall back to
    polling.
    """
    settings = get_settings()

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
    )

    with log_performance(logger, "application_startup"):
        change_feed = None
        try:
            redis_client = await get_redis_client()
            change_feed = ChangeFeed(redis_client, namespace=settings.realtime_namespace)
        except RedisConnectionError as e:
            logger.error("Change feed unavailable, live updates disabled", error=str(e))

        gateway = DataGateway(get_session_factory(), change_feed)
        app.state.gateway = gateway
        app.state.state_machine = OrderStateMachine(gateway, NotificationService(gateway))
        logger.info("Resources initialized successfully", change_feed=change_feed is not None)

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        await app.state.state_machine.wait_for_notifications()
        await close_redis_client()
        await dispose_engine()
        logger.info("Resources cleaned up successfully")


async def request_logging_middleware(request: Request, call_next):
    """
    Middleware for request logging and correlation ID management.

    Sets request ID for correlation, logs request details, and returns the
    ID in the ``X-Request-ID`` response header.
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


async def domain_exception_handler(request: Request, exc: CleanWashError) -> JSONResponse:
    """Translate domain errors into JSON error responses."""
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Request failed",
        method=request.method,
        path=request.url.path,
        status_code=status_code,
        error_type=type(exc).__name__,
        error=exc.message,
        context=exc.context,
    )

    headers = None
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
        headers=headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors with structured error response."""
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=len(exc.errors()),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": jsonable_errors(exc),
            "error": "RequestValidationError",
            "request_id": get_request_id(),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


def create_app() -> FastAPI:
    """Build the CleanWash API application."""
    settings = get_settings()

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Campus laundry ordering backend API",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        debug=settings.debug,
    )

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    application.add_exception_handler(CleanWashError, domain_exception_handler)
    application.add_exception_handler(RequestValidationError, validation_exception_handler)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    application.middleware("http")(request_logging_middleware)

    application.include_router(catalog_router, prefix=settings.api_v1_prefix)
    application.include_router(orders_router, prefix=settings.api_v1_prefix)
    application.include_router(live_router, prefix=settings.api_v1_prefix)

    @application.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health check endpoint",
    )
    async def health_check() -> dict[str, str]:
        """Report that the application is running."""
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        }

    return application


app = create_app()
