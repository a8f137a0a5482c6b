"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .api.health import router as health_router
from .api.middleware import APIKeyAuthMiddleware, RequestLoggingMiddleware
from .api.v1 import market_data_router
from .api.websocket import router as websocket_router
from .config.logging import get_logger, setup_logging
from .config.settings import settings
from .exceptions import DatabaseError
from .services.database.connection import DatabaseConnection
from .services.market_data.gateway import MarketDataGateway, get_gateway, set_gateway
from .utils.tracing import get_trace_id

# Setup logging first
setup_logging()
logger = get_logger(__name__)


def create_app(gateway: Optional[MarketDataGateway] = None, init_database: bool = True) -> FastAPI:
    """Build the application around a gateway instance."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("application_starting", service=settings.market_data_gateway_service_name)

        if gateway is not None:
            set_gateway(gateway)
        market_data_gateway = get_gateway()

        if init_database:
            try:
                await DatabaseConnection.create_pool()
                logger.info("database_pool_initialized")
            except DatabaseError as e:
                # Ownership lookups retry the pool lazily
                logger.warning("database_pool_unavailable", error=e.message)

        await market_data_gateway.start()
        logger.info("application_started", port=settings.market_data_gateway_port)

        yield

        logger.info("application_shutting_down")
        try:
            await market_data_gateway.shutdown()
            if init_database:
                await DatabaseConnection.close_pool()
            logger.info("application_shutdown_complete")
        except Exception as e:
            logger.error(
                "application_shutdown_error",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    app = FastAPI(
        title="Market Data Gateway",
        description="Real-time market data distribution for TradeBitcoin clients",
        version="1.0.0",
        lifespan=lifespan,
    )

    #
    # Middleware (logging first, then auth)
    #
    app.add_middleware(APIKeyAuthMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    #
    # Routers
    #
    app.include_router(health_router)
    app.include_router(market_data_router)
    app.include_router(websocket_router)

    #
    # Exception handlers
    #
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
            error_type=type(exc).__name__,
            error=str(exc),
            trace_id=get_trace_id(),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "market_data_gateway.main:app",
        host="0.0.0.0",
        port=settings.market_data_gateway_port,
        log_config=None,
    )
