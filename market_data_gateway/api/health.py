"""Health check endpoint."""

from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel

from ..config.settings import settings
from ..services.database.connection import DatabaseConnection
from ..services.market_data.gateway import get_gateway

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "unhealthy"]
    service: str
    broadcaster_running: bool = False
    database_connected: bool = False
    client_connections: int = 0
    active_subscriptions: int = 0
    upstream_connections: int = 0
    pending_messages: int = 0


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    The service is healthy while the broadcaster is delivering messages.
    Database connectivity is informational: the pool is reconnected lazily on
    the next ownership lookup.
    """
    gateway = get_gateway()
    broadcaster_running = gateway.broadcaster.is_running

    return HealthResponse(
        status="healthy" if broadcaster_running else "unhealthy",
        service=settings.market_data_gateway_service_name,
        broadcaster_running=broadcaster_running,
        database_connected=DatabaseConnection.is_connected(),
        client_connections=len(gateway.client_connections),
        active_subscriptions=len(gateway.get_active_subscriptions()),
        upstream_connections=gateway.get_exchange_connection_count(),
        pending_messages=gateway.broadcaster.pending,
    )
