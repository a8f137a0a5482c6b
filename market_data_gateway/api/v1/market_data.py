"""Observability REST API (v1) for live subscriptions and upstream connections."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from ...models.subscription import Subscription
from ...services.market_data.gateway import get_gateway
from .schemas import (
    ErrorResponse,
    SubscriptionListResponse,
    SubscriptionResponse,
    UpstreamConnectionListResponse,
    UpstreamConnectionResponse,
)

router = APIRouter(
    prefix="/api/v1/market-data",
    tags=["market-data"],
    responses={401: {"model": ErrorResponse, "description": "Missing or invalid API key"}},
)


def _to_response_model(subscription: Subscription) -> SubscriptionResponse:
    """Convert internal Subscription dataclass to API response model."""
    return SubscriptionResponse(
        subscription_id=subscription.subscription_id,
        user_id=subscription.user_id,
        exchange_account_id=subscription.exchange_account_id,
        symbol=subscription.symbol,
        channels=sorted(subscription.channels),
        connection_id=subscription.connection_id,
        created_at=subscription.created_at,
    )


@router.get(
    "/subscriptions",
    response_model=SubscriptionListResponse,
    summary="List live market data subscriptions",
)
async def list_subscriptions(
    exchange_account_id: Optional[str] = Query(default=None),
    symbol: Optional[str] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
) -> SubscriptionListResponse:
    """List subscriptions, optionally filtered by exchange account, symbol or user."""
    subscriptions = get_gateway().get_active_subscriptions()
    if exchange_account_id:
        subscriptions = [s for s in subscriptions if s.exchange_account_id == exchange_account_id]
    if symbol:
        subscriptions = [s for s in subscriptions if s.symbol == symbol]
    if user_id:
        subscriptions = [s for s in subscriptions if s.user_id == user_id]

    return SubscriptionListResponse(
        subscriptions=[_to_response_model(s) for s in subscriptions],
        total=len(subscriptions),
    )


@router.get(
    "/connections",
    response_model=UpstreamConnectionListResponse,
    summary="List live upstream exchange connections",
)
async def list_connections() -> UpstreamConnectionListResponse:
    gateway = get_gateway()
    connections = [UpstreamConnectionResponse(**item) for item in gateway.multiplexer.describe()]
    return UpstreamConnectionListResponse(
        connections=connections,
        total=gateway.get_exchange_connection_count(),
    )
