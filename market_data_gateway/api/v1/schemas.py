"""Pydantic schemas for the v1 observability REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel

from ...models.protocol import ChannelType


class SubscriptionResponse(BaseModel):
    """Subscription representation returned by the API."""

    subscription_id: UUID
    user_id: str
    exchange_account_id: str
    symbol: str
    channels: List[ChannelType]
    connection_id: str
    created_at: datetime


class SubscriptionListResponse(BaseModel):
    """Response for listing subscriptions."""

    subscriptions: List[SubscriptionResponse]
    total: int


class UpstreamConnectionResponse(BaseModel):
    """Upstream exchange connection backing one (exchange account, symbol)."""

    exchange_account_id: str
    symbol: str
    channels: List[ChannelType]
    established_at: datetime
    candlesticks_polling: bool


class UpstreamConnectionListResponse(BaseModel):
    connections: List[UpstreamConnectionResponse]
    total: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
