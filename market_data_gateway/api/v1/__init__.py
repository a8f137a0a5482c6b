"""API v1 endpoints package."""

from .market_data import router as market_data_router

__all__ = ["market_data_router"]
