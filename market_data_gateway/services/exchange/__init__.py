"""Exchange adapter capability and factory."""

from .adapter import ExchangeAdapter, PushCallback
from .factory import AdapterFactory, ExchangeAdapterFactory, get_adapter_factory

__all__ = [
    "AdapterFactory",
    "ExchangeAdapter",
    "ExchangeAdapterFactory",
    "PushCallback",
    "get_adapter_factory",
]
