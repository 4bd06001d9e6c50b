"""Network module for the cache load test."""

from .connection import CacheConnection, ConnectOptions, connect
from .invoker import CacheInvoker

__all__ = ["CacheConnection", "ConnectOptions", "connect", "CacheInvoker"]
