"""
Error Types

Every error here is scoped to the single iteration that raised it.
Failed checks are not exceptions; see workload.checks.
"""

from typing import Optional

import grpc


class LoadTestError(Exception):
    """Base class for harness errors."""


class CacheConnectionError(LoadTestError, ConnectionError):
    """Raised when a connection to the cache service cannot be opened."""

    def __init__(self, address: str, reason: str):
        super().__init__(f"could not connect to {address}: {reason}")
        self.address = address
        self.reason = reason


class RPCError(LoadTestError):
    """Raised when an RPC fails in transport or times out."""

    def __init__(
            self,
            method: str,
            code: Optional[grpc.StatusCode] = None,
            details: str = "",
    ):
        name = code.name if code is not None else "UNKNOWN"
        super().__init__(f"{method} failed with {name}: {details}")
        self.method = method
        self.code = code
        self.details = details


class DecodeError(LoadTestError, ValueError):
    """Raised when a cache value does not decode back to a key."""


class SchemaError(LoadTestError):
    """Raised when the service schema cannot be resolved from the server."""
