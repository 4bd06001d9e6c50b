"""
RPC Invoker

Issues the Set, Get and Delete calls of the cache service over an open
CacheConnection. Each call is a single unary RPC with a deadline and is
never retried.

A status returned by the server (e.g. NOT_FOUND) is a response and is
handed to the validator. Transport failures and deadlines raise RPCError.
"""

import logging
import time
from typing import Any, Dict

import grpc

from ..errors import RPCError
from ..protocol.messages import CacheMethod, Response, from_response, to_request
from .connection import CacheConnection

logger = logging.getLogger(__name__)

# Status codes that mean the call never got a real answer from the service
TRANSPORT_FAILURES = frozenset({
    grpc.StatusCode.UNAVAILABLE,
    grpc.StatusCode.DEADLINE_EXCEEDED,
    grpc.StatusCode.CANCELLED,
})


class CacheInvoker:
    """
    Typed wrappers around the cache service methods.

    Attributes:
        connection: The connection the calls go through
        timeout: Per-call deadline in seconds
    """

    def __init__(self, connection: CacheConnection, timeout: float = 60.0):
        self.connection = connection
        self.timeout = timeout

    async def invoke(self, method: CacheMethod, payload: Dict[str, Any]) -> Response:
        """
        Invoke one method with a JSON-mapped payload.

        Raises:
            RPCError: transport failure, cancellation or timeout.
        """
        request = to_request(
            self.connection.schema.method(method.value).request_class, payload
        )
        call = self.connection.unary(method)

        start_time = time.perf_counter()
        try:
            reply = await call(request, timeout=self.timeout)
        except grpc.aio.AioRpcError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            if e.code() in TRANSPORT_FAILURES:
                raise RPCError(method.value, e.code(), e.details() or "") from e
            logger.debug(f"{method.value} returned {e.code().name}: {e.details()}")
            return Response(
                method=method,
                status=e.code(),
                error=e.details() or "",
                duration_ms=elapsed_ms,
            )

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        return Response(
            method=method,
            status=grpc.StatusCode.OK,
            message=from_response(reply),
            duration_ms=elapsed_ms,
        )

    async def set(self, key: str, encoded_value: str) -> Response:
        """Store encoded_value (base64 text) under key."""
        return await self.invoke(CacheMethod.SET, {"key": key, "value": encoded_value})

    async def get(self, key: str) -> Response:
        """Fetch key; the message carries 'found' and the base64 'value'."""
        return await self.invoke(CacheMethod.GET, {"key": key})

    async def delete(self, key: str) -> Response:
        """Remove key; the status is the only meaningful part of the response."""
        return await self.invoke(CacheMethod.DELETE, {"key": key})
