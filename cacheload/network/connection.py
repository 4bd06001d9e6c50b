"""
Connection Manager

Opens one gRPC channel to the cache service for the duration of a single
iteration. A connection is an async context manager, so the channel is
released when the iteration ends, fails or is cancelled.

Connect never retries: a failure aborts the iteration before any RPC.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import grpc

from ..config.settings import Settings
from ..errors import CacheConnectionError, SchemaError
from ..protocol.messages import CacheMethod
from ..protocol.schema import CacheSchema, bundled_schema, reflect_schema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectOptions:
    """
    Transport options for a connection.

    Attributes:
        plaintext: Use a cleartext channel instead of TLS
        reflect: Resolve the service schema from the server at connect time
        ca_cert: PEM file with root certificates for TLS (empty = system roots)
        timeout: Seconds the whole connect may take, reflection included
        service_name: Fully qualified name of the cache service
    """
    plaintext: bool = True
    reflect: bool = True
    ca_cert: str = ""
    timeout: float = 10.0
    service_name: str = "cache.CacheService"

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConnectOptions":
        return cls(
            plaintext=settings.PLAINTEXT,
            reflect=settings.REFLECT,
            ca_cert=settings.CA_CERT,
            timeout=settings.CONNECT_TIMEOUT,
            service_name=settings.SERVICE_NAME,
        )


class CacheConnection:
    """
    An open channel to the cache service plus the schema used to talk to it.

    Usage:
        async with await connect(address, options) as connection:
            ...
    """

    def __init__(self, address: str, channel: grpc.aio.Channel, schema: CacheSchema):
        self.address = address
        self.schema = schema
        self._channel = channel
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def unary(self, method: CacheMethod) -> grpc.aio.UnaryUnaryMultiCallable:
        """Return a callable for one unary method of the service."""
        method_schema = self.schema.method(method.value)
        return self._channel.unary_unary(
            method_schema.path,
            request_serializer=method_schema.request_class.SerializeToString,
            response_deserializer=method_schema.response_class.FromString,
        )

    async def close(self) -> None:
        """Release the channel. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self._channel.close()

    async def __aenter__(self) -> "CacheConnection":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def _credentials(ca_cert: str) -> grpc.ChannelCredentials:
    root_certificates = None
    if ca_cert:
        with open(ca_cert, "rb") as f:
            root_certificates = f.read()
    return grpc.ssl_channel_credentials(root_certificates=root_certificates)


async def _resolve(channel: grpc.aio.Channel, options: ConnectOptions) -> CacheSchema:
    await channel.channel_ready()
    if options.reflect:
        return await reflect_schema(channel, options.service_name, options.timeout)
    return bundled_schema(options.service_name)


async def connect(address: str, options: Optional[ConnectOptions] = None) -> CacheConnection:
    """
    Open a connection to the cache service.

    Args:
        address: gRPC target, e.g. '127.0.0.1:8080' or 'unix:/tmp/cache.sock'
        options: Transport options (defaults to plaintext with reflection)

    Returns:
        An open CacheConnection

    Raises:
        CacheConnectionError: the channel was not ready with a resolved
                              schema within options.timeout, reflection
                              failed, or the certificate could not be read.
    """
    options = options or ConnectOptions()

    try:
        credentials = None if options.plaintext else _credentials(options.ca_cert)
    except OSError as e:
        raise CacheConnectionError(address, f"cannot read CA certificate: {e}") from e

    if credentials is None:
        channel = grpc.aio.insecure_channel(address)
    else:
        channel = grpc.aio.secure_channel(address, credentials)

    connected = False
    try:
        try:
            schema = await asyncio.wait_for(
                _resolve(channel, options), timeout=options.timeout
            )
        except asyncio.TimeoutError:
            raise CacheConnectionError(
                address, f"not connected after {options.timeout}s"
            ) from None
        except (grpc.RpcError, KeyError, SchemaError) as e:
            raise CacheConnectionError(address, f"cannot resolve schema: {e}") from e

        connected = True
    finally:
        if not connected:
            await channel.close()

    logger.debug(f"Connected to {address}")
    return CacheConnection(address, channel, schema)
