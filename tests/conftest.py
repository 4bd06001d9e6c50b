"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests,
including an in-process gRPC cache service to run load tests against.
"""

import asyncio
import socket
import pytest
import pytest_asyncio
from contextlib import closing
from typing import AsyncGenerator, Dict, List, Tuple

import grpc
from grpc_reflection.v1alpha import reflection, reflection_pb2

from cacheload.config.settings import Settings
from cacheload.protocol.schema import SERVICE_NAME, bundled_pool, bundled_schema
from cacheload.workload.policy import DeletionPolicy


def find_free_port() -> int:
    """Find an available port for testing."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('', 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# ============================================================================
# Fake Cache Service
# ============================================================================

class FakeCacheService:
    """
    In-memory implementation of cache.CacheService.

    Records every call so tests can assert which RPCs an iteration made.

    Knobs:
        delay: Seconds every call sleeps before answering
        drop_sets: Acknowledge Set without storing anything
        corrupt_values: Answer Get with a value that is not the stored one
    """

    def __init__(self):
        schema = bundled_schema()
        self._set_response = schema.method("Set").response_class
        self._get_response = schema.method("Get").response_class
        self._delete_response = schema.method("Delete").response_class

        self.data: Dict[str, bytes] = {}
        self.calls: List[Tuple[str, str]] = []
        self.delay = 0.0
        self.drop_sets = False
        self.corrupt_values = False

    def methods_called(self, key: str) -> List[str]:
        return [method for method, k in self.calls if k == key]

    async def _pause(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)

    async def Set(self, request, context):
        self.calls.append(("Set", request.key))
        await self._pause()
        if not request.key:
            await context.abort(grpc.StatusCode.INVALID_ARGUMENT, "key must not be empty")
        if not self.drop_sets:
            self.data[request.key] = request.value
        return self._set_response(success=True, message="OK")

    async def Get(self, request, context):
        self.calls.append(("Get", request.key))
        await self._pause()
        if request.key not in self.data:
            await context.abort(grpc.StatusCode.NOT_FOUND, f"key {request.key!r} not found")
        value = b"\xff\xfe" if self.corrupt_values else self.data[request.key]
        return self._get_response(found=True, message="found", value=value)

    async def Delete(self, request, context):
        self.calls.append(("Delete", request.key))
        await self._pause()
        self.data.pop(request.key, None)
        return self._delete_response(success=True, message="deleted")


def _generic_handler(service: FakeCacheService) -> grpc.GenericRpcHandler:
    handlers = {}
    for name, method in bundled_schema().methods.items():
        handlers[name] = grpc.unary_unary_rpc_method_handler(
            getattr(service, name),
            request_deserializer=method.request_class.FromString,
            response_serializer=method.response_class.SerializeToString,
        )
    return grpc.method_handlers_generic_handler(SERVICE_NAME, handlers)


class SilentReflectionService:
    """
    Reflection endpoint that reads the request but never answers.

    Knobs:
        delay: Seconds to hold the stream open before closing it empty
    """

    def __init__(self):
        self.delay = 0.0
        self.requests = 0

    async def ServerReflectionInfo(self, request_iterator, context):
        async for _ in request_iterator:
            self.requests += 1
        if self.delay:
            await asyncio.sleep(self.delay)


def _silent_reflection_handler(service: SilentReflectionService) -> grpc.GenericRpcHandler:
    handler = grpc.stream_stream_rpc_method_handler(
        service.ServerReflectionInfo,
        request_deserializer=reflection_pb2.ServerReflectionRequest.FromString,
        response_serializer=reflection_pb2.ServerReflectionResponse.SerializeToString,
    )
    return grpc.method_handlers_generic_handler(
        reflection.SERVICE_NAME, {"ServerReflectionInfo": handler}
    )


# ============================================================================
# Server Fixtures
# ============================================================================

@pytest.fixture
def cache_service() -> FakeCacheService:
    """Fresh fake cache service state."""
    return FakeCacheService()


@pytest_asyncio.fixture
async def cache_server(cache_service: FakeCacheService) -> AsyncGenerator[str, None]:
    """
    Start a gRPC server hosting the fake cache service.

    The server also exposes the reflection service, backed by the
    bundled schema. Yields the address to connect to.
    """
    server = grpc.aio.server()
    server.add_generic_rpc_handlers((_generic_handler(cache_service),))
    reflection.enable_server_reflection(
        (SERVICE_NAME, reflection.SERVICE_NAME), server, pool=bundled_pool()
    )
    port = server.add_insecure_port("127.0.0.1:0")
    await server.start()

    yield f"127.0.0.1:{port}"

    await server.stop(None)


@pytest.fixture
def silent_reflection() -> SilentReflectionService:
    """Fresh reflection endpoint that never answers."""
    return SilentReflectionService()


@pytest_asyncio.fixture
async def silent_reflection_server(
        cache_service: FakeCacheService,
        silent_reflection: SilentReflectionService,
) -> AsyncGenerator[str, None]:
    """
    Start a gRPC server hosting the fake cache service behind a
    reflection endpoint that never answers. Yields the address.
    """
    server = grpc.aio.server()
    server.add_generic_rpc_handlers((
        _generic_handler(cache_service),
        _silent_reflection_handler(silent_reflection),
    ))
    port = server.add_insecure_port("127.0.0.1:0")
    await server.start()

    yield f"127.0.0.1:{port}"

    await server.stop(None)


@pytest.fixture
def unreachable_address() -> str:
    """An address nothing listens on."""
    return f"127.0.0.1:{find_free_port()}"


# ============================================================================
# Settings Fixtures
# ============================================================================

def make_settings(address: str, **overrides) -> Settings:
    """Small, fast settings for tests, using the bundled schema."""
    values = dict(
        ADDRESS=address,
        VUS=5,
        DURATION=5.0,
        GRACEFUL_STOP=1.0,
        ITERATIONS=1,
        PLAINTEXT=True,
        REFLECT=False,
        CA_CERT="",
        TIMEOUT=2.0,
        CONNECT_TIMEOUT=2.0,
        DELETE_MODULUS=5,
        DEBUG=False,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings_factory():
    """
    Factory fixture for test settings.

    Usage:
        def test_something(settings_factory):
            settings = settings_factory("127.0.0.1:1234", VUS=2)
    """
    return make_settings


@pytest.fixture
def run_settings(cache_server: str) -> Settings:
    """Settings pointing at the running fake cache server."""
    return make_settings(cache_server)


@pytest.fixture
def policy() -> DeletionPolicy:
    """The default every-fifth-client deletion policy."""
    return DeletionPolicy(modulus=5)


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )

