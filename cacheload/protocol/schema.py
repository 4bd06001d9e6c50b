"""
Cache Service Schema

Resolves the message types of the cache.CacheService gRPC service.

Two sources are supported:
- the bundled definition below, built into a private descriptor pool
- the server itself, through the gRPC reflection service

Either way the result is a CacheSchema mapping each method name to its
request and response message classes.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Type

import grpc
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import Message
from grpc_reflection.v1alpha import reflection_pb2, reflection_pb2_grpc

from ..errors import SchemaError

logger = logging.getLogger(__name__)

PROTO_FILE = "cache.proto"
PROTO_PACKAGE = "cache"
SERVICE_NAME = "cache.CacheService"

_F = descriptor_pb2.FieldDescriptorProto

# message name -> [(field name, number, type)]
_MESSAGES = {
    "SetRequest": [("key", 1, _F.TYPE_STRING), ("value", 2, _F.TYPE_BYTES)],
    "SetResponse": [("success", 1, _F.TYPE_BOOL), ("message", 2, _F.TYPE_STRING)],
    "GetRequest": [("key", 1, _F.TYPE_STRING)],
    "GetResponse": [
        ("found", 1, _F.TYPE_BOOL),
        ("value", 2, _F.TYPE_BYTES),
        ("message", 3, _F.TYPE_STRING),
    ],
    "DeleteRequest": [("key", 1, _F.TYPE_STRING)],
    "DeleteResponse": [("success", 1, _F.TYPE_BOOL), ("message", 2, _F.TYPE_STRING)],
}

# method name -> (request message, response message)
_METHODS = {
    "Set": ("SetRequest", "SetResponse"),
    "Get": ("GetRequest", "GetResponse"),
    "Delete": ("DeleteRequest", "DeleteResponse"),
}


@dataclass(frozen=True)
class MethodSchema:
    """Message classes of one unary method."""
    name: str
    path: str
    request_class: Type[Message]
    response_class: Type[Message]


@dataclass(frozen=True)
class CacheSchema:
    """Message classes of the cache service, keyed by method name."""
    service: str
    methods: Dict[str, MethodSchema]

    def method(self, name: str) -> MethodSchema:
        try:
            return self.methods[name]
        except KeyError:
            raise KeyError(f"{self.service} has no method {name!r}") from None


def build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """Build the FileDescriptorProto of the bundled cache.proto."""
    file_proto = descriptor_pb2.FileDescriptorProto(
        name=PROTO_FILE,
        package=PROTO_PACKAGE,
        syntax="proto3",
    )

    for message_name, fields in _MESSAGES.items():
        message_proto = file_proto.message_type.add(name=message_name)
        for field_name, number, field_type in fields:
            message_proto.field.add(
                name=field_name,
                number=number,
                type=field_type,
                label=_F.LABEL_OPTIONAL,
                json_name=field_name,
            )

    service_proto = file_proto.service.add(name=SERVICE_NAME.rsplit(".", 1)[1])
    for method_name, (request_name, response_name) in _METHODS.items():
        service_proto.method.add(
            name=method_name,
            input_type=f".{PROTO_PACKAGE}.{request_name}",
            output_type=f".{PROTO_PACKAGE}.{response_name}",
        )

    return file_proto


def schema_from_pool(
        pool: descriptor_pool.DescriptorPool,
        service_name: str = SERVICE_NAME,
) -> CacheSchema:
    """
    Build a CacheSchema from the service descriptor found in a pool.

    Raises:
        KeyError: if the pool does not know the service, or the service
                  lacks one of the Set/Get/Delete methods.
    """
    service = pool.FindServiceByName(service_name)
    methods = {}
    for name in _METHODS:
        method = service.methods_by_name.get(name)
        if method is None:
            raise KeyError(f"{service_name} has no method {name!r}")
        methods[name] = MethodSchema(
            name=name,
            path=f"/{service_name}/{name}",
            request_class=message_factory.GetMessageClass(method.input_type),
            response_class=message_factory.GetMessageClass(method.output_type),
        )
    return CacheSchema(service=service_name, methods=methods)


_bundled_pool: Optional[descriptor_pool.DescriptorPool] = None


def bundled_pool() -> descriptor_pool.DescriptorPool:
    """Return the private descriptor pool holding the bundled cache.proto."""
    global _bundled_pool
    if _bundled_pool is None:
        pool = descriptor_pool.DescriptorPool()
        pool.Add(build_file_descriptor())
        _bundled_pool = pool
    return _bundled_pool


def bundled_schema(service_name: str = SERVICE_NAME) -> CacheSchema:
    """Schema built from the definition shipped with the harness."""
    return schema_from_pool(bundled_pool(), service_name)


async def _fetch_files(
        stub: reflection_pb2_grpc.ServerReflectionStub,
        request: reflection_pb2.ServerReflectionRequest,
        timeout: float,
) -> List[descriptor_pb2.FileDescriptorProto]:
    """
    Send one reflection request and collect the file descriptors it returns.

    Raises:
        KeyError: the server does not know the symbol or file.
        SchemaError: the server closed the stream without an answer,
                     or answered with an error other than NOT_FOUND.
        grpc.RpcError: the reflection call failed or ran out of time.
    """
    call = stub.ServerReflectionInfo(iter([request]), timeout=timeout)
    files = []
    answered = False

    async for response in call:
        answered = True
        if response.HasField("error_response"):
            error = response.error_response
            if error.error_code == grpc.StatusCode.NOT_FOUND.value[0]:
                raise KeyError(error.error_message or "not found")
            raise SchemaError(f"reflection error {error.error_code}: {error.error_message}")
        for serialized in response.file_descriptor_response.file_descriptor_proto:
            files.append(descriptor_pb2.FileDescriptorProto.FromString(serialized))

    if not answered:
        raise SchemaError("reflection stream closed without a response")
    return files


async def reflect_schema(
        channel: grpc.aio.Channel,
        service_name: str = SERVICE_NAME,
        timeout: float = 10.0,
) -> CacheSchema:
    """
    Resolve the service schema through the server's reflection service.

    The lookup runs on the caller's channel. Every reflection call gets
    the remaining part of timeout as its deadline.

    Raises:
        KeyError: the server does not expose the service.
        SchemaError: the reflection answer was empty or unusable.
        grpc.RpcError: a reflection call failed or exceeded the deadline.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    stub = reflection_pb2_grpc.ServerReflectionStub(channel)

    def remaining() -> float:
        left = deadline - loop.time()
        if left <= 0:
            raise SchemaError(f"reflection did not finish within {timeout}s")
        return left

    files: Dict[str, descriptor_pb2.FileDescriptorProto] = {}
    request = reflection_pb2.ServerReflectionRequest(file_containing_symbol=service_name)
    for file_proto in await _fetch_files(stub, request, remaining()):
        files[file_proto.name] = file_proto

    # Dependencies the server did not send along
    missing = [dep for f in list(files.values()) for dep in f.dependency if dep not in files]
    while missing:
        name = missing.pop()
        if name in files:
            continue
        request = reflection_pb2.ServerReflectionRequest(file_by_filename=name)
        for file_proto in await _fetch_files(stub, request, remaining()):
            if file_proto.name not in files:
                files[file_proto.name] = file_proto
                missing.extend(d for d in file_proto.dependency if d not in files)

    pool = descriptor_pool.DescriptorPool()
    added = set()

    def add(name: str) -> None:
        if name in added:
            return
        added.add(name)
        file_proto = files.get(name)
        if file_proto is None:
            raise SchemaError(f"reflection did not return {name}")
        for dep in file_proto.dependency:
            add(dep)
        pool.Add(file_proto)

    try:
        for name in files:
            add(name)
    except (TypeError, ValueError) as e:
        raise SchemaError(f"inconsistent descriptors from reflection: {e}") from e

    logger.debug(f"Resolved {service_name} via reflection")
    return schema_from_pool(pool, service_name)
