"""
RPC Message Definitions

Request payloads and responses are plain dicts in the protobuf JSON
mapping, keyed by proto field name. A bytes field therefore travels as
base64 text, which is what lets an encoded cache value reach the
service unmodified.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Type

import grpc
from google.protobuf import json_format
from google.protobuf.message import Message


class CacheMethod(Enum):
    """The cache service methods exercised by the workflow."""
    SET = "Set"
    GET = "Get"
    DELETE = "Delete"


@dataclass
class Response:
    """
    Result of one RPC.

    Attributes:
        method: The method that was invoked
        status: gRPC status code returned by the server
        message: Decoded response body, or None for a non-OK status
        error: Status details for a non-OK status
        duration_ms: Wall time of the call in milliseconds
    """
    method: CacheMethod
    status: grpc.StatusCode
    message: Optional[Dict[str, Any]] = None
    error: str = ""
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == grpc.StatusCode.OK


def to_request(request_class: Type[Message], payload: Dict[str, Any]) -> Message:
    """
    Build a request message from a JSON-mapped payload.

    Raises:
        json_format.ParseError: the payload does not fit the message.
    """
    return json_format.ParseDict(payload, request_class())


def from_response(message: Message) -> Dict[str, Any]:
    """Convert a response message to its JSON-mapped dict."""
    return json_format.MessageToDict(message, preserving_proto_field_name=True)
