"""
Key/Value Generator

Every (client_id, iteration_id) pair owns exactly one key, so concurrent
simulated clients never touch each other's data. The value stored under
a key is the base64 text of the key itself.
"""

import base64
from dataclasses import dataclass

from ..errors import DecodeError

KEY_PREFIX = "hello"


@dataclass(frozen=True)
class ClientContext:
    """
    Identity of one iteration, supplied by the runtime.

    Attributes:
        client_id: Simulated client number (starts at 1)
        iteration_id: Iteration counter of that client (starts at 0)
    """
    client_id: int
    iteration_id: int

    @property
    def key(self) -> str:
        return derive_key(self.client_id, self.iteration_id)


def derive_key(client_id: int, iteration_id: int) -> str:
    """
    Derive the cache key of one iteration.

    Examples:
        >>> derive_key(5, 0)
        'hello-5-0'
    """
    return f"{KEY_PREFIX}-{client_id}-{iteration_id}"


def encode_value(key: str) -> str:
    """Encode a key as base64 text."""
    return base64.b64encode(key.encode("utf-8")).decode("ascii")


def decode_value(text: str) -> str:
    """
    Decode base64 text back to the key it was built from.

    Raises:
        DecodeError: text is not valid base64 or not UTF-8 once decoded.
    """
    try:
        raw = base64.b64decode(text, validate=True)
        return raw.decode("utf-8")
    except (ValueError, TypeError) as e:
        raise DecodeError(f"cannot decode value {text!r}: {e}") from e
