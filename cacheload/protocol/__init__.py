"""Protocol module for the cache load test."""

from .messages import CacheMethod, Response
from .schema import CacheSchema, MethodSchema, bundled_schema, reflect_schema

__all__ = [
    "CacheMethod",
    "Response",
    "CacheSchema",
    "MethodSchema",
    "bundled_schema",
    "reflect_schema",
]
