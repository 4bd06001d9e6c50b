"""Configuration module for the cache load test."""

from .settings import Settings, settings

__all__ = ["Settings", "settings"]
