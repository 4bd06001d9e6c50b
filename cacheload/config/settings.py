"""
Load Test Configuration Settings

All knobs of a load test run live here. Defaults come from the environment
so a run can be configured without touching the command line.
"""

import dataclasses
import os
from dataclasses import dataclass


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Load test configuration settings."""

    # Target service
    ADDRESS: str = os.environ.get("CACHE_LOADTEST_ADDRESS", "127.0.0.1:8080")
    SERVICE_NAME: str = "cache.CacheService"

    # Load shape
    VUS: int = int(os.environ.get("CACHE_LOADTEST_VUS", "100"))
    DURATION: float = float(os.environ.get("CACHE_LOADTEST_DURATION", "60"))
    GRACEFUL_STOP: float = float(os.environ.get("CACHE_LOADTEST_GRACEFUL_STOP", "30"))
    ITERATIONS: int = int(os.environ.get("CACHE_LOADTEST_ITERATIONS", "0"))  # 0 means unbounded

    # Transport
    PLAINTEXT: bool = _env_bool("CACHE_LOADTEST_PLAINTEXT", "true")
    REFLECT: bool = _env_bool("CACHE_LOADTEST_REFLECT", "true")
    CA_CERT: str = os.environ.get("CACHE_LOADTEST_CA_CERT", "")
    TIMEOUT: float = float(os.environ.get("CACHE_LOADTEST_TIMEOUT", "60"))
    CONNECT_TIMEOUT: float = float(os.environ.get("CACHE_LOADTEST_CONNECT_TIMEOUT", "10"))

    # Deletion sampling: delete when client_id % DELETE_MODULUS == DELETE_REMAINDER
    DELETE_MODULUS: int = int(os.environ.get("CACHE_LOADTEST_DELETE_MODULUS", "5"))
    DELETE_REMAINDER: int = 0

    # Logging settings
    DEBUG: bool = _env_bool("CACHE_LOADTEST_DEBUG", "false")

    def validate(self) -> None:
        """Reject settings that cannot describe a runnable load test."""
        if self.VUS <= 0:
            raise ValueError(f"VUS must be positive, got {self.VUS}")
        if self.DURATION <= 0:
            raise ValueError(f"DURATION must be positive, got {self.DURATION}")
        if self.GRACEFUL_STOP < 0:
            raise ValueError(f"GRACEFUL_STOP must not be negative, got {self.GRACEFUL_STOP}")
        if self.ITERATIONS < 0:
            raise ValueError(f"ITERATIONS must not be negative, got {self.ITERATIONS}")
        if self.DELETE_MODULUS <= 0:
            raise ValueError(f"DELETE_MODULUS must be positive, got {self.DELETE_MODULUS}")
        if not 0 <= self.DELETE_REMAINDER < self.DELETE_MODULUS:
            raise ValueError("DELETE_REMAINDER must be in [0, DELETE_MODULUS)")
        if self.TIMEOUT <= 0 or self.CONNECT_TIMEOUT <= 0:
            raise ValueError("timeouts must be positive")
        if not self.ADDRESS:
            raise ValueError("ADDRESS must not be empty")

    def replace(self, **overrides) -> "Settings":
        """
        Return a validated copy with the given fields replaced.

        Raises:
            ValueError: the resulting settings are invalid.
        """
        updated = dataclasses.replace(self, **overrides)
        updated.validate()
        return updated


# Global settings instance, validated when a run is set up from it
settings = Settings()
