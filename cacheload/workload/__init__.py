"""Workload module for the cache load test."""

from .checks import Check, CheckOutcome, CheckResult, evaluate
from .iteration import IterationResult, RPCSample, run_iteration
from .keys import ClientContext, decode_value, derive_key, encode_value
from .policy import DeletionPolicy

__all__ = [
    "Check",
    "CheckOutcome",
    "CheckResult",
    "evaluate",
    "IterationResult",
    "RPCSample",
    "run_iteration",
    "ClientContext",
    "decode_value",
    "derive_key",
    "encode_value",
    "DeletionPolicy",
]
