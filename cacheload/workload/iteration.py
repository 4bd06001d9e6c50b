"""
Iteration Workflow

One iteration of one simulated client:

    connect -> Set -> checks -> Get -> checks -> [Delete -> checks] -> close

Each step awaits the previous one. A connect failure ends the iteration
before any RPC; an RPCError ends the remaining RPC steps. Either way the
failure stays inside the returned IterationResult.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import grpc

from ..config.settings import Settings
from ..errors import CacheConnectionError, DecodeError, RPCError
from ..network.connection import ConnectOptions, connect
from ..network.invoker import CacheInvoker
from ..protocol.messages import CacheMethod, Response
from .checks import DELETE_CHECKS, SET_CHECKS, Check, CheckResult, evaluate, get_checks
from .keys import ClientContext, decode_value, encode_value
from .policy import DeletionPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RPCSample:
    """Status and latency of one RPC."""
    method: CacheMethod
    status: grpc.StatusCode
    duration_ms: float


@dataclass
class IterationResult:
    """
    Everything one iteration observed.

    Attributes:
        context: Client and iteration identity
        key: The key the iteration worked on
        checks: Check results in evaluation order
        samples: One entry per RPC that got a response
        deleted: Whether the Delete step was attempted
        error: Connect or RPC failure that ended the iteration early
        error_phase: 'connect' or the name of the failed method
        interrupted: The runtime cancelled the iteration
    """
    context: ClientContext
    key: str
    checks: List[CheckResult] = field(default_factory=list)
    samples: List[RPCSample] = field(default_factory=list)
    deleted: bool = False
    error: Optional[str] = None
    error_phase: Optional[str] = None
    interrupted: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None or self.interrupted

    @property
    def passed(self) -> bool:
        return not self.failed and all(c.passed for c in self.checks)

    def record(self, response: Response, checks: Tuple[Check, ...]) -> None:
        self.samples.append(RPCSample(response.method, response.status, response.duration_ms))
        self.checks.extend(evaluate(response, checks))


def _value_for_log(response: Response) -> str:
    try:
        return decode_value(response.message["value"])
    except (DecodeError, KeyError, TypeError):
        return "<none>"


async def _run_cycle(
        invoker: CacheInvoker,
        context: ClientContext,
        policy: DeletionPolicy,
        result: IterationResult,
) -> None:
    key = result.key
    vu, it = context.client_id, context.iteration_id

    response = await invoker.set(key, encode_value(key))
    result.record(response, SET_CHECKS)
    logger.debug(f"SET: VU {vu}, ITER {it}, key: {key}")

    response = await invoker.get(key)
    result.record(response, get_checks(key))
    logger.debug(f"GET: VU {vu}, ITER {it}, key: {key}, value: {_value_for_log(response)}")

    if policy.should_delete(context.client_id):
        result.deleted = True
        response = await invoker.delete(key)
        result.record(response, DELETE_CHECKS)
        logger.debug(f"DELETE: VU {vu}, ITER {it}, key: {key}")


async def run_iteration(
        context: ClientContext,
        settings: Settings,
        policy: Optional[DeletionPolicy] = None,
) -> IterationResult:
    """
    Run one Set/Get(/Delete) iteration against the configured service.

    Args:
        context: Identity of this iteration
        settings: Run configuration (address, transport, timeouts)
        policy: Deletion policy (built from settings if not given)

    Returns:
        The IterationResult. Connect and RPC failures are captured in it;
        only cancellation propagates.
    """
    policy = policy or DeletionPolicy.from_settings(settings)
    result = IterationResult(context=context, key=context.key)

    try:
        connection = await connect(settings.ADDRESS, ConnectOptions.from_settings(settings))
    except CacheConnectionError as e:
        logger.warning(f"VU {context.client_id}, ITER {context.iteration_id}: {e}")
        result.error = str(e)
        result.error_phase = "connect"
        return result

    async with connection:
        invoker = CacheInvoker(connection, timeout=settings.TIMEOUT)
        try:
            await _run_cycle(invoker, context, policy, result)
        except RPCError as e:
            logger.warning(f"VU {context.client_id}, ITER {context.iteration_id}: {e}")
            result.error = str(e)
            result.error_phase = e.method

    return result
