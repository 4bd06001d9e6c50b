"""
Load Runner

Drives the iteration workflow with a fixed pool of simulated clients
(virtual users) for a fixed duration and aggregates what they observed.

Every virtual user is an asyncio task that loops over run_iteration()
with an increasing iteration counter. Results stay in a per-task list
until all tasks are done, then get folded into one LoadTestResults.

Stopping: once the duration is up no new iteration starts. Iterations
still in flight get GRACEFUL_STOP seconds to finish; whatever is left
after that is cancelled and counted as interrupted.
"""

import asyncio
import logging
import statistics
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List

from .config.settings import Settings
from .workload.checks import CheckOutcome
from .workload.iteration import IterationResult, run_iteration
from .workload.keys import ClientContext
from .workload.policy import DeletionPolicy

logger = logging.getLogger(__name__)


@dataclass
class CheckStats:
    """Outcome counts of one named check."""
    passes: int = 0
    fails: int = 0
    skips: int = 0

    @property
    def total(self) -> int:
        return self.passes + self.fails + self.skips


@dataclass
class LoadTestResults:
    """Aggregated load test results."""
    # Configuration
    address: str
    vus: int
    duration_seconds: float

    # Timing
    start_time: str
    end_time: str
    total_duration_seconds: float

    # Iterations
    iterations: int = 0
    iterations_passed: int = 0
    iterations_failed: int = 0
    iterations_interrupted: int = 0
    connect_failures: int = 0
    rpc_failures: int = 0
    deletes: int = 0

    # Checks, keyed by check name
    checks: Dict[str, CheckStats] = field(default_factory=dict)
    checks_passed: int = 0
    checks_failed: int = 0

    # RPCs, keyed by method name then status name
    rpc_count: int = 0
    rpc_statuses: Dict[str, Dict[str, int]] = field(default_factory=dict)

    # Latency stats (milliseconds)
    latency_min: float = 0.0
    latency_max: float = 0.0
    latency_mean: float = 0.0
    latency_median: float = 0.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0
    latency_stddev: float = 0.0

    # Throughput
    iterations_per_second: float = 0.0
    rpcs_per_second: float = 0.0

    # Rates
    check_pass_rate: float = 0.0
    error_rate: float = 0.0

    # Raw latencies for percentile calculation
    latencies: List[float] = field(default_factory=list)

    def add(self, result: IterationResult) -> None:
        """Fold one iteration into the totals."""
        self.iterations += 1

        if result.interrupted:
            self.iterations_interrupted += 1
        elif result.error_phase == "connect":
            self.connect_failures += 1
        elif result.error is not None:
            self.rpc_failures += 1

        if result.failed:
            self.iterations_failed += 1
        elif result.passed:
            self.iterations_passed += 1

        if result.deleted:
            self.deletes += 1

        for check in result.checks:
            stats = self.checks.setdefault(check.name, CheckStats())
            if check.outcome is CheckOutcome.PASSED:
                stats.passes += 1
                self.checks_passed += 1
            elif check.outcome is CheckOutcome.SKIPPED:
                stats.skips += 1
                self.checks_failed += 1
            else:
                stats.fails += 1
                self.checks_failed += 1

        for sample in result.samples:
            self.rpc_count += 1
            by_status = self.rpc_statuses.setdefault(sample.method.value, {})
            by_status[sample.status.name] = by_status.get(sample.status.name, 0) + 1
            self.latencies.append(sample.duration_ms)

    def calculate_stats(self):
        """Calculate rates and latency statistics."""
        self.error_rate = (
            self.iterations_failed / self.iterations * 100
            if self.iterations > 0 else 0
        )
        total_checks = self.checks_passed + self.checks_failed
        self.check_pass_rate = (
            self.checks_passed / total_checks * 100
            if total_checks > 0 else 0
        )
        if self.total_duration_seconds > 0:
            self.iterations_per_second = self.iterations / self.total_duration_seconds
            self.rpcs_per_second = self.rpc_count / self.total_duration_seconds

        if not self.latencies:
            return

        sorted_latencies = sorted(self.latencies)
        n = len(sorted_latencies)

        self.latency_min = sorted_latencies[0]
        self.latency_max = sorted_latencies[-1]
        self.latency_mean = statistics.mean(sorted_latencies)
        self.latency_median = statistics.median(sorted_latencies)

        # Percentiles
        p95_idx = min(int(n * 0.95), n - 1)
        p99_idx = min(int(n * 0.99), n - 1)
        self.latency_p95 = sorted_latencies[p95_idx]
        self.latency_p99 = sorted_latencies[p99_idx]

        if n > 1:
            self.latency_stddev = statistics.stdev(sorted_latencies)

    @property
    def ok(self) -> bool:
        """True when every iteration ran to completion and every check passed."""
        return self.iterations > 0 and self.iterations_failed == 0 and self.checks_failed == 0

    def to_dict(self) -> dict:
        """Convert to dictionary (excluding raw latencies for JSON output)."""
        d = asdict(self)
        del d['latencies']
        return d


class LoadRunner:
    """Async load runner for a gRPC cache service."""

    def __init__(self, settings: Settings):
        settings.validate()
        self.settings = settings
        self.policy = DeletionPolicy.from_settings(settings)

    async def _client_task(
            self,
            client_id: int,
            stop: asyncio.Event,
            results: List[IterationResult],
    ) -> None:
        """Run one virtual user until the stop event or its iteration cap."""
        iteration_id = 0
        max_iterations = self.settings.ITERATIONS

        while not stop.is_set():
            if max_iterations and iteration_id >= max_iterations:
                break

            context = ClientContext(client_id=client_id, iteration_id=iteration_id)
            try:
                result = await run_iteration(context, self.settings, self.policy)
            except asyncio.CancelledError:
                results.append(IterationResult(
                    context=context, key=context.key, interrupted=True
                ))
                raise
            except Exception as e:
                logger.exception(f"VU {client_id}, ITER {iteration_id}: unexpected error")
                result = IterationResult(
                    context=context,
                    key=context.key,
                    error=f"{type(e).__name__}: {e}",
                    error_phase="unexpected",
                )

            results.append(result)
            iteration_id += 1

    async def run(self) -> LoadTestResults:
        """Run the load test."""
        start_time = datetime.now()
        start_perf = time.perf_counter()

        logger.info(
            f"Running load test against {self.settings.ADDRESS}: "
            f"{self.settings.VUS} VUs for {self.settings.DURATION}s"
        )

        stop = asyncio.Event()
        per_client: List[List[IterationResult]] = [[] for _ in range(self.settings.VUS)]
        tasks = [
            asyncio.create_task(self._client_task(client_id, stop, per_client[client_id - 1]))
            for client_id in range(1, self.settings.VUS + 1)
        ]

        _, pending = await asyncio.wait(tasks, timeout=self.settings.DURATION)
        stop.set()

        if pending:
            logger.info(
                f"Duration reached, waiting up to {self.settings.GRACEFUL_STOP}s "
                f"for {len(pending)} VUs to finish"
            )
            if self.settings.GRACEFUL_STOP > 0:
                _, pending = await asyncio.wait(pending, timeout=self.settings.GRACEFUL_STOP)
            if pending:
                logger.warning(f"Interrupting {len(pending)} VUs still running")
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"VU task crashed: {task.exception()!r}")

        end_perf = time.perf_counter()
        end_time = datetime.now()

        results = LoadTestResults(
            address=self.settings.ADDRESS,
            vus=self.settings.VUS,
            duration_seconds=self.settings.DURATION,
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
            total_duration_seconds=end_perf - start_perf,
        )
        for client_results in per_client:
            for result in client_results:
                results.add(result)
        results.calculate_stats()

        logger.info(
            f"Load test finished: {results.iterations} iterations, "
            f"{results.iterations_failed} failed"
        )
        return results

    @staticmethod
    def print_results(results: LoadTestResults):
        """Print results in a nice format."""
        print("=" * 60)
        print("                    LOAD TEST RESULTS")
        print("=" * 60)

        print(f"Target:             {results.address}")
        print(f"VUs:                {results.vus}")
        print(f"Total Time:         {results.total_duration_seconds:.2f} seconds")

        print("-" * 60)

        print(f"Iterations:         {results.iterations:,} "
              f"({results.iterations_per_second:,.2f}/s)")
        print(f"  Passed:           {results.iterations_passed:,}")
        print(f"  Failed:           {results.iterations_failed:,} ({results.error_rate:.2f}%)")
        print(f"  Connect errors:   {results.connect_failures:,}")
        print(f"  RPC errors:       {results.rpc_failures:,}")
        print(f"  Interrupted:      {results.iterations_interrupted:,}")

        print()
        print(f"Checks:             {results.check_pass_rate:.2f}% passed "
              f"({results.checks_passed:,} of {results.checks_passed + results.checks_failed:,})")
        for name, stats in results.checks.items():
            mark = "✓" if stats.passes == stats.total else "✗"
            line = f"  {mark} {name:<24} {stats.passes:,} / {stats.total:,}"
            if stats.skips:
                line += f" ({stats.skips:,} skipped)"
            print(line)

        print()
        print(f"RPCs:               {results.rpc_count:,} ({results.rpcs_per_second:,.2f}/s)")
        for method, by_status in results.rpc_statuses.items():
            breakdown = ", ".join(f"{status}: {count:,}" for status, count in by_status.items())
            print(f"  {method:<18}{breakdown}")

        print()
        print("Latency (ms):")
        print(f"  Min:              {results.latency_min:.2f}")
        print(f"  Max:              {results.latency_max:.2f}")
        print(f"  Mean:             {results.latency_mean:.2f}")
        print(f"  Median:           {results.latency_median:.2f}")
        print(f"  P95:              {results.latency_p95:.2f}")
        print(f"  P99:              {results.latency_p99:.2f}")

        print("=" * 60)
        print()
