#!/usr/bin/env python3
"""
Cache Load Test Entry Point

Runs a correctness load test against a gRPC cache service: every virtual
user repeatedly sets, gets and (for every fifth user) deletes its own keys
and checks each response.

Usage:
    python -m cacheload                                  # Default settings (127.0.0.1:8080)
    python -m cacheload --address 10.0.0.5:50051         # Remote service
    python -m cacheload --vus 20 --duration 10           # Custom load
    python -m cacheload --no-reflect                     # Use the bundled schema
    python -m cacheload --output results.json            # Save results

Environment Variables:
    CACHE_LOADTEST_ADDRESS          - Target service address
    CACHE_LOADTEST_VUS              - Number of virtual users
    CACHE_LOADTEST_DURATION         - Run duration in seconds
    CACHE_LOADTEST_PLAINTEXT        - Use a cleartext channel (true/false)
    CACHE_LOADTEST_REFLECT          - Resolve the schema via reflection (true/false)
    CACHE_LOADTEST_DELETE_MODULUS   - Delete when VU id % modulus == 0
    CACHE_LOADTEST_DEBUG            - Enable debug logging (true/false)
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .config.settings import Settings, settings as default_settings
from .runner import LoadRunner

EXIT_OK = 0
EXIT_CHECKS_FAILED = 1
EXIT_UNREACHABLE = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Correctness load test for a gRPC key-value cache service",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--address", "-a",
        type=str,
        default=default_settings.ADDRESS,
        help="Target service address (host:port or unix:/path)",
    )
    parser.add_argument(
        "--vus", "-u",
        type=int,
        default=default_settings.VUS,
        help="Number of concurrent virtual users",
    )
    parser.add_argument(
        "--duration", "-d",
        type=float,
        default=default_settings.DURATION,
        help="Run duration in seconds",
    )
    parser.add_argument(
        "--graceful-stop",
        type=float,
        default=default_settings.GRACEFUL_STOP,
        help="Seconds in-flight iterations may run past the duration",
    )
    parser.add_argument(
        "--iterations", "-i",
        type=int,
        default=default_settings.ITERATIONS,
        help="Maximum iterations per virtual user (0 = until duration ends)",
    )
    parser.add_argument(
        "--plaintext",
        dest="plaintext",
        action="store_true",
        default=default_settings.PLAINTEXT,
        help="Use a cleartext channel",
    )
    parser.add_argument(
        "--tls",
        dest="plaintext",
        action="store_false",
        help="Use a TLS channel",
    )
    parser.add_argument(
        "--ca-cert",
        type=str,
        default=default_settings.CA_CERT,
        help="PEM file with root certificates for --tls",
    )
    parser.add_argument(
        "--reflect",
        dest="reflect",
        action="store_true",
        default=default_settings.REFLECT,
        help="Resolve the service schema via server reflection",
    )
    parser.add_argument(
        "--no-reflect",
        dest="reflect",
        action="store_false",
        help="Use the bundled service schema",
    )
    parser.add_argument(
        "--delete-modulus",
        type=int,
        default=default_settings.DELETE_MODULUS,
        help="Virtual users whose id is divisible by this also delete their keys",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=default_settings.TIMEOUT,
        help="Per-RPC timeout in seconds",
    )
    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=default_settings.CONNECT_TIMEOUT,
        help="Connect timeout in seconds",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output file for JSON results",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=default_settings.DEBUG,
        help="Enable debug logging (one line per RPC)",
    )

    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> Settings:
    """
    Build the run settings from parsed arguments.

    Raises:
        ValueError: the arguments describe an invalid run.
    """
    return default_settings.replace(
        ADDRESS=args.address,
        VUS=args.vus,
        DURATION=args.duration,
        GRACEFUL_STOP=args.graceful_stop,
        ITERATIONS=args.iterations,
        PLAINTEXT=args.plaintext,
        REFLECT=args.reflect,
        CA_CERT=args.ca_cert,
        DELETE_MODULUS=args.delete_modulus,
        TIMEOUT=args.timeout,
        CONNECT_TIMEOUT=args.connect_timeout,
        DEBUG=args.debug,
    )


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the load test."""
    args = parse_args(argv)

    try:
        run_settings = settings_from_args(args)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_CHECKS_FAILED

    setup_logging(debug=run_settings.DEBUG)
    logger = logging.getLogger(__name__)

    runner = LoadRunner(run_settings)

    try:
        results = asyncio.run(runner.run())
    except KeyboardInterrupt:
        logger.info("Load test interrupted")
        return EXIT_CHECKS_FAILED

    # Check if the service was reachable at all
    if results.iterations > 0 and results.connect_failures == results.iterations:
        print("=" * 60)
        print("                       ERROR")
        print("=" * 60)
        print(f"All {results.iterations:,} iterations failed to connect to {results.address}")
        print()
        print("Possible causes:")
        print("  1. Service is not running")
        print("  2. Wrong address")
        print("  3. Reflection disabled on the service (try --no-reflect)")
        print("  4. TLS mismatch (try --plaintext or --tls)")
        print()
        return EXIT_UNREACHABLE

    LoadRunner.print_results(results)

    if args.output:
        with open(args.output, 'w') as f:
            json.dump(results.to_dict(), f, indent=2)
        print(f"Results saved to: {args.output}")

    return EXIT_OK if results.ok else EXIT_CHECKS_FAILED


if __name__ == "__main__":
    sys.exit(main())
