"""
Cache Load Test Harness

A correctness-oriented load generator for gRPC key-value cache services,
built with Python asyncio. Every simulated client repeatedly runs a
Set -> Get (-> Delete) cycle on its own key namespace and checks the
responses it gets back.
"""

__version__ = "1.0.0"
