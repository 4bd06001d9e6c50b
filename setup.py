#!/usr/bin/env python3
"""
Cache Load Test Setup Script
============================
Allows installation of the cache-loadtest package.

Usage:
    pip install -e .           # Development install
    pip install -e ".[test]"   # Development install with test tools
    pip install .              # Regular install
"""

from setuptools import setup, find_packages

setup(
    name="cache-loadtest",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "grpcio>=1.60",
        "grpcio-reflection>=1.60",
        "protobuf>=4.25",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "cache-loadtest=cacheload.loadtest:main",
        ],
    },
)
