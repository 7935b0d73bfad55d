"""
Test package for rate-limit-probe

This package contains unit tests, dispatcher concurrency tests, transport
tests, and CLI/config wiring tests.
"""

# Shared test constants
DEFAULT_TARGET_URL = "http://probe.test/health"

__all__ = [
    "DEFAULT_TARGET_URL",
]
