"""In-memory transports that stand in for the network in dispatcher and CLI tests."""

import threading
import time
from typing import Callable, Dict, Optional

from rate_limit_probe.core.errors import TransportError
from rate_limit_probe.io.schema import ResponseObservation


class ScriptedTransport:
    """
    Answers call N (1-based, in submission order) with ``script(N)``.

    ``script`` returns a status code, or raises to simulate a transport
    failure. ``delay(N)`` optionally sleeps before answering. In-flight calls
    are tracked so tests can assert the concurrency ceiling.
    """

    def __init__(
        self,
        script: Callable[[int], int] = lambda n: 200,
        delay: Optional[Callable[[int], float]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.script = script
        self.delay = delay
        self.headers = headers or {}
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.lock = threading.Lock()
        self.closed = False

    def send(self, method, url):
        with self.lock:
            self.calls += 1
            n = self.calls
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                pause = self.delay(n)
                if pause:
                    time.sleep(pause)
            status = self.script(n)
            return ResponseObservation(status_code=status, headers=dict(self.headers))
        finally:
            with self.lock:
                self.in_flight -= 1

    def close(self):
        self.closed = True


def fail_on(call_number: int, status: int = 200, error: Optional[Exception] = None):
    """Script that raises on one call and returns ``status`` otherwise."""

    def _script(n: int) -> int:
        if n == call_number:
            raise error or TransportError(f"connection reset on call {n}")
        return status

    return _script


def status_on(call_number: int, status: int, default: int = 200):
    """Script that returns ``status`` on one call and ``default`` otherwise."""

    def _script(n: int) -> int:
        return status if n == call_number else default

    return _script
