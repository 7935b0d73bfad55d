"""
Request source for probe runs.

Hands out the same request descriptor up to a fixed ceiling. Consumed once,
by exactly one dispatcher.
"""

from typing import Iterator

from rate_limit_probe.core.errors import ConfigurationError
from rate_limit_probe.io.schema import RequestDescriptor


class RequestSource:
    """Lazy, single-use sequence of identical request descriptors."""

    def __init__(self, descriptor: RequestDescriptor, max_requests: int):
        if max_requests < 1:
            raise ConfigurationError(f"max_requests must be >= 1, got {max_requests}")
        self.descriptor = descriptor
        self.max_requests = max_requests
        self.issued = 0
        self._consumed = False

    def __iter__(self) -> Iterator[RequestDescriptor]:
        if self._consumed:
            raise RuntimeError("RequestSource can only be consumed once")
        self._consumed = True
        return self._generate()

    def _generate(self) -> Iterator[RequestDescriptor]:
        while self.issued < self.max_requests:
            self.issued += 1
            yield self.descriptor
