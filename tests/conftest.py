import os
import sys

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from tests import DEFAULT_TARGET_URL


@pytest.fixture
def descriptor():
    from rate_limit_probe.io.schema import RequestDescriptor

    return RequestDescriptor(method="GET", url=DEFAULT_TARGET_URL)


@pytest.fixture
def source_factory(descriptor):
    from rate_limit_probe.pipeline.source import RequestSource

    def _make(max_requests: int):
        return RequestSource(descriptor, max_requests)

    return _make
