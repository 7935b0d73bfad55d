"""
Tests for RequestSource.

Checklist:
- Yields exactly max_requests identical descriptors
- Lazy: issued tracks what has actually been pulled
- Single consumption only
- Rejects a ceiling below one
"""

from itertools import islice

import pytest

from rate_limit_probe.core.errors import ConfigurationError
from rate_limit_probe.pipeline.source import RequestSource


def test_yields_ceiling_count_of_same_descriptor(descriptor):
    source = RequestSource(descriptor, 5)

    items = list(source)

    assert len(items) == 5
    assert all(item is descriptor for item in items)
    assert source.issued == 5


def test_generation_is_lazy(descriptor):
    source = RequestSource(descriptor, 1_000_000)

    taken = list(islice(iter(source), 3))

    assert len(taken) == 3
    assert source.issued == 3


def test_cannot_be_consumed_twice(descriptor):
    source = RequestSource(descriptor, 2)
    list(source)

    with pytest.raises(RuntimeError):
        iter(source)


@pytest.mark.parametrize("ceiling", [0, -1])
def test_rejects_ceiling_below_one(descriptor, ceiling):
    with pytest.raises(ConfigurationError):
        RequestSource(descriptor, ceiling)
