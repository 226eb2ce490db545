import pytest

from location_sync.exceptions import ConcurrencyConflict, ValidationError
from location_sync.utils.retry import retry_on_conflict


async def test_retries_until_success():
    calls = []

    async def flaky(value):
        calls.append(value)
        if len(calls) < 3:
            raise ConcurrencyConflict("serialization failure")
        return value * 2

    assert await retry_on_conflict(flaky, 21, max_retries=3, initial_delay=0) == 42
    assert len(calls) == 3


async def test_gives_up_after_max_retries():
    calls = []

    async def always_conflicts():
        calls.append(1)
        raise ConcurrencyConflict("deadlock detected")

    with pytest.raises(ConcurrencyConflict):
        await retry_on_conflict(always_conflicts, max_retries=2, initial_delay=0)
    assert len(calls) == 3


async def test_other_errors_are_not_retried():
    calls = []

    async def invalid():
        calls.append(1)
        raise ValidationError("bad latitude")

    with pytest.raises(ValidationError):
        await retry_on_conflict(invalid, initial_delay=0)
    assert len(calls) == 1
