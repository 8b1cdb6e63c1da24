import asyncio

import pytest

from Medical_Conformance.validation.resilience import TenacityRetryPolicy, is_transient_io_error


def _flaky(failures: list[BaseException], value: str = "ok"):
    attempts = {"count": 0}

    async def _operation():
        attempts["count"] += 1
        if failures:
            raise failures.pop(0)
        return value

    return _operation, attempts


def test_transient_error_classification():
    assert is_transient_io_error(PermissionError("locked"))
    assert is_transient_io_error(OSError("busy"))
    assert not is_transient_io_error(FileNotFoundError("gone"))
    assert not is_transient_io_error(IsADirectoryError("dir"))
    assert not is_transient_io_error(ValueError("bad"))


def test_retry_policy_recovers_from_transient_failures():
    operation, attempts = _flaky([PermissionError("locked"), PermissionError("locked")])
    policy = TenacityRetryPolicy(max_retries=3, initial_delay_seconds=0)

    assert asyncio.run(policy.execute(operation)) == "ok"
    assert attempts["count"] == 3


def test_retry_policy_reraises_after_exhausting_attempts():
    operation, attempts = _flaky([PermissionError("locked")] * 5)
    policy = TenacityRetryPolicy(max_retries=2, initial_delay_seconds=0)

    with pytest.raises(PermissionError):
        asyncio.run(policy.execute(operation))
    assert attempts["count"] == 3


def test_retry_policy_does_not_retry_permanent_failures():
    operation, attempts = _flaky([FileNotFoundError("missing")])
    policy = TenacityRetryPolicy(initial_delay_seconds=0)

    with pytest.raises(FileNotFoundError):
        asyncio.run(policy.execute(operation))
    assert attempts["count"] == 1
