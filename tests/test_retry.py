import asyncio

import pytest

from cloudbot.errors import ActionExhaustedError
from cloudbot.mcp.retry import RetryPolicy, with_retry

from fakes import RecordingSleep


def _flaky(failures: int, error: Exception):
    calls = []

    async def attempt(number: int) -> str:
        calls.append(number)
        if len(calls) <= failures:
            raise error
        return "done"

    return attempt, calls


def test_succeeds_on_third_attempt_after_two_delays() -> None:
    attempt, calls = _flaky(2, RuntimeError("not ready"))
    sleep = RecordingSleep()

    result = asyncio.run(with_retry(attempt, RetryPolicy(), tool="browserbase_click", sleep=sleep))

    assert result == "done"
    assert calls == [1, 2, 3]
    assert sleep.calls == [0.5, 0.5]


def test_exhaustion_wraps_last_error_with_tool_and_attempts() -> None:
    attempt, calls = _flaky(5, RuntimeError("still hidden"))
    sleep = RecordingSleep()

    with pytest.raises(ActionExhaustedError) as excinfo:
        asyncio.run(with_retry(attempt, RetryPolicy(), tool="browserbase_hover", sleep=sleep))

    error = excinfo.value
    assert error.tool == "browserbase_hover"
    assert error.attempts == 3
    assert "browserbase_hover" in str(error)
    assert "still hidden" in str(error)
    assert calls == [1, 2, 3]
    assert len(sleep.calls) == 2


def test_non_retryable_error_stops_immediately() -> None:
    attempt, calls = _flaky(5, ValueError("bad input"))
    sleep = RecordingSleep()

    with pytest.raises(ActionExhaustedError) as excinfo:
        asyncio.run(
            with_retry(
                attempt,
                RetryPolicy(),
                tool="browserbase_type",
                is_retryable=lambda exc: not isinstance(exc, ValueError),
                sleep=sleep,
            )
        )

    assert excinfo.value.attempts == 1
    assert calls == [1]
    assert sleep.calls == []


def test_policy_rejects_zero_attempts() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
