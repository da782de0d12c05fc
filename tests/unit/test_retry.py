"""Tests for blinkmint.core.retry — bounded retry helpers.

Tests cover:
- retry_until returns the first accepted result.
- retry_until gives up after exactly ``attempts`` calls.
- Exceptions count as failed attempts; types outside ``retry_on`` propagate.
- Sleeps happen only between attempts.
- retry_call re-raises the last error once the budget is spent.
"""

from __future__ import annotations

import asyncio

import pytest

from blinkmint.core.retry import retry_call, retry_until


class _Recorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _sequence(*values):
    """Coroutine function returning (or raising) the given values in order."""
    items = list(values)
    calls = {"count": 0}

    async def func():
        value = items[calls["count"]]
        calls["count"] += 1
        if isinstance(value, Exception):
            raise value
        return value

    return func, calls


class TestRetryUntil:
    def test_returns_first_accepted_result(self):
        func, calls = _sequence(None, None, "found", "later")
        sleep = _Recorder()
        result = asyncio.run(
            retry_until(func, lambda r: r is not None, attempts=5, delay=2.0, sleep=sleep)
        )
        assert result == "found"
        assert calls["count"] == 3
        assert sleep.delays == [2.0, 2.0]

    def test_returns_none_after_exact_budget(self):
        func, calls = _sequence(None, None, None, None)
        sleep = _Recorder()
        result = asyncio.run(
            retry_until(func, lambda r: r is not None, attempts=4, delay=1.0, sleep=sleep)
        )
        assert result is None
        assert calls["count"] == 4
        # No sleep after the final attempt.
        assert len(sleep.delays) == 3

    def test_exception_consumes_attempt(self):
        func, calls = _sequence(RuntimeError("rpc down"), "ok")
        result = asyncio.run(
            retry_until(func, lambda r: r == "ok", attempts=2, delay=0, sleep=_Recorder())
        )
        assert result == "ok"
        assert calls["count"] == 2

    def test_exceptions_alone_exhaust_budget(self):
        func, calls = _sequence(RuntimeError("a"), RuntimeError("b"))
        result = asyncio.run(
            retry_until(func, lambda r: True, attempts=2, delay=0, sleep=_Recorder())
        )
        assert result is None
        assert calls["count"] == 2

    def test_exception_outside_retry_on_propagates(self):
        func, calls = _sequence(ConnectionError("reset"), AttributeError("no value"), "ok")
        sleep = _Recorder()
        with pytest.raises(AttributeError):
            asyncio.run(
                retry_until(
                    func,
                    lambda r: r == "ok",
                    attempts=3,
                    delay=1.0,
                    sleep=sleep,
                    retry_on=(ConnectionError,),
                )
            )
        assert calls["count"] == 2
        assert sleep.delays == [1.0]

    def test_zero_attempts_rejected(self):
        func, _ = _sequence("x")
        with pytest.raises(ValueError):
            asyncio.run(retry_until(func, lambda r: True, attempts=0, delay=0))


class TestRetryCall:
    def test_succeeds_after_failures(self):
        func, calls = _sequence(RuntimeError("not yet"), RuntimeError("not yet"), "sig")
        sleep = _Recorder()
        result = asyncio.run(retry_call(func, attempts=5, delay=3.0, sleep=sleep))
        assert result == "sig"
        assert calls["count"] == 3
        assert sleep.delays == [3.0, 3.0]

    def test_raises_last_error(self):
        func, calls = _sequence(RuntimeError("first"), RuntimeError("second"), RuntimeError("third"))
        sleep = _Recorder()
        with pytest.raises(RuntimeError, match="third"):
            asyncio.run(retry_call(func, attempts=3, delay=1.0, sleep=sleep))
        assert calls["count"] == 3
        assert len(sleep.delays) == 2
