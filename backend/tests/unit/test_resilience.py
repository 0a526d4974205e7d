"""
Unit tests for the LLM call resilience combinators.

Test Organization:
    - TestWithTimeout: Deadline race around a single call
    - TestWithRetry: Attempt counting, linear delays and exhaustion
    - TestComposition: Retry around timeout
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conceptlab.errors import LLMServiceError
from conceptlab.services.llm.resilience import with_retry, with_timeout


class TestWithTimeout:
    """Tests for with_timeout."""

    @pytest.mark.asyncio
    async def test_returns_result_within_deadline(self):
        async def fast():
            return "ok"

        assert await with_timeout(fast, 1.0, "free_text") == "ok"

    @pytest.mark.asyncio
    async def test_raises_llm_error_on_timeout(self):
        async def slow():
            await asyncio.sleep(1.0)
            return "late"

        with pytest.raises(LLMServiceError) as exc_info:
            await with_timeout(slow, 0.01, "concept_extraction")

        assert "timed out" in exc_info.value.message
        assert exc_info.value.operation == "concept_extraction"
        assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_other_errors_pass_through(self):
        async def broken():
            raise ValueError("bad payload")

        with pytest.raises(ValueError):
            await with_timeout(broken, 1.0, "free_text")


class TestWithRetry:
    """Tests for with_retry."""

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self):
        fn = AsyncMock(return_value=42)
        sleep = AsyncMock()

        result = await with_retry(fn, max_attempts=3, base_delay=1.0, operation="op", sleep=sleep)

        assert result == 42
        assert fn.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recovers_after_failures(self):
        fn = AsyncMock(side_effect=[RuntimeError("503"), RuntimeError("503"), "done"])
        sleep = AsyncMock()

        result = await with_retry(fn, max_attempts=3, base_delay=1.0, operation="op", sleep=sleep)

        assert result == "done"
        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_delay_grows_linearly_with_attempt(self):
        fn = AsyncMock(side_effect=[RuntimeError("a"), RuntimeError("b"), "done"])
        sleep = AsyncMock()

        await with_retry(fn, max_attempts=3, base_delay=1.5, operation="op", sleep=sleep)

        delays = [call.args[0] for call in sleep.await_args_list]
        assert delays == [1.5, 3.0]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_with_last_cause(self):
        last = RuntimeError("third failure")
        fn = AsyncMock(side_effect=[RuntimeError("first"), RuntimeError("second"), last])
        sleep = AsyncMock()

        with pytest.raises(LLMServiceError) as exc_info:
            await with_retry(
                fn, max_attempts=3, base_delay=1.0, operation="similarity_check", sleep=sleep
            )

        error = exc_info.value
        assert error.attempts == 3
        assert error.operation == "similarity_check"
        assert error.last_error is last
        assert error.__cause__ is last
        assert fn.await_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self):
        fn = AsyncMock(side_effect=RuntimeError("boom"))
        sleep = AsyncMock()

        with pytest.raises(LLMServiceError):
            await with_retry(fn, max_attempts=1, base_delay=1.0, operation="op", sleep=sleep)

        sleep.assert_not_awaited()


class TestComposition:
    """Tests for retry wrapped around timeout."""

    @pytest.mark.asyncio
    async def test_timeouts_are_retried(self):
        calls = {"count": 0}

        async def sometimes_slow():
            calls["count"] += 1
            if calls["count"] == 1:
                await asyncio.sleep(1.0)
            return "fast enough"

        result = await with_retry(
            lambda: with_timeout(sometimes_slow, 0.01, "op"),
            max_attempts=2,
            base_delay=0.0,
            operation="op",
            sleep=AsyncMock(),
        )

        assert result == "fast enough"
        assert calls["count"] == 2
