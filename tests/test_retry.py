"""Tests for the linear-backoff retry helper and the send retry policy."""
import pytest

from core.errors import DeliveryError, SendFailedError
from core.retry import RetryPolicy
from utils.retry import with_retry


class Flaky:
    """Fails the first `failures` calls, then returns "ok"."""

    def __init__(self, failures: int):
        self.failures = failures
        self.attempts = 0

    async def __call__(self):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise DeliveryError(f"attempt {self.attempts} failed")
        return "ok"


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_first_success_returns_immediately(self):
        op = Flaky(0)
        assert await with_retry(op, attempts=3, backoff_s=0) == "ok"
        assert op.attempts == 1

    @pytest.mark.asyncio
    async def test_reraises_last_error(self):
        op = Flaky(5)
        with pytest.raises(DeliveryError, match="attempt 3 failed"):
            await with_retry(op, attempts=3, backoff_s=0)
        assert op.attempts == 3

    @pytest.mark.asyncio
    async def test_lambda_returning_coroutine_is_awaited(self):
        op = Flaky(1)
        result = await with_retry(lambda: op(), attempts=3, backoff_s=0)
        assert result == "ok"
        assert op.attempts == 2

    @pytest.mark.asyncio
    async def test_lambda_failures_are_retried_and_reraised(self):
        op = Flaky(5)
        with pytest.raises(DeliveryError, match="attempt 2 failed"):
            await with_retry(lambda: op(), attempts=2, backoff_s=0)
        assert op.attempts == 2

    @pytest.mark.asyncio
    async def test_backoff_is_linear(self):
        sleep = SleepRecorder()
        op = Flaky(5)
        with pytest.raises(DeliveryError):
            await with_retry(op, attempts=4, backoff_s=0.1, sleep=sleep)
        assert sleep.delays == pytest.approx([0.1, 0.2, 0.3])


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_succeeds_on_third_attempt(self):
        op = Flaky(2)
        policy = RetryPolicy(max_attempts=3, backoff_s=0)
        assert await policy.run(op) == "ok"
        assert op.attempts == 3

    @pytest.mark.asyncio
    async def test_lambda_operation_is_awaited(self):
        op = Flaky(2)
        policy = RetryPolicy(max_attempts=3, backoff_s=0)
        assert await policy.run(lambda: op()) == "ok"
        assert op.attempts == 3

    @pytest.mark.asyncio
    async def test_always_failing_raises_send_failed(self):
        op = Flaky(100)
        policy = RetryPolicy(max_attempts=3, backoff_s=0)
        with pytest.raises(SendFailedError) as exc_info:
            await policy.run(op)

        assert op.attempts == 3
        err = exc_info.value
        assert err.attempts == 3
        assert isinstance(err.last_error, DeliveryError)
        assert err.__cause__ is err.last_error
        assert "failed after 3 retries" in str(err)

    @pytest.mark.asyncio
    async def test_waits_between_attempts_only(self):
        sleep = SleepRecorder()
        policy = RetryPolicy(max_attempts=3, backoff_s=0.1, sleep=sleep)
        with pytest.raises(SendFailedError):
            await policy.run(Flaky(100))
        assert sleep.delays == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_no_wait_after_success(self):
        sleep = SleepRecorder()
        policy = RetryPolicy(max_attempts=3, backoff_s=0.1, sleep=sleep)
        await policy.run(Flaky(1))
        assert sleep.delays == pytest.approx([0.1])
