"""Tests for the retry policy."""

import pytest

from vahan_extractor.services.retry import RetryPolicy, run_with_retry


class Flaky:
    """Operation that fails a fixed number of times before succeeding."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"failure {self.calls}")
        return "ok"


class Recorder:
    def __init__(self, fail_times: int = 0):
        self.calls = 0
        self.fail_times = fail_times

    async def __call__(self) -> None:
        self.calls += 1
        if self.calls <= self.fail_times:
            raise ConnectionError("navigation failed")


async def test_first_attempt_success_skips_recovery():
    operation = Flaky(0)
    recover = Recorder()

    assert await run_with_retry(operation, 2, recover=recover) == "ok"
    assert operation.calls == 1
    assert recover.calls == 0


@pytest.mark.parametrize("failures", [1, 2])
async def test_recovers_before_each_retry(failures):
    operation = Flaky(failures)
    recover = Recorder()
    seen = []

    result = await run_with_retry(
        operation, 2, lambda attempt, error: seen.append(attempt), recover=recover
    )

    assert result == "ok"
    assert operation.calls == failures + 1
    assert recover.calls == failures
    assert seen == list(range(1, failures + 1))


async def test_exhausted_attempts_raise_last_error():
    operation = Flaky(10)
    recover = Recorder()

    with pytest.raises(RuntimeError, match="failure 3"):
        await run_with_retry(operation, 2, recover=recover)

    assert operation.calls == 3
    assert recover.calls == 2


async def test_zero_retries_runs_once():
    operation = Flaky(10)
    recover = Recorder()

    with pytest.raises(RuntimeError, match="failure 1"):
        await run_with_retry(operation, 0, recover=recover)

    assert operation.calls == 1
    assert recover.calls == 0


async def test_failed_recovery_counts_as_attempt():
    operation = Flaky(1)
    recover = Recorder(fail_times=1)
    errors = []

    result = await run_with_retry(
        operation, 2, lambda attempt, error: errors.append(type(error)), recover=recover
    )

    # Attempt 2 fails in recovery, attempt 3 recovers and succeeds
    assert result == "ok"
    assert operation.calls == 2
    assert recover.calls == 2
    assert errors == [RuntimeError, ConnectionError]


async def test_negative_max_attempts_rejected():
    with pytest.raises(ValueError):
        await run_with_retry(Flaky(0), -1)


async def test_policy_uses_its_recovery_step():
    recover = Recorder()
    policy = RetryPolicy(max_attempts=1, delay=0, recover=recover)
    operation = Flaky(1)

    assert await policy.run(operation) == "ok"
    assert recover.calls == 1
