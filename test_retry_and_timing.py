#!/usr/bin/env python3
"""Tests for retry with exponential backoff and per-phase timing."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from reposync.config import Config
from reposync.errors import GitOperationError
from reposync.git_source.operations import execute_with_retry
from reposync.git_source.performance_logger import PerformanceLogger


def test_retry_backoff_and_success():
    """Delays double between attempts and the eventual result is returned."""
    print("Testing Retry Backoff")
    print("-" * 30)

    config = Config(git_retry_attempts=3, git_retry_delay=2.0)
    delays = []
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise GitOperationError("network unreachable")
        return "fetched"

    result = execute_with_retry(flaky, "git fetch", config, retry_on=(GitOperationError,), sleep=delays.append)

    assert result == "fetched"
    assert delays == [2.0, 4.0]
    print("  ✓ Backoff 2s, 4s then success")


def test_retry_gives_up_with_last_error():
    config = Config(git_retry_attempts=2, git_retry_delay=0)
    errors = iter([GitOperationError("first"), GitOperationError("second")])

    def always_fails():
        raise next(errors)

    with pytest.raises(GitOperationError, match="second"):
        execute_with_retry(always_fails, "git fetch", config, retry_on=(GitOperationError,), sleep=lambda _: None)


def test_unlisted_errors_not_retried():
    config = Config(git_retry_attempts=5, git_retry_delay=0)
    calls = []

    def broken():
        calls.append(1)
        raise KeyError("not transient")

    with pytest.raises(KeyError):
        execute_with_retry(broken, "git fetch", config, retry_on=(GitOperationError,), sleep=lambda _: None)
    assert len(calls) == 1


def test_performance_logger_records_phases():
    print("\nTesting Phase Timing")
    print("-" * 30)

    perf = PerformanceLogger()
    with perf.time_operation("fetch"):
        pass
    with pytest.raises(RuntimeError):
        with perf.time_operation("checkout"):
            raise RuntimeError("checkout failed")

    summary = perf.summary()
    assert set(summary) == {"fetch", "checkout"}
    assert all(duration >= 0 for duration in summary.values())
    print("  ✓ Timings recorded for successful and failed phases")


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
