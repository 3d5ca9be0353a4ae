"""
Tests for the periodic scheduler.

Intervals are fractions of a minute so scheduled runs happen within the
test; every test stops its scheduler.
"""

import threading
import time
from datetime import datetime

import pytest

from orchestration.scheduler import Scheduler, SchedulerState, seconds_until_next_hour
from ports import ErrorCode, SchedulingError


FAST_INTERVAL = 0.001  # minutes, 60ms


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def schedulers():
    """Collects schedulers and stops them after the test."""
    created = []
    yield created
    for scheduler in created:
        scheduler.stop()


# ============================================================================
# Timing helpers
# ============================================================================

class TestSecondsUntilNextHour:

    @pytest.mark.parametrize(
        "now,expected",
        [
            (datetime(2025, 1, 3, 14, 59, 30), 30.0),
            (datetime(2025, 1, 3, 14, 0, 0), 3600.0),
            (datetime(2025, 1, 3, 14, 20, 0, 500000), 2399.5),
            (datetime(2025, 12, 31, 23, 45, 0), 900.0),
        ],
    )
    def test_seconds_until_next_hour(self, now, expected):
        assert seconds_until_next_hour(now) == pytest.approx(expected)


# ============================================================================
# Starting and stopping
# ============================================================================

class TestLifecycle:
    """Test cases for start/stop state handling."""

    def test_next_hour_boundary(self, schedulers):
        scheduler = Scheduler(lambda: None, clock=lambda: datetime(2025, 1, 3, 14, 30, 0))
        schedulers.append(scheduler)

        assert scheduler.start_at_next_hour_boundary()
        assert scheduler.is_running
        assert scheduler.next_run_at == datetime(2025, 1, 3, 15, 0, 0)
        assert scheduler.interval_seconds == 3600.0
        assert "running" in scheduler.status()

    def test_start_while_running_is_noop(self, schedulers):
        scheduler = Scheduler(lambda: None)
        schedulers.append(scheduler)

        assert scheduler.start_with_custom_interval(60)
        assert not scheduler.start_immediately()
        assert scheduler.interval_seconds == 3600.0

    def test_stop_is_idempotent(self):
        scheduler = Scheduler(lambda: None)
        scheduler.stop()
        assert scheduler.state == SchedulerState.STOPPED

        scheduler.start_with_custom_interval(60)
        scheduler.stop()
        scheduler.stop()
        assert scheduler.state == SchedulerState.STOPPED
        assert scheduler.next_run_at is None

    def test_restart_after_stop(self, schedulers):
        calls = []
        scheduler = Scheduler(lambda: calls.append(1))
        schedulers.append(scheduler)

        scheduler.start_immediately()
        assert wait_for(lambda: len(calls) >= 1)
        scheduler.stop()

        assert scheduler.start_immediately()
        assert wait_for(lambda: len(calls) >= 2)

    @pytest.mark.parametrize("minutes", [0, -5, float("nan"), float("inf"), "10"])
    def test_invalid_interval_raises(self, minutes):
        scheduler = Scheduler(lambda: None)

        with pytest.raises(SchedulingError) as exc_info:
            scheduler.start_with_custom_interval(minutes)

        assert exc_info.value.code == ErrorCode.SCHEDULER_INTERVAL
        assert scheduler.state == SchedulerState.STOPPED


# ============================================================================
# Running
# ============================================================================

class TestRuns:

    def test_immediate_first_run(self, schedulers):
        ran = threading.Event()
        scheduler = Scheduler(ran.set)
        schedulers.append(scheduler)

        scheduler.start_immediately()
        assert ran.wait(5.0)

    def test_failures_do_not_cancel_schedule(self, schedulers):
        """A task failing on every run keeps being invoked."""
        def failing():
            raise RuntimeError("source down")

        scheduler = Scheduler(failing)
        schedulers.append(scheduler)
        scheduler.start_with_custom_interval(FAST_INTERVAL)

        assert wait_for(lambda: scheduler.stats.runs >= 3)
        scheduler.stop()

        assert scheduler.stats.failures == scheduler.stats.runs
        assert scheduler.stats.last_error == "RuntimeError: source down"

    def test_run_after_failure_succeeds(self, schedulers):
        interval = 0.005  # minutes, 300ms
        calls = []

        def flaky():
            calls.append(time.monotonic())
            if len(calls) == 1:
                raise ValueError("first run fails")

        scheduler = Scheduler(flaky)
        schedulers.append(scheduler)
        scheduler.start_with_custom_interval(interval)

        assert wait_for(lambda: scheduler.stats.runs >= 2)
        scheduler.stop()

        assert scheduler.stats.failures == 1
        assert 0.2 <= calls[1] - calls[0] <= 1.5
        assert scheduler.state == SchedulerState.STOPPED
        assert scheduler.next_run_at is None

        runs = len(calls)
        time.sleep(interval * 60 + 0.1)
        assert len(calls) == runs
        assert scheduler.stats.runs == runs

    def test_ticks_keep_fixed_rate(self, schedulers):
        """Each tick is due a whole number of intervals after the first."""
        calls = []

        def slow():
            calls.append(time.monotonic())
            time.sleep(0.05)

        scheduler = Scheduler(slow)
        schedulers.append(scheduler)
        scheduler.start_with_custom_interval(0.003)  # 180ms

        assert wait_for(lambda: len(calls) >= 5)
        scheduler.stop()

        assert calls[4] - calls[0] == pytest.approx(4 * 0.18, abs=0.15)

    def test_run_once(self):
        scheduler = Scheduler(lambda: None)
        assert scheduler.run_once() is True

        failing = Scheduler(lambda: 1 / 0)
        assert failing.run_once() is False
        assert failing.stats.failures == 1
        assert "ZeroDivisionError" in failing.stats.last_error

    def test_single_flight_skips_overlapping_ticks(self, schedulers):
        release = threading.Event()
        started = threading.Event()

        def slow():
            started.set()
            release.wait(5.0)

        scheduler = Scheduler(slow, single_flight=True)
        schedulers.append(scheduler)
        scheduler.start_with_custom_interval(FAST_INTERVAL)

        try:
            assert started.wait(5.0)
            assert wait_for(lambda: scheduler.stats.skipped >= 2)
            # Still blocked in the first run while ticks were skipped
            assert scheduler.stats.runs == 0
        finally:
            release.set()
        scheduler.stop()

        assert scheduler.stats.runs >= 1


# ============================================================================
# Shutdown
# ============================================================================

class TestShutdown:

    def test_stop_waits_for_running_task(self):
        started = threading.Event()
        finished = threading.Event()

        def task():
            started.set()
            time.sleep(0.2)
            finished.set()

        scheduler = Scheduler(task)
        scheduler.start_immediately()
        assert started.wait(5.0)

        scheduler.stop()

        assert finished.is_set()
        assert scheduler.state == SchedulerState.STOPPED

    def test_stop_gives_up_after_grace_and_force(self):
        started = threading.Event()
        release = threading.Event()

        def stuck():
            started.set()
            release.wait(10.0)

        scheduler = Scheduler(stuck, grace_seconds=0.05, force_seconds=0.05)
        scheduler.start_immediately()
        try:
            assert started.wait(5.0)

            begin = time.monotonic()
            scheduler.stop()
            elapsed = time.monotonic() - begin
        finally:
            release.set()

        assert elapsed < 2.0
        assert scheduler.state == SchedulerState.STOPPED
