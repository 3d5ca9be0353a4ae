"""
Periodic task runner.

Runs one task at a fixed rate on a background trigger thread. Each tick is
handed to a single worker, so runs never overlap. A failing run is logged
and counted; it never cancels the schedule.

Modes:
    hourly    - first run at the next full hour, then every 60 minutes
    immediate - first run now, then every 60 minutes
    interval  - first run now, then every N minutes
"""

import logging
import math
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from ports import SchedulingError, ErrorCode

logger = logging.getLogger(__name__)

HOUR_SECONDS = 3600.0


def seconds_until_next_hour(now: datetime) -> float:
    """Seconds from now to the next full hour; a full hour if now is exactly on one."""
    next_hour = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    return (next_hour - now).total_seconds()


class SchedulerState(str, Enum):
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass
class SchedulerStats:
    runs: int = 0
    failures: int = 0
    skipped: int = 0
    last_run_at: datetime | None = None
    last_error: str | None = None


class Scheduler:
    """
    Fixed-rate runner for a single task.

    Ticks keep their cadence even when a run overruns; overdue ticks are
    queued behind the running one. With single_flight, a tick arriving
    while a run is still pending is skipped instead.

    Usage:
        scheduler = Scheduler(pipeline.run_cycle, name="sentiment")
        scheduler.start_at_next_hour_boundary()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        task: Callable[[], object],
        name: str = "task",
        grace_seconds: float = 10.0,
        force_seconds: float = 5.0,
        single_flight: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._task = task
        self.name = name
        self.grace_seconds = grace_seconds
        self.force_seconds = force_seconds
        self.single_flight = single_flight
        self._clock = clock

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._pending: set[Future] = set()

        self.state = SchedulerState.STOPPED
        self.stats = SchedulerStats()
        self.interval_seconds: float | None = None
        self.next_run_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    # ========================================================================
    # Starting
    # ========================================================================

    def start_at_next_hour_boundary(self) -> bool:
        """First run at the next full hour, then hourly."""
        delay = seconds_until_next_hour(self._clock())
        return self._start(initial_delay=delay, interval_seconds=HOUR_SECONDS)

    def start_immediately(self) -> bool:
        """First run now, then hourly."""
        return self._start(initial_delay=0.0, interval_seconds=HOUR_SECONDS)

    def start_with_custom_interval(self, minutes: float) -> bool:
        """
        First run now, then every `minutes`.

        Raises:
            SchedulingError: If minutes is not a positive number
        """
        if not isinstance(minutes, (int, float)) or not math.isfinite(minutes) or minutes <= 0:
            raise SchedulingError(
                f"interval must be a positive number of minutes, got {minutes!r}",
                code=ErrorCode.SCHEDULER_INTERVAL,
            )
        return self._start(initial_delay=0.0, interval_seconds=minutes * 60.0)

    def _start(self, initial_delay: float, interval_seconds: float) -> bool:
        """Arm the trigger. Returns False if already running."""
        with self._lock:
            if self.state in (SchedulerState.RUNNING, SchedulerState.STOPPING):
                logger.warning(f"Scheduler '{self.name}' is already running")
                return False

            self._stop_event.clear()
            self._pending.clear()
            self.interval_seconds = interval_seconds
            self.next_run_at = self._clock() + timedelta(seconds=initial_delay)
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self.name}-worker")
            self._thread = threading.Thread(
                target=self._trigger_loop,
                args=(initial_delay, interval_seconds),
                name=f"{self.name}-trigger",
                daemon=True,
            )
            try:
                self._thread.start()
            except RuntimeError as e:
                self._executor.shutdown(wait=False)
                self._executor = None
                self._thread = None
                raise SchedulingError(f"could not start trigger thread: {e}", cause=e) from e

            self.state = SchedulerState.RUNNING

        logger.info(
            f"Scheduler '{self.name}' started: first run at {self.next_run_at:%Y-%m-%d %H:%M:%S}, "
            f"then every {interval_seconds / 60:g} min",
            extra={"scheduler": self.name, "interval_seconds": interval_seconds},
        )
        return True

    # ========================================================================
    # Running
    # ========================================================================

    def _trigger_loop(self, initial_delay: float, interval_seconds: float) -> None:
        # Tick k is due at anchor + k * interval on the monotonic clock
        anchor = time.monotonic() + initial_delay
        tick = 0
        while not self._stop_event.wait(max(0.0, anchor + tick * interval_seconds - time.monotonic())):
            self._submit_tick()
            tick += 1
            remaining = max(0.0, anchor + tick * interval_seconds - time.monotonic())
            with self._lock:
                self.next_run_at = self._clock() + timedelta(seconds=remaining)

    def _submit_tick(self) -> None:
        with self._lock:
            executor = self._executor
            if executor is None:
                return
            self._pending = {f for f in self._pending if not f.done()}
            if self.single_flight and self._pending:
                self.stats.skipped += 1
                logger.warning(f"Scheduler '{self.name}': previous run still in progress, tick skipped")
                return
            try:
                future = executor.submit(self.run_once)
            except RuntimeError:
                # Executor shut down between the stop check and submit
                return
            self._pending.add(future)

    def run_once(self) -> bool:
        """
        Run the task once, outside or inside the schedule.

        Failures are logged and counted, never raised.
        """
        started = self._clock()
        try:
            self._task()
        except Exception as e:
            with self._lock:
                self.stats.runs += 1
                self.stats.failures += 1
                self.stats.last_run_at = started
                self.stats.last_error = f"{type(e).__name__}: {e}"
            logger.exception(
                f"Scheduled run of '{self.name}' failed: {e}",
                extra={"scheduler": self.name},
            )
            return False

        with self._lock:
            self.stats.runs += 1
            self.stats.last_run_at = started
        logger.debug(f"Scheduled run of '{self.name}' completed")
        return True

    # ========================================================================
    # Stopping
    # ========================================================================

    def stop(self) -> None:
        """
        Stop triggering and wait for the in-flight run.

        Waits grace_seconds for pending runs, then cancels queued ones and
        waits force_seconds more. Calling stop on a stopped scheduler is a
        no-op.
        """
        with self._lock:
            if self.state != SchedulerState.RUNNING:
                logger.debug(f"Scheduler '{self.name}' is not running")
                return
            self.state = SchedulerState.STOPPING
            thread, executor = self._thread, self._executor

        logger.info(f"Stopping scheduler '{self.name}'")
        self._stop_event.set()
        if thread is not None:
            thread.join()

        if executor is not None:
            executor.shutdown(wait=False)
            with self._lock:
                pending = set(self._pending)
            _, not_done = wait(pending, timeout=self.grace_seconds)
            if not_done:
                logger.warning(
                    f"Scheduler '{self.name}': {len(not_done)} run(s) still pending after "
                    f"{self.grace_seconds:g}s, cancelling"
                )
                executor.shutdown(wait=False, cancel_futures=True)
                _, not_done = wait(not_done, timeout=self.force_seconds)
                if not_done:
                    logger.error(f"Scheduler '{self.name}': run did not finish, abandoning worker thread")

        with self._lock:
            self._thread = None
            self._executor = None
            self._pending.clear()
            self.next_run_at = None
            self.state = SchedulerState.STOPPED
        logger.info(f"Scheduler '{self.name}' stopped")

    def status(self) -> str:
        """One-line human readable state."""
        if not self.is_running:
            return f"Scheduler '{self.name}': {self.state.value}"
        next_run = f"{self.next_run_at:%Y-%m-%d %H:%M:%S}" if self.next_run_at else "-"
        return (
            f"Scheduler '{self.name}': running, next run {next_run}, "
            f"runs={self.stats.runs} failures={self.stats.failures} skipped={self.stats.skipped}"
        )
