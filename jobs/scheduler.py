"""
Daily trigger for the analysis job.

Runs the job once a day at a fixed server-local time (06:00 by default). Runs never overlap:
a trigger that fires while the previous run is still going is skipped.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class DailySchedule:
    """A fixed time of day, evaluated in the timezone of the datetimes passed in."""

    def __init__(self, hour: int = 6, minute: int = 0):
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"Invalid time of day: {hour:02d}:{minute:02d}")
        self.hour = hour
        self.minute = minute

    @classmethod
    def parse(cls, value: str) -> 'DailySchedule':
        """Build from 'HH:MM'."""
        try:
            hour, minute = (int(part) for part in value.strip().split(':'))
        except ValueError as ex:
            raise ValueError(f"Expected HH:MM, got {value!r}") from ex
        return cls(hour, minute)

    def next_run(self, after: datetime) -> datetime:
        """First occurrence strictly after `after`."""
        candidate = after.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if candidate <= after:
            candidate += timedelta(days=1)
        return candidate

    def __repr__(self):
        return f"DailySchedule({self.hour:02d}:{self.minute:02d})"


def _local_now() -> datetime:
    # server-local wall clock, so 06:00 means 06:00 where the scheduler runs
    return datetime.now().astimezone()


class AnalysisScheduler:
    """Runs `job(now)` at every occurrence of `schedule` until stop() is called."""

    def __init__(self, job: Callable[[datetime], object], schedule: Optional[DailySchedule] = None, clock: Callable[[], datetime] = _local_now):
        self.job = job
        self.schedule = schedule or DailySchedule()
        self.clock = clock
        self._run_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.total_runs = 0
        self.total_failures = 0
        self.last_error: Optional[str] = None

    def run_once(self) -> bool:
        """Run the job now unless a run is already in progress. Returns True if the job ran."""
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Previous analysis still running; skipping this trigger")
            return False
        try:
            now = self.clock()
            logger.info("Running scheduled story analysis at %s", now.isoformat())
            self.total_runs += 1
            try:
                self.job(now)
            except Exception as ex:  # keep the schedule alive; the next trigger retries
                self.total_failures += 1
                self.last_error = str(ex)
                logger.exception("Error during scheduled analysis")
            else:
                self.last_error = None
                logger.info("Story analysis completed successfully")
            return True
        finally:
            self._run_lock.release()

    def run_forever(self):
        """Block, running the job on schedule until stop() is called."""
        logger.info("Scheduler started (%r)", self.schedule)
        while not self._stop.is_set():
            next_at = self.schedule.next_run(self.clock())
            wait = max(0.0, (next_at - self.clock()).total_seconds())
            logger.debug("Next analysis at %s (in %.0fs)", next_at.isoformat(), wait)
            if self._stop.wait(wait):
                break
            self.run_once()
        logger.info("Scheduler stopped")

    def start(self) -> threading.Thread:
        """Run the schedule on a daemon thread."""
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name='story-analysis-scheduler', daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
