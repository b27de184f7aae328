import logging
import threading
from datetime import date, datetime
from typing import Callable

from models.process_result import ProcessResult
from services.processing_service import ProcessingService
from utils.constants import DEFAULT_RUN_AT
from utils.date_helpers import parse_time_of_day, seconds_until

logger = logging.getLogger(__name__)


class RecurringScheduler:
    """Runs the recurring sweep once a day at a fixed local time.

    run_once() is also the manual entry point. Runs never overlap: a call
    arriving while another sweep is in flight is skipped.
    """

    def __init__(
        self,
        processor: ProcessingService,
        run_at: str = DEFAULT_RUN_AT,
        now: Callable[[], datetime] = datetime.now,
    ):
        run_time = parse_time_of_day(run_at)
        if run_time is None:
            raise ValueError(f"Invalid run time {run_at!r}; expected HH:MM.")
        self._processor = processor
        self._run_at = run_time
        self._now = now
        self._run_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def seconds_until_next_run(self, now: datetime | None = None) -> float:
        return seconds_until(self._run_at, now or self._now())

    def run_once(self, as_of: date | None = None) -> ProcessResult | None:
        """Sweep once. Returns None if skipped (overlap) or if the sweep failed."""
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Recurring sweep already in progress; skipping this run")
            return None
        try:
            return self._processor.process_all(as_of, stop_event=self._stop)
        except Exception:
            logger.exception("Recurring sweep failed; will retry at the next scheduled run")
            return None
        finally:
            self._run_lock.release()

    def start(self):
        """Launch the daily thread. A no-op once stop() has been requested."""
        if self.is_running:
            return
        if self._stop.is_set():
            logger.info("Recurring scheduler stop already requested; not starting")
            return
        self._thread = threading.Thread(
            target=self._loop, name="recurring-scheduler", daemon=True,
        )
        self._thread.start()
        logger.info(
            "Recurring scheduler started; daily run at %s", self._run_at.strftime("%H:%M"),
        )

    def stop(self, timeout: float | None = None):
        """Stop waiting for ticks. An in-flight template finishes before the
        sweep returns; templates not yet reached stay due."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Recurring scheduler stopped")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until stop() is called. True if stopped."""
        return self._stop.wait(timeout)

    def _loop(self):
        while True:
            delay = self.seconds_until_next_run()
            logger.debug("Next recurring sweep in %.0f seconds", delay)
            if self._stop.wait(delay):
                break
            self.run_once()
