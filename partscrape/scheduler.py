"""Recurring and on-demand job scheduling.

`ScrapeScheduler` owns two recurring timers (full crawl, price refresh)
and a thread pool that runs the jobs. Timer firings and manual triggers
both create a PENDING job row and hand it to the pool. Stopping the
scheduler cancels future firings only; jobs already running finish.

Overlapping runs for the same vendor are allowed. Upserts make them safe,
at the cost of possibly two price history points for the same moment.
`is_running()` reports whether a scope is in flight.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from partscrape.config import (
    DB_PATH,
    FULL_SCRAPE_INTERVAL,
    PRICE_UPDATE_INTERVAL,
    SCHEDULER_MAX_WORKERS,
)
from partscrape.db import now_timestamp, update_job
from partscrape.errors import SchedulerShutdownError
from partscrape.logging_config import get_logger, log_scrape_event
from partscrape.models import JobStatus
from partscrape.workflows import create_pending_job, run_job

__all__ = ["ScrapeScheduler"]

logger = get_logger("scheduler")

JobRunner = Callable[[str, int], Any]


class ScrapeScheduler:
    """Process-scoped scheduler. Create once at startup, `shutdown()` on exit."""

    def __init__(
        self,
        db_path: str = DB_PATH,
        full_interval: float = FULL_SCRAPE_INTERVAL,
        price_interval: float = PRICE_UPDATE_INTERVAL,
        max_workers: int = SCHEDULER_MAX_WORKERS,
        runner: Optional[JobRunner] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db_path = db_path
        self.intervals = {"full": full_interval, "price": price_interval}
        self._runner = runner or run_job
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="scrape-job")
        self._lock = threading.Lock()
        self._running = False
        self._timers: Dict[str, threading.Timer] = {}
        self._next_run: Dict[str, Optional[float]] = {"full": None, "price": None}
        self._in_flight: Dict[int, Tuple[str, str, Future]] = {}
        self._closed = False

    # ------------------------------------------------------------------
    # Recurring timers
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Arm both recurring timers. Returns False if already running."""
        with self._lock:
            if self._closed:
                raise SchedulerShutdownError("Scheduler has been shut down")
            if self._running:
                return False
            self._running = True
            for kind in self.intervals:
                self._arm(kind)
        logger.info(
            f"Scheduler started (full every {self.intervals['full']:.0f}s, "
            f"price every {self.intervals['price']:.0f}s)"
        )
        return True

    def stop(self) -> bool:
        """Cancel future firings. Running jobs are not interrupted."""
        with self._lock:
            if not self._running:
                return False
            self._running = False
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._next_run = {kind: None for kind in self.intervals}
        logger.info("Scheduler stopped")
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Stop the timers and release the worker pool."""
        with self._lock:
            self._closed = True
        self.stop()
        self._executor.shutdown(wait=wait)

    def _arm(self, kind: str) -> None:
        # Caller holds the lock
        interval = self.intervals[kind]
        timer = threading.Timer(interval, self._fire, args=(kind,))
        timer.daemon = True
        timer.name = f"scrape-timer-{kind}"
        self._timers[kind] = timer
        self._next_run[kind] = self._clock() + interval
        timer.start()

    def _fire(self, kind: str) -> None:
        with self._lock:
            if not self._running:
                return
            self._arm(kind)

        log_scrape_event("scheduler_fire", {
            "message": f"Scheduled {kind} run firing",
            "kind": kind,
        }, logger_name="scheduler")
        try:
            if kind == "full":
                self.trigger_full()
            else:
                self.trigger_price_update()
        except Exception:
            logger.exception(f"Scheduled {kind} run could not be started")

    # ------------------------------------------------------------------
    # Manual triggers
    # ------------------------------------------------------------------

    def trigger_full(self, vendor: str = "all", category: str = "all") -> int:
        """Queue a full crawl now. Returns the PENDING job id.

        Raises SchedulerShutdownError after `shutdown()`.
        """
        self._ensure_open()
        job_id = create_pending_job(self.db_path, vendor=vendor, category=category, job_type="full")
        self._submit(job_id, vendor, "full")
        return job_id

    def trigger_price_update(self, vendor: str = "all") -> int:
        """Queue a price-only refresh now. Returns the PENDING job id."""
        self._ensure_open()
        job_id = create_pending_job(self.db_path, vendor=vendor, job_type="price")
        self._submit(job_id, vendor, "price")
        return job_id

    def _ensure_open(self) -> None:
        if self._closed:
            raise SchedulerShutdownError("Scheduler has been shut down")

    def _submit(self, job_id: int, vendor: str, kind: str) -> None:
        try:
            future = self._executor.submit(self._run, job_id)
        except RuntimeError as e:
            # Shut down between the check and the submit: the row must not stay PENDING
            update_job(
                self.db_path,
                job_id,
                status=JobStatus.FAILED,
                completed_at=now_timestamp(),
                error_message="Scheduler shut down before the job started",
            )
            raise SchedulerShutdownError("Scheduler has been shut down") from e
        with self._lock:
            self._in_flight[job_id] = (vendor, kind, future)
        future.add_done_callback(lambda _f: self._forget(job_id))

    def _forget(self, job_id: int) -> None:
        with self._lock:
            self._in_flight.pop(job_id, None)

    def _run(self, job_id: int) -> Any:
        try:
            return self._runner(self.db_path, job_id)
        except Exception:
            logger.exception(f"Job {job_id} crashed in the worker pool")
            raise

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    def active_jobs(self) -> List[int]:
        with self._lock:
            return sorted(job_id for job_id, (_, _, f) in self._in_flight.items() if not f.done())

    def is_running(self, vendor: str = "all") -> bool:
        """True when a job covering `vendor` is queued or running."""
        with self._lock:
            scopes = [v for v, _, f in self._in_flight.values() if not f.done()]
        if vendor == "all":
            return bool(scopes)
        return any(v == "all" or v.lower() == vendor.lower() for v in scopes)

    def wait_for(self, job_id: int, timeout: Optional[float] = None) -> Any:
        """Block until an in-flight job finishes. Returns None if it already has."""
        with self._lock:
            entry = self._in_flight.get(job_id)
        if entry is None:
            return None
        return entry[2].result(timeout=timeout)

    def _format_time(self, ts: Optional[float]) -> Optional[str]:
        if ts is None:
            return None
        return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            next_full = self._next_run.get("full")
            next_price = self._next_run.get("price")
            running = self._running
        return {
            "running": running,
            "next_full_run": self._format_time(next_full),
            "next_price_run": self._format_time(next_price),
            "active_jobs": self.active_jobs(),
        }
