"""Background scheduling for periodic reconciliation loops."""
import logging
import threading

import schedule

logger = logging.getLogger("proxywatch.scheduler")


class TickTimer:
    """Recurring timer: a private schedule.Scheduler polled by a daemon thread.

    Every due tick is handed to ``callback`` on the polling thread; the
    callback is expected to return quickly (LoopScheduler spawns a worker).
    """

    def __init__(self, callback, interval_seconds, poll_seconds=1.0, name="tick-timer"):
        self.interval = interval_seconds
        self.poll_seconds = poll_seconds
        self._scheduler = schedule.Scheduler()
        self._scheduler.every(interval_seconds).seconds.do(callback)
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run_loop, name=name, daemon=True)

    def start(self):
        self._thread.start()
        return self

    def cancel(self):
        self._stopped.set()
        self._scheduler.clear()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)

    @property
    def active(self) -> bool:
        return self._thread.is_alive() and not self._stopped.is_set()

    def _run_loop(self):
        while not self._stopped.is_set():
            self._scheduler.run_pending()
            self._stopped.wait(self.poll_seconds)


class LoopScheduler:
    """Start/stop lifecycle around a reconciliation function.

    Subclasses implement ``run_once()``. Ticks are fire-and-forget: each runs
    on its own worker thread, so a slow tick may overlap the next one unless
    ``skip_overlapping`` is set, in which case a tick that finds another
    still in flight is skipped.
    """

    name = "loop"

    def __init__(self, skip_overlapping=False, poll_seconds=1.0):
        self.skip_overlapping = skip_overlapping
        self.poll_seconds = poll_seconds
        self._timer = None
        self._busy = threading.Lock()
        self._tick_threads = []

    def run_once(self):
        raise NotImplementedError

    @property
    def is_running(self) -> bool:
        return self._timer is not None

    def start_timer(self, interval_seconds):
        """Run one tick now, then every ``interval_seconds``. Idempotent."""
        if self._timer is not None:
            logger.warning(f"{self.name} scheduler is already running")
            return self._timer

        self._spawn_tick()
        self._timer = TickTimer(self._spawn_tick, interval_seconds,
                                poll_seconds=self.poll_seconds,
                                name=f"{self.name}-timer").start()
        return self._timer

    def stop(self, handle=None):
        """Cancel future ticks; an in-flight tick runs to completion."""
        timer = handle or self._timer
        if timer is None:
            logger.warning(f"No {self.name} scheduler to stop")
            return
        timer.cancel()
        if timer is self._timer:
            self._timer = None
        logger.info(f"{self.name} scheduler stopped")

    def trigger_check(self):
        """Run one reconciliation synchronously; errors reach the caller."""
        logger.info(f"Manually triggering {self.name} check...")
        return self.run_once()

    def wait_for_ticks(self, timeout=None):
        """Join tick worker threads started so far."""
        for t in list(self._tick_threads):
            t.join(timeout)
        self._tick_threads = [t for t in self._tick_threads if t.is_alive()]

    def _spawn_tick(self):
        self._tick_threads = [t for t in self._tick_threads if t.is_alive()]
        worker = threading.Thread(target=self._tick, name=f"{self.name}-tick", daemon=True)
        self._tick_threads.append(worker)
        worker.start()

    def _tick(self):
        if self.skip_overlapping:
            if not self._busy.acquire(blocking=False):
                logger.info(f"{self.name} tick still in flight, skipping")
                return
            try:
                self._safe_run()
            finally:
                self._busy.release()
        else:
            self._safe_run()

    def _safe_run(self):
        try:
            self.run_once()
        except Exception as e:
            logger.error(f"{self.name} tick failed: {e}", exc_info=True)
