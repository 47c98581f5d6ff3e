from __future__ import annotations

import logging
from threading import Event, Thread

from fxsignals.engine import BatchReport, SignalEngine

logger = logging.getLogger(__name__)


class SignalScheduler:
    """Runs a signal batch after an initial delay, then on a fixed interval.

    Batches run one after another on a single thread, so a slow batch delays
    the next one instead of overlapping it.
    """

    def __init__(
        self,
        engine: SignalEngine,
        interval_seconds: float,
        initial_delay_seconds: float = 5.0,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be greater than zero")
        if initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be non-negative")
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._stop = Event()
        self._thread: Thread | None = None
        self.batches_run = 0

    def run_once(self) -> BatchReport | None:
        try:
            report = self.engine.generate_signals()
        except Exception:
            logger.exception("Scheduled signal batch failed")
            return None
        self.batches_run += 1
        return report

    def run_forever(self) -> None:
        if self._stop.wait(self.initial_delay_seconds):
            return
        while not self._stop.is_set():
            self.run_once()
            if self._stop.wait(self.interval_seconds):
                break
        logger.info("Signal scheduler stopped after batches=%s", self.batches_run)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("scheduler already running")
        self._stop.clear()
        self._thread = Thread(target=self.run_forever, name="signal-scheduler", daemon=True)
        self._thread.start()
        logger.info(
            "Signal scheduler started interval_seconds=%s initial_delay_seconds=%s",
            self.interval_seconds,
            self.initial_delay_seconds,
        )

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
