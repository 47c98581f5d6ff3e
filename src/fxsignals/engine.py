from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from threading import Lock
from typing import TYPE_CHECKING, TypeVar

from fxsignals.config import Settings
from fxsignals.data.mock_provider import MockMarketDataProvider
from fxsignals.errors import InsufficientDataError, TransientIOError
from fxsignals.signals import SignalRules, evaluate_pair

if TYPE_CHECKING:
    from fxsignals.data.base import MarketDataProvider, PriceHistorySource, SignalSink
    from fxsignals.domain.models import Signal
    from fxsignals.storage import SignalStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    TimeoutError,
    sqlite3.Error,
    TransientIOError,
)


class PairStatus(StrEnum):
    SIGNAL = "signal"
    NO_SIGNAL = "no_signal"
    INSUFFICIENT_DATA = "insufficient_data"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class PairOutcome:
    pair: str
    status: PairStatus
    signal: Signal | None = None
    detail: str | None = None


@dataclass(slots=True)
class BatchReport:
    started_at: datetime
    finished_at: datetime | None = None
    outcomes: list[PairOutcome] = field(default_factory=list)
    skipped: bool = False

    @property
    def signals(self) -> list[Signal]:
        return [o.signal for o in self.outcomes if o.signal is not None]

    def count(self, status: PairStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def to_payload(self) -> dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": None if self.finished_at is None else self.finished_at.isoformat(),
            "skipped": self.skipped,
            "signals_generated": len(self.signals),
            "outcomes": [
                {
                    "pair": o.pair,
                    "status": str(o.status),
                    "action": None if o.signal is None else str(o.signal.action),
                    "signal_id": None if o.signal is None else o.signal.signal_id,
                    "detail": o.detail,
                }
                for o in self.outcomes
            ],
        }


def _utc_now() -> datetime:
    return datetime.now(UTC)


def call_with_retries(
    operation: Callable[[], T],
    attempts: int,
    backoff_seconds: float,
    description: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run operation, retrying transient I/O errors up to ``attempts`` total tries."""
    if attempts <= 0:
        raise ValueError("attempts must be greater than zero")
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except RETRYABLE_ERRORS as exc:
            if attempt == attempts:
                raise
            logger.warning(
                "%s failed attempt=%s/%s error=%s", description, attempt, attempts, exc
            )
            sleep(backoff_seconds * attempt)
    raise AssertionError("unreachable")


class SignalEngine:
    """Runs one signal-generation pass over the configured pair universe."""

    def __init__(
        self,
        history: PriceHistorySource,
        sink: SignalSink,
        settings: Settings | None = None,
        rules: SignalRules | None = None,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.history = history
        self.sink = sink
        self.settings = settings or Settings()
        self.rules = rules or SignalRules()
        self.clock = clock
        self._sleep = sleep
        self._batch_lock = Lock()

    def generate_signals(self) -> BatchReport:
        started = self.clock()
        if not self._batch_lock.acquire(blocking=False):
            logger.warning("Signal batch already running, skipping overlapping run")
            return BatchReport(started_at=started, finished_at=started, skipped=True)

        try:
            pairs = list(self.settings.pairs)
            outcomes: list[PairOutcome] = []
            if pairs:
                workers = min(self.settings.max_workers, len(pairs))
                with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="signals") as pool:
                    outcomes = list(pool.map(self.process_pair, pairs))
            else:
                logger.warning("No pairs configured, nothing to evaluate")
            report = BatchReport(started_at=started, finished_at=self.clock(), outcomes=outcomes)
        finally:
            self._batch_lock.release()

        logger.info(
            "Signal batch finished pairs=%s signals=%s no_signal=%s insufficient=%s errors=%s",
            len(report.outcomes),
            report.count(PairStatus.SIGNAL),
            report.count(PairStatus.NO_SIGNAL),
            report.count(PairStatus.INSUFFICIENT_DATA),
            report.count(PairStatus.ERROR),
        )
        return report

    def process_pair(self, pair: str) -> PairOutcome:
        try:
            return self._process_pair(pair)
        except InsufficientDataError as exc:
            logger.info("No signal for pair=%s: %s", pair, exc)
            return PairOutcome(pair=pair, status=PairStatus.INSUFFICIENT_DATA, detail=str(exc))
        except Exception as exc:
            logger.exception("Error generating signal for pair=%s", pair)
            return PairOutcome(pair=pair, status=PairStatus.ERROR, detail=str(exc))

    def _process_pair(self, pair: str) -> PairOutcome:
        end = self.clock()
        start = end - timedelta(hours=self.settings.history_hours)
        attempts = self.settings.io_retries + 1
        bars = call_with_retries(
            lambda: self.history.get_price_history(pair, start, end),
            attempts=attempts,
            backoff_seconds=self.settings.io_retry_backoff_seconds,
            description=f"fetch history pair={pair}",
            sleep=self._sleep,
        )

        candidate = evaluate_pair(pair, bars, self.rules, now=end)
        if candidate is None:
            return PairOutcome(pair=pair, status=PairStatus.NO_SIGNAL)

        saved = call_with_retries(
            lambda: self.sink.save_signal(candidate),
            attempts=attempts,
            backoff_seconds=self.settings.io_retry_backoff_seconds,
            description=f"save signal pair={pair}",
            sleep=self._sleep,
        )
        logger.info(
            "Generated signal pair=%s action=%s entry=%s stop_loss=%s take_profit=%s "
            "confidence=%s signal_id=%s",
            pair,
            saved.action,
            saved.entry_price,
            saved.stop_loss_price,
            saved.take_profit_price,
            saved.confidence,
            saved.signal_id,
        )
        return PairOutcome(pair=pair, status=PairStatus.SIGNAL, signal=saved)


def generate_mock_market_data(
    storage: SignalStorage,
    settings: Settings | None = None,
    provider: MarketDataProvider | None = None,
) -> dict[str, int]:
    """Seed storage with synthetic hourly bars for every configured pair."""
    cfg = settings or Settings()
    feed = provider or MockMarketDataProvider(seed=cfg.mock_seed)
    period = f"{cfg.history_hours}h"
    inserted: dict[str, int] = {}
    for pair in cfg.pairs:
        bars = feed.fetch_price_bars(pair, period=period, interval=cfg.history_interval)
        inserted[pair] = storage.insert_market_data(bars)
        logger.info("Seeded market data pair=%s bars=%s", pair, inserted[pair])
    return inserted

