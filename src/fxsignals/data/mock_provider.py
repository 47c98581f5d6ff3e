from __future__ import annotations

import zlib
from collections.abc import Callable
from datetime import UTC, datetime

import numpy as np
import pandas as pd

from fxsignals.data.base import MarketDataProvider
from fxsignals.data.frames import frame_to_bars
from fxsignals.domain.models import PriceBar

BASE_PRICES: dict[str, float] = {
    "EUR/USD": 1.0850,
    "GBP/USD": 1.2650,
    "USD/JPY": 149.80,
    "AUD/USD": 0.6720,
    "GBP/JPY": 183.20,
    "EUR/GBP": 0.8620,
    "USD/CHF": 0.9180,
    "NZD/USD": 0.6180,
}
DEFAULT_BASE_PRICE = 1.0


def _utc_now() -> datetime:
    return datetime.now(UTC)


class MockMarketDataProvider(MarketDataProvider):
    """Synthetic candles from a geometric random walk around a per-pair base price.

    With a seed, each pair gets its own reproducible stream regardless of the
    order pairs are requested in.
    """

    def __init__(
        self,
        seed: int | None = None,
        volatility: float = 0.002,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if volatility <= 0:
            raise ValueError("volatility must be greater than zero")
        self.seed = seed
        self.volatility = volatility
        self.clock = clock

    def fetch_price_bars(
        self,
        pair: str,
        period: str = "100h",
        interval: str = "1h",
    ) -> list[PriceBar]:
        step = pd.Timedelta(interval)
        span = pd.Timedelta(period)
        if step <= pd.Timedelta(0):
            raise ValueError("interval must be positive")
        if span < step:
            raise ValueError("period must cover at least one interval")

        count = int(span / step)
        now = pd.Timestamp(self.clock())
        index = pd.DatetimeIndex([now - step * (count - i) for i in range(count)])

        rng = self._rng(pair)
        base = BASE_PRICES.get(pair, DEFAULT_BASE_PRICE)
        closes = base * np.exp(np.cumsum(rng.normal(0.0, self.volatility, count)))
        opens = np.concatenate(([base], closes[:-1]))
        wicks = rng.random((2, count)) * self.volatility * 0.5
        frame = pd.DataFrame(
            {
                "open": opens,
                "high": np.maximum(opens, closes) * (1.0 + wicks[0]),
                "low": np.minimum(opens, closes) * (1.0 - wicks[1]),
                "close": closes,
                "volume": rng.integers(0, 1_000_000, count),
            },
            index=index,
        )
        return frame_to_bars(pair, frame)

    def _rng(self, pair: str) -> np.random.Generator:
        if self.seed is None:
            return np.random.default_rng()
        return np.random.default_rng([self.seed, zlib.crc32(pair.encode("utf-8"))])
