"""Technical indicators over closing-price and OHLC series.

All functions are pure and return ``numpy`` float arrays aligned to the
trailing end of the input. Short inputs yield empty (or shorter) arrays
rather than raising, so callers check lengths before indexing.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from fxsignals.data.frames import bars_to_frame

if TYPE_CHECKING:
    import numpy.typing as npt

    from fxsignals.domain.models import PriceBar

    FloatArray = npt.NDArray[np.float64]

ATR_FALLBACK = 0.001


@dataclass(slots=True, frozen=True)
class MacdResult:
    macd: FloatArray
    signal: FloatArray
    histogram: FloatArray


def _as_array(prices: Sequence[float] | np.ndarray | pd.Series) -> FloatArray:
    return np.asarray(prices, dtype=np.float64).reshape(-1)


def _check_period(period: int) -> None:
    if period < 1:
        raise ValueError("period must be at least 1")


def sma(prices: Sequence[float] | np.ndarray | pd.Series, period: int) -> FloatArray:
    """Mean of each ``period``-wide window; length ``len(prices) - period + 1``."""
    _check_period(period)
    values = _as_array(prices)
    if values.size < period:
        return np.empty(0, dtype=np.float64)
    return sliding_window_view(values, period).mean(axis=1)


def ema(prices: Sequence[float] | np.ndarray | pd.Series, period: int) -> FloatArray:
    """Exponential average seeded with the SMA of the first ``period`` prices."""
    _check_period(period)
    values = _as_array(prices)
    if values.size < period:
        return np.empty(0, dtype=np.float64)

    multiplier = 2.0 / (period + 1)
    out = np.empty(values.size - period + 1, dtype=np.float64)
    out[0] = values[:period].mean()
    for i, price in enumerate(values[period:], start=1):
        out[i] = price * multiplier + out[i - 1] * (1.0 - multiplier)
    return out


def rsi(prices: Sequence[float] | np.ndarray | pd.Series, period: int = 14) -> FloatArray:
    """Relative strength index using plain windowed gain/loss averages.

    Each value re-averages the trailing ``period`` gains and losses (no
    Wilder smoothing). Length is ``len(prices) - period``.
    """
    _check_period(period)
    values = _as_array(prices)
    if values.size <= period:
        return np.empty(0, dtype=np.float64)

    changes = np.diff(values)
    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)
    avg_gain = sliding_window_view(gains, period).mean(axis=1)
    avg_loss = sliding_window_view(losses, period).mean(axis=1)

    out = np.full(avg_gain.size, 100.0)
    has_loss = avg_loss != 0.0
    relative_strength = avg_gain[has_loss] / avg_loss[has_loss]
    out[has_loss] = 100.0 - 100.0 / (1.0 + relative_strength)
    return out


def macd(
    prices: Sequence[float] | np.ndarray | pd.Series,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MacdResult:
    if fast >= slow:
        raise ValueError("fast period must be < slow period")
    fast_ema = ema(prices, fast)
    slow_ema = ema(prices, slow)
    if slow_ema.size == 0:
        empty = np.empty(0, dtype=np.float64)
        return MacdResult(macd=empty, signal=empty, histogram=empty)

    # both EMAs end on the last price; drop the fast EMA's extra head
    offset = slow - fast
    macd_line = fast_ema[offset:] - slow_ema
    signal_line = ema(macd_line, signal)
    histogram = macd_line[signal - 1 :][: signal_line.size] - signal_line
    return MacdResult(macd=macd_line, signal=signal_line, histogram=histogram)


def true_range(frame: pd.DataFrame) -> FloatArray:
    """True range of each bar after the first."""
    high = frame["high"].to_numpy(dtype=np.float64)
    low = frame["low"].to_numpy(dtype=np.float64)
    close = frame["close"].to_numpy(dtype=np.float64)
    prev_close = close[:-1]
    high = high[1:]
    low = low[1:]
    return np.maximum.reduce(
        [high - low, np.abs(high - prev_close), np.abs(low - prev_close)]
    )


def atr(bars: pd.DataFrame | Sequence[PriceBar], period: int = 14) -> float:
    """Simple average true range over the trailing ``period`` bars.

    The window of ``period`` bars yields ``period - 1`` true ranges. Fewer
    than two bars returns ``ATR_FALLBACK``.
    """
    _check_period(period)
    frame = bars if isinstance(bars, pd.DataFrame) else bars_to_frame(bars)
    window = frame.tail(period)
    if len(window) < 2:
        return ATR_FALLBACK
    return float(true_range(window).mean())
