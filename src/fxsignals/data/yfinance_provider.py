from __future__ import annotations

from typing import Any, cast

import pandas as pd
import yfinance as yf  # type: ignore[import-untyped]

from fxsignals.data.base import MarketDataProvider
from fxsignals.data.frames import OHLCV_COLUMNS, frame_to_bars
from fxsignals.domain.models import PriceBar


def pair_to_ticker(pair: str) -> str:
    """Map ``EUR/USD`` to the Yahoo Finance FX ticker ``EURUSD=X``."""
    base, sep, quote = pair.strip().upper().partition("/")
    if not sep or len(base) != 3 or len(quote) != 3:
        raise ValueError(f"Unsupported currency pair: {pair!r}")
    return f"{base}{quote}=X"


class YFinanceProvider(MarketDataProvider):
    def _download(self, ticker: str, period: str, interval: str) -> pd.DataFrame:
        frame = cast(
            pd.DataFrame,
            yf.download(
                ticker,
                period=period,
                interval=interval,
                progress=False,
                auto_adjust=True,
                threads=False,
            ),
        )
        if not frame.empty:
            return frame

        return cast(
            pd.DataFrame,
            yf.Ticker(ticker).history(period=period, interval=interval, auto_adjust=True),
        )

    def fetch_price_bars(
        self,
        pair: str,
        period: str = "5d",
        interval: str = "1h",
    ) -> list[PriceBar]:
        normalized_pair = pair.strip().upper()
        ticker = pair_to_ticker(normalized_pair)
        frame = self._download(ticker, period=period, interval=interval)
        if frame.empty:
            raise ValueError(
                f"No data returned for pair={normalized_pair} period={period} interval={interval}"
            )

        if isinstance(frame.columns, pd.MultiIndex):
            frame.columns = frame.columns.get_level_values(0)

        normalized = frame.rename(columns=str.lower)
        if "volume" not in normalized.columns:
            normalized["volume"] = 0
        missing = set(OHLCV_COLUMNS).difference(normalized.columns)
        if missing:
            raise ValueError(f"Missing expected columns: {sorted(missing)}")

        result: Any = normalized[OHLCV_COLUMNS].dropna(subset=["open", "high", "low", "close"])
        return frame_to_bars(normalized_pair, cast(pd.DataFrame, result))
