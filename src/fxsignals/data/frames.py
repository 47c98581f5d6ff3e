from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC

import pandas as pd

from fxsignals.domain.models import PriceBar, to_price

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]


def bars_to_frame(bars: Sequence[PriceBar]) -> pd.DataFrame:
    """Float OHLCV frame indexed by timestamp, in input order."""
    frame = pd.DataFrame(
        {
            "open": [float(bar.open) for bar in bars],
            "high": [float(bar.high) for bar in bars],
            "low": [float(bar.low) for bar in bars],
            "close": [float(bar.close) for bar in bars],
            "volume": [int(bar.volume) for bar in bars],
        },
        index=pd.DatetimeIndex([bar.timestamp for bar in bars], name="timestamp"),
        columns=OHLCV_COLUMNS,
    )
    return frame


def frame_to_bars(pair: str, frame: pd.DataFrame) -> list[PriceBar]:
    missing = set(OHLCV_COLUMNS).difference(frame.columns)
    if missing:
        raise ValueError(f"Missing expected columns: {sorted(missing)}")

    bars: list[PriceBar] = []
    for timestamp, row in frame.sort_index().iterrows():
        ts = pd.Timestamp(timestamp)
        ts = ts.tz_localize(UTC) if ts.tzinfo is None else ts.tz_convert(UTC)
        open_price = to_price(float(row["open"]))
        close_price = to_price(float(row["close"]))
        volume = row["volume"]
        bars.append(
            PriceBar(
                pair=pair,
                timestamp=ts.to_pydatetime(),
                open=open_price,
                high=max(to_price(float(row["high"])), open_price, close_price),
                low=min(to_price(float(row["low"])), open_price, close_price),
                close=close_price,
                volume=0 if pd.isna(volume) else max(0, int(volume)),
            )
        )
    return bars
