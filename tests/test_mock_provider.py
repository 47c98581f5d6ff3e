from __future__ import annotations

from datetime import UTC, datetime

import pytest

from fxsignals.data.mock_provider import BASE_PRICES, MockMarketDataProvider

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def test_mock_bars_are_well_formed() -> None:
    provider = MockMarketDataProvider(seed=11, clock=lambda: NOW)

    bars = provider.fetch_price_bars("USD/JPY", period="100h", interval="1h")

    assert len(bars) == 100
    assert bars[0].timestamp == datetime(2026, 2, 26, 8, 0, tzinfo=UTC)
    assert bars[-1].timestamp == datetime(2026, 3, 2, 11, 0, tzinfo=UTC)
    for previous, current in zip(bars, bars[1:], strict=False):
        assert previous.timestamp < current.timestamp
    for bar in bars:
        assert bar.pair == "USD/JPY"
        assert bar.high >= max(bar.open, bar.close)
        assert bar.low <= min(bar.open, bar.close)
        assert bar.volume >= 0
    assert abs(float(bars[0].open) - BASE_PRICES["USD/JPY"]) < 1.0


def test_mock_bars_are_reproducible_per_pair() -> None:
    first = MockMarketDataProvider(seed=5, clock=lambda: NOW)
    second = MockMarketDataProvider(seed=5, clock=lambda: NOW)

    second.fetch_price_bars("GBP/USD")
    assert first.fetch_price_bars("EUR/USD") == second.fetch_price_bars("EUR/USD")
    assert first.fetch_price_bars("EUR/USD") != first.fetch_price_bars("GBP/USD")


def test_mock_unknown_pair_uses_default_base_price() -> None:
    bars = MockMarketDataProvider(seed=1, clock=lambda: NOW).fetch_price_bars("ABC/XYZ", "10h")
    assert float(bars[0].open) == pytest.approx(1.0)


def test_mock_rejects_period_shorter_than_interval() -> None:
    with pytest.raises(ValueError, match="period"):
        MockMarketDataProvider(seed=1).fetch_price_bars("EUR/USD", period="30min", interval="1h")
