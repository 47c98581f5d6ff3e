from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

import fxsignals.signals as signals_mod
from fxsignals.domain.models import Action, PriceBar, SignalStatus, to_price
from fxsignals.errors import InsufficientDataError
from fxsignals.indicators import ATR_FALLBACK
from fxsignals.signals import (
    ConditionScore,
    IndicatorSnapshot,
    SignalRules,
    build_snapshot,
    confidence_for,
    decide,
    evaluate_pair,
    price_levels,
    score_conditions,
)

START = datetime(2026, 1, 1, tzinfo=UTC)


def _bars(closes: list[float], pair: str = "EUR/USD") -> list[PriceBar]:
    bars: list[PriceBar] = []
    previous = closes[0]
    for i, close in enumerate(closes):
        open_price = to_price(previous)
        close_price = to_price(close)
        bars.append(
            PriceBar(
                pair=pair,
                timestamp=START + timedelta(hours=i),
                open=open_price,
                high=max(open_price, close_price) + to_price(0.0002),
                low=min(open_price, close_price) - to_price(0.0002),
                close=close_price,
                volume=1_000,
            )
        )
        previous = close
    return bars


def _expected_atr(bars: list[PriceBar]) -> float:
    ranges = []
    for previous, current in zip(bars, bars[1:], strict=False):
        high, low, prev_close = float(current.high), float(current.low), float(previous.close)
        ranges.append(max(high - low, abs(high - prev_close), abs(low - prev_close)))
    return sum(ranges) / len(ranges)


def _snapshot(**overrides: float) -> IndicatorSnapshot:
    values = {
        "close": 1.1,
        "sma_fast": 1.1,
        "sma_slow": 1.1,
        "rsi": 50.0,
        "macd_histogram": 0.0,
        "atr": 0.001,
    }
    values.update(overrides)
    return IndicatorSnapshot(**values)


def test_accelerating_uptrend_emits_buy() -> None:
    closes = [1.1 + 0.0005 * i + 0.00001 * i * i for i in range(60)]
    bars = _bars(closes)

    signal = evaluate_pair("EUR/USD", bars, now=START)

    assert signal is not None
    assert signal.action == Action.BUY
    assert signal.status == SignalStatus.ACTIVE
    assert signal.entry_price == bars[-1].close
    average_true_range = _expected_atr(bars[-14:])
    entry = float(signal.entry_price)
    assert float(signal.stop_loss_price) == pytest.approx(entry - 1.5 * average_true_range, abs=1e-5)
    assert float(signal.take_profit_price) == pytest.approx(
        entry + 1.5 * 1.5 * average_true_range, abs=1e-5
    )
    assert signal.stop_loss_price < signal.entry_price < signal.take_profit_price
    # RSI is pinned at 100 so only three bullish rules match
    assert signal.confidence == 90


def test_accelerating_downtrend_emits_sell() -> None:
    closes = [1.3 - 0.0005 * i - 0.00001 * i * i for i in range(60)]

    signal = evaluate_pair("GBP/USD", _bars(closes, pair="GBP/USD"))

    assert signal is not None
    assert signal.action == Action.SELL
    assert signal.take_profit_price < signal.entry_price < signal.stop_loss_price
    assert 75 <= signal.confidence <= 95


def test_flat_series_emits_nothing() -> None:
    assert evaluate_pair("EUR/USD", _bars([1.25] * 60)) is None


def test_linear_uptrend_has_flat_macd_and_emits_nothing() -> None:
    # constant step: both EMAs settle to a fixed spread, so the histogram is rounding noise
    bars = _bars([1.1 + 0.0005 * i for i in range(60)])

    snapshot = build_snapshot(bars)
    score = score_conditions(snapshot)

    assert snapshot.sma_fast > snapshot.sma_slow
    assert snapshot.close > snapshot.sma_fast
    assert snapshot.rsi == 100.0
    assert abs(snapshot.macd_histogram) < 1e-12
    assert score.bullish == 2
    assert evaluate_pair("EUR/USD", bars) is None


def test_fewer_than_min_bars_raises_insufficient_data() -> None:
    closes = [1.1 + 0.0005 * i for i in range(49)]
    with pytest.raises(InsufficientDataError) as excinfo:
        evaluate_pair("EUR/USD", _bars(closes))
    assert excinfo.value.available == 49
    assert excinfo.value.required == 50


def test_neutral_snapshot_scores_below_threshold() -> None:
    score = score_conditions(_snapshot())
    assert score == ConditionScore(bullish=1, bearish=1)
    assert decide(score) is None


def test_rsi_mid_band_counts_for_both_sides() -> None:
    inside = score_conditions(_snapshot(rsi=55.0))
    outside = score_conditions(_snapshot(rsi=75.0))
    assert inside.bullish - outside.bullish == 1
    assert inside.bearish - outside.bearish == 1


def test_all_bullish_rules_give_max_confidence() -> None:
    snapshot = _snapshot(close=1.12, sma_fast=1.11, sma_slow=1.10, macd_histogram=0.0004)
    score = score_conditions(snapshot)
    assert score == ConditionScore(bullish=4, bearish=1)
    assert decide(score) == (Action.BUY, 95)


def test_bearish_rules_give_sell() -> None:
    snapshot = _snapshot(close=1.08, sma_fast=1.09, sma_slow=1.10, macd_histogram=-0.0004, rsi=20)
    assert decide(score_conditions(snapshot)) == (Action.SELL, 90)


def test_confidence_is_capped() -> None:
    assert confidence_for(3) == 90
    assert confidence_for(4) == 95
    assert confidence_for(10) == 95


def test_price_levels_keep_one_to_one_and_a_half() -> None:
    stop, take = price_levels(Action.BUY, 1.1, 0.002)
    assert stop == pytest.approx(1.097)
    assert take == pytest.approx(1.1045)

    stop, take = price_levels(Action.SELL, 1.1, 0.002)
    assert stop == pytest.approx(1.103)
    assert take == pytest.approx(1.0955)


def test_zero_volatility_uses_atr_floor(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(signals_mod, "atr", lambda *args, **kwargs: 0.0)
    closes = [1.1 + 0.0005 * i + 0.00001 * i * i for i in range(60)]

    signal = evaluate_pair("EUR/USD", _bars(closes))

    assert signal is not None
    risk = signal.entry_price - signal.stop_loss_price
    assert float(risk) == pytest.approx(ATR_FALLBACK * 1.5, abs=1e-5)


def test_rules_reject_inverted_sma_windows() -> None:
    with pytest.raises(ValueError, match="sma_fast"):
        SignalRules(sma_fast=50, sma_slow=20)
