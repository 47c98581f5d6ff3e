"""Rule-based BUY/SELL decision over the latest indicator readings."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from fxsignals.data.frames import bars_to_frame
from fxsignals.domain.models import (
    PRICE_QUANTUM,
    Action,
    PriceBar,
    Signal,
    SignalStatus,
    to_price,
)
from fxsignals.errors import InsufficientDataError
from fxsignals.indicators import ATR_FALLBACK, atr, macd, rsi, sma

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SignalRules:
    min_bars: int = 50
    sma_fast: int = 20
    sma_slow: int = 50
    rsi_period: int = 14
    rsi_lower: float = 30.0
    rsi_upper: float = 70.0
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    atr_period: int = 14
    atr_multiplier: float = 1.5
    risk_reward: float = 1.5
    min_conditions: int = 3
    base_confidence: int = 75
    confidence_step: int = 5
    max_confidence: int = 95

    def __post_init__(self) -> None:
        if self.sma_fast >= self.sma_slow:
            raise ValueError("sma_fast must be < sma_slow")
        if self.min_bars < self.sma_slow:
            raise ValueError("min_bars must cover the slow SMA window")
        if not 0 <= self.rsi_lower < self.rsi_upper <= 100:
            raise ValueError("rsi band must satisfy 0 <= lower < upper <= 100")
        if self.atr_multiplier <= 0 or self.risk_reward <= 0:
            raise ValueError("atr_multiplier and risk_reward must be greater than zero")
        if not 0 <= self.max_confidence <= 100:
            raise ValueError("max_confidence must be within [0, 100]")


@dataclass(slots=True, frozen=True)
class IndicatorSnapshot:
    close: float
    sma_fast: float
    sma_slow: float
    rsi: float
    macd_histogram: float
    atr: float


@dataclass(slots=True, frozen=True)
class ConditionScore:
    bullish: int
    bearish: int


def build_snapshot(
    bars: Sequence[PriceBar],
    rules: SignalRules | None = None,
    pair: str = "",
) -> IndicatorSnapshot:
    cfg = rules or SignalRules()
    if len(bars) < cfg.min_bars:
        raise InsufficientDataError(pair, len(bars), cfg.min_bars)

    frame = bars_to_frame(bars)
    closes = frame["close"].to_numpy()
    sma_fast = sma(closes, cfg.sma_fast)
    sma_slow = sma(closes, cfg.sma_slow)
    rsi_values = rsi(closes, cfg.rsi_period)
    histogram = macd(closes, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal).histogram
    if min(sma_fast.size, sma_slow.size, rsi_values.size, histogram.size) == 0:
        required = max(cfg.sma_slow, cfg.rsi_period + 1, cfg.macd_slow + cfg.macd_signal - 1)
        raise InsufficientDataError(pair, len(bars), required)

    return IndicatorSnapshot(
        close=float(closes[-1]),
        sma_fast=float(sma_fast[-1]),
        sma_slow=float(sma_slow[-1]),
        rsi=float(rsi_values[-1]),
        macd_histogram=float(histogram[-1]),
        atr=atr(frame, cfg.atr_period),
    )


def score_conditions(
    snapshot: IndicatorSnapshot,
    rules: SignalRules | None = None,
) -> ConditionScore:
    cfg = rules or SignalRules()
    # the mid-band RSI check counts for both sides
    rsi_neutral = cfg.rsi_lower < snapshot.rsi < cfg.rsi_upper
    bullish = [
        snapshot.sma_fast > snapshot.sma_slow,
        rsi_neutral,
        snapshot.macd_histogram > 0,
        snapshot.close > snapshot.sma_fast,
    ]
    bearish = [
        snapshot.sma_fast < snapshot.sma_slow,
        rsi_neutral,
        snapshot.macd_histogram < 0,
        snapshot.close < snapshot.sma_fast,
    ]
    return ConditionScore(bullish=sum(bullish), bearish=sum(bearish))


def confidence_for(matched: int, rules: SignalRules | None = None) -> int:
    cfg = rules or SignalRules()
    return min(cfg.max_confidence, cfg.base_confidence + cfg.confidence_step * matched)


def decide(
    score: ConditionScore,
    rules: SignalRules | None = None,
) -> tuple[Action, int] | None:
    cfg = rules or SignalRules()
    if score.bullish >= cfg.min_conditions:
        return Action.BUY, confidence_for(score.bullish, cfg)
    if score.bearish >= cfg.min_conditions:
        return Action.SELL, confidence_for(score.bearish, cfg)
    return None


def price_levels(
    action: Action,
    entry: float,
    average_true_range: float,
    rules: SignalRules | None = None,
) -> tuple[float, float]:
    """Return ``(stop_loss, take_profit)`` at a fixed risk:reward."""
    cfg = rules or SignalRules()
    risk = average_true_range * cfg.atr_multiplier
    if action == Action.BUY:
        return entry - risk, entry + risk * cfg.risk_reward
    return entry + risk, entry - risk * cfg.risk_reward


def evaluate_pair(
    pair: str,
    bars: Sequence[PriceBar],
    rules: SignalRules | None = None,
    now: datetime | None = None,
) -> Signal | None:
    """Evaluate one pair's history; ``None`` when the rules do not agree.

    Raises ``InsufficientDataError`` when the history is too short.
    """
    cfg = rules or SignalRules()
    snapshot = build_snapshot(bars, cfg, pair=pair)
    score = score_conditions(snapshot, cfg)
    decision = decide(score, cfg)
    logger.debug(
        "pair=%s close=%.5f sma_fast=%.5f sma_slow=%.5f rsi=%.2f macd_hist=%.6f "
        "bullish=%s bearish=%s",
        pair,
        snapshot.close,
        snapshot.sma_fast,
        snapshot.sma_slow,
        snapshot.rsi,
        snapshot.macd_histogram,
        score.bullish,
        score.bearish,
    )
    if decision is None:
        return None

    action, confidence = decision
    volatility = snapshot.atr
    if volatility * cfg.atr_multiplier < float(PRICE_QUANTUM):
        logger.warning(
            "pair=%s atr=%.8f below price resolution, using floor %s",
            pair,
            volatility,
            ATR_FALLBACK,
        )
        volatility = ATR_FALLBACK

    stop_loss, take_profit = price_levels(action, snapshot.close, volatility, cfg)
    return Signal(
        pair=pair,
        action=action,
        entry_price=to_price(snapshot.close),
        take_profit_price=to_price(take_profit),
        stop_loss_price=to_price(stop_loss),
        confidence=confidence,
        status=SignalStatus.ACTIVE,
        created_at=now,
    )
