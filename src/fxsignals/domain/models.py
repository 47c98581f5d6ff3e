from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum

PRICE_QUANTUM = Decimal("0.00001")


class Action(StrEnum):
    BUY = "BUY"
    SELL = "SELL"


class SignalStatus(StrEnum):
    ACTIVE = "active"
    CLOSED = "closed"
    EXPIRED = "expired"


class SignalResult(StrEnum):
    WIN = "win"
    LOSS = "loss"
    PENDING = "pending"


def to_price(value: Decimal | float | int | str) -> Decimal:
    """Convert to a Decimal at the 5-decimal storage scale."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass(slots=True, frozen=True)
class PriceBar:
    pair: str
    timestamp: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int = 0

    def __post_init__(self) -> None:
        if min(self.open, self.high, self.low, self.close) <= 0:
            raise ValueError("prices must be positive")
        if self.high < max(self.open, self.close):
            raise ValueError("high must be >= max(open, close)")
        if self.low > min(self.open, self.close):
            raise ValueError("low must be <= min(open, close)")
        if self.volume < 0:
            raise ValueError("volume must be non-negative")


@dataclass(slots=True, frozen=True)
class Signal:
    pair: str
    action: Action
    entry_price: Decimal
    take_profit_price: Decimal
    stop_loss_price: Decimal
    confidence: int
    status: SignalStatus = SignalStatus.ACTIVE
    result: SignalResult | None = None
    created_at: datetime | None = None
    closed_at: datetime | None = None
    signal_id: int | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.confidence <= 100:
            raise ValueError("confidence must be within [0, 100]")
        if min(self.entry_price, self.take_profit_price, self.stop_loss_price) <= 0:
            raise ValueError("signal prices must be positive")
        if self.action == Action.BUY:
            ordered = self.stop_loss_price < self.entry_price < self.take_profit_price
        else:
            ordered = self.take_profit_price < self.entry_price < self.stop_loss_price
        if not ordered:
            raise ValueError(
                f"{self.action} signal prices out of order: "
                f"stop_loss={self.stop_loss_price} entry={self.entry_price} "
                f"take_profit={self.take_profit_price}"
            )

    @property
    def risk_reward(self) -> float:
        risk = abs(self.entry_price - self.stop_loss_price)
        reward = abs(self.take_profit_price - self.entry_price)
        return float(reward / risk)

    def to_payload(self) -> dict[str, object]:
        return {
            "signal_id": self.signal_id,
            "pair": self.pair,
            "action": str(self.action),
            "entry_price": str(self.entry_price),
            "take_profit_price": str(self.take_profit_price),
            "stop_loss_price": str(self.stop_loss_price),
            "confidence": self.confidence,
            "status": str(self.status),
            "result": None if self.result is None else str(self.result),
            "created_at": None if self.created_at is None else self.created_at.isoformat(),
            "closed_at": None if self.closed_at is None else self.closed_at.isoformat(),
        }
