from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from datetime import datetime

    from fxsignals.domain.models import PriceBar, Signal


class MarketDataProvider(ABC):
    @abstractmethod
    def fetch_price_bars(
        self,
        pair: str,
        period: str = "100h",
        interval: str = "1h",
    ) -> list[PriceBar]:
        """Return bars for pair covering period, ascending by timestamp."""


class PriceHistorySource(Protocol):
    def get_price_history(
        self,
        pair: str,
        start: datetime,
        end: datetime,
    ) -> list[PriceBar]: ...


class SignalSink(Protocol):
    def save_signal(self, signal: Signal) -> Signal: ...
