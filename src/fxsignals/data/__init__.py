from fxsignals.data.base import MarketDataProvider, PriceHistorySource, SignalSink
from fxsignals.data.frames import bars_to_frame, frame_to_bars
from fxsignals.data.mock_provider import BASE_PRICES, MockMarketDataProvider

__all__ = [
    "BASE_PRICES",
    "MarketDataProvider",
    "MockMarketDataProvider",
    "PriceHistorySource",
    "SignalSink",
    "bars_to_frame",
    "frame_to_bars",
]
