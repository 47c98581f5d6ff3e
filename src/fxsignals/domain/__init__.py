from fxsignals.domain.models import (
    Action,
    PriceBar,
    Signal,
    SignalResult,
    SignalStatus,
    to_price,
)

__all__ = ["Action", "PriceBar", "Signal", "SignalResult", "SignalStatus", "to_price"]
