from __future__ import annotations


class SignalEngineError(Exception):
    """Base class for signal engine failures."""


class InsufficientDataError(SignalEngineError):
    """Not enough price history to evaluate a pair."""

    def __init__(self, pair: str, available: int, required: int) -> None:
        super().__init__(
            f"Insufficient data for pair={pair}: {available} bars available, {required} required"
        )
        self.pair = pair
        self.available = available
        self.required = required


class TransientIOError(SignalEngineError):
    """Retryable failure talking to a market data or persistence collaborator."""


class SignalNotFoundError(SignalEngineError, LookupError):
    """No stored signal with the requested id."""
