"""
Engine error taxonomy.

Every failure the engine surfaces derives from TaxEngineError so callers can
catch the whole family, while the concrete classes stay distinguishable.
"""


class TaxEngineError(Exception):
    """Base class for all engine failures."""


class InvalidInputError(TaxEngineError, ValueError):
    """Non-positive quantity/price, missing symbol/date, malformed ratio."""


class InvalidParametersError(InvalidInputError):
    """Corporate action parameters missing or out of range."""


class InsufficientHoldingsError(TaxEngineError):
    """A sale asks for more shares than the ledger holds."""

    def __init__(self, symbol, requested, available):
        self.symbol = symbol
        self.requested = requested
        self.available = available
        if available:
            msg = f"Cannot sell {requested} shares of {symbol}: only {available} available"
        else:
            msg = f"Cannot sell {symbol}: no holdings found"
        super().__init__(msg)


class UnknownSymbolError(TaxEngineError):
    """Corporate action requested for a symbol without lots."""


class ActionNotFoundError(TaxEngineError, KeyError):
    """No corporate action with the requested id."""

    def __str__(self):
        return str(self.args[0]) if self.args else ''


class AlreadyReversedError(TaxEngineError):
    """Corporate action has already been reversed."""


class DecodeFailureError(TaxEngineError, ValueError):
    """Persisted snapshot is corrupt or cannot be parsed."""
