"""TradeGuard exception hierarchy.

All custom exceptions inherit from TradeGuardError, allowing callers
to catch broad or specific error categories as needed.

Business-data anomalies (bad prices, drifting aggregates) are never
raised. They are reported as discrepancies or exit decisions.
"""


class TradeGuardError(Exception):
    """Base exception for all TradeGuard errors."""

    def __init__(self, message: str = "", position_id: str | None = None) -> None:
        self.position_id = position_id
        super().__init__(message)


class ConfigurationError(TradeGuardError):
    """Raised when risk configuration is invalid.

    Examples: tolerance above the high threshold, non-positive
    multipliers, a partial-profit ladder that is not increasing.
    """


class PositionNotTrackedError(TradeGuardError):
    """Raised when a lifecycle operation names an unknown position id."""


class PositionAlreadyTrackedError(TradeGuardError):
    """Raised when opening a position id that is already managed."""


class InsufficientBalanceError(TradeGuardError):
    """Raised when a new position costs more than the available balance."""

    def __init__(
        self,
        message: str = "",
        position_id: str | None = None,
        required: float | None = None,
        available: float | None = None,
    ) -> None:
        self.required = required
        self.available = available
        super().__init__(message, position_id)


class PortfolioLoadError(TradeGuardError):
    """Raised when a portfolio or tick file cannot be read or parsed."""
