"""Shared enumerations for TradeGuard schemas.

All enums used across TradeGuard are defined here to ensure
consistency and avoid circular imports.
"""

from enum import Enum


class Side(str, Enum):
    """Direction of a position."""
    BUY = "BUY"
    SELL = "SELL"


class PositionStatus(str, Enum):
    """Lifecycle status of a position record."""
    PENDING = "PENDING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Severity(str, Enum):
    """Severity tier of a reconciliation discrepancy."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DiscrepancyCategory(str, Enum):
    """What kind of problem a discrepancy represents.

    CALCULATION: stated value drifted from the recomputed value.
    DATA: the raw record itself is corrupt (non-positive price or size).
    LEVERAGE: exposure breaches the configured leverage ceiling.
    """
    CALCULATION = "calculation"
    DATA = "data"
    LEVERAGE = "leverage"


class RiskLevel(str, Enum):
    """Overall risk level derived from a reconciliation report."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ExitReason(str, Enum):
    """Machine-readable reason a position was (or should be) exited."""
    STOP_LOSS = "STOP_LOSS"
    TRAILING_STOP = "TRAILING_STOP"
    TAKE_PROFIT = "TAKE_PROFIT"
    PARTIAL_PROFIT = "PARTIAL_PROFIT"
    TIME_LIMIT = "TIME_LIMIT"
    MANUAL = "MANUAL"
    RISK_MANAGEMENT = "RISK_MANAGEMENT"
