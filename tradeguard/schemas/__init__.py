"""TradeGuard schemas — portfolio model, reconciliation and lifecycle outputs."""

from tradeguard.schemas.enums import (
    DiscrepancyCategory,
    ExitReason,
    PositionStatus,
    RiskLevel,
    Severity,
    Side,
)
from tradeguard.schemas.portfolio import Portfolio, Position
from tradeguard.schemas.position import (
    ExitDecision,
    Indicators,
    ManagedPosition,
    PredictionOutput,
)
from tradeguard.schemas.reconciliation import (
    CalculatedValues,
    Discrepancy,
    ReconciliationMetadata,
    ReconciliationReport,
    RiskAssessment,
    RiskFlags,
)

__all__ = [
    "CalculatedValues",
    "Discrepancy",
    "DiscrepancyCategory",
    "ExitDecision",
    "ExitReason",
    "Indicators",
    "ManagedPosition",
    "Portfolio",
    "Position",
    "PositionStatus",
    "PredictionOutput",
    "ReconciliationMetadata",
    "ReconciliationReport",
    "RiskAssessment",
    "RiskFlags",
    "RiskLevel",
    "Severity",
    "Side",
]
