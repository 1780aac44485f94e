"""Reconciliation engine — independent audit of portfolio aggregates.

Recomputes equity, total P&L and available balance from raw positions,
diffs them against the values the rest of the system carries, and
classifies each divergence by severity and dollar impact.

Key rules:
  - |difference| <= tolerance is floating-point noise, not a discrepancy
  - Severity tiers: > critical_threshold CRITICAL, > high_threshold HIGH,
    otherwise MEDIUM
  - Non-positive or non-finite price or size on an OPEN position is
    always CRITICAL, and so is any NaN or infinite divergence
  - Exposure above equity x leverage_limit is always CRITICAL
  - correct() refuses to touch a portfolio with CRITICAL discrepancies

The engine holds no mutable state and never mutates its input, so one
instance can serve concurrent callers.
"""

import math
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

import structlog

from tradeguard.config.risk_config import ReconciliationConfig
from tradeguard.portfolio.calculator import (
    available_balance,
    equity,
    margin_used,
    total_realized_pnl,
    total_unrealized_pnl,
)
from tradeguard.schemas.enums import DiscrepancyCategory, RiskLevel, Severity
from tradeguard.schemas.portfolio import Portfolio, Position
from tradeguard.schemas.reconciliation import (
    CalculatedValues,
    Discrepancy,
    ReconciliationMetadata,
    ReconciliationReport,
    RiskAssessment,
    RiskFlags,
)
from tradeguard.utils.hashing import new_reconciliation_id

logger = structlog.get_logger()

Clock = Callable[[], datetime]
IdFactory = Callable[[datetime], str]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _random_reconciliation_id(now: datetime) -> str:
    return new_reconciliation_id(int(now.timestamp() * 1000), uuid4().hex)


def _magnitude(value: float) -> float:
    """abs(value), with NaN mapped to infinity so it still orders as huge."""
    if math.isnan(value):
        return math.inf
    return abs(value)


def _invalid(value: float) -> bool:
    """Prices and sizes must be finite and strictly positive."""
    return not math.isfinite(value) or value <= 0


class ReconciliationEngine:
    """Audits portfolio snapshots and recommends continue / monitor / halt.

    Args:
        config: Tolerances and risk limits. Defaults to ReconciliationConfig().
        clock: Returns the current tz-aware time. Injected for stale-position
            checks and report timestamps.
        id_factory: Builds a reconciliation id from the run time.
    """

    def __init__(
        self,
        config: Optional[ReconciliationConfig] = None,
        clock: Optional[Clock] = None,
        id_factory: Optional[IdFactory] = None,
    ) -> None:
        self.config = config or ReconciliationConfig()
        self._clock = clock or _utc_now
        self._id_factory = id_factory or _random_reconciliation_id

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(self, difference: float) -> Optional[Severity]:
        """Severity of a divergence, or None if it is within tolerance.

        A non-finite divergence means corrupt data and is always CRITICAL.
        """
        difference = abs(difference)
        if not math.isfinite(difference):
            return Severity.CRITICAL
        if difference <= self.config.tolerance:
            return None
        if difference > self.config.critical_threshold:
            return Severity.CRITICAL
        if difference > self.config.high_threshold:
            return Severity.HIGH
        return Severity.MEDIUM

    def _aggregate_discrepancy(
        self, field: str, label: str, expected: float, actual: float
    ) -> Optional[Discrepancy]:
        difference = _magnitude(actual - expected)
        severity = self.classify(difference)
        if severity is None:
            return None
        return Discrepancy(
            field=field,
            expected=expected,
            actual=actual,
            difference=difference,
            severity=severity,
            category=(
                DiscrepancyCategory.CALCULATION if math.isfinite(difference)
                else DiscrepancyCategory.DATA
            ),
            potential_impact=difference,
            description=(
                f"{label} mismatch of ${difference:.6f} - "
                f"expected ${expected:.6f}, actual ${actual:.6f}"
            ),
        )

    def _position_discrepancies(self, index: int, position: Position) -> list[Discrepancy]:
        found: list[Discrepancy] = []
        prefix = f"positions[{index}]"

        if _invalid(position.current_price):
            found.append(Discrepancy(
                field=f"{prefix}.current_price",
                expected=position.entry_price,
                actual=position.current_price,
                difference=_magnitude(position.current_price - position.entry_price),
                severity=Severity.CRITICAL,
                category=DiscrepancyCategory.DATA,
                potential_impact=_magnitude(position.size * position.entry_price),
                description=(
                    f"Invalid current price for position {position.id}: "
                    f"${position.current_price}"
                ),
            ))

        if _invalid(position.size):
            found.append(Discrepancy(
                field=f"{prefix}.size",
                expected=_magnitude(position.size),
                actual=position.size,
                difference=_magnitude(position.size),
                severity=Severity.CRITICAL,
                category=DiscrepancyCategory.DATA,
                potential_impact=_magnitude(position.size * position.current_price),
                description=f"Invalid position size for {position.id}: {position.size}",
            ))

        expected_pnl = position.expected_unrealized_pnl()
        difference = _magnitude(position.unrealized_pnl - expected_pnl)
        severity = self.classify(difference)
        if severity is not None:
            found.append(Discrepancy(
                field=f"{prefix}.unrealized_pnl",
                expected=expected_pnl,
                actual=position.unrealized_pnl,
                difference=difference,
                severity=severity,
                category=(
                    DiscrepancyCategory.CALCULATION if math.isfinite(difference)
                    else DiscrepancyCategory.DATA
                ),
                potential_impact=difference,
                description=(
                    f"Position {position.id} P&L error: expected "
                    f"${expected_pnl:.6f}, got ${position.unrealized_pnl:.6f}"
                ),
            ))

        return found

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    def reconcile(self, portfolio: Portfolio) -> ReconciliationReport:
        """Recompute aggregates from positions and report every divergence.

        Never raises for malformed portfolio data: invalid data is itself
        a discrepancy.
        """
        now = self._clock()
        reconciliation_id = self._id_factory(now)
        log = logger.bind(reconciliation_id=reconciliation_id)

        open_positions = portfolio.open_positions
        closed_positions = portfolio.closed_positions

        expected_unrealized = total_unrealized_pnl(open_positions)
        expected_realized = total_realized_pnl(closed_positions)
        expected_total = expected_realized + expected_unrealized
        expected_equity = equity(
            portfolio.base_capital, expected_total, portfolio.locked_profits
        )
        expected_available = available_balance(
            expected_equity, portfolio.locked_profits, open_positions
        )
        total_exposure = _magnitude(margin_used(open_positions))

        calculated = CalculatedValues(
            expected_equity=expected_equity,
            expected_total_pnl=expected_total,
            expected_unrealized_pnl=expected_unrealized,
            expected_realized_pnl=expected_realized,
            expected_available_balance=expected_available,
        )

        discrepancies: list[Discrepancy] = []
        for field, label, expected, actual in (
            ("equity", "Equity", expected_equity, portfolio.equity),
            ("total_pnl", "Total P&L", expected_total, portfolio.total_pnl),
            ("available_balance", "Available balance", expected_available,
             portfolio.available_balance),
        ):
            found = self._aggregate_discrepancy(field, label, expected, actual)
            if found is not None:
                discrepancies.append(found)

        for index, position in enumerate(open_positions):
            discrepancies.extend(self._position_discrepancies(index, position))

        leverage_ceiling = portfolio.equity * self.config.leverage_limit
        if total_exposure > leverage_ceiling:
            discrepancies.append(Discrepancy(
                field="leverage",
                expected=leverage_ceiling,
                actual=total_exposure,
                difference=_magnitude(total_exposure - leverage_ceiling),
                severity=Severity.CRITICAL,
                category=DiscrepancyCategory.LEVERAGE,
                potential_impact=max(0.0, total_exposure - portfolio.equity),
                description=(
                    f"Excessive leverage: exposure ${total_exposure:.2f} against "
                    f"equity ${portfolio.equity:.2f} "
                    f"(limit {self.config.leverage_limit:g}x)"
                ),
            ))

        guard = self.config.negative_balance_guard
        stale_before = now.timestamp() - self.config.stale_after_seconds
        risk_flags = RiskFlags(
            negative_balance=(
                portfolio.available_balance < guard or expected_available < guard
            ),
            exceeded_capital=(
                portfolio.equity
                > portfolio.base_capital * self.config.exceeded_capital_multiple
            ),
            large_discrepancy=any(
                d.severity in (Severity.HIGH, Severity.CRITICAL) for d in discrepancies
            ),
            stale_positions=any(
                p.timestamp.timestamp() < stale_before for p in open_positions
            ),
        )

        has_critical = any(d.severity == Severity.CRITICAL for d in discrepancies)
        report = ReconciliationReport(
            is_consistent=not discrepancies,
            has_critical_discrepancies=has_critical,
            has_booking_errors=any(
                d.category == DiscrepancyCategory.DATA for d in discrepancies
            ),
            discrepancies=discrepancies,
            calculated_values=calculated,
            risk_flags=risk_flags,
            metadata=ReconciliationMetadata(
                timestamp=now,
                open_positions_count=len(open_positions),
                closed_positions_count=len(closed_positions),
                total_exposure=total_exposure,
                reconciliation_id=reconciliation_id,
            ),
        )

        if report.is_consistent:
            log.info(
                "Reconciliation passed",
                equity=portfolio.equity,
                open_positions=len(open_positions),
            )
        else:
            for d in discrepancies:
                emit = log.error if d.severity == Severity.CRITICAL else log.warning
                emit(
                    "Discrepancy found",
                    field=d.field,
                    severity=d.severity.value,
                    category=d.category.value,
                    difference=round(d.difference, 6),
                    potential_impact=round(d.potential_impact, 6),
                )
            log.warning(
                "Reconciliation found discrepancies",
                count=len(discrepancies),
                critical=report.count_by_severity(Severity.CRITICAL),
                total_impact=round(report.total_potential_impact, 6),
            )

        return report

    # ------------------------------------------------------------------
    # Risk assessment
    # ------------------------------------------------------------------

    def assess_risk(self, report: ReconciliationReport) -> RiskAssessment:
        """Map a report to a risk level and a halt recommendation."""
        cfg = self.config
        total_impact = report.total_potential_impact
        high_count = report.count_by_severity(Severity.HIGH)
        actions: list[str] = []

        if report.has_critical_discrepancies:
            level = RiskLevel.CRITICAL
            halt = True
            actions += [
                "Halt all trading immediately",
                "Investigate critical discrepancies",
                "Contact system administrator",
            ]
        elif (
            total_impact > cfg.high_risk_impact
            or high_count > cfg.max_high_severity
            or report.risk_flags.negative_balance
        ):
            level = RiskLevel.HIGH
            halt = True
            actions += ["Suspend new positions", "Review all calculations"]
        elif (
            total_impact > cfg.medium_risk_impact
            or len(report.discrepancies) > cfg.max_discrepancies
        ):
            level = RiskLevel.MEDIUM
            halt = False
            actions += ["Monitor closely", "Review affected positions"]
        else:
            level = RiskLevel.LOW
            halt = False

        if report.risk_flags.stale_positions:
            actions.append("Update stale position prices")

        if halt:
            logger.error(
                "Trading halt recommended",
                reconciliation_id=report.reconciliation_id,
                risk_level=level.value,
                total_impact=round(total_impact, 6),
            )

        return RiskAssessment(
            risk_level=level,
            should_halt_trading=halt,
            recommended_actions=actions,
            total_impact=total_impact,
        )

    # ------------------------------------------------------------------
    # Correction
    # ------------------------------------------------------------------

    def correct(self, portfolio: Portfolio, report: ReconciliationReport) -> Portfolio:
        """Rewrite drifting aggregates and small per-position P&L errors.

        Returns the input unchanged when the report has CRITICAL
        discrepancies. Positions whose P&L drift is at or above the high
        threshold are left for manual investigation.
        """
        log = logger.bind(reconciliation_id=report.reconciliation_id)
        if report.has_critical_discrepancies:
            log.warning("Skipping automatic correction: critical discrepancies present")
            return portfolio

        corrected_ids: list[str] = []
        positions: list[Position] = []
        for position in portfolio.positions:
            if position.is_open:
                expected_pnl = position.expected_unrealized_pnl()
                drift = abs(position.unrealized_pnl - expected_pnl)
                if self.config.tolerance <= drift < self.config.high_threshold:
                    position = position.model_copy(update={"unrealized_pnl": expected_pnl})
                    corrected_ids.append(position.id)
            positions.append(position)

        values = report.calculated_values
        corrected = portfolio.model_copy(update={
            "positions": positions,
            "total_pnl": values.expected_total_pnl,
            "equity": values.expected_equity,
            "available_balance": values.expected_available_balance,
        })

        log.info(
            "Portfolio corrected",
            equity_before=portfolio.equity,
            equity_after=corrected.equity,
            balance_before=portfolio.available_balance,
            balance_after=corrected.available_balance,
            positions_corrected=corrected_ids,
        )
        return corrected
