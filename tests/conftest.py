"""Shared test fixtures for TradeGuard tests.

Provides a fixed clock, sample positions and portfolios whose stated
aggregates match the recomputed ones exactly.
"""

from datetime import datetime, timezone

import pytest
import structlog

from tradeguard.schemas.enums import PositionStatus, Side
from tradeguard.schemas.portfolio import Portfolio, Position
from tradeguard.schemas.position import PredictionOutput


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------
SAMPLE_NOW = datetime(2026, 3, 2, 14, 30, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any structlog configuration a test applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def now() -> datetime:
    return SAMPLE_NOW


@pytest.fixture
def clock():
    """Clock frozen at SAMPLE_NOW."""
    return lambda: SAMPLE_NOW


# ---------------------------------------------------------------------------
# Position fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def btc_long() -> Position:
    """OPEN BUY 1 @ 100, marked at 110, P&L stored correctly."""
    return Position(
        id="pos-btc-1",
        symbol="BTCUSDT",
        side=Side.BUY,
        size=1.0,
        entry_price=100.0,
        current_price=110.0,
        unrealized_pnl=10.0,
        realized_pnl=0.0,
        status=PositionStatus.OPEN,
        timestamp=SAMPLE_NOW,
    )


@pytest.fixture
def consistent_portfolio(btc_long: Position) -> Portfolio:
    """Base 10000 with one winning long; every aggregate correct."""
    return Portfolio(
        base_capital=10_000.0,
        available_balance=9_900.0,
        locked_profits=0.0,
        positions=[btc_long],
        total_pnl=10.0,
        day_pnl=10.0,
        equity=10_010.0,
    )


@pytest.fixture
def sample_prediction() -> PredictionOutput:
    return PredictionOutput(
        probability=0.62,
        confidence=0.7,
        expected_return=0.0,
        risk_score=0.3,
        time_horizon=300.0,
    )
