"""Portfolio calculator — first-principles aggregate math.

The aggregation helpers sum what is stored on each position. They are
shared with the reconciliation engine, which audits aggregation rather
than each position's own P&L formula.

recalculate_portfolio() is the heavy hammer: it rewrites every open
position's P&L from prices and rebuilds all aggregates, rounded to
financial precision.
"""
from __future__ import annotations

from typing import Iterable

import structlog

from tradeguard.schemas.enums import PositionStatus
from tradeguard.schemas.portfolio import Portfolio, Position

logger = structlog.get_logger()

PRECISION = 6


def _round(value: float) -> float:
    return round(value, PRECISION)


def position_pnl(position: Position) -> float:
    """P&L of one position: realized when closed, price-implied when open."""
    if position.status == PositionStatus.CLOSED:
        return position.realized_pnl
    return position.expected_unrealized_pnl()


def total_unrealized_pnl(positions: Iterable[Position]) -> float:
    return sum(p.unrealized_pnl for p in positions if p.status == PositionStatus.OPEN)


def total_realized_pnl(positions: Iterable[Position]) -> float:
    return sum(p.realized_pnl for p in positions if p.status == PositionStatus.CLOSED)


def total_pnl(positions: Iterable[Position]) -> float:
    positions = list(positions)
    return total_realized_pnl(positions) + total_unrealized_pnl(positions)


def margin_used(positions: Iterable[Position]) -> float:
    """Sum of |size * current_price| over open positions."""
    return sum(p.notional for p in positions if p.status == PositionStatus.OPEN)


def equity(base_capital: float, pnl: float, locked_profits: float) -> float:
    return base_capital + pnl + locked_profits


def available_balance(
    equity_value: float,
    locked_profits: float,
    positions: Iterable[Position],
) -> float:
    return equity_value - locked_profits - margin_used(positions)


def recalculate_portfolio(portfolio: Portfolio) -> Portfolio:
    """Rebuild a portfolio with consistent math.

    Open positions get their unrealized P&L recomputed from prices,
    closed positions carry zero unrealized P&L, and the three aggregates
    are derived from the result. The input is not modified.
    """
    positions = [
        p.model_copy(update={
            "unrealized_pnl": _round(p.expected_unrealized_pnl()) if p.is_open else 0.0,
        })
        for p in portfolio.positions
    ]

    pnl = _round(total_pnl(positions))
    new_equity = _round(equity(portfolio.base_capital, pnl, portfolio.locked_profits))
    balance = _round(available_balance(new_equity, portfolio.locked_profits, positions))

    logger.debug(
        "Portfolio recalculated",
        positions=len(positions),
        equity=new_equity,
        total_pnl=pnl,
        available_balance=balance,
    )

    return portfolio.model_copy(update={
        "positions": positions,
        "total_pnl": pnl,
        "equity": new_equity,
        "available_balance": balance,
    })
