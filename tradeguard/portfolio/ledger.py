"""Portfolio ledger — settlement of position opens, closes and partial exits.

Every function takes a Portfolio snapshot and returns a new one with
aggregates rebuilt, so the designed invariants hold after each booking:

    equity            == base_capital + total_pnl + locked_profits
    available_balance == equity - locked_profits - margin_used(OPEN)

Profit locking moves a share of a winning trade's net P&L out of
realized_pnl and into locked_profits. Equity is unchanged by the move;
only the risk capital shrinks.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import structlog

from tradeguard.exceptions import InsufficientBalanceError, PositionNotTrackedError
from tradeguard.portfolio.calculator import (
    PRECISION,
    available_balance,
    equity,
    total_pnl,
)
from tradeguard.schemas.enums import ExitReason, PositionStatus, Side
from tradeguard.schemas.portfolio import Portfolio, Position
from tradeguard.services.fees import FeeModel

logger = structlog.get_logger()


def _rebuild(
    portfolio: Portfolio,
    positions: list[Position],
    *,
    locked_profits: float | None = None,
    day_pnl_delta: float = 0.0,
) -> Portfolio:
    locked = portfolio.locked_profits if locked_profits is None else locked_profits
    pnl = round(total_pnl(positions), PRECISION)
    new_equity = round(equity(portfolio.base_capital, pnl, locked), PRECISION)
    return portfolio.model_copy(update={
        "positions": positions,
        "locked_profits": locked,
        "total_pnl": pnl,
        "equity": new_equity,
        "available_balance": round(available_balance(new_equity, locked, positions), PRECISION),
        "day_pnl": round(portfolio.day_pnl + day_pnl_delta, PRECISION),
    })


def _find_open(portfolio: Portfolio, position_id: str) -> tuple[int, Position]:
    for index, position in enumerate(portfolio.positions):
        if position.id == position_id:
            if position.status != PositionStatus.OPEN:
                raise PositionNotTrackedError(
                    f"Position {position_id} is {position.status.value}, not OPEN",
                    position_id=position_id,
                )
            return index, position
    raise PositionNotTrackedError(
        f"Position {position_id} not found in portfolio",
        position_id=position_id,
    )


def _gross_pnl(position: Position, exit_price: float, size: float) -> float:
    direction = 1.0 if position.side == Side.BUY else -1.0
    return (exit_price - position.entry_price) * size * direction


def _split_locked(net_pnl: float, profit_lock_pct: float) -> float:
    if net_pnl <= 0 or profit_lock_pct <= 0:
        return 0.0
    return net_pnl * min(profit_lock_pct, 100.0) / 100.0


def open_position(portfolio: Portfolio, position: Position) -> Portfolio:
    """Book a new OPEN position.

    Raises:
        InsufficientBalanceError: trade value exceeds the available balance.
    """
    cost = abs(position.size * position.entry_price)
    if cost > portfolio.available_balance:
        logger.warning(
            "Insufficient balance for position",
            position_id=position.id,
            required=cost,
            available=portfolio.available_balance,
        )
        raise InsufficientBalanceError(
            f"Position {position.id} needs {cost:.2f}, "
            f"only {portfolio.available_balance:.2f} available",
            position_id=position.id,
            required=cost,
            available=portfolio.available_balance,
        )

    opened = position.model_copy(update={
        "status": PositionStatus.OPEN,
        "unrealized_pnl": position.expected_unrealized_pnl(),
        "realized_pnl": 0.0,
    })
    logger.info(
        "Position opened",
        position_id=opened.id,
        symbol=opened.symbol,
        side=opened.side.value,
        size=opened.size,
        entry_price=opened.entry_price,
    )
    return _rebuild(portfolio, [*portfolio.positions, opened])


def close_position(
    portfolio: Portfolio,
    position_id: str,
    exit_price: float,
    fee_model: FeeModel,
    *,
    reason: Optional[ExitReason] = None,
    profit_lock_pct: float = 0.0,
    now: Optional[datetime] = None,
) -> Portfolio:
    """Close an OPEN position at exit_price, net of round-trip fees.

    Fees are estimated at the midpoint of entry and exit prices.

    Raises:
        PositionNotTrackedError: the id is unknown or not OPEN.
    """
    index, position = _find_open(portfolio, position_id)

    gross = _gross_pnl(position, exit_price, position.size)
    fees = fee_model.estimate(position.size, (position.entry_price + exit_price) / 2)
    net = gross - fees
    locked = _split_locked(net, profit_lock_pct)

    closed = position.model_copy(update={
        "status": PositionStatus.CLOSED,
        "current_price": exit_price,
        "unrealized_pnl": 0.0,
        "realized_pnl": net - locked,
        "exit_reason": reason or ExitReason.MANUAL,
        "exit_time": now or datetime.now(timezone.utc),
    })
    positions = list(portfolio.positions)
    positions[index] = closed

    logger.info(
        "Position closed",
        position_id=position_id,
        exit_price=exit_price,
        gross_pnl=round(gross, PRECISION),
        fees=round(fees, PRECISION),
        net_pnl=round(net, PRECISION),
        locked=round(locked, PRECISION),
        reason=closed.exit_reason.value,
    )
    return _rebuild(
        portfolio,
        positions,
        locked_profits=portfolio.locked_profits + locked,
        day_pnl_delta=net,
    )


def apply_partial_exit(
    portfolio: Portfolio,
    position_id: str,
    quantity: float,
    exit_price: float,
    fee_model: FeeModel,
    *,
    profit_lock_pct: float = 0.0,
    now: Optional[datetime] = None,
) -> Portfolio:
    """Sell part of an OPEN position.

    The sold slice is booked as its own CLOSED record with id
    ``<position_id>-p<n>``; the open position keeps its id and shrinks.

    Raises:
        PositionNotTrackedError: the id is unknown or not OPEN.
        ValueError: quantity is not within (0, size).
    """
    index, position = _find_open(portfolio, position_id)
    if not 0 < quantity < position.size:
        raise ValueError(
            f"Partial quantity {quantity} must be within (0, {position.size})"
        )

    gross = _gross_pnl(position, exit_price, quantity)
    fees = fee_model.estimate(quantity, (position.entry_price + exit_price) / 2)
    net = gross - fees
    locked = _split_locked(net, profit_lock_pct)

    taken = {p.id for p in portfolio.positions}
    slice_number = 1
    while f"{position_id}-p{slice_number}" in taken:
        slice_number += 1
    exited = position.model_copy(update={
        "id": f"{position_id}-p{slice_number}",
        "size": quantity,
        "current_price": exit_price,
        "status": PositionStatus.CLOSED,
        "unrealized_pnl": 0.0,
        "realized_pnl": net - locked,
        "exit_reason": ExitReason.PARTIAL_PROFIT,
        "exit_time": now or datetime.now(timezone.utc),
    })
    remaining = position.model_copy(update={
        "size": position.size - quantity,
        "current_price": exit_price,
    })
    remaining = remaining.model_copy(update={
        "unrealized_pnl": remaining.expected_unrealized_pnl(),
    })

    positions = list(portfolio.positions)
    positions[index] = remaining
    positions.append(exited)

    logger.info(
        "Partial exit booked",
        position_id=position_id,
        slice_id=exited.id,
        quantity=quantity,
        remaining=remaining.size,
        net_pnl=round(net, PRECISION),
    )
    return _rebuild(
        portfolio,
        positions,
        locked_profits=portfolio.locked_profits + locked,
        day_pnl_delta=net,
    )
