"""Portfolio math and settlement.

calculator recomputes aggregates from first principles; ledger books
opens, closes and partial exits into new Portfolio snapshots.
"""
from .calculator import (
    available_balance,
    equity,
    margin_used,
    position_pnl,
    recalculate_portfolio,
    total_pnl,
    total_realized_pnl,
    total_unrealized_pnl,
)
from .ledger import apply_partial_exit, close_position, open_position

__all__ = [
    "available_balance",
    "equity",
    "margin_used",
    "position_pnl",
    "recalculate_portfolio",
    "total_pnl",
    "total_realized_pnl",
    "total_unrealized_pnl",
    "apply_partial_exit",
    "close_position",
    "open_position",
]
