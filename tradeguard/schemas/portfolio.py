"""Portfolio data model — positions and aggregate account state.

Positions and portfolios are immutable snapshots. Anything that
"changes" a portfolio (correction, settlement) returns a new object.

Price and size fields deliberately accept any float: a corrupt record
must still be representable so the reconciliation engine can report it.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tradeguard.schemas.enums import ExitReason, PositionStatus, Side


class Position(BaseModel):
    """A single open or closed trade record."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Unique position id")
    symbol: str = Field(..., description="Traded symbol, e.g. BTCUSDT")
    side: Side = Field(...)
    size: float = Field(..., description="Quantity in base units")
    entry_price: float = Field(...)
    current_price: float = Field(...)
    unrealized_pnl: float = Field(default=0.0)
    realized_pnl: float = Field(default=0.0)
    status: PositionStatus = Field(default=PositionStatus.OPEN)
    timestamp: datetime = Field(..., description="Entry time")
    exit_reason: Optional[ExitReason] = Field(default=None)
    exit_time: Optional[datetime] = Field(default=None)

    @field_validator("timestamp")
    @classmethod
    def must_have_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("Timestamp must include timezone information")
        return v

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    @property
    def notional(self) -> float:
        """Absolute market value at the current price."""
        return abs(self.size * self.current_price)

    def expected_unrealized_pnl(self) -> float:
        """P&L implied by prices and size, ignoring the stored value."""
        move = self.current_price - self.entry_price
        if self.side == Side.SELL:
            move = -move
        return move * self.size


class Portfolio(BaseModel):
    """Aggregate account state for one trading session.

    Designed invariants, audited by the reconciliation engine rather
    than enforced here:
      - equity == base_capital + total_pnl + locked_profits
      - total_pnl == sum(realized, CLOSED) + sum(unrealized, OPEN)
      - available_balance == equity - locked_profits - sum(|size*price|, OPEN)
    """

    model_config = ConfigDict(frozen=True)

    base_capital: float = Field(..., description="Capital at session start")
    available_balance: float = Field(...)
    locked_profits: float = Field(default=0.0)
    positions: list[Position] = Field(default_factory=list)
    total_pnl: float = Field(default=0.0)
    day_pnl: float = Field(default=0.0)
    equity: float = Field(...)

    @property
    def open_positions(self) -> list[Position]:
        return [p for p in self.positions if p.status == PositionStatus.OPEN]

    @property
    def closed_positions(self) -> list[Position]:
        return [p for p in self.positions if p.status == PositionStatus.CLOSED]

    def get_position(self, position_id: str) -> Position | None:
        for position in self.positions:
            if position.id == position_id:
                return position
        return None
