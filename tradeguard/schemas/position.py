"""Position lifecycle schemas — prediction input, tracking state, decisions.

ManagedPosition is the one mutable record in TradeGuard. It is owned by
the PositionLifecycleManager and updated on every price tick.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tradeguard.schemas.enums import ExitReason
from tradeguard.schemas.portfolio import Position


class PredictionOutput(BaseModel):
    """Opaque signal from the upstream prediction model.

    Consumed, never computed, by TradeGuard.
    """

    model_config = ConfigDict(frozen=True)

    probability: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    expected_return: float = Field(default=0.0, description="Expected return in percent")
    risk_score: float = Field(default=0.0, ge=0.0)
    time_horizon: float = Field(default=300.0, gt=0.0, description="Seconds")


class Indicators(BaseModel):
    """Volatility input from the technical-analysis collaborator."""

    model_config = ConfigDict(frozen=True)

    atr: Optional[float] = Field(default=None, ge=0.0, description="Average true range")


@dataclass
class ManagedPosition:
    """Lifecycle state for one tracked position.

    Excursions are fractional returns: max_favorable_excursion only
    rises, max_adverse_excursion only falls. partial_profits_taken only
    rises. profit_lock_triggered never goes back to False.
    """
    position: Position
    prediction: PredictionOutput
    entry_time: datetime
    exchange_fees: float
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    trailing_stop_price: Optional[float] = None
    max_favorable_excursion: float = 0.0
    max_adverse_excursion: float = 0.0
    partial_profits_taken: int = 0
    profit_lock_triggered: bool = False
    last_price: Optional[float] = None
    remaining_size: Optional[float] = None

    def __post_init__(self) -> None:
        if self.remaining_size is None:
            self.remaining_size = self.position.size

    @property
    def position_id(self) -> str:
        return self.position.id

    @property
    def fee_reserve(self) -> float:
        """Round-trip fees per unit of size."""
        if self.position.size <= 0:
            return 0.0
        return self.exchange_fees / self.position.size

    @property
    def fee_fraction(self) -> float:
        """Round-trip fees as a fraction of entry trade value."""
        trade_value = self.position.size * self.position.entry_price
        if trade_value <= 0:
            return 0.0
        return self.exchange_fees / trade_value


class ExitDecision(BaseModel):
    """Result of evaluating one price tick for one position."""

    model_config = ConfigDict(frozen=True)

    should_exit: bool = Field(default=False)
    exit_reason: Optional[str] = Field(default=None)
    reason_code: Optional[ExitReason] = Field(default=None)
    is_partial_exit: bool = Field(default=False)
    exit_quantity: Optional[float] = Field(default=None, ge=0.0)

    @classmethod
    def hold(cls) -> "ExitDecision":
        return cls(should_exit=False)
