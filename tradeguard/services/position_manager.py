"""Position lifecycle manager — fee-aware exit thresholds per open position.

Tracks every open position from entry to exit and decides, tick by
tick, whether it should be closed.

Key rules:
  - Stops are never tighter than the largest of: ATR x multiplier,
    a percentage floor, and 1.5x the per-unit fee reserve
  - Targets clear fees by at least 2x the per-unit fee reserve
  - Trailing stop arms only after P&L net of fees turns positive,
    then only ratchets toward locking in more profit
  - Exit priority per tick: stop loss, trailing stop, take profit,
    partial-profit ladder, time horizon. Protective exits win ties.
  - A partial exit keeps the position tracked; every other exit is
    final and the caller is expected to remove() it after closing

Thread safety: one RLock guards the tracking table, since open, tick
and remove all read-modify-write the same entries.
"""

import dataclasses
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from tradeguard.config.risk_config import PositionManagerConfig
from tradeguard.exceptions import (
    ConfigurationError,
    PositionAlreadyTrackedError,
    PositionNotTrackedError,
)
from tradeguard.schemas.enums import ExitReason, Side
from tradeguard.schemas.portfolio import Position
from tradeguard.schemas.position import (
    ExitDecision,
    Indicators,
    ManagedPosition,
    PredictionOutput,
)
from tradeguard.services.fees import FeeModel, FlatFeeModel

logger = structlog.get_logger()

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _atr(indicators: Optional[Indicators]) -> Optional[float]:
    if indicators is None or not indicators.atr:
        return None
    return indicators.atr


def _crossed_against(side: Side, price: float, level: float) -> bool:
    """True if price is at or beyond a protective level."""
    if side == Side.BUY:
        return price <= level
    return price >= level


def _crossed_in_favor(side: Side, price: float, level: float) -> bool:
    if side == Side.BUY:
        return price >= level
    return price <= level


def compute_stop_distance(
    entry_price: float,
    atr: Optional[float],
    fee_reserve: float,
    config: PositionManagerConfig,
) -> float:
    """Distance from entry to the initial stop loss.

    The widest of the volatility, percentage and fee floors wins.
    """
    atr_distance = atr * config.stop_loss_multiplier if atr else 0.0
    percentage_distance = entry_price * (config.stop_loss_multiplier / 100)
    fee_distance = fee_reserve * config.stop_fee_multiple
    return max(atr_distance, percentage_distance, fee_distance)


def compute_target_distance(
    entry_price: float,
    expected_return_pct: float,
    fee_reserve: float,
    config: PositionManagerConfig,
) -> float:
    """Distance from entry to the take-profit target."""
    expected_distance = abs(expected_return_pct / 100 * entry_price)
    minimum_distance = entry_price * (config.take_profit_multiplier / 100)
    fee_distance = fee_reserve * config.target_fee_multiple
    return max(expected_distance, minimum_distance, fee_distance)


class PositionLifecycleManager:
    """Stateful exit manager keyed by position id.

    Args:
        config: Exit rules. Defaults to PositionManagerConfig().
        fee_model: Round-trip fee estimator. Defaults to a flat 0.2%.
        clock: Returns the current tz-aware time, used for entry times
            and the time-horizon exit.
    """

    def __init__(
        self,
        config: Optional[PositionManagerConfig] = None,
        fee_model: Optional[FeeModel] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._lock = threading.RLock()
        self._positions: dict[str, ManagedPosition] = {}
        self.config = config or PositionManagerConfig()
        self.fee_model = fee_model or FlatFeeModel()
        self._clock = clock or _utc_now

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def open(
        self,
        position: Position,
        prediction: PredictionOutput,
        indicators: Optional[Indicators] = None,
    ) -> ManagedPosition:
        """Start tracking a position and compute its initial thresholds.

        Raises:
            PositionAlreadyTrackedError: the id is already managed.
        """
        with self._lock:
            if position.id in self._positions:
                raise PositionAlreadyTrackedError(
                    f"Position {position.id} is already tracked",
                    position_id=position.id,
                )

            managed = ManagedPosition(
                position=position,
                prediction=prediction,
                entry_time=self._clock(),
                exchange_fees=self.fee_model.estimate(position.size, position.entry_price),
            )
            atr = _atr(indicators)
            entry = position.entry_price
            buy = position.side == Side.BUY

            if self.config.enable_stop_loss:
                distance = compute_stop_distance(
                    entry, atr, managed.fee_reserve, self.config
                )
                managed.stop_loss_price = entry - distance if buy else entry + distance

            if self.config.enable_take_profit:
                distance = compute_target_distance(
                    entry, prediction.expected_return, managed.fee_reserve, self.config
                )
                managed.take_profit_price = entry + distance if buy else entry - distance

            self._positions[position.id] = managed

        logger.info(
            "Position tracked",
            position_id=position.id,
            symbol=position.symbol,
            side=position.side.value,
            entry_price=entry,
            stop_loss=managed.stop_loss_price,
            take_profit=managed.take_profit_price,
            exchange_fees=round(managed.exchange_fees, 6),
        )
        return managed

    def remove(self, position_id: str) -> Optional[ManagedPosition]:
        """Stop tracking a position. Returns its final state, if tracked."""
        with self._lock:
            managed = self._positions.pop(position_id, None)
        if managed is not None:
            logger.info(
                "Position untracked",
                position_id=position_id,
                max_favorable_excursion=round(managed.max_favorable_excursion, 6),
                max_adverse_excursion=round(managed.max_adverse_excursion, 6),
                partial_profits_taken=managed.partial_profits_taken,
            )
        return managed

    # ------------------------------------------------------------------
    # Price ticks
    # ------------------------------------------------------------------

    def tick(
        self,
        position_id: str,
        current_price: float,
        indicators: Optional[Indicators] = None,
        now: Optional[datetime] = None,
    ) -> ExitDecision:
        """Update a position with a new price and decide whether to exit.

        Raises:
            PositionNotTrackedError: the id was never opened or was removed.
        """
        with self._lock:
            managed = self._positions.get(position_id)
            if managed is None:
                raise PositionNotTrackedError(
                    f"Position {position_id} is not tracked",
                    position_id=position_id,
                )
            self._update_state(managed, current_price, _atr(indicators))
            decision = self._evaluate_exit(managed, current_price, now or self._clock())

        if decision.should_exit:
            logger.info(
                "Exit signalled",
                position_id=position_id,
                price=current_price,
                reason=decision.exit_reason,
                partial=decision.is_partial_exit,
                quantity=decision.exit_quantity,
            )
        return decision

    def _update_state(
        self, managed: ManagedPosition, current_price: float, atr: Optional[float]
    ) -> None:
        position = managed.position
        entry = position.entry_price
        buy = position.side == Side.BUY

        price_change = self._price_change(managed, current_price)

        managed.last_price = current_price
        managed.max_favorable_excursion = max(
            managed.max_favorable_excursion, max(0.0, price_change)
        )
        managed.max_adverse_excursion = min(
            managed.max_adverse_excursion, min(0.0, price_change)
        )

        sign = (price_change > 0) - (price_change < 0)
        gross_pnl = abs(current_price - entry) * position.size * sign
        net_pnl = gross_pnl - managed.exchange_fees
        if not managed.profit_lock_triggered and net_pnl > 0:
            managed.profit_lock_triggered = True
            logger.debug(
                "Profit lock triggered",
                position_id=position.id,
                net_pnl=round(net_pnl, 6),
            )

        if self.config.enable_trailing_stops and managed.profit_lock_triggered and atr:
            distance = max(
                atr * self.config.trailing_stop_atr_multiplier,
                managed.fee_reserve * self.config.stop_fee_multiple,
            )
            if buy:
                candidate = current_price - distance
                if managed.trailing_stop_price is None or candidate > managed.trailing_stop_price:
                    managed.trailing_stop_price = candidate
            else:
                candidate = current_price + distance
                if managed.trailing_stop_price is None or candidate < managed.trailing_stop_price:
                    managed.trailing_stop_price = candidate

    def _evaluate_exit(
        self, managed: ManagedPosition, current_price: float, now: datetime
    ) -> ExitDecision:
        side = managed.position.side

        if managed.stop_loss_price is not None and _crossed_against(
            side, current_price, managed.stop_loss_price
        ):
            return ExitDecision(
                should_exit=True,
                exit_reason="Stop loss triggered",
                reason_code=ExitReason.STOP_LOSS,
            )

        if managed.trailing_stop_price is not None and _crossed_against(
            side, current_price, managed.trailing_stop_price
        ):
            return ExitDecision(
                should_exit=True,
                exit_reason="Trailing stop triggered",
                reason_code=ExitReason.TRAILING_STOP,
            )

        if managed.take_profit_price is not None and _crossed_in_favor(
            side, current_price, managed.take_profit_price
        ):
            return ExitDecision(
                should_exit=True,
                exit_reason="Take profit triggered",
                reason_code=ExitReason.TAKE_PROFIT,
            )

        ladder = self.config.partial_profit_levels
        if self.config.enable_partial_profits and managed.partial_profits_taken < len(ladder):
            level = ladder[managed.partial_profits_taken]
            threshold = level / 100 + managed.fee_fraction
            if self._price_change(managed, current_price) >= threshold:
                managed.partial_profits_taken += 1
                quantity = managed.position.size * self.config.partial_exit_fraction
                managed.remaining_size = max(0.0, managed.remaining_size - quantity)
                return ExitDecision(
                    should_exit=True,
                    exit_reason=f"Partial profit at {level:.1f}%",
                    reason_code=ExitReason.PARTIAL_PROFIT,
                    is_partial_exit=True,
                    exit_quantity=quantity,
                )

        held_seconds = (now - managed.entry_time).total_seconds()
        max_hold = min(managed.prediction.time_horizon, self.config.max_hold_seconds)
        if held_seconds >= max_hold:
            return ExitDecision(
                should_exit=True,
                exit_reason="Time horizon reached",
                reason_code=ExitReason.TIME_LIMIT,
            )

        return ExitDecision.hold()

    @staticmethod
    def _price_change(managed: ManagedPosition, current_price: float) -> float:
        entry = managed.position.entry_price
        if entry <= 0:
            return 0.0
        move = (current_price - entry) / entry
        return move if managed.position.side == Side.BUY else -move

    # ------------------------------------------------------------------
    # Inspection and configuration
    # ------------------------------------------------------------------

    def get(self, position_id: str) -> Optional[ManagedPosition]:
        """Copy of the tracked state; mutating it does not affect tracking."""
        with self._lock:
            managed = self._positions.get(position_id)
            return dataclasses.replace(managed) if managed is not None else None

    def positions(self) -> list[ManagedPosition]:
        """Snapshot of all tracked positions in opening order."""
        with self._lock:
            return [dataclasses.replace(m) for m in self._positions.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._positions)

    def __contains__(self, position_id: object) -> bool:
        with self._lock:
            return position_id in self._positions

    def update_config(self, **changes: Any) -> PositionManagerConfig:
        """Replace selected config fields. Applies from the next tick.

        Thresholds already computed at open() are kept.

        Raises:
            ConfigurationError: the merged config fails validation.
        """
        with self._lock:
            try:
                new_config = PositionManagerConfig.model_validate(
                    {**self.config.model_dump(), **changes}
                )
            except ValidationError as exc:
                raise ConfigurationError(
                    f"Invalid position manager config: {exc}"
                ) from exc
            self.config = new_config
        logger.info("Position manager config updated", fields=sorted(changes))
        return new_config
