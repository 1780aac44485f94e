"""Risk parameters for reconciliation and position lifecycle management.

Thresholds are configuration, not behaviour forks: every tolerance,
multiplier and fee rate is passed explicitly at construction. Values
are validated once here so the per-tick hot path never re-checks them.

Expected YAML structure:
    fee_rate: 0.002
    reconciliation:
      tolerance: 0.10
      high_threshold: 10.0
      critical_threshold: 50.0
      leverage_limit: 5.0
    position_manager:
      stop_loss_multiplier: 1.0
      partial_profit_levels: [0.8, 1.5, 2.2]
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from tradeguard.exceptions import ConfigurationError


class ReconciliationConfig(BaseModel):
    """Tolerances and risk limits for the reconciliation engine.

    Dollar values are in quote currency (USD).
    """

    model_config = ConfigDict(frozen=True)

    tolerance: float = Field(
        default=0.10, ge=0.0,
        description="Divergence at or below this is floating-point noise",
    )
    high_threshold: float = Field(
        default=10.0, gt=0.0,
        description="Divergence above this is HIGH severity",
    )
    critical_threshold: float = Field(
        default=50.0, gt=0.0,
        description="Divergence above this is CRITICAL severity",
    )
    leverage_limit: float = Field(
        default=5.0, gt=0.0,
        description="Maximum total exposure as a multiple of equity",
    )
    negative_balance_guard: float = Field(
        default=-10.0, le=0.0,
        description="Available balance below this raises negative_balance",
    )
    exceeded_capital_multiple: float = Field(
        default=2.0, gt=1.0,
        description="Equity above base_capital times this raises exceeded_capital",
    )
    stale_after_seconds: float = Field(
        default=3600.0, gt=0.0,
        description="Open positions older than this are stale",
    )

    # Risk assessment
    high_risk_impact: float = Field(default=100.0, gt=0.0)
    medium_risk_impact: float = Field(default=25.0, gt=0.0)
    max_high_severity: int = Field(
        default=2, ge=0,
        description="More HIGH discrepancies than this is HIGH risk",
    )
    max_discrepancies: int = Field(
        default=5, ge=0,
        description="More discrepancies than this is MEDIUM risk",
    )

    @model_validator(mode="after")
    def _thresholds_ordered(self) -> "ReconciliationConfig":
        if not self.tolerance < self.high_threshold < self.critical_threshold:
            raise ValueError(
                "Thresholds must satisfy tolerance < high_threshold < critical_threshold"
            )
        if self.medium_risk_impact >= self.high_risk_impact:
            raise ValueError("medium_risk_impact must be below high_risk_impact")
        return self


class PositionManagerConfig(BaseModel):
    """Exit rules for the position lifecycle manager.

    Multipliers for stop loss and take profit double as percentage
    floors: a stop_loss_multiplier of 1.0 means "1x ATR, and never
    closer than 1% of entry".
    """

    model_config = ConfigDict(frozen=True)

    enable_stop_loss: bool = True
    stop_loss_multiplier: float = Field(default=1.0, gt=0.0)
    enable_take_profit: bool = True
    take_profit_multiplier: float = Field(default=2.0, gt=0.0)
    enable_trailing_stops: bool = True
    trailing_stop_atr_multiplier: float = Field(default=3.0, gt=0.0)
    enable_partial_profits: bool = True
    partial_profit_levels: list[float] = Field(
        default_factory=lambda: [0.8, 1.5, 2.2],
        description="Ladder of percent gains, strictly increasing",
    )
    partial_exit_fraction: float = Field(default=0.33, gt=0.0, lt=1.0)
    max_hold_seconds: float = Field(
        default=600.0, gt=0.0,
        description="Cap on prediction.time_horizon",
    )
    stop_fee_multiple: float = Field(
        default=1.5, gt=0.0,
        description="Stops are never closer than this many fee reserves",
    )
    target_fee_multiple: float = Field(
        default=2.0, gt=0.0,
        description="Targets are never closer than this many fee reserves",
    )

    @field_validator("partial_profit_levels")
    @classmethod
    def ladder_increasing(cls, v: list[float]) -> list[float]:
        if any(level <= 0 for level in v):
            raise ValueError("Partial profit levels must be positive")
        if any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError("Partial profit levels must be strictly increasing")
        return v


class RiskConfig(BaseModel):
    """Top-level risk configuration."""

    model_config = ConfigDict(frozen=True)

    fee_rate: float = Field(
        default=0.002, ge=0.0, lt=1.0,
        description="Round-trip fee as a fraction of trade value",
    )
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)
    position_manager: PositionManagerConfig = Field(default_factory=PositionManagerConfig)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "RiskConfig":
        """Create config from a plain dictionary (useful for testing)."""
        try:
            return cls.model_validate(raw or {})
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid risk configuration: {exc}") from exc

    @classmethod
    def from_yaml(cls, path: str | Path) -> "RiskConfig":
        """Load risk configuration from a YAML file.

        A missing file yields the defaults.
        """
        path = Path(path)
        if not path.exists():
            return cls()

        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Malformed risk config {path}: {exc}") from exc

        if not isinstance(raw, dict):
            raise ConfigurationError(f"Risk config {path} must be a mapping")
        return cls.from_dict(raw)
