"""Reconciliation schemas — report and risk-assessment outputs.

Output types of the reconciliation engine.

Rules:
  - is_consistent is True iff there are zero discrepancies
  - has_critical_discrepancies is True iff any discrepancy is CRITICAL
  - Non-finite values from corrupt input survive JSON as NaN or
    Infinity so persisted reports still reload
  - content_hash covers discrepancies and calculated values only, so
    re-running on an unchanged portfolio yields the same hash even
    though timestamp and reconciliation_id differ
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tradeguard.schemas.enums import DiscrepancyCategory, RiskLevel, Severity
from tradeguard.utils.hashing import compute_content_hash


class Discrepancy(BaseModel):
    """One divergence between a stated and a recomputed value."""

    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    field: str = Field(..., description="Audited field, e.g. equity or positions[0].size")
    expected: float = Field(...)
    actual: float = Field(...)
    difference: float = Field(..., ge=0.0, description="Absolute divergence")
    severity: Severity = Field(...)
    category: DiscrepancyCategory = Field(default=DiscrepancyCategory.CALCULATION)
    potential_impact: float = Field(..., ge=0.0, description="Financial impact in USD")
    description: str = Field(default="")


class CalculatedValues(BaseModel):
    """Aggregates recomputed from raw positions."""

    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    expected_equity: float
    expected_total_pnl: float
    expected_unrealized_pnl: float
    expected_realized_pnl: float
    expected_available_balance: float


class RiskFlags(BaseModel):
    """Boolean risk signals derived during the reconciliation pass."""

    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    negative_balance: bool = False
    exceeded_capital: bool = False
    large_discrepancy: bool = False
    stale_positions: bool = False


class ReconciliationMetadata(BaseModel):
    """Run metadata. Excluded from the content hash."""

    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    timestamp: datetime = Field(...)
    open_positions_count: int = Field(default=0, ge=0)
    closed_positions_count: int = Field(default=0, ge=0)
    total_exposure: float = Field(default=0.0, ge=0.0)
    reconciliation_id: str = Field(...)

    @field_validator("timestamp")
    @classmethod
    def must_have_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("Timestamp must include timezone information")
        return v


class ReconciliationReport(BaseModel):
    """Complete output of one reconciliation run. Content-hashed."""

    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    is_consistent: bool = Field(...)
    has_critical_discrepancies: bool = Field(...)
    has_booking_errors: bool = Field(default=False)
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    calculated_values: CalculatedValues = Field(...)
    risk_flags: RiskFlags = Field(default_factory=RiskFlags)
    metadata: ReconciliationMetadata = Field(...)
    content_hash: str = Field(default="")

    @property
    def reconciliation_id(self) -> str:
        return self.metadata.reconciliation_id

    @property
    def total_potential_impact(self) -> float:
        return sum(d.potential_impact for d in self.discrepancies)

    def count_by_severity(self, severity: Severity) -> int:
        return sum(1 for d in self.discrepancies if d.severity == severity)

    @model_validator(mode="after")
    def _compute_content_hash(self) -> "ReconciliationReport":
        if not self.content_hash:
            data = {
                "discrepancies": [d.model_dump(mode="json") for d in self.discrepancies],
                "calculated_values": self.calculated_values.model_dump(mode="json"),
            }
            object.__setattr__(self, "content_hash", compute_content_hash(data))
        return self


class RiskAssessment(BaseModel):
    """Trading recommendation derived from a reconciliation report.

    The core only recommends. Halting trading is the caller's job.
    """

    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    risk_level: RiskLevel = Field(...)
    should_halt_trading: bool = Field(default=False)
    recommended_actions: list[str] = Field(default_factory=list)
    total_impact: float = Field(default=0.0, ge=0.0)
