"""Tests for hashing utilities.

Validates deterministic hashing, reconciliation id format, and edge
cases.
"""

import re

from tradeguard.schemas.reconciliation import CalculatedValues
from tradeguard.utils.hashing import compute_content_hash, new_reconciliation_id


# ===================================================================
# compute_content_hash Tests
# ===================================================================
class TestComputeContentHash:
    """Tests for compute_content_hash utility."""

    def test_dict_produces_valid_hash(self) -> None:
        """Dict input should produce a 64-char hex SHA-256."""
        result = compute_content_hash({"symbol": "BTCUSDT", "price": 64_250.5})
        assert len(result) == 64
        assert all(c in "0123456789abcdef" for c in result)

    def test_deterministic(self) -> None:
        """Same input should always produce same hash."""
        data = {"a": 1, "b": [2, 3], "c": {"nested": True}}
        assert compute_content_hash(data) == compute_content_hash(data)

    def test_key_order_invariant(self) -> None:
        """Key order should not affect the hash."""
        h1 = compute_content_hash({"z": 26, "a": 1, "m": 13})
        h2 = compute_content_hash({"a": 1, "m": 13, "z": 26})
        assert h1 == h2

    def test_different_data_different_hash(self) -> None:
        """Different data should produce different hashes."""
        assert compute_content_hash({"value": 100}) != compute_content_hash({"value": 200})

    def test_pydantic_model_input(self) -> None:
        """Pydantic model input should hash the same as its dump."""
        values = CalculatedValues(
            expected_equity=10_010.0,
            expected_total_pnl=10.0,
            expected_unrealized_pnl=10.0,
            expected_realized_pnl=0.0,
            expected_available_balance=9_900.0,
        )
        assert compute_content_hash(values) == compute_content_hash(values.model_dump(mode="json"))

    def test_list_of_models(self) -> None:
        """Lists of models are dumped element-wise."""
        values = CalculatedValues(
            expected_equity=1.0,
            expected_total_pnl=0.0,
            expected_unrealized_pnl=0.0,
            expected_realized_pnl=0.0,
            expected_available_balance=1.0,
        )
        assert compute_content_hash([values]) == compute_content_hash([values.model_dump(mode="json")])


# ===================================================================
# new_reconciliation_id Tests
# ===================================================================
class TestNewReconciliationId:
    """Tests for reconciliation id construction."""

    def test_format(self) -> None:
        rid = new_reconciliation_id(1_772_461_800_000, "abc")
        assert re.fullmatch(r"recon_1772461800000_[0-9a-f]{9}", rid)

    def test_entropy_changes_suffix(self) -> None:
        assert new_reconciliation_id(1, "a") != new_reconciliation_id(1, "b")

    def test_deterministic_for_same_inputs(self) -> None:
        assert new_reconciliation_id(5, "seed") == new_reconciliation_id(5, "seed")
