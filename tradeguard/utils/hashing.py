"""Deterministic hashing utilities for TradeGuard.

All hashing uses SHA-256 with deterministic serialization (sorted keys)
so identical reconciliation results always produce identical hashes.
"""

import hashlib
import json
from typing import Any


def compute_content_hash(data: Any) -> str:
    """Compute SHA-256 hash of arbitrary data.

    Serializes the data deterministically using sorted keys and
    computes the SHA-256 hex digest.

    Args:
        data: Any JSON-serializable data (dict, list, primitive, or
              Pydantic model with .model_dump()).

    Returns:
        Hex-encoded SHA-256 hash string (64 characters).
    """
    if hasattr(data, "model_dump"):
        serializable = data.model_dump(mode="json")
    elif isinstance(data, (list, tuple)):
        serializable = [
            item.model_dump(mode="json") if hasattr(item, "model_dump") else item
            for item in data
        ]
    else:
        serializable = data

    serialized = json.dumps(serializable, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(serialized).hexdigest()


def new_reconciliation_id(timestamp_ms: int, entropy: str) -> str:
    """Build a human-readable reconciliation run id.

    Format: ``recon_<epoch-millis>_<9 hex chars>``.
    """
    digest = hashlib.sha256(entropy.encode("utf-8")).hexdigest()[:9]
    return f"recon_{timestamp_ms}_{digest}"
