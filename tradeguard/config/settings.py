"""Centralized environment-based settings for TradeGuard.

Reads system-level configuration from environment variables with
sensible defaults. Risk thresholds live in the YAML risk config; this
module only locates it and controls logging and report storage.

Usage:
    from tradeguard.config.settings import get_settings
    settings = get_settings()
"""

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class TradeGuardSettings:
    """Immutable application settings loaded from environment."""

    # Logging
    log_level: str = "INFO"
    json_logs: bool = True

    # Risk config location
    config_path: Path = Path("config/risk.yaml")

    # Reconciliation report audit log
    report_dir: Path = Path("data")

    @property
    def report_path(self) -> Path:
        return self.report_dir / "reconciliation_reports.jsonl"


def get_settings() -> TradeGuardSettings:
    """Load settings from environment variables.

    Environment variables (all optional):
        TRADEGUARD_LOG_LEVEL: Logging level (default: INFO)
        TRADEGUARD_JSON_LOGS: Render logs as JSON (default: true)
        TRADEGUARD_CONFIG_PATH: Risk config YAML (default: config/risk.yaml)
        TRADEGUARD_REPORT_DIR: Report storage directory (default: data)
    """
    def _bool(key: str, default: bool = False) -> bool:
        val = os.environ.get(key, "").lower()
        if val in ("1", "true", "yes"):
            return True
        if val in ("0", "false", "no"):
            return False
        return default

    return TradeGuardSettings(
        log_level=os.environ.get("TRADEGUARD_LOG_LEVEL", "INFO").upper(),
        json_logs=_bool("TRADEGUARD_JSON_LOGS", True),
        config_path=Path(os.environ.get("TRADEGUARD_CONFIG_PATH", "config/risk.yaml")),
        report_dir=Path(os.environ.get("TRADEGUARD_REPORT_DIR", "data")),
    )
