"""TradeGuard CLI — audit portfolio snapshots and replay exit decisions.

Usage:
    python -m tradeguard reconcile portfolio.json   Print report and risk assessment
    python -m tradeguard correct portfolio.json     Print the corrected portfolio
    python -m tradeguard replay ticks.json          Replay prices through the exit manager

reconcile exits with status 2 when trading should be halted.
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from tradeguard.config.risk_config import RiskConfig
from tradeguard.config.settings import get_settings
from tradeguard.exceptions import PortfolioLoadError, TradeGuardError
from tradeguard.schemas.portfolio import Portfolio, Position
from tradeguard.schemas.position import Indicators, PredictionOutput
from tradeguard.services.fees import FlatFeeModel
from tradeguard.services.position_manager import PositionLifecycleManager
from tradeguard.services.reconciliation import ReconciliationEngine
from tradeguard.storage import ReportStore
from tradeguard.utils.logging import configure_logging, get_logger

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_HALT = 2


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="tradeguard",
        description="TradeGuard — portfolio reconciliation and position risk management",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=settings.config_path,
        help="Path to risk config YAML (missing file = defaults)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.log_level if settings.log_level in
        ("DEBUG", "INFO", "WARNING", "ERROR") else "INFO",
        help="Logging level",
    )
    parser.add_argument(
        "--console-logs",
        action="store_true",
        default=not settings.json_logs,
        help="Human-readable logs instead of JSON",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Audit a portfolio snapshot")
    reconcile.add_argument("portfolio", type=Path, help="Portfolio JSON file")
    reconcile.add_argument(
        "--store",
        type=Path,
        default=None,
        help=f"Append the report to a JSONL audit log (e.g. {settings.report_path})",
    )

    correct = subparsers.add_parser("correct", help="Print a corrected portfolio")
    correct.add_argument("portfolio", type=Path, help="Portfolio JSON file")

    replay = subparsers.add_parser("replay", help="Replay a price series for one position")
    replay.add_argument("ticks", type=Path, help="Tick replay JSON file")

    return parser.parse_args(argv)


def _read_json(path: Path) -> Any:
    try:
        with open(path) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise PortfolioLoadError(f"Cannot read {path}: {exc}") from exc


def load_portfolio(path: Path) -> Portfolio:
    """Load and validate a portfolio snapshot from JSON."""
    try:
        return Portfolio.model_validate(_read_json(path))
    except ValidationError as exc:
        raise PortfolioLoadError(f"Invalid portfolio in {path}: {exc}") from exc


def _cmd_reconcile(args: argparse.Namespace, config: RiskConfig) -> int:
    portfolio = load_portfolio(args.portfolio)
    engine = ReconciliationEngine(config.reconciliation)
    report = engine.reconcile(portfolio)
    assessment = engine.assess_risk(report)

    if args.store:
        ReportStore(persist_path=args.store).append(report)

    print(json.dumps(
        {
            "report": report.model_dump(mode="json"),
            "assessment": assessment.model_dump(mode="json"),
        },
        indent=2,
    ))
    return EXIT_HALT if assessment.should_halt_trading else EXIT_OK


def _cmd_correct(args: argparse.Namespace, config: RiskConfig) -> int:
    portfolio = load_portfolio(args.portfolio)
    engine = ReconciliationEngine(config.reconciliation)
    report = engine.reconcile(portfolio)
    corrected = engine.correct(portfolio, report)
    print(corrected.model_dump_json(indent=2))
    return EXIT_HALT if report.has_critical_discrepancies else EXIT_OK


def _cmd_replay(args: argparse.Namespace, config: RiskConfig) -> int:
    """Feed a price series through a fresh lifecycle manager.

    File format:
        {"position": {...}, "prediction": {...}, "atr": 2.0,
         "tick_seconds": 1.0, "prices": [101.0, 101.5, ...]}
    """
    raw = _read_json(args.ticks)
    try:
        position = Position.model_validate(raw["position"])
        prediction = PredictionOutput.model_validate(raw.get("prediction", {}))
        indicators = Indicators(atr=raw.get("atr"))
        prices = [float(p) for p in raw["prices"]]
        step = timedelta(seconds=float(raw.get("tick_seconds", 1.0)))
    except (KeyError, TypeError, ValueError) as exc:
        raise PortfolioLoadError(f"Invalid replay file {args.ticks}: {exc}") from exc

    entry_time = position.timestamp
    manager = PositionLifecycleManager(
        config.position_manager,
        fee_model=FlatFeeModel(config.fee_rate),
        clock=lambda: entry_time,
    )
    manager.open(position, prediction, indicators)

    for i, price in enumerate(prices, start=1):
        decision = manager.tick(position.id, price, indicators, now=entry_time + step * i)
        print(json.dumps({"tick": i, "price": price, **decision.model_dump(mode="json")}))
        if decision.should_exit and not decision.is_partial_exit:
            manager.remove(position.id)
            break
    return EXIT_OK


COMMANDS = {
    "reconcile": _cmd_reconcile,
    "correct": _cmd_correct,
    "replay": _cmd_replay,
}


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    configure_logging(json_output=not args.console_logs, level=args.log_level)
    logger = get_logger("cli")

    try:
        config = RiskConfig.from_yaml(args.config)
        return COMMANDS[args.command](args, config)
    except TradeGuardError as exc:
        logger.error("Command failed", command=args.command, error=str(exc))
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
