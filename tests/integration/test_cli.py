"""End-to-end tests for the tradeguard command line."""

import json

import pytest
from structlog.testing import capture_logs

import tradeguard.__main__ as cli
from tradeguard.__main__ import EXIT_ERROR, EXIT_HALT, EXIT_OK, main


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    """Keep structlog on its test capture instead of stderr."""
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)


@pytest.fixture
def missing_config(tmp_path):
    return tmp_path / "no-such-risk.yaml"


def _write_json(path, data):
    path.write_text(json.dumps(data))
    return path


def _run(argv):
    with capture_logs() as logs:
        code = main(argv)
    return code, logs


class TestReconcileCommand:
    """tradeguard reconcile."""

    def test_consistent_portfolio(self, tmp_path, capsys, consistent_portfolio, missing_config):
        path = _write_json(tmp_path / "p.json", consistent_portfolio.model_dump(mode="json"))
        code, _ = _run(["--config", str(missing_config), "reconcile", str(path)])

        out = json.loads(capsys.readouterr().out)
        assert code == EXIT_OK
        assert out["report"]["is_consistent"] is True
        assert out["assessment"]["risk_level"] == "LOW"

    def test_critical_drift_halts(self, tmp_path, capsys, consistent_portfolio, missing_config):
        drifted = consistent_portfolio.model_copy(update={"equity": 10_500.0})
        path = _write_json(tmp_path / "p.json", drifted.model_dump(mode="json"))
        code, _ = _run(["--config", str(missing_config), "reconcile", str(path)])

        out = json.loads(capsys.readouterr().out)
        assert code == EXIT_HALT
        assert out["assessment"]["should_halt_trading"] is True
        assert out["report"]["discrepancies"][0]["field"] == "equity"

    def test_nan_price_halts_instead_of_crashing(
        self, tmp_path, capsys, consistent_portfolio, missing_config
    ):
        data = consistent_portfolio.model_dump(mode="json")
        data["positions"][0]["current_price"] = float("nan")
        path = _write_json(tmp_path / "p.json", data)
        store = tmp_path / "reports.jsonl"
        code, _ = _run(
            ["--config", str(missing_config), "reconcile", str(path), "--store", str(store)]
        )

        out = json.loads(capsys.readouterr().out)
        assert code == EXIT_HALT
        assert out["assessment"]["risk_level"] == "CRITICAL"
        assert out["report"]["has_booking_errors"] is True
        assert len(store.read_text().splitlines()) == 1

    def test_store_appends_report(self, tmp_path, capsys, consistent_portfolio, missing_config):
        path = _write_json(tmp_path / "p.json", consistent_portfolio.model_dump(mode="json"))
        store = tmp_path / "audit" / "reports.jsonl"
        _run(["--config", str(missing_config), "reconcile", str(path), "--store", str(store)])
        _run(["--config", str(missing_config), "reconcile", str(path), "--store", str(store)])
        capsys.readouterr()
        assert len(store.read_text().splitlines()) == 2

    def test_config_file_is_applied(self, tmp_path, capsys, consistent_portfolio):
        config = tmp_path / "risk.yaml"
        config.write_text(
            "reconciliation:\n"
            "  tolerance: 0.01\n"
            "  high_threshold: 0.02\n"
            "  critical_threshold: 0.05\n"
        )
        drifted = consistent_portfolio.model_copy(update={"total_pnl": 10.5})
        path = _write_json(tmp_path / "p.json", drifted.model_dump(mode="json"))
        code, _ = _run(["--config", str(config), "reconcile", str(path)])
        capsys.readouterr()
        assert code == EXIT_HALT


class TestCorrectCommand:
    """tradeguard correct."""

    def test_prints_corrected_portfolio(self, tmp_path, capsys, consistent_portfolio, missing_config):
        drifted = consistent_portfolio.model_copy(update={"equity": 10_015.0})
        path = _write_json(tmp_path / "p.json", drifted.model_dump(mode="json"))
        code, _ = _run(["--config", str(missing_config), "correct", str(path)])

        out = json.loads(capsys.readouterr().out)
        assert code == EXIT_OK
        assert out["equity"] == pytest.approx(10_010.0)

    def test_critical_left_untouched(self, tmp_path, capsys, consistent_portfolio, missing_config):
        drifted = consistent_portfolio.model_copy(update={"equity": 12_000.0})
        path = _write_json(tmp_path / "p.json", drifted.model_dump(mode="json"))
        code, _ = _run(["--config", str(missing_config), "correct", str(path)])

        out = json.loads(capsys.readouterr().out)
        assert code == EXIT_HALT
        assert out["equity"] == 12_000.0


class TestReplayCommand:
    """tradeguard replay."""

    def test_stops_out(self, tmp_path, capsys, btc_long, missing_config):
        position = btc_long.model_copy(update={"size": 10.0, "current_price": 100.0})
        ticks = _write_json(tmp_path / "ticks.json", {
            "position": position.model_dump(mode="json"),
            "prediction": {"time_horizon": 300},
            "atr": 2.0,
            "prices": [100.5, 100.9, 97.5, 99.0],
        })
        code, _ = _run(["--config", str(missing_config), "replay", str(ticks)])

        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert code == EXIT_OK
        assert [line["tick"] for line in lines] == [1, 2, 3]
        assert lines[-1]["reason_code"] == "STOP_LOSS"
        assert not any(line["should_exit"] for line in lines[:-1])

    def test_invalid_replay_file(self, tmp_path, capsys, missing_config):
        ticks = _write_json(tmp_path / "ticks.json", {"prices": [1.0]})
        code, _ = _run(["--config", str(missing_config), "replay", str(ticks)])
        assert code == EXIT_ERROR
        assert "Invalid replay file" in capsys.readouterr().err


class TestErrors:
    """Failures map to exit code 1 with a message on stderr."""

    def test_missing_portfolio_file(self, tmp_path, capsys, missing_config):
        code, logs = _run(["--config", str(missing_config), "reconcile", str(tmp_path / "nope.json")])
        assert code == EXIT_ERROR
        assert "error: Cannot read" in capsys.readouterr().err
        assert logs[-1]["event"] == "Command failed"

    def test_invalid_portfolio(self, tmp_path, capsys, missing_config):
        path = _write_json(tmp_path / "p.json", {"positions": "nope"})
        code, _ = _run(["--config", str(missing_config), "reconcile", str(path)])
        assert code == EXIT_ERROR
        assert "Invalid portfolio" in capsys.readouterr().err

    def test_invalid_config(self, tmp_path, capsys, consistent_portfolio):
        config = tmp_path / "risk.yaml"
        config.write_text("fee_rate: 5\n")
        path = _write_json(tmp_path / "p.json", consistent_portfolio.model_dump(mode="json"))
        code, _ = _run(["--config", str(config), "reconcile", str(path)])
        assert code == EXIT_ERROR
        assert "Invalid risk configuration" in capsys.readouterr().err

    def test_subcommand_required(self, capsys):
        with pytest.raises(SystemExit):
            main([])
        capsys.readouterr()
