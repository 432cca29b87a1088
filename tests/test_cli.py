# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Tests for the report CLI over a temporary JSON store."""

from __future__ import annotations

import json
from datetime import date

import pytest

from truefolio import cli
from truefolio.core import settings
from truefolio.core.journal.models import (
    CapitalChange,
    ExitEvent,
    PositionStatus,
    Trade,
    YearlyStartingCapital,
)
from truefolio.core.journal.store import JsonLedgerRepository

YEAR = date.today().year - 1


@pytest.fixture(autouse=True)
def wide_history(monkeypatch):
    """Keep last year inside the ledger window regardless of config.yaml."""
    monkeypatch.setenv("TRUEFOLIO_HISTORY_YEARS", "50")
    settings._CONFIG_CACHE = None
    yield
    settings._CONFIG_CACHE = None


@pytest.fixture
def store(tmp_path):
    repo = JsonLedgerRepository(tmp_path)
    repo.save_yearly_capital(YearlyStartingCapital(year=YEAR, amount=100000))
    repo.save_capital_change(CapitalChange(date=f"{YEAR}-01-10", amount=20000))
    repo.save_trade(Trade(
        trade_id="t1",
        symbol="INFY",
        entry_date=f"{YEAR}-01-05",
        entry_price=100.0,
        quantity=100,
        status=PositionStatus.CLOSED,
        exits=(ExitEvent(f"{YEAR}-01-20", 150.0, 100),),
    ))
    repo.save_trade(Trade(
        trade_id="t2",
        symbol="TCS",
        entry_date=f"{YEAR}-03-05",
        entry_price=100.0,
        quantity=10,
        status=PositionStatus.OPEN,
        stop_loss=95.0,
    ))
    return tmp_path


def _run(capsys, *argv):
    code = cli.main(list(argv))
    out = capsys.readouterr().out
    return code, (json.loads(out) if out.strip() else None)


class TestLedgerCommand:
    def test_year_records(self, store, capsys):
        code, rows = _run(capsys, "--data-dir", str(store), "ledger", "--year", str(YEAR))
        assert code == 0
        assert len(rows) == 12
        assert rows[0]["opening_capital"] == 100000
        assert rows[0]["effective_starting_capital"] == 120000
        assert rows[0]["final_capital"] == pytest.approx(125000)
        assert rows[1]["opening_capital"] == pytest.approx(125000)

    def test_cash_basis_flag(self, store, capsys):
        code, rows = _run(capsys, "--data-dir", str(store), "ledger", "--year", str(YEAR), "--basis", "cash")
        assert code == 0
        assert rows[0]["period_pl"] == pytest.approx(5000)


class TestReportCommands:
    def test_monthly(self, store, capsys):
        code, rows = _run(capsys, "--data-dir", str(store), "monthly", "--year", str(YEAR))
        assert code == 0
        assert rows[0]["pl_percentage"] == pytest.approx(5000 / 120000 * 100)
        assert "return_12m" in rows[0]

    def test_metrics(self, store, capsys):
        code, metrics = _run(capsys, "--data-dir", str(store), "metrics")
        assert code == 0
        assert metrics["open_positions"] == 1
        assert metrics["win_rate"] == pytest.approx(100.0)
        assert metrics["profit_factor"] is None

    def test_metrics_output_is_strict_json(self, store, capsys):
        assert cli.main(["--data-dir", str(store), "metrics"]) == 0
        out = capsys.readouterr().out
        assert "Infinity" not in out
        assert "NaN" not in out
        json.loads(out, parse_constant=lambda name: pytest.fail(f"non-standard constant {name}"))

    def test_xirr(self, store, capsys):
        code, result = _run(
            capsys, "--data-dir", str(store), "xirr", "--start", f"{YEAR}-01-01", "--end", f"{YEAR}-01-31"
        )
        assert code == 0
        assert result["starting_capital"] == 100000
        assert result["capital_changes"] == 1
        assert result["xirr_pct"] > 0

    def test_xirr_invalid_window(self, store, capsys):
        code, _ = _run(capsys, "--data-dir", str(store), "xirr", "--start", "2024-02-01", "--end", "2024-01-01")
        assert code == 2

    def test_gap_down_flat_size(self, store, capsys):
        code, result = _run(
            capsys, "--data-dir", str(store), "gap-down", "--pct", "10", "--portfolio-size", "10000"
        )
        assert code == 0
        assert result["total_normal_risk"] == pytest.approx(50.0)
        assert result["total_gap_down_risk"] == pytest.approx(100.0)

    def test_gap_down_sweep_uses_ledger(self, store, capsys):
        code, results = _run(capsys, "--data-dir", str(store), "gap-down", "--sweep")
        assert code == 0
        assert len(results) == len(settings.get_gap_percentages())
        assert all(r["portfolio_size"] == pytest.approx(125000) for r in results)

    def test_missing_subcommand_exits(self, capsys):
        with pytest.raises(SystemExit):
            cli.main([])
