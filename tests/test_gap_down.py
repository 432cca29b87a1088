# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Tests for gap-down risk simulation and open heat."""

from __future__ import annotations

from datetime import date

import pytest

from truefolio.core.capital_ledger import CapitalLedgerService
from truefolio.core.journal.models import (
    Direction,
    ExitEvent,
    PositionStatus,
    Trade,
    YearlyStartingCapital,
)
from truefolio.core.journal.store import InMemoryLedgerRepository
from truefolio.core.portfolio.gap_down_simulator import (
    GapDownAnalyzer,
    format_sweep_summary,
    is_risky_position,
    simulate_gap_down,
    trade_open_heat,
)


def _position(trade_id="t", direction=Direction.LONG, sl=None, tsl=None, status=PositionStatus.OPEN,
              price=100.0, qty=10, exits=()) -> Trade:
    return Trade(
        trade_id=trade_id,
        symbol="SYM",
        entry_date="2024-06-03",
        entry_price=price,
        quantity=qty,
        direction=direction,
        status=status,
        exits=exits,
        stop_loss=sl,
        trailing_stop=tsl,
    )


class TestRiskyPosition:
    """Only a trailing stop at least as good as the stop-loss protects a position."""

    def test_no_stops_is_risky(self):
        assert is_risky_position(_position()) is True

    def test_trailing_stop_alone_is_protective(self):
        assert is_risky_position(_position(tsl=98.0)) is False

    def test_stop_loss_alone_is_risky(self):
        assert is_risky_position(_position(sl=95.0)) is True

    def test_long_trailing_at_or_above_stop(self):
        assert is_risky_position(_position(sl=95.0, tsl=95.0)) is False
        assert is_risky_position(_position(sl=95.0, tsl=97.0)) is False
        assert is_risky_position(_position(sl=95.0, tsl=90.0)) is True

    def test_short_trailing_at_or_below_stop(self):
        short = Direction.SHORT
        assert is_risky_position(_position(direction=short, sl=105.0, tsl=105.0)) is False
        assert is_risky_position(_position(direction=short, sl=105.0, tsl=103.0)) is False
        assert is_risky_position(_position(direction=short, sl=105.0, tsl=108.0)) is True


class TestScenario:
    def test_long_position(self):
        result = simulate_gap_down([_position(sl=95.0)], 10.0, 10000.0)
        assert result.total_normal_risk == pytest.approx(50.0)
        assert result.total_gap_down_risk == pytest.approx(100.0)
        assert result.total_additional_risk == pytest.approx(50.0)
        assert result.risk_increase_factor == pytest.approx(2.0)
        assert result.normal_pf_impact == pytest.approx(0.5)
        assert result.gap_down_pf_impact == pytest.approx(1.0)
        assert result.additional_pf_impact == pytest.approx(0.5)
        row = result.per_trade[0]
        assert row.gap_price == pytest.approx(90.0)

    def test_short_position(self):
        result = simulate_gap_down([_position(direction=Direction.SHORT, sl=105.0)], 10.0, 10000.0)
        assert result.total_normal_risk == pytest.approx(50.0)
        assert result.per_trade[0].gap_price == pytest.approx(110.0)
        assert result.total_gap_down_risk == pytest.approx(100.0)

    def test_missing_stop_counts_as_zero(self):
        result = simulate_gap_down([_position()], 5.0, 10000.0)
        assert result.total_normal_risk == pytest.approx(1000.0)

    def test_partial_uses_open_quantity(self):
        t = _position(sl=95.0, status=PositionStatus.PARTIAL, exits=(ExitEvent("2024-06-10", 110.0, 4),))
        result = simulate_gap_down([t], 10.0, 10000.0)
        assert result.per_trade[0].open_qty == 6
        assert result.total_normal_risk == pytest.approx(30.0)

    def test_closed_and_protected_ignored(self):
        closed = _position("c", sl=95.0, status=PositionStatus.CLOSED, exits=(ExitEvent("2024-06-10", 110.0, 10),))
        protected = _position("p", sl=95.0, tsl=99.0)
        result = simulate_gap_down([closed, protected], 10.0, 10000.0)
        assert result.per_trade == []
        assert result.total_gap_down_risk == 0.0
        assert result.risk_increase_factor == 1.0

    def test_zero_portfolio_size(self):
        result = simulate_gap_down([_position(sl=95.0)], 10.0, 0.0)
        assert result.gap_down_pf_impact == 0.0


class TestSweep:
    def test_gap_risk_grows_with_gap_size(self):
        trades = [
            _position("a", sl=95.0),
            _position("b", direction=Direction.SHORT, sl=104.0, price=100.0, qty=5),
            _position("c", sl=80.0, price=50.0, qty=20),
        ]
        results = GapDownAnalyzer().sweep(trades, 50000.0, percentages=(1, 2, 3, 4, 5, 7, 10, 15, 20))
        risks = [r.total_gap_down_risk for r in results]
        additional = [r.total_additional_risk for r in results]
        assert risks == sorted(risks)
        assert additional == sorted(additional)
        assert len({r.total_normal_risk for r in results}) == 1

    def test_default_percentages(self):
        results = GapDownAnalyzer().sweep([_position(sl=95.0)], 10000.0)
        assert [r.gap_percent for r in results] == [1.0, 2.0, 3.0, 4.0, 5.0, 7.0, 10.0, 15.0, 20.0]

    def test_summary_text(self):
        results = GapDownAnalyzer().sweep([_position(sl=95.0)], 10000.0, percentages=(5,))
        assert format_sweep_summary(results).startswith("Gap 5%: risk 50")
        assert format_sweep_summary([]) == "No gap-down scenarios"


class TestLedgerSizing:
    def test_ledger_capital_replaces_flat_size(self):
        repo = InMemoryLedgerRepository(yearly_capitals=[YearlyStartingCapital(year=2024, amount=50000)])
        ledger = CapitalLedgerService(repo, history_years=5, max_months=120, clock=lambda: date(2024, 6, 15))
        result = GapDownAnalyzer(ledger).scenario([_position(sl=95.0)], 10.0, portfolio_size=1.0)
        assert result.portfolio_size == pytest.approx(50000.0)
        assert result.gap_down_pf_impact == pytest.approx(0.2)


class TestOpenHeat:
    def test_uses_better_stop(self):
        assert trade_open_heat(_position(sl=95.0, tsl=98.0)) == pytest.approx(20.0)
        short = _position(direction=Direction.SHORT, sl=105.0, tsl=103.0)
        assert trade_open_heat(short) == pytest.approx(30.0)

    def test_no_stop_or_stop_past_entry(self):
        assert trade_open_heat(_position()) == 0.0
        assert trade_open_heat(_position(sl=101.0)) == 0.0

    def test_portfolio_heat(self):
        heat = GapDownAnalyzer().open_heat([_position("a", sl=95.0), _position("b", sl=90.0)], 10000.0)
        assert heat["total_risk"] == pytest.approx(150.0)
        assert heat["heat_pct"] == pytest.approx(1.5)
        assert len(heat["positions"]) == 2
