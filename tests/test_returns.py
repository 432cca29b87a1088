# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Tests for rolling XIRR windows and the monthly performance table."""

from __future__ import annotations

from datetime import date

import pytest

from truefolio.core.analytics.returns import ROLLING_WINDOWS, RollingReturns, monthly_performance
from truefolio.core.analytics.xirr import XirrCalculator, xirr
from truefolio.core.capital_ledger import CapitalLedgerService
from truefolio.core.journal.models import (
    CapitalChange,
    ExitEvent,
    PositionStatus,
    Trade,
    YearlyStartingCapital,
)
from truefolio.core.journal.store import InMemoryLedgerRepository


def _closed(trade_id: str, entry: str, exit_date: str, pl: float) -> Trade:
    return Trade(
        trade_id=trade_id,
        symbol="SYM",
        entry_date=entry,
        entry_price=100.0,
        quantity=100,
        status=PositionStatus.CLOSED,
        exits=(ExitEvent(exit_date, 100.0 + pl / 100, 100),),
    )


def _ledger(repo: InMemoryLedgerRepository, clock: date) -> CapitalLedgerService:
    return CapitalLedgerService(repo, history_years=5, max_months=120, clock=lambda: clock)


class TestRollingReturns:
    def test_flat_capital_has_zero_return(self):
        repo = InMemoryLedgerRepository(yearly_capitals=[YearlyStartingCapital(year=2024, amount=100000)])
        rolling = RollingReturns(_ledger(repo, date(2024, 6, 15)), XirrCalculator(cache_size=50))
        assert rolling.window_return("Jun", 2024, 3) == pytest.approx(0.0, abs=1e-6)
        assert rolling.ytd_return("Jun", 2024) == pytest.approx(0.0, abs=1e-6)

    def test_twelve_month_window(self):
        repo = InMemoryLedgerRepository(
            trades=[_closed("t1", "2024-05-02", "2024-05-20", 10000.0)],
            yearly_capitals=[YearlyStartingCapital(year=2023, amount=100000)],
        )
        rolling = RollingReturns(_ledger(repo, date(2025, 1, 10)), XirrCalculator(cache_size=50))
        rate = rolling.window_return("Dec", 2024, 12)
        # Dec 31 2023 -> Dec 31 2024 is 366 days
        assert rate == pytest.approx((1.1 ** (365 / 366) - 1) * 100, abs=1e-3)

    def test_deposit_inside_window_is_a_flow(self):
        repo = InMemoryLedgerRepository(
            yearly_capitals=[YearlyStartingCapital(year=2024, amount=100000)],
            capital_changes=[CapitalChange(date="2024-03-10", amount=50000)],
        )
        rolling = RollingReturns(_ledger(repo, date(2024, 6, 15)), XirrCalculator(cache_size=50))
        expected = xirr(
            date(2024, 2, 29), 100000.0, date(2024, 5, 31), 150000.0,
            [CapitalChange(date="2024-03-10", amount=50000)],
        )
        assert expected > 0.0
        assert rolling.window_return("May", 2024, 3) == pytest.approx(expected)

    def test_ytd_includes_january_first_deposit(self):
        repo = InMemoryLedgerRepository(
            yearly_capitals=[YearlyStartingCapital(year=2024, amount=100000)],
            capital_changes=[CapitalChange(date="2024-01-01", amount=20000)],
        )
        rolling = RollingReturns(_ledger(repo, date(2024, 6, 15)), XirrCalculator(cache_size=50))
        expected = xirr(
            date(2024, 1, 1), 100000.0, date(2024, 3, 31), 120000.0,
            [CapitalChange(date="2024-01-01", amount=20000)],
        )
        assert expected > 0.0
        assert rolling.ytd_return("Mar", 2024) == pytest.approx(expected)


class TestMonthlyPerformance:
    def test_rows_and_columns(self):
        repo = InMemoryLedgerRepository(
            trades=[_closed("t1", "2024-01-05", "2024-01-20", 5000.0)],
            yearly_capitals=[YearlyStartingCapital(year=2024, amount=100000)],
            capital_changes=[CapitalChange(date="2024-01-10", amount=20000)],
        )
        rows = monthly_performance(_ledger(repo, date(2024, 6, 15)), 2024, calculator=XirrCalculator(cache_size=50))
        assert len(rows) == 12
        jan = rows[0]
        assert jan["month"] == "Jan"
        assert jan["final_capital"] == pytest.approx(125000)
        assert jan["pl_percentage"] == pytest.approx(5000 / 120000 * 100)
        assert jan["ytd_return"] > 0
        for n in ROLLING_WINDOWS:
            assert f"return_{n}m" in jan

    def test_future_months_have_no_returns(self):
        repo = InMemoryLedgerRepository(yearly_capitals=[YearlyStartingCapital(year=2024, amount=100000)])
        rows = monthly_performance(_ledger(repo, date(2024, 6, 15)), 2024, calculator=XirrCalculator(cache_size=50))
        assert rows[5]["ytd_return"] is not None
        assert rows[6]["ytd_return"] is None
        assert rows[11]["return_12m"] is None

    def test_zero_effective_capital_gives_zero_percentage(self):
        rows = monthly_performance(
            _ledger(InMemoryLedgerRepository(), date(2024, 6, 15)), 2024, calculator=XirrCalculator(cache_size=50)
        )
        assert rows[0]["pl_percentage"] == 0.0
