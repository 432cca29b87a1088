# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Tests for the XIRR solver and its cached calculator."""

from __future__ import annotations

from datetime import date

import pytest

from truefolio.core.analytics.xirr import XirrCalculator, build_cash_flows, solve_rate, xirr
from truefolio.core.journal.models import CapitalChange

START = date(2023, 1, 1)
ONE_YEAR_LATER = date(2024, 1, 1)  # 365 days


class TestXirr:
    """Annualized return over a capital window."""

    @pytest.mark.parametrize("ending", [110000.0, 150000.0, 50000.0, 100000.0])
    def test_one_year_without_flows_matches_simple_return(self, ending):
        expected = (ending / 100000.0 - 1.0) * 100.0
        assert xirr(START, 100000.0, ONE_YEAR_LATER, ending, []) == pytest.approx(expected, abs=1e-4)

    def test_half_year_is_annualized(self):
        # 182 days at +5% compounds to roughly 10.3% a year
        rate = xirr(date(2023, 1, 1), 100000.0, date(2023, 7, 2), 105000.0, [])
        assert rate == pytest.approx((1.05 ** (365 / 182) - 1) * 100, abs=1e-3)

    def test_deposit_is_a_positive_flow(self):
        changes = [CapitalChange(date="2023-07-01", amount=10000)]
        with_deposit = xirr(START, 100000.0, ONE_YEAR_LATER, 110000.0, changes)
        without = xirr(START, 100000.0, ONE_YEAR_LATER, 110000.0, [])
        assert without == pytest.approx(10.0, abs=1e-4)
        assert with_deposit > without

    def test_withdrawal_is_a_negative_flow(self):
        changes = [CapitalChange(date="2023-07-01", amount=10000, type="withdrawal")]
        rate = xirr(START, 100000.0, ONE_YEAR_LATER, 100000.0, changes)
        assert rate < 0.0

    def test_no_sign_change_returns_zero(self):
        assert xirr(START, 0.0, ONE_YEAR_LATER, 100.0, []) == 0.0

    def test_same_day_returns_zero(self):
        assert xirr(START, 100.0, START, 120.0, []) == 0.0

    def test_invalid_window_returns_zero(self):
        assert xirr("not-a-date", 100.0, ONE_YEAR_LATER, 120.0, []) == 0.0
        assert XirrCalculator(cache_size=2).calculate(START, 100.0, "garbage", 120.0) == 0.0

    def test_total_loss_stays_above_minus_100(self):
        rate = xirr(START, 100000.0, ONE_YEAR_LATER, 1.0, [])
        assert -100.0 < rate < -99.0


class TestCashFlows:
    def test_signs_and_order(self):
        changes = [
            CapitalChange(date="2023-09-01", amount=-500),
            CapitalChange(date="2023-03-01", amount=1000),
            CapitalChange(date="garbage", amount=1),
        ]
        flows = build_cash_flows(START, 100.0, ONE_YEAR_LATER, 200.0, changes)
        assert flows == [
            (START, -100.0),
            (date(2023, 3, 1), 1000.0),
            (date(2023, 9, 1), -500.0),
            (ONE_YEAR_LATER, 200.0),
        ]

    def test_unparseable_window_has_no_flows(self):
        assert build_cash_flows("garbage", 100.0, ONE_YEAR_LATER, 200.0, []) == []

    def test_solve_rate_empty(self):
        assert solve_rate([]) == 0.0

    def test_solver_respects_iteration_cap(self):
        flows = [(START, -100.0), (ONE_YEAR_LATER, 300.0)]
        assert solve_rate(flows, max_iterations=1) != pytest.approx(2.0)
        assert solve_rate(flows) == pytest.approx(2.0, abs=1e-6)


class TestXirrCalculator:
    def test_cache_hits(self):
        calc = XirrCalculator(cache_size=10)
        first = calc.calculate(START, 100.0, ONE_YEAR_LATER, 110.0)
        second = calc.calculate(START, 100.0, ONE_YEAR_LATER, 110.0)
        assert first == second
        assert calc.hits == 1
        assert calc.misses == 1

    def test_fifo_eviction(self):
        calc = XirrCalculator(cache_size=2)
        calc.calculate(START, 100.0, ONE_YEAR_LATER, 110.0)
        calc.calculate(START, 100.0, ONE_YEAR_LATER, 120.0)
        calc.calculate(START, 100.0, ONE_YEAR_LATER, 130.0)
        assert len(calc) == 2
        calc.calculate(START, 100.0, ONE_YEAR_LATER, 110.0)
        assert calc.misses == 4

    def test_clear(self):
        calc = XirrCalculator(cache_size=2)
        calc.calculate(START, 100.0, ONE_YEAR_LATER, 110.0)
        calc.clear()
        assert len(calc) == 0
