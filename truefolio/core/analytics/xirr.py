# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""XIRR: annualized internal rate of return over irregular cash flows.

The starting capital is a negative flow at the start date, each capital
change keeps its own sign (deposits positive, withdrawals negative) and the
ending capital is a positive flow at the end date. Newton-Raphson on

    NPV(r) = sum(CF_i / (1 + r) ** (days_i / 365))

returns the rate in percent.
"""

from __future__ import annotations

import logging
import math
from collections import OrderedDict
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from truefolio.core.journal.models import CapitalChange
from truefolio.core.utils import DateLike, parse_date

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365.0
MIN_RATE = -0.999999999

CashFlow = Tuple[date, float]


def build_cash_flows(
    start_date: DateLike,
    starting_capital: float,
    end_date: DateLike,
    ending_capital: float,
    capital_changes: Iterable[CapitalChange] = (),
) -> List[CashFlow]:
    """Date-sorted cash flows for the window.

    Changes with unparseable dates are dropped. An unparseable window yields
    no flows, which solve_rate reports as 0.
    """
    start = parse_date(start_date)
    end = parse_date(end_date)
    if start is None or end is None:
        logger.debug("[XIRR] Invalid window %r .. %r; no cash flows", start_date, end_date)
        return []
    flows: List[CashFlow] = [(start, -float(starting_capital))]
    for c in capital_changes:
        d = parse_date(c.date)
        if d is None:
            logger.debug("[XIRR] Skipping capital change %s: bad date %r", c.change_id, c.date)
            continue
        flows.append((d, float(c.amount)))
    flows.append((end, float(ending_capital)))
    flows.sort(key=lambda f: f[0])
    return flows


def solve_rate(
    flows: Sequence[CashFlow],
    guess: float = 0.1,
    tolerance: float = 1e-7,
    max_iterations: int = 100,
) -> float:
    """Newton-Raphson rate as a fraction. 0 when the flows have no sign change."""
    if not flows:
        return 0.0
    if not any(cf > 0 for _, cf in flows) or not any(cf < 0 for _, cf in flows):
        return 0.0
    origin = min(d for d, _ in flows)
    times = [(d - origin).days / DAYS_PER_YEAR for d, _ in flows]
    if all(t == 0 for t in times):
        return 0.0
    amounts = [cf for _, cf in flows]

    rate = max(guess, MIN_RATE)
    for iteration in range(max_iterations):
        try:
            npv = sum(cf / (1.0 + rate) ** t for cf, t in zip(amounts, times))
            d_npv = sum(-t * cf / (1.0 + rate) ** (t + 1.0) for cf, t in zip(amounts, times))
        except (OverflowError, ZeroDivisionError):
            logger.debug("[XIRR] Overflow at rate %.6f; keeping last estimate", rate)
            break
        if not (math.isfinite(npv) and math.isfinite(d_npv)):
            break
        if abs(npv) < tolerance:
            break
        if d_npv == 0:
            logger.debug("[XIRR] Zero derivative at rate %.6f", rate)
            break
        new_rate = rate - npv / d_npv
        if not math.isfinite(new_rate):
            break
        if new_rate <= MIN_RATE:
            new_rate = (rate + MIN_RATE) / 2.0
        step = abs(new_rate - rate)
        rate = new_rate
        if step < tolerance:
            break
    else:
        logger.debug("[XIRR] No convergence after %d iterations; rate %.6f", max_iterations, rate)
    return rate if math.isfinite(rate) else 0.0


def xirr(
    start_date: DateLike,
    starting_capital: float,
    end_date: DateLike,
    ending_capital: float,
    capital_changes: Iterable[CapitalChange] = (),
    *,
    guess: Optional[float] = None,
    tolerance: Optional[float] = None,
    max_iterations: Optional[int] = None,
) -> float:
    """Annualized return in percent for the window; 0 for an unparseable window."""
    if guess is None or tolerance is None or max_iterations is None:
        from truefolio.core.settings import load_config
        cfg = load_config().xirr
        guess = cfg.guess if guess is None else guess
        tolerance = cfg.tolerance if tolerance is None else tolerance
        max_iterations = cfg.max_iterations if max_iterations is None else max_iterations
    flows = build_cash_flows(start_date, starting_capital, end_date, ending_capital, capital_changes)
    return solve_rate(flows, guess, tolerance, max_iterations) * 100.0


class XirrCalculator:
    """XIRR with a bounded first-in first-out result cache."""

    def __init__(
        self,
        cache_size: Optional[int] = None,
        guess: Optional[float] = None,
        tolerance: Optional[float] = None,
        max_iterations: Optional[int] = None,
    ) -> None:
        from truefolio.core.settings import load_config
        cfg = load_config().xirr
        self.cache_size = max(1, cfg.cache_size if cache_size is None else cache_size)
        self.guess = cfg.guess if guess is None else guess
        self.tolerance = cfg.tolerance if tolerance is None else tolerance
        self.max_iterations = cfg.max_iterations if max_iterations is None else max_iterations
        self._cache: "OrderedDict[tuple, float]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()

    def calculate(
        self,
        start_date: DateLike,
        starting_capital: float,
        end_date: DateLike,
        ending_capital: float,
        capital_changes: Iterable[CapitalChange] = (),
    ) -> float:
        changes = list(capital_changes)
        key = (
            str(parse_date(start_date)),
            round(float(starting_capital), 6),
            str(parse_date(end_date)),
            round(float(ending_capital), 6),
            tuple((c.date, round(c.amount, 6)) for c in changes),
        )
        cached = self._cache.get(key)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        result = xirr(
            start_date,
            starting_capital,
            end_date,
            ending_capital,
            changes,
            guess=self.guess,
            tolerance=self.tolerance,
            max_iterations=self.max_iterations,
        )
        if len(self._cache) >= self.cache_size:
            self._cache.popitem(last=False)
        self._cache[key] = result
        return result


__all__ = [
    "XirrCalculator",
    "build_cash_flows",
    "solve_rate",
    "xirr",
]
