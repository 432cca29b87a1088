# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Rolling XIRR windows over the capital ledger and the monthly performance table."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Union

from truefolio.core.accounting.normalizer import BasisLike
from truefolio.core.analytics.xirr import XirrCalculator
from truefolio.core.capital_ledger import CapitalLedgerService
from truefolio.core.journal.models import AccountingBasis, Trade
from truefolio.core.utils import last_day_of_month, month_number, safe_calculation, safe_divide, shift_month

logger = logging.getLogger(__name__)

ROLLING_WINDOWS = (1, 3, 6, 12)


class RollingReturns:
    """YTD and N-month annualized returns ending at a ledger month."""

    def __init__(self, ledger: CapitalLedgerService, calculator: Optional[XirrCalculator] = None) -> None:
        self.ledger = ledger
        self.calculator = calculator or XirrCalculator()

    def window_return(
        self,
        month: Union[int, str],
        year: int,
        months_back: int,
        trades: Optional[List[Trade]] = None,
        basis: BasisLike = AccountingBasis.ACCRUAL,
    ) -> float:
        """XIRR from the end of the month months_back earlier to the end of this month."""
        m = month_number(month)
        end_rec = self.ledger.monthly_record(m, year, trades, basis)
        sy, sm = shift_month(year, m, -months_back)
        start_rec = self.ledger.monthly_record(sm, sy, trades, basis)
        start = last_day_of_month(sy, sm)
        end = last_day_of_month(year, m)
        changes = self.ledger.capital_changes_between(start, end)
        return self.calculator.calculate(start, start_rec.final_capital, end, end_rec.final_capital, changes)

    def ytd_return(
        self,
        month: Union[int, str],
        year: int,
        trades: Optional[List[Trade]] = None,
        basis: BasisLike = AccountingBasis.ACCRUAL,
    ) -> float:
        """XIRR from January 1 at January's opening capital to the end of this month."""
        m = month_number(month)
        jan = self.ledger.monthly_record(1, year, trades, basis)
        end_rec = self.ledger.monthly_record(m, year, trades, basis)
        start = date(year, 1, 1)
        end = last_day_of_month(year, m)
        changes = self.ledger.capital_changes_between(start - timedelta(days=1), end)
        return self.calculator.calculate(start, jan.opening_capital, end, end_rec.final_capital, changes)


def monthly_performance(
    ledger: CapitalLedgerService,
    year: int,
    trades: Optional[List[Trade]] = None,
    basis: BasisLike = AccountingBasis.ACCRUAL,
    calculator: Optional[XirrCalculator] = None,
) -> List[Dict[str, Any]]:
    """One row per month: the ledger record plus P/L % and rolling returns.

    Return columns are None for months after the current one.
    """
    rolling = RollingReturns(ledger, calculator)
    now = ledger.current_date()
    rows: List[Dict[str, Any]] = []
    for rec in ledger.records_for_year(year, trades, basis):
        m = month_number(rec.month)
        row = rec.to_dict()
        row["pl_percentage"] = safe_divide(rec.period_pl, rec.effective_starting_capital) * 100.0
        future = (year, m) > (now.year, now.month)
        if future:
            row["ytd_return"] = None
            for n in ROLLING_WINDOWS:
                row[f"return_{n}m"] = None
        else:
            row["ytd_return"] = safe_calculation(
                lambda: rolling.ytd_return(m, year, trades, basis), 0.0, f"ytd return {rec.month} {year}"
            )
            for n in ROLLING_WINDOWS:
                row[f"return_{n}m"] = safe_calculation(
                    lambda n=n: rolling.window_return(m, year, n, trades, basis),
                    0.0,
                    f"{n}m return {rec.month} {year}",
                )
        rows.append(row)
    logger.debug("[RETURNS] Built monthly performance for %s (%d rows)", year, len(rows))
    return rows


__all__ = [
    "ROLLING_WINDOWS",
    "RollingReturns",
    "monthly_performance",
]
