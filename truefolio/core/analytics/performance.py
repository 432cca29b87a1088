# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Performance analytics: trade statistics and risk-adjusted ratios.

Trade statistics use one row per original trade (Closed/Partial only), so a
trade exited in three cash-basis legs still counts once.

Risk ratios come from a daily portfolio-value series that starts at the
initial capital and steps by every capital change and attributed P/L event
on its date. Daily returns are day-over-day fractional changes; percentages
in the result (win rate, drawdown, volatility, annualized return) are in %.
Calmar divides the annualized return % by the max drawdown %, so it is a
plain ratio: 30% a year against a 10% drawdown gives 3.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import date
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from truefolio.core.accounting.normalizer import (
    AttributedEntry,
    BasisLike,
    TradeOutcome,
    expand,
    group_by_original,
    open_quantity,
)
from truefolio.core.journal.models import AccountingBasis, CapitalChange, PositionStatus, Trade
from truefolio.core.utils import parse_date, safe_calculation, safe_divide

if TYPE_CHECKING:
    from truefolio.core.capital_ledger import CapitalLedgerService

logger = logging.getLogger(__name__)


@dataclass
class PerformanceMetrics:
    total_trades: int = 0
    open_positions: int = 0
    win_rate: float = 0.0
    loss_rate: float = 0.0
    expectancy: float = 0.0
    profit_factor: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    avg_holding_days: float = 0.0
    max_win_streak: int = 0
    max_loss_streak: int = 0
    sharpe: float = 0.0
    sortino: float = 0.0
    calmar: float = 0.0
    max_drawdown: float = 0.0
    volatility: float = 0.0
    annualized_volatility: float = 0.0
    annualized_return: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Trade statistics
# ---------------------------------------------------------------------------


def profit_factor(pls: Sequence[float]) -> float:
    """Gross wins over gross losses; inf with wins and no losses, 0 with neither."""
    gross_win = sum(p for p in pls if p > 0)
    gross_loss = abs(sum(p for p in pls if p < 0))
    if gross_loss == 0:
        return math.inf if gross_win > 0 else 0.0
    return gross_win / gross_loss


def max_streaks(outcomes: Sequence[TradeOutcome]) -> Dict[str, int]:
    """Longest run of consecutive wins and losses, in attribution-date order."""
    ordered = sorted(outcomes, key=lambda o: (o.attribution_date is None, o.attribution_date or date.min))
    best_win = best_loss = cur_win = cur_loss = 0
    for o in ordered:
        if o.pl > 0:
            cur_win += 1
            cur_loss = 0
        elif o.pl < 0:
            cur_loss += 1
            cur_win = 0
        else:
            cur_win = cur_loss = 0
        best_win = max(best_win, cur_win)
        best_loss = max(best_loss, cur_loss)
    return {"max_win_streak": best_win, "max_loss_streak": best_loss}


def _trade_stats(outcomes: Sequence[TradeOutcome], metrics: PerformanceMetrics) -> None:
    realized = [o for o in outcomes if o.is_realized]
    pls = [o.pl for o in realized]
    wins = [p for p in pls if p > 0]
    losses = [p for p in pls if p < 0]
    n = len(pls)

    win_frac = safe_divide(len(wins), n)
    loss_frac = safe_divide(len(losses), n)
    metrics.win_rate = win_frac * 100.0
    metrics.loss_rate = loss_frac * 100.0
    metrics.avg_win = safe_divide(sum(wins), len(wins))
    metrics.avg_loss = abs(safe_divide(sum(losses), len(losses)))
    metrics.expectancy = metrics.avg_win * win_frac - metrics.avg_loss * loss_frac
    metrics.profit_factor = profit_factor(pls)
    metrics.avg_holding_days = safe_divide(sum(o.holding_days for o in realized), n)
    streaks = max_streaks(realized)
    metrics.max_win_streak = streaks["max_win_streak"]
    metrics.max_loss_streak = streaks["max_loss_streak"]


# ---------------------------------------------------------------------------
# Portfolio-value series
# ---------------------------------------------------------------------------


def daily_portfolio_values(
    entries: Iterable[AttributedEntry],
    capital_changes: Iterable[CapitalChange],
    initial_capital: float,
) -> pd.Series:
    """Portfolio value at the close of every date with an event."""
    rows = []
    for c in capital_changes:
        d = parse_date(c.date)
        if d is not None:
            rows.append((d, c.amount))
    for e in entries:
        if e.attribution_date is not None and e.pl:
            rows.append((e.attribution_date, e.pl))
    if not rows:
        return pd.Series(dtype=float)
    df = pd.DataFrame(rows, columns=["date", "delta"])
    daily = df.groupby("date")["delta"].sum().sort_index()
    return daily.cumsum() + float(initial_capital)


def daily_returns(values: pd.Series) -> pd.Series:
    """Fractional day-over-day changes where the previous value is positive."""
    if values.empty:
        return pd.Series(dtype=float)
    prev = values.shift(1)
    mask = prev > 0
    return ((values - prev) / prev)[mask]


def max_drawdown_pct(values: pd.Series) -> float:
    if values.empty:
        return 0.0
    peak = values.cummax()
    valid = peak > 0
    if not valid.any():
        return 0.0
    dd = (peak[valid] - values[valid]) / peak[valid]
    return float(dd.max()) * 100.0


def downside_deviation(returns: pd.Series, target: float = 0.0) -> float:
    """Population std of the returns below target, measured from target. 0 if none."""
    below = returns[returns < target]
    if below.empty:
        return 0.0
    return float(((below - target) ** 2).mean() ** 0.5)


def _risk_stats(
    values: pd.Series,
    metrics: PerformanceMetrics,
    trading_days: int,
    risk_free_rate: float,
) -> None:
    metrics.max_drawdown = safe_calculation(lambda: max_drawdown_pct(values), 0.0, "max drawdown")
    returns = daily_returns(values)
    if returns.empty:
        return
    rf_daily = risk_free_rate / trading_days
    mean = float(returns.mean())
    std = float(returns.std(ddof=0))
    excess = returns - rf_daily

    metrics.volatility = std * 100.0
    metrics.annualized_volatility = std * math.sqrt(trading_days) * 100.0
    metrics.annualized_return = safe_calculation(
        lambda: ((1.0 + mean) ** trading_days - 1.0) * 100.0, 0.0, "annualized return"
    )
    metrics.sharpe = safe_divide(float(excess.mean()), std)
    downside = downside_deviation(returns)
    metrics.sortino = safe_divide(float(excess.mean()), downside)
    metrics.calmar = safe_divide(metrics.annualized_return, metrics.max_drawdown)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def compute_performance_metrics(
    trades: List[Trade],
    basis: BasisLike = AccountingBasis.ACCRUAL,
    capital_changes: Optional[Iterable[CapitalChange]] = None,
    initial_capital: float = 0.0,
    *,
    trading_days: Optional[int] = None,
    risk_free_rate: Optional[float] = None,
    as_of: Optional[date] = None,
) -> PerformanceMetrics:
    """Compute trade statistics and risk ratios for the basis.

    Parameters
    ----------
    trades : list of Trade
        Journal trades; open trades count toward open_positions only.
    basis : AccountingBasis or str
        cash or accrual attribution.
    capital_changes : iterable of CapitalChange
        Deposits and withdrawals stepping the value series.
    initial_capital : float
        Series starting value, usually the ledger's first opening capital.

    Returns
    -------
    PerformanceMetrics
        Every field falls back to 0 if its computation fails.
    """
    if trading_days is None or risk_free_rate is None:
        from truefolio.core.settings import load_config
        cfg = load_config().analytics
        trading_days = cfg.trading_days if trading_days is None else trading_days
        risk_free_rate = cfg.risk_free_rate if risk_free_rate is None else risk_free_rate

    metrics = PerformanceMetrics()
    entries = safe_calculation(lambda: expand(trades, basis, as_of), [], "expand trades")
    outcomes = group_by_original(entries)
    metrics.total_trades = len(outcomes)
    metrics.open_positions = sum(
        1 for t in trades if t.status != PositionStatus.CLOSED and open_quantity(t) > 0
    )
    safe_calculation(lambda: _trade_stats(outcomes, metrics), None, "trade statistics")

    values = safe_calculation(
        lambda: daily_portfolio_values(entries, capital_changes or [], initial_capital),
        pd.Series(dtype=float),
        "portfolio value series",
    )
    safe_calculation(
        lambda: _risk_stats(values, metrics, trading_days, risk_free_rate), None, "risk ratios"
    )
    logger.debug(
        "[PERF] %d trades (%s): win rate %.1f%%, PF %.2f",
        metrics.total_trades, AccountingBasis.parse(basis).value, metrics.win_rate, metrics.profit_factor,
    )
    return metrics


class PerformanceAnalyzer:
    """Metrics wired to a capital ledger for capital changes and starting capital."""

    def __init__(self, ledger: "CapitalLedgerService") -> None:
        self.ledger = ledger

    def metrics(
        self,
        trades: Optional[List[Trade]] = None,
        basis: BasisLike = AccountingBasis.ACCRUAL,
    ) -> PerformanceMetrics:
        if trades is None:
            trades = self.ledger.repository.list_trades()
        return compute_performance_metrics(
            trades,
            basis,
            capital_changes=self.ledger.capital_changes(),
            initial_capital=self.ledger.initial_capital(trades, basis),
            as_of=self.ledger.current_date(),
        )


__all__ = [
    "PerformanceAnalyzer",
    "PerformanceMetrics",
    "compute_performance_metrics",
    "daily_portfolio_values",
    "daily_returns",
    "downside_deviation",
    "max_drawdown_pct",
    "max_streaks",
    "profit_factor",
]
