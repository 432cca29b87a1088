# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""
Gap-down risk simulation (read-only risk modeling).

Models an overnight gap that opens through the stop-loss on every open
position that is not protected by a trailing stop. Normal risk is the loss
to the stop; gap-down risk is the loss to avg_entry * (1 - pct/100) for longs
(1 + pct/100 for shorts). The difference is the additional risk a gap adds.

Portfolio size comes from the capital ledger when one is supplied.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from truefolio.core.accounting.normalizer import BasisLike, average_entry_price, open_quantity
from truefolio.core.journal.models import AccountingBasis, PositionStatus, Trade
from truefolio.core.utils import is_finite_number, safe_divide

if TYPE_CHECKING:
    from truefolio.core.capital_ledger import CapitalLedgerService

logger = logging.getLogger(__name__)


def _positive(value: Optional[float]) -> float:
    return float(value) if value is not None and is_finite_number(float(value)) and value > 0 else 0.0


def is_risky_position(trade: Trade) -> bool:
    """True unless a trailing stop sits at or beyond the stop-loss in the trade's favor.

    No stops at all is risky; a trailing stop alone is protective.
    """
    sl = _positive(trade.stop_loss)
    tsl = _positive(trade.trailing_stop)
    if tsl <= 0:
        return True
    if sl <= 0:
        return False
    return tsl < sl if trade.is_long else tsl > sl


def is_open_position(trade: Trade) -> bool:
    return trade.status in (PositionStatus.OPEN, PositionStatus.PARTIAL) and open_quantity(trade) > 0


@dataclass
class GapDownTradeRisk:
    trade_id: str
    symbol: str
    direction: str
    open_qty: float
    avg_entry: float
    stop_loss: float
    gap_price: float
    normal_risk: float
    gap_down_risk: float
    additional_risk: float


@dataclass
class GapDownAnalysis:
    gap_percent: float
    portfolio_size: float
    total_normal_risk: float = 0.0
    total_gap_down_risk: float = 0.0
    total_additional_risk: float = 0.0
    risk_increase_factor: float = 1.0
    normal_pf_impact: float = 0.0
    gap_down_pf_impact: float = 0.0
    additional_pf_impact: float = 0.0
    per_trade: List[GapDownTradeRisk] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def trade_gap_risk(trade: Trade, gap_percent: float) -> GapDownTradeRisk:
    """Normal and gap-down risk of one position. A missing stop counts as 0."""
    avg = average_entry_price(trade)
    qty = open_quantity(trade)
    stop = _positive(trade.stop_loss)
    if trade.is_long:
        normal = (avg - stop) * qty
        gap_price = avg * (1.0 - gap_percent / 100.0)
        gap_risk = (avg - gap_price) * qty
    else:
        normal = (stop - avg) * qty
        gap_price = avg * (1.0 + gap_percent / 100.0)
        gap_risk = (gap_price - avg) * qty
    return GapDownTradeRisk(
        trade_id=trade.trade_id,
        symbol=trade.symbol,
        direction=trade.direction.value,
        open_qty=qty,
        avg_entry=avg,
        stop_loss=stop,
        gap_price=gap_price,
        normal_risk=normal,
        gap_down_risk=gap_risk,
        additional_risk=gap_risk - normal,
    )


def simulate_gap_down(
    trades: Sequence[Trade],
    gap_percent: float,
    portfolio_size: float,
) -> GapDownAnalysis:
    """Gap-down scenario over the open, unprotected positions in trades.

    Args:
        trades: Journal trades; closed and protected positions are ignored.
        gap_percent: Gap size in percent (5 = price opens 5% against the position).
        portfolio_size: Capital the impact percentages are measured against.

    Returns:
        GapDownAnalysis with totals, impact percentages and the per-trade breakdown.
    """
    result = GapDownAnalysis(gap_percent=float(gap_percent), portfolio_size=float(portfolio_size or 0))
    for trade in trades:
        if not is_open_position(trade) or not is_risky_position(trade):
            continue
        row = trade_gap_risk(trade, gap_percent)
        result.per_trade.append(row)
        result.total_normal_risk += row.normal_risk
        result.total_gap_down_risk += row.gap_down_risk
        result.total_additional_risk += row.additional_risk

    size = result.portfolio_size
    result.risk_increase_factor = safe_divide(
        result.total_gap_down_risk, result.total_normal_risk, fallback=1.0
    )
    result.normal_pf_impact = safe_divide(result.total_normal_risk, size) * 100.0
    result.gap_down_pf_impact = safe_divide(result.total_gap_down_risk, size) * 100.0
    result.additional_pf_impact = safe_divide(result.total_additional_risk, size) * 100.0
    return result


def trade_open_heat(trade: Trade) -> float:
    """Capital at risk to the effective stop (better of SL and TSL). 0 without a valid stop."""
    if not is_open_position(trade):
        return 0.0
    sl = _positive(trade.stop_loss)
    tsl = _positive(trade.trailing_stop)
    stops = [s for s in (sl, tsl) if s > 0]
    if not stops:
        return 0.0
    avg = average_entry_price(trade)
    qty = open_quantity(trade)
    if avg <= 0:
        return 0.0
    if trade.is_long:
        stop = max(stops)
        return (avg - stop) * qty if stop < avg else 0.0
    stop = min(stops)
    return (stop - avg) * qty if stop > avg else 0.0


def format_sweep_summary(results: Sequence[GapDownAnalysis]) -> str:
    """
    Human-readable sweep table.

    Example: "Gap 5%: risk 12,500 (normal 4,000, +8,500), 10.4% of capital"
    """
    lines: List[str] = []
    for r in results:
        lines.append(
            "Gap %s%%: risk %s (normal %s, +%s), %.1f%% of capital"
            % (
                f"{r.gap_percent:g}",
                f"{r.total_gap_down_risk:,.0f}",
                f"{r.total_normal_risk:,.0f}",
                f"{r.total_additional_risk:,.0f}",
                r.gap_down_pf_impact,
            )
        )
    return "\n".join(lines) if lines else "No gap-down scenarios"


class GapDownAnalyzer:
    """Gap-down scenarios sized against a capital ledger or a flat portfolio size."""

    def __init__(
        self,
        ledger: Optional["CapitalLedgerService"] = None,
        basis: BasisLike = AccountingBasis.ACCRUAL,
    ) -> None:
        self.ledger = ledger
        self.basis = AccountingBasis.parse(basis)

    def _size(self, trades: Sequence[Trade], portfolio_size: Optional[float]) -> float:
        if self.ledger is not None:
            return self.ledger.latest_portfolio_size(list(trades), self.basis)
        return float(portfolio_size or 0)

    def scenario(
        self,
        trades: Sequence[Trade],
        gap_percent: float,
        portfolio_size: Optional[float] = None,
    ) -> GapDownAnalysis:
        return simulate_gap_down(trades, gap_percent, self._size(trades, portfolio_size))

    def sweep(
        self,
        trades: Sequence[Trade],
        portfolio_size: Optional[float] = None,
        percentages: Optional[Sequence[float]] = None,
    ) -> List[GapDownAnalysis]:
        """Run every scenario percentage (configured defaults when omitted)."""
        if percentages is None:
            from truefolio.core.settings import get_gap_percentages
            percentages = get_gap_percentages()
        size = self._size(trades, portfolio_size)
        results = [simulate_gap_down(trades, pct, size) for pct in percentages]
        logger.debug("[GAPDOWN] Swept %d scenarios over %d trades", len(results), len(trades))
        return results

    def open_heat(self, trades: Sequence[Trade], portfolio_size: Optional[float] = None) -> Dict[str, Any]:
        """Percent of capital at risk to effective stops across open positions."""
        size = self._size(trades, portfolio_size)
        positions = []
        total = 0.0
        for t in trades:
            risk = trade_open_heat(t)
            if risk <= 0:
                continue
            total += risk
            positions.append({
                "trade_id": t.trade_id,
                "symbol": t.symbol,
                "risk": risk,
                "heat_pct": safe_divide(risk, size) * 100.0,
            })
        return {
            "portfolio_size": size,
            "total_risk": total,
            "heat_pct": safe_divide(total, size) * 100.0,
            "positions": positions,
        }


__all__ = [
    "GapDownAnalysis",
    "GapDownAnalyzer",
    "GapDownTradeRisk",
    "format_sweep_summary",
    "is_risky_position",
    "simulate_gap_down",
    "trade_gap_risk",
    "trade_open_heat",
]
