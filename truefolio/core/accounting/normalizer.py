# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Accounting normalizer: turns trades into basis-correct P/L events.

Accrual basis books a trade's whole P/L (realized + unrealized) in the month
the trade was entered. Cash basis books each exit in the month it happened,
priced against the average entry.

expand() yields a tagged union:
  OriginalEntry  (kind="original")   one per trade, accrual basis or open cash trades
  CashExitEntry  (kind="cash_exit")  one per valid, dated exit of a realized trade
Both expose original_id, attribution_date and pl. group_by_original() folds
them back to one TradeOutcome per trade for per-trade statistics.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from truefolio.core.journal.models import AccountingBasis, ExitEvent, PositionStatus, Trade
from truefolio.core.utils import days_between, month_number, parse_date, safe_divide, today

logger = logging.getLogger(__name__)

BasisLike = Union[AccountingBasis, str, bool, None]


# ---------------------------------------------------------------------------
# Per-trade quantities and prices
# ---------------------------------------------------------------------------


def total_entry_quantity(trade: Trade) -> float:
    return sum(lot.qty for lot in trade.entry_lots)


def exited_quantity(trade: Trade) -> float:
    return sum(e.qty for e in trade.valid_exits)


def open_quantity(trade: Trade) -> float:
    """Entered minus exited, never negative."""
    return max(0.0, total_entry_quantity(trade) - exited_quantity(trade))


def average_entry_price(trade: Trade) -> float:
    """Quantity-weighted mean of the initial entry and pyramids."""
    lots = trade.entry_lots
    return safe_divide(sum(l.price * l.qty for l in lots), sum(l.qty for l in lots))


def average_exit_price(trade: Trade) -> float:
    exits = trade.valid_exits
    return safe_divide(sum(e.price * e.qty for e in exits), sum(e.qty for e in exits))


def _directional(trade: Trade, diff: float) -> float:
    return diff if trade.is_long else -diff


def exit_pl(trade: Trade, exit_event: ExitEvent) -> float:
    """P/L of one exit leg against the average entry."""
    if not exit_event.is_valid:
        return 0.0
    return _directional(trade, exit_event.price - average_entry_price(trade)) * exit_event.qty


def total_realized_pl(trade: Trade) -> float:
    """Sum of exit P/L. Zero for trades still marked Open."""
    if not trade.is_realized:
        return 0.0
    return sum(exit_pl(trade, e) for e in trade.valid_exits)


def total_unrealized_pl(trade: Trade) -> float:
    """Mark-to-market of the open quantity at cmp; zero when cmp is unknown."""
    if trade.status == PositionStatus.CLOSED or not trade.cmp:
        return 0.0
    qty = open_quantity(trade)
    if qty <= 0:
        return 0.0
    return _directional(trade, trade.cmp - average_entry_price(trade)) * qty


def _dated_exits(trade: Trade) -> List[Tuple[int, ExitEvent, date]]:
    out = []
    for idx, e in enumerate(trade.exits):
        if not e.is_valid:
            continue
        d = parse_date(e.date)
        if d is None:
            logger.debug("[ACCOUNTING] Skipping exit %d of %s: bad date %r", idx, trade.trade_id, e.date)
            continue
        out.append((idx, e, d))
    return out


def attributed_pl(trade: Trade, basis: BasisLike = AccountingBasis.ACCRUAL) -> float:
    """Total P/L the trade contributes under the basis."""
    if AccountingBasis.parse(basis) == AccountingBasis.ACCRUAL:
        return total_realized_pl(trade) + total_unrealized_pl(trade)
    if not trade.is_realized:
        return 0.0
    return sum(exit_pl(trade, e) for _, e, _ in _dated_exits(trade))


def accrual_holding_days(trade: Trade, as_of: Optional[date] = None) -> int:
    """Entry to earliest exit for realized trades, entry to today for open ones."""
    entry = parse_date(trade.entry_date)
    if entry is None:
        return 0
    if trade.is_realized:
        dates = [d for _, _, d in _dated_exits(trade)]
        if dates:
            return days_between(entry, min(dates))
    return days_between(entry, as_of or today())


def fifo_holding_days(trade: Trade, as_of: Optional[date] = None) -> float:
    """Quantity-weighted holding period with entry lots matched to exits first-in first-out.

    Unmatched quantity is treated as held until as_of (today by default).
    """
    end = as_of or today()
    fallback = parse_date(trade.entry_date)
    lots: List[List] = []
    for lot in trade.entry_lots:
        d = parse_date(lot.date) or fallback
        if d is not None:
            lots.append([d, lot.qty])
    if not lots:
        return 0.0
    lots.sort(key=lambda x: x[0])
    exits = sorted(((d, e.qty) for _, e, d in _dated_exits(trade)), key=lambda x: x[0])

    weighted = 0.0
    matched = 0.0
    i = 0
    for exit_date, qty in exits:
        remaining = qty
        while remaining > 0 and i < len(lots):
            lot_date, lot_qty = lots[i]
            take = min(remaining, lot_qty)
            weighted += days_between(lot_date, exit_date) * take
            matched += take
            remaining -= take
            lots[i][1] = lot_qty - take
            if lots[i][1] <= 0:
                i += 1
    for lot_date, lot_qty in lots[i:]:
        if lot_qty > 0:
            weighted += days_between(lot_date, end) * lot_qty
            matched += lot_qty
    return safe_divide(weighted, matched)


# ---------------------------------------------------------------------------
# Tagged entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OriginalEntry:
    """Whole trade booked at its entry date."""
    trade: Trade
    pl: float
    attribution_date: Optional[date]
    holding_days: int
    kind: str = field(default="original", init=False)

    @property
    def original_id(self) -> str:
        return self.trade.trade_id


@dataclass(frozen=True)
class CashExitEntry:
    """One exit leg booked at its exit date."""
    trade: Trade
    exit: ExitEvent
    exit_index: int
    pl: float
    attribution_date: date
    holding_days: int
    kind: str = field(default="cash_exit", init=False)

    @property
    def original_id(self) -> str:
        return self.trade.trade_id


AttributedEntry = Union[OriginalEntry, CashExitEntry]


@dataclass(frozen=True)
class TradeOutcome:
    """Per-trade roll-up of attributed entries."""
    trade: Trade
    pl: float
    attribution_date: Optional[date]
    holding_days: int

    @property
    def original_id(self) -> str:
        return self.trade.trade_id

    @property
    def is_realized(self) -> bool:
        return self.trade.is_realized


def expand(
    trades: Iterable[Trade],
    basis: BasisLike = AccountingBasis.ACCRUAL,
    as_of: Optional[date] = None,
) -> List[AttributedEntry]:
    """Expand trades into attributed entries for the given basis."""
    b = AccountingBasis.parse(basis)
    out: List[AttributedEntry] = []
    for trade in trades:
        entry_date = parse_date(trade.entry_date)
        if b == AccountingBasis.ACCRUAL or not trade.is_realized:
            pl = attributed_pl(trade, b)
            out.append(OriginalEntry(trade, pl, entry_date, accrual_holding_days(trade, as_of)))
            continue
        legs = _dated_exits(trade)
        if not legs:
            out.append(OriginalEntry(trade, 0.0, entry_date, accrual_holding_days(trade, as_of)))
            continue
        for idx, e, exit_date in legs:
            held = days_between(entry_date, exit_date) if entry_date else 0
            out.append(CashExitEntry(trade, e, idx, exit_pl(trade, e), exit_date, held))
    return out


def group_by_original(entries: Sequence[AttributedEntry]) -> List[TradeOutcome]:
    """One TradeOutcome per original trade, in first-seen order.

    Cash legs are summed; the outcome is dated at the latest leg and its
    holding period runs from entry to that leg.
    """
    groups: "OrderedDict[str, List[AttributedEntry]]" = OrderedDict()
    for entry in entries:
        groups.setdefault(entry.original_id, []).append(entry)

    out: List[TradeOutcome] = []
    for legs in groups.values():
        trade = legs[0].trade
        dates = [e.attribution_date for e in legs if e.attribution_date is not None]
        if len(legs) == 1 and legs[0].kind == "original":
            out.append(TradeOutcome(trade, legs[0].pl, legs[0].attribution_date, legs[0].holding_days))
            continue
        out.append(TradeOutcome(
            trade=trade,
            pl=sum(e.pl for e in legs),
            attribution_date=max(dates) if dates else None,
            holding_days=max(e.holding_days for e in legs),
        ))
    return out


# ---------------------------------------------------------------------------
# Monthly aggregation
# ---------------------------------------------------------------------------


def pl_by_month(
    trades: Iterable[Trade],
    basis: BasisLike = AccountingBasis.ACCRUAL,
) -> Dict[Tuple[int, int], float]:
    """Map (year, month) -> attributed P/L. Undated entries are dropped."""
    out: Dict[Tuple[int, int], float] = {}
    for entry in expand(trades, basis):
        d = entry.attribution_date
        if d is None:
            logger.debug("[ACCOUNTING] Skipping %s: no attribution date", entry.original_id)
            continue
        key = (d.year, d.month)
        out[key] = out.get(key, 0.0) + entry.pl
    return out


def monthly_pl(
    trades: Iterable[Trade],
    month: Union[int, str],
    year: int,
    basis: BasisLike = AccountingBasis.ACCRUAL,
) -> float:
    return pl_by_month(trades, basis).get((year, month_number(month)), 0.0)


__all__ = [
    "AttributedEntry",
    "CashExitEntry",
    "OriginalEntry",
    "TradeOutcome",
    "accrual_holding_days",
    "attributed_pl",
    "average_entry_price",
    "average_exit_price",
    "exit_pl",
    "exited_quantity",
    "expand",
    "fifo_holding_days",
    "group_by_original",
    "monthly_pl",
    "open_quantity",
    "pl_by_month",
    "total_entry_quantity",
    "total_realized_pl",
    "total_unrealized_pl",
]
