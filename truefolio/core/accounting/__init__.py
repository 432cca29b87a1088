# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Cash and accrual P/L attribution."""

from truefolio.core.accounting.normalizer import (
    AttributedEntry,
    CashExitEntry,
    OriginalEntry,
    TradeOutcome,
    attributed_pl,
    average_entry_price,
    expand,
    fifo_holding_days,
    group_by_original,
    monthly_pl,
    open_quantity,
    pl_by_month,
)

__all__ = [
    "AttributedEntry",
    "CashExitEntry",
    "OriginalEntry",
    "TradeOutcome",
    "attributed_pl",
    "average_entry_price",
    "expand",
    "fifo_holding_days",
    "group_by_original",
    "monthly_pl",
    "open_quantity",
    "pl_by_month",
]
