# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Trading journal: trades, capital events, overrides and their repositories."""

from truefolio.core.journal.models import (
    AccountingBasis,
    CapitalChange,
    CapitalChangeType,
    Direction,
    EntryLot,
    ExitEvent,
    MonthlyCapitalOverride,
    MonthlyCapitalRecord,
    PositionStatus,
    Trade,
    YearlyStartingCapital,
)
from truefolio.core.journal.store import (
    InMemoryLedgerRepository,
    JsonLedgerRepository,
    LedgerRepository,
)

__all__ = [
    "AccountingBasis",
    "CapitalChange",
    "CapitalChangeType",
    "Direction",
    "EntryLot",
    "ExitEvent",
    "MonthlyCapitalOverride",
    "MonthlyCapitalRecord",
    "PositionStatus",
    "Trade",
    "YearlyStartingCapital",
    "InMemoryLedgerRepository",
    "JsonLedgerRepository",
    "LedgerRepository",
]
