# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Ledger persistence: repository protocol, in-memory and file-based JSON stores.

The JSON store keeps one file per collection under <output_dir>/ledger/:
trades.json, yearly_capitals.json, monthly_overrides.json, capital_changes.json.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, TypeVar

from truefolio.core.journal.models import (
    CapitalChange,
    MonthlyCapitalOverride,
    Trade,
    YearlyStartingCapital,
)
from truefolio.core.utils import normalize_month

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRADES_FILE = "trades.json"
YEARLY_FILE = "yearly_capitals.json"
OVERRIDES_FILE = "monthly_overrides.json"
CHANGES_FILE = "capital_changes.json"


class LedgerRepository(Protocol):
    """Read/write access to the records the capital ledger is derived from."""

    def list_trades(self) -> List[Trade]:
        ...

    def save_trade(self, trade: Trade) -> None:
        ...

    def delete_trade(self, trade_id: str) -> bool:
        ...

    def list_yearly_capitals(self) -> List[YearlyStartingCapital]:
        ...

    def save_yearly_capital(self, record: YearlyStartingCapital) -> None:
        ...

    def list_overrides(self) -> List[MonthlyCapitalOverride]:
        ...

    def save_override(self, override: MonthlyCapitalOverride) -> None:
        ...

    def delete_override(self, month: str, year: int) -> bool:
        ...

    def list_capital_changes(self) -> List[CapitalChange]:
        ...

    def save_capital_change(self, change: CapitalChange) -> None:
        ...

    def delete_capital_change(self, change_id: str) -> bool:
        ...

    def replace_all(
        self,
        yearly_capitals: List[YearlyStartingCapital],
        overrides: List[MonthlyCapitalOverride],
        capital_changes: List[CapitalChange],
    ) -> None:
        ...


def _upsert(items: List[T], item: T, key: Callable[[T], Any]) -> List[T]:
    """Replace the element with the same key, or append."""
    k = key(item)
    out = [x for x in items if key(x) != k]
    if len(out) == len(items):
        return items + [item]
    return [item if key(x) == k else x for x in items]


class InMemoryLedgerRepository:
    """Repository backed by plain lists. Used by tests and ad-hoc analysis."""

    def __init__(
        self,
        trades: Optional[List[Trade]] = None,
        yearly_capitals: Optional[List[YearlyStartingCapital]] = None,
        overrides: Optional[List[MonthlyCapitalOverride]] = None,
        capital_changes: Optional[List[CapitalChange]] = None,
    ) -> None:
        self._trades: List[Trade] = list(trades or [])
        self._yearly: List[YearlyStartingCapital] = list(yearly_capitals or [])
        self._overrides: List[MonthlyCapitalOverride] = list(overrides or [])
        self._changes: List[CapitalChange] = list(capital_changes or [])

    def list_trades(self) -> List[Trade]:
        return list(self._trades)

    def save_trade(self, trade: Trade) -> None:
        self._trades = _upsert(self._trades, trade, lambda t: t.trade_id)

    def delete_trade(self, trade_id: str) -> bool:
        before = len(self._trades)
        self._trades = [t for t in self._trades if t.trade_id != trade_id]
        return len(self._trades) < before

    def list_yearly_capitals(self) -> List[YearlyStartingCapital]:
        return list(self._yearly)

    def save_yearly_capital(self, record: YearlyStartingCapital) -> None:
        self._yearly = _upsert(self._yearly, record, lambda r: r.record_id)

    def list_overrides(self) -> List[MonthlyCapitalOverride]:
        return list(self._overrides)

    def save_override(self, override: MonthlyCapitalOverride) -> None:
        self._overrides = _upsert(self._overrides, override, lambda o: o.record_id)

    def delete_override(self, month: str, year: int) -> bool:
        m = normalize_month(month)
        before = len(self._overrides)
        self._overrides = [o for o in self._overrides if not (o.month == m and o.year == year)]
        return len(self._overrides) < before

    def list_capital_changes(self) -> List[CapitalChange]:
        return list(self._changes)

    def save_capital_change(self, change: CapitalChange) -> None:
        self._changes = _upsert(self._changes, change, lambda c: c.change_id)

    def delete_capital_change(self, change_id: str) -> bool:
        before = len(self._changes)
        self._changes = [c for c in self._changes if c.change_id != change_id]
        return len(self._changes) < before

    def replace_all(
        self,
        yearly_capitals: List[YearlyStartingCapital],
        overrides: List[MonthlyCapitalOverride],
        capital_changes: List[CapitalChange],
    ) -> None:
        self._yearly = list(yearly_capitals)
        self._overrides = list(overrides)
        self._changes = list(capital_changes)


# ---------------------------------------------------------------------------
# File-based JSON store
# ---------------------------------------------------------------------------

_LOCK = threading.Lock()


def _default_ledger_dir() -> Path:
    try:
        from truefolio.core.settings import get_output_dir
        base = Path(get_output_dir())
    except ImportError:
        base = Path("out")
    return base / "ledger"


class JsonLedgerRepository:
    """Repository persisted as JSON files. Reads tolerate missing or corrupt files; writes raise."""

    def __init__(self, ledger_dir: Optional[Path] = None) -> None:
        self.ledger_dir = Path(ledger_dir) if ledger_dir is not None else _default_ledger_dir()

    def _path(self, name: str) -> Path:
        return self.ledger_dir / name

    def _read(self, name: str) -> List[Dict[str, Any]]:
        path = self._path(name)
        if not path.exists():
            return []
        with _LOCK:
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning("[LEDGER] Failed to load %s: %s", path, e)
                return []
        if not isinstance(data, list):
            logger.warning("[LEDGER] Ignoring %s: expected a list", path)
            return []
        return data

    def _write(self, name: str, rows: List[Dict[str, Any]]) -> None:
        self.ledger_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(name)
        with _LOCK:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(rows, f, indent=2, default=str)
        logger.debug("[LEDGER] Wrote %d rows to %s", len(rows), path)

    def _load(self, name: str, factory: Callable[[Dict[str, Any]], T]) -> List[T]:
        out: List[T] = []
        for row in self._read(name):
            try:
                out.append(factory(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("[LEDGER] Skipping malformed row in %s: %s", name, e)
        return out

    # Trades

    def list_trades(self) -> List[Trade]:
        return self._load(TRADES_FILE, Trade.from_dict)

    def save_trade(self, trade: Trade) -> None:
        rows = _upsert(self.list_trades(), trade, lambda t: t.trade_id)
        self._write(TRADES_FILE, [t.to_dict() for t in rows])
        logger.info("[LEDGER] Saved trade %s", trade.trade_id)

    def delete_trade(self, trade_id: str) -> bool:
        trades = self.list_trades()
        kept = [t for t in trades if t.trade_id != trade_id]
        if len(kept) == len(trades):
            return False
        self._write(TRADES_FILE, [t.to_dict() for t in kept])
        logger.info("[LEDGER] Deleted trade %s", trade_id)
        return True

    # Yearly starting capital

    def list_yearly_capitals(self) -> List[YearlyStartingCapital]:
        return self._load(YEARLY_FILE, YearlyStartingCapital.from_dict)

    def save_yearly_capital(self, record: YearlyStartingCapital) -> None:
        rows = _upsert(self.list_yearly_capitals(), record, lambda r: r.record_id)
        self._write(YEARLY_FILE, [r.to_dict() for r in rows])

    # Monthly overrides

    def list_overrides(self) -> List[MonthlyCapitalOverride]:
        return self._load(OVERRIDES_FILE, MonthlyCapitalOverride.from_dict)

    def save_override(self, override: MonthlyCapitalOverride) -> None:
        rows = _upsert(self.list_overrides(), override, lambda o: o.record_id)
        self._write(OVERRIDES_FILE, [o.to_dict() for o in rows])

    def delete_override(self, month: str, year: int) -> bool:
        m = normalize_month(month)
        overrides = self.list_overrides()
        kept = [o for o in overrides if not (o.month == m and o.year == year)]
        if len(kept) == len(overrides):
            return False
        self._write(OVERRIDES_FILE, [o.to_dict() for o in kept])
        return True

    # Capital changes

    def list_capital_changes(self) -> List[CapitalChange]:
        return self._load(CHANGES_FILE, CapitalChange.from_dict)

    def save_capital_change(self, change: CapitalChange) -> None:
        rows = _upsert(self.list_capital_changes(), change, lambda c: c.change_id)
        self._write(CHANGES_FILE, [c.to_dict() for c in rows])

    def delete_capital_change(self, change_id: str) -> bool:
        changes = self.list_capital_changes()
        kept = [c for c in changes if c.change_id != change_id]
        if len(kept) == len(changes):
            return False
        self._write(CHANGES_FILE, [c.to_dict() for c in kept])
        return True

    def replace_all(
        self,
        yearly_capitals: List[YearlyStartingCapital],
        overrides: List[MonthlyCapitalOverride],
        capital_changes: List[CapitalChange],
    ) -> None:
        self._write(YEARLY_FILE, [r.to_dict() for r in yearly_capitals])
        self._write(OVERRIDES_FILE, [o.to_dict() for o in overrides])
        self._write(CHANGES_FILE, [c.to_dict() for c in capital_changes])
        logger.info(
            "[LEDGER] Replaced ledger inputs: %d yearly, %d overrides, %d changes",
            len(yearly_capitals), len(overrides), len(capital_changes),
        )
