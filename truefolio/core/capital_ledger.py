# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Capital ledger: month-by-month capital history derived from trades and capital events.

Opening capital for a month resolves, in order:
  1. a MonthlyCapitalOverride for that (month, year), verbatim
  2. January: the year's starting capital when set and positive, else last December's final
  3. any other month: the previous month's final capital

Then effective = opening + net capital changes, final = effective + period P/L.

Records are computed by a forward walk from January of the floor year and
memoized per (month, year, basis). The memo is dropped by invalidate(), after
every write, and whenever the trade list differs from the one it was built on.
"""

from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple, Union

from truefolio.core.accounting.normalizer import BasisLike, pl_by_month
from truefolio.core.journal.models import (
    AccountingBasis,
    CapitalChange,
    CapitalChangeType,
    MonthlyCapitalOverride,
    MonthlyCapitalRecord,
    Trade,
    YearlyStartingCapital,
)
from truefolio.core.journal.store import InMemoryLedgerRepository, LedgerRepository
from truefolio.core.utils import (
    MONTHS,
    format_date,
    is_finite_number,
    month_number,
    parse_date,
    shift_month,
    today,
)

logger = logging.getLogger(__name__)

MonthLike = Union[int, str]


class _LedgerInputs:
    """Snapshot of repository records indexed for the walk."""

    def __init__(self, repository: LedgerRepository) -> None:
        self.yearly: Dict[int, float] = {}
        newest: Dict[int, str] = {}
        for rec in repository.list_yearly_capitals():
            if rec.year not in newest or rec.updated_at >= newest[rec.year]:
                newest[rec.year] = rec.updated_at
                self.yearly[rec.year] = rec.amount

        self.overrides: Dict[Tuple[int, int], float] = {}
        stamps: Dict[Tuple[int, int], str] = {}
        for o in repository.list_overrides():
            key = (o.year, month_number(o.month))
            if key not in stamps or o.updated_at >= stamps[key]:
                stamps[key] = o.updated_at
                self.overrides[key] = o.amount

        self.changes: List[CapitalChange] = repository.list_capital_changes()
        self.changes_by_month: Dict[Tuple[int, int], float] = {}
        for c in self.changes:
            d = parse_date(c.date)
            if d is None:
                logger.debug("[LEDGER] Skipping capital change %s: bad date %r", c.change_id, c.date)
                continue
            key = (d.year, d.month)
            self.changes_by_month[key] = self.changes_by_month.get(key, 0.0) + c.amount


class CapitalLedgerService:
    """Derives MonthlyCapitalRecords from a LedgerRepository."""

    def __init__(
        self,
        repository: Optional[LedgerRepository] = None,
        *,
        history_years: Optional[int] = None,
        earliest_year: Optional[int] = None,
        max_months: Optional[int] = None,
        clock: Optional[Callable[[], date]] = None,
    ) -> None:
        if history_years is None or max_months is None:
            from truefolio.core.settings import load_config
            cfg = load_config().ledger
            history_years = cfg.history_years if history_years is None else history_years
            earliest_year = cfg.earliest_year if earliest_year is None else earliest_year
            max_months = cfg.max_months if max_months is None else max_months
        self.repository: LedgerRepository = repository if repository is not None else InMemoryLedgerRepository()
        self.history_years = history_years
        self.earliest_year = earliest_year
        self.max_months = max_months
        self._clock = clock or today
        self._lock = threading.RLock()
        self._cache: Dict[Tuple[int, int, str], MonthlyCapitalRecord] = {}
        self._pl: Dict[AccountingBasis, Dict[Tuple[int, int], float]] = {}
        self._inputs: Optional[_LedgerInputs] = None
        self._trades: Optional[List[Trade]] = None
        self._fingerprint: Optional[int] = None

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def invalidate(self) -> None:
        """Drop every memoized record."""
        with self._lock:
            self._cache.clear()
            self._pl.clear()
            self._inputs = None
            self._trades = None
            self._fingerprint = None

    def _sync(self, trades: Optional[List[Trade]]) -> List[Trade]:
        current = list(trades) if trades is not None else self.repository.list_trades()
        fingerprint = hash(tuple(current))
        if fingerprint != self._fingerprint:
            if self._fingerprint is not None:
                logger.debug("[LEDGER] Trade list changed; dropping cached records")
            self._cache.clear()
            self._pl.clear()
            self._fingerprint = fingerprint
        self._trades = current
        return current

    def _get_inputs(self) -> _LedgerInputs:
        if self._inputs is None:
            self._inputs = _LedgerInputs(self.repository)
        return self._inputs

    def _pl_map(self, basis: AccountingBasis) -> Dict[Tuple[int, int], float]:
        if basis not in self._pl:
            self._pl[basis] = pl_by_month(self._trades or [], basis)
        return self._pl[basis]

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    def current_date(self) -> date:
        return self._clock()

    def floor_year(self) -> int:
        """Earliest year the walk starts from."""
        floor = self._clock().year - self.history_years
        if self.earliest_year is not None:
            floor = max(floor, self.earliest_year)
        return floor

    def _base_record(self, month: int, year: int) -> MonthlyCapitalRecord:
        amount = self._get_inputs().yearly.get(year, 0.0)
        return MonthlyCapitalRecord.build(MONTHS[month - 1], year, amount, 0.0, 0.0)

    def _compute(
        self,
        month: int,
        year: int,
        basis: AccountingBasis,
        prev: MonthlyCapitalRecord,
    ) -> MonthlyCapitalRecord:
        inputs = self._get_inputs()
        override = inputs.overrides.get((year, month))
        if override is not None:
            opening = override
        elif month == 1 and inputs.yearly.get(year, 0.0) > 0:
            opening = inputs.yearly[year]
        else:
            opening = prev.final_capital
        return MonthlyCapitalRecord.build(
            MONTHS[month - 1],
            year,
            opening,
            inputs.changes_by_month.get((year, month), 0.0),
            self._pl_map(basis).get((year, month), 0.0),
        )

    def _record(self, month: int, year: int, basis: AccountingBasis) -> MonthlyCapitalRecord:
        key = (month, year, basis.value)
        hit = self._cache.get(key)
        if hit is not None:
            return hit
        floor = self.floor_year()
        if year < floor:
            rec = self._base_record(month, year)
            self._cache[key] = rec
            return rec

        prev = self._base_record(12, floor - 1)
        y, m = floor, 1
        while (y, m) <= (year, month):
            k = (m, y, basis.value)
            rec = self._cache.get(k)
            if rec is None:
                rec = self._compute(m, y, basis, prev)
                self._cache[k] = rec
            prev = rec
            y, m = shift_month(y, m, 1)
        return prev

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def monthly_record(
        self,
        month: MonthLike,
        year: int,
        trades: Optional[List[Trade]] = None,
        basis: BasisLike = AccountingBasis.ACCRUAL,
    ) -> MonthlyCapitalRecord:
        """Capital record for one month. Raises InvalidMonthError for an unknown month."""
        m = month_number(month)
        b = AccountingBasis.parse(basis)
        with self._lock:
            self._sync(trades)
            return self._record(m, int(year), b)

    def records_for_year(
        self,
        year: int,
        trades: Optional[List[Trade]] = None,
        basis: BasisLike = AccountingBasis.ACCRUAL,
    ) -> List[MonthlyCapitalRecord]:
        b = AccountingBasis.parse(basis)
        with self._lock:
            self._sync(trades)
            return [self._record(m, int(year), b) for m in range(1, 13)]

    def _first_data_year(self, trades: List[Trade]) -> Optional[int]:
        years: List[int] = []
        for t in trades:
            for raw in [t.entry_date] + [e.date for e in t.exits]:
                d = parse_date(raw)
                if d is not None:
                    years.append(d.year)
        inputs = self._get_inputs()
        for c in inputs.changes:
            d = parse_date(c.date)
            if d is not None:
                years.append(d.year)
        years.extend(inputs.yearly.keys())
        return min(years) if years else None

    def all_monthly_records(
        self,
        trades: Optional[List[Trade]] = None,
        basis: BasisLike = AccountingBasis.ACCRUAL,
    ) -> List[MonthlyCapitalRecord]:
        """Records from January of the first year with data through December of this year."""
        b = AccountingBasis.parse(basis)
        with self._lock:
            current = self._sync(trades)
            now = self._clock()
            start = self._first_data_year(current)
            start = now.year if start is None else max(min(start, now.year), self.floor_year())
            out: List[MonthlyCapitalRecord] = []
            y, m = start, 1
            while y <= now.year and len(out) < self.max_months:
                out.append(self._record(m, y, b))
                y, m = shift_month(y, m, 1)
            return out

    def yearly_starting_capital(self, year: int) -> Optional[float]:
        with self._lock:
            return self._get_inputs().yearly.get(int(year))

    def capital_changes(self) -> List[CapitalChange]:
        with self._lock:
            return list(self._get_inputs().changes)

    def capital_changes_for_month(self, month: MonthLike, year: int) -> float:
        """Net deposits minus withdrawals dated in the month."""
        m = month_number(month)
        with self._lock:
            return self._get_inputs().changes_by_month.get((int(year), m), 0.0)

    def capital_changes_between(self, start: date, end: date) -> List[CapitalChange]:
        """Changes dated in (start, end]."""
        out = []
        for c in self.capital_changes():
            d = parse_date(c.date)
            if d is not None and start < d <= end:
                out.append(c)
        return out

    def portfolio_size(
        self,
        month: MonthLike,
        year: int,
        trades: Optional[List[Trade]] = None,
        basis: BasisLike = AccountingBasis.ACCRUAL,
    ) -> float:
        """Final capital of the month; yearly capital or 0 if it cannot be derived."""
        try:
            return self.monthly_record(month, year, trades, basis).final_capital
        except Exception as e:
            logger.warning("[LEDGER] portfolio_size(%s, %s) failed: %s", month, year, e)
            return self.yearly_starting_capital(year) or 0.0

    def latest_portfolio_size(
        self,
        trades: Optional[List[Trade]] = None,
        basis: BasisLike = AccountingBasis.ACCRUAL,
    ) -> float:
        now = self._clock()
        size = self.portfolio_size(now.month, now.year, trades, basis)
        if is_finite_number(size) and size > 0:
            return size
        return self.yearly_starting_capital(now.year) or 0.0

    def initial_capital(
        self,
        trades: Optional[List[Trade]] = None,
        basis: BasisLike = AccountingBasis.ACCRUAL,
    ) -> float:
        """Opening capital of the first ledger month."""
        records = self.all_monthly_records(trades, basis)
        return records[0].opening_capital if records else 0.0

    # ------------------------------------------------------------------
    # Writes: persist first, then invalidate
    # ------------------------------------------------------------------

    def set_yearly_starting_capital(self, year: int, amount: float) -> YearlyStartingCapital:
        with self._lock:
            existing = [r for r in self.repository.list_yearly_capitals() if r.year == int(year)]
            record = YearlyStartingCapital(year=year, amount=amount)
            if existing:
                record.record_id = max(existing, key=lambda r: r.updated_at).record_id
            self.repository.save_yearly_capital(record)
            self.invalidate()
        logger.info("[LEDGER] Set starting capital for %s: %.2f", year, record.amount)
        return record

    def set_monthly_override(self, month: MonthLike, year: int, amount: float) -> MonthlyCapitalOverride:
        with self._lock:
            override = MonthlyCapitalOverride(month=month, year=year, amount=amount)
            existing = [
                o for o in self.repository.list_overrides()
                if o.month == override.month and o.year == override.year
            ]
            if existing:
                override.record_id = max(existing, key=lambda o: o.updated_at).record_id
            self.repository.save_override(override)
            self.invalidate()
        logger.info("[LEDGER] Set override %s %s: %.2f", override.month, year, override.amount)
        return override

    def remove_monthly_override(self, month: MonthLike, year: int) -> bool:
        m = MONTHS[month_number(month) - 1]
        with self._lock:
            removed = self.repository.delete_override(m, int(year))
            if removed:
                self.invalidate()
        if removed:
            logger.info("[LEDGER] Removed override %s %s", m, year)
        return removed

    def add_capital_change(
        self,
        change_date: Union[date, str],
        amount: float,
        change_type: Optional[Union[CapitalChangeType, str]] = None,
        description: str = "",
    ) -> CapitalChange:
        d = parse_date(change_date)
        if d is None:
            raise ValueError(f"Invalid capital change date: {change_date!r}")
        change = CapitalChange(
            date=format_date(d),
            amount=amount,
            type=CapitalChangeType(change_type) if change_type else None,
            description=description,
        )
        with self._lock:
            self.repository.save_capital_change(change)
            self.invalidate()
        logger.info("[LEDGER] Added %s %.2f on %s", change.type.value, change.amount, change.date)
        return change

    def update_capital_change(
        self,
        change_id: str,
        *,
        change_date: Optional[Union[date, str]] = None,
        amount: Optional[float] = None,
        change_type: Optional[Union[CapitalChangeType, str]] = None,
        description: Optional[str] = None,
    ) -> Optional[CapitalChange]:
        """Update fields of an existing change. Returns None if the id is unknown."""
        with self._lock:
            existing = next(
                (c for c in self.repository.list_capital_changes() if c.change_id == change_id), None
            )
            if existing is None:
                return None
            d = existing.to_dict()
            if change_date is not None:
                parsed = parse_date(change_date)
                if parsed is None:
                    raise ValueError(f"Invalid capital change date: {change_date!r}")
                d["date"] = format_date(parsed)
            if amount is not None:
                d["amount"] = amount
                if change_type is None:
                    d["type"] = None
            if change_type is not None:
                d["type"] = CapitalChangeType(change_type).value
            if description is not None:
                d["description"] = description
            updated = CapitalChange.from_dict(d)
            self.repository.save_capital_change(updated)
            self.invalidate()
        logger.info("[LEDGER] Updated capital change %s", change_id)
        return updated

    def delete_capital_change(self, change_id: str) -> bool:
        with self._lock:
            removed = self.repository.delete_capital_change(change_id)
            if removed:
                self.invalidate()
        if removed:
            logger.info("[LEDGER] Deleted capital change %s", change_id)
        return removed

    def cleanup_duplicates(self) -> Dict[str, Dict[str, int]]:
        """Collapse duplicate capital changes and keep the newest yearly/override per period."""
        with self._lock:
            yearly = self.repository.list_yearly_capitals()
            overrides = self.repository.list_overrides()
            changes = self.repository.list_capital_changes()

            seen = set()
            unique_changes: List[CapitalChange] = []
            for c in changes:
                key = (c.date, round(c.amount, 2), c.type, c.description.strip())
                if key in seen:
                    continue
                seen.add(key)
                unique_changes.append(c)

            newest_yearly: Dict[int, YearlyStartingCapital] = {}
            for r in yearly:
                if r.year not in newest_yearly or r.updated_at >= newest_yearly[r.year].updated_at:
                    newest_yearly[r.year] = r

            newest_override: Dict[Tuple[int, str], MonthlyCapitalOverride] = {}
            for o in overrides:
                k = (o.year, o.month)
                if k not in newest_override or o.updated_at >= newest_override[k].updated_at:
                    newest_override[k] = o

            kept_yearly = sorted(newest_yearly.values(), key=lambda r: r.year)
            kept_overrides = sorted(
                newest_override.values(), key=lambda o: (o.year, month_number(o.month))
            )
            self.repository.replace_all(kept_yearly, kept_overrides, unique_changes)
            self.invalidate()

        summary = {
            "capital_changes": {"before": len(changes), "after": len(unique_changes)},
            "yearly_capitals": {"before": len(yearly), "after": len(kept_yearly)},
            "monthly_overrides": {"before": len(overrides), "after": len(kept_overrides)},
        }
        logger.info("[LEDGER] Cleanup: %s", summary)
        return summary


__all__ = [
    "CapitalLedgerService",
]
