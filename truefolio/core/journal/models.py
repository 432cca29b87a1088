# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Journal data models: trades, capital events, overrides and derived monthly records."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from truefolio.core.utils import normalize_month

MAX_PYRAMIDS = 2
MAX_EXITS = 3


class AccountingBasis(str, Enum):
    CASH = "cash"
    ACCRUAL = "accrual"

    @classmethod
    def parse(cls, value: Union["AccountingBasis", str, bool, None]) -> "AccountingBasis":
        """Accept the enum, its value, or a legacy use_cash_basis flag."""
        if isinstance(value, AccountingBasis):
            return value
        if isinstance(value, bool):
            return cls.CASH if value else cls.ACCRUAL
        if value is None:
            return cls.ACCRUAL
        return cls(str(value).strip().lower())


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @classmethod
    def parse(cls, value: Union["Direction", str, None]) -> "Direction":
        if isinstance(value, Direction):
            return value
        v = (value or "LONG").strip().lower()
        if v in ("sell", "short", "short sell"):
            return cls.SHORT
        return cls.LONG


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    PARTIAL = "PARTIAL"
    CLOSED = "CLOSED"

    @classmethod
    def parse(cls, value: Union["PositionStatus", str, None]) -> "PositionStatus":
        if isinstance(value, PositionStatus):
            return value
        return cls((value or "OPEN").strip().upper())


class CapitalChangeType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


def _opt_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass(frozen=True)
class EntryLot:
    """A pyramiding add: date, price, quantity."""
    date: Optional[str]  # YYYY-MM-DD
    price: float
    qty: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "price": self.price, "qty": self.qty}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "EntryLot":
        return cls(date=d.get("date"), price=float(d.get("price") or 0), qty=float(d.get("qty") or 0))


@dataclass(frozen=True)
class ExitEvent:
    """A (partial) exit: date, price, quantity."""
    date: Optional[str]  # YYYY-MM-DD
    price: float
    qty: float

    @property
    def is_valid(self) -> bool:
        return self.price > 0 and self.qty > 0

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "price": self.price, "qty": self.qty}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ExitEvent":
        return cls(date=d.get("date"), price=float(d.get("price") or 0), qty=float(d.get("qty") or 0))


@dataclass(frozen=True)
class Trade:
    """Journal trade: initial entry, up to two pyramids, up to three exits, stops."""
    trade_id: str
    symbol: str
    entry_date: Optional[str]  # YYYY-MM-DD
    entry_price: float
    quantity: float
    direction: Direction = Direction.LONG
    status: PositionStatus = PositionStatus.OPEN
    pyramids: Tuple[EntryLot, ...] = ()
    exits: Tuple[ExitEvent, ...] = ()
    stop_loss: Optional[float] = None
    trailing_stop: Optional[float] = None
    cmp: Optional[float] = None  # current market price, for unrealized P/L only

    def __post_init__(self) -> None:
        object.__setattr__(self, "pyramids", tuple(self.pyramids))
        object.__setattr__(self, "exits", tuple(self.exits))
        object.__setattr__(self, "direction", Direction.parse(self.direction))
        object.__setattr__(self, "status", PositionStatus.parse(self.status))
        if len(self.pyramids) > MAX_PYRAMIDS:
            raise ValueError(f"Trade {self.trade_id}: at most {MAX_PYRAMIDS} pyramid entries")
        if len(self.exits) > MAX_EXITS:
            raise ValueError(f"Trade {self.trade_id}: at most {MAX_EXITS} exits")

    @property
    def is_long(self) -> bool:
        return self.direction == Direction.LONG

    @property
    def is_realized(self) -> bool:
        """Closed or partially closed."""
        return self.status in (PositionStatus.CLOSED, PositionStatus.PARTIAL)

    @property
    def entry_lots(self) -> Tuple[EntryLot, ...]:
        """Initial entry plus pyramids, valid lots only."""
        lots = (EntryLot(self.entry_date, self.entry_price, self.quantity),) + self.pyramids
        return tuple(lot for lot in lots if lot.price > 0 and lot.qty > 0)

    @property
    def valid_exits(self) -> Tuple[ExitEvent, ...]:
        return tuple(e for e in self.exits if e.is_valid)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "symbol": self.symbol,
            "entry_date": self.entry_date,
            "entry_price": self.entry_price,
            "quantity": self.quantity,
            "direction": self.direction.value,
            "status": self.status.value,
            "pyramids": [p.to_dict() for p in self.pyramids],
            "exits": [e.to_dict() for e in self.exits],
            "stop_loss": self.stop_loss,
            "trailing_stop": self.trailing_stop,
            "cmp": self.cmp,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Trade":
        return cls(
            trade_id=str(d["trade_id"]),
            symbol=str(d.get("symbol") or ""),
            entry_date=d.get("entry_date"),
            entry_price=float(d.get("entry_price") or 0),
            quantity=float(d.get("quantity") or 0),
            direction=Direction.parse(d.get("direction")),
            status=PositionStatus.parse(d.get("status")),
            pyramids=tuple(EntryLot.from_dict(p) for p in d.get("pyramids", [])),
            exits=tuple(ExitEvent.from_dict(e) for e in d.get("exits", [])),
            stop_loss=_opt_float(d.get("stop_loss")),
            trailing_stop=_opt_float(d.get("trailing_stop")),
            cmp=_opt_float(d.get("cmp")),
        )


@dataclass
class YearlyStartingCapital:
    """January opening capital for a year, absent an override."""
    year: int
    amount: float
    updated_at: str = field(default_factory=lambda: utc_now_iso())
    record_id: str = field(default_factory=lambda: generate_record_id())

    def __post_init__(self) -> None:
        self.year = int(self.year)
        self.amount = float(self.amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "year": self.year,
            "amount": self.amount,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "YearlyStartingCapital":
        return cls(
            year=int(d["year"]),
            amount=float(d.get("amount", 0)),
            updated_at=d.get("updated_at") or utc_now_iso(),
            record_id=d.get("record_id") or generate_record_id(),
        )


@dataclass
class MonthlyCapitalOverride:
    """Manual opening capital for one (month, year)."""
    month: str  # Jan..Dec
    year: int
    amount: float
    updated_at: str = field(default_factory=lambda: utc_now_iso())
    record_id: str = field(default_factory=lambda: generate_record_id())

    def __post_init__(self) -> None:
        self.month = normalize_month(self.month)
        self.year = int(self.year)
        self.amount = float(self.amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "month": self.month,
            "year": self.year,
            "amount": self.amount,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MonthlyCapitalOverride":
        return cls(
            month=d["month"],
            year=int(d["year"]),
            amount=float(d.get("amount", 0)),
            updated_at=d.get("updated_at") or utc_now_iso(),
            record_id=d.get("record_id") or generate_record_id(),
        )


@dataclass
class CapitalChange:
    """Deposit or withdrawal. Amount is signed: withdrawals are negative."""
    date: str  # YYYY-MM-DD
    amount: float
    type: Optional[CapitalChangeType] = None
    description: str = ""
    change_id: str = field(default_factory=lambda: generate_record_id())

    def __post_init__(self) -> None:
        amount = float(self.amount)
        if self.type is None:
            self.type = CapitalChangeType.DEPOSIT if amount >= 0 else CapitalChangeType.WITHDRAWAL
        else:
            self.type = CapitalChangeType(self.type)
        self.amount = abs(amount) if self.type == CapitalChangeType.DEPOSIT else -abs(amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "change_id": self.change_id,
            "date": self.date,
            "amount": self.amount,
            "type": self.type.value if self.type else None,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CapitalChange":
        return cls(
            date=d["date"],
            amount=float(d.get("amount", 0)),
            type=CapitalChangeType(d["type"]) if d.get("type") else None,
            description=d.get("description") or "",
            change_id=d.get("change_id") or generate_record_id(),
        )


@dataclass(frozen=True)
class MonthlyCapitalRecord:
    """Derived month of the capital ledger. Never persisted."""
    month: str
    year: int
    opening_capital: float
    capital_changes_net: float
    effective_starting_capital: float
    period_pl: float
    final_capital: float

    @classmethod
    def build(
        cls,
        month: str,
        year: int,
        opening_capital: float,
        capital_changes_net: float,
        period_pl: float,
    ) -> "MonthlyCapitalRecord":
        effective = opening_capital + capital_changes_net
        return cls(
            month=month,
            year=year,
            opening_capital=opening_capital,
            capital_changes_net=capital_changes_net,
            effective_starting_capital=effective,
            period_pl=period_pl,
            final_capital=effective + period_pl,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "year": self.year,
            "opening_capital": self.opening_capital,
            "capital_changes_net": self.capital_changes_net,
            "effective_starting_capital": self.effective_starting_capital,
            "period_pl": self.period_pl,
            "final_capital": self.final_capital,
        }


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_record_id() -> str:
    """Generate a unique record ID."""
    return uuid.uuid4().hex


def generate_trade_id() -> str:
    """Generate a unique trade ID."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    short = uuid.uuid4().hex[:8]
    return f"trade_{ts}_{short}"
