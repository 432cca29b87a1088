# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Centralized configuration loader for Truefolio.

Loads config.yaml from the repository root (or the file named by
TRUEFOLIO_CONFIG) and provides typed access to settings.
Falls back to sensible defaults if config.yaml is missing or incomplete.
Environment variables override config.yaml values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import yaml

_CONFIG_CACHE: Optional["TruefolioConfig"] = None

DEFAULT_GAP_PERCENTAGES: Tuple[float, ...] = (1.0, 2.0, 3.0, 4.0, 5.0, 7.0, 10.0, 15.0, 20.0)


def _repo_root() -> Path:
    """Return the repository root."""
    # truefolio/core/settings.py -> repo root
    return Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class LedgerConfig:
    """Capital ledger walk bounds."""
    history_years: int  # floor = current_year - history_years
    earliest_year: Optional[int]  # hard floor; None = only the rolling window applies
    max_months: int  # cap on all_monthly_records iterations


@dataclass(frozen=True)
class XirrConfig:
    """Newton-Raphson settings for the XIRR solver."""
    guess: float
    tolerance: float
    max_iterations: int
    cache_size: int


@dataclass(frozen=True)
class AnalyticsConfig:
    """Risk-adjusted ratio settings."""
    trading_days: int
    risk_free_rate: float  # annual, as a fraction (0.06 = 6%)


@dataclass(frozen=True)
class GapDownConfig:
    """Gap-down scenario sweep."""
    percentages: Tuple[float, ...]


@dataclass(frozen=True)
class TruefolioConfig:
    """Root configuration object."""
    ledger: LedgerConfig
    xirr: XirrConfig
    analytics: AnalyticsConfig
    gap_down: GapDownConfig
    timezone: str
    output_dir: str


def _config_path() -> Path:
    override = os.getenv("TRUEFOLIO_CONFIG")
    if override:
        return Path(override)
    return _repo_root() / "config.yaml"


def _load_yaml_config() -> dict:
    """Load config.yaml. Returns empty dict if not found."""
    config_path = _config_path()
    if not config_path.exists():
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return {}


def _parse_percentages(value: object) -> Tuple[float, ...]:
    """Accept "1,2,5" strings or YAML lists; invalid entries are dropped."""
    if value is None:
        return DEFAULT_GAP_PERCENTAGES
    items = value.split(",") if isinstance(value, str) else list(value)  # type: ignore[arg-type]
    out = []
    for item in items:
        try:
            pct = float(str(item).strip())
        except (TypeError, ValueError):
            continue
        if pct > 0:
            out.append(pct)
    return tuple(sorted(set(out))) or DEFAULT_GAP_PERCENTAGES


def load_config(*, reload: bool = False) -> TruefolioConfig:
    """Load and return the Truefolio configuration.

    Priority order (highest to lowest):
    1. Environment variables (TRUEFOLIO_HISTORY_YEARS, TRUEFOLIO_XIRR_GUESS, etc.)
    2. config.yaml values
    3. Built-in defaults

    Parameters
    ----------
    reload : bool
        If True, force reload from disk. Otherwise use cached config.

    Returns
    -------
    TruefolioConfig
        The loaded configuration.
    """
    global _CONFIG_CACHE

    if _CONFIG_CACHE is not None and not reload:
        return _CONFIG_CACHE

    raw = _load_yaml_config()

    # Ledger
    ledger_raw = raw.get("ledger", {}) or {}
    history_years = int(os.getenv(
        "TRUEFOLIO_HISTORY_YEARS",
        str(ledger_raw.get("history_years", 5))
    ))
    earliest_raw = os.getenv("TRUEFOLIO_EARLIEST_YEAR", ledger_raw.get("earliest_year"))
    earliest_year = int(earliest_raw) if earliest_raw not in (None, "") else None
    max_months = int(os.getenv(
        "TRUEFOLIO_MAX_MONTHS",
        str(ledger_raw.get("max_months", 12 * 6))
    ))
    ledger_config = LedgerConfig(
        history_years=max(0, history_years),
        earliest_year=earliest_year,
        max_months=max(1, max_months),
    )

    # XIRR solver
    xirr_raw = raw.get("xirr", {}) or {}
    xirr_config = XirrConfig(
        guess=float(os.getenv("TRUEFOLIO_XIRR_GUESS", str(xirr_raw.get("guess", 0.1)))),
        tolerance=float(os.getenv("TRUEFOLIO_XIRR_TOLERANCE", str(xirr_raw.get("tolerance", 1e-7)))),
        max_iterations=int(os.getenv(
            "TRUEFOLIO_XIRR_MAX_ITERATIONS",
            str(xirr_raw.get("max_iterations", 100))
        )),
        cache_size=int(os.getenv("TRUEFOLIO_XIRR_CACHE_SIZE", str(xirr_raw.get("cache_size", 1000)))),
    )

    # Analytics
    analytics_raw = raw.get("analytics", {}) or {}
    analytics_config = AnalyticsConfig(
        trading_days=int(os.getenv(
            "TRUEFOLIO_TRADING_DAYS",
            str(analytics_raw.get("trading_days", 252))
        )),
        risk_free_rate=float(os.getenv(
            "TRUEFOLIO_RISK_FREE_RATE",
            str(analytics_raw.get("risk_free_rate", 0.0))
        )),
    )

    # Gap-down sweep
    gap_raw = raw.get("gap_down", {}) or {}
    gap_config = GapDownConfig(
        percentages=_parse_percentages(
            os.getenv("TRUEFOLIO_GAP_PERCENTAGES") or gap_raw.get("percentages")
        ),
    )

    app_raw = raw.get("app", {}) or {}
    timezone = os.getenv("TRUEFOLIO_TIMEZONE", app_raw.get("timezone", "Asia/Kolkata"))
    output_dir = os.getenv("TRUEFOLIO_OUTPUT_DIR", app_raw.get("output_dir", "out"))

    config = TruefolioConfig(
        ledger=ledger_config,
        xirr=xirr_config,
        analytics=analytics_config,
        gap_down=gap_config,
        timezone=str(timezone),
        output_dir=str(output_dir),
    )

    _CONFIG_CACHE = config
    return config


def get_output_dir() -> str:
    """Convenience: return output directory from config."""
    return load_config().output_dir


def get_timezone() -> str:
    """Convenience: return the timezone used to evaluate "today"."""
    return load_config().timezone


def get_gap_percentages() -> Tuple[float, ...]:
    """Convenience: return the gap-down scenario percentages."""
    return load_config().gap_down.percentages
