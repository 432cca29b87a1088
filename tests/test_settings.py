# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Tests for config.yaml loading and environment overrides."""

from __future__ import annotations

import pytest

from truefolio.core import settings
from truefolio.core.settings import DEFAULT_GAP_PERCENTAGES, _parse_percentages, load_config

_ENV_VARS = (
    "TRUEFOLIO_CONFIG",
    "TRUEFOLIO_HISTORY_YEARS",
    "TRUEFOLIO_EARLIEST_YEAR",
    "TRUEFOLIO_MAX_MONTHS",
    "TRUEFOLIO_XIRR_GUESS",
    "TRUEFOLIO_XIRR_TOLERANCE",
    "TRUEFOLIO_XIRR_MAX_ITERATIONS",
    "TRUEFOLIO_XIRR_CACHE_SIZE",
    "TRUEFOLIO_TRADING_DAYS",
    "TRUEFOLIO_RISK_FREE_RATE",
    "TRUEFOLIO_GAP_PERCENTAGES",
    "TRUEFOLIO_TIMEZONE",
    "TRUEFOLIO_OUTPUT_DIR",
)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Isolate each test from ambient TRUEFOLIO_* variables and the config cache."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    settings._CONFIG_CACHE = None
    yield
    settings._CONFIG_CACHE = None


def test_defaults_when_config_missing(monkeypatch, tmp_path):
    monkeypatch.setenv("TRUEFOLIO_CONFIG", str(tmp_path / "missing.yaml"))
    cfg = load_config(reload=True)
    assert cfg.ledger.history_years == 5
    assert cfg.ledger.earliest_year is None
    assert cfg.ledger.max_months == 72
    assert cfg.xirr.guess == 0.1
    assert cfg.xirr.tolerance == 1e-7
    assert cfg.xirr.max_iterations == 100
    assert cfg.xirr.cache_size == 1000
    assert cfg.analytics.trading_days == 252
    assert cfg.analytics.risk_free_rate == 0.0
    assert cfg.gap_down.percentages == DEFAULT_GAP_PERCENTAGES
    assert cfg.timezone == "Asia/Kolkata"
    assert cfg.output_dir == "out"


def test_yaml_values_are_read(monkeypatch, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "ledger:\n"
        "  history_years: 8\n"
        "  earliest_year: 2020\n"
        "analytics:\n"
        "  risk_free_rate: 0.06\n"
        "gap_down:\n"
        "  percentages: [5, 1, 5]\n"
        "app:\n"
        "  timezone: UTC\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("TRUEFOLIO_CONFIG", str(path))
    cfg = load_config(reload=True)
    assert cfg.ledger.history_years == 8
    assert cfg.ledger.earliest_year == 2020
    assert cfg.analytics.risk_free_rate == 0.06
    assert cfg.gap_down.percentages == (1.0, 5.0)
    assert cfg.timezone == "UTC"


def test_env_overrides_yaml(monkeypatch, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("ledger:\n  history_years: 8\n", encoding="utf-8")
    monkeypatch.setenv("TRUEFOLIO_CONFIG", str(path))
    monkeypatch.setenv("TRUEFOLIO_HISTORY_YEARS", "3")
    monkeypatch.setenv("TRUEFOLIO_EARLIEST_YEAR", "2021")
    monkeypatch.setenv("TRUEFOLIO_XIRR_CACHE_SIZE", "10")
    monkeypatch.setenv("TRUEFOLIO_GAP_PERCENTAGES", "2,4")
    cfg = load_config(reload=True)
    assert cfg.ledger.history_years == 3
    assert cfg.ledger.earliest_year == 2021
    assert cfg.xirr.cache_size == 10
    assert cfg.gap_down.percentages == (2.0, 4.0)


def test_invalid_yaml_falls_back_to_defaults(monkeypatch, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("ledger: [unclosed\n", encoding="utf-8")
    monkeypatch.setenv("TRUEFOLIO_CONFIG", str(path))
    cfg = load_config(reload=True)
    assert cfg.ledger.history_years == 5


def test_config_is_cached(monkeypatch, tmp_path):
    monkeypatch.setenv("TRUEFOLIO_CONFIG", str(tmp_path / "missing.yaml"))
    first = load_config(reload=True)
    monkeypatch.setenv("TRUEFOLIO_HISTORY_YEARS", "9")
    assert load_config() is first
    assert load_config(reload=True).ledger.history_years == 9


def test_parse_percentages_drops_invalid_entries():
    assert _parse_percentages("2, x, -1, 10") == (2.0, 10.0)
    assert _parse_percentages("") == DEFAULT_GAP_PERCENTAGES
    assert _parse_percentages(None) == DEFAULT_GAP_PERCENTAGES
