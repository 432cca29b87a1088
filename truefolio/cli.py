#!/usr/bin/env python3
# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""
Truefolio report CLI.

Usage:
    truefolio ledger --year 2024 --basis cash
    truefolio monthly --year 2024
    truefolio metrics --basis accrual
    truefolio xirr --start 2024-01-01 --end 2024-12-31
    truefolio gap-down --pct 5
    truefolio gap-down --sweep

Reads the JSON ledger store (<output_dir>/ledger/ or --data-dir) and prints JSON.

Environment variables:
    TRUEFOLIO_CONFIG        - Path to config.yaml
    TRUEFOLIO_OUTPUT_DIR    - Base directory of the ledger store (default: out)
    TRUEFOLIO_TIMEZONE      - Timezone for "today" (default: Asia/Kolkata)
"""

from __future__ import annotations

import argparse
import json
import logging
import math
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv

from truefolio.core.analytics.performance import PerformanceAnalyzer
from truefolio.core.analytics.returns import monthly_performance
from truefolio.core.analytics.xirr import XirrCalculator
from truefolio.core.capital_ledger import CapitalLedgerService
from truefolio.core.journal.store import JsonLedgerRepository
from truefolio.core.portfolio.gap_down_simulator import GapDownAnalyzer, format_sweep_summary
from truefolio.core.utils import parse_date

logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    """Non-finite floats (an unbounded profit factor) become null."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def _emit(payload: Any) -> None:
    print(json.dumps(_json_safe(payload), indent=2, default=str, allow_nan=False))


def _build_repository(args: argparse.Namespace) -> JsonLedgerRepository:
    repo = JsonLedgerRepository(Path(args.data_dir) if args.data_dir else None)
    logger.info("Using ledger store %s", repo.ledger_dir)
    return repo


def _build_ledger(args: argparse.Namespace) -> CapitalLedgerService:
    return CapitalLedgerService(_build_repository(args))


def cmd_ledger(args: argparse.Namespace) -> int:
    ledger = _build_ledger(args)
    if args.year:
        records = ledger.records_for_year(args.year, basis=args.basis)
    else:
        records = ledger.all_monthly_records(basis=args.basis)
    _emit([r.to_dict() for r in records])
    return 0


def cmd_monthly(args: argparse.Namespace) -> int:
    ledger = _build_ledger(args)
    year = args.year or ledger.current_date().year
    _emit(monthly_performance(ledger, year, basis=args.basis))
    return 0


def cmd_metrics(args: argparse.Namespace) -> int:
    ledger = _build_ledger(args)
    _emit(PerformanceAnalyzer(ledger).metrics(basis=args.basis).to_dict())
    return 0


def cmd_xirr(args: argparse.Namespace) -> int:
    start = parse_date(args.start)
    end = parse_date(args.end)
    if start is None or end is None or end < start:
        print(f"Invalid window: {args.start} .. {args.end}", file=sys.stderr)
        return 2
    ledger = _build_ledger(args)
    start_rec = ledger.monthly_record(start.month, start.year, basis=args.basis)
    end_rec = ledger.monthly_record(end.month, end.year, basis=args.basis)
    changes = ledger.capital_changes_between(start - timedelta(days=1), end)
    rate = XirrCalculator().calculate(start, start_rec.opening_capital, end, end_rec.final_capital, changes)
    _emit({
        "start": start.isoformat(),
        "end": end.isoformat(),
        "starting_capital": start_rec.opening_capital,
        "ending_capital": end_rec.final_capital,
        "capital_changes": len(changes),
        "xirr_pct": rate,
    })
    return 0


def cmd_gap_down(args: argparse.Namespace) -> int:
    repo = _build_repository(args)
    trades = repo.list_trades()
    ledger = CapitalLedgerService(repo) if args.portfolio_size is None else None
    analyzer = GapDownAnalyzer(ledger, basis=args.basis)
    if args.sweep:
        results = analyzer.sweep(trades, args.portfolio_size)
        logger.info("Gap-down sweep:\n%s", format_sweep_summary(results))
        _emit([r.to_dict() for r in results])
    else:
        _emit(analyzer.scenario(trades, args.pct, args.portfolio_size).to_dict())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="truefolio",
        description="Truefolio capital ledger and performance reports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Ledger store directory (default: <output_dir>/ledger)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def add(name: str, handler, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        p.add_argument(
            "--basis",
            choices=["cash", "accrual"],
            default="accrual",
            help="Accounting basis (default: accrual)",
        )
        p.set_defaults(handler=handler)
        return p

    p = add("ledger", cmd_ledger, "Monthly capital records")
    p.add_argument("--year", type=int, default=None, help="Only this year (default: full history)")

    p = add("monthly", cmd_monthly, "Monthly performance table with rolling returns")
    p.add_argument("--year", type=int, default=None, help="Year (default: current)")

    add("metrics", cmd_metrics, "Trade statistics and risk ratios")

    p = add("xirr", cmd_xirr, "Annualized return between two dates")
    p.add_argument("--start", required=True, help="Start date (YYYY-MM-DD)")
    p.add_argument("--end", required=True, help="End date (YYYY-MM-DD)")

    p = add("gap-down", cmd_gap_down, "Gap-down risk on open positions")
    mode = p.add_mutually_exclusive_group(required=True)
    mode.add_argument("--pct", type=float, help="Gap size in percent")
    mode.add_argument("--sweep", action="store_true", help="Run the configured percentage sweep")
    p.add_argument(
        "--portfolio-size",
        type=float,
        default=None,
        help="Flat portfolio size instead of the ledger's current capital",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        return args.handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        logger.exception("Report failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
