# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Portfolio risk: gap-down scenarios and open heat."""

from truefolio.core.portfolio.gap_down_simulator import (
    GapDownAnalysis,
    GapDownAnalyzer,
    format_sweep_summary,
    is_risky_position,
    simulate_gap_down,
)

__all__ = [
    "GapDownAnalysis",
    "GapDownAnalyzer",
    "format_sweep_summary",
    "is_risky_position",
    "simulate_gap_down",
]
