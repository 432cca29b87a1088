# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Return and risk analytics: XIRR, rolling returns, trade statistics, risk ratios."""

from truefolio.core.analytics.performance import (
    PerformanceAnalyzer,
    PerformanceMetrics,
    compute_performance_metrics,
)
from truefolio.core.analytics.returns import RollingReturns, monthly_performance
from truefolio.core.analytics.xirr import XirrCalculator, xirr

__all__ = [
    "PerformanceAnalyzer",
    "PerformanceMetrics",
    "compute_performance_metrics",
    "RollingReturns",
    "monthly_performance",
    "XirrCalculator",
    "xirr",
]
