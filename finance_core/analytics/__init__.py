"""Dashboard and analytics package."""

from finance_core.analytics.reports import (
    AnalyticsPeriod,
    AnalyticsReport,
    CategoryExpense,
    DashboardService,
    DashboardSummary,
    KindStats,
    MonthlyTotals,
    PeriodSummary,
    QuickStats,
    expenses_by_category,
    monthly_totals,
    stats_by_kind,
    summarize,
)

__all__ = [
    "AnalyticsPeriod",
    "AnalyticsReport",
    "CategoryExpense",
    "DashboardService",
    "DashboardSummary",
    "KindStats",
    "MonthlyTotals",
    "PeriodSummary",
    "QuickStats",
    "expenses_by_category",
    "monthly_totals",
    "stats_by_kind",
    "summarize",
]
