"""Read-side queries: the monthly dashboard and analytics."""

from spendly.queries.analytics import (
    AnalyticsAggregator,
    build_snapshot,
    day_breakdown,
    filter_by_tag,
    group_by_month,
    monthly_tag_matrix,
    tag_breakdown,
    top_line,
)
from spendly.queries.dashboard import DashboardQuery

__all__ = [
    "AnalyticsAggregator",
    "DashboardQuery",
    "build_snapshot",
    "day_breakdown",
    "filter_by_tag",
    "group_by_month",
    "monthly_tag_matrix",
    "tag_breakdown",
    "top_line",
]
