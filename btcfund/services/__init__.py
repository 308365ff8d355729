"""Service layer: valuation, analytics and price feeds."""
from .analytics import (
    AnalyticsResult,
    ContributionStats,
    CostBasis,
    MemberAnalytics,
    MonthlySnapshot,
    Streaks,
    compute_analytics,
)
from .prices import BtcPriceService, PriceCache, PriceHistoryResult
from .valuation import calculate_portfolio, round_half_up

__all__ = [
    "AnalyticsResult",
    "BtcPriceService",
    "ContributionStats",
    "CostBasis",
    "MemberAnalytics",
    "MonthlySnapshot",
    "PriceCache",
    "PriceHistoryResult",
    "Streaks",
    "calculate_portfolio",
    "compute_analytics",
    "round_half_up",
]
