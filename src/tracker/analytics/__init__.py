"""Analytics views over the collection store."""

from .engine import AnalyticsEngine, demand_score, percentage_change
from .models import (
    CollectionValue,
    DemandResult,
    FormatValue,
    HistoryChange,
    PriceTrend,
    SellCandidate,
    SellScoreWeights,
    TrendDirection,
)

__all__ = [
    "AnalyticsEngine",
    "CollectionValue",
    "DemandResult",
    "FormatValue",
    "HistoryChange",
    "PriceTrend",
    "SellCandidate",
    "SellScoreWeights",
    "TrendDirection",
    "demand_score",
    "percentage_change",
]
