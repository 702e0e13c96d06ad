"""Result structs for analytics views."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..database.models import Item, Observation


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


@dataclass
class SellScoreWeights:
    """Weights of the sell-score heuristic.

    The terms mix a count, a percentage and a raw price without
    normalization, so the weights are a tunable policy rather than a fit.
    """
    wants: float = 0.4
    price_change: float = 0.3
    price: float = 0.3

    def score(self, wants_count: int, price_change: float, price: float) -> float:
        return (
            wants_count * self.wants
            + price_change * self.price_change
            + price * self.price
        )


@dataclass
class PriceTrend:
    """Latest vs. previous observation for one release."""

    item: Item
    current_price: float
    previous_price: float
    percentage_change: float
    price_history: list[Observation] = field(default_factory=list)

    @property
    def price_change(self) -> float:
        return self.current_price - self.previous_price

    @property
    def trend(self) -> TrendDirection:
        if self.price_change > 0:
            return TrendDirection.UP
        if self.price_change < 0:
            return TrendDirection.DOWN
        return TrendDirection.STABLE

    def to_dict(self) -> dict:
        return {
            "release": self.item.to_dict(),
            "current_price": self.current_price,
            "previous_price": self.previous_price,
            "price_change": self.price_change,
            "percentage_change": self.percentage_change,
            "trend": self.trend.value,
        }


@dataclass
class DemandResult:
    """Want count per unit of price for one release."""

    item: Item
    current_price: float
    wants_count: int
    demand_score: float

    def to_dict(self) -> dict:
        return {
            "release": self.item.to_dict(),
            "current_price": self.current_price,
            "wants_count": self.wants_count,
            "demand_score": self.demand_score,
        }


@dataclass
class SellCandidate:
    """A release ranked by the composite sell score."""

    item: Item
    current_price: float
    previous_price: float | None
    wants_count: int
    price_change_percent: float | None
    demand_score: float | None
    sell_score: float

    def to_dict(self) -> dict:
        return {
            "release": self.item.to_dict(),
            "current_price": self.current_price,
            "previous_price": self.previous_price,
            "wants_count": self.wants_count,
            "price_change_percent": self.price_change_percent,
            "demand_score": self.demand_score,
            "sell_score": self.sell_score,
        }


@dataclass
class FormatValue:
    format: str
    count: int = 0
    value: float = 0.0


@dataclass
class CollectionValue:
    """Collection value statistics from latest prices."""

    total_items: int = 0
    priced_items: int = 0
    unpriced_items: int = 0
    total_value: float = 0.0
    average_value: float = 0.0
    median_value: float = 0.0
    most_valuable: list[tuple[Item, float]] = field(default_factory=list)
    by_format: list[FormatValue] = field(default_factory=list)

    @property
    def priced_percent(self) -> float:
        if not self.total_items:
            return 0.0
        return self.priced_items / self.total_items * 100


@dataclass
class HistoryChange:
    """First-to-last price change inside a history window."""

    first_price: float
    last_price: float
    change: float
    change_percent: float | None
