"""Read-only analytics over accumulated observations.

Views:
- Trends: latest vs. previous price, percentage change
- Demand: latest want count / latest price
- Sell candidates: 0.4 * wants + 0.3 * change% + 0.3 * price
- Collection value: totals, median and per-format breakdown

Missing second observations, zero prices and zero previous prices are
excluded or null-guarded; no view raises on sparse data.
"""

from __future__ import annotations

import logging
import sqlite3
from statistics import median

from src.common.config import TrackingSettings

from ..database.models import Item, Observation
from ..database.store import PriceStore, format_clause
from .models import (
    CollectionValue,
    DemandResult,
    FormatValue,
    HistoryChange,
    PriceTrend,
    SellCandidate,
    SellScoreWeights,
)

logger = logging.getLogger(__name__)

# Latest and previous observation per release, ties broken by insertion order.
_LATEST_PAIR_SQL = f"""
WITH ranked AS (
    SELECT
        release_id,
        price,
        wants_count,
        ROW_NUMBER() OVER (
            PARTITION BY release_id ORDER BY timestamp DESC, id DESC
        ) AS rn
    FROM price_history
)
SELECT
    r.*,
    l1.price AS current_price,
    l1.wants_count AS current_wants,
    l2.price AS previous_price
FROM releases r
JOIN ranked l1 ON l1.release_id = r.id AND l1.rn = 1
LEFT JOIN ranked l2 ON l2.release_id = r.id AND l2.rn = 2
WHERE {format_clause()}
  AND (? IS NULL OR EXISTS (
        SELECT 1 FROM collection_items ci
        WHERE ci.release_id = r.id AND ci.folder_name = ?
  ))
"""


def percentage_change(current: float, previous: float | None) -> float | None:
    """(current - previous) / previous * 100, None when previous is 0 or missing."""
    if previous is None or previous == 0:
        return None
    return (current - previous) / previous * 100


def demand_score(wants_count: int, price: float) -> float | None:
    """wants / price, None when price is 0."""
    if not price:
        return None
    return wants_count / price


class AnalyticsEngine:
    """Analytics queries over a PriceStore.

    Args:
        store: Source store (read-only use).
        tracking: Default thresholds and the canonical folder name.
        weights: Sell-score weights.
    """

    def __init__(
        self,
        store: PriceStore,
        tracking: TrackingSettings | None = None,
        weights: SellScoreWeights | None = None,
    ) -> None:
        self.store = store
        self.tracking = tracking or TrackingSettings()
        self.weights = weights or SellScoreWeights()

    def _latest_pairs(
        self,
        format_filter: str | None = None,
        canonical_only: bool = False,
    ) -> list[sqlite3.Row]:
        folder = self.tracking.canonical_folder if canonical_only else None
        return self.store.connection.execute(
            _LATEST_PAIR_SQL,
            (format_filter, format_filter, folder, folder),
        ).fetchall()

    # --- Trends ---

    def price_changes(
        self,
        min_change_percent: float | None = None,
        format_filter: str | None = None,
        limit: int | None = None,
        history_days: float = 30,
    ) -> list[PriceTrend]:
        """All releases whose |change| meets the threshold, change descending."""
        threshold = (
            self.tracking.min_price_change_percent
            if min_change_percent is None
            else min_change_percent
        )

        trends: list[PriceTrend] = []
        for row in self._latest_pairs(format_filter):
            change = percentage_change(row["current_price"], row["previous_price"])
            if change is None or abs(change) < threshold:
                continue
            trends.append(PriceTrend(
                item=Item.from_row(row),
                current_price=row["current_price"],
                previous_price=row["previous_price"],
                percentage_change=change,
            ))

        trends.sort(key=lambda t: (-t.percentage_change, t.item.id))
        if limit is not None:
            trends = trends[:limit]
        for t in trends:
            t.price_history = self.store.observations_since(t.item.id, history_days)

        logger.debug("Trend view: %d releases (threshold %.1f%%)", len(trends), threshold)
        return trends

    def increasing_value(
        self,
        min_change_percent: float | None = None,
        format_filter: str | None = None,
        limit: int | None = None,
    ) -> list[PriceTrend]:
        """Releases whose price went up by at least the threshold."""
        trends = [
            t for t in self.price_changes(min_change_percent, format_filter)
            if t.percentage_change > 0
        ]
        return trends[:limit] if limit is not None else trends

    # --- Demand ---

    def high_demand(
        self,
        min_wants: int | None = None,
        format_filter: str | None = None,
        limit: int | None = None,
    ) -> list[DemandResult]:
        """Canonical-folder releases ranked by wants per unit of price."""
        min_wants = self.tracking.min_wants_count if min_wants is None else min_wants

        results: list[DemandResult] = []
        for row in self._latest_pairs(format_filter, canonical_only=True):
            wants = row["current_wants"] or 0
            if wants < min_wants:
                continue
            score = demand_score(wants, row["current_price"])
            if score is None:
                continue
            results.append(DemandResult(
                item=Item.from_row(row),
                current_price=row["current_price"],
                wants_count=wants,
                demand_score=score,
            ))

        results.sort(key=lambda d: (-d.demand_score, d.item.id))
        return results[:limit] if limit is not None else results

    # --- Sell candidates ---

    def sell_candidates(
        self,
        min_wants: int | None = None,
        min_price_change: float = 0.0,
        format_filter: str | None = None,
        limit: int | None = 20,
    ) -> list[SellCandidate]:
        """Canonical-folder releases ranked by sell score, highest first.

        A release with a single observation counts as 0% change.
        """
        min_wants = self.tracking.min_wants_count if min_wants is None else min_wants

        candidates: list[SellCandidate] = []
        for row in self._latest_pairs(format_filter, canonical_only=True):
            wants = row["current_wants"] or 0
            current = row["current_price"]
            change = percentage_change(current, row["previous_price"])
            effective_change = change if change is not None else 0.0
            if wants < min_wants or effective_change < min_price_change:
                continue
            candidates.append(SellCandidate(
                item=Item.from_row(row),
                current_price=current,
                previous_price=row["previous_price"],
                wants_count=wants,
                price_change_percent=change,
                demand_score=demand_score(wants, current),
                sell_score=self.weights.score(wants, effective_change, current),
            ))

        candidates.sort(key=lambda c: (-c.sell_score, c.item.id))
        return candidates[:limit] if limit is not None else candidates

    # --- Collection value ---

    def collection_value(
        self, top: int = 10, format_filter: str | None = None
    ) -> CollectionValue:
        """Value statistics over every item's latest positive price."""
        items = self.store.all_items(format_filter)
        stats = CollectionValue(total_items=len(items))
        by_format: dict[str, FormatValue] = {}
        priced: list[tuple[Item, float]] = []

        for item in items:
            latest = self.store.latest_observation(item.id)
            if latest is None or latest.price <= 0:
                stats.unpriced_items += 1
                continue
            priced.append((item, latest.price))
            fmt = item.format or "Unknown"
            entry = by_format.setdefault(fmt, FormatValue(format=fmt))
            entry.count += 1
            entry.value += latest.price

        stats.priced_items = len(priced)
        if priced:
            prices = [p for _, p in priced]
            stats.total_value = sum(prices)
            stats.average_value = stats.total_value / len(prices)
            stats.median_value = median(prices)

        priced.sort(key=lambda pair: (-pair[1], pair[0].id))
        stats.most_valuable = priced[:top]
        stats.by_format = sorted(by_format.values(), key=lambda f: -f.value)
        return stats

    # --- History ---

    def history(self, release_id: int, days: float = 30) -> list[Observation]:
        return self.store.price_history(release_id, days)

    @staticmethod
    def history_change(history: list[Observation]) -> HistoryChange | None:
        """Change from the first to the last observation; None under two."""
        if len(history) < 2:
            return None
        first = history[0].price
        last = history[-1].price
        return HistoryChange(
            first_price=first,
            last_price=last,
            change=last - first,
            change_percent=percentage_change(last, first),
        )
