from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from .entities import Item, Quadrant, SourcePool


QUADRANT_ORDER = (
    Quadrant.TOP_HITS,
    Quadrant.POPULAR,
    Quadrant.MODERATE,
    Quadrant.DEEP_CUTS,
)

RECENCY_WINDOW_DAYS = 730
MAX_RECENCY_BONUS = 20.0


def recency_bonus(release_date: date, reference_date: date) -> float:
    """Up to +20 points for items released within the last two years."""
    days = (reference_date - release_date).days
    if days < 0:
        days = 0
    if days >= RECENCY_WINDOW_DAYS:
        return 0.0
    return MAX_RECENCY_BONUS * (1 - days / RECENCY_WINDOW_DAYS)


def adjusted_popularity(item: Item, recency_boost: bool = False,
                        reference_date: Optional[date] = None) -> Optional[float]:
    if item.popularity is None:
        return None
    score = float(item.popularity)
    if recency_boost and item.release_date is not None:
        reference = reference_date or date.today()
        score = min(100.0, score + recency_bonus(item.release_date, reference))
    return score


class QuadrantMap:
    """Quadrant assignment for the items of one source."""

    def __init__(self, source_id: str, assignments: Dict[str, Optional[Quadrant]],
                 ordered_items: List[Item]):
        self.source_id = source_id
        self._assignments = assignments
        self._items = ordered_items

    def quadrant_of(self, item: Item) -> Optional[Quadrant]:
        return self._assignments.get(item.id)

    def members(self, quadrant: Optional[Quadrant]) -> List[Item]:
        """Items of a quadrant (None = unscored) in catalog order."""
        return [item for item in self._items if self._assignments.get(item.id) == quadrant]

    def counts(self) -> Dict[Optional[Quadrant], int]:
        result: Dict[Optional[Quadrant], int] = {q: 0 for q in QUADRANT_ORDER}
        result[None] = 0
        for quadrant in self._assignments.values():
            result[quadrant] += 1
        return result

    def as_dict(self) -> Dict[str, Optional[Quadrant]]:
        return dict(self._assignments)


def classify(pool: SourcePool, recency_boost: bool = False,
             reference_date: Optional[date] = None) -> QuadrantMap:
    """Rank a pool's scored items into four contiguous popularity bands.

    Bands hold ``n // 4`` items each, most popular first; the remainder goes
    to deep cuts. Python's sort is stable, so equal scores keep catalog order.
    Unscored items map to None.
    """
    scored = []
    assignments: Dict[str, Optional[Quadrant]] = {}
    for item in pool.items:
        score = adjusted_popularity(item, recency_boost, reference_date)
        if score is None:
            assignments[item.id] = None
        else:
            scored.append((score, item))

    ranked = sorted(scored, key=lambda pair: -pair[0])
    band = len(ranked) // 4
    for rank, (_, item) in enumerate(ranked):
        position = rank // band if band else len(QUADRANT_ORDER) - 1
        assignments[item.id] = QUADRANT_ORDER[min(position, len(QUADRANT_ORDER) - 1)]

    return QuadrantMap(pool.id, assignments, list(pool.items))
