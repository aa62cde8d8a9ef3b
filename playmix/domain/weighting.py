from __future__ import annotations

from fractions import Fraction
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .entities import (
    MAX_GROUP_SIZE,
    MAX_WEIGHT,
    MIN_GROUP_SIZE,
    Item,
    RatioEntry,
    SourcePool,
    WeightMode,
)
from .errors import InsufficientSources, InvalidRatioEntry


DEFAULT_AVERAGE_DURATION_MS = 210_000


def clean_pool(pool: SourcePool) -> SourcePool:
    """Drop items without an id and repeated ids, keeping catalog order."""
    seen = set()
    kept: List[Item] = []
    for item in pool.items:
        if not item.id or item.id in seen:
            continue
        seen.add(item.id)
        kept.append(item)
    if len(kept) == len(pool.items):
        return pool
    return SourcePool(
        id=pool.id,
        name=pool.name,
        items=tuple(kept),
        average_duration_ms=pool.average_duration_ms,
    )


def average_duration_ms(pool: SourcePool,
                        fallback_ms: Optional[int] = DEFAULT_AVERAGE_DURATION_MS) -> Optional[Fraction]:
    """Average item duration of a pool.

    Known per-item durations win, then the pool's own known average, then the
    configured fallback. Returns None when nothing is derivable.
    """
    known = [item.duration_ms for item in pool.items if item.duration_ms is not None]
    if known and sum(known) > 0:
        return Fraction(sum(known), len(known))
    if pool.average_duration_ms:
        return Fraction(pool.average_duration_ms)
    if fallback_ms:
        return Fraction(fallback_ms)
    return None


def effective_duration_ms(item: Item, average_ms: Optional[Fraction]) -> int:
    """Item duration, estimated from the pool average when unknown."""
    if item.duration_ms is not None:
        return max(0, item.duration_ms)
    if average_ms is None:
        return 0
    return int(average_ms)


def validate_ratio_entry(source_id: str, entry: RatioEntry) -> None:
    if entry.min_group < MIN_GROUP_SIZE:
        raise InvalidRatioEntry(source_id, f"min_group must be >= {MIN_GROUP_SIZE}")
    if entry.max_group > MAX_GROUP_SIZE:
        raise InvalidRatioEntry(source_id, f"max_group must be <= {MAX_GROUP_SIZE}")
    if entry.min_group > entry.max_group:
        raise InvalidRatioEntry(
            source_id, f"min_group {entry.min_group} > max_group {entry.max_group}"
        )
    if entry.enabled and entry.weight < 0:
        raise InvalidRatioEntry(source_id, "weight must not be negative")
    if entry.weight > MAX_WEIGHT:
        raise InvalidRatioEntry(source_id, f"weight must be <= {MAX_WEIGHT}")


def participating_ids(pools: Sequence[SourcePool],
                      ratio_config: Mapping[str, RatioEntry]) -> List[str]:
    """Ids of pools that are enabled with a positive weight, in input order."""
    ids = []
    for pool in pools:
        entry = ratio_config.get(pool.id)
        if entry is None:
            continue
        validate_ratio_entry(pool.id, entry)
        if entry.participates:
            ids.append(pool.id)
    return ids


def normalize_weights(pools: Sequence[SourcePool],
                      ratio_config: Mapping[str, RatioEntry],
                      fallback_ms: Optional[int] = DEFAULT_AVERAGE_DURATION_MS,
                      source_ids: Optional[Iterable[str]] = None) -> Dict[str, Fraction]:
    """Turn raw weights into proportions of emitted items that sum to 1.

    Duration-mode weights are scaled by ``target_average / source_average``
    so that equal weights give equal playtime rather than equal item counts.
    The target average is the mean of the participating sources' averages.
    """
    by_id = {pool.id: pool for pool in pools}
    ids = list(source_ids) if source_ids is not None else participating_ids(pools, ratio_config)
    if not ids:
        raise InsufficientSources("no enabled source with a positive weight")

    averages: Dict[str, Optional[Fraction]] = {
        source_id: average_duration_ms(by_id[source_id], fallback_ms) for source_id in ids
    }
    needs_duration = [
        source_id for source_id in ids
        if ratio_config[source_id].weight_mode == WeightMode.DURATION
    ]
    for source_id in needs_duration:
        if averages[source_id] is None:
            raise InvalidRatioEntry(
                source_id, "duration weighting needs an average duration and no fallback is configured"
            )

    known_averages = [avg for avg in averages.values() if avg is not None]
    target_average = (
        sum(known_averages, Fraction(0)) / len(known_averages) if known_averages else None
    )

    effective: Dict[str, Fraction] = {}
    for source_id in ids:
        entry = ratio_config[source_id]
        weight = Fraction(entry.weight)
        if entry.weight_mode == WeightMode.DURATION:
            weight = weight * target_average / averages[source_id]
        effective[source_id] = weight

    total = sum(effective.values(), Fraction(0))
    return {source_id: weight / total for source_id, weight in effective.items()}
