from __future__ import annotations

from fractions import Fraction
from typing import Dict, Mapping, Optional

from .entities import ExhaustionProjection, TargetUnit


def exhaustion_points(proportions: Mapping[str, Fraction],
                      remaining_counts: Mapping[str, int],
                      remaining_durations_ms: Mapping[str, int],
                      unit: TargetUnit) -> Dict[str, Fraction]:
    """Emission point at which each source runs dry.

    Assumes every source is drawn from strictly in proportion to its share of
    emitted items from the start. For the count unit a source with ``n`` items
    and proportion ``p`` lasts ``n / p`` emissions. For the duration unit its
    playtime share is ``p * avg / sum(p_j * avg_j)`` and it lasts
    ``remaining_ms / share`` milliseconds. Sources that contribute no
    playtime never run dry in duration terms and are left out.
    """
    points: Dict[str, Fraction] = {}
    if unit == TargetUnit.COUNT:
        for source_id, proportion in proportions.items():
            count = remaining_counts.get(source_id, 0)
            points[source_id] = Fraction(count) / proportion if count > 0 else Fraction(0)
        return points

    weighted: Dict[str, Fraction] = {}
    for source_id, proportion in proportions.items():
        count = remaining_counts.get(source_id, 0)
        if count > 0:
            weighted[source_id] = proportion * Fraction(remaining_durations_ms.get(source_id, 0), count)
    playtime_per_item = sum(weighted.values(), Fraction(0))

    for source_id in proportions:
        if remaining_counts.get(source_id, 0) <= 0:
            points[source_id] = Fraction(0)
            continue
        if weighted[source_id] == 0:
            continue
        share = weighted[source_id] / playtime_per_item
        points[source_id] = Fraction(remaining_durations_ms.get(source_id, 0)) / share
    return points


def project(proportions: Mapping[str, Fraction],
            remaining_counts: Mapping[str, int],
            remaining_durations_ms: Mapping[str, int],
            unit: TargetUnit) -> Optional[ExhaustionProjection]:
    """Find the limiting source: the one that runs dry first.

    Ties go to the source listed first. Returns None when no source can run dry.
    """
    points = exhaustion_points(proportions, remaining_counts, remaining_durations_ms, unit)
    if not points:
        return None
    limiting_id = None
    for source_id, point in points.items():
        if limiting_id is None or point < points[limiting_id]:
            limiting_id = source_id
    return ExhaustionProjection(
        limiting_source_id=limiting_id,
        projected=int(points[limiting_id]),
        unit=unit,
        per_source={source_id: int(point) for source_id, point in points.items()},
    )
