from __future__ import annotations

import random
from typing import Dict, List

from .entities import Quadrant, ShapeStrategy
from .quadrants import QUADRANT_ORDER


# Position of each band on a 0 (most popular) .. 1 (least popular) scale.
_BAND_POSITION = {
    Quadrant.TOP_HITS: 0.0,
    Quadrant.POPULAR: 1 / 3,
    Quadrant.MODERATE: 2 / 3,
    Quadrant.DEEP_CUTS: 1.0,
}


def clamp_progress(progress: float) -> float:
    if progress < 0:
        return 0.0
    if progress > 1:
        return 1.0
    return float(progress)


def _wanted_position(strategy: ShapeStrategy, progress: float) -> float:
    if strategy == ShapeStrategy.FRONT_LOADED:
        return progress
    if strategy == ShapeStrategy.CRESCENDO:
        return 1.0 - progress
    if strategy == ShapeStrategy.MID_PEAK:
        return abs(2.0 * progress - 1.0)
    raise ValueError(f"No positional curve for strategy {strategy!r}")


def preference_weights(strategy: ShapeStrategy, progress: float) -> Dict[Quadrant, float]:
    """Preference in [0, 1] for each quadrant at the given output progress.

    front-loaded: top hits score 1.0 at the start and 0.0 at the end while deep
    cuts do the opposite. crescendo mirrors it. mid-peak is triangular with top
    hits peaking at progress 0.5. mixed has no positional bias.
    """
    if strategy == ShapeStrategy.MIXED:
        return {quadrant: 1.0 for quadrant in QUADRANT_ORDER}
    wanted = _wanted_position(strategy, clamp_progress(progress))
    return {
        quadrant: 1.0 - abs(_BAND_POSITION[quadrant] - wanted)
        for quadrant in QUADRANT_ORDER
    }


def preference_order(strategy: ShapeStrategy, progress: float,
                     rng: random.Random) -> List[Quadrant]:
    """Quadrants to try, best first. Unscored items are tried after all of these.

    For mixed the order is a seeded random permutation, so taking the first
    non-empty quadrant is a uniform draw among the non-empty ones.
    """
    if strategy == ShapeStrategy.MIXED:
        order = list(QUADRANT_ORDER)
        rng.shuffle(order)
        return order
    weights = preference_weights(strategy, progress)
    # Ties go to the more popular band.
    return sorted(QUADRANT_ORDER, key=lambda quadrant: -weights[quadrant])
