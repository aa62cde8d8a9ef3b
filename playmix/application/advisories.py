from __future__ import annotations

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import List, Mapping, Optional, Sequence

from playmix.application.planning import MixPlan, build_plan, validate_targets
from playmix.domain.entities import (
    ContentWarning,
    ExhaustionProjection,
    MixOptions,
    RatioEntry,
    RatioImbalanceWarning,
    SourcePool,
    TargetUnit,
    WeightMode,
)
from playmix.domain.errors import MissingTarget
from playmix.domain.weighting import (
    average_duration_ms,
    clean_pool,
    effective_duration_ms,
    normalize_weights,
    participating_ids,
)


# A projected bottleneck within the last 10% of the target is not worth a warning.
IMBALANCE_TOLERANCE = Fraction(9, 10)


@dataclass(frozen=True)
class RatioPreview:
    """How one source's weight translates into an example mix."""

    source_id: str
    name: str
    percentage: int
    display_text: str
    group_text: str


def project_exhaustion(pools: Sequence[SourcePool],
                       ratio_config: Mapping[str, RatioEntry],
                       options: MixOptions,
                       fallback_ms: Optional[int]) -> Optional[ExhaustionProjection]:
    """Predict which source becomes the bottleneck, if any.

    With ``use_all_sources`` the projection is always returned. With a target
    it is returned only when the limiting source runs dry before the target.
    """
    plan = build_plan(pools, ratio_config, options, fallback_ms)
    return _bottleneck(plan)


def _bottleneck(plan: MixPlan) -> Optional[ExhaustionProjection]:
    if plan.projection is None:
        return None
    target = plan.target_value
    if target is None:
        return plan.projection
    if plan.projection.projected < target:
        return plan.projection
    return None


def check_sufficient_content(pools: Sequence[SourcePool],
                             options: MixOptions,
                             fallback_ms: Optional[int],
                             ratio_config: Optional[Mapping[str, RatioEntry]] = None) -> Optional[ContentWarning]:
    """Warn when the requested length exceeds everything the enabled pools hold."""
    validate_targets(options)
    cleaned = [clean_pool(pool) for pool in pools]
    if ratio_config is not None:
        enabled = set(participating_ids(cleaned, ratio_config))
        cleaned = [pool for pool in cleaned if pool.id in enabled]

    if options.use_all_sources:
        return None
    if options.has_duration_target:
        available = 0
        for pool in cleaned:
            average = average_duration_ms(pool, fallback_ms)
            available += sum(effective_duration_ms(item, average) for item in pool.items)
        if options.target_duration_ms > available:
            return ContentWarning(TargetUnit.DURATION, options.target_duration_ms, available)
        return None
    if options.has_count_target:
        available = sum(len(pool) for pool in cleaned)
        if options.target_count > available:
            return ContentWarning(TargetUnit.COUNT, options.target_count, available)
        return None
    if len(cleaned) == 1:
        return None
    raise MissingTarget("use_all_sources is off and no positive target_count or target_duration_ms is set")


def check_ratio_imbalance(pools: Sequence[SourcePool],
                          ratio_config: Mapping[str, RatioEntry],
                          options: MixOptions,
                          fallback_ms: Optional[int]) -> Optional[RatioImbalanceWarning]:
    """Warn that the configured ratio cannot hold for the whole mix."""
    plan = build_plan(pools, ratio_config, options, fallback_ms)
    if len(plan.source_ids) < 2 or plan.projection is None:
        return None

    projection = plan.projection
    limiting = plan.pool(projection.limiting_source_id)
    will_stop_early = not plan.options.continue_on_source_exhaustion
    target = plan.target_value

    if target is None:
        return RatioImbalanceWarning(
            limiting_source_id=limiting.id,
            limiting_source_name=limiting.name,
            imbalanced_at=projection.projected,
            unit=projection.unit,
            will_stop_early=will_stop_early,
            use_all_sources=True,
        )
    if projection.projected < target * IMBALANCE_TOLERANCE:
        return RatioImbalanceWarning(
            limiting_source_id=limiting.id,
            limiting_source_name=limiting.name,
            imbalanced_at=projection.projected,
            unit=projection.unit,
            will_stop_early=will_stop_early,
        )
    return None


def _range_text(exact: Fraction) -> str:
    low = math.floor(exact)
    high = math.ceil(exact)
    return f"{low}" if low == high else f"{low}-{high}"


def _group_text(entry: RatioEntry) -> str:
    if entry.min_group == entry.max_group:
        return f"{entry.min_group} at a time"
    return f"{entry.min_group}-{entry.max_group} at a time"


def describe_ratios(pools: Sequence[SourcePool],
                    ratio_config: Mapping[str, RatioEntry],
                    fallback_ms: Optional[int],
                    basis: WeightMode = WeightMode.COUNT) -> List[RatioPreview]:
    """Example allocation per 100 items (count) or per 60 minutes (duration)."""
    cleaned = [clean_pool(pool) for pool in pools]
    source_ids = participating_ids(cleaned, ratio_config)
    if not source_ids:
        return []
    proportions = normalize_weights(cleaned, ratio_config, fallback_ms, source_ids)
    by_id = {pool.id: pool for pool in cleaned}
    averages = {s: average_duration_ms(by_id[s], fallback_ms) for s in source_ids}

    if basis == WeightMode.DURATION and all(averages[s] for s in source_ids):
        playtime = {s: proportions[s] * averages[s] for s in source_ids}
        total = sum(playtime.values(), Fraction(0))
        shares = {s: playtime[s] / total for s in source_ids}
    else:
        shares = dict(proportions)
        basis = WeightMode.COUNT

    previews = []
    for source_id in source_ids:
        share = shares[source_id]
        percentage = round(share * 100)
        if basis == WeightMode.DURATION:
            minutes = share * 60
            items = minutes / (averages[source_id] / 60000)
            display = f"~{_range_text(items)} items ({float(minutes):.1f} min, {percentage}%)"
        else:
            display = f"~{_range_text(share * 100)} items ({percentage}%)"
        previews.append(RatioPreview(
            source_id=source_id,
            name=by_id[source_id].name,
            percentage=percentage,
            display_text=display,
            group_text=_group_text(ratio_config[source_id]),
        ))
    return previews
