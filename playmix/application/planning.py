from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, List, Mapping, Optional, Sequence

from playmix.domain.entities import (
    ExhaustionProjection,
    MixOptions,
    RatioEntry,
    SourcePool,
    TargetUnit,
    WeightMode,
)
from playmix.domain.errors import ConflictingTargets, InsufficientSources, InvalidTarget, MissingTarget
from playmix.domain.projection import project
from playmix.domain.weighting import (
    average_duration_ms,
    clean_pool,
    effective_duration_ms,
    normalize_weights,
    participating_ids,
)


@dataclass(frozen=True)
class MixPlan:
    """Everything derived from the inputs before the first item is emitted.

    ``mix`` and the pre-flight advisories both build their answers from a plan,
    so a warning can never disagree with what generation would do.
    """

    pools: List[SourcePool]
    options: MixOptions
    source_ids: List[str]
    proportions: Dict[str, Fraction]
    averages: Dict[str, Optional[Fraction]]
    remaining_counts: Dict[str, int]
    remaining_durations_ms: Dict[str, int]
    unit: TargetUnit
    projection: Optional[ExhaustionProjection]

    def pool(self, source_id: str) -> SourcePool:
        for pool in self.pools:
            if pool.id == source_id:
                return pool
        raise KeyError(source_id)

    @property
    def target_value(self) -> Optional[int]:
        if self.options.use_all_sources:
            return None
        if self.options.has_duration_target:
            return self.options.target_duration_ms
        return self.options.target_count


def validate_targets(options: MixOptions) -> None:
    """Reject non-positive or conflicting target fields. Missing targets are checked later."""
    for name, value in (('target_count', options.target_count),
                        ('target_duration_ms', options.target_duration_ms)):
        if value is not None and value <= 0:
            raise InvalidTarget(f"{name} must be a positive integer, got {value}")
    has_count = options.has_count_target
    has_duration = options.has_duration_target
    if has_count and has_duration:
        raise ConflictingTargets("set either target_count or target_duration_ms, not both")
    if options.use_all_sources and (has_count or has_duration):
        raise ConflictingTargets("use_all_sources cannot be combined with a target")


def resolve_options(options: MixOptions, enabled_count: int) -> MixOptions:
    """Apply the target rules for the number of enabled sources.

    A single enabled source without a target is consumed to exhaustion;
    more than one needs an explicit target or ``use_all_sources``.
    """
    validate_targets(options)
    if options.use_all_sources:
        return options
    if options.has_count_target or options.has_duration_target:
        return options
    if enabled_count == 1:
        return dataclasses.replace(options, use_all_sources=True,
                                   target_count=None, target_duration_ms=None)
    raise MissingTarget("use_all_sources is off and no positive target_count or target_duration_ms is set")


def projection_unit(options: MixOptions, ratio_config: Mapping[str, RatioEntry],
                    source_ids: Sequence[str]) -> TargetUnit:
    if options.has_duration_target:
        return TargetUnit.DURATION
    if options.has_count_target:
        return TargetUnit.COUNT
    if any(ratio_config[s].weight_mode == WeightMode.DURATION for s in source_ids):
        return TargetUnit.DURATION
    return TargetUnit.COUNT


def build_plan(pools: Sequence[SourcePool],
               ratio_config: Mapping[str, RatioEntry],
               options: MixOptions,
               fallback_ms: Optional[int]) -> MixPlan:
    """Validate inputs and compute proportions and the exhaustion projection.

    Raises a ConfigError subclass on any invalid configuration.
    """
    validate_targets(options)
    cleaned = [clean_pool(pool) for pool in pools]
    source_ids = participating_ids(cleaned, ratio_config)
    by_id = {pool.id: pool for pool in cleaned}
    if not any(len(by_id[source_id]) > 0 for source_id in source_ids):
        raise InsufficientSources("need at least one enabled, non-empty source")

    resolved = resolve_options(options, len(source_ids))
    proportions = normalize_weights(cleaned, ratio_config, fallback_ms, source_ids)

    averages: Dict[str, Optional[Fraction]] = {}
    remaining_counts: Dict[str, int] = {}
    remaining_durations: Dict[str, int] = {}
    for source_id in source_ids:
        pool = by_id[source_id]
        average = average_duration_ms(pool, fallback_ms)
        averages[source_id] = average
        remaining_counts[source_id] = len(pool)
        remaining_durations[source_id] = sum(effective_duration_ms(item, average) for item in pool.items)

    unit = projection_unit(resolved, ratio_config, source_ids)
    projection = project(proportions, remaining_counts, remaining_durations, unit)

    return MixPlan(
        pools=cleaned,
        options=resolved,
        source_ids=source_ids,
        proportions=proportions,
        averages=averages,
        remaining_counts=remaining_counts,
        remaining_durations_ms=remaining_durations,
        unit=unit,
        projection=projection,
    )
