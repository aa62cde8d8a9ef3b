from __future__ import annotations

import logging
import random
import uuid
from typing import Dict, List, Mapping, Optional, Sequence

from playmix.application import advisories
from playmix.application.planning import MixPlan, build_plan
from playmix.application.sequencer import GroupSequencer, SequenceOutcome
from playmix.crosscutting.config import MixSettings
from playmix.crosscutting.logging import CorrelationContext, log_error, log_mix_complete, log_mix_start
from playmix.crosscutting.metrics import MetricsCollector
from playmix.domain.entities import (
    ContentWarning,
    ExhaustionProjection,
    MixOptions,
    MixResult,
    RatioEntry,
    RatioImbalanceWarning,
    SequencerState,
    SourcePool,
    SourceStats,
    WeightMode,
)
from playmix.domain.errors import ConfigError


logger = logging.getLogger(__name__)


def _source_stats(plan: MixPlan, outcome: SequenceOutcome) -> Dict[str, SourceStats]:
    """Per-source totals computed from the emitted sequence."""
    counts = {source_id: 0 for source_id in plan.source_ids}
    durations = {source_id: 0 for source_id in plan.source_ids}
    for mixed in outcome.items:
        counts[mixed.source_id] += 1
        durations[mixed.source_id] += mixed.duration_ms
    return {
        source_id: SourceStats(count=counts[source_id], total_duration_ms=durations[source_id])
        for source_id in plan.source_ids
    }


class MixEngine:
    """Entry point for mixing and for the pre-flight advisories.

    Holds only immutable settings, so one engine can serve concurrent calls.
    """

    def __init__(self, settings: Optional[MixSettings] = None):
        self.settings = settings or MixSettings()

    @property
    def fallback_ms(self) -> Optional[int]:
        return self.settings.fallback_average_duration_ms

    def mix(self,
            pools: Sequence[SourcePool],
            ratio_config: Mapping[str, RatioEntry],
            options: MixOptions,
            seed: Optional[int] = None,
            metrics: Optional[MetricsCollector] = None,
            mix_id: Optional[str] = None) -> MixResult:
        """Blend the pools into one sequence.

        Raises a ConfigError subclass, before emitting anything, when the
        configuration is invalid. Running out of items is not an error: it is
        reported through ``MixResult.state`` and ``MixResult.incomplete``.
        """
        mix_id = mix_id or f"mix_{uuid.uuid4().hex[:12]}"
        effective_seed = self.settings.default_seed if seed is None else seed

        with CorrelationContext(mix_id=mix_id, stage='plan'):
            try:
                plan = build_plan(pools, ratio_config, options, self.fallback_ms)
            except ConfigError as e:
                log_error(logger, 'Mix configuration rejected', e)
                raise

        log_mix_start(logger, mix_id, len(plan.source_ids), plan.options.shape_strategy.value,
                      seed=effective_seed, unit=plan.unit.value, target=plan.target_value)

        if metrics is None:
            metrics = MetricsCollector(mix_id, plan.options.shape_strategy.value)
        metrics.set_target_shares({s: float(p) for s, p in plan.proportions.items()})

        with CorrelationContext(mix_id=mix_id, stage='sequence'):
            sequencer = GroupSequencer(
                pools=plan.pools,
                ratio_config=ratio_config,
                proportions=plan.proportions,
                averages=plan.averages,
                options=plan.options,
                rng=random.Random(effective_seed),
                metrics=metrics,
                projection=plan.projection,
            )
            metrics.start_mix()
            outcome = sequencer.run()
            metrics.end_mix()

        per_source = _source_stats(plan, outcome)
        total_duration = sum(stats.total_duration_ms for stats in per_source.values())
        finished = (outcome.state == SequencerState.STOPPED_COMPLETE
                    or (plan.options.use_all_sources
                        and outcome.state == SequencerState.STOPPED_ALL_EXHAUSTED))

        result = MixResult(
            items=outcome.items,
            per_source=per_source,
            total_duration_ms=total_duration,
            state=outcome.state,
            incomplete=not finished,
            limiting_source_id=outcome.first_exhausted,
            projection=plan.projection,
            seed=effective_seed,
        )
        log_mix_complete(logger, mix_id, len(result.items), total_duration, outcome.state.value,
                         incomplete=result.incomplete, limiting_source_id=result.limiting_source_id)
        return result

    def project_exhaustion(self, pools: Sequence[SourcePool],
                           ratio_config: Mapping[str, RatioEntry],
                           options: MixOptions) -> Optional[ExhaustionProjection]:
        return advisories.project_exhaustion(pools, ratio_config, options, self.fallback_ms)

    def check_sufficient_content(self, pools: Sequence[SourcePool],
                                 options: MixOptions,
                                 ratio_config: Optional[Mapping[str, RatioEntry]] = None) -> Optional[ContentWarning]:
        return advisories.check_sufficient_content(pools, options, self.fallback_ms, ratio_config)

    def check_ratio_imbalance(self, pools: Sequence[SourcePool],
                              ratio_config: Mapping[str, RatioEntry],
                              options: MixOptions) -> Optional[RatioImbalanceWarning]:
        return advisories.check_ratio_imbalance(pools, ratio_config, options, self.fallback_ms)

    def describe_ratios(self, pools: Sequence[SourcePool],
                        ratio_config: Mapping[str, RatioEntry],
                        basis: WeightMode = WeightMode.COUNT) -> List[advisories.RatioPreview]:
        return advisories.describe_ratios(pools, ratio_config, self.fallback_ms, basis)


_default_engine = MixEngine()


def mix(pools: Sequence[SourcePool],
        ratio_config: Mapping[str, RatioEntry],
        options: MixOptions,
        seed: Optional[int] = None,
        settings: Optional[MixSettings] = None) -> MixResult:
    """Mix with the given settings, or the defaults."""
    engine = MixEngine(settings) if settings is not None else _default_engine
    return engine.mix(pools, ratio_config, options, seed)


def project_exhaustion(pools: Sequence[SourcePool],
                       ratio_config: Mapping[str, RatioEntry],
                       options: MixOptions) -> Optional[ExhaustionProjection]:
    return _default_engine.project_exhaustion(pools, ratio_config, options)


def check_sufficient_content(pools: Sequence[SourcePool],
                             options: MixOptions,
                             ratio_config: Optional[Mapping[str, RatioEntry]] = None) -> Optional[ContentWarning]:
    return _default_engine.check_sufficient_content(pools, options, ratio_config)
