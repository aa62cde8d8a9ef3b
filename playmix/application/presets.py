from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence, Tuple

from playmix.domain.entities import MixOptions, RatioEntry, ShapeStrategy, SourcePool, WeightMode
from playmix.domain.errors import UnknownPreset


MINUTE_MS = 60 * 1000


@dataclass(frozen=True)
class PresetTemplate:
    """A named mix recipe applied to whatever pools the user selected."""

    id: str
    name: str
    description: str
    strategy: ShapeStrategy
    ratio_for: Callable[[SourcePool], RatioEntry]
    target_minutes: int
    shuffle_within_groups: bool = True
    recency_boost: bool = True

    def options(self) -> MixOptions:
        return MixOptions(
            target_duration_ms=self.target_minutes * MINUTE_MS,
            shape_strategy=self.strategy,
            shuffle_within_groups=self.shuffle_within_groups,
            recency_boost=self.recency_boost,
        )


def _dance_ratio(pool: SourcePool) -> RatioEntry:
    name = pool.name.lower()
    if 'bachata' in name:
        return RatioEntry(min_group=2, max_group=2, weight=6, weight_mode=WeightMode.DURATION)
    if 'salsa' in name:
        return RatioEntry(min_group=1, max_group=2, weight=4, weight_mode=WeightMode.DURATION)
    return RatioEntry(min_group=1, max_group=2, weight=5, weight_mode=WeightMode.DURATION)


PRESETS: Dict[str, PresetTemplate] = {
    preset.id: preset for preset in (
        PresetTemplate(
            id='party',
            name='Party',
            description='Bachata/salsa dance flow that peaks mid-set',
            strategy=ShapeStrategy.MID_PEAK,
            ratio_for=_dance_ratio,
            target_minutes=300,
        ),
        PresetTemplate(
            id='workout',
            name='Workout Mix',
            description='Hits first, long runs per source',
            strategy=ShapeStrategy.FRONT_LOADED,
            ratio_for=lambda pool: RatioEntry(min_group=3, max_group=5, weight=3),
            target_minutes=60,
        ),
        PresetTemplate(
            id='road-trip',
            name='Road Trip',
            description='Builds from deep cuts to a sing-along finale',
            strategy=ShapeStrategy.CRESCENDO,
            ratio_for=lambda pool: RatioEntry(min_group=2, max_group=3, weight=2),
            target_minutes=180,
        ),
    )
}


def list_presets() -> List[PresetTemplate]:
    return list(PRESETS.values())


def get_preset(preset_id: str) -> PresetTemplate:
    try:
        return PRESETS[preset_id]
    except KeyError:
        raise UnknownPreset(f"unknown preset {preset_id!r}; choose from {', '.join(PRESETS)}")


def apply_preset(preset_id: str,
                 pools: Sequence[SourcePool]) -> Tuple[Dict[str, RatioEntry], MixOptions]:
    """Ratio config for every pool plus the preset's options."""
    preset = get_preset(preset_id)
    ratio_config = {pool.id: preset.ratio_for(pool) for pool in pools}
    return ratio_config, preset.options()
