from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple


MIN_GROUP_SIZE = 1
MAX_GROUP_SIZE = 8
MAX_WEIGHT = 10


class WeightMode(str, Enum):
    """How a source's weight is interpreted."""

    COUNT = "count"
    DURATION = "duration"


class ShapeStrategy(str, Enum):
    """Where high and low ranked items land in the output."""

    MIXED = "mixed"
    FRONT_LOADED = "front-loaded"
    MID_PEAK = "mid-peak"
    CRESCENDO = "crescendo"


class Quadrant(str, Enum):
    """Popularity percentile band within one source, most popular first."""

    TOP_HITS = "topHits"
    POPULAR = "popular"
    MODERATE = "moderate"
    DEEP_CUTS = "deepCuts"


class TargetUnit(str, Enum):
    COUNT = "count"
    DURATION = "duration"


class SequencerState(str, Enum):
    RUNNING = "running"
    STOPPED_COMPLETE = "stopped_complete"
    STOPPED_EXHAUSTED = "stopped_exhausted"
    STOPPED_ALL_EXHAUSTED = "stopped_all_exhausted"


@dataclass(frozen=True)
class Item:
    """A playable unit owned by one source pool."""

    id: str
    source_id: str = ""
    duration_ms: Optional[int] = None
    popularity: Optional[int] = None
    title: str = ""
    artists: List[str] = None
    release_date: Optional[date] = None

    def __post_init__(self):
        if self.artists is None:
            object.__setattr__(self, 'artists', [])


@dataclass(frozen=True)
class SourcePool:
    """One input playlist: items in catalog order."""

    id: str
    name: str = ""
    items: Tuple[Item, ...] = ()
    average_duration_ms: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'items', tuple(self.items))

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class RatioEntry:
    """Per-source mixing configuration."""

    min_group: int = 1
    max_group: int = 1
    weight: int = 1
    weight_mode: WeightMode = WeightMode.COUNT
    enabled: bool = True

    @property
    def participates(self) -> bool:
        return self.enabled and self.weight > 0


@dataclass(frozen=True)
class MixOptions:
    """Target and ordering options for one mix.

    Exactly one of ``use_all_sources``, ``target_count`` or
    ``target_duration_ms`` selects the stopping rule.
    """

    use_all_sources: bool = False
    target_count: Optional[int] = None
    target_duration_ms: Optional[int] = None
    shape_strategy: ShapeStrategy = ShapeStrategy.MIXED
    shuffle_within_groups: bool = False
    continue_on_source_exhaustion: bool = False
    recency_boost: bool = False
    reference_date: Optional[date] = None

    @property
    def has_count_target(self) -> bool:
        return self.target_count is not None and self.target_count > 0

    @property
    def has_duration_target(self) -> bool:
        return self.target_duration_ms is not None and self.target_duration_ms > 0

    @property
    def target_unit(self) -> TargetUnit:
        if self.has_duration_target:
            return TargetUnit.DURATION
        return TargetUnit.COUNT


@dataclass(frozen=True)
class MixedItem:
    """An item as placed in the output sequence."""

    index: int
    item: Item
    source_id: str
    duration_ms: int
    quadrant: Optional[Quadrant] = None
    group_index: int = 0


@dataclass(frozen=True)
class SourceStats:
    count: int = 0
    total_duration_ms: int = 0


@dataclass(frozen=True)
class ExhaustionProjection:
    """Advisory: where each source runs dry under proportional consumption."""

    limiting_source_id: str
    projected: int
    unit: TargetUnit
    per_source: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ContentWarning:
    """Requested length exceeds what the enabled pools hold."""

    type: TargetUnit
    requested: int
    available: int


@dataclass(frozen=True)
class RatioImbalanceWarning:
    limiting_source_id: str
    limiting_source_name: str
    imbalanced_at: Optional[int]
    unit: TargetUnit
    will_stop_early: bool
    use_all_sources: bool = False


@dataclass(frozen=True)
class MixResult:
    """Immutable outcome of one mix call."""

    items: Tuple[MixedItem, ...]
    per_source: Dict[str, SourceStats]
    total_duration_ms: int
    state: SequencerState
    incomplete: bool
    limiting_source_id: Optional[str] = None
    projection: Optional[ExhaustionProjection] = None
    seed: int = 0

    def __len__(self) -> int:
        return len(self.items)
