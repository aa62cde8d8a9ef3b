from __future__ import annotations

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Deque, Dict, List, Mapping, Optional, Sequence, Tuple

from playmix.crosscutting.logging import CorrelationContext, log_with_fields
from playmix.crosscutting.metrics import MetricsCollector
from playmix.domain.entities import (
    ExhaustionProjection,
    Item,
    MixedItem,
    MixOptions,
    Quadrant,
    RatioEntry,
    SequencerState,
    SourcePool,
    TargetUnit,
)
from playmix.domain.quadrants import QUADRANT_ORDER, classify
from playmix.domain.shapes import clamp_progress, preference_order
from playmix.domain.weighting import effective_duration_ms


logger = logging.getLogger(__name__)


@dataclass
class SourceCursor:
    """Per-source bookkeeping for one run. Never touches the caller's pool."""

    source_id: str
    entry: RatioEntry
    proportion: Fraction
    average_ms: Optional[Fraction]
    buckets: Dict[Optional[Quadrant], Deque[Tuple[Item, Optional[Quadrant]]]]
    remaining: int
    credit: Fraction = Fraction(0)
    exhausted: bool = False

    def take(self, quadrant: Optional[Quadrant]) -> Optional[Tuple[Item, Optional[Quadrant]]]:
        bucket = self.buckets.get(quadrant)
        if not bucket:
            return None
        self.remaining -= 1
        return bucket.popleft()


@dataclass
class SequenceOutcome:
    items: Tuple[MixedItem, ...]
    state: SequencerState
    exhausted_order: List[str] = field(default_factory=list)

    @property
    def first_exhausted(self) -> Optional[str]:
        return self.exhausted_order[0] if self.exhausted_order else None


class GroupSequencer:
    """Weighted round-robin over sources, emitting one group per turn.

    Each turn the source with the highest credit among those with items left
    wins and emits ``randint(min_group, max_group)`` items, clamped to what it
    has left. Credits are kept as exact fractions measured in items: after a
    group of ``g`` items every active source gains ``g * proportion`` and the
    winner pays ``g``, so for single-item groups this is the classic
    "add proportion, subtract one" apportionment.
    """

    def __init__(self,
                 pools: Sequence[SourcePool],
                 ratio_config: Mapping[str, RatioEntry],
                 proportions: Mapping[str, Fraction],
                 averages: Mapping[str, Optional[Fraction]],
                 options: MixOptions,
                 rng: random.Random,
                 metrics: Optional[MetricsCollector] = None,
                 projection: Optional[ExhaustionProjection] = None):
        self.options = options
        self.rng = rng
        self.metrics = metrics
        self.projection = projection
        by_id = {pool.id: pool for pool in pools}

        self.cursors: List[SourceCursor] = []
        for source_id, proportion in proportions.items():
            self.cursors.append(self._build_cursor(
                by_id[source_id], ratio_config[source_id], proportion, averages.get(source_id)
            ))

        self._emitted: List[MixedItem] = []
        self._emitted_duration_ms = 0
        self._group_index = 0
        self._progress_total = self._progress_denominator()

    def _build_cursor(self, pool: SourcePool, entry: RatioEntry,
                      proportion: Fraction, average_ms: Optional[Fraction]) -> SourceCursor:
        quadrant_map = classify(pool, self.options.recency_boost, self.options.reference_date)
        buckets: Dict[Optional[Quadrant], Deque[Tuple[Item, Optional[Quadrant]]]] = {}
        for quadrant in list(QUADRANT_ORDER) + [None]:
            members = [(item, quadrant) for item in quadrant_map.members(quadrant)]
            if self.options.shuffle_within_groups:
                self.rng.shuffle(members)
            buckets[quadrant] = deque(members)
        return SourceCursor(
            source_id=pool.id,
            entry=entry,
            proportion=proportion,
            average_ms=average_ms,
            buckets=buckets,
            remaining=len(pool.items),
            exhausted=len(pool.items) == 0,
        )

    def _progress_denominator(self) -> int:
        if self.options.has_duration_target:
            return self.options.target_duration_ms
        if self.options.has_count_target:
            return self.options.target_count
        return sum(cursor.remaining for cursor in self.cursors)

    def _progress(self) -> float:
        if self._progress_total <= 0:
            return 0.0
        done = (self._emitted_duration_ms if self.options.target_unit == TargetUnit.DURATION
                and self.options.has_duration_target else len(self._emitted))
        return clamp_progress(done / self._progress_total)

    def _target_reached(self) -> bool:
        if self.options.use_all_sources:
            return False
        if self.options.has_duration_target:
            return self._emitted_duration_ms >= self.options.target_duration_ms
        if self.options.has_count_target:
            return len(self._emitted) >= self.options.target_count
        return False

    def _select(self, active: List[SourceCursor]) -> SourceCursor:
        best = active[0]
        for cursor in active[1:]:
            if cursor.credit > best.credit:
                best = cursor
        return best

    def _draw(self, cursor: SourceCursor) -> Tuple[Item, Optional[Quadrant]]:
        order = preference_order(self.options.shape_strategy, self._progress(), self.rng)
        for quadrant in order:
            picked = cursor.take(quadrant)
            if picked is not None:
                return picked
        picked = cursor.take(None)
        if picked is None:
            raise RuntimeError(f"Source {cursor.source_id} has no items left to draw")
        return picked

    def _emit_group(self, cursor: SourceCursor) -> Tuple[int, int]:
        requested = self.rng.randint(cursor.entry.min_group, cursor.entry.max_group)
        length = min(requested, cursor.remaining)
        emitted = 0
        for _ in range(length):
            if self._target_reached():
                break
            item, quadrant = self._draw(cursor)
            duration = effective_duration_ms(item, cursor.average_ms)
            self._emitted.append(MixedItem(
                index=len(self._emitted),
                item=item,
                source_id=cursor.source_id,
                duration_ms=duration,
                quadrant=quadrant,
                group_index=self._group_index,
            ))
            self._emitted_duration_ms += duration
            emitted += 1
        return requested, emitted

    def _settle_credits(self, winner: SourceCursor, emitted: int,
                        active: List[SourceCursor]) -> None:
        active_total = sum((cursor.proportion for cursor in active), Fraction(0))
        for cursor in active:
            cursor.credit += cursor.proportion / active_total * emitted
        winner.credit -= emitted

    def _on_exhausted(self, cursor: SourceCursor, exhausted_order: List[str]) -> None:
        cursor.exhausted = True
        exhausted_order.append(cursor.source_id)
        if self.metrics:
            self.metrics.record_exhausted(cursor.source_id)
        projected = None
        if self.projection is not None:
            projected = self.projection.per_source.get(cursor.source_id)
        actual = (self._emitted_duration_ms if self.options.target_unit == TargetUnit.DURATION
                  else len(self._emitted))
        with CorrelationContext(source_id=cursor.source_id, stage='exhausted'):
            log_with_fields(logger, 'INFO', 'Source exhausted', {
                'emitted': len(self._emitted),
                'actual_point': actual,
                'projected_point': projected,
            })

    def run(self) -> SequenceOutcome:
        exhausted_order: List[str] = []
        state = SequencerState.RUNNING
        stop_on_exhaustion = not (self.options.use_all_sources
                                  or self.options.continue_on_source_exhaustion)

        while state == SequencerState.RUNNING:
            if self._target_reached():
                state = SequencerState.STOPPED_COMPLETE
                break

            active = [cursor for cursor in self.cursors if not cursor.exhausted]
            if not active:
                state = (SequencerState.STOPPED_ALL_EXHAUSTED if self.options.use_all_sources
                         else SequencerState.STOPPED_EXHAUSTED)
                break

            if self.metrics:
                self.metrics.record_turn()
            cursor = self._select(active)
            start_index = len(self._emitted)
            requested, emitted = self._emit_group(cursor)
            self._settle_credits(cursor, emitted, active)
            if self.metrics:
                self.metrics.record_group(cursor.source_id, requested, emitted, start_index)
            logger.debug(f"Group {self._group_index}: {emitted} item(s) from {cursor.source_id}")
            self._group_index += 1

            if cursor.remaining == 0 and not self._target_reached():
                self._on_exhausted(cursor, exhausted_order)
                if stop_on_exhaustion:
                    state = SequencerState.STOPPED_EXHAUSTED

        return SequenceOutcome(
            items=tuple(self._emitted),
            state=state,
            exhausted_order=exhausted_order,
        )
