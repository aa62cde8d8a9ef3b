import json
import time
from datetime import datetime
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, asdict
import threading


@dataclass
class GroupMetrics:
    """One contiguous run emitted from a single source."""
    group_index: int
    source_id: str
    requested_length: int
    emitted_length: int
    start_index: int

    @property
    def truncated(self) -> bool:
        return self.emitted_length < self.requested_length


@dataclass
class MixMetrics:
    """Aggregated metrics for one mix call."""
    mix_id: str
    strategy: str
    total_turns: int = 0
    total_items: int = 0
    total_groups: int = 0
    truncated_groups: int = 0
    duration_ms: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    target_shares: Dict[str, float] = field(default_factory=dict)
    item_counts: Dict[str, int] = field(default_factory=dict)
    exhausted_sources: List[str] = field(default_factory=list)
    groups: List[GroupMetrics] = field(default_factory=list)

    @property
    def actual_shares(self) -> Dict[str, float]:
        """Share of emitted items per source."""
        if self.total_items == 0:
            return {source_id: 0.0 for source_id in self.target_shares}
        return {
            source_id: self.item_counts.get(source_id, 0) / self.total_items
            for source_id in self.target_shares
        }

    @property
    def max_share_deviation(self) -> float:
        """Largest absolute gap between target and actual item share."""
        actual = self.actual_shares
        if not actual:
            return 0.0
        return max(abs(self.target_shares[s] - actual[s]) for s in self.target_shares)

    @property
    def average_group_length(self) -> float:
        if self.total_groups == 0:
            return 0.0
        return self.total_items / self.total_groups


class MetricsCollector:
    """Collects metrics while the sequencer runs."""

    def __init__(self, mix_id: str, strategy: str,
                 target_shares: Optional[Dict[str, float]] = None):
        """Initialize metrics collector."""
        self.mix_id = mix_id
        self.metrics = MixMetrics(
            mix_id=mix_id,
            strategy=strategy,
            target_shares=dict(target_shares or {}),
        )
        self._lock = threading.Lock()
        self._started_at: Optional[float] = None

    def start_mix(self) -> None:
        """Mark mix start."""
        with self._lock:
            self.metrics.start_time = datetime.now()
            self._started_at = time.perf_counter()

    def end_mix(self) -> None:
        """Mark mix end."""
        with self._lock:
            self.metrics.end_time = datetime.now()
            if self._started_at is not None:
                self.metrics.duration_ms = int((time.perf_counter() - self._started_at) * 1000)

    def set_target_shares(self, target_shares: Dict[str, float]) -> None:
        with self._lock:
            self.metrics.target_shares = dict(target_shares)

    def record_turn(self) -> None:
        with self._lock:
            self.metrics.total_turns += 1

    def record_group(self, source_id: str, requested_length: int,
                     emitted_length: int, start_index: int) -> None:
        """Record one emitted group."""
        with self._lock:
            group = GroupMetrics(
                group_index=self.metrics.total_groups,
                source_id=source_id,
                requested_length=requested_length,
                emitted_length=emitted_length,
                start_index=start_index,
            )
            self.metrics.groups.append(group)
            self.metrics.total_groups += 1
            self.metrics.total_items += emitted_length
            self.metrics.item_counts[source_id] = self.metrics.item_counts.get(source_id, 0) + emitted_length
            if group.truncated:
                self.metrics.truncated_groups += 1

    def record_exhausted(self, source_id: str) -> None:
        with self._lock:
            if source_id not in self.metrics.exhausted_sources:
                self.metrics.exhausted_sources.append(source_id)

    def get_metrics(self) -> MixMetrics:
        """Get current mix metrics."""
        with self._lock:
            return self.metrics

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for JSON serialization."""
        with self._lock:
            data = asdict(self.metrics)
            data['start_time'] = self.metrics.start_time.isoformat() if self.metrics.start_time else None
            data['end_time'] = self.metrics.end_time.isoformat() if self.metrics.end_time else None
            data['actual_shares'] = self.metrics.actual_shares
            data['max_share_deviation'] = self.metrics.max_share_deviation
            return data

    def save_to_file(self, file_path: str) -> None:
        """Save metrics to JSON file."""
        with open(file_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    def print_summary(self) -> None:
        """Print metrics summary to stdout."""
        metrics = self.get_metrics()

        print(f"\n=== Metrics Summary for Mix {self.mix_id} ===")
        print(f"Strategy: {metrics.strategy}")
        print(f"Total Items: {metrics.total_items}")
        print(f"Total Groups: {metrics.total_groups} (truncated: {metrics.truncated_groups})")
        print(f"Average Group Length: {metrics.average_group_length:.2f}")
        print(f"Max Share Deviation: {metrics.max_share_deviation:.2%}")
        print(f"Duration: {metrics.duration_ms}ms")
        if metrics.exhausted_sources:
            print(f"Exhausted Sources: {', '.join(metrics.exhausted_sources)}")

        actual = metrics.actual_shares
        for source_id, target in metrics.target_shares.items():
            print(f"  {source_id}: target {target:.2%}, actual {actual[source_id]:.2%} "
                  f"({metrics.item_counts.get(source_id, 0)} items)")
