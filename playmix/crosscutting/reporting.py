import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from playmix.domain.entities import MixResult, Quadrant, SequencerState, SourcePool


@dataclass
class ReportHeader:
    """Header information for a mix report."""

    mix_id: str
    created_at: datetime
    strategy: str = ""
    seed: int = 0
    state: SequencerState = SequencerState.STOPPED_COMPLETE
    incomplete: bool = False
    limiting_source_id: Optional[str] = None
    total_items: int = 0
    total_duration_ms: int = 0

    def to_json(self) -> Dict[str, Any]:
        """Serialize header to JSON."""
        return {
            "mixId": self.mix_id,
            "createdAt": self.created_at.isoformat(),
            "strategy": self.strategy,
            "seed": self.seed,
            "state": self.state.value,
            "incomplete": self.incomplete,
            "limitingSourceId": self.limiting_source_id,
            "totalItems": self.total_items,
            "totalDurationMs": self.total_duration_ms,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ReportHeader":
        """Deserialize header from JSON."""
        return cls(
            mix_id=data["mixId"],
            created_at=datetime.fromisoformat(data["createdAt"]),
            strategy=data.get("strategy", ""),
            seed=data.get("seed", 0),
            state=SequencerState(data.get("state", SequencerState.STOPPED_COMPLETE.value)),
            incomplete=data.get("incomplete", False),
            limiting_source_id=data.get("limitingSourceId"),
            total_items=data.get("totalItems", 0),
            total_duration_ms=data.get("totalDurationMs", 0),
        )


@dataclass
class SourceSummary:
    """Per-source totals in a mix report."""

    source_id: str
    name: str
    count: int = 0
    total_duration_ms: int = 0

    def to_json(self) -> Dict[str, Any]:
        return {
            "sourceId": self.source_id,
            "name": self.name,
            "count": self.count,
            "totalDurationMs": self.total_duration_ms,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "SourceSummary":
        return cls(
            source_id=data["sourceId"],
            name=data.get("name", ""),
            count=data.get("count", 0),
            total_duration_ms=data.get("totalDurationMs", 0),
        )


@dataclass
class ReportEntry:
    """One line of the mixed sequence."""

    index: int
    item_id: str
    source_id: str
    duration_ms: int
    group_index: int
    quadrant: Optional[Quadrant] = None
    title: str = ""
    artists: List[str] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "itemId": self.item_id,
            "sourceId": self.source_id,
            "durationMs": self.duration_ms,
            "groupIndex": self.group_index,
            "quadrant": self.quadrant.value if self.quadrant else None,
            "title": self.title,
            "artists": list(self.artists),
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ReportEntry":
        return cls(
            index=data["index"],
            item_id=data["itemId"],
            source_id=data["sourceId"],
            duration_ms=data.get("durationMs", 0),
            group_index=data.get("groupIndex", 0),
            quadrant=Quadrant(data["quadrant"]) if data.get("quadrant") else None,
            title=data.get("title", ""),
            artists=list(data.get("artists", [])),
        )


@dataclass
class MixReport:
    """Complete mix report."""

    header: ReportHeader
    sources: List[SourceSummary]
    entries: List[ReportEntry]
    metrics: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        """Serialize report to JSON."""
        return {
            "header": self.header.to_json(),
            "sources": [s.to_json() for s in self.sources],
            "entries": [e.to_json() for e in self.entries],
            "metrics": self.metrics,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "MixReport":
        """Deserialize report from JSON."""
        return cls(
            header=ReportHeader.from_json(data["header"]),
            sources=[SourceSummary.from_json(s) for s in data.get("sources", [])],
            entries=[ReportEntry.from_json(e) for e in data.get("entries", [])],
            metrics=data.get("metrics", {}),
        )

    def save(self, directory: str) -> Path:
        """Write the report as ``<mix_id>.json`` under ``directory``."""
        path = Path(directory)
        path.mkdir(parents=True, exist_ok=True)
        file_path = path / f"{self.header.mix_id}.json"
        with open(file_path, 'w') as f:
            json.dump(self.to_json(), f, indent=2, ensure_ascii=False)
        return file_path


def create_report(
    mix_id: str,
    result: MixResult,
    pools: Sequence[SourcePool],
    strategy: str = "",
    metrics: Optional[Dict[str, Any]] = None,
) -> MixReport:
    """Build a report from a finished mix."""
    names = {pool.id: pool.name for pool in pools}
    header = ReportHeader(
        mix_id=mix_id,
        created_at=datetime.now(),
        strategy=strategy,
        seed=result.seed,
        state=result.state,
        incomplete=result.incomplete,
        limiting_source_id=result.limiting_source_id,
        total_items=len(result.items),
        total_duration_ms=result.total_duration_ms,
    )
    sources = [
        SourceSummary(
            source_id=source_id,
            name=names.get(source_id, ""),
            count=stats.count,
            total_duration_ms=stats.total_duration_ms,
        )
        for source_id, stats in result.per_source.items()
    ]
    entries = [
        ReportEntry(
            index=mixed.index,
            item_id=mixed.item.id,
            source_id=mixed.source_id,
            duration_ms=mixed.duration_ms,
            group_index=mixed.group_index,
            quadrant=mixed.quadrant,
            title=mixed.item.title,
            artists=list(mixed.item.artists),
        )
        for mixed in result.items
    ]
    return MixReport(header=header, sources=sources, entries=entries, metrics=dict(metrics or {}))
