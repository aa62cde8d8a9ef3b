"""Translation between JSON documents and mixing domain objects.

A mix request looks like::

    {
      "pools": [{"id": "a", "name": "Salsa", "items": [{"id": "t1", "durationMs": 200000}]}],
      "ratios": {"a": {"minGroup": 1, "maxGroup": 2, "weight": 3}},
      "options": {"targetCount": 40, "shapeStrategy": "mid-peak"},
      "seed": 7
    }

``ratios`` and ``options`` may be replaced by ``"preset": "<id>"``, and
``pools`` by ``"poolIds"`` when a pool catalog is available.
"""
import json
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from playmix.application.advisories import RatioPreview
from playmix.application.presets import PresetTemplate, apply_preset
from playmix.domain.entities import (
    ContentWarning,
    ExhaustionProjection,
    Item,
    MixOptions,
    MixResult,
    RatioEntry,
    RatioImbalanceWarning,
    ShapeStrategy,
    SourcePool,
    WeightMode,
)
from playmix.domain.errors import ConfigError
from playmix.domain.ports import PoolCatalog


def _require(data: Mapping[str, Any], key: str, where: str) -> Any:
    if key not in data:
        raise ConfigError(f"{where}: missing '{key}'")
    return data[key]


def _optional_int(value: Any, where: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"{where}: expected an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{where}: expected an integer, got {value!r}")


def _mapping(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigError(f"{where}: expected a JSON object, got {type(value).__name__}")
    return value


def _sequence(value: Any, where: str) -> List[Any]:
    if not isinstance(value, list):
        raise ConfigError(f"{where}: expected a JSON array, got {type(value).__name__}")
    return value


def _optional_bool(value: Any, default: bool, where: str) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"{where}: expected true or false, got {value!r}")
    return value


def _bounded_int(value: Any, where: str, low: int, high: Optional[int] = None) -> Optional[int]:
    number = _optional_int(value, where)
    if number is None:
        return None
    if number < low or (high is not None and number > high):
        bounds = f"{low}..{high}" if high is not None else f">= {low}"
        raise ConfigError(f"{where}: {number} is outside {bounds}")
    return number


def _optional_date(value: Any, where: str) -> Optional[date]:
    if not value:
        return None
    text = str(value)
    # Catalogs report year-only or year-month precision for older releases.
    if len(text) == 4:
        text = f"{text}-01-01"
    elif len(text) == 7:
        text = f"{text}-01"
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise ConfigError(f"{where}: invalid date {value!r}")


def parse_item(data: Mapping[str, Any], source_id: str) -> Item:
    where = f"pool {source_id} item"
    data = _mapping(data, where)
    return Item(
        id=str(_require(data, 'id', where)),
        source_id=source_id,
        duration_ms=_bounded_int(data.get('durationMs'), f"{where} durationMs", 0),
        popularity=_bounded_int(data.get('popularity'), f"{where} popularity", 0, 100),
        title=data.get('title', ''),
        artists=[str(artist) for artist in _sequence(data.get('artists') or [], f"{where} artists")],
        release_date=_optional_date(data.get('releaseDate'), f"{where} releaseDate"),
    )


def parse_pool(data: Mapping[str, Any]) -> SourcePool:
    data = _mapping(data, 'pool')
    pool_id = str(_require(data, 'id', 'pool'))
    items = _sequence(data.get('items', []), f"pool {pool_id} items")
    return SourcePool(
        id=pool_id,
        name=data.get('name', pool_id),
        items=tuple(parse_item(item, pool_id) for item in items),
        average_duration_ms=_bounded_int(data.get('averageDurationMs'), f"pool {pool_id} averageDurationMs", 1),
    )


def parse_ratio_entry(source_id: str, data: Mapping[str, Any]) -> RatioEntry:
    where = f"ratio {source_id}"
    data = _mapping(data, where)
    try:
        weight_mode = WeightMode(data.get('weightMode', WeightMode.COUNT.value))
    except ValueError:
        raise ConfigError(f"{where}: unknown weightMode {data.get('weightMode')!r}")
    return RatioEntry(
        min_group=_optional_int(data.get('minGroup', 1), f"{where} minGroup"),
        max_group=_optional_int(data.get('maxGroup', 1), f"{where} maxGroup"),
        weight=_optional_int(data.get('weight', 1), f"{where} weight"),
        weight_mode=weight_mode,
        enabled=_optional_bool(data.get('enabled'), True, f"{where} enabled"),
    )


def parse_ratio_config(data: Mapping[str, Any]) -> Dict[str, RatioEntry]:
    data = _mapping(data, 'ratios')
    return {str(source_id): parse_ratio_entry(str(source_id), entry) for source_id, entry in data.items()}


def parse_options(data: Mapping[str, Any]) -> MixOptions:
    data = _mapping(data, 'options')
    try:
        strategy = ShapeStrategy(data.get('shapeStrategy', ShapeStrategy.MIXED.value))
    except ValueError:
        raise ConfigError(f"options: unknown shapeStrategy {data.get('shapeStrategy')!r}")
    return MixOptions(
        use_all_sources=_optional_bool(data.get('useAllSources'), False, 'options useAllSources'),
        target_count=_optional_int(data.get('targetCount'), 'options targetCount'),
        target_duration_ms=_optional_int(data.get('targetDurationMs'), 'options targetDurationMs'),
        shape_strategy=strategy,
        shuffle_within_groups=_optional_bool(data.get('shuffleWithinGroups'), False,
                                             'options shuffleWithinGroups'),
        continue_on_source_exhaustion=_optional_bool(data.get('continueOnSourceExhaustion'), False,
                                                     'options continueOnSourceExhaustion'),
        recency_boost=_optional_bool(data.get('recencyBoost'), False, 'options recencyBoost'),
        reference_date=_optional_date(data.get('referenceDate'), 'options referenceDate'),
    )


def parse_request(data: Mapping[str, Any],
                  catalog: Optional[PoolCatalog] = None) -> Tuple[List[SourcePool], Dict[str, RatioEntry], MixOptions, Optional[int]]:
    """Decode a full mix request into pools, ratio config, options and seed.

    Without inline ``pools`` the pools named in ``poolIds`` (or every pool)
    are loaded from ``catalog``.
    """
    if not isinstance(data, Mapping):
        raise ConfigError("request body must be a JSON object")
    if 'pools' not in data and catalog is not None:
        pool_ids = _sequence(data.get('poolIds') or list(catalog.list_pool_ids()), 'poolIds')
        pools = [catalog.load_pool(str(pool_id)) for pool_id in pool_ids]
    else:
        pools = [parse_pool(pool) for pool in _sequence(data.get('pools', []), 'pools')]
    seed = _optional_int(data.get('seed'), 'seed')

    preset_id = data.get('preset')
    if preset_id:
        ratio_config, options = apply_preset(str(preset_id), pools)
        if 'ratios' in data:
            ratio_config.update(parse_ratio_config(data['ratios']))
        return pools, ratio_config, options, seed

    ratio_config = parse_ratio_config(data.get('ratios', {}))
    # Pools with no ratio entry take part with the default entry.
    for pool in pools:
        ratio_config.setdefault(pool.id, RatioEntry())
    options = parse_options(data.get('options', {}))
    return pools, ratio_config, options, seed


class JsonPoolCatalog:
    """PoolCatalog backed by a directory of ``<pool_id>.json`` files."""

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def list_pool_ids(self) -> Iterable[str]:
        return sorted(path.stem for path in self.directory.glob('*.json'))

    def load_pool(self, pool_id: str) -> SourcePool:
        path = self.directory / f"{pool_id}.json"
        if not path.exists():
            raise ConfigError(f"pool {pool_id}: no such file {path}")
        with open(path, 'r') as f:
            try:
                data = dict(_mapping(json.load(f), f"pool {pool_id}"))
            except json.JSONDecodeError as e:
                raise ConfigError(f"pool {pool_id}: invalid JSON in {path} ({e})")
        data.setdefault('id', pool_id)
        return parse_pool(data)


def load_request_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path}: invalid JSON ({e})")


def projection_to_json(projection: Optional[ExhaustionProjection]) -> Optional[Dict[str, Any]]:
    if projection is None:
        return None
    return {
        'limitingSourceId': projection.limiting_source_id,
        'projected': projection.projected,
        'unit': projection.unit.value,
        'perSource': dict(projection.per_source),
    }


def result_to_json(result: MixResult) -> Dict[str, Any]:
    return {
        'items': [
            {
                'index': mixed.index,
                'id': mixed.item.id,
                'sourceId': mixed.source_id,
                'durationMs': mixed.duration_ms,
                'quadrant': mixed.quadrant.value if mixed.quadrant else None,
                'groupIndex': mixed.group_index,
                'title': mixed.item.title,
            }
            for mixed in result.items
        ],
        'perSource': {
            source_id: {'count': stats.count, 'totalDurationMs': stats.total_duration_ms}
            for source_id, stats in result.per_source.items()
        },
        'totalDurationMs': result.total_duration_ms,
        'state': result.state.value,
        'incomplete': result.incomplete,
        'limitingSourceId': result.limiting_source_id,
        'projection': projection_to_json(result.projection),
        'seed': result.seed,
    }


def content_warning_to_json(warning: Optional[ContentWarning]) -> Optional[Dict[str, Any]]:
    if warning is None:
        return None
    return {'type': warning.type.value, 'requested': warning.requested, 'available': warning.available}


def imbalance_warning_to_json(warning: Optional[RatioImbalanceWarning]) -> Optional[Dict[str, Any]]:
    if warning is None:
        return None
    return {
        'limitingSourceId': warning.limiting_source_id,
        'limitingSourceName': warning.limiting_source_name,
        'imbalancedAt': warning.imbalanced_at,
        'unit': warning.unit.value,
        'willStopEarly': warning.will_stop_early,
        'useAllSources': warning.use_all_sources,
    }


def preview_to_json(preview: RatioPreview) -> Dict[str, Any]:
    return {
        'sourceId': preview.source_id,
        'name': preview.name,
        'percentage': preview.percentage,
        'displayText': preview.display_text,
        'groupText': preview.group_text,
    }


def preset_to_json(preset: PresetTemplate) -> Dict[str, Any]:
    return {
        'id': preset.id,
        'name': preset.name,
        'description': preset.description,
        'shapeStrategy': preset.strategy.value,
        'targetMinutes': preset.target_minutes,
        'shuffleWithinGroups': preset.shuffle_within_groups,
        'recencyBoost': preset.recency_boost,
    }
