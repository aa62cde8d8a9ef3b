import json
import os
import shutil
import tempfile
from datetime import date

import pytest

from playmix.domain.entities import RatioEntry, ShapeStrategy, WeightMode
from playmix.domain.errors import ConfigError, UnknownPreset
from playmix.interfaces.payloads import (
    JsonPoolCatalog,
    parse_options,
    parse_pool,
    parse_request,
)


def _request(**overrides):
    data = {
        'pools': [
            {'id': 'a', 'name': 'Salsa', 'items': [
                {'id': 'a1', 'durationMs': 200000, 'popularity': 70, 'artists': ['X']},
                {'id': 'a2', 'releaseDate': '2019'},
            ]},
            {'id': 'b', 'items': [{'id': 'b1'}]},
        ],
        'ratios': {'a': {'minGroup': 1, 'maxGroup': 3, 'weight': 4, 'weightMode': 'duration'}},
        'options': {'targetCount': 10, 'shapeStrategy': 'crescendo', 'referenceDate': '2024-05-01'},
        'seed': 5,
    }
    data.update(overrides)
    return data


class TestParseRequest:
    """Tests for decoding mix requests."""

    def test_full_request(self):
        pools, config, options, seed = parse_request(_request())

        assert [p.id for p in pools] == ['a', 'b']
        assert pools[0].items[0].duration_ms == 200000
        assert pools[0].items[0].source_id == 'a'
        assert pools[0].items[1].release_date == date(2019, 1, 1)
        assert pools[1].name == 'b'
        assert config['a'] == RatioEntry(min_group=1, max_group=3, weight=4, weight_mode=WeightMode.DURATION)
        assert config['b'] == RatioEntry()
        assert options.target_count == 10
        assert options.shape_strategy == ShapeStrategy.CRESCENDO
        assert options.reference_date == date(2024, 5, 1)
        assert seed == 5

    def test_preset_request(self):
        pools, config, options, seed = parse_request(_request(preset='road-trip', ratios={}))
        assert config['a'] == RatioEntry(min_group=2, max_group=3, weight=2)
        assert options.shape_strategy == ShapeStrategy.CRESCENDO
        assert options.target_duration_ms == 180 * 60 * 1000

    def test_explicit_ratios_override_preset(self):
        _, config, _, _ = parse_request(_request(preset='road-trip'))
        assert config['a'].weight == 4
        assert config['b'] == RatioEntry(min_group=2, max_group=3, weight=2)

    def test_unknown_preset(self):
        with pytest.raises(UnknownPreset):
            parse_request(_request(preset='lounge'))

    @pytest.mark.parametrize('options', [
        {'shapeStrategy': 'sideways'},
        {'targetCount': 'many'},
        {'targetCount': True},
        {'referenceDate': '2024-13-45'},
    ])
    def test_bad_options(self, options):
        with pytest.raises(ConfigError):
            parse_options(options)

    def test_bad_weight_mode(self):
        with pytest.raises(ConfigError):
            parse_request(_request(ratios={'a': {'weightMode': 'loudness'}}))

    def test_pool_without_id(self):
        with pytest.raises(ConfigError):
            parse_pool({'items': []})

    def test_body_must_be_object(self):
        with pytest.raises(ConfigError):
            parse_request([1, 2, 3])

    @pytest.mark.parametrize('overrides', [
        {'ratios': {'a': 5}},
        {'ratios': ['a']},
        {'options': 'oops'},
        {'pools': ['a']},
        {'pools': {'id': 'a'}},
        {'pools': [{'id': 'a', 'items': {'id': 'a1'}}]},
        {'pools': [{'id': 'a', 'items': ['a1']}]},
        {'pools': [{'id': 'a', 'items': [{'id': 'a1', 'artists': 'X'}]}]},
    ])
    def test_malformed_shapes(self, overrides):
        with pytest.raises(ConfigError):
            parse_request(_request(**overrides))

    @pytest.mark.parametrize('item', [
        {'id': 'x', 'popularity': 101},
        {'id': 'x', 'popularity': -1},
        {'id': 'x', 'durationMs': -200},
    ])
    def test_item_values_out_of_range(self, item):
        with pytest.raises(ConfigError):
            parse_pool({'id': 'a', 'items': [item]})

    def test_item_value_bounds_accepted(self):
        pool = parse_pool({'id': 'a', 'items': [
            {'id': 'x', 'popularity': 0, 'durationMs': 0},
            {'id': 'y', 'popularity': 100},
        ]})
        assert [item.popularity for item in pool.items] == [0, 100]
        assert pool.items[0].duration_ms == 0

    @pytest.mark.parametrize('flag,attribute', [
        ('useAllSources', 'use_all_sources'),
        ('shuffleWithinGroups', 'shuffle_within_groups'),
        ('continueOnSourceExhaustion', 'continue_on_source_exhaustion'),
        ('recencyBoost', 'recency_boost'),
    ])
    def test_option_flags_must_be_booleans(self, flag, attribute):
        with pytest.raises(ConfigError):
            parse_options({flag: 'false'})
        with pytest.raises(ConfigError):
            parse_options({flag: 1})
        assert getattr(parse_options({flag: True}), attribute) is True

    def test_enabled_must_be_boolean(self):
        with pytest.raises(ConfigError):
            parse_request(_request(ratios={'a': {'enabled': 'false'}}))
        _, config, _, _ = parse_request(_request(ratios={'a': {'enabled': False}}))
        assert config['a'].enabled is False


class TestJsonPoolCatalog:

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        for pool_id in ('salsa', 'bachata'):
            with open(os.path.join(self.temp_dir, f"{pool_id}.json"), 'w') as f:
                json.dump({'name': pool_id.title(), 'items': [{'id': f"{pool_id}-1"}]}, f)
        self.catalog = JsonPoolCatalog(self.temp_dir)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir)

    def test_list_and_load(self):
        assert list(self.catalog.list_pool_ids()) == ['bachata', 'salsa']
        pool = self.catalog.load_pool('salsa')
        assert pool.id == 'salsa'
        assert pool.name == 'Salsa'
        assert pool.items[0].source_id == 'salsa'

    def test_missing_pool(self):
        with pytest.raises(ConfigError):
            self.catalog.load_pool('merengue')

    def test_request_from_catalog(self):
        pools, config, options, _ = parse_request(
            {'poolIds': ['salsa'], 'options': {'targetCount': 1}}, self.catalog)
        assert [p.id for p in pools] == ['salsa']
        assert config == {'salsa': RatioEntry()}

    def test_request_uses_every_catalog_pool(self):
        pools, _, _, _ = parse_request({'options': {'targetCount': 1}}, self.catalog)
        assert [p.id for p in pools] == ['bachata', 'salsa']
