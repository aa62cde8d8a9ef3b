import json

import pytest

from playmix.crosscutting.config import MixSettings
from playmix.interfaces.http import HTTPServer, create_app


def _body(**overrides):
    data = {
        'pools': [
            {'id': 'a', 'name': 'Salsa', 'items': [{'id': f"a{i}", 'durationMs': 180000} for i in range(5)]},
            {'id': 'b', 'name': 'Bachata', 'items': [{'id': f"b{i}", 'durationMs': 240000} for i in range(100)]},
        ],
        'options': {'targetCount': 50},
        'seed': 4,
    }
    data.update(overrides)
    return data


class TestHTTPServer:
    """Tests for HTTP server functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.server = HTTPServer(host='localhost', port=3001, debug=False)
        self.app = self.server.app
        self.client = self.app.test_client()

    def test_health_check(self):
        response = self.client.get('/health')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'healthy'
        assert data['version'] == '0.1.0'
        assert 'timestamp' in data
        assert 'commit' in data

    def test_root_endpoint(self):
        response = self.client.get('/')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['service'] == 'PlayMix HTTP Interface'
        assert data['endpoints']['mix'] == '/mix'

    def test_presets(self):
        response = self.client.get('/presets')
        assert response.status_code == 200
        assert len(response.get_json()['presets']) == 3

    def test_mix(self):
        response = self.client.post('/mix', json=_body(options={'targetCount': 8}))

        assert response.status_code == 200
        data = response.get_json()
        assert [item['sourceId'] for item in data['items']] == ['a', 'b'] * 4
        assert data['perSource']['a'] == {'count': 4, 'totalDurationMs': 4 * 180000}
        assert data['incomplete'] is False
        assert data['projection'] is None or data['projection']['limitingSourceId'] == 'a'

    def test_mix_stops_early(self):
        data = self.client.post('/mix', json=_body()).get_json()
        assert data['state'] == 'stopped_exhausted'
        assert data['limitingSourceId'] == 'a'

    def test_mix_is_deterministic(self):
        body = _body(options={'targetCount': 30, 'shuffleWithinGroups': True,
                              'continueOnSourceExhaustion': True})
        first = self.client.post('/mix', json=body).get_json()
        second = self.client.post('/mix', json=body).get_json()
        assert first['items'] == second['items']

    def test_config_error_is_400(self):
        response = self.client.post('/mix', json=_body(options={}))
        assert response.status_code == 400
        data = response.get_json()
        assert data['type'] == 'MissingTarget'

    def test_invalid_ratio_is_400(self):
        response = self.client.post('/mix', json=_body(ratios={'a': {'maxGroup': 12}}))
        assert response.status_code == 400
        assert response.get_json()['type'] == 'InvalidRatioEntry'

    @pytest.mark.parametrize('overrides', [
        {'ratios': {'a': 5}},
        {'options': 'oops'},
        {'options': {'targetCount': 10, 'targetDurationMs': -1}},
        {'options': {'targetCount': 10, 'recencyBoost': 'false'}},
        {'pools': [{'id': 'a', 'items': [{'id': 'a1', 'popularity': 250}]}]},
    ])
    def test_malformed_body_is_400(self, overrides):
        response = self.client.post('/mix', json=_body(**overrides))
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid mix configuration'

    def test_non_json_body_is_400(self):
        response = self.client.post('/mix', data='hello', content_type='text/plain')
        assert response.status_code == 400

    def test_advisories(self):
        response = self.client.post('/advisories', json=_body(options={'targetCount': 200}))

        assert response.status_code == 200
        data = response.get_json()
        assert data['contentWarning'] == {'type': 'count', 'requested': 200, 'available': 105}
        assert data['ratioImbalance']['limitingSourceName'] == 'Salsa'
        assert data['ratioImbalance']['willStopEarly'] is True
        assert data['exhaustion']['perSource'] == {'a': 10, 'b': 200}

    def test_advisories_duration_basis(self):
        response = self.client.post('/advisories', json=_body(basis='duration'))
        ratios = response.get_json()['ratios']
        assert [r['percentage'] for r in ratios] == [43, 57]

    def test_advisories_bad_basis(self):
        response = self.client.post('/advisories', json=_body(basis='vibes'))
        assert response.status_code == 400

    def test_create_app_uses_settings(self):
        app = create_app(MixSettings(default_seed=9))
        data = app.test_client().post('/mix', json=_body(seed=None, options={'targetCount': 4})).get_json()
        assert data['seed'] == 9
