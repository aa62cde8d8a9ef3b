import argparse
import json
import logging
import os
import shutil
import tempfile

from playmix.interfaces.cli import CLI, EXIT_CONFIG_ERROR, EXIT_FAILURE, EXIT_OK


def _write_request(directory, data):
    path = os.path.join(directory, 'request.json')
    with open(path, 'w') as f:
        json.dump(data, f)
    return path


def _pools(a_count=5, b_count=100):
    return [
        {'id': 'a', 'name': 'Salsa', 'items': [{'id': f"a{i}", 'durationMs': 200000} for i in range(a_count)]},
        {'id': 'b', 'name': 'Bachata', 'items': [{'id': f"b{i}", 'durationMs': 200000} for i in range(b_count)]},
    ]


class TestCLI:
    """Tests for CLI functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.cli = CLI()
        self.temp_dir = tempfile.mkdtemp()
        self.report_dir = os.path.join(self.temp_dir, 'reports')

    def teardown_method(self):
        logging.getLogger('playmix').handlers.clear()
        shutil.rmtree(self.temp_dir)

    def _run(self, *argv):
        return self.cli.run(['--config-dir', self.temp_dir, '--log-level', 'ERROR', *argv])

    def test_create_parser(self):
        parser = self.cli._create_parser()
        assert isinstance(parser, argparse.ArgumentParser)

        args = parser.parse_args(['mix', 'req.json', '--seed', '3', '--no-report'])
        assert args.command == 'mix'
        assert args.request == 'req.json'
        assert args.seed == 3
        assert args.no_report is True

        args = parser.parse_args(['check', 'req.json', '--basis', 'duration'])
        assert args.command == 'check'
        assert args.basis == 'duration'

    def test_no_command(self, capsys):
        assert self.cli.run([]) == EXIT_FAILURE

    def test_mix_prints_result_and_writes_report(self, capsys):
        request = _write_request(self.temp_dir, {
            'pools': _pools(20, 20),
            'options': {'targetCount': 10},
            'seed': 2,
        })
        code = self._run('mix', request, '--report-path', self.report_dir)

        assert code == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        assert len(output['items']) == 10
        assert output['state'] == 'stopped_complete'
        assert output['seed'] == 2
        reports = os.listdir(self.report_dir)
        assert len(reports) == 1
        with open(os.path.join(self.report_dir, reports[0])) as f:
            report = json.load(f)
        assert report['header']['totalItems'] == 10
        assert report['metrics']['total_items'] == 10

    def test_mix_to_output_file(self):
        request = _write_request(self.temp_dir, {'pools': _pools(), 'options': {'targetCount': 50}})
        output = os.path.join(self.temp_dir, 'out.json')
        code = self._run('mix', request, '--no-report', '--output', output, '--seed', '0')

        assert code == EXIT_OK
        with open(output) as f:
            data = json.load(f)
        assert data['incomplete'] is True
        assert data['limitingSourceId'] == 'a'
        assert not os.path.exists(self.report_dir)

    def test_mix_with_preset(self, capsys):
        request = _write_request(self.temp_dir, {'pools': _pools(100, 100)})
        code = self._run('mix', request, '--preset', 'workout', '--no-report')
        assert code == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        assert output['totalDurationMs'] >= 60 * 60 * 1000

    def test_config_error_exit_code(self, capsys):
        request = _write_request(self.temp_dir, {'pools': _pools()})
        code = self._run('mix', request, '--no-report')
        assert code == EXIT_CONFIG_ERROR
        assert 'error:' in capsys.readouterr().err

    def test_invalid_json_is_config_error(self):
        path = os.path.join(self.temp_dir, 'broken.json')
        with open(path, 'w') as f:
            f.write('{not json')
        assert self._run('check', path) == EXIT_CONFIG_ERROR

    def test_missing_file(self):
        assert self._run('mix', os.path.join(self.temp_dir, 'nope.json')) == EXIT_FAILURE

    def test_bad_settings_exit_code(self):
        with open(os.path.join(self.temp_dir, '.env'), 'w') as f:
            f.write('PLAYMIX_DEFAULT_SEED=abc\n')
        request = _write_request(self.temp_dir, {'pools': _pools(), 'options': {'targetCount': 5}})
        assert self._run('mix', request, '--no-report') == EXIT_CONFIG_ERROR

    def test_check(self, capsys):
        request = _write_request(self.temp_dir, {'pools': _pools(), 'options': {'targetCount': 150}})
        code = self._run('check', request)

        assert code == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        assert output['contentWarning'] == {'type': 'count', 'requested': 150, 'available': 105}
        assert output['ratioImbalance']['limitingSourceId'] == 'a'
        assert output['exhaustion']['projected'] == 10
        assert [r['percentage'] for r in output['ratios']] == [50, 50]

    def test_presets(self, capsys):
        assert self._run('presets') == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        assert [p['id'] for p in output['presets']] == ['party', 'workout', 'road-trip']

    def test_mix_from_pool_dir(self, capsys):
        pool_dir = os.path.join(self.temp_dir, 'pools')
        os.makedirs(pool_dir)
        for pool in _pools(10, 10):
            with open(os.path.join(pool_dir, f"{pool['id']}.json"), 'w') as f:
                json.dump(pool, f)
        request = _write_request(self.temp_dir, {'poolIds': ['b', 'a'], 'options': {'targetCount': 4}})

        code = self.cli.run(['--config-dir', self.temp_dir, '--log-level', 'ERROR',
                             '--pool-dir', pool_dir, 'mix', request, '--no-report'])
        assert code == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        assert [item['sourceId'] for item in output['items']] == ['b', 'a', 'b', 'a']
